"""
Business errors raised by the settlement services.

Every error carries a stable `code` and the HTTP status the API answers
with. Views catch SettlementError and render {"error": ..., "code": ...}.
"""

from rest_framework import status


class SettlementError(Exception):
    """Base class for all booking, voucher and wallet rule violations."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "settlement_error"
    default_message = "The request could not be settled."

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


# Validation


class InvalidTimeRange(SettlementError):
    code = "invalid_time_range"
    default_message = "End time must be after start time."


class PastBooking(SettlementError):
    code = "past_booking"
    default_message = "Cannot book in the past."


class InvalidVoucherWindow(SettlementError):
    code = "invalid_voucher_window"
    default_message = "valid_to must not be before valid_from."


# Not found


class NotFoundError(SettlementError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class RoomNotFound(NotFoundError):
    code = "room_not_found"
    default_message = "Meeting room not found."


class BookingNotFound(NotFoundError):
    code = "booking_not_found"
    default_message = "Booking not found."


class InvalidVoucher(NotFoundError):
    code = "invalid_voucher"
    default_message = "Invalid voucher code."


class VoucherNotFound(NotFoundError):
    code = "voucher_not_found"
    default_message = "Voucher not found."


class WalletNotFound(NotFoundError):
    code = "wallet_not_found"
    default_message = "Wallet not found."


class TopupNotFound(NotFoundError):
    code = "topup_not_found"
    default_message = "Topup not found."


# Permission


class Unauthorized(SettlementError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"
    default_message = "Not allowed to act on this booking."


# Conflict


class ConflictError(SettlementError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class RoomUnavailable(ConflictError):
    code = "room_unavailable"
    default_message = "Meeting room is not available."


class SlotConflict(ConflictError):
    code = "slot_conflict"
    default_message = "Meeting room is already booked for this time slot."


class VoucherExpired(ConflictError):
    code = "voucher_expired"
    default_message = "Voucher is not valid at this time."


class VoucherExhausted(ConflictError):
    code = "voucher_exhausted"
    default_message = "Voucher has reached maximum uses."


class VoucherCodeTaken(ConflictError):
    code = "voucher_code_taken"
    default_message = "Voucher code already exists."


class AlreadyCancelled(ConflictError):
    code = "already_cancelled"
    default_message = "Booking is already cancelled."


class TooLateToCancel(ConflictError):
    code = "too_late_to_cancel"
    default_message = "Cannot cancel a booking this close to its start time."


class NotPending(ConflictError):
    code = "not_pending"
    default_message = "Topup is not pending."


# Resource


class PaymentError(SettlementError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "payment_error"


class InsufficientBalance(PaymentError):
    code = "insufficient_balance"
    default_message = "Insufficient balance."


class PaymentFailed(PaymentError):
    code = "payment_failed"
    default_message = "Payment failed."


# Partial failure


class RefundFailed(SettlementError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "refund_failed"
    default_message = "Booking was cancelled but the refund could not be processed."
