import logging
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from cafe.exceptions import (
    AlreadyCancelled,
    BookingNotFound,
    InsufficientBalance,
    InvalidTimeRange,
    PastBooking,
    PaymentFailed,
    RefundFailed,
    RoomNotFound,
    RoomUnavailable,
    SlotConflict,
    TooLateToCancel,
    Unauthorized,
    WalletNotFound,
)
from cafe.models import Booking, MeetingRoom, Transaction, Wallet
from cafe.services.ledger import LedgerService
from cafe.services.voucher import VoucherService
from cafe.services.wallet import WalletService
from cafe.utils import apply_percent_discount, duration_hours, to_money

logger = logging.getLogger(__name__)

CANCELLATION_WINDOW_HOURS = getattr(settings, "BOOKING_CANCELLATION_WINDOW_HOURS", 24)


class BookingService:
    """
    Books meeting rooms against the customer's wallet and refunds cancellations.

    Creation runs as one database transaction holding a row lock on the
    room: the overlap check, the booking insert and the wallet debit either
    all happen or none do. Voucher usage and the ledger append are
    secondary effects; they run in savepoints and a failure there is logged
    rather than failing the booking.
    """

    @staticmethod
    def quote(room: MeetingRoom, start_time, end_time, voucher=None) -> tuple:
        """Return (base_price, final_price) for booking `room` over the interval."""
        base_price = to_money(room.price_per_hour * duration_hours(start_time, end_time))
        if voucher is None:
            return base_price, base_price
        _, final_price = apply_percent_discount(base_price, voucher.discount_percent)
        return base_price, final_price

    @staticmethod
    @transaction.atomic
    def create(customer_id, room_id, start_time, end_time, voucher_code=None) -> Booking:
        """
        Book a room for [start_time, end_time) and charge the customer's wallet.

        Preconditions are checked in this order and the first failure wins:
        time range, start in the future, room exists and is available, slot
        free, voucher usable, wallet covers the price.

        Raises:
            InvalidTimeRange, PastBooking, RoomNotFound, RoomUnavailable,
            SlotConflict, InvalidVoucher, VoucherExpired, VoucherExhausted,
            WalletNotFound, InsufficientBalance: a precondition failed and
                nothing was written.
            PaymentFailed: the guarded debit lost a race; the booking insert
                is rolled back with it.
        """
        if end_time <= start_time:
            raise InvalidTimeRange()

        now = timezone.now()
        if start_time < now:
            raise PastBooking()

        # Lock the room so concurrent bookings of it check and insert in turn.
        room = MeetingRoom.objects.select_for_update().filter(pk=room_id).first()
        if room is None:
            raise RoomNotFound()
        if not room.available:
            raise RoomUnavailable()

        if Booking.overlapping(room.pk, start_time, end_time).exists():
            logger.info(
                "Slot conflict: room=%s start=%s end=%s", room.pk, start_time, end_time
            )
            raise SlotConflict()

        voucher = None
        if voucher_code:
            voucher = VoucherService.validate(voucher_code, now=now)

        base_price, total_price = BookingService.quote(
            room, start_time, end_time, voucher
        )

        wallet = Wallet.objects.filter(user_id=customer_id).first()
        if wallet is None:
            raise WalletNotFound()
        if wallet.balance < total_price:
            logger.warning(
                "Booking rejected (insufficient balance): customer=%s balance=%s "
                "price=%s",
                customer_id,
                wallet.balance,
                total_price,
            )
            raise InsufficientBalance()

        if voucher is not None:
            BookingService._consume_voucher(voucher)

        booking = Booking.objects.create(
            customer_id=customer_id,
            room=room,
            start_time=start_time,
            end_time=end_time,
            total_price=total_price,
            voucher=voucher,
            status=Booking.Status.BOOKED,
        )

        if total_price > 0:
            try:
                WalletService.debit(customer_id, total_price)
            except (InsufficientBalance, WalletNotFound) as exc:
                logger.error(
                    "Booking payment failed: booking=%s customer=%s price=%s error=%s",
                    booking.id,
                    customer_id,
                    total_price,
                    exc,
                )
                raise PaymentFailed() from exc

        LedgerService.record_best_effort(
            user_id=customer_id,
            service=Transaction.Service.BOOKING,
            service_ref_id=booking.id,
            amount=total_price,
            status=Transaction.Status.COMPLETED,
        )

        logger.info(
            "Booking created: booking=%s customer=%s room=%s base=%s price=%s "
            "voucher=%s",
            booking.id,
            customer_id,
            room.pk,
            base_price,
            total_price,
            voucher.code if voucher else None,
        )
        return booking

    @staticmethod
    def _consume_voucher(voucher):
        try:
            with transaction.atomic():
                consumed = VoucherService.consume(voucher.pk)
        except DatabaseError:
            logger.exception("Voucher usage increment failed: voucher=%s", voucher.pk)
            return

        if not consumed:
            logger.warning(
                "Voucher usage budget spent concurrently: voucher=%s", voucher.pk
            )

    @staticmethod
    def cancel(customer_id, booking_id) -> Booking:
        """
        Cancel a booking and refund its price to the customer's wallet.

        The status change is committed before the refund is attempted. If the
        refund then fails the booking stays cancelled and RefundFailed is
        raised so the caller (and the logs) know money is owed.

        Raises:
            BookingNotFound, Unauthorized, AlreadyCancelled, TooLateToCancel:
                nothing was changed.
            RefundFailed: cancelled, but the wallet was not credited.
        """
        with transaction.atomic():
            booking = (
                Booking.objects.select_for_update().filter(pk=booking_id).first()
            )
            if booking is None:
                raise BookingNotFound()

            if booking.customer_id != customer_id:
                logger.warning(
                    "Cancellation refused: booking=%s owner=%s caller=%s",
                    booking.id,
                    booking.customer_id,
                    customer_id,
                )
                raise Unauthorized()

            if booking.status == Booking.Status.CANCELLED:
                raise AlreadyCancelled()

            window = timedelta(hours=CANCELLATION_WINDOW_HOURS)
            if booking.start_time - timezone.now() < window:
                raise TooLateToCancel()

            booking.status = Booking.Status.CANCELLED
            booking.save(update_fields=["status", "updated_at"])

        logger.info("Booking cancelled: booking=%s customer=%s", booking.id, customer_id)

        try:
            with transaction.atomic():
                if booking.total_price > 0:
                    WalletService.credit(customer_id, booking.total_price)
                LedgerService.record_best_effort(
                    user_id=customer_id,
                    service=Transaction.Service.BOOKING,
                    service_ref_id=booking.id,
                    amount=-booking.total_price,
                    status=Transaction.Status.REFUNDED,
                )
        except (WalletNotFound, DatabaseError) as exc:
            logger.error(
                "Refund failed, needs reconciliation: booking=%s customer=%s "
                "amount=%s error=%s",
                booking.id,
                customer_id,
                booking.total_price,
                exc,
            )
            raise RefundFailed() from exc

        logger.info(
            "Booking refunded: booking=%s customer=%s amount=%s",
            booking.id,
            customer_id,
            booking.total_price,
        )
        return booking

    @staticmethod
    def get(booking_id) -> Booking:
        try:
            return Booking.objects.select_related("room", "voucher").get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFound()

    @staticmethod
    def for_customer(customer_id):
        return Booking.objects.filter(customer_id=customer_id).select_related(
            "room", "voucher"
        )

    @staticmethod
    def for_room(room_id):
        if not MeetingRoom.objects.filter(pk=room_id).exists():
            raise RoomNotFound()
        return (
            Booking.objects.filter(room_id=room_id)
            .select_related("room", "voucher")
            .order_by("start_time")
        )
