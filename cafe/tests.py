import logging
import threading
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest import skipUnless
from unittest.mock import patch

from django.db import DatabaseError, connection, connections
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from cafe.exceptions import (
    AlreadyCancelled,
    BookingNotFound,
    InsufficientBalance,
    InvalidTimeRange,
    InvalidVoucher,
    InvalidVoucherWindow,
    NotPending,
    PastBooking,
    PaymentFailed,
    RefundFailed,
    RoomNotFound,
    RoomUnavailable,
    SlotConflict,
    TooLateToCancel,
    TopupNotFound,
    Unauthorized,
    VoucherCodeTaken,
    VoucherExhausted,
    VoucherExpired,
    VoucherNotFound,
    WalletNotFound,
)
from cafe.middleware import RequestIdFilter
from cafe.models import (
    Booking,
    CoffeeShop,
    MeetingRoom,
    Topup,
    Transaction,
    Voucher,
    Wallet,
)
from cafe.services import (
    BookingService,
    TopupService,
    VoucherService,
    WalletService,
)
from cafe.utils import apply_percent_discount, duration_hours

# ============================================================
# Fixtures
# ============================================================


def make_room(price="10.00", available=True, name="Room A"):
    shop = CoffeeShop.objects.create(
        owner_id=uuid.uuid4(), name="Bean There", location="12 Main St"
    )
    return MeetingRoom.objects.create(
        coffee_shop=shop,
        name=name,
        capacity=6,
        price_per_hour=Decimal(price),
        available=available,
    )


def make_voucher(code="SAVE10", percent=10, max_uses=0, valid_from=None, valid_to=None):
    now = timezone.now()
    return Voucher.objects.create(
        code=code,
        discount_percent=percent,
        max_uses=max_uses,
        valid_from=valid_from or now - timedelta(days=1),
        valid_to=valid_to or now + timedelta(days=30),
    )


def fund_wallet(user_id, amount):
    WalletService.open(user_id)
    if Decimal(amount) > 0:
        WalletService.credit(user_id, Decimal(amount))


def slot(days=3, hour=9, hours=2, minutes=0):
    """A [start, end) interval `days` from now, starting on the hour."""
    start = (timezone.now() + timedelta(days=days)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(hours=hours, minutes=minutes)


def balance_of(user_id):
    return Wallet.objects.get(user_id=user_id).balance


# ============================================================
# Model and Helper Tests
# ============================================================


class WalletModelTest(TestCase):
    def test_create_wallet(self):
        user_id = uuid.uuid4()
        wallet = Wallet.objects.create(user_id=user_id)
        self.assertEqual(wallet.balance, Decimal("0"))
        self.assertIsNotNone(wallet.created_at)
        self.assertIn(str(user_id), str(wallet))


class BookingModelTest(TestCase):
    def setUp(self):
        self.room = make_room()
        self.start, self.end = slot(hour=9, hours=2)
        Booking.objects.create(
            customer_id=uuid.uuid4(),
            room=self.room,
            start_time=self.start,
            end_time=self.end,
            total_price=Decimal("20.00"),
        )

    def test_overlapping_detects_partial_overlap(self):
        qs = Booking.overlapping(
            self.room.pk, self.start + timedelta(hours=1), self.end + timedelta(hours=1)
        )
        self.assertEqual(qs.count(), 1)

    def test_overlapping_detects_enclosing_interval(self):
        qs = Booking.overlapping(
            self.room.pk, self.start - timedelta(hours=1), self.end + timedelta(hours=1)
        )
        self.assertEqual(qs.count(), 1)

    def test_adjacent_intervals_do_not_overlap(self):
        self.assertFalse(
            Booking.overlapping(
                self.room.pk, self.end, self.end + timedelta(hours=1)
            ).exists()
        )
        self.assertFalse(
            Booking.overlapping(
                self.room.pk, self.start - timedelta(hours=1), self.start
            ).exists()
        )

    def test_cancelled_bookings_are_ignored(self):
        Booking.objects.update(status=Booking.Status.CANCELLED)
        self.assertFalse(
            Booking.overlapping(self.room.pk, self.start, self.end).exists()
        )

    def test_other_rooms_are_ignored(self):
        other = make_room(name="Room B")
        self.assertFalse(Booking.overlapping(other.pk, self.start, self.end).exists())


class VoucherModelTest(TestCase):
    def test_get_usable(self):
        now = timezone.now()
        usable = make_voucher(code="OK")
        make_voucher(
            code="OLD",
            valid_from=now - timedelta(days=10),
            valid_to=now - timedelta(days=1),
        )
        make_voucher(code="SOON", valid_from=now + timedelta(days=1))
        Voucher.objects.filter(pk=make_voucher(code="SPENT", max_uses=2).pk).update(
            used_count=2
        )

        codes = list(Voucher.get_usable().values_list("code", flat=True))
        self.assertEqual(codes, [usable.code])

    def test_unlimited_voucher_is_never_exhausted(self):
        voucher = make_voucher(max_uses=0)
        voucher.used_count = 10_000
        self.assertFalse(voucher.is_exhausted)


class MoneyHelpersTest(TestCase):
    def test_duration_hours_keeps_fractions(self):
        start, end = slot(hours=1, minutes=30)
        self.assertEqual(duration_hours(start, end), Decimal("1.5"))

    def test_percent_discount(self):
        discount, final = apply_percent_discount(Decimal("100.0"), 20)
        self.assertEqual(discount, Decimal("20.00"))
        self.assertEqual(final, Decimal("80.00"))

    def test_full_discount(self):
        discount, final = apply_percent_discount(Decimal("42.50"), 100)
        self.assertEqual(discount, Decimal("42.50"))
        self.assertEqual(final, Decimal("0.00"))


# ============================================================
# Service Tests
# ============================================================


class WalletServiceTest(TransactionTestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        WalletService.open(self.user_id)

    def test_open_is_idempotent(self):
        WalletService.credit(self.user_id, Decimal("5.00"))
        wallet = WalletService.open(self.user_id)

        self.assertEqual(Wallet.objects.filter(user_id=self.user_id).count(), 1)
        self.assertEqual(wallet.balance, Decimal("5.00"))

    def test_credit(self):
        WalletService.credit(self.user_id, Decimal("10.00"))
        WalletService.credit(self.user_id, Decimal("2.50"))
        self.assertEqual(balance_of(self.user_id), Decimal("12.50"))

    def test_credit_missing_wallet_raises(self):
        with self.assertRaises(WalletNotFound):
            WalletService.credit(uuid.uuid4(), Decimal("10.00"))

    def test_credit_non_positive_amount_raises(self):
        with self.assertRaises(ValueError):
            WalletService.credit(self.user_id, Decimal("0"))

    def test_debit(self):
        WalletService.credit(self.user_id, Decimal("50.00"))
        WalletService.debit(self.user_id, Decimal("18.00"))
        self.assertEqual(balance_of(self.user_id), Decimal("32.00"))

    def test_debit_whole_balance(self):
        WalletService.credit(self.user_id, Decimal("18.00"))
        WalletService.debit(self.user_id, Decimal("18.00"))
        self.assertEqual(balance_of(self.user_id), Decimal("0.00"))

    def test_debit_insufficient_balance_leaves_wallet_untouched(self):
        WalletService.credit(self.user_id, Decimal("10.00"))

        with self.assertRaises(InsufficientBalance):
            WalletService.debit(self.user_id, Decimal("10.01"))

        self.assertEqual(balance_of(self.user_id), Decimal("10.00"))

    def test_debit_missing_wallet_raises_not_found(self):
        with self.assertRaises(WalletNotFound):
            WalletService.debit(uuid.uuid4(), Decimal("1.00"))


class TopupServiceTest(TransactionTestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        WalletService.open(self.user_id)

    def test_create_is_pending(self):
        topup = TopupService.create(self.user_id, Decimal("100.00"), "bank_transfer")

        self.assertEqual(topup.status, Topup.Status.PENDING)
        self.assertIsNone(topup.confirmed_at)
        # Balance should NOT change until the topup is confirmed
        self.assertEqual(balance_of(self.user_id), Decimal("0.00"))

    def test_create_without_wallet_raises(self):
        with self.assertRaises(WalletNotFound):
            TopupService.create(uuid.uuid4(), Decimal("100.00"), "cash")

    def test_create_zero_amount_raises(self):
        with self.assertRaises(ValueError):
            TopupService.create(self.user_id, Decimal("0"), "cash")

    def test_confirm_credits_wallet_and_records_transaction(self):
        topup = TopupService.create(self.user_id, Decimal("100.00"), "cash")

        confirmed = TopupService.confirm(topup.id)

        self.assertEqual(confirmed.status, Topup.Status.COMPLETED)
        self.assertIsNotNone(confirmed.confirmed_at)
        self.assertEqual(balance_of(self.user_id), Decimal("100.00"))

        tx = Transaction.for_reference(Transaction.Service.TOPUP, topup.id).get()
        self.assertEqual(tx.user_id, self.user_id)
        self.assertEqual(tx.amount, Decimal("100.00"))
        self.assertEqual(tx.status, Transaction.Status.COMPLETED)

    def test_confirm_twice_does_not_double_credit(self):
        topup = TopupService.create(self.user_id, Decimal("100.00"), "cash")
        TopupService.confirm(topup.id)

        with self.assertRaises(NotPending):
            TopupService.confirm(topup.id)

        self.assertEqual(balance_of(self.user_id), Decimal("100.00"))
        self.assertEqual(
            Transaction.for_reference(Transaction.Service.TOPUP, topup.id).count(), 1
        )

    def test_confirm_unknown_topup_raises(self):
        with self.assertRaises(TopupNotFound):
            TopupService.confirm(uuid.uuid4())

    def test_confirm_without_wallet_changes_nothing(self):
        topup = TopupService.create(self.user_id, Decimal("100.00"), "cash")
        Wallet.objects.filter(user_id=self.user_id).delete()

        with self.assertRaises(WalletNotFound):
            TopupService.confirm(topup.id)

        topup.refresh_from_db()
        self.assertEqual(topup.status, Topup.Status.PENDING)


class VoucherServiceTest(TransactionTestCase):
    def test_apply_computes_discount(self):
        make_voucher(code="TWENTY", percent=20)

        result = VoucherService.apply("TWENTY", Decimal("100.0"))

        self.assertEqual(result["discount_amount"], Decimal("20.00"))
        self.assertEqual(result["final_amount"], Decimal("80.00"))
        self.assertEqual(result["original_amount"], Decimal("100.00"))
        self.assertEqual(result["discount_percent"], 20)
        self.assertEqual(result["voucher_code"], "TWENTY")

    def test_apply_has_no_side_effect(self):
        voucher = make_voucher(code="TWENTY", percent=20, max_uses=1)
        VoucherService.apply("TWENTY", Decimal("100.0"))
        VoucherService.apply("TWENTY", Decimal("100.0"))

        voucher.refresh_from_db()
        self.assertEqual(voucher.used_count, 0)

    def test_unknown_code_raises(self):
        with self.assertRaises(InvalidVoucher):
            VoucherService.apply("NOPE", Decimal("10.00"))

    def test_expired_voucher_raises(self):
        now = timezone.now()
        make_voucher(
            code="OLD", valid_from=now - timedelta(days=5), valid_to=now - timedelta(seconds=1)
        )
        with self.assertRaises(VoucherExpired):
            VoucherService.validate("OLD")

    def test_not_yet_valid_voucher_raises(self):
        make_voucher(code="SOON", valid_from=timezone.now() + timedelta(hours=1))
        with self.assertRaises(VoucherExpired):
            VoucherService.validate("SOON")

    def test_exhausted_voucher_raises(self):
        voucher = make_voucher(code="ONCE", max_uses=1)
        Voucher.objects.filter(pk=voucher.pk).update(used_count=1)
        with self.assertRaises(VoucherExhausted):
            VoucherService.validate("ONCE")

    def test_consume_never_exceeds_max_uses(self):
        voucher = make_voucher(code="ONCE", max_uses=1)

        self.assertTrue(VoucherService.consume(voucher.pk))
        self.assertFalse(VoucherService.consume(voucher.pk))

        voucher.refresh_from_db()
        self.assertEqual(voucher.used_count, 1)

    def test_consume_unlimited(self):
        voucher = make_voucher(code="MANY", max_uses=0)
        for _ in range(3):
            self.assertTrue(VoucherService.consume(voucher.pk))
        voucher.refresh_from_db()
        self.assertEqual(voucher.used_count, 3)

    def test_create(self):
        now = timezone.now()
        voucher = VoucherService.create("NEW", 15, now, now + timedelta(days=7), max_uses=5)
        self.assertEqual(voucher.used_count, 0)
        self.assertEqual(voucher.max_uses, 5)

    def test_create_duplicate_code_raises(self):
        make_voucher(code="DUP")
        now = timezone.now()
        with self.assertRaises(VoucherCodeTaken):
            VoucherService.create("DUP", 15, now, now + timedelta(days=7))

    def test_create_inverted_window_raises(self):
        now = timezone.now()
        with self.assertRaises(InvalidVoucherWindow):
            VoucherService.create("BAD", 15, now, now - timedelta(seconds=1))

    def test_update_changes_fields_and_keeps_usage(self):
        voucher = make_voucher(code="SAVE10", percent=10, max_uses=5)
        VoucherService.consume(voucher.pk)
        VoucherService.consume(voucher.pk)

        updated = VoucherService.update(
            voucher.pk, code="SAVE30", discount_percent=30, max_uses=1
        )

        voucher.refresh_from_db()
        self.assertEqual(updated.code, "SAVE30")
        self.assertEqual(voucher.discount_percent, 30)
        self.assertEqual(voucher.used_count, 2)
        # Budget lowered below usage: the voucher is simply exhausted
        with self.assertRaises(VoucherExhausted):
            VoucherService.validate("SAVE30")

    def test_update_keeping_own_code(self):
        voucher = make_voucher(code="SAVE10")
        VoucherService.update(voucher.pk, code="SAVE10", discount_percent=20)
        self.assertEqual(Voucher.objects.get(pk=voucher.pk).discount_percent, 20)

    def test_update_window_is_checked_against_stored_bound(self):
        voucher = make_voucher(code="SAVE10")

        with self.assertRaises(InvalidVoucherWindow):
            VoucherService.update(
                voucher.pk, valid_to=voucher.valid_from - timedelta(seconds=1)
            )

        self.assertEqual(Voucher.objects.get(pk=voucher.pk).valid_to, voucher.valid_to)

    def test_update_to_taken_code_raises(self):
        make_voucher(code="TAKEN")
        voucher = make_voucher(code="MINE")

        with self.assertRaises(VoucherCodeTaken):
            VoucherService.update(voucher.pk, code="TAKEN")

        self.assertEqual(Voucher.objects.get(pk=voucher.pk).code, "MINE")

    def test_update_unknown_voucher_raises(self):
        with self.assertRaises(VoucherNotFound):
            VoucherService.update(uuid.uuid4(), discount_percent=20)

    def test_update_rejects_used_count(self):
        voucher = make_voucher(code="SAVE10")
        with self.assertRaises(ValueError):
            VoucherService.update(voucher.pk, used_count=0)

    def test_delete_detaches_bookings(self):
        customer_id = uuid.uuid4()
        fund_wallet(customer_id, "50.00")
        voucher = make_voucher(code="SAVE10", percent=10)
        start, end = slot(hours=2)
        booking = BookingService.create(
            customer_id, make_room().pk, start, end, voucher_code="SAVE10"
        )

        VoucherService.delete(voucher.pk)

        booking.refresh_from_db()
        self.assertFalse(Voucher.objects.filter(pk=voucher.pk).exists())
        self.assertIsNone(booking.voucher)
        self.assertEqual(booking.total_price, Decimal("18.00"))

    def test_delete_unknown_voucher_raises(self):
        with self.assertRaises(VoucherNotFound):
            VoucherService.delete(uuid.uuid4())


class CreateBookingServiceTest(TransactionTestCase):
    def setUp(self):
        self.customer_id = uuid.uuid4()
        self.room = make_room(price="10.00")
        fund_wallet(self.customer_id, "50.00")

    def assert_no_overlapping_bookings(self, room):
        live = list(
            Booking.objects.filter(room=room, status=Booking.Status.BOOKED).order_by(
                "start_time"
            )
        )
        for a in live:
            for b in live:
                if a.pk != b.pk:
                    overlaps = a.start_time < b.end_time and b.start_time < a.end_time
                    self.assertFalse(overlaps, f"{a} overlaps {b}")

    def test_voucher_scenario(self):
        make_voucher(code="SAVE10", percent=10)
        start, end = slot(hour=9, hours=2)

        booking = BookingService.create(
            self.customer_id, self.room.pk, start, end, voucher_code="SAVE10"
        )

        self.assertEqual(booking.total_price, Decimal("18.00"))
        self.assertEqual(booking.status, Booking.Status.BOOKED)
        self.assertEqual(booking.voucher.code, "SAVE10")
        self.assertEqual(balance_of(self.customer_id), Decimal("32.00"))
        self.assertEqual(Voucher.objects.get(code="SAVE10").used_count, 1)

    def test_charge_is_recorded_in_ledger(self):
        start, end = slot(hour=9, hours=2)

        booking = BookingService.create(self.customer_id, self.room.pk, start, end)

        self.assertEqual(booking.total_price, Decimal("20.00"))
        self.assertIsNone(booking.voucher)
        self.assertEqual(balance_of(self.customer_id), Decimal("30.00"))

        tx = Transaction.for_reference(Transaction.Service.BOOKING, booking.id).get()
        self.assertEqual(tx.amount, Decimal("20.00"))
        self.assertEqual(tx.user_id, self.customer_id)
        self.assertEqual(tx.status, Transaction.Status.COMPLETED)

    def test_fractional_hours_are_priced(self):
        start, end = slot(hour=9, hours=1, minutes=30)
        booking = BookingService.create(self.customer_id, self.room.pk, start, end)
        self.assertEqual(booking.total_price, Decimal("15.00"))

    def test_end_before_start_raises(self):
        start, end = slot()
        with self.assertRaises(InvalidTimeRange):
            BookingService.create(self.customer_id, self.room.pk, end, start)

    def test_zero_length_raises(self):
        start, _ = slot()
        with self.assertRaises(InvalidTimeRange):
            BookingService.create(self.customer_id, self.room.pk, start, start)

    def test_time_range_is_checked_before_anything_else(self):
        past = timezone.now() - timedelta(days=1)
        with self.assertRaises(InvalidTimeRange):
            BookingService.create(self.customer_id, uuid.uuid4(), past, past)

    def test_past_start_raises(self):
        start = timezone.now() - timedelta(minutes=5)
        with self.assertRaises(PastBooking):
            BookingService.create(
                self.customer_id, self.room.pk, start, start + timedelta(hours=1)
            )

    def test_unknown_room_raises(self):
        start, end = slot()
        with self.assertRaises(RoomNotFound):
            BookingService.create(self.customer_id, uuid.uuid4(), start, end)

    def test_unavailable_room_raises(self):
        room = make_room(available=False, name="Closed")
        start, end = slot()
        with self.assertRaises(RoomUnavailable):
            BookingService.create(self.customer_id, room.pk, start, end)

    def test_overlapping_slot_raises(self):
        start, end = slot(hour=9, hours=2)
        BookingService.create(self.customer_id, self.room.pk, start, end)

        with self.assertRaises(SlotConflict):
            BookingService.create(
                self.customer_id,
                self.room.pk,
                start + timedelta(hours=1),
                end + timedelta(hours=1),
            )

        self.assertEqual(balance_of(self.customer_id), Decimal("30.00"))

    def test_back_to_back_slots_are_allowed(self):
        start, end = slot(hour=9, hours=1)
        BookingService.create(self.customer_id, self.room.pk, start, end)
        BookingService.create(
            self.customer_id, self.room.pk, end, end + timedelta(hours=1)
        )

        self.assertEqual(Booking.objects.filter(room=self.room).count(), 2)
        self.assert_no_overlapping_bookings(self.room)

    def test_cancelled_slot_can_be_rebooked(self):
        start, end = slot(hour=9, hours=1)
        first = BookingService.create(self.customer_id, self.room.pk, start, end)
        BookingService.cancel(self.customer_id, first.id)

        BookingService.create(self.customer_id, self.room.pk, start, end)
        self.assert_no_overlapping_bookings(self.room)

    def test_repeated_attempts_never_double_book(self):
        fund_wallet(self.customer_id, "500.00")
        base, _ = slot(hour=8, hours=1)
        for offset_minutes in (0, 30, 60, 90, 45, 120, 15):
            start = base + timedelta(minutes=offset_minutes)
            try:
                BookingService.create(
                    self.customer_id, self.room.pk, start, start + timedelta(hours=1)
                )
            except SlotConflict:
                pass

        self.assertEqual(Booking.objects.filter(room=self.room).count(), 3)
        self.assert_no_overlapping_bookings(self.room)

    def test_invalid_voucher_raises_and_charges_nothing(self):
        start, end = slot()
        with self.assertRaises(InvalidVoucher):
            BookingService.create(
                self.customer_id, self.room.pk, start, end, voucher_code="NOPE"
            )

        self.assertFalse(Booking.objects.exists())
        self.assertEqual(balance_of(self.customer_id), Decimal("50.00"))

    def test_exhausted_voucher_raises(self):
        voucher = make_voucher(code="ONCE", max_uses=1)
        Voucher.objects.filter(pk=voucher.pk).update(used_count=1)
        start, end = slot()

        with self.assertRaises(VoucherExhausted):
            BookingService.create(
                self.customer_id, self.room.pk, start, end, voucher_code="ONCE"
            )

    def test_insufficient_balance_raises_and_keeps_voucher_unused(self):
        make_voucher(code="SAVE10", percent=10)
        start, end = slot(hours=6)  # 60.00, 54.00 after discount

        with self.assertRaises(InsufficientBalance):
            BookingService.create(
                self.customer_id, self.room.pk, start, end, voucher_code="SAVE10"
            )

        self.assertFalse(Booking.objects.exists())
        self.assertEqual(Voucher.objects.get(code="SAVE10").used_count, 0)
        self.assertEqual(balance_of(self.customer_id), Decimal("50.00"))

    def test_missing_wallet_raises(self):
        start, end = slot()
        with self.assertRaises(WalletNotFound):
            BookingService.create(uuid.uuid4(), self.room.pk, start, end)

    def test_free_booking_still_recorded(self):
        make_voucher(code="FREE", percent=100)
        start, end = slot()

        booking = BookingService.create(
            self.customer_id, self.room.pk, start, end, voucher_code="FREE"
        )

        self.assertEqual(booking.total_price, Decimal("0.00"))
        self.assertEqual(balance_of(self.customer_id), Decimal("50.00"))
        self.assertTrue(
            Transaction.for_reference(Transaction.Service.BOOKING, booking.id).exists()
        )

    @patch("cafe.services.booking.WalletService.debit")
    def test_lost_debit_race_fails_payment_and_rolls_back(self, mock_debit):
        mock_debit.side_effect = InsufficientBalance()
        make_voucher(code="SAVE10", percent=10)
        start, end = slot()

        with self.assertRaises(PaymentFailed):
            BookingService.create(
                self.customer_id, self.room.pk, start, end, voucher_code="SAVE10"
            )

        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(Voucher.objects.get(code="SAVE10").used_count, 0)

    def test_ledger_failure_does_not_fail_booking(self):
        start, end = slot(hours=2)

        with patch.object(
            Transaction.objects, "create", side_effect=DatabaseError("ledger down")
        ):
            booking = BookingService.create(self.customer_id, self.room.pk, start, end)

        self.assertTrue(Booking.objects.filter(pk=booking.pk).exists())
        self.assertEqual(balance_of(self.customer_id), Decimal("30.00"))
        self.assertFalse(Transaction.objects.exists())

    @patch("cafe.services.booking.VoucherService.consume")
    def test_voucher_usage_failure_does_not_fail_booking(self, mock_consume):
        mock_consume.side_effect = DatabaseError("counter down")
        make_voucher(code="SAVE10", percent=10)
        start, end = slot(hours=2)

        booking = BookingService.create(
            self.customer_id, self.room.pk, start, end, voucher_code="SAVE10"
        )

        self.assertEqual(booking.total_price, Decimal("18.00"))
        self.assertEqual(balance_of(self.customer_id), Decimal("32.00"))

    def test_balance_spent_between_check_and_debit_fails_payment(self):
        real_create = Booking.objects.create

        def spend_then_create(**kwargs):
            # Another charge lands after the balance check passed
            WalletService.debit(self.customer_id, Decimal("45.00"))
            return real_create(**kwargs)

        start, end = slot(hours=2)
        with patch.object(Booking.objects, "create", side_effect=spend_then_create):
            with self.assertRaises(PaymentFailed):
                BookingService.create(self.customer_id, self.room.pk, start, end)

        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Transaction.objects.exists())
        # The interleaved charge ran on the same connection, so it rolled back too
        self.assertEqual(balance_of(self.customer_id), Decimal("50.00"))


class CancelBookingServiceTest(TransactionTestCase):
    def setUp(self):
        self.customer_id = uuid.uuid4()
        self.room = make_room(price="10.00")
        fund_wallet(self.customer_id, "100.00")
        start, end = slot(days=3, hour=9, hours=2)
        self.booking = BookingService.create(self.customer_id, self.room.pk, start, end)

    def test_cancel_refunds_and_records(self):
        self.assertEqual(balance_of(self.customer_id), Decimal("80.00"))

        booking = BookingService.cancel(self.customer_id, self.booking.id)

        self.assertEqual(booking.status, Booking.Status.CANCELLED)
        self.assertEqual(balance_of(self.customer_id), Decimal("100.00"))

        refund = Transaction.for_reference(
            Transaction.Service.BOOKING, self.booking.id
        ).get(status=Transaction.Status.REFUNDED)
        self.assertEqual(refund.amount, Decimal("-20.00"))
        self.assertEqual(refund.user_id, self.customer_id)

    def test_unknown_booking_raises(self):
        with self.assertRaises(BookingNotFound):
            BookingService.cancel(self.customer_id, uuid.uuid4())

    def test_other_customer_cannot_cancel(self):
        with self.assertRaises(Unauthorized):
            BookingService.cancel(uuid.uuid4(), self.booking.id)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.BOOKED)

    def test_cancel_twice_refunds_once(self):
        BookingService.cancel(self.customer_id, self.booking.id)

        with self.assertRaises(AlreadyCancelled):
            BookingService.cancel(self.customer_id, self.booking.id)

        self.assertEqual(balance_of(self.customer_id), Decimal("100.00"))

    def test_cancel_exactly_at_window_boundary_succeeds(self):
        boundary = self.booking.start_time - timedelta(hours=24)
        with patch("cafe.services.booking.timezone.now", return_value=boundary):
            booking = BookingService.cancel(self.customer_id, self.booking.id)

        self.assertEqual(booking.status, Booking.Status.CANCELLED)

    def test_cancel_inside_window_raises(self):
        just_late = self.booking.start_time - timedelta(hours=24) + timedelta(seconds=1)
        with patch("cafe.services.booking.timezone.now", return_value=just_late):
            with self.assertRaises(TooLateToCancel):
                BookingService.cancel(self.customer_id, self.booking.id)

        self.assertEqual(balance_of(self.customer_id), Decimal("80.00"))

    def test_refund_failure_keeps_cancellation(self):
        Wallet.objects.filter(user_id=self.customer_id).delete()

        with self.assertRaises(RefundFailed):
            BookingService.cancel(self.customer_id, self.booking.id)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)


@skipUnless(
    connection.vendor == "postgresql", "needs row locks across real connections"
)
class ConcurrentSettlementTest(TransactionTestCase):
    """Each call runs on its own thread, and so on its own database connection."""

    def run_concurrently(self, *calls):
        barrier = threading.Barrier(len(calls))
        outcomes = [None] * len(calls)

        def worker(index, call):
            try:
                barrier.wait()
                outcomes[index] = call()
            except Exception as exc:
                outcomes[index] = exc
            finally:
                connections.close_all()

        threads = [
            threading.Thread(target=worker, args=(index, call))
            for index, call in enumerate(calls)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return outcomes

    def test_concurrent_debits_never_overdraw(self):
        user_id = uuid.uuid4()
        fund_wallet(user_id, "30.00")

        outcomes = self.run_concurrently(
            lambda: WalletService.debit(user_id, Decimal("20.00")),
            lambda: WalletService.debit(user_id, Decimal("20.00")),
        )

        failures = [o for o in outcomes if isinstance(o, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InsufficientBalance)
        self.assertEqual(balance_of(user_id), Decimal("10.00"))

    def test_concurrent_bookings_of_one_slot(self):
        room = make_room(price="10.00")
        first, second = uuid.uuid4(), uuid.uuid4()
        fund_wallet(first, "50.00")
        fund_wallet(second, "50.00")
        start, end = slot(hours=2)

        outcomes = self.run_concurrently(
            lambda: BookingService.create(first, room.pk, start, end),
            lambda: BookingService.create(second, room.pk, start, end),
        )

        conflicts = [o for o in outcomes if isinstance(o, SlotConflict)]
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(Booking.objects.filter(room=room).count(), 1)
        self.assertEqual(
            balance_of(first) + balance_of(second), Decimal("80.00")
        )

    def test_concurrent_bookings_share_one_wallet(self):
        customer_id = uuid.uuid4()
        fund_wallet(customer_id, "30.00")
        start, end = slot(hours=2)
        rooms = [make_room(name="Room A"), make_room(name="Room B")]

        outcomes = self.run_concurrently(
            *[
                (lambda room=room: BookingService.create(customer_id, room.pk, start, end))
                for room in rooms
            ]
        )

        failures = [o for o in outcomes if isinstance(o, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], (InsufficientBalance, PaymentFailed))
        self.assertEqual(Booking.objects.count(), 1)
        self.assertEqual(balance_of(customer_id), Decimal("10.00"))


# ============================================================
# API Tests
# ============================================================


class APITestMixin:
    def authenticate(self, user_id, role="customer"):
        self.client.credentials(HTTP_X_USER_ID=str(user_id), HTTP_X_USER_ROLE=role)


class AuthenticationAPITest(APITestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_missing_identity_is_rejected(self):
        response = self.client.get("/api/v1/wallet/")
        self.assertEqual(response.status_code, 401)

    def test_malformed_user_id_is_rejected(self):
        self.client.credentials(HTTP_X_USER_ID="not-a-uuid")
        response = self.client.get("/api/v1/wallet/")
        self.assertEqual(response.status_code, 401)

    def test_unknown_role_is_rejected(self):
        self.authenticate(uuid.uuid4(), role="superuser")
        response = self.client.get("/api/v1/wallet/")
        self.assertEqual(response.status_code, 401)

    def test_request_id_is_echoed(self):
        self.authenticate(uuid.uuid4())
        response = self.client.get("/api/v1/wallet/", HTTP_X_REQUEST_ID="req-123")
        self.assertEqual(response["X-Request-ID"], "req-123")

    def test_error_response_log_carries_request_id(self):
        self.authenticate(uuid.uuid4())

        with self.assertLogs("django.request", level="WARNING") as logs:
            response = self.client.delete("/api/v1/wallet/", HTTP_X_REQUEST_ID="req-405")

        self.assertEqual(response.status_code, 405)
        record = logs.records[-1]
        RequestIdFilter().filter(record)
        self.assertEqual(record.request_id, "req-405")

    def test_request_id_filter_outside_requests(self):
        record = logging.LogRecord("cafe", logging.INFO, __file__, 1, "msg", (), None)
        RequestIdFilter().filter(record)
        self.assertEqual(record.request_id, "-")


class WalletAPITest(APITestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_id = uuid.uuid4()
        self.authenticate(self.user_id)

    def test_get_wallet_before_opening(self):
        response = self.client.get("/api/v1/wallet/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "wallet_not_found")

    def test_open_and_get_wallet(self):
        response = self.client.post("/api/v1/wallet/", format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["user_id"], str(self.user_id))
        self.assertEqual(response.data["balance"], "0.00")

        response = self.client.get("/api/v1/wallet/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["balance"], "0.00")


class TopupAPITest(APITestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_id = uuid.uuid4()
        self.admin_id = uuid.uuid4()
        WalletService.open(self.user_id)
        self.authenticate(self.user_id)

    def create_topup(self, amount="100.00"):
        return self.client.post(
            "/api/v1/wallet/topups/",
            {"amount": amount, "method": "bank_transfer"},
            format="json",
        )

    def test_create_topup(self):
        response = self.create_topup()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["amount"], "100.00")

    def test_create_topup_invalid_amount(self):
        self.assertEqual(self.create_topup(amount="0").status_code, 400)
        self.assertEqual(self.create_topup(amount="-5").status_code, 400)

    def test_create_topup_missing_method(self):
        response = self.client.post(
            "/api/v1/wallet/topups/", {"amount": "10.00"}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_customer_cannot_confirm(self):
        topup_id = self.create_topup().data["id"]
        response = self.client.post(
            "/api/v1/wallet/topups/confirm/", {"topup_id": topup_id}, format="json"
        )
        self.assertEqual(response.status_code, 403)

    def test_admin_confirms_once(self):
        topup_id = self.create_topup().data["id"]
        self.authenticate(self.admin_id, role="admin")

        response = self.client.post(
            "/api/v1/wallet/topups/confirm/", {"topup_id": topup_id}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["topup"]["status"], "completed")
        self.assertEqual(response.data["wallet"]["balance"], "100.00")

        response = self.client.post(
            "/api/v1/wallet/topups/confirm/", {"topup_id": topup_id}, format="json"
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "not_pending")
        self.assertEqual(balance_of(self.user_id), Decimal("100.00"))

    def test_confirm_unknown_topup(self):
        self.authenticate(self.admin_id, role="admin")
        response = self.client.post(
            "/api/v1/wallet/topups/confirm/",
            {"topup_id": str(uuid.uuid4())},
            format="json",
        )
        self.assertEqual(response.status_code, 404)

    def test_topup_history(self):
        self.create_topup("10.00")
        self.create_topup("20.00")
        WalletService.open(self.admin_id)
        TopupService.create(self.admin_id, Decimal("1.00"), "cash")

        response = self.client.get("/api/v1/wallet/topups/history/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)


class BookingAPITest(APITestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.customer_id = uuid.uuid4()
        self.room = make_room(price="10.00", name="Espresso Room")
        fund_wallet(self.customer_id, "50.00")
        make_voucher(code="SAVE10", percent=10)
        self.authenticate(self.customer_id)

    def book(self, start, end, **extra):
        payload = {
            "room_id": str(self.room.pk),
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            **extra,
        }
        return self.client.post("/api/v1/bookings/", payload, format="json")

    def test_create_booking_with_voucher(self):
        start, end = slot(hour=9, hours=2)
        response = self.book(start, end, voucher_code="SAVE10")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["room_name"], "Espresso Room")
        self.assertEqual(response.data["total_price"], "18.00")
        self.assertEqual(response.data["voucher_code"], "SAVE10")
        self.assertEqual(response.data["status"], "booked")
        self.assertEqual(balance_of(self.customer_id), Decimal("32.00"))

    def test_create_booking_without_voucher(self):
        start, end = slot(hour=9, hours=2)
        response = self.book(start, end, voucher_code="")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["total_price"], "20.00")
        self.assertIsNone(response.data["voucher_code"])

    def test_create_booking_invalid_range(self):
        start, end = slot()
        response = self.book(end, start)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_time_range")

    def test_create_booking_slot_conflict(self):
        start, end = slot(hour=9, hours=2)
        self.book(start, end)
        response = self.book(start + timedelta(minutes=30), end)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "slot_conflict")

    def test_create_booking_insufficient_balance(self):
        start, end = slot(hours=8)
        response = self.book(start, end)
        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.data["code"], "insufficient_balance")

    def test_create_booking_missing_fields(self):
        response = self.client.post(
            "/api/v1/bookings/", {"room_id": str(self.room.pk)}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_cancel_booking(self):
        start, end = slot(hour=9, hours=2)
        booking_id = self.book(start, end).data["id"]

        response = self.client.post(f"/api/v1/bookings/{booking_id}/cancel/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "cancelled")
        self.assertEqual(balance_of(self.customer_id), Decimal("50.00"))

    def test_cancel_someone_elses_booking(self):
        start, end = slot(hour=9, hours=2)
        booking_id = self.book(start, end).data["id"]

        self.authenticate(uuid.uuid4())
        response = self.client.post(f"/api/v1/bookings/{booking_id}/cancel/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "unauthorized")

    def test_booking_detail_visibility(self):
        start, end = slot(hour=9, hours=2)
        booking_id = self.book(start, end).data["id"]

        response = self.client.get(f"/api/v1/bookings/{booking_id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["id"], booking_id)

        self.authenticate(uuid.uuid4())
        self.assertEqual(
            self.client.get(f"/api/v1/bookings/{booking_id}/").status_code, 403
        )

        self.authenticate(uuid.uuid4(), role="admin")
        self.assertEqual(
            self.client.get(f"/api/v1/bookings/{booking_id}/").status_code, 200
        )

    def test_booking_detail_not_found(self):
        response = self.client.get(f"/api/v1/bookings/{uuid.uuid4()}/")
        self.assertEqual(response.status_code, 404)

    def test_my_bookings(self):
        first_start, first_end = slot(hour=9, hours=1)
        self.book(first_start, first_end)
        self.book(first_end, first_end + timedelta(hours=1))

        response = self.client.get("/api/v1/bookings/mine/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)

    def test_room_bookings_ordered_by_start(self):
        start, end = slot(hour=9, hours=1)
        self.book(end, end + timedelta(hours=1))
        self.book(start, end)

        response = self.client.get(f"/api/v1/rooms/{self.room.pk}/bookings/")
        self.assertEqual(response.status_code, 200)
        starts = [item["start_time"] for item in response.data]
        self.assertEqual(starts, sorted(starts))

    def test_room_bookings_unknown_room(self):
        response = self.client.get(f"/api/v1/rooms/{uuid.uuid4()}/bookings/")
        self.assertEqual(response.status_code, 404)


class VoucherAPITest(APITestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.authenticate(uuid.uuid4())

    def voucher_payload(self, code="SPRING"):
        now = timezone.now()
        return {
            "code": code,
            "discount_percent": 25,
            "max_uses": 10,
            "valid_from": (now - timedelta(days=1)).isoformat(),
            "valid_to": (now + timedelta(days=30)).isoformat(),
        }

    def test_apply_voucher(self):
        make_voucher(code="TWENTY", percent=20)
        response = self.client.post(
            "/api/v1/vouchers/apply/",
            {"voucher_code": "TWENTY", "amount": "100.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["discount_amount"], "20.00")
        self.assertEqual(response.data["final_amount"], "80.00")

    def test_apply_unknown_voucher(self):
        response = self.client.post(
            "/api/v1/vouchers/apply/",
            {"voucher_code": "NOPE", "amount": "100.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "invalid_voucher")

    def test_customer_cannot_create(self):
        response = self.client.post(
            "/api/v1/vouchers/", self.voucher_payload(), format="json"
        )
        self.assertEqual(response.status_code, 403)

    def test_admin_creates_voucher(self):
        self.authenticate(uuid.uuid4(), role="admin")

        response = self.client.post(
            "/api/v1/vouchers/", self.voucher_payload(), format="json"
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["used_count"], 0)

        response = self.client.post(
            "/api/v1/vouchers/", self.voucher_payload(), format="json"
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "voucher_code_taken")

    def test_create_rejects_out_of_range_percent(self):
        self.authenticate(uuid.uuid4(), role="admin")
        payload = self.voucher_payload()
        payload["discount_percent"] = 101
        response = self.client.post("/api/v1/vouchers/", payload, format="json")
        self.assertEqual(response.status_code, 400)

    def test_create_rejects_inverted_window(self):
        self.authenticate(uuid.uuid4(), role="admin")
        payload = self.voucher_payload()
        payload["valid_from"], payload["valid_to"] = payload["valid_to"], payload["valid_from"]
        response = self.client.post("/api/v1/vouchers/", payload, format="json")
        self.assertEqual(response.status_code, 400)

    def test_valid_vouchers(self):
        make_voucher(code="LIVE")
        make_voucher(
            code="OLD",
            valid_from=timezone.now() - timedelta(days=5),
            valid_to=timezone.now() - timedelta(days=1),
        )
        response = self.client.get("/api/v1/vouchers/valid/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([v["code"] for v in response.data], ["LIVE"])

    def test_voucher_detail(self):
        voucher = make_voucher(code="LIVE")
        response = self.client.get(f"/api/v1/vouchers/{voucher.pk}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["code"], "LIVE")

        response = self.client.get(f"/api/v1/vouchers/{uuid.uuid4()}/")
        self.assertEqual(response.status_code, 404)

    def test_admin_updates_voucher(self):
        voucher = make_voucher(code="LIVE", percent=10)
        self.authenticate(uuid.uuid4(), role="admin")

        response = self.client.put(
            f"/api/v1/vouchers/{voucher.pk}/", {"discount_percent": 30}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["discount_percent"], 30)
        self.assertEqual(response.data["code"], "LIVE")
        self.assertEqual(Voucher.objects.get(pk=voucher.pk).discount_percent, 30)

    def test_update_conflicts(self):
        make_voucher(code="TAKEN")
        voucher = make_voucher(code="LIVE")
        self.authenticate(uuid.uuid4(), role="admin")
        url = f"/api/v1/vouchers/{voucher.pk}/"

        response = self.client.put(url, {"code": "TAKEN"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "voucher_code_taken")

        earlier = (voucher.valid_from - timedelta(days=1)).isoformat()
        response = self.client.put(url, {"valid_to": earlier}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "invalid_voucher_window")

        response = self.client.put(url, {}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_update_unknown_voucher(self):
        self.authenticate(uuid.uuid4(), role="admin")
        response = self.client.put(
            f"/api/v1/vouchers/{uuid.uuid4()}/", {"discount_percent": 30}, format="json"
        )
        self.assertEqual(response.status_code, 404)

    def test_admin_deletes_voucher(self):
        voucher = make_voucher(code="LIVE")
        self.authenticate(uuid.uuid4(), role="admin")

        response = self.client.delete(f"/api/v1/vouchers/{voucher.pk}/")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Voucher.objects.filter(pk=voucher.pk).exists())

        response = self.client.delete(f"/api/v1/vouchers/{voucher.pk}/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "voucher_not_found")

    def test_customer_cannot_update_or_delete(self):
        voucher = make_voucher(code="LIVE", percent=10)
        url = f"/api/v1/vouchers/{voucher.pk}/"

        self.assertEqual(
            self.client.put(url, {"discount_percent": 30}, format="json").status_code,
            403,
        )
        self.assertEqual(self.client.delete(url).status_code, 403)

        voucher.refresh_from_db()
        self.assertEqual(voucher.discount_percent, 10)
        # Reading stays open to every caller
        self.assertEqual(self.client.get(url).status_code, 200)


class TransactionAPITest(APITestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_id = uuid.uuid4()
        WalletService.open(self.user_id)
        topup = TopupService.create(self.user_id, Decimal("100.00"), "cash")
        TopupService.confirm(topup.id)

        room = make_room(price="10.00")
        start, end = slot(hour=9, hours=2)
        booking = BookingService.create(self.user_id, room.pk, start, end)
        BookingService.cancel(self.user_id, booking.id)

        # Someone else's ledger must stay invisible
        other = uuid.uuid4()
        WalletService.open(other)
        TopupService.confirm(TopupService.create(other, Decimal("5.00"), "cash").id)

        self.authenticate(self.user_id)

    def test_list_transactions(self):
        response = self.client.get("/api/v1/wallet/transactions/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 3)  # topup + charge + refund

    def test_filter_by_status(self):
        response = self.client.get("/api/v1/wallet/transactions/?status=refunded")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["amount"], "-20.00")

    def test_filter_by_service(self):
        response = self.client.get("/api/v1/wallet/transactions/?service=1")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)

    def test_transaction_detail(self):
        tx = Transaction.objects.filter(user_id=self.user_id).first()
        response = self.client.get(f"/api/v1/wallet/transactions/{tx.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["id"], str(tx.id))

    def test_other_users_transaction_is_hidden(self):
        tx = Transaction.objects.exclude(user_id=self.user_id).first()
        response = self.client.get(f"/api/v1/wallet/transactions/{tx.id}/")
        self.assertEqual(response.status_code, 404)


# ============================================================
# Celery Task Tests
# ============================================================


class ReconciliationTaskTest(TransactionTestCase):
    def setUp(self):
        self.customer_id = uuid.uuid4()
        self.room = make_room(price="10.00")
        fund_wallet(self.customer_id, "100.00")

    def test_clean_ledger(self):
        start, end = slot(hour=9, hours=1)
        booking = BookingService.create(self.customer_id, self.room.pk, start, end)
        BookingService.cancel(self.customer_id, booking.id)

        from cafe.tasks import report_unsettled_bookings

        result = report_unsettled_bookings.apply()
        self.assertEqual(result.get(), {"uncharged": 0, "unrefunded": 0})

    def test_reports_missing_entries(self):
        start, end = slot(hour=9, hours=1)
        with patch.object(
            Transaction.objects, "create", side_effect=DatabaseError("ledger down")
        ):
            booking = BookingService.create(self.customer_id, self.room.pk, start, end)
            BookingService.cancel(self.customer_id, booking.id)

        from cafe.tasks import report_unsettled_bookings

        result = report_unsettled_bookings.apply()
        self.assertEqual(result.get(), {"uncharged": 1, "unrefunded": 1})
