import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from cafe.exceptions import (
    InvalidVoucher,
    InvalidVoucherWindow,
    VoucherCodeTaken,
    VoucherExhausted,
    VoucherExpired,
    VoucherNotFound,
)
from cafe.models import Voucher
from cafe.utils import apply_percent_discount, to_money

logger = logging.getLogger(__name__)


class VoucherService:
    """Voucher management, validation and discount calculation."""

    EDITABLE_FIELDS = frozenset(
        {"code", "discount_percent", "max_uses", "service", "valid_from", "valid_to"}
    )

    @staticmethod
    def create(
        code: str,
        discount_percent: int,
        valid_from,
        valid_to,
        max_uses: int = 0,
        service=None,
    ) -> Voucher:
        """
        Raises:
            InvalidVoucherWindow: If valid_to is before valid_from.
            VoucherCodeTaken: If another voucher already uses the code.
        """
        if valid_to < valid_from:
            raise InvalidVoucherWindow()

        if Voucher.objects.filter(code=code).exists():
            raise VoucherCodeTaken()

        try:
            with transaction.atomic():
                voucher = Voucher.objects.create(
                    code=code,
                    discount_percent=discount_percent,
                    max_uses=max_uses,
                    service=service,
                    valid_from=valid_from,
                    valid_to=valid_to,
                )
        except IntegrityError:
            # Lost a race with a concurrent create of the same code.
            raise VoucherCodeTaken()

        logger.info(
            "Voucher created: code=%s percent=%d max_uses=%d",
            code,
            discount_percent,
            max_uses,
        )
        return voucher

    @staticmethod
    def get(voucher_id) -> Voucher:
        try:
            return Voucher.objects.get(pk=voucher_id)
        except Voucher.DoesNotExist:
            raise VoucherNotFound()

    @staticmethod
    @transaction.atomic
    def update(voucher_id, **fields) -> Voucher:
        """
        Change the editable attributes of a voucher.

        Accepts any of code, discount_percent, max_uses, service, valid_from
        and valid_to. used_count is not editable; lowering max_uses below it
        simply leaves the voucher exhausted.

        Raises:
            VoucherNotFound: If no voucher has this id.
            InvalidVoucherWindow: If the resulting valid_to is before valid_from.
            VoucherCodeTaken: If another voucher already uses the new code.
        """
        voucher = Voucher.objects.select_for_update().filter(pk=voucher_id).first()
        if voucher is None:
            raise VoucherNotFound()

        unknown = set(fields) - VoucherService.EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update voucher fields: {sorted(unknown)}")

        valid_from = fields.get("valid_from", voucher.valid_from)
        valid_to = fields.get("valid_to", voucher.valid_to)
        if valid_to < valid_from:
            raise InvalidVoucherWindow()

        code = fields.get("code", voucher.code)
        if (
            code != voucher.code
            and Voucher.objects.filter(code=code).exclude(pk=voucher.pk).exists()
        ):
            raise VoucherCodeTaken()

        for name, value in fields.items():
            setattr(voucher, name, value)

        try:
            with transaction.atomic():
                voucher.save(update_fields=[*fields, "updated_at"])
        except IntegrityError:
            raise VoucherCodeTaken()

        logger.info("Voucher updated: voucher=%s fields=%s", voucher.pk, sorted(fields))
        return voucher

    @staticmethod
    def delete(voucher_id) -> None:
        """
        Remove a voucher. Bookings that used it keep their price and lose
        the reference.

        Raises:
            VoucherNotFound: If no voucher has this id.
        """
        deleted, _ = Voucher.objects.filter(pk=voucher_id).delete()
        if not deleted:
            raise VoucherNotFound()
        logger.info("Voucher deleted: voucher=%s", voucher_id)

    @staticmethod
    def validate(code: str, now=None) -> Voucher:
        """
        Look up a voucher by code and check that it can be used right now.

        Raises:
            InvalidVoucher: If no voucher has this code.
            VoucherExpired: If `now` is outside [valid_from, valid_to].
            VoucherExhausted: If the usage budget is spent.
        """
        now = now or timezone.now()

        voucher = Voucher.objects.filter(code=code).first()
        if voucher is None:
            raise InvalidVoucher()

        if not voucher.is_active_at(now):
            raise VoucherExpired()

        if voucher.is_exhausted:
            raise VoucherExhausted()

        return voucher

    @staticmethod
    def apply(code: str, amount: Decimal) -> dict:
        """
        Price `amount` with the voucher, without consuming a use.

        Returns:
            dict with original_amount, discount_amount, final_amount,
            discount_percent and voucher_code.
        """
        voucher = VoucherService.validate(code)
        discount, final = apply_percent_discount(amount, voucher.discount_percent)
        return {
            "original_amount": to_money(amount),
            "discount_amount": discount,
            "final_amount": final,
            "discount_percent": voucher.discount_percent,
            "voucher_code": voucher.code,
        }

    @staticmethod
    def consume(voucher_id) -> bool:
        """
        Count one use of the voucher.

        The increment carries the usage-budget guard in its WHERE clause, so
        concurrent redemptions can never push used_count past max_uses.
        Returns False when the guard rejected the increment.
        """
        updated = (
            Voucher.objects.filter(pk=voucher_id)
            .filter(Q(max_uses=0) | Q(used_count__lt=F("max_uses")))
            .update(used_count=F("used_count") + 1)
        )
        return bool(updated)
