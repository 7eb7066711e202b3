from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from cafe.models.base import BaseModel
from cafe.models.transaction import Transaction


class Voucher(BaseModel):
    """
    Percentage discount code with a validity window and a usage budget.

    A `max_uses` of 0 means the voucher can be used any number of times.
    `used_count` only ever grows, through VoucherService.consume().
    """

    code = models.CharField(max_length=64, unique=True)
    discount_percent = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(100)]
    )
    max_uses = models.PositiveIntegerField(default=0)
    used_count = models.PositiveIntegerField(default=0)
    service = models.PositiveSmallIntegerField(
        choices=Transaction.Service.choices,
        null=True,
        blank=True,
        help_text="Service the voucher is meant for; empty means any.",
    )
    valid_from = models.DateTimeField()
    valid_to = models.DateTimeField()

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=Q(valid_to__gte=F("valid_from")),
                name="voucher_valid_window",
            ),
            models.CheckConstraint(
                condition=Q(discount_percent__gte=1) & Q(discount_percent__lte=100),
                name="voucher_discount_percent_range",
            ),
        ]

    def __str__(self):
        return f"Voucher {self.code} (-{self.discount_percent}%)"

    @property
    def is_exhausted(self):
        return self.max_uses > 0 and self.used_count >= self.max_uses

    def is_active_at(self, moment):
        return self.valid_from <= moment <= self.valid_to

    @classmethod
    def get_usable(cls):
        """Return vouchers that are inside their window and still have uses left."""
        now = timezone.now()
        return cls.objects.filter(
            Q(max_uses=0) | Q(used_count__lt=F("max_uses")),
            valid_from__lte=now,
            valid_to__gte=now,
        )
