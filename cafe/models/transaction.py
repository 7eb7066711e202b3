
from django.db import models
from django.utils import timezone

from cafe.models.base import BaseModel


class Transaction(BaseModel):
    """
    Append-only ledger entry for every monetary movement.

    A transaction points at the entity that caused it through the
    (service, service_ref_id) pair without owning it: a booking charge, a
    booking refund (negative amount) or a topup confirmation.
    """

    class Service(models.IntegerChoices):
        BOOKING = 1, "Booking"
        TOPUP = 2, "Topup"

    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"
        REFUNDED = "refunded", "Refunded"
        FAILED = "failed", "Failed"

    user_id = models.UUIDField(db_index=True)
    service = models.PositiveSmallIntegerField(choices=Service.choices)
    service_ref_id = models.UUIDField()
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Signed amount; refunds are negative.",
    )
    paid_at = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=10, choices=Status.choices)

    class Meta(BaseModel.Meta):
        ordering = ["-paid_at"]
        indexes = [
            models.Index(
                fields=["service", "service_ref_id"], name="idx_tx_service_ref"
            ),
            models.Index(fields=["user_id", "paid_at"], name="idx_tx_user_paid"),
        ]

    def __str__(self):
        return (
            f"Transaction {self.id} | {self.get_service_display()} | "
            f"{self.amount} | {self.status}"
        )

    @classmethod
    def for_reference(cls, service, service_ref_id):
        """Return ledger entries recorded against one booking or topup."""
        return cls.objects.filter(service=service, service_ref_id=service_ref_id)
