from django.db import models

from cafe.models.base import BaseModel


class Topup(BaseModel):
    """
    A request to add funds to a wallet.

    Topups are created PENDING and become COMPLETED exactly once, when an
    administrator confirms that the money was received. Confirmation credits
    the wallet and appends a ledger entry.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"

    user_id = models.UUIDField(db_index=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    method = models.CharField(max_length=50)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(fields=["user_id", "status"], name="idx_topup_user_status"),
        ]

    def __str__(self):
        return f"Topup {self.id} | {self.amount} via {self.method} | {self.status}"
