from decimal import Decimal

from django.db import models

from cafe.models.base import BaseModel


class Wallet(BaseModel):
    """
    Represents a user's wallet with a non-negative balance.

    Each user owns exactly one wallet. Balance changes go through
    WalletService, which uses F() expressions so that credits and
    conditional debits are a single UPDATE statement.
    """

    user_id = models.UUIDField(unique=True, db_index=True)
    balance = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0), name="wallet_balance_non_negative"
            ),
        ]

    def __str__(self):
        return f"Wallet {self.user_id} (balance={self.balance})"
