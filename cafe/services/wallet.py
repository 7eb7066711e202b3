import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F

from cafe.exceptions import InsufficientBalance, WalletNotFound
from cafe.models import Wallet

logger = logging.getLogger(__name__)


class WalletService:
    """
    Atomic balance operations on a user's wallet.

    Balances are never read, changed in Python and written back. Credits are
    a single `balance = balance + x` UPDATE and debits add a
    `balance >= x` guard to the same statement, so two concurrent debits
    cannot both succeed when only one is covered.
    """

    @staticmethod
    @transaction.atomic
    def open(user_id) -> Wallet:
        """Return the user's wallet, creating an empty one on first use."""
        wallet, created = Wallet.objects.get_or_create(user_id=user_id)
        if created:
            logger.info("Wallet opened: user=%s wallet=%s", user_id, wallet.id)
        return wallet

    @staticmethod
    def get(user_id) -> Wallet:
        try:
            return Wallet.objects.get(user_id=user_id)
        except Wallet.DoesNotExist:
            raise WalletNotFound()

    @staticmethod
    def credit(user_id, amount: Decimal) -> None:
        """
        Add `amount` to the wallet unconditionally.

        Raises:
            ValueError: If amount is not positive.
            WalletNotFound: If the user has no wallet.
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive.")

        updated = Wallet.objects.filter(user_id=user_id).update(
            balance=F("balance") + amount
        )
        if not updated:
            logger.warning("Credit skipped, no wallet: user=%s amount=%s", user_id, amount)
            raise WalletNotFound()

        logger.info("Wallet credited: user=%s amount=%s", user_id, amount)

    @staticmethod
    def debit(user_id, amount: Decimal) -> None:
        """
        Subtract `amount` only if the balance covers it at update time.

        Raises:
            ValueError: If amount is not positive.
            WalletNotFound: If the user has no wallet.
            InsufficientBalance: If the guarded update matched no row.
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive.")

        updated = Wallet.objects.filter(user_id=user_id, balance__gte=amount).update(
            balance=F("balance") - amount
        )
        if not updated:
            if not Wallet.objects.filter(user_id=user_id).exists():
                raise WalletNotFound()
            logger.warning(
                "Debit rejected (insufficient balance): user=%s amount=%s",
                user_id,
                amount,
            )
            raise InsufficientBalance()

        logger.info("Wallet debited: user=%s amount=%s", user_id, amount)
