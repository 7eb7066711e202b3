import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from cafe.exceptions import NotPending, TopupNotFound
from cafe.models import Topup, Transaction
from cafe.services.ledger import LedgerService
from cafe.services.wallet import WalletService

logger = logging.getLogger(__name__)


class TopupService:
    """
    Topup lifecycle: PENDING on request, COMPLETED once confirmed.

    There is no way back from COMPLETED, which is what keeps a repeated
    confirmation from crediting the wallet twice.
    """

    @staticmethod
    def create(user_id, amount: Decimal, method: str) -> Topup:
        """
        Record a pending topup for the user's wallet.

        Raises:
            ValueError: If amount is not positive.
            WalletNotFound: If the user has no wallet.
        """
        if amount <= 0:
            raise ValueError("Topup amount must be positive.")

        WalletService.get(user_id)

        topup = Topup.objects.create(user_id=user_id, amount=amount, method=method)
        logger.info(
            "Topup requested: user=%s amount=%s method=%s topup=%s",
            user_id,
            amount,
            method,
            topup.id,
        )
        return topup

    @staticmethod
    @transaction.atomic
    def confirm(topup_id) -> Topup:
        """
        Complete a pending topup: credit the wallet and append a ledger entry.

        The topup row is locked for the duration so two confirmations of the
        same topup run one after the other; the second sees COMPLETED.

        Raises:
            TopupNotFound: If no topup has this id.
            NotPending: If the topup was already confirmed.
            WalletNotFound: If the owner's wallet disappeared; nothing is
                changed in that case.
        """
        topup = Topup.objects.select_for_update().filter(pk=topup_id).first()
        if topup is None:
            raise TopupNotFound()

        if topup.status != Topup.Status.PENDING:
            logger.warning(
                "Topup confirmation rejected: topup=%s status=%s", topup.id, topup.status
            )
            raise NotPending()

        topup.status = Topup.Status.COMPLETED
        topup.confirmed_at = timezone.now()
        topup.save(update_fields=["status", "confirmed_at", "updated_at"])

        WalletService.credit(topup.user_id, topup.amount)

        LedgerService.record_best_effort(
            user_id=topup.user_id,
            service=Transaction.Service.TOPUP,
            service_ref_id=topup.id,
            amount=topup.amount,
            status=Transaction.Status.COMPLETED,
        )

        logger.info(
            "Topup confirmed: topup=%s user=%s amount=%s",
            topup.id,
            topup.user_id,
            topup.amount,
        )
        return topup

    @staticmethod
    def history(user_id):
        return Topup.objects.filter(user_id=user_id)
