import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from cafe.models import Transaction

logger = logging.getLogger(__name__)


class LedgerService:
    """Appends settlement events to the Transaction ledger."""

    @staticmethod
    def record(user_id, service, service_ref_id, amount, status):
        return Transaction.objects.create(
            user_id=user_id,
            service=service,
            service_ref_id=service_ref_id,
            amount=amount,
            status=status,
            paid_at=timezone.now(),
        )

    @staticmethod
    def record_best_effort(user_id, service, service_ref_id, amount, status):
        """
        Append a ledger entry without letting a failure undo the caller's work.

        The insert runs in its own savepoint, so a database error rolls back
        only the ledger row and leaves the surrounding transaction usable.
        Returns the Transaction, or None when the append failed.
        """
        try:
            with transaction.atomic():
                return LedgerService.record(
                    user_id, service, service_ref_id, amount, status
                )
        except DatabaseError:
            logger.exception(
                "Ledger append failed, needs reconciliation: user=%s service=%s "
                "ref=%s amount=%s status=%s",
                user_id,
                service,
                service_ref_id,
                amount,
                status,
            )
            return None
