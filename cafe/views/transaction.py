import logging

from rest_framework.generics import ListAPIView, RetrieveAPIView

from cafe.models import Transaction
from cafe.serializers import TransactionSerializer

logger = logging.getLogger(__name__)


class TransactionListView(ListAPIView):
    """
    GET /wallet/transactions/ — The caller's ledger entries, newest first.

    Query params:
        - status: Filter by status (completed, refunded, failed)
        - service: Filter by service (1 = booking, 2 = topup)
    """

    serializer_class = TransactionSerializer

    def get_queryset(self):
        queryset = Transaction.objects.filter(user_id=self.request.user.user_id)

        tx_status = self.request.query_params.get("status")
        if tx_status:
            queryset = queryset.filter(status=tx_status.lower())

        service = self.request.query_params.get("service")
        if service and service.isdigit():
            queryset = queryset.filter(service=int(service))

        return queryset


class TransactionDetailView(RetrieveAPIView):
    """GET /wallet/transactions/<id>/ — A single ledger entry of the caller."""

    serializer_class = TransactionSerializer
    lookup_field = "id"

    def get_queryset(self):
        return Transaction.objects.filter(user_id=self.request.user.user_id)
