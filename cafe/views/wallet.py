import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from cafe.exceptions import SettlementError
from cafe.serializers import WalletSerializer
from cafe.services import WalletService
from cafe.views.errors import settlement_error_response

logger = logging.getLogger(__name__)


class WalletView(APIView):
    """
    GET  /wallet/ — Current balance of the caller's wallet.
    POST /wallet/ — Open the caller's wallet (no-op if it already exists).
    """

    def get(self, request, *args, **kwargs):
        try:
            wallet = WalletService.get(request.user.user_id)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(WalletSerializer(wallet).data)

    def post(self, request, *args, **kwargs):
        wallet = WalletService.open(request.user.user_id)
        return Response(WalletSerializer(wallet).data, status=status.HTTP_200_OK)
