import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from cafe.exceptions import SettlementError
from cafe.permissions import IsAdminRole
from cafe.serializers import (
    ConfirmTopupSerializer,
    CreateTopupSerializer,
    TopupSerializer,
    WalletSerializer,
)
from cafe.services import TopupService, WalletService
from cafe.views.errors import settlement_error_response

logger = logging.getLogger(__name__)


class CreateTopupView(APIView):
    """
    POST /wallet/topups/ — Request a topup of the caller's wallet.

    Request body: {"amount": "<positive decimal>", "method": "<payment method>"}
    The topup stays pending until an administrator confirms it.
    """

    def post(self, request, *args, **kwargs):
        serializer = CreateTopupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            topup = TopupService.create(
                user_id=request.user.user_id,
                amount=serializer.validated_data["amount"],
                method=serializer.validated_data["method"],
            )
        except SettlementError as exc:
            return settlement_error_response(exc)
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(TopupSerializer(topup).data, status=status.HTTP_201_CREATED)


class ConfirmTopupView(APIView):
    """
    POST /wallet/topups/confirm/ — Confirm a pending topup (admin only).

    Request body: {"topup_id": "<uuid>"}
    """

    permission_classes = [IsAdminRole]

    def post(self, request, *args, **kwargs):
        serializer = ConfirmTopupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            topup = TopupService.confirm(serializer.validated_data["topup_id"])
        except SettlementError as exc:
            logger.warning(
                "Topup confirmation failed: topup=%s admin=%s error=%s",
                serializer.validated_data["topup_id"],
                request.user,
                exc,
            )
            return settlement_error_response(exc)

        return Response(
            {
                "topup": TopupSerializer(topup).data,
                "wallet": WalletSerializer(WalletService.get(topup.user_id)).data,
            },
            status=status.HTTP_200_OK,
        )


class TopupHistoryView(ListAPIView):
    """GET /wallet/topups/history/ — The caller's topups, newest first."""

    serializer_class = TopupSerializer

    def get_queryset(self):
        return TopupService.history(self.request.user.user_id)
