import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from cafe.exceptions import SettlementError
from cafe.models import Voucher
from cafe.permissions import IsAdminRole
from cafe.serializers import (
    ApplyVoucherSerializer,
    CreateVoucherSerializer,
    UpdateVoucherSerializer,
    VoucherCalculationSerializer,
    VoucherSerializer,
)
from cafe.services import VoucherService
from cafe.views.errors import settlement_error_response

logger = logging.getLogger(__name__)


class VoucherListCreateView(APIView):
    """
    GET  /vouchers/ — Every voucher (admin only).
    POST /vouchers/ — Create a voucher (admin only).
    """

    permission_classes = [IsAdminRole]

    def get(self, request, *args, **kwargs):
        return Response(VoucherSerializer(Voucher.objects.all(), many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = CreateVoucherSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            voucher = VoucherService.create(**serializer.validated_data)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(VoucherSerializer(voucher).data, status=status.HTTP_201_CREATED)


class ValidVoucherListView(ListAPIView):
    """GET /vouchers/valid/ — Vouchers that can be used right now."""

    serializer_class = VoucherSerializer

    def get_queryset(self):
        return Voucher.get_usable()


class VoucherDetailView(APIView):
    """
    GET    /vouchers/<id>/ — A single voucher.
    PUT    /vouchers/<id>/ — Change some of its fields (admin only).
    DELETE /vouchers/<id>/ — Remove it (admin only).
    """

    def get_permissions(self):
        if self.request.method in ("PUT", "DELETE"):
            return [IsAdminRole()]
        return super().get_permissions()

    def get(self, request, voucher_id, *args, **kwargs):
        try:
            voucher = VoucherService.get(voucher_id)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(VoucherSerializer(voucher).data)

    def put(self, request, voucher_id, *args, **kwargs):
        serializer = UpdateVoucherSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            voucher = VoucherService.update(voucher_id, **serializer.validated_data)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(VoucherSerializer(voucher).data)

    def delete(self, request, voucher_id, *args, **kwargs):
        try:
            VoucherService.delete(voucher_id)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(status=status.HTTP_204_NO_CONTENT)


class ApplyVoucherView(APIView):
    """
    POST /vouchers/apply/ — Preview the discount a voucher gives on an amount.

    Request body: {"voucher_code": "<code>", "amount": "<decimal>"}
    Does not consume a use of the voucher.
    """

    def post(self, request, *args, **kwargs):
        serializer = ApplyVoucherSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            calculation = VoucherService.apply(
                serializer.validated_data["voucher_code"],
                serializer.validated_data["amount"],
            )
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(VoucherCalculationSerializer(calculation).data)
