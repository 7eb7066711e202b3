import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from cafe.exceptions import SettlementError, Unauthorized
from cafe.serializers import BookingSerializer, CreateBookingSerializer
from cafe.services import BookingService
from cafe.views.errors import settlement_error_response

logger = logging.getLogger(__name__)


class CreateBookingView(APIView):
    """
    POST /bookings/ — Book a meeting room and pay from the caller's wallet.

    Request body:
        {"room_id": "<uuid>", "start_time": "<ISO datetime>",
         "end_time": "<ISO datetime>", "voucher_code": "<optional>"}
    """

    def post(self, request, *args, **kwargs):
        serializer = CreateBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            booking = BookingService.create(
                customer_id=request.user.user_id,
                room_id=data["room_id"],
                start_time=data["start_time"],
                end_time=data["end_time"],
                voucher_code=data.get("voucher_code") or None,
            )
        except SettlementError as exc:
            logger.info(
                "Booking rejected: customer=%s room=%s code=%s",
                request.user.user_id,
                data["room_id"],
                exc.code,
            )
            return settlement_error_response(exc)

        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)


class BookingDetailView(APIView):
    """GET /bookings/<id>/ — A booking, visible to its customer and to admins."""

    def get(self, request, booking_id, *args, **kwargs):
        try:
            booking = BookingService.get(booking_id)
            if booking.customer_id != request.user.user_id and not request.user.is_admin:
                raise Unauthorized("Not allowed to view this booking.")
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(BookingSerializer(booking).data)


class CancelBookingView(APIView):
    """
    POST /bookings/<id>/cancel/ — Cancel one of the caller's bookings.

    The booking price is refunded to the wallet. Cancelling is only allowed
    up to the configured window (24 hours by default) before the start.
    """

    def post(self, request, booking_id, *args, **kwargs):
        try:
            booking = BookingService.cancel(request.user.user_id, booking_id)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(BookingSerializer(booking).data, status=status.HTTP_200_OK)


class MyBookingsView(ListAPIView):
    """GET /bookings/mine/ — The caller's bookings, newest first."""

    serializer_class = BookingSerializer

    def get_queryset(self):
        return BookingService.for_customer(self.request.user.user_id)


class RoomBookingsView(APIView):
    """GET /rooms/<room_id>/bookings/ — All bookings of a room by start time."""

    def get(self, request, room_id, *args, **kwargs):
        try:
            bookings = BookingService.for_room(room_id)
        except SettlementError as exc:
            return settlement_error_response(exc)

        return Response(BookingSerializer(bookings, many=True).data)
