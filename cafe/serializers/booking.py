from rest_framework import serializers

from cafe.models import Booking


class CreateBookingSerializer(serializers.Serializer):
    """
    Validates the shape of a booking request.

    Business rules (time range, availability, balance) are enforced by
    BookingService so they hold for every caller, not just the API.
    """

    room_id = serializers.UUIDField()
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    voucher_code = serializers.CharField(
        max_length=64, required=False, allow_blank=True
    )


class BookingSerializer(serializers.ModelSerializer):
    room_id = serializers.UUIDField(read_only=True)
    room_name = serializers.CharField(source="room.name", read_only=True)
    voucher_id = serializers.UUIDField(read_only=True)
    voucher_code = serializers.CharField(
        source="voucher.code", read_only=True, default=None
    )

    class Meta:
        model = Booking
        fields = (
            "id",
            "customer_id",
            "room_id",
            "room_name",
            "start_time",
            "end_time",
            "total_price",
            "voucher_id",
            "voucher_code",
            "status",
            "created_at",
        )
        read_only_fields = fields
