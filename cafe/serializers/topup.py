from decimal import Decimal

from rest_framework import serializers

from cafe.models import Topup


class CreateTopupSerializer(serializers.Serializer):
    """Validates topup requests."""

    amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, min_value=Decimal("0.01")
    )
    method = serializers.CharField(max_length=50)


class ConfirmTopupSerializer(serializers.Serializer):
    topup_id = serializers.UUIDField()


class TopupSerializer(serializers.ModelSerializer):
    class Meta:
        model = Topup
        fields = (
            "id",
            "user_id",
            "amount",
            "method",
            "status",
            "confirmed_at",
            "created_at",
        )
        read_only_fields = fields
