from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from rest_framework import serializers

from cafe.models import Transaction, Voucher


class VoucherSerializer(serializers.ModelSerializer):
    class Meta:
        model = Voucher
        fields = (
            "id",
            "code",
            "discount_percent",
            "max_uses",
            "used_count",
            "service",
            "valid_from",
            "valid_to",
        )
        read_only_fields = fields


class CreateVoucherSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=64)
    discount_percent = serializers.IntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(100)]
    )
    max_uses = serializers.IntegerField(min_value=0, default=0)
    service = serializers.ChoiceField(
        choices=Transaction.Service.choices, required=False, allow_null=True
    )
    valid_from = serializers.DateTimeField()
    valid_to = serializers.DateTimeField()

    def validate(self, attrs):
        if attrs["valid_to"] < attrs["valid_from"]:
            raise serializers.ValidationError(
                {"valid_to": "valid_to must not be before valid_from."}
            )
        return attrs


class ApplyVoucherSerializer(serializers.Serializer):
    voucher_code = serializers.CharField(max_length=64)
    amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, min_value=Decimal("0")
    )


class VoucherCalculationSerializer(serializers.Serializer):
    original_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    final_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    discount_percent = serializers.IntegerField()
    voucher_code = serializers.CharField()


class UpdateVoucherSerializer(serializers.Serializer):
    """Partial voucher update; only the fields sent are changed."""

    code = serializers.CharField(max_length=64, required=False)
    discount_percent = serializers.IntegerField(
        required=False, validators=[MinValueValidator(1), MaxValueValidator(100)]
    )
    max_uses = serializers.IntegerField(min_value=0, required=False)
    service = serializers.ChoiceField(
        choices=Transaction.Service.choices, required=False, allow_null=True
    )
    valid_from = serializers.DateTimeField(required=False)
    valid_to = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No voucher fields to update.")
        return attrs
