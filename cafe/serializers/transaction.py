from rest_framework import serializers

from cafe.models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    """Read-only serializer for ledger entries."""

    class Meta:
        model = Transaction
        fields = (
            "id",
            "user_id",
            "service",
            "service_ref_id",
            "amount",
            "paid_at",
            "status",
        )
        read_only_fields = fields
