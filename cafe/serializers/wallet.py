from rest_framework import serializers

from cafe.models import Wallet


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ("user_id", "balance", "created_at", "updated_at")
        read_only_fields = fields
