from cafe.serializers.wallet import WalletSerializer
from cafe.serializers.topup import (
    ConfirmTopupSerializer,
    CreateTopupSerializer,
    TopupSerializer,
)
from cafe.serializers.transaction import TransactionSerializer
from cafe.serializers.booking import BookingSerializer, CreateBookingSerializer
from cafe.serializers.voucher import (
    ApplyVoucherSerializer,
    CreateVoucherSerializer,
    UpdateVoucherSerializer,
    VoucherCalculationSerializer,
    VoucherSerializer,
)

__all__ = [
    "WalletSerializer",
    "CreateTopupSerializer",
    "ConfirmTopupSerializer",
    "TopupSerializer",
    "TransactionSerializer",
    "CreateBookingSerializer",
    "BookingSerializer",
    "CreateVoucherSerializer",
    "UpdateVoucherSerializer",
    "ApplyVoucherSerializer",
    "VoucherCalculationSerializer",
    "VoucherSerializer",
]
