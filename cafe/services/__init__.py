from cafe.services.wallet import WalletService
from cafe.services.ledger import LedgerService
from cafe.services.topup import TopupService
from cafe.services.voucher import VoucherService
from cafe.services.booking import BookingService

__all__ = [
    "WalletService",
    "LedgerService",
    "TopupService",
    "VoucherService",
    "BookingService",
]
