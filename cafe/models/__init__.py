from cafe.models.wallet import Wallet
from cafe.models.topup import Topup
from cafe.models.transaction import Transaction
from cafe.models.shop import CoffeeShop, MeetingRoom
from cafe.models.voucher import Voucher
from cafe.models.booking import Booking

__all__ = [
    "Wallet",
    "Topup",
    "Transaction",
    "CoffeeShop",
    "MeetingRoom",
    "Voucher",
    "Booking",
]
