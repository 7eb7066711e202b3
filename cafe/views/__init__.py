from cafe.views.wallet import WalletView
from cafe.views.topup import ConfirmTopupView, CreateTopupView, TopupHistoryView
from cafe.views.transaction import TransactionDetailView, TransactionListView
from cafe.views.booking import (
    BookingDetailView,
    CancelBookingView,
    CreateBookingView,
    MyBookingsView,
    RoomBookingsView,
)
from cafe.views.voucher import (
    ApplyVoucherView,
    ValidVoucherListView,
    VoucherDetailView,
    VoucherListCreateView,
)

__all__ = [
    "WalletView",
    "CreateTopupView",
    "ConfirmTopupView",
    "TopupHistoryView",
    "TransactionListView",
    "TransactionDetailView",
    "CreateBookingView",
    "BookingDetailView",
    "CancelBookingView",
    "MyBookingsView",
    "RoomBookingsView",
    "VoucherListCreateView",
    "ValidVoucherListView",
    "VoucherDetailView",
    "ApplyVoucherView",
]
