from django.urls import path

from cafe.views import (
    ApplyVoucherView,
    BookingDetailView,
    CancelBookingView,
    ConfirmTopupView,
    CreateBookingView,
    CreateTopupView,
    MyBookingsView,
    RoomBookingsView,
    TopupHistoryView,
    TransactionDetailView,
    TransactionListView,
    ValidVoucherListView,
    VoucherDetailView,
    VoucherListCreateView,
    WalletView,
)

urlpatterns = [
    path("wallet/", WalletView.as_view(), name="wallet"),
    path("wallet/topups/", CreateTopupView.as_view(), name="topup-create"),
    path(
        "wallet/topups/history/", TopupHistoryView.as_view(), name="topup-history"
    ),
    path(
        "wallet/topups/confirm/", ConfirmTopupView.as_view(), name="topup-confirm"
    ),
    path(
        "wallet/transactions/",
        TransactionListView.as_view(),
        name="wallet-transactions",
    ),
    path(
        "wallet/transactions/<uuid:id>/",
        TransactionDetailView.as_view(),
        name="transaction-detail",
    ),
    path("bookings/", CreateBookingView.as_view(), name="booking-create"),
    path("bookings/mine/", MyBookingsView.as_view(), name="booking-mine"),
    path(
        "bookings/<uuid:booking_id>/",
        BookingDetailView.as_view(),
        name="booking-detail",
    ),
    path(
        "bookings/<uuid:booking_id>/cancel/",
        CancelBookingView.as_view(),
        name="booking-cancel",
    ),
    path(
        "rooms/<uuid:room_id>/bookings/",
        RoomBookingsView.as_view(),
        name="room-bookings",
    ),
    path("vouchers/", VoucherListCreateView.as_view(), name="voucher-list"),
    path("vouchers/apply/", ApplyVoucherView.as_view(), name="voucher-apply"),
    path("vouchers/valid/", ValidVoucherListView.as_view(), name="voucher-valid"),
    path(
        "vouchers/<uuid:voucher_id>/",
        VoucherDetailView.as_view(),
        name="voucher-detail",
    ),
]
