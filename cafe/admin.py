from django.contrib import admin

from cafe.models import (
    Booking,
    CoffeeShop,
    MeetingRoom,
    Topup,
    Transaction,
    Voucher,
    Wallet,
)


class ReadOnlyAdminMixin:
    """
    Mixin that makes an admin model completely read-only.

    Money-bearing rows are only changed by the settlement services, so the
    admin can browse them but never add, edit or delete them.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("user_id", "balance", "created_at", "updated_at")
    search_fields = ("user_id",)


@admin.register(Topup)
class TopupAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "user_id", "amount", "method", "status", "created_at")
    list_filter = ("status", "method")
    search_fields = ("user_id",)


@admin.register(Transaction)
class TransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "user_id",
        "service",
        "service_ref_id",
        "amount",
        "status",
        "paid_at",
    )
    list_filter = ("service", "status")
    search_fields = ("user_id", "service_ref_id")


@admin.register(Booking)
class BookingAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "customer_id",
        "room",
        "start_time",
        "end_time",
        "total_price",
        "voucher",
        "status",
    )
    list_filter = ("status",)
    search_fields = ("customer_id", "room__name")


class MeetingRoomInline(admin.TabularInline):
    model = MeetingRoom
    extra = 0


@admin.register(CoffeeShop)
class CoffeeShopAdmin(admin.ModelAdmin):
    list_display = ("name", "location", "owner_id", "created_at")
    search_fields = ("name", "location")
    inlines = [MeetingRoomInline]


@admin.register(MeetingRoom)
class MeetingRoomAdmin(admin.ModelAdmin):
    list_display = ("name", "coffee_shop", "capacity", "price_per_hour", "available")
    list_filter = ("available", "coffee_shop")
    search_fields = ("name",)


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_percent",
        "used_count",
        "max_uses",
        "valid_from",
        "valid_to",
    )
    search_fields = ("code",)
    readonly_fields = ("used_count",)
