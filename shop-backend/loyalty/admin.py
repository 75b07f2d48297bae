# shop-backend/loyalty/admin.py

from django.contrib import admin
from django.db.models import Count
from django.urls import reverse
from django.utils.html import format_html

from .models import LoyaltyAccount, PointsTransaction, RedeemedReward, Reward


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    list_display = [
        "user",
        "tenant",
        "points",
        "lifetime_points",
        "tier",
        "transaction_count",
        "updated_at",
    ]
    list_filter = ["tenant", "tier", "is_active"]
    search_fields = ["user__username", "user__email", "referral_code"]
    # balances move only through loyalty.services so every change has a transaction row
    readonly_fields = [
        "points", "lifetime_points", "redeemed_points", "tier", "tier_updated_at",
        "referral_code", "referred_by", "referral_count", "last_activity_at", "updated_at",
    ]

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related("tenant", "user").annotate(
            transaction_count=Count("transactions", distinct=True)
        )

    def transaction_count(self, obj):
        return obj.transaction_count
    transaction_count.short_description = "Transactions"
    transaction_count.admin_order_field = "transaction_count"


@admin.register(PointsTransaction)
class PointsTransactionAdmin(admin.ModelAdmin):
    date_hierarchy = "created_at"
    list_display = [
        "created_at",
        "account",
        "type",
        "points",
        "balance_after",
        "order_link",
    ]
    list_filter = ["type", "created_at"]
    search_fields = ["account__user__username", "account__user__email", "reason"]
    readonly_fields = [
        "account", "type", "points", "base_points", "multiplier", "balance_after",
        "order", "reward", "reason", "expires_at", "adjusted_by", "created_at",
    ]

    def has_add_permission(self, request):    return False
    def has_change_permission(self, request, obj=None): return False
    def has_delete_permission(self, request, obj=None): return False

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("account__user", "order")

    def order_link(self, obj):
        if not obj.order_id:
            return "-"
        url = reverse("admin:orders_order_change", args=[obj.order_id])
        return format_html('<a href="{}">{}</a>', url, obj.order.order_number)
    order_link.short_description = "Order"


@admin.register(Reward)
class RewardAdmin(admin.ModelAdmin):
    list_display = ["name", "tenant", "type", "points_cost", "min_tier", "stock", "redeemed_count", "status"]
    list_editable = ["status"]
    list_filter = ["tenant", "type", "status", "min_tier"]
    search_fields = ["name", "slug"]
    readonly_fields = ["redeemed_count", "created_at", "updated_at"]


@admin.register(RedeemedReward)
class RedeemedRewardAdmin(admin.ModelAdmin):
    list_display = ["coupon_code", "user", "reward_name", "type", "value", "status", "expires_at"]
    list_filter = ["status", "type"]
    search_fields = ["coupon_code", "user__username", "user__email"]
    readonly_fields = [f.name for f in RedeemedReward._meta.fields]

    def has_add_permission(self, request):    return False
    def has_delete_permission(self, request, obj=None): return False
