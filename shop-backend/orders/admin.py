# shop-backend/orders/admin.py
from django.contrib import admin

from .models import Order, OrderItem, OrderStatusEvent


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("product", "sku", "name", "price", "quantity", "subtotal")


class OrderStatusEventInline(admin.TabularInline):
    model = OrderStatusEvent
    extra = 0
    can_delete = False
    readonly_fields = ("from_status", "status", "comment", "actor", "created_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "tenant", "user", "status", "payment_status", "total", "created_at")
    list_filter = ("tenant", "status", "payment_status", "shipping_method", "created_at")
    search_fields = ("order_number", "user__username", "user__email", "tracking_code")
    date_hierarchy = "created_at"
    # status changes go through orders.services so history and stock stay consistent
    readonly_fields = (
        "order_number", "status", "subtotal", "discount", "tax", "shipping_cost", "total",
        "payment_status", "payment_transaction_id", "paid_at", "stock_committed_at",
        "cancelled_at", "refunded_at", "created_at", "updated_at",
    )
    inlines = [OrderItemInline, OrderStatusEventInline]


@admin.register(OrderStatusEvent)
class OrderStatusEventAdmin(admin.ModelAdmin):
    list_display = ("order", "from_status", "status", "actor", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("order__order_number", "comment")

    def has_add_permission(self, request):    return False
    def has_change_permission(self, request, obj=None): return False
    def has_delete_permission(self, request, obj=None): return False
