from django.contrib import admin

from .models import StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ("created_at", "product", "type", "quantity", "previous_stock", "new_stock", "order_ref", "performed_by")
    list_filter = ("type", "created_at", "product__tenant")
    search_fields = ("product__sku", "product__name", "order_ref", "reason")
    date_hierarchy = "created_at"
    readonly_fields = ("product", "type", "quantity", "previous_stock", "new_stock", "reason", "order_ref", "performed_by", "created_at")

    def has_add_permission(self, request):
        # Movements are only written by inventory.ledger
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
