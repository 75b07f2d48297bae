from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("tenant", "sku", "name", "category", "price", "stock_current", "stock_reserved", "status")
    list_filter = ("tenant", "category", "status")
    search_fields = ("sku", "name", "brand")
    # stock counters move only through the inventory ledger
    readonly_fields = ("stock_current", "stock_reserved", "last_restocked_at", "created_at", "updated_at")

    def has_delete_permission(self, request, obj=None):
        return False
