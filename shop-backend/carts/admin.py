from django.contrib import admin

from .models import Cart, CartItem


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ("product", "sku", "name", "price", "quantity", "subtotal", "added_at")
    can_delete = False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "user", "session_key", "coupon_code", "total", "expires_at", "updated_at")
    list_filter = ("tenant",)
    search_fields = ("user__username", "session_key", "coupon_code")
    readonly_fields = ("subtotal", "discount", "tax", "shipping_cost", "total", "expires_at", "created_at", "updated_at")
    inlines = [CartItemInline]
