from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("transaction_id", "order", "method", "gateway", "amount", "status", "created_at")
    list_filter = ("tenant", "method", "gateway", "status", "created_at")
    search_fields = ("transaction_id", "gateway_transaction_id", "order__order_number", "authorization_code")
    readonly_fields = [f.name for f in Payment._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
