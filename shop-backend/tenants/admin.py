from django.contrib import admin
from .models import Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "currency_code", "is_active")
    search_fields = ("name", "code")
    list_filter = ("is_active",)
