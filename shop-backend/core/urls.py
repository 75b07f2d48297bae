# shop-backend/core/urls.py
"""
URL configuration for the shop backend.

Every app mounts its own urls.py under /api/v1/; tenant context comes from
common.middleware.TenantContextMiddleware.
"""

from django.contrib import admin
from django.urls import include, path
from django.views.generic import RedirectView
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from common.auth_tokens import TenantTokenObtainPairView


urlpatterns = [
    path("", RedirectView.as_view(url="/admin/", permanent=False)),
    path("admin/", admin.site.urls),

    # Auth
    path("api/v1/auth/token/", TenantTokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/v1/auth/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/v1/auth/verify/", TokenVerifyView.as_view(), name="token_verify"),

    path("api/v1/catalog/", include("catalog.urls", namespace="catalog")),
    path("api/v1/inventory/", include("inventory.urls", namespace="inventory")),
    path("api/v1/", include("carts.urls", namespace="carts")),
    path("api/v1/orders/", include("orders.urls", namespace="orders")),
    path("api/v1/", include("loyalty.urls", namespace="loyalty")),
    path("api/v1/payments/", include("payments.urls", namespace="payments")),
]
