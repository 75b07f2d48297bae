# shop-backend/orders/urls.py
from django.urls import path

from .views import (
    AuditLogListView,
    CheckoutView,
    OrderCancelView,
    OrderDeliveredView,
    OrderDetailView,
    OrderListView,
    OrderRefundView,
    OrderStatusView,
    OrderTrackingView,
    SalesStatsView,
)


app_name = "orders"

urlpatterns = [
    path("", OrderListView.as_view(), name="order-list"),
    path("checkout", CheckoutView.as_view(), name="checkout"),
    path("stats", SalesStatsView.as_view(), name="stats"),
    path("audit/logs", AuditLogListView.as_view(), name="audit-logs"),
    path("<int:pk>", OrderDetailView.as_view(), name="order-detail"),
    path("<int:pk>/cancel", OrderCancelView.as_view(), name="order-cancel"),
    path("<int:pk>/status", OrderStatusView.as_view(), name="order-status"),
    path("<int:pk>/tracking", OrderTrackingView.as_view(), name="order-tracking"),
    path("<int:pk>/delivered", OrderDeliveredView.as_view(), name="order-delivered"),
    path("<int:pk>/refund", OrderRefundView.as_view(), name="order-refund"),
]
