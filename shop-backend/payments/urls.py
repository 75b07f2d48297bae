# payments/urls.py
from django.urls import path

from .views import ConfirmPaymentView, PaymentListView, PaymentRefundView

app_name = "payments"

urlpatterns = [
    path("", PaymentListView.as_view(), name="payment-list"),
    path("confirm", ConfirmPaymentView.as_view(), name="payment-confirm"),
    path("<int:pk>/refund", PaymentRefundView.as_view(), name="payment-refund"),
]
