# payments/models.py
from django.conf import settings
from django.db import models

from common.models import TimeStampedModel
from orders.models import PaymentMethod


class Gateway(models.TextChoices):
    WEBPAY = "webpay", "Webpay"
    MERCADOPAGO = "mercadopago", "MercadoPago"
    FLOW = "flow", "Flow"
    MANUAL = "manual", "Manual"


class PaymentRecordStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


class Payment(TimeStampedModel):
    """
    One payment attempt against an order. Attempts are never deleted:
    a declined attempt stays as `failed` next to the order.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.PROTECT, related_name="payments")
    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="payments")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="payments")

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CLP")
    method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    gateway = models.CharField(max_length=16, choices=Gateway.choices)
    status = models.CharField(
        max_length=16, choices=PaymentRecordStatus.choices, default=PaymentRecordStatus.PENDING, db_index=True
    )

    transaction_id = models.CharField(max_length=40, unique=True)
    gateway_transaction_id = models.CharField(max_length=64, blank=True, default="")
    authorization_code = models.CharField(max_length=32, blank=True, default="")
    card_brand = models.CharField(max_length=20, blank=True, default="")
    card_last4 = models.CharField(max_length=4, blank=True, default="")
    gateway_response = models.JSONField(default=dict, blank=True)

    error_code = models.CharField(max_length=40, blank=True, default="")
    error_message = models.CharField(max_length=255, blank=True, default="")

    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True, default="")
    refund_transaction_id = models.CharField(max_length=40, blank=True, default="")
    refunded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    refunded_at = models.DateTimeField(null=True, blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["tenant", "user", "created_at"], name="payment_tenant_user_idx"),
            models.Index(fields=["status", "created_at"], name="payment_status_created_idx"),
        ]

    def __str__(self):
        return f"{self.transaction_id} {self.method} ${self.amount} [{self.status}]"
