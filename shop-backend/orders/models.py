# shop-backend/orders/models.py

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


# source status -> statuses it may move to
TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}


class PaymentMethod(models.TextChoices):
    CREDIT_CARD = "credit_card", "Credit card"
    DEBIT_CARD = "debit_card", "Debit card"
    TRANSFER = "transfer", "Bank transfer"
    WEBPAY = "webpay", "Webpay"
    MERCADOPAGO = "mercadopago", "MercadoPago"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class ShippingMethod(models.TextChoices):
    STANDARD = "standard", "Standard"
    EXPRESS = "express", "Express"
    PICKUP = "pickup", "Store pickup"


class Order(TimeStampedModel):
    """
    Checkout snapshot of a cart plus fulfillment state.

    Line items and totals are frozen at creation. `status` only changes
    through orders.services.update_status (which enforces TRANSITIONS and
    appends an OrderStatusEvent). Orders are never deleted.
    """

    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.PROTECT, related_name="orders")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    order_number = models.CharField(max_length=32, unique=True)
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CLP")

    # coupon snapshot
    coupon_code = models.CharField(max_length=40, blank=True, default="")
    coupon_type = models.CharField(max_length=16, blank=True, default="")
    coupon_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    loyalty_points_used = models.IntegerField(default=0)
    loyalty_points_earned = models.IntegerField(default=0)

    # payment
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_transaction_id = models.CharField(max_length=64, blank=True, default="")
    payment_gateway = models.CharField(max_length=32, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    gateway_response = models.JSONField(default=dict, blank=True)

    # shipping
    shipping_method = models.CharField(max_length=16, choices=ShippingMethod.choices, default=ShippingMethod.STANDARD)
    shipping_address = models.JSONField(default=dict)
    carrier = models.CharField(max_length=64, blank=True, default="")
    tracking_code = models.CharField(max_length=64, blank=True, default="")
    tracking_url = models.URLField(blank=True, default="")
    estimated_delivery = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    customer_notes = models.TextField(blank=True, default="")

    # set when confirm_sale has consumed the reserved stock of every line
    stock_committed_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.CharField(max_length=255, blank=True, default="")
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True, default="")
    refunded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_transaction_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(condition=Q(total__gte=0), name="order_total_non_negative"),
        ]
        indexes = [
            models.Index(fields=["tenant", "user", "created_at"], name="order_tenant_user_idx"),
            models.Index(fields=["tenant", "status", "created_at"], name="order_tenant_status_idx"),
        ]

    def __str__(self):
        return f"Order {self.order_number} [{self.status}] {self.total}"

    def can_transition_to(self, status) -> bool:
        return status in TRANSITIONS.get(self.status, set())

    @property
    def can_cancel(self) -> bool:
        return self.status in (OrderStatus.PENDING, OrderStatus.CONFIRMED) and self.stock_committed_at is None

    @property
    def can_refund(self) -> bool:
        return self.can_transition_to(OrderStatus.REFUNDED) and self.payment_status == PaymentStatus.PAID

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items.all())


class OrderItem(models.Model):
    """Frozen line snapshot. `product` is kept only as a reference."""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="+")
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=200)
    brand = models.CharField(max_length=120, blank=True, default="")
    category = models.CharField(max_length=120, blank=True, default="")
    image_url = models.URLField(blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity} x {self.sku} @ {self.price}"


class OrderStatusEvent(models.Model):
    """Append-only status history."""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="status_events")
    from_status = models.CharField(max_length=16, choices=OrderStatus.choices, blank=True, default="")
    status = models.CharField(max_length=16, choices=OrderStatus.choices)
    comment = models.CharField(max_length=255, blank=True, default="")
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [models.Index(fields=["order", "created_at"], name="order_event_order_idx")]

    def __str__(self):
        return f"{self.order_id}: {self.from_status or '-'} -> {self.status}"
