# carts/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel


class CouponType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed amount"
    FREE_SHIPPING = "free_shipping", "Free shipping"


class Cart(TimeStampedModel):
    """
    Mutable pre-checkout basket, owned by a user or by an anonymous session
    (never both). The aggregate fields are a cache written by
    carts.services after every mutation; they are always recomputed from
    items + coupon, never edited directly.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="carts")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True, related_name="carts"
    )
    session_key = models.CharField(max_length=64, blank=True, default="", db_index=True)
    currency = models.CharField(max_length=3, default="CLP")

    coupon_code = models.CharField(max_length=40, blank=True, default="")
    coupon_type = models.CharField(max_length=16, choices=CouponType.choices, blank=True, default="")
    coupon_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    coupon_max_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    redeemed_reward = models.ForeignKey(
        "loyalty.RedeemedReward", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    expires_at = models.DateTimeField(db_index=True)
    # set while a checkout holds this cart; a second checkout is rejected until cleared or stale
    checkout_started_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(Q(user__isnull=False) & Q(session_key="")) | (Q(user__isnull=True) & ~Q(session_key="")),
                name="cart_user_xor_session",
            ),
            models.UniqueConstraint(
                fields=["tenant", "user"], condition=Q(user__isnull=False), name="uniq_cart_per_user",
            ),
            models.UniqueConstraint(
                fields=["tenant", "session_key"], condition=~Q(session_key=""), name="uniq_cart_per_session",
            ),
        ]

    def __str__(self):
        owner = f"user #{self.user_id}" if self.user_id else f"session {self.session_key[:8]}"
        return f"Cart #{self.pk} ({owner})"

    @property
    def has_coupon(self) -> bool:
        return bool(self.coupon_code)


class CartItem(models.Model):
    """Line snapshot: name/image/price copied from the product when added."""
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="+")
    sku = models.CharField(max_length=64)
    name = models.CharField(max_length=200)
    brand = models.CharField(max_length=120, blank=True, default="")
    category = models.CharField(max_length=120, blank=True, default="")
    image_url = models.URLField(blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["added_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "product"], name="uniq_cart_product"),
            models.CheckConstraint(condition=Q(quantity__gte=1), name="cart_item_quantity_positive"),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.sku}"
