# shop-backend/loyalty/models.py

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.text import slugify

from common.models import TimeStampedModel

from .tiers import DEFAULT_POLICY, Tier


class LoyaltyAccount(TimeStampedModel):
    """
    Loyalty account per user (per tenant).

    `points` is the spendable balance, `lifetime_points` only ever grows and
    drives the tier. Mutated through loyalty.services with the row locked.
    """

    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="loyalty_accounts")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="loyalty_accounts")

    points = models.IntegerField(default=0)
    lifetime_points = models.IntegerField(default=0)
    redeemed_points = models.IntegerField(default=0)

    tier = models.CharField(max_length=16, choices=Tier.choices, default=Tier.BRONZE)
    tier_updated_at = models.DateTimeField(null=True, blank=True)

    referral_code = models.CharField(max_length=16, unique=True)
    referred_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    referral_count = models.IntegerField(default=0)

    is_active = models.BooleanField(default=True)
    last_activity_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = [("tenant", "user")]
        constraints = [
            models.CheckConstraint(condition=Q(points__gte=0), name="loyalty_points_non_negative"),
        ]
        indexes = [
            models.Index(fields=["tenant", "tier"], name="loyalty_acct_tier_idx"),
            models.Index(fields=["tenant", "lifetime_points"], name="loyalty_acct_lifetime_idx"),
        ]

    def __str__(self):
        return f"{self.user} [{self.tier}] {self.points} pts"

    @property
    def multiplier(self) -> Decimal:
        return DEFAULT_POLICY.multiplier(self.tier)

    @property
    def next_tier(self):
        return DEFAULT_POLICY.next_tier(self.tier)

    @property
    def points_to_next_tier(self) -> int:
        return DEFAULT_POLICY.points_to_next_tier(self.tier, self.lifetime_points)

    @property
    def benefits(self):
        return DEFAULT_POLICY.benefits(self.tier)


class PointsBatch(models.Model):
    """Points earned together and expiring together."""
    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name="batches")
    amount = models.IntegerField()
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["expires_at", "id"]

    def __str__(self):
        return f"{self.amount} pts until {self.expires_at:%Y-%m-%d}"


class TransactionType(models.TextChoices):
    EARN = "earn", "Earn"
    REDEEM = "redeem", "Redeem"
    EXPIRE = "expire", "Expire"
    ADJUSTMENT = "adjustment", "Adjustment"
    BONUS = "bonus", "Bonus"
    REFERRAL = "referral", "Referral"


class PointsTransaction(models.Model):
    """
    Immutable log of loyalty point changes. One row per change of
    LoyaltyAccount.points; `points` is signed.
    """

    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name="transactions")
    type = models.CharField(max_length=16, choices=TransactionType.choices)
    points = models.IntegerField()
    base_points = models.IntegerField(null=True, blank=True)
    multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal("1"))
    balance_after = models.IntegerField()

    order = models.ForeignKey("orders.Order", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    reward = models.ForeignKey("loyalty.Reward", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    reason = models.CharField(max_length=255)
    expires_at = models.DateTimeField(null=True, blank=True)
    adjusted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["account", "created_at"], name="points_txn_account_idx"),
            models.Index(fields=["type", "created_at"], name="points_txn_type_idx"),
        ]

    def __str__(self):
        return f"{self.type} {self.points:+d} -> {self.balance_after}"


class RewardType(models.TextChoices):
    DISCOUNT_PERCENTAGE = "discount_percentage", "Percentage discount"
    DISCOUNT_FIXED = "discount_fixed", "Fixed discount"
    FREE_SHIPPING = "free_shipping", "Free shipping"
    PRODUCT = "product", "Product"
    COUPON = "coupon", "Coupon"


class RewardStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Reward(TimeStampedModel):
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="rewards")
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=120, blank=True)
    description = models.CharField(max_length=500, blank=True, default="")
    image_url = models.URLField(blank=True, default="")

    points_cost = models.PositiveIntegerField()
    type = models.CharField(max_length=24, choices=RewardType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    product = models.ForeignKey("catalog.Product", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")

    # restrictions
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    max_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    valid_categories = models.JSONField(default=list, blank=True)
    excluded_categories = models.JSONField(default=list, blank=True)
    min_tier = models.CharField(max_length=16, choices=Tier.choices, default=Tier.BRONZE)
    max_uses_per_user = models.PositiveIntegerField(null=True, blank=True)
    max_uses_total = models.PositiveIntegerField(null=True, blank=True)

    stock = models.PositiveIntegerField(null=True, blank=True, help_text="Empty means unlimited.")
    redeemed_count = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=10, choices=RewardStatus.choices, default=RewardStatus.ACTIVE)
    is_featured = models.BooleanField(default=False)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    display_order = models.IntegerField(default=0)
    terms = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["display_order", "points_cost", "id"]
        indexes = [
            models.Index(fields=["tenant", "status", "display_order"], name="reward_tenant_status_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.points_cost} pts)"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)[:120]
        super().save(*args, **kwargs)

    @property
    def remaining_stock(self):
        if self.stock is None:
            return None
        return max(0, self.stock - self.redeemed_count)

    @property
    def is_available(self) -> bool:
        if self.status != RewardStatus.ACTIVE:
            return False
        if self.stock is not None and self.stock <= self.redeemed_count:
            return False
        now = timezone.now()
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        return True

    def restrictions(self) -> dict:
        return {
            "min_order_amount": str(self.min_order_amount),
            "max_discount": str(self.max_discount) if self.max_discount is not None else None,
            "valid_categories": list(self.valid_categories or []),
            "excluded_categories": list(self.excluded_categories or []),
        }


class CouponStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    USED = "used", "Used"
    EXPIRED = "expired", "Expired"
    CANCELLED = "cancelled", "Cancelled"


class RedeemedReward(models.Model):
    """
    Coupon issued by redeeming a Reward. Type, value and restrictions are
    copied at redemption time and never follow later edits of the Reward.
    """
    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="+")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="redeemed_rewards")
    reward = models.ForeignKey(Reward, on_delete=models.SET_NULL, null=True, blank=True, related_name="redemptions")
    reward_name = models.CharField(max_length=100)

    coupon_code = models.CharField(max_length=20, unique=True)
    type = models.CharField(max_length=24, choices=RewardType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    points_spent = models.PositiveIntegerField(default=0)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    max_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    valid_categories = models.JSONField(default=list, blank=True)
    excluded_categories = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=10, choices=CouponStatus.choices, default=CouponStatus.ACTIVE, db_index=True)
    used_at = models.DateTimeField(null=True, blank=True)
    used_in_order = models.ForeignKey("orders.Order", on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    discount_applied = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "status"], name="redeemed_user_status_idx"),
        ]

    def __str__(self):
        return f"{self.coupon_code} [{self.status}]"

    @property
    def is_expired(self) -> bool:
        return self.status == CouponStatus.EXPIRED or self.expires_at <= timezone.now()

    @property
    def is_valid(self) -> bool:
        return self.status == CouponStatus.ACTIVE and self.expires_at > timezone.now()
