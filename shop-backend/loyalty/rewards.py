# loyalty/rewards.py
"""
Reward catalog redemption and the coupons it issues.
"""
import logging
import secrets
import string
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from carts.models import CouponType
from common.conf import commerce_setting
from common.exceptions import InvalidCoupon, NotFound, OutOfStock, ValidationError
from common.money import ZERO, money

from . import services
from .models import CouponStatus, RedeemedReward, Reward, RewardStatus, RewardType
from .tiers import TIER_ORDER, tier_at_least, tier_rank

logger = logging.getLogger(__name__)

_COUPON_ALPHABET = string.ascii_uppercase + string.digits


def _new_coupon_code() -> str:
    while True:
        code = "CPN-" + "".join(secrets.choice(_COUPON_ALPHABET) for _ in range(8))
        if not RedeemedReward.objects.filter(coupon_code=code).exists():
            return code


def _out_of_stock(reward) -> bool:
    if reward.stock is not None and reward.stock <= reward.redeemed_count:
        return True
    if reward.max_uses_total is not None and reward.redeemed_count >= reward.max_uses_total:
        return True
    return False


def can_redeem(reward, account):
    """Returns (ok, reason). Points balance is not checked here."""
    if not reward.is_available:
        return False, "Reward not available"
    if not tier_at_least(account.tier, reward.min_tier):
        return False, f"Requires tier {reward.min_tier} or higher"
    if reward.max_uses_per_user:
        uses = RedeemedReward.objects.filter(user_id=account.user_id, reward=reward).count()
        if uses >= reward.max_uses_per_user:
            return False, "Redemption limit reached for this reward"
    return True, ""


def redeem(reward, user) -> RedeemedReward:
    """
    Issue a coupon from `reward`: bumps redeemed_count under a row lock and
    snapshots the reward terms onto a new RedeemedReward.

    Raises:
        OutOfStock: finite stock (or total use cap) already exhausted
    """
    with transaction.atomic():
        locked = Reward.objects.select_for_update().get(pk=reward.pk)
        if _out_of_stock(locked):
            raise OutOfStock(f"Reward '{locked.name}' is out of stock", reward_id=locked.pk)
        locked.redeemed_count = F("redeemed_count") + 1
        locked.save(update_fields=["redeemed_count", "updated_at"])
        locked.refresh_from_db(fields=["redeemed_count"])

        coupon = RedeemedReward.objects.create(
            tenant_id=locked.tenant_id,
            user=user,
            reward=locked,
            reward_name=locked.name,
            coupon_code=_new_coupon_code(),
            type=locked.type,
            value=locked.value,
            points_spent=locked.points_cost,
            min_order_amount=locked.min_order_amount,
            max_discount=locked.max_discount,
            valid_categories=list(locked.valid_categories or []),
            excluded_categories=list(locked.excluded_categories or []),
            expires_at=timezone.now() + timedelta(days=int(commerce_setting("COUPON_TTL_DAYS"))),
        )
    reward.redeemed_count = locked.redeemed_count
    logger.info("Issued coupon %s for reward #%s", coupon.coupon_code, reward.pk)
    return coupon


def redeem_reward(tenant, user, reward_id):
    """
    Spend points on a reward. Stock, tier gate, per-user cap and balance are
    all checked under locks on the account and the reward, and the coupon is
    issued in the same transaction as the points debit.
    Returns (coupon, remaining_points).
    """
    account = services.get_or_create_account(tenant, user)
    try:
        reward = Reward.objects.get(pk=reward_id, tenant=tenant)
    except (Reward.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Reward {reward_id} not found")

    with transaction.atomic():
        locked_account = services.lock_account(account)
        locked_reward = Reward.objects.select_for_update().get(pk=reward.pk)
        if _out_of_stock(locked_reward):
            raise OutOfStock(f"Reward '{locked_reward.name}' is out of stock", reward_id=locked_reward.pk)
        ok, reason = can_redeem(locked_reward, locked_account)
        if not ok:
            raise ValidationError(reason, reward_id=locked_reward.pk)

        coupon = redeem(locked_reward, user)
        services.redeem_points(
            locked_account, locked_reward.points_cost, f"Redeemed {locked_reward.name}", reward=locked_reward,
        )
    services.sync_account(account, locked_account)
    return coupon, account.points


def available_rewards_for_tier(tenant, tier, type_=None):
    now = timezone.now()
    qs = (
        Reward.objects.filter(tenant=tenant, status=RewardStatus.ACTIVE)
        .filter(min_tier__in=TIER_ORDER[: tier_rank(tier) + 1])
        .filter(Q(stock__isnull=True) | Q(stock__gt=F("redeemed_count")))
        .filter(Q(start_date__isnull=True) | Q(start_date__lte=now))
        .filter(Q(end_date__isnull=True) | Q(end_date__gte=now))
    )
    if type_:
        qs = qs.filter(type=type_)
    return qs.order_by("display_order", "points_cost", "id")


def find_by_code(tenant, code) -> RedeemedReward:
    code = (code or "").strip().upper()
    coupon = RedeemedReward.objects.filter(tenant=tenant, coupon_code=code).select_related("reward").first()
    if coupon is None:
        raise NotFound("Coupon not found")
    return coupon


def coupon_discount(coupon, order_total) -> Decimal:
    total = Decimal(str(order_total))
    if coupon.type == RewardType.DISCOUNT_PERCENTAGE:
        discount = money(total * coupon.value / Decimal(100))
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
        return discount
    if coupon.type in (RewardType.DISCOUNT_FIXED, RewardType.COUPON):
        return money(coupon.value)
    # free shipping is handled on the shipping line, product rewards carry no discount
    return ZERO


def validate_coupon(tenant, code, order_total, categories=None, user=None) -> dict:
    """
    Check a coupon against an order amount and its categories.
    Returns {"valid": True, "coupon", "discount", "type"}.

    Raises:
        InvalidCoupon: unknown, not owned by user, used/expired/cancelled,
            below minimum amount or outside the category restrictions
    """
    try:
        coupon = find_by_code(tenant, code)
    except NotFound:
        raise InvalidCoupon("Coupon not found")
    if user is not None and coupon.user_id != user.pk:
        raise InvalidCoupon("Coupon not found")
    if not coupon.is_valid:
        raise InvalidCoupon("Coupon has expired or was already used")

    total = Decimal(str(order_total or 0))
    if coupon.min_order_amount and total < coupon.min_order_amount:
        raise InvalidCoupon(f"Minimum order amount is {coupon.min_order_amount}")

    cats = {c for c in (categories or []) if c}
    if coupon.valid_categories and cats and not cats & set(coupon.valid_categories):
        raise InvalidCoupon("Coupon is not valid for these categories")
    if cats & set(coupon.excluded_categories or []):
        raise InvalidCoupon("Coupon excludes some categories in this order")

    return {
        "valid": True,
        "coupon": coupon,
        "discount": coupon_discount(coupon, total),
        "type": coupon.type,
    }


def cart_coupon_type(coupon) -> str:
    mapping = {
        RewardType.DISCOUNT_PERCENTAGE: CouponType.PERCENTAGE,
        RewardType.DISCOUNT_FIXED: CouponType.FIXED,
        RewardType.COUPON: CouponType.FIXED,
        RewardType.FREE_SHIPPING: CouponType.FREE_SHIPPING,
    }
    if coupon.type not in mapping:
        raise InvalidCoupon("This reward cannot be applied as a cart discount")
    return mapping[coupon.type]


def use_coupon(coupon, order, discount_applied) -> RedeemedReward:
    """One-way: active -> used. A second call raises InvalidCoupon."""
    with transaction.atomic():
        locked = RedeemedReward.objects.select_for_update().get(pk=coupon.pk)
        if not locked.is_valid:
            raise InvalidCoupon(f"Coupon {locked.coupon_code} is not valid")
        locked.status = CouponStatus.USED
        locked.used_at = timezone.now()
        locked.used_in_order = order
        locked.discount_applied = money(discount_applied)
        locked.save(update_fields=["status", "used_at", "used_in_order", "discount_applied"])
    return locked


def cancel_coupon(coupon) -> RedeemedReward:
    with transaction.atomic():
        locked = RedeemedReward.objects.select_for_update().get(pk=coupon.pk)
        if locked.status != CouponStatus.ACTIVE:
            raise InvalidCoupon(f"Coupon {locked.coupon_code} is {locked.status}")
        locked.status = CouponStatus.CANCELLED
        locked.save(update_fields=["status"])
    return locked


def mark_expired_coupons(now=None) -> int:
    now = now or timezone.now()
    return RedeemedReward.objects.filter(status=CouponStatus.ACTIVE, expires_at__lte=now).update(
        status=CouponStatus.EXPIRED
    )


def active_coupons(tenant, user):
    return RedeemedReward.objects.filter(
        tenant=tenant, user=user, status=CouponStatus.ACTIVE, expires_at__gt=timezone.now(),
    ).order_by("expires_at")
