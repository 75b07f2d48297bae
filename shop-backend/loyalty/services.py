# shop-backend/loyalty/services.py
"""
Points accrual, redemption and expiry.

Every function that changes LoyaltyAccount.points locks the account row,
writes exactly one PointsTransaction carrying the resulting balance, and
re-derives the tier from lifetime points.
"""
import logging
import math
import secrets
import string
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from common.conf import commerce_setting
from common.exceptions import InsufficientPoints, NotFound, ValidationError
from common.models import AuditLog

from .models import LoyaltyAccount, PointsBatch, PointsTransaction, TransactionType
from .tiers import DEFAULT_POLICY

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _new_referral_code(user) -> str:
    prefix = "".join(c for c in (user.get_username() or "") if c.isalnum())[:3].upper() or "REF"
    while True:
        code = prefix + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(5))
        if not LoyaltyAccount.objects.filter(referral_code=code).exists():
            return code


def get_or_create_account(tenant, user) -> LoyaltyAccount:
    account = LoyaltyAccount.objects.filter(tenant=tenant, user=user).first()
    if account:
        return account
    account, _ = LoyaltyAccount.objects.get_or_create(
        tenant=tenant, user=user, defaults={"referral_code": _new_referral_code(user)},
    )
    return account


def lock_account(account) -> LoyaltyAccount:
    return LoyaltyAccount.objects.select_for_update().get(pk=account.pk)


def sync_account(source, locked):
    """Copy the locked row's state back onto the caller's instance."""
    for f in ("points", "lifetime_points", "redeemed_points", "tier", "tier_updated_at",
              "referral_count", "last_activity_at", "updated_at"):
        setattr(source, f, getattr(locked, f))


def _retier(account, now, policy=DEFAULT_POLICY) -> bool:
    tier = policy.tier_for(account.lifetime_points)
    if tier != account.tier:
        logger.info("Loyalty account #%s moved %s -> %s", account.pk, account.tier, tier)
        account.tier = tier
        account.tier_updated_at = now
        return True
    return False


def _consume_batches(account, amount):
    """Take `amount` points out of batches, soonest-expiring first."""
    remaining = amount
    for batch in account.batches.filter(amount__gt=0).order_by("expires_at", "id"):
        if remaining <= 0:
            break
        take = min(batch.amount, remaining)
        batch.amount -= take
        remaining -= take
        if batch.amount:
            batch.save(update_fields=["amount"])
        else:
            batch.delete()


def _accrue(account, awarded, *, type_, reason, base_points=None, multiplier=Decimal("1"),
            order=None, adjusted_by=None):
    now = timezone.now()
    expires_at = now + timedelta(days=int(commerce_setting("POINTS_TTL_DAYS")))
    with transaction.atomic():
        locked = lock_account(account)
        locked.points += awarded
        locked.lifetime_points += awarded
        locked.last_activity_at = now
        _retier(locked, now)
        locked.save()
        PointsBatch.objects.create(account=locked, amount=awarded, expires_at=expires_at)
        txn = PointsTransaction.objects.create(
            account=locked,
            type=type_,
            points=awarded,
            base_points=base_points,
            multiplier=multiplier,
            balance_after=locked.points,
            order=order,
            reason=reason,
            expires_at=expires_at,
            adjusted_by=adjusted_by,
        )
    sync_account(account, locked)
    return txn


def add_points(account, base_amount, reason, order=None):
    """
    Earn points: floor(base_amount * tier multiplier). The multiplier is the
    one of the tier held *before* this accrual.
    Returns the PointsTransaction, or None when nothing was awarded.
    """
    try:
        base = int(base_amount)
    except (TypeError, ValueError):
        raise ValidationError("points must be an integer")
    if base < 0:
        raise ValidationError("points must not be negative")

    # tier is read under the account lock
    with transaction.atomic():
        multiplier = DEFAULT_POLICY.multiplier(lock_account(account).tier)
        awarded = int(math.floor(Decimal(base) * multiplier))
        if awarded <= 0:
            return None
        txn = _accrue(
            account, awarded, type_=TransactionType.EARN, reason=reason,
            base_points=base, multiplier=multiplier, order=order,
        )
    logger.info("Awarded %s points (%s x %s) to account #%s", awarded, base, multiplier, account.pk)
    return txn


def award_bonus(account, points, reason, type_=TransactionType.BONUS, adjusted_by=None):
    """Bonus and referral points: no tier multiplier, same expiry rules."""
    if type_ not in (TransactionType.BONUS, TransactionType.REFERRAL, TransactionType.ADJUSTMENT):
        raise ValidationError(f"'{type_}' is not a bonus type")
    points = int(points)
    if points <= 0:
        raise ValidationError("bonus points must be greater than 0")
    return _accrue(account, points, type_=type_, reason=reason, base_points=points, adjusted_by=adjusted_by)


def redeem_points(account, amount, reason, reward=None):
    """
    Spend points. Lifetime points (and so the tier) are untouched.

    Raises:
        InsufficientPoints: if the balance is lower than amount
    """
    amount = int(amount)
    if amount <= 0:
        raise ValidationError("points to redeem must be greater than 0")

    with transaction.atomic():
        locked = lock_account(account)
        if locked.points < amount:
            raise InsufficientPoints(
                f"Insufficient points: balance {locked.points}, required {amount}",
                balance=locked.points,
                required=amount,
            )
        locked.points -= amount
        locked.redeemed_points += amount
        locked.last_activity_at = timezone.now()
        locked.save()
        _consume_batches(locked, amount)
        txn = PointsTransaction.objects.create(
            account=locked,
            type=TransactionType.REDEEM,
            points=-amount,
            balance_after=locked.points,
            reward=reward,
            reason=reason,
        )
    sync_account(account, locked)
    return txn


def adjust_points(account, delta, reason, actor):
    """
    Manual admin correction. Credits accrue like a bonus (with expiry);
    debits fail rather than overdraw.
    """
    try:
        delta = int(delta)
    except (TypeError, ValueError):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if not (reason or "").strip():
        raise ValidationError("reason is required for adjustments")

    if delta > 0:
        txn = award_bonus(account, delta, reason, type_=TransactionType.ADJUSTMENT, adjusted_by=actor)
    else:
        with transaction.atomic():
            locked = lock_account(account)
            if locked.points < -delta:
                raise InsufficientPoints(
                    f"Cannot remove {-delta} points from a balance of {locked.points}",
                    balance=locked.points,
                )
            locked.points += delta
            locked.last_activity_at = timezone.now()
            locked.save()
            _consume_batches(locked, -delta)
            txn = PointsTransaction.objects.create(
                account=locked,
                type=TransactionType.ADJUSTMENT,
                points=delta,
                balance_after=locked.points,
                reason=reason,
                adjusted_by=actor,
            )
        sync_account(account, locked)

    AuditLog.record(
        tenant=account.tenant,
        action="loyalty.points_adjusted",
        user=actor,
        obj=account,
        severity="warning",
        metadata={"delta": delta, "reason": reason, "balance_after": txn.balance_after},
    )
    return txn


def process_expired_points(account, now=None) -> int:
    """
    Drop expired batches and take their points off the balance (never below
    zero). Returns the points removed; 0 and no transaction when nothing
    expired, so repeated runs are no-ops.
    """
    now = now or timezone.now()
    with transaction.atomic():
        locked = lock_account(account)
        expired = locked.batches.filter(expires_at__lte=now)
        if not expired.exists():
            return 0
        total = expired.aggregate(s=Sum("amount"))["s"] or 0
        expired.delete()

        before = locked.points
        locked.points = max(0, before - total)
        locked.save()
        PointsTransaction.objects.create(
            account=locked,
            type=TransactionType.EXPIRE,
            points=locked.points - before,
            balance_after=locked.points,
            reason="Points expired",
        )
    sync_account(account, locked)
    logger.info("Expired %s points on account #%s", before - locked.points, account.pk)
    return before - locked.points


def expire_all_points(now=None):
    """Sweep every account with expired batches. Returns (accounts, points)."""
    now = now or timezone.now()
    ids = (
        PointsBatch.objects.filter(expires_at__lte=now)
        .values_list("account_id", flat=True).distinct()
    )
    accounts = points = 0
    for account in LoyaltyAccount.objects.filter(pk__in=list(ids)):
        points += process_expired_points(account, now=now)
        accounts += 1
    return accounts, points


def process_referral(tenant, new_user, referral_code):
    """
    Link a new member to the referrer owning `referral_code` and pay both
    referral bonuses. Returns (referrer_account, new_account).
    """
    code = (referral_code or "").strip().upper()
    referrer = LoyaltyAccount.objects.filter(tenant=tenant, referral_code=code, is_active=True).first()
    if referrer is None:
        raise NotFound("Invalid referral code")
    if referrer.user_id == new_user.pk:
        raise ValidationError("You cannot use your own referral code")

    with transaction.atomic():
        new_account = get_or_create_account(tenant, new_user)
        new_account = lock_account(new_account)
        if new_account.referred_by_id:
            raise ValidationError("Referral already applied to this account")
        new_account.referred_by = referrer.user
        new_account.save(update_fields=["referred_by", "updated_at"])

        locked = lock_account(referrer)
        locked.referral_count += 1
        locked.save(update_fields=["referral_count", "updated_at"])

        award_bonus(locked, commerce_setting("REFERRAL_REFERRER_BONUS"), "Referral bonus",
                    type_=TransactionType.REFERRAL)
        award_bonus(new_account, commerce_setting("REFERRAL_WELCOME_BONUS"), "Referral welcome bonus",
                    type_=TransactionType.REFERRAL)
    return locked, new_account


def transaction_history(account, type_=None, start=None, end=None):
    qs = account.transactions.select_related("order", "reward")
    if type_:
        qs = qs.filter(type=type_)
    if start:
        qs = qs.filter(created_at__gte=start)
    if end:
        qs = qs.filter(created_at__lte=end)
    return qs.order_by("-created_at", "-id")


def points_summary(account) -> dict:
    summary = {"earned": 0, "redeemed": 0, "expired": 0, "bonus": 0, "transactions": 0}
    rows = account.transactions.values("type").annotate(total=Sum("points"), n=Count("id"))
    for row in rows:
        if row["type"] == TransactionType.EARN:
            summary["earned"] = row["total"]
        elif row["type"] == TransactionType.REDEEM:
            summary["redeemed"] = abs(row["total"])
        elif row["type"] == TransactionType.EXPIRE:
            summary["expired"] = abs(row["total"])
        elif row["type"] in (TransactionType.BONUS, TransactionType.REFERRAL):
            summary["bonus"] += row["total"]
        summary["transactions"] += row["n"]
    return summary


def leaderboard(tenant, limit=10):
    return (
        LoyaltyAccount.objects.filter(tenant=tenant, is_active=True)
        .select_related("user")
        .order_by("-lifetime_points", "id")[:limit]
    )
