from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from common.exceptions import InsufficientPoints, InvalidCoupon, NotFound, OutOfStock, ValidationError
from common.models import AuditLog
from loyalty import rewards, services
from loyalty.models import (
    CouponStatus,
    PointsBatch,
    PointsTransaction,
    RedeemedReward,
    Reward,
    RewardType,
    TransactionType,
)
from loyalty.tiers import DEFAULT_POLICY, Tier
from loyalty.views import RedeemRewardView, ValidateCouponView
from tenants.models import Tenant

User = get_user_model()


class LoyaltyTestBase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme")
        self.user = User.objects.create_user(username="ana", password="test-pass")
        self.account = services.get_or_create_account(self.tenant, self.user)

    def refresh(self):
        self.account.refresh_from_db()
        return self.account


class TierPolicyTests(TestCase):
    def test_thresholds(self):
        self.assertEqual(DEFAULT_POLICY.tier_for(0), Tier.BRONZE)
        self.assertEqual(DEFAULT_POLICY.tier_for(999), Tier.BRONZE)
        self.assertEqual(DEFAULT_POLICY.tier_for(1000), Tier.SILVER)
        self.assertEqual(DEFAULT_POLICY.tier_for(5000), Tier.GOLD)
        self.assertEqual(DEFAULT_POLICY.tier_for(15000), Tier.PLATINUM)

    def test_tier_never_drops_as_lifetime_grows(self):
        order = [Tier.BRONZE, Tier.SILVER, Tier.GOLD, Tier.PLATINUM]
        previous = 0
        for points in range(0, 20001, 250):
            rank = order.index(DEFAULT_POLICY.tier_for(points))
            self.assertGreaterEqual(rank, previous)
            previous = rank

    def test_points_to_next_tier(self):
        self.assertEqual(DEFAULT_POLICY.points_to_next_tier(Tier.BRONZE, 400), 600)
        self.assertEqual(DEFAULT_POLICY.points_to_next_tier(Tier.PLATINUM, 20000), 0)


class EarnAndRedeemTests(LoyaltyTestBase):
    def test_first_accrual_crosses_into_silver(self):
        txn = services.add_points(self.account, 1000, "order")
        a = self.refresh()
        self.assertEqual(a.points, 1000)
        self.assertEqual(a.lifetime_points, 1000)
        self.assertEqual(a.tier, Tier.SILVER)
        self.assertIsNotNone(a.tier_updated_at)
        self.assertEqual(txn.balance_after, 1000)
        self.assertEqual(txn.multiplier, Decimal("1"))

    def test_multiplier_of_current_tier_applies(self):
        services.add_points(self.account, 1000, "order")
        txn = services.add_points(self.account, 101, "order")
        self.assertEqual(txn.points, 126)
        self.assertEqual(txn.base_points, 101)
        self.assertEqual(self.refresh().points, 1126)

    def test_zero_base_awards_nothing(self):
        self.assertIsNone(services.add_points(self.account, 0, "order"))
        self.assertFalse(PointsTransaction.objects.exists())

    def test_redeem_keeps_lifetime_and_tier(self):
        services.add_points(self.account, 1200, "order")
        services.redeem_points(self.account, 1000, "gift")
        a = self.refresh()
        self.assertEqual(a.points, 200)
        self.assertEqual(a.lifetime_points, 1200)
        self.assertEqual(a.redeemed_points, 1000)
        self.assertEqual(a.tier, Tier.SILVER)
        self.assertEqual(sum(PointsBatch.objects.values_list("amount", flat=True)), 200)

    def test_overdraw_is_rejected_without_side_effects(self):
        services.add_points(self.account, 100, "order")
        with self.assertRaises(InsufficientPoints):
            services.redeem_points(self.account, 101, "gift")
        self.assertEqual(self.refresh().points, 100)
        self.assertEqual(PointsTransaction.objects.filter(type=TransactionType.REDEEM).count(), 0)

    def test_balance_matches_last_transaction(self):
        services.add_points(self.account, 300, "order")
        services.award_bonus(self.account, 50, "birthday")
        services.redeem_points(self.account, 120, "gift")
        last = PointsTransaction.objects.filter(account=self.account).order_by("-id").first()
        self.assertEqual(last.balance_after, self.refresh().points)
        self.assertEqual(self.account.points, 230)


class ExpiryTests(LoyaltyTestBase):
    def test_expiry_removes_points_once(self):
        services.add_points(self.account, 500, "order")
        PointsBatch.objects.update(expires_at=timezone.now() - timedelta(days=1))

        self.assertEqual(services.process_expired_points(self.account), 500)
        self.assertEqual(services.process_expired_points(self.account), 0)
        a = self.refresh()
        self.assertEqual(a.points, 0)
        self.assertEqual(a.lifetime_points, 500)
        self.assertEqual(PointsTransaction.objects.filter(type=TransactionType.EXPIRE).count(), 1)

    def test_redeemed_points_are_taken_from_oldest_batch(self):
        services.add_points(self.account, 100, "first")
        services.add_points(self.account, 100, "second")
        first = PointsBatch.objects.order_by("id").first()
        PointsBatch.objects.filter(pk=first.pk).update(expires_at=timezone.now() + timedelta(days=1))

        services.redeem_points(self.account, 150, "gift")
        # the soonest-expiring batch was fully consumed
        PointsBatch.objects.filter(expires_at__lte=timezone.now() + timedelta(days=2)).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )
        self.assertEqual(services.process_expired_points(self.account), 0)
        self.assertEqual(self.refresh().points, 50)

    def test_sweep_covers_all_accounts(self):
        other = services.get_or_create_account(self.tenant, User.objects.create_user(username="bo"))
        services.add_points(self.account, 10, "a")
        services.add_points(other, 20, "b")
        PointsBatch.objects.update(expires_at=timezone.now() - timedelta(days=1))
        self.assertEqual(services.expire_all_points(), (2, 30))
        self.assertEqual(services.expire_all_points(), (0, 0))


class AdjustAndReferralTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user(username="admin", password="x", is_staff=True)

    def test_adjustment_is_audited(self):
        services.adjust_points(self.account, 40, "goodwill", self.admin)
        services.adjust_points(self.account, -15, "duplicate", self.admin)
        self.assertEqual(self.refresh().points, 25)
        logs = AuditLog.objects.filter(action="loyalty.points_adjusted")
        self.assertEqual(logs.count(), 2)
        self.assertEqual(logs.first().severity, "warning")

    def test_adjustment_validation(self):
        with self.assertRaises(ValidationError):
            services.adjust_points(self.account, 10, "", self.admin)
        with self.assertRaises(ValidationError):
            services.adjust_points(self.account, 0, "nothing", self.admin)
        with self.assertRaises(InsufficientPoints):
            services.adjust_points(self.account, -1, "too much", self.admin)

    @override_settings(COMMERCE={"REFERRAL_REFERRER_BONUS": 500, "REFERRAL_WELCOME_BONUS": 200})
    def test_referral_pays_both_sides_once(self):
        newcomer = User.objects.create_user(username="cy")
        referrer, new_account = services.process_referral(self.tenant, newcomer, self.account.referral_code.lower())

        self.assertEqual(self.refresh().points, 500)
        self.assertEqual(self.account.referral_count, 1)
        new_account.refresh_from_db()
        self.assertEqual(new_account.points, 200)
        self.assertEqual(new_account.referred_by, self.user)
        self.assertEqual(PointsTransaction.objects.filter(type=TransactionType.REFERRAL).count(), 2)

        with self.assertRaises(ValidationError):
            services.process_referral(self.tenant, newcomer, self.account.referral_code)

    def test_referral_rejections(self):
        with self.assertRaises(ValidationError):
            services.process_referral(self.tenant, self.user, self.account.referral_code)
        with self.assertRaises(NotFound):
            services.process_referral(self.tenant, User.objects.create_user(username="dee"), "NOPE1234")


class RewardTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        self.reward = Reward.objects.create(
            tenant=self.tenant, name="5000 off", points_cost=300,
            type=RewardType.DISCOUNT_FIXED, value=Decimal("5000"), min_order_amount=Decimal("20000"),
        )

    def test_last_unit_goes_to_first_redeemer(self):
        Reward.objects.filter(pk=self.reward.pk).update(stock=1)
        self.reward.refresh_from_db()

        rewards.redeem(self.reward, self.user)
        self.reward.refresh_from_db()
        self.assertEqual(self.reward.redeemed_count, 1)

        with self.assertRaises(OutOfStock):
            rewards.redeem(self.reward, User.objects.create_user(username="bo"))
        self.assertEqual(RedeemedReward.objects.count(), 1)

    def test_redeem_reward_spends_points_and_issues_coupon(self):
        services.add_points(self.account, 500, "order")
        coupon, remaining = rewards.redeem_reward(self.tenant, self.user, self.reward.pk)

        self.assertEqual(remaining, 200)
        self.assertTrue(coupon.coupon_code.startswith("CPN-"))
        self.assertEqual(coupon.points_spent, 300)
        self.assertEqual(coupon.status, CouponStatus.ACTIVE)
        self.assertEqual(self.refresh().tier, Tier.BRONZE)

    def test_failed_debit_rolls_back_issue(self):
        services.add_points(self.account, 100, "order")
        with self.assertRaises(InsufficientPoints):
            rewards.redeem_reward(self.tenant, self.user, self.reward.pk)
        self.reward.refresh_from_db()
        self.assertEqual(self.reward.redeemed_count, 0)
        self.assertFalse(RedeemedReward.objects.exists())

    def test_tier_gate(self):
        Reward.objects.filter(pk=self.reward.pk).update(min_tier=Tier.GOLD)
        services.award_bonus(self.account, 400, "gift")
        with self.assertRaises(ValidationError):
            rewards.redeem_reward(self.tenant, self.user, self.reward.pk)
        self.assertEqual(self.refresh().points, 400)

    def test_coupon_is_single_use(self):
        coupon = rewards.redeem(self.reward, self.user)
        rewards.use_coupon(coupon, None, Decimal("5000"))
        with self.assertRaises(InvalidCoupon):
            rewards.use_coupon(coupon, None, Decimal("5000"))

    def test_validate_coupon_rules(self):
        coupon = rewards.redeem(self.reward, self.user)
        RedeemedReward.objects.filter(pk=coupon.pk).update(excluded_categories=["gift-cards"])

        result = rewards.validate_coupon(self.tenant, coupon.coupon_code, Decimal("25000"), user=self.user)
        self.assertEqual(result["discount"], Decimal("5000.00"))

        with self.assertRaises(InvalidCoupon):
            rewards.validate_coupon(self.tenant, coupon.coupon_code, Decimal("19999"))
        with self.assertRaises(InvalidCoupon):
            rewards.validate_coupon(self.tenant, coupon.coupon_code, Decimal("25000"), categories=["gift-cards"])
        with self.assertRaises(InvalidCoupon):
            rewards.validate_coupon(
                self.tenant, coupon.coupon_code, Decimal("25000"), user=User.objects.create_user(username="eve"),
            )

        RedeemedReward.objects.filter(pk=coupon.pk).update(expires_at=timezone.now() - timedelta(seconds=1))
        with self.assertRaises(InvalidCoupon):
            rewards.validate_coupon(self.tenant, coupon.coupon_code, Decimal("25000"))
        self.assertEqual(rewards.mark_expired_coupons(), 1)

    def test_percentage_coupon_respects_cap(self):
        coupon = RedeemedReward.objects.create(
            tenant=self.tenant, user=self.user, reward_name="20%", coupon_code="CPN-PCT00001",
            type=RewardType.DISCOUNT_PERCENTAGE, value=Decimal("20"), max_discount=Decimal("3000"),
            expires_at=timezone.now() + timedelta(days=1),
        )
        self.assertEqual(rewards.coupon_discount(coupon, Decimal("10000")), Decimal("2000.00"))
        self.assertEqual(rewards.coupon_discount(coupon, Decimal("50000")), Decimal("3000.00"))


class LoyaltyApiTests(LoyaltyTestBase):
    def setUp(self):
        super().setUp()
        self.factory = APIRequestFactory()
        self.reward = Reward.objects.create(
            tenant=self.tenant, name="Free shipping", points_cost=100, type=RewardType.FREE_SHIPPING,
        )

    def _post(self, view, path, data, **kwargs):
        request = self.factory.post(path, data, format="json")
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        return view.as_view()(request, **kwargs)

    def test_redeem_returns_coupon_and_balance(self):
        services.award_bonus(self.account, 150, "welcome")
        resp = self._post(RedeemRewardView, "/api/v1/loyalty/redeem", {"reward_id": self.reward.pk})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["remaining_points"], 50)
        self.assertEqual(resp.data["redeemed_reward"]["type"], RewardType.FREE_SHIPPING)

    def test_redeem_without_points_maps_to_409(self):
        resp = self._post(RedeemRewardView, "/api/v1/loyalty/redeem", {"reward_id": self.reward.pk})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "insufficient_points")

    def test_validate_unknown_coupon(self):
        resp = self._post(ValidateCouponView, "/api/v1/loyalty/validate-coupon",
                          {"code": "CPN-NOPE", "order_total": "1000"})
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.data["valid"])
        self.assertIn("error", resp.data)
