# shop-backend/loyalty/views.py
from django.contrib.auth import get_user_model
from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import page_params, paginate, resolve_request_tenant
from common.exceptions import InvalidCoupon, NotFound, ValidationError
from common.money import to_decimal

from . import rewards, services
from .models import TransactionType
from .serializers import (
    LeaderboardRowSerializer,
    LoyaltyAccountSerializer,
    PointsTransactionSerializer,
    RedeemedRewardSerializer,
    RewardSerializer,
)


def _my_account(request):
    return services.get_or_create_account(resolve_request_tenant(request), request.user)


class LoyaltyAccountView(APIView):
    """
    GET /api/v1/loyalty/account
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        account = _my_account(request)
        data = LoyaltyAccountSerializer(account).data
        data["summary"] = services.points_summary(account)
        return Response(data)


class LoyaltyHistoryView(APIView):
    """
    GET /api/v1/loyalty/history?type=earn&page=1&page_size=20
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        type_ = request.GET.get("type") or None
        if type_ and type_ not in TransactionType.values:
            raise ValidationError(f"Unknown transaction type '{type_}'")
        qs = services.transaction_history(_my_account(request), type_=type_)
        page, page_size = page_params(request)
        rows, meta = paginate(qs, page, page_size)
        return Response({**meta, "results": PointsTransactionSerializer(rows, many=True).data})


class RewardListView(APIView):
    """
    GET /api/v1/loyalty/rewards?type=discount_fixed

    Rewards the caller's tier can redeem right now.
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        account = _my_account(request)
        qs = rewards.available_rewards_for_tier(account.tenant, account.tier, type_=request.GET.get("type") or None)
        return Response(RewardSerializer(qs, many=True).data)


class RedeemRewardView(APIView):
    """
    POST /api/v1/loyalty/redeem   {"reward_id": 3}
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        tenant = resolve_request_tenant(request)
        try:
            reward_id = int((request.data or {}).get("reward_id"))
        except (TypeError, ValueError):
            raise ValidationError("reward_id required")
        coupon, remaining = rewards.redeem_reward(tenant, request.user, reward_id)
        return Response(
            {"redeemed_reward": RedeemedRewardSerializer(coupon).data, "remaining_points": remaining},
            status=201,
        )


class MyCouponsView(APIView):
    """
    GET /api/v1/loyalty/coupons   active, unexpired coupons of the caller
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        qs = rewards.active_coupons(resolve_request_tenant(request), request.user)
        return Response(RedeemedRewardSerializer(qs, many=True).data)


class ValidateCouponView(APIView):
    """
    POST /api/v1/loyalty/validate-coupon
    Body: {"code": "CPN-AB12CD34", "order_total": "25000", "categories": ["shoes"]}
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        data = request.data or {}
        code = (data.get("code") or "").strip()
        if not code:
            raise ValidationError("code required")
        order_total = to_decimal(data.get("order_total"), "order_total")
        categories = data.get("categories") or []
        if not isinstance(categories, list):
            raise ValidationError("categories must be a list")

        try:
            result = rewards.validate_coupon(
                resolve_request_tenant(request), code, order_total, categories=categories, user=request.user,
            )
        except InvalidCoupon as exc:
            return Response({"valid": False, "error": exc.message})
        return Response({"valid": True, "discount": str(result["discount"]), "type": result["type"]})


class ReferralView(APIView):
    """
    POST /api/v1/loyalty/referral
    Body: {"code": "ANAX7K2P"}
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        code = ((request.data or {}).get("code") or "").strip()
        if not code:
            raise ValidationError("code required")
        _, account = services.process_referral(resolve_request_tenant(request), request.user, code)
        return Response(LoyaltyAccountSerializer(account).data)


class LeaderboardView(APIView):
    """
    GET /api/v1/loyalty/leaderboard?limit=10
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        try:
            limit = max(1, min(int(request.GET.get("limit") or 10), 100))
        except (TypeError, ValueError):
            raise ValidationError("limit must be an integer")
        qs = services.leaderboard(resolve_request_tenant(request), limit=limit)
        return Response(LeaderboardRowSerializer(qs, many=True).data)


class AdjustPointsView(APIView):
    """
    POST /api/v1/loyalty/accounts/<user_id>/adjust
    Body: {"delta": -150, "reason": "Duplicate accrual"}
    """

    permission_classes = [permissions.IsAdminUser]

    def post(self, request, user_id):
        tenant = resolve_request_tenant(request)
        user = get_user_model().objects.filter(pk=user_id).first()
        if user is None:
            raise NotFound(f"User {user_id} not found")
        data = request.data or {}
        account = services.get_or_create_account(tenant, user)
        txn = services.adjust_points(account, data.get("delta"), data.get("reason"), request.user)
        return Response({
            "account": LoyaltyAccountSerializer(account).data,
            "transaction": PointsTransactionSerializer(txn).data,
        })
