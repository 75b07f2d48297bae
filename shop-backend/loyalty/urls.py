# shop-backend/loyalty/urls.py

from django.urls import path

from .views import (
    AdjustPointsView,
    LeaderboardView,
    LoyaltyAccountView,
    LoyaltyHistoryView,
    MyCouponsView,
    RedeemRewardView,
    ReferralView,
    RewardListView,
    ValidateCouponView,
)

app_name = "loyalty"

urlpatterns = [
    path("loyalty/account", LoyaltyAccountView.as_view(), name="account"),
    path("loyalty/history", LoyaltyHistoryView.as_view(), name="history"),
    path("loyalty/rewards", RewardListView.as_view(), name="rewards"),
    path("loyalty/redeem", RedeemRewardView.as_view(), name="reward-redeem"),
    path("loyalty/coupons", MyCouponsView.as_view(), name="coupons"),
    path("loyalty/validate-coupon", ValidateCouponView.as_view(), name="coupon-validate"),
    path("loyalty/referral", ReferralView.as_view(), name="referral"),
    path("loyalty/leaderboard", LeaderboardView.as_view(), name="leaderboard"),
    path("loyalty/accounts/<int:user_id>/adjust", AdjustPointsView.as_view(), name="account-adjust"),
]
