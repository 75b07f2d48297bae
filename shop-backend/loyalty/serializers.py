# shop-backend/loyalty/serializers.py

from rest_framework import serializers

from .models import LoyaltyAccount, PointsTransaction, RedeemedReward, Reward


class LoyaltyAccountSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.get_username", read_only=True)
    multiplier = serializers.DecimalField(max_digits=4, decimal_places=2, read_only=True)
    next_tier = serializers.CharField(read_only=True, allow_null=True)
    points_to_next_tier = serializers.IntegerField(read_only=True)
    benefits = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = LoyaltyAccount
        fields = [
            "id",
            "username",
            "points",
            "lifetime_points",
            "redeemed_points",
            "tier",
            "multiplier",
            "next_tier",
            "points_to_next_tier",
            "benefits",
            "referral_code",
            "referral_count",
            "last_activity_at",
        ]
        read_only_fields = fields


class PointsTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsTransaction
        fields = [
            "id",
            "type",
            "points",
            "base_points",
            "multiplier",
            "balance_after",
            "order",
            "reward",
            "reason",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields


class RewardSerializer(serializers.ModelSerializer):
    remaining_stock = serializers.IntegerField(read_only=True, allow_null=True)
    restrictions = serializers.SerializerMethodField()

    class Meta:
        model = Reward
        fields = [
            "id",
            "name",
            "slug",
            "description",
            "image_url",
            "points_cost",
            "type",
            "value",
            "min_tier",
            "remaining_stock",
            "is_featured",
            "restrictions",
            "terms",
            "end_date",
        ]
        read_only_fields = fields

    def get_restrictions(self, obj):
        return obj.restrictions()


class RedeemedRewardSerializer(serializers.ModelSerializer):
    class Meta:
        model = RedeemedReward
        fields = [
            "id",
            "reward",
            "reward_name",
            "coupon_code",
            "type",
            "value",
            "points_spent",
            "min_order_amount",
            "max_discount",
            "status",
            "used_at",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields


class LeaderboardRowSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.get_username", read_only=True)

    class Meta:
        model = LoyaltyAccount
        fields = ["username", "tier", "lifetime_points"]
        read_only_fields = fields
