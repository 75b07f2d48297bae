# carts/serializers.py
from rest_framework import serializers

from .models import Cart, CartItem


class CartItemSerializer(serializers.ModelSerializer):
    product_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = CartItem
        fields = ["id", "product_id", "sku", "name", "brand", "image_url", "price", "quantity", "subtotal", "added_at"]
        read_only_fields = fields


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    item_count = serializers.SerializerMethodField()
    coupon = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = [
            "id", "currency", "items", "item_count", "coupon",
            "subtotal", "discount", "tax", "shipping_cost", "total",
            "expires_at", "updated_at",
        ]
        read_only_fields = fields

    def get_item_count(self, obj):
        return sum(i.quantity for i in obj.items.all())

    def get_coupon(self, obj):
        if not obj.coupon_code:
            return None
        return {
            "code": obj.coupon_code,
            "type": obj.coupon_type,
            "value": str(obj.coupon_value),
            "max_discount": str(obj.coupon_max_discount) if obj.coupon_max_discount is not None else None,
            "loyalty": obj.redeemed_reward_id is not None,
        }


class AddItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(default=1)


class CouponSerializer(serializers.Serializer):
    """Either a loyalty coupon code alone, or a code with explicit terms."""
    code = serializers.CharField(max_length=40)
    discount_type = serializers.CharField(required=False, allow_blank=True)
    discount_value = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    max_discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
