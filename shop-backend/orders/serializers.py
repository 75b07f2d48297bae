# shop-backend/orders/serializers.py

from rest_framework import serializers

from common.models import AuditLog

from .models import Order, OrderItem, OrderStatusEvent, PaymentMethod, ShippingMethod


class OrderItemSerializer(serializers.ModelSerializer):
    product_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "product_id", "sku", "name", "brand", "category", "image_url", "price", "quantity", "subtotal"]
        read_only_fields = fields


class OrderStatusEventSerializer(serializers.ModelSerializer):
    actor_name = serializers.SerializerMethodField()

    class Meta:
        model = OrderStatusEvent
        fields = ["from_status", "status", "comment", "actor_name", "created_at"]
        read_only_fields = fields

    def get_actor_name(self, obj):
        u = obj.actor
        if not u:
            return None
        return (u.get_full_name() or "").strip() or u.get_username()


class OrderListSerializer(serializers.ModelSerializer):
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "status", "payment_status", "total", "currency",
            "item_count", "created_at",
        ]
        read_only_fields = fields


class OrderDetailSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = OrderStatusEventSerializer(source="status_events", many=True, read_only=True)
    can_cancel = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id", "order_number", "status", "can_cancel",
            "items",
            "subtotal", "discount", "tax", "shipping_cost", "total", "currency",
            "coupon_code", "coupon_type", "coupon_value",
            "loyalty_points_used", "loyalty_points_earned",
            "payment_method", "payment_status", "payment_transaction_id", "paid_at",
            "shipping_method", "shipping_address", "carrier", "tracking_code", "tracking_url",
            "estimated_delivery", "shipped_at", "delivered_at",
            "customer_notes",
            "cancellation_reason", "cancelled_at",
            "refund_amount", "refund_reason", "refunded_at",
            "status_history",
            "created_at", "updated_at",
        ]
        read_only_fields = fields


class CheckoutSerializer(serializers.Serializer):
    shipping_address = serializers.DictField()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    shipping_method = serializers.ChoiceField(choices=ShippingMethod.choices, default=ShippingMethod.STANDARD)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class TrackingSerializer(serializers.Serializer):
    carrier = serializers.CharField(max_length=64)
    tracking_code = serializers.CharField(max_length=64)
    tracking_url = serializers.URLField(required=False, allow_blank=True, default="")
    estimated_delivery = serializers.DateTimeField(required=False, allow_null=True, default=None)


class AuditLogSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = ["id", "action", "severity", "object_type", "object_id", "user", "user_name", "metadata", "created_at"]
        read_only_fields = fields

    def get_user_name(self, obj):
        u = obj.user
        return u.get_username() if u else None
