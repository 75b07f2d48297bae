# payments/serializers.py
from rest_framework import serializers

from orders.models import PaymentMethod

from .models import Gateway, Payment


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id", "order", "order_number", "amount", "currency", "method", "gateway", "status",
            "transaction_id", "gateway_transaction_id", "authorization_code", "card_brand", "card_last4",
            "error_code", "error_message",
            "refund_amount", "refund_reason", "refunded_at",
            "processed_at", "completed_at", "failed_at", "created_at",
        ]
        read_only_fields = fields


class ConfirmPaymentSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    gateway = serializers.ChoiceField(choices=Gateway.choices)


class RefundSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
