# catalog/serializers.py
from rest_framework import serializers
from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    available_stock = serializers.IntegerField(read_only=True)
    in_stock = serializers.BooleanField(read_only=True)
    low_stock = serializers.BooleanField(read_only=True)
    has_discount = serializers.BooleanField(read_only=True)
    discount_percent = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id", "sku", "name", "slug", "brand", "category", "image_url",
            "price", "old_price", "has_discount", "discount_percent",
            "stock_current", "stock_reserved", "available_stock",
            "stock_min_level", "stock_max_level", "reorder_point",
            "in_stock", "low_stock", "last_restocked_at", "status",
        ]
        read_only_fields = fields
