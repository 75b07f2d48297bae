# shop-backend/inventory/api.py
from django.shortcuts import get_object_or_404
from rest_framework import serializers
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from catalog.models import Product
from catalog.serializers import ProductSerializer
from common.api import page_params, paginate, resolve_request_tenant
from common.exceptions import ValidationError

from . import ledger
from .models import MovementType


class MovementRowSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    created_at = serializers.DateTimeField()
    type = serializers.CharField()
    quantity = serializers.IntegerField()
    previous_stock = serializers.IntegerField()
    new_stock = serializers.IntegerField()
    reason = serializers.CharField(allow_blank=True)
    order_ref = serializers.CharField(allow_blank=True)
    performed_by = serializers.CharField(source="performed_by.username", default=None)


def _product(request, pk):
    tenant = resolve_request_tenant(request)
    return get_object_or_404(Product, pk=pk, tenant=tenant)


class _StockOpView(APIView):
    """
    POST /api/v1/inventory/products/<id>/<op>
    Body: {"quantity": 3, "reason": "...", "order_ref": "ORD-..."}
    """
    permission_classes = [IsAdminUser]
    needs_order_ref = True

    def apply(self, product, qty, payload, user):
        raise NotImplementedError

    def post(self, request, pk):
        product = _product(request, pk)
        payload = request.data or {}
        if self.needs_order_ref and not payload.get("order_ref"):
            raise ValidationError("order_ref required")
        item = self.apply(product, payload.get("quantity"), payload, request.user)
        return Response(ProductSerializer(item).data, status=200)


class RestockView(_StockOpView):
    needs_order_ref = False

    def apply(self, product, qty, payload, user):
        return ledger.add_stock(product, qty, reason=payload.get("reason") or "", user=user)


class ReserveView(_StockOpView):
    def apply(self, product, qty, payload, user):
        return ledger.reserve(product, qty, payload["order_ref"], user=user)


class ReleaseView(_StockOpView):
    def apply(self, product, qty, payload, user):
        return ledger.release(product, qty, payload["order_ref"], user=user)


class ConfirmSaleView(_StockOpView):
    def apply(self, product, qty, payload, user):
        return ledger.confirm_sale(product, qty, payload["order_ref"], user=user)


class ReturnView(_StockOpView):
    def apply(self, product, qty, payload, user):
        return ledger.return_stock(product, qty, payload["order_ref"], reason=payload.get("reason") or "", user=user)


class AdjustView(_StockOpView):
    """Body: {"delta": -2, "reason": "damaged"}"""
    needs_order_ref = False

    def apply(self, product, qty, payload, user):
        return ledger.adjust_stock(product, payload.get("delta"), payload.get("reason"), user=user)


class MovementListView(APIView):
    """
    GET /api/v1/inventory/products/<id>/movements?type=&page=&page_size=
    """
    permission_classes = [IsAdminUser]

    def get(self, request, pk):
        product = _product(request, pk)
        movement_type = (request.GET.get("type") or "").strip().lower() or None
        if movement_type and movement_type not in MovementType.values:
            raise ValidationError(f"Unknown movement type '{movement_type}'")
        page, page_size = page_params(request, default_size=50)
        rows, meta = paginate(ledger.movements_for(product, movement_type), page, page_size)
        return Response({"results": MovementRowSerializer(rows, many=True).data, **meta}, status=200)


class LowStockView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        tenant = resolve_request_tenant(request)
        try:
            limit = int(request.GET.get("limit", 20))
        except (TypeError, ValueError):
            limit = 20
        qs = ledger.low_stock_products(tenant)[:max(1, limit)]
        return Response(ProductSerializer(qs, many=True).data)
