# catalog/views.py
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.shortcuts import get_object_or_404
from rest_framework import serializers
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import page_params, paginate, resolve_request_tenant
from common.exceptions import ValidationError
from inventory import ledger

from .models import Product, ProductStatus
from .serializers import ProductSerializer


class ProductWriteSerializer(serializers.ModelSerializer):
    # opening stock goes through the ledger, never straight onto the row
    initial_stock = serializers.IntegerField(required=False, min_value=0, default=0, write_only=True)

    class Meta:
        model = Product
        fields = [
            "sku", "name", "brand", "category", "description", "image_url",
            "price", "old_price", "stock_min_level", "stock_max_level",
            "reorder_point", "initial_stock",
        ]

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("price must be >= 0")
        return value


class ProductListCreateView(APIView):
    """
    GET  /api/v1/catalog/products?query=&category=&brand=&in_stock=&page=&page_size=
    POST /api/v1/catalog/products   (staff)
    """

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsAdminUser()]
        return [AllowAny()]

    def get(self, request):
        tenant = resolve_request_tenant(request)
        qs = Product.objects.filter(tenant=tenant)
        if not request.user.is_staff:
            qs = qs.active()
        elif request.GET.get("status"):
            qs = qs.filter(status=request.GET["status"].upper())

        q = (request.GET.get("query") or "").strip()
        if q:
            qs = qs.filter(Q(name__icontains=q) | Q(sku__icontains=q) | Q(brand__icontains=q))
        category = (request.GET.get("category") or "").strip()
        if category:
            qs = qs.filter(category__iexact=category)
        brand = (request.GET.get("brand") or "").strip()
        if brand:
            qs = qs.filter(brand__iexact=brand)
        if request.GET.get("in_stock") in ("true", "1"):
            qs = qs.filter(stock_current__gt=F("stock_reserved"))

        page, page_size = page_params(request)
        rows, meta = paginate(qs.order_by("name", "id"), page, page_size)
        return Response({"results": ProductSerializer(rows, many=True).data, **meta}, status=200)

    def post(self, request):
        tenant = resolve_request_tenant(request)
        ser = ProductWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        initial_stock = data.pop("initial_stock", 0)
        try:
            with transaction.atomic():
                product = Product.objects.create(tenant=tenant, **data)
        except IntegrityError:
            raise ValidationError(f"SKU '{data['sku']}' already exists")
        if initial_stock:
            product = ledger.add_stock(product, initial_stock, reason="initial stock", user=request.user)
        return Response(ProductSerializer(product).data, status=201)


class ProductDetailView(APIView):
    """
    GET    /api/v1/catalog/products/<id>
    PATCH  /api/v1/catalog/products/<id>   (staff; stock fields are not writable)
    DELETE /api/v1/catalog/products/<id>   (staff; deactivates)
    """

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAdminUser()]

    def _get(self, request, pk):
        tenant = resolve_request_tenant(request)
        qs = Product.objects.filter(tenant=tenant)
        if not request.user.is_staff:
            qs = qs.active()
        return get_object_or_404(qs, pk=pk)

    def get(self, request, pk):
        return Response(ProductSerializer(self._get(request, pk)).data, status=200)

    def patch(self, request, pk):
        product = self._get(request, pk)
        payload = {k: v for k, v in (request.data or {}).items() if k != "initial_stock"}
        ser = ProductWriteSerializer(product, data=payload, partial=True)
        ser.is_valid(raise_exception=True)
        if "status" in (request.data or {}):
            status_val = str(request.data["status"]).upper()
            if status_val not in ProductStatus.values:
                raise ValidationError(f"Unknown status '{request.data['status']}'")
            product.status = status_val
        try:
            with transaction.atomic():
                product = ser.save(status=product.status)
        except IntegrityError:
            raise ValidationError("SKU already exists")
        return Response(ProductSerializer(product).data, status=200)

    def delete(self, request, pk):
        product = self._get(request, pk)
        product.deactivate()
        return Response(status=204)
