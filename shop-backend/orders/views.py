# shop-backend/orders/views.py
from django.db.models import Q
from rest_framework import generics, permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import aware_dt_param, page_params, paginate, resolve_request_tenant
from common.exceptions import ValidationError
from common.models import AuditLog

from . import services
from .models import Order, OrderStatus
from .serializers import (
    AuditLogSerializer,
    CheckoutSerializer,
    OrderDetailSerializer,
    OrderListSerializer,
    TrackingSerializer,
)


def _detail(order, status=200):
    return Response(OrderDetailSerializer(order).data, status=status)


class OrderListView(APIView):
    """
    GET /api/v1/orders/?status=&date_from=&date_to=&query=&page=&page_size=

    Customers see their own orders; staff see every order of the tenant.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        tenant = resolve_request_tenant(request)
        status = (request.query_params.get("status") or "").strip()
        if status and status not in OrderStatus.values:
            raise ValidationError(f"Unknown order status '{status}'")

        if request.user.is_staff:
            qs = Order.objects.filter(tenant=tenant).prefetch_related("items").order_by("-created_at", "-id")
            if status:
                qs = qs.filter(status=status)
            query = (request.query_params.get("query") or "").strip()
            if query:
                qs = qs.filter(
                    Q(order_number__icontains=query)
                    | Q(user__username__icontains=query)
                    | Q(user__email__icontains=query)
                    | Q(items__sku__icontains=query)
                ).distinct()
        else:
            qs = services.user_orders(tenant, request.user, status=status or None)

        df = aware_dt_param(request.query_params.get("date_from"))
        dt_ = aware_dt_param(request.query_params.get("date_to"), end_of_day=True)
        if df:
            qs = qs.filter(created_at__gte=df)
        if dt_:
            qs = qs.filter(created_at__lte=dt_)

        page, page_size = page_params(request)
        rows, meta = paginate(qs, page, page_size)
        return Response({**meta, "results": OrderListSerializer(rows, many=True).data})


class CheckoutView(APIView):
    """
    POST /api/v1/orders/checkout
    Body: {"shipping_address": {"street": "...", "city": "..."},
           "payment_method": "webpay", "shipping_method": "standard", "notes": ""}
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        s = CheckoutSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        order = services.create_from_cart(
            resolve_request_tenant(request),
            request.user,
            data["shipping_address"],
            data["payment_method"],
            shipping_method=data["shipping_method"],
            notes=data.get("notes", ""),
        )
        return _detail(order, status=201)


class OrderDetailView(APIView):
    """
    GET /api/v1/orders/<pk>
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        return _detail(services.get_order(resolve_request_tenant(request), pk, user=request.user))


class OrderCancelView(APIView):
    """
    POST /api/v1/orders/<pk>/cancel
    Body: {"reason": "changed my mind"}
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        order = services.get_order(resolve_request_tenant(request), pk, user=request.user)
        reason = ((request.data or {}).get("reason") or "").strip() or "Cancelled by customer"
        return _detail(services.cancel(order, reason, actor=request.user))


class OrderStatusView(APIView):
    """
    POST /api/v1/orders/<pk>/status
    Body: {"status": "processing", "comment": "picked"}
    """
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        order = services.get_order(resolve_request_tenant(request), pk)
        data = request.data or {}
        status = (data.get("status") or "").strip()
        if not status:
            raise ValidationError("status required")
        order = services.update_status(order, status, data.get("comment") or "", actor=request.user)
        return _detail(order)


class OrderTrackingView(APIView):
    """
    POST /api/v1/orders/<pk>/tracking
    Body: {"carrier": "Chilexpress", "tracking_code": "CX123", "tracking_url": "", "estimated_delivery": null}
    """
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        order = services.get_order(resolve_request_tenant(request), pk)
        s = TrackingSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        order = services.add_tracking(order, actor=request.user, **s.validated_data)
        return _detail(order)


class OrderDeliveredView(APIView):
    """
    POST /api/v1/orders/<pk>/delivered
    """
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        order = services.get_order(resolve_request_tenant(request), pk)
        return _detail(services.mark_delivered(order, actor=request.user))


class OrderRefundView(APIView):
    """
    POST /api/v1/orders/<pk>/refund
    Body: {"reason": "damaged", "amount": "15000"}   amount defaults to the order total
    """
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        order = services.get_order(resolve_request_tenant(request), pk)
        data = request.data or {}
        reason = (data.get("reason") or "").strip()
        if not reason:
            raise ValidationError("reason required")
        return _detail(services.refund(order, reason, actor=request.user, amount=data.get("amount")))


class SalesStatsView(APIView):
    """
    GET /api/v1/orders/stats?date_from=2025-01-01&date_to=2025-01-31
    """
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        stats = services.sales_stats(
            resolve_request_tenant(request),
            start=aware_dt_param(request.query_params.get("date_from")),
            end=aware_dt_param(request.query_params.get("date_to"), end_of_day=True),
        )
        stats["revenue"] = str(stats["revenue"])
        stats["average_order_value"] = str(stats["average_order_value"])
        return Response(stats)


class AuditLogListView(generics.ListAPIView):
    """
    GET /api/v1/orders/audit/logs?action=&severity=&object_type=&object_id=&user_id=&date_from=&date_to=
    """
    permission_classes = [permissions.IsAdminUser]
    serializer_class = AuditLogSerializer
    queryset = AuditLog.objects.none()

    def get_queryset(self):
        tenant = resolve_request_tenant(self.request)
        qs = AuditLog.objects.filter(tenant=tenant).select_related("user")

        params = self.request.query_params
        for param, lookup in (
            ("action", "action__iexact"),
            ("severity", "severity__iexact"),
            ("object_type", "object_type"),
            ("object_id", "object_id"),
            ("user_id", "user_id"),
        ):
            value = (params.get(param) or "").strip()
            if value:
                qs = qs.filter(**{lookup: value})

        df = aware_dt_param(params.get("date_from"))
        dt_ = aware_dt_param(params.get("date_to"), end_of_day=True)
        if df:
            qs = qs.filter(created_at__gte=df)
        if dt_:
            qs = qs.filter(created_at__lte=dt_)
        return qs.order_by("-created_at", "-id")
