# payments/views.py
from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import page_params, paginate, resolve_request_tenant
from common.exceptions import NotFound, ValidationError
from orders.serializers import OrderDetailSerializer

from . import services
from .models import Payment, PaymentRecordStatus
from .serializers import ConfirmPaymentSerializer, PaymentSerializer, RefundSerializer


class ConfirmPaymentView(APIView):
    """
    POST /api/v1/payments/confirm
    Body: {"order_id": 12, "method": "webpay", "gateway": "webpay"}

    200 with {payment, order} when approved, 402 payment_declined otherwise.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        s = ConfirmPaymentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        payment, order = services.settle_order_payment(
            resolve_request_tenant(request), request.user, data["order_id"], data["method"], data["gateway"],
        )
        return Response({
            "payment": PaymentSerializer(payment).data,
            "order": OrderDetailSerializer(order).data,
        })


class PaymentListView(APIView):
    """
    GET /api/v1/payments/?status=completed&page=1&page_size=20

    The caller's own payments; staff see the whole tenant.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        tenant = resolve_request_tenant(request)
        status = (request.query_params.get("status") or "").strip() or None
        if status and status not in PaymentRecordStatus.values:
            raise ValidationError(f"Unknown payment status '{status}'")
        if request.user.is_staff:
            qs = Payment.objects.filter(tenant=tenant).select_related("order").order_by("-created_at", "-id")
            if status:
                qs = qs.filter(status=status)
        else:
            qs = services.user_payments(tenant, request.user, status=status)
        page, page_size = page_params(request)
        rows, meta = paginate(qs, page, page_size)
        return Response({**meta, "results": PaymentSerializer(rows, many=True).data})


class PaymentRefundView(APIView):
    """
    POST /api/v1/payments/<pk>/refund
    Body: {"reason": "damaged", "amount": "5000"}
    """
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        tenant = resolve_request_tenant(request)
        payment = Payment.objects.filter(tenant=tenant, pk=pk).select_related("order").first()
        if payment is None:
            raise NotFound(f"Payment {pk} not found")
        s = RefundSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        payment, order = services.refund_payment(
            payment, s.validated_data["reason"], request.user, amount=s.validated_data.get("amount"),
        )
        return Response({
            "payment": PaymentSerializer(payment).data,
            "order": OrderDetailSerializer(order).data,
        })
