# carts/views.py
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import resolve_request_tenant
from common.exceptions import ValidationError

from . import services
from .serializers import AddItemSerializer, CartSerializer, CouponSerializer

SESSION_HEADER = "X-Cart-Session"


def _request_cart(request):
    """Signed-in users get their own cart; guests are keyed by X-Cart-Session."""
    tenant = resolve_request_tenant(request)
    user = request.user if request.user and request.user.is_authenticated else None
    session_key = (request.headers.get(SESSION_HEADER) or "").strip() or None
    return services.get_or_create_cart(tenant, user=user, session_key=session_key)


def _cart_response(cart, status=200):
    return Response(CartSerializer(cart).data, status=status)


class CartView(APIView):
    """
    GET    /api/v1/cart
    DELETE /api/v1/cart      (empties items and coupon)
    """
    permission_classes = [AllowAny]

    def get(self, request):
        return _cart_response(_request_cart(request))

    def delete(self, request):
        return _cart_response(services.clear(_request_cart(request)))


class CartItemsView(APIView):
    """
    POST /api/v1/cart/items
    Body: {"product_id": 12, "quantity": 2}
    """
    permission_classes = [AllowAny]

    def post(self, request):
        s = AddItemSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        cart = services.add_item(_request_cart(request), s.validated_data["product_id"], s.validated_data["quantity"])
        return _cart_response(cart, status=201)


class CartItemDetailView(APIView):
    """
    PATCH  /api/v1/cart/items/<product_id>   Body: {"quantity": 3}  (0 removes)
    DELETE /api/v1/cart/items/<product_id>
    """
    permission_classes = [AllowAny]

    def patch(self, request, product_id):
        if "quantity" not in request.data:
            raise ValidationError("quantity required")
        cart = services.update_quantity(_request_cart(request), product_id, request.data.get("quantity"))
        return _cart_response(cart)

    def delete(self, request, product_id):
        return _cart_response(services.remove_item(_request_cart(request), product_id))


class CartCouponView(APIView):
    """
    POST   /api/v1/cart/coupon
      {"code": "CPN-AB12CD34"}                                  loyalty coupon
      {"code": "SUMMER", "discount_type": "percentage",
       "discount_value": "10", "max_discount": "5000"}          staff only
    DELETE /api/v1/cart/coupon
    """
    permission_classes = [AllowAny]

    def post(self, request):
        s = CouponSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        cart = _request_cart(request)

        if data.get("discount_type"):
            if not request.user.is_staff:
                raise ValidationError("Only staff can apply promotional terms directly")
            if "discount_value" not in data:
                raise ValidationError("discount_value required")
            cart = services.apply_coupon(
                cart, data["code"], data["discount_type"], data["discount_value"], data.get("max_discount"),
            )
        else:
            cart = services.apply_reward_coupon(cart, data["code"])
        return _cart_response(cart)

    def delete(self, request):
        return _cart_response(services.remove_coupon(_request_cart(request)))


class CartMergeView(APIView):
    """
    POST /api/v1/cart/merge
    Body: {"session_key": "..."}  guest cart folded into the caller's cart
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        tenant = resolve_request_tenant(request)
        session_key = (request.data or {}).get("session_key") or request.headers.get(SESSION_HEADER)
        if not session_key:
            raise ValidationError("session_key required")
        return _cart_response(services.merge_carts(tenant, request.user, session_key))
