# carts/urls.py
from django.urls import path

from .views import CartCouponView, CartItemDetailView, CartItemsView, CartMergeView, CartView

app_name = "carts"

urlpatterns = [
    path("cart", CartView.as_view(), name="cart"),
    path("cart/items", CartItemsView.as_view(), name="cart-items"),
    path("cart/items/<int:product_id>", CartItemDetailView.as_view(), name="cart-item-detail"),
    path("cart/coupon", CartCouponView.as_view(), name="cart-coupon"),
    path("cart/merge", CartMergeView.as_view(), name="cart-merge"),
]
