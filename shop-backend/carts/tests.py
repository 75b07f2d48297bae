from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from carts import services
from carts.models import Cart, CouponType
from carts.totals import CouponTerms, ShippingPolicy, compute_totals
from carts.views import CartCouponView, CartItemsView, CartView
from catalog.models import Product, ProductStatus
from common.exceptions import InsufficientStock, InvalidCoupon, NotFound, ValidationError
from loyalty.models import RedeemedReward, RewardType
from tenants.models import Tenant

NO_EXTRAS = {"TAX_RATE": Decimal("0"), "SHIPPING_FLAT_COST": Decimal("0"), "FREE_SHIPPING_THRESHOLD": None}


def line(price, quantity):
    return SimpleNamespace(price=Decimal(price), quantity=quantity)


class TotalsTests(TestCase):
    def test_single_line_without_coupon(self):
        t = compute_totals(
            [line("10000", 2)], shipping=ShippingPolicy(flat_cost=Decimal("3990")), tax_rate=Decimal("0.19"),
        )
        self.assertEqual(t.subtotal, Decimal("20000.00"))
        self.assertEqual(t.discount, Decimal("0.00"))
        self.assertEqual(t.tax, Decimal("3800.00"))
        self.assertEqual(t.shipping, Decimal("3990.00"))
        self.assertEqual(t.total, t.subtotal + t.tax + t.shipping)

    def test_percentage_coupon_capped_by_max_discount(self):
        coupon = CouponTerms(type=CouponType.PERCENTAGE, value=Decimal("50"), max_discount=Decimal("3000"))
        t = compute_totals([line("10000", 1)], coupon, shipping=ShippingPolicy(), tax_rate=0)
        self.assertEqual(t.discount, Decimal("3000.00"))
        self.assertEqual(t.total, Decimal("7000.00"))

    def test_fixed_coupon_never_exceeds_subtotal(self):
        coupon = CouponTerms(type=CouponType.FIXED, value=Decimal("50000"))
        t = compute_totals([line("1000", 2)], coupon, shipping=ShippingPolicy(), tax_rate=Decimal("0.19"))
        self.assertEqual(t.discount, Decimal("2000.00"))
        self.assertEqual(t.tax, Decimal("0.00"))
        self.assertEqual(t.total, Decimal("0.00"))

    def test_free_shipping_coupon_and_threshold(self):
        policy = ShippingPolicy(flat_cost=Decimal("2500"), free_threshold=Decimal("30000"))
        coupon = CouponTerms(type=CouponType.FREE_SHIPPING, value=Decimal("0"))

        self.assertEqual(compute_totals([line("1000", 1)], shipping=policy, tax_rate=0).shipping, Decimal("2500.00"))
        self.assertEqual(compute_totals([line("1000", 1)], coupon, shipping=policy, tax_rate=0).shipping, Decimal("0.00"))
        self.assertEqual(compute_totals([line("15000", 2)], shipping=policy, tax_rate=0).shipping, Decimal("0.00"))
        self.assertEqual(compute_totals([], shipping=policy, tax_rate=0).total, Decimal("0.00"))

    def test_recompute_is_deterministic(self):
        lines = [line("1990", 3), line("45.50", 2)]
        coupon = CouponTerms(type=CouponType.PERCENTAGE, value=Decimal("10"))
        first = compute_totals(lines, coupon, shipping=ShippingPolicy(), tax_rate=Decimal("0.19"))
        second = compute_totals(lines, coupon, shipping=ShippingPolicy(), tax_rate=Decimal("0.19"))
        self.assertEqual(first, second)


@override_settings(COMMERCE=NO_EXTRAS)
class CartServiceTestBase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme", currency_code="CLP")
        self.user = get_user_model().objects.create_user(username="ana", password="test-pass")
        self.product = Product.objects.create(
            tenant=self.tenant, sku="SKU-1", name="Widget", category="tools", price="10000.00", stock_current=10,
        )
        self.other = Product.objects.create(
            tenant=self.tenant, sku="SKU-2", name="Gadget", category="toys", price="2500.00", stock_current=10,
        )


class CartServiceTests(CartServiceTestBase):
    def test_add_item_snapshots_price_and_merges_lines(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 1)
        Product.objects.filter(pk=self.product.pk).update(price="99999.00")
        services.add_item(cart, self.product.pk, 1)

        item = cart.items.get()
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.price, Decimal("10000.00"))
        cart.refresh_from_db()
        self.assertEqual(cart.subtotal, Decimal("20000.00"))
        self.assertEqual(cart.total, Decimal("20000.00"))

    def test_add_item_rejects_bad_quantities(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        with self.assertRaises(ValidationError):
            services.add_item(cart, self.product.pk, 0)
        with self.assertRaises(InsufficientStock):
            services.add_item(cart, self.product.pk, 11)

    @override_settings(COMMERCE={**NO_EXTRAS, "CART_MAX_LINE_QTY": 3})
    def test_max_line_quantity(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 3)
        with self.assertRaises(ValidationError):
            services.add_item(cart, self.product.pk, 1)

    def test_inactive_or_foreign_product_rejected(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        Product.objects.filter(pk=self.other.pk).update(status=ProductStatus.INACTIVE)
        with self.assertRaises(ValidationError):
            services.add_item(cart, self.other.pk, 1)

        foreign = Tenant.objects.create(name="Other", code="other")
        p = Product.objects.create(tenant=foreign, sku="F-1", name="Foreign", price="1.00", stock_current=1)
        with self.assertRaises(NotFound):
            services.add_item(cart, p.pk, 1)

    def test_update_quantity_zero_removes_line(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 2)
        services.update_quantity(cart, self.product.pk, 0)
        self.assertFalse(cart.items.exists())
        self.assertEqual(cart.total, Decimal("0.00"))

        with self.assertRaises(NotFound):
            services.update_quantity(cart, self.product.pk, 1)

    def test_remove_item_is_idempotent(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.other.pk, 1)
        services.remove_item(cart, self.other.pk)
        services.remove_item(cart, self.other.pk)
        self.assertEqual(cart.subtotal, Decimal("0.00"))

    def test_percentage_coupon_applied_and_removed(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 2)
        services.apply_coupon(cart, "summer", CouponType.PERCENTAGE, "10", max_discount="1500")
        self.assertEqual(cart.coupon_code, "SUMMER")
        self.assertEqual(cart.discount, Decimal("1500.00"))
        self.assertEqual(cart.total, Decimal("18500.00"))

        services.remove_coupon(cart)
        self.assertEqual(cart.discount, Decimal("0.00"))
        self.assertEqual(cart.total, Decimal("20000.00"))

    def test_coupon_terms_validated(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        with self.assertRaises(ValidationError):
            services.apply_coupon(cart, "X", "bogus", "10")
        with self.assertRaises(ValidationError):
            services.apply_coupon(cart, "X", CouponType.PERCENTAGE, "150")
        with self.assertRaises(ValidationError):
            services.apply_coupon(cart, "", CouponType.FIXED, "10")

    def test_expired_cart_is_reset(self):
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 1)
        Cart.objects.filter(pk=cart.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

        again = services.get_or_create_cart(self.tenant, user=self.user)
        self.assertEqual(again.pk, cart.pk)
        self.assertFalse(again.items.exists())
        self.assertGreater(again.expires_at, timezone.now())

    def test_cart_needs_an_owner(self):
        with self.assertRaises(ValidationError):
            services.get_or_create_cart(self.tenant)


class MergeAndPurgeTests(CartServiceTestBase):
    def test_merge_adds_quantities_and_drops_guest_cart(self):
        guest = services.get_or_create_cart(self.tenant, session_key="guest-1")
        services.add_item(guest, self.product.pk, 2)
        services.add_item(guest, self.other.pk, 1)
        services.apply_coupon(guest, "WELCOME", CouponType.FIXED, "500")

        mine = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(mine, self.product.pk, 1)

        merged = services.merge_carts(self.tenant, self.user, "guest-1")
        self.assertEqual(merged.pk, mine.pk)
        self.assertEqual(merged.items.get(product=self.product).quantity, 3)
        self.assertEqual(merged.items.get(product=self.other).quantity, 1)
        self.assertEqual(merged.coupon_code, "WELCOME")
        self.assertEqual(merged.subtotal, Decimal("32500.00"))
        self.assertFalse(Cart.objects.filter(session_key="guest-1").exists())

    def test_merge_without_guest_cart_returns_user_cart(self):
        merged = services.merge_carts(self.tenant, self.user, "missing")
        self.assertEqual(merged.user, self.user)

    def test_purge_removes_only_expired(self):
        old = services.get_or_create_cart(self.tenant, session_key="old")
        services.get_or_create_cart(self.tenant, user=self.user)
        Cart.objects.filter(pk=old.pk).update(expires_at=timezone.now() - timedelta(days=1))

        self.assertEqual(services.purge_expired_carts(), 1)
        self.assertEqual(services.purge_expired_carts(), 0)
        self.assertEqual(Cart.objects.count(), 1)


class RewardCouponTests(CartServiceTestBase):
    def _coupon(self, **kwargs):
        data = dict(
            tenant=self.tenant, user=self.user, reward_name="10% off", coupon_code="CPN-TEST0001",
            type=RewardType.DISCOUNT_PERCENTAGE, value=Decimal("10"),
            expires_at=timezone.now() + timedelta(days=30),
        )
        data.update(kwargs)
        return RedeemedReward.objects.create(**data)

    def test_loyalty_coupon_terms_copied_to_cart(self):
        coupon = self._coupon()
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 1)
        services.apply_reward_coupon(cart, "cpn-test0001")

        self.assertEqual(cart.redeemed_reward, coupon)
        self.assertEqual(cart.coupon_type, CouponType.PERCENTAGE)
        self.assertEqual(cart.discount, Decimal("1000.00"))

    def test_guest_cannot_use_loyalty_coupon(self):
        self._coupon()
        cart = services.get_or_create_cart(self.tenant, session_key="guest")
        with self.assertRaises(InvalidCoupon):
            services.apply_reward_coupon(cart, "CPN-TEST0001")

    def test_product_reward_is_not_a_cart_discount(self):
        self._coupon(type=RewardType.PRODUCT, value=Decimal("0"))
        cart = services.get_or_create_cart(self.tenant, user=self.user)
        services.add_item(cart, self.product.pk, 1)
        with self.assertRaises(InvalidCoupon):
            services.apply_reward_coupon(cart, "CPN-TEST0001")


@override_settings(COMMERCE=NO_EXTRAS)
class CartApiTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme")
        self.user = get_user_model().objects.create_user(username="ana", password="test-pass")
        self.product = Product.objects.create(
            tenant=self.tenant, sku="SKU-1", name="Widget", price="10000.00", stock_current=5,
        )
        self.factory = APIRequestFactory()

    def _call(self, view, method, path, data=None, user=None, session=None, **kwargs):
        extra = {"HTTP_X_CART_SESSION": session} if session else {}
        if method == "get":
            request = self.factory.get(path, data, **extra)
        else:
            request = getattr(self.factory, method)(path, data, format="json", **extra)
        if user is not None:
            force_authenticate(request, user=user)
        request.tenant = self.tenant
        return view.as_view()(request, **kwargs)

    def test_guest_adds_item_by_session_header(self):
        resp = self._call(CartItemsView, "post", "/api/v1/cart/items",
                          {"product_id": self.product.pk, "quantity": 2}, session="abc")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["item_count"], 2)
        self.assertEqual(resp.data["subtotal"], "20000.00")

        resp = self._call(CartView, "get", "/api/v1/cart", session="abc")
        self.assertEqual(len(resp.data["items"]), 1)

    def test_over_stock_maps_to_409(self):
        resp = self._call(CartItemsView, "post", "/api/v1/cart/items",
                          {"product_id": self.product.pk, "quantity": 9}, user=self.user)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "insufficient_stock")

    def test_customer_cannot_apply_explicit_terms(self):
        resp = self._call(CartCouponView, "post", "/api/v1/cart/coupon",
                          {"code": "FREE", "discount_type": "fixed", "discount_value": "100"}, user=self.user)
        self.assertEqual(resp.status_code, 400)

    def test_unknown_loyalty_coupon(self):
        resp = self._call(CartCouponView, "post", "/api/v1/cart/coupon", {"code": "CPN-NOPE"}, user=self.user)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "invalid_coupon")
