from datetime import datetime, timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from carts import services as carts
from carts.models import Cart
from catalog.models import Product
from common.exceptions import CompensationFailed, InvalidTransition, NotFound, ValidationError
from common.models import AuditLog
from inventory.models import MovementType, StockMovement
from loyalty.models import CouponStatus, RedeemedReward, RewardType
from orders import services
from orders.models import TRANSITIONS, Order, OrderStatus, PaymentStatus
from orders.views import CheckoutView, OrderCancelView, OrderListView, OrderStatusView
from tenants.models import Tenant

User = get_user_model()

COMMERCE = {
    "TAX_RATE": Decimal("0.19"),
    "SHIPPING_FLAT_COST": Decimal("3000"),
    "FREE_SHIPPING_THRESHOLD": Decimal("50000"),
    "LOYALTY_CURRENCY_PER_POINT": Decimal("100"),
}
ADDRESS = {"street": "Av. Siempre Viva 742", "city": "Santiago"}


class TransitionTableTests(TestCase):
    def test_every_pair_follows_the_table(self):
        for source in OrderStatus.values:
            for target in OrderStatus.values:
                order = Order(status=source)
                self.assertEqual(
                    order.can_transition_to(target),
                    target in TRANSITIONS[source],
                    f"{source} -> {target}",
                )

    def test_terminal_states(self):
        self.assertEqual(TRANSITIONS[OrderStatus.CANCELLED], set())
        self.assertEqual(TRANSITIONS[OrderStatus.REFUNDED], set())

    def test_update_status_enforces_every_pair(self):
        tenant = Tenant.objects.create(name="Acme", code="acme")
        user = User.objects.create_user(username="ops", password="test-pass", is_staff=True)
        for i, source in enumerate(OrderStatus.values):
            for j, target in enumerate(OrderStatus.values):
                order = Order.objects.create(
                    tenant=tenant, user=user, order_number=f"ORD-T-{i}{j}", status=source,
                    subtotal=Decimal("100"), total=Decimal("100"), payment_method="webpay",
                    payment_status=PaymentStatus.PAID,
                )
                allowed = target in TRANSITIONS[source]
                if target == OrderStatus.CANCELLED:
                    # cancel() only accepts pending and confirmed orders
                    allowed = allowed and order.can_cancel
                label = f"{source} -> {target}"
                if allowed:
                    services.update_status(order, target, actor=user)
                    self.assertEqual(order.status, target, label)
                    self.assertEqual(order.status_events.count(), 1, label)
                else:
                    with self.assertRaises(InvalidTransition, msg=label):
                        services.update_status(order, target, actor=user)
                    order.refresh_from_db()
                    self.assertEqual(order.status, source, label)
                    self.assertEqual(order.status_events.count(), 0, label)


@override_settings(COMMERCE=COMMERCE)
class OrderTestBase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme", currency_code="CLP")
        self.user = User.objects.create_user(username="ana", password="test-pass")
        self.staff = User.objects.create_user(username="ops", password="test-pass", is_staff=True)
        self.widget = Product.objects.create(
            tenant=self.tenant, sku="W-1", name="Widget", category="tools", price="10000.00", stock_current=5,
        )
        self.gadget = Product.objects.create(
            tenant=self.tenant, sku="G-1", name="Gadget", category="toys", price="2500.00", stock_current=5,
        )

    def fill_cart(self, *lines):
        cart = carts.get_or_create_cart(self.tenant, user=self.user)
        for product, qty in lines or ((self.widget, 2),):
            carts.add_item(cart, product.pk, qty)
        return cart

    def checkout(self, *lines, **kwargs):
        self.fill_cart(*lines)
        return services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay", **kwargs)

    def stock(self, product):
        product.refresh_from_db()
        return product.stock_current, product.stock_reserved


class CheckoutTests(OrderTestBase):
    def test_checkout_snapshots_cart_and_reserves_stock(self):
        order = self.checkout((self.widget, 2), (self.gadget, 1))

        self.assertRegex(order.order_number, r"^ORD-ACME-\d{4}-[A-Z0-9]{6}$")
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.subtotal, Decimal("22500.00"))
        self.assertEqual(order.tax, Decimal("4275.00"))
        self.assertEqual(order.shipping_cost, Decimal("3000.00"))
        self.assertEqual(order.total, Decimal("29775.00"))
        self.assertEqual(order.loyalty_points_earned, 297)
        self.assertEqual(order.items.count(), 2)
        self.assertEqual(order.status_events.get().status, OrderStatus.PENDING)

        self.assertEqual(self.stock(self.widget), (5, 2))
        self.assertEqual(self.stock(self.gadget), (5, 1))
        cart = carts.get_or_create_cart(self.tenant, user=self.user)
        self.assertFalse(cart.items.exists())
        self.assertTrue(AuditLog.objects.filter(action="order.created", object_id=str(order.pk)).exists())

    def test_order_keeps_price_after_catalog_change(self):
        order = self.checkout()
        Product.objects.filter(pk=self.widget.pk).update(price="1.00")
        self.assertEqual(order.items.get().price, Decimal("10000.00"))

    def test_pickup_ships_free(self):
        order = self.checkout(shipping_method="pickup")
        self.assertEqual(order.shipping_cost, Decimal("0.00"))

    def test_empty_cart_and_bad_input(self):
        with self.assertRaises(ValidationError):
            services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")
        self.fill_cart()
        with self.assertRaises(ValidationError):
            services.create_from_cart(self.tenant, self.user, {"street": "x"}, "webpay")
        with self.assertRaises(ValidationError):
            services.create_from_cart(self.tenant, self.user, ADDRESS, "cash")
        self.assertFalse(Order.objects.exists())

    def test_stock_taken_after_carting_blocks_checkout(self):
        self.fill_cart((self.widget, 3))
        Product.objects.filter(pk=self.widget.pk).update(stock_reserved=4)
        with self.assertRaises(ValidationError):
            services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")
        self.assertEqual(self.stock(self.widget), (5, 4))

    def test_failure_after_reservation_releases_stock(self):
        self.fill_cart((self.widget, 2), (self.gadget, 1))
        with mock.patch("orders.services.clear_cart", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")

        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.stock(self.widget), (5, 0))
        self.assertEqual(self.stock(self.gadget), (5, 0))
        self.assertEqual(StockMovement.objects.filter(type=MovementType.RELEASE).count(), 2)
        cart = carts.get_or_create_cart(self.tenant, user=self.user)
        self.assertTrue(cart.items.exists())
        self.assertIsNone(cart.checkout_started_at)

    def test_checkout_already_running_is_rejected(self):
        cart = self.fill_cart()
        Cart.objects.filter(pk=cart.pk).update(checkout_started_at=timezone.now())
        with self.assertRaises(InvalidTransition):
            services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")

        self.assertFalse(Order.objects.exists())
        self.assertFalse(StockMovement.objects.exists())
        self.assertEqual(self.stock(self.widget), (5, 0))
        cart.refresh_from_db()
        self.assertIsNotNone(cart.checkout_started_at)

    def test_stale_checkout_claim_is_taken_over(self):
        cart = self.fill_cart()
        Cart.objects.filter(pk=cart.pk).update(checkout_started_at=timezone.now() - timedelta(minutes=10))
        order = services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")

        self.assertEqual(order.status, OrderStatus.PENDING)
        cart.refresh_from_db()
        self.assertIsNone(cart.checkout_started_at)
        self.assertFalse(cart.items.exists())

    def test_rejected_checkout_frees_the_cart(self):
        cart = self.fill_cart((self.widget, 3))
        Product.objects.filter(pk=self.widget.pk).update(stock_reserved=4)
        with self.assertRaises(ValidationError):
            services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")
        cart.refresh_from_db()
        self.assertIsNone(cart.checkout_started_at)

        Product.objects.filter(pk=self.widget.pk).update(stock_reserved=0)
        order = services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")
        self.assertEqual(order.items.get().quantity, 3)

    def test_failed_release_surfaces_original_error(self):
        self.fill_cart()
        with mock.patch("orders.services.clear_cart", side_effect=RuntimeError("boom")), \
                mock.patch("inventory.ledger.release", side_effect=RuntimeError("db down")):
            with self.assertRaises(CompensationFailed) as ctx:
                services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")
        self.assertIsInstance(ctx.exception.original, RuntimeError)
        self.assertEqual(ctx.exception.failures, [self.widget.pk])

    def test_loyalty_coupon_is_consumed(self):
        coupon = RedeemedReward.objects.create(
            tenant=self.tenant, user=self.user, reward_name="1000 off", coupon_code="CPN-ORDER001",
            type=RewardType.DISCOUNT_FIXED, value=Decimal("1000"),
            expires_at=timezone.now() + timedelta(days=10),
        )
        cart = self.fill_cart()
        carts.apply_reward_coupon(cart, coupon.coupon_code)
        order = services.create_from_cart(self.tenant, self.user, ADDRESS, "webpay")

        self.assertEqual(order.discount, Decimal("1000.00"))
        self.assertEqual(order.coupon_code, "CPN-ORDER001")
        coupon.refresh_from_db()
        self.assertEqual(coupon.status, CouponStatus.USED)
        self.assertEqual(coupon.used_in_order, order)


class CancelTests(OrderTestBase):
    def test_cancel_pending_releases_reservations(self):
        order = self.checkout((self.widget, 2))
        services.cancel(order, "out of stock", actor=self.user)

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.cancellation_reason, "out of stock")
        self.assertEqual(self.stock(self.widget), (5, 0))
        self.assertEqual(
            list(order.status_events.values_list("from_status", "status")),
            [("", OrderStatus.PENDING), (OrderStatus.PENDING, OrderStatus.CANCELLED)],
        )

    def test_cancel_after_stock_commit_is_rejected(self):
        order = self.checkout((self.widget, 2))
        services.mark_as_paid(order, "TX-1", "webpay")
        services.commit_stock(order)

        with self.assertRaises(InvalidTransition):
            services.cancel(order, "too late")
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(self.stock(self.widget), (3, 0))

    def test_cancelled_order_is_terminal(self):
        order = self.checkout()
        services.cancel(order, "changed my mind")
        with self.assertRaises(InvalidTransition):
            services.cancel(order, "again")
        with self.assertRaises(InvalidTransition):
            services.update_status(order, OrderStatus.CONFIRMED)

    def test_status_change_to_cancelled_releases_stock(self):
        order = self.checkout((self.widget, 2))
        services.update_status(order, OrderStatus.CANCELLED, "no stock at warehouse", actor=self.staff)

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.cancellation_reason, "no stock at warehouse")
        self.assertEqual(order.cancelled_by, self.staff)
        self.assertEqual(self.stock(self.widget), (5, 0))
        self.assertEqual(StockMovement.objects.filter(type=MovementType.RELEASE).count(), 1)

    def test_status_change_to_refunded_goes_through_refund(self):
        order = self.checkout()
        with self.assertRaises(InvalidTransition):
            services.update_status(order, OrderStatus.REFUNDED, actor=self.staff)

        services.mark_as_paid(order, "TX-8", "webpay")
        services.update_status(order, OrderStatus.REFUNDED, actor=self.staff)
        self.assertEqual(order.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(order.refund_amount, order.total)
        self.assertEqual(order.refunded_by, self.staff)

    def test_release_failure_after_cancel(self):
        order = self.checkout()
        with mock.patch("inventory.ledger.release", side_effect=RuntimeError("db down")):
            with self.assertRaises(CompensationFailed):
                services.cancel(order, "x")
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertTrue(AuditLog.objects.filter(action="order.release_failed", severity="critical").exists())


class LifecycleTests(OrderTestBase):
    def test_paid_order_through_delivery_and_refund(self):
        order = self.checkout((self.widget, 1))
        services.mark_as_paid(order, "TX-9", "webpay", {"auth": "ok"})
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertIsNotNone(order.paid_at)

        services.commit_stock(order)
        self.assertEqual(self.stock(self.widget), (4, 0))
        with self.assertRaises(InvalidTransition):
            services.commit_stock(order)

        services.start_processing(order, actor=self.staff)
        services.add_tracking(order, "Chilexpress", "CX-1", actor=self.staff)
        self.assertEqual(order.status, OrderStatus.SHIPPED)
        self.assertEqual(order.status_events.last().comment, "Shipped with Chilexpress")
        services.mark_delivered(order, actor=self.staff)
        self.assertIsNotNone(order.delivered_at)

        services.refund(order, "damaged", actor=self.staff)
        self.assertEqual(order.status, OrderStatus.REFUNDED)
        self.assertEqual(order.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(order.refund_amount, order.total)
        # refunds do not restock
        self.assertEqual(self.stock(self.widget), (4, 0))

    def test_refund_requires_payment(self):
        order = self.checkout()
        with self.assertRaises(InvalidTransition):
            services.refund(order, "nope")

    def test_partial_refund_bounds(self):
        order = self.checkout()
        services.mark_as_paid(order, "TX-2", "webpay")
        with self.assertRaises(ValidationError):
            services.refund(order, "too much", amount=order.total + 1)
        services.refund(order, "partial", amount="5000")
        self.assertEqual(order.refund_amount, Decimal("5000.00"))

    def test_double_payment_rejected(self):
        order = self.checkout()
        services.mark_as_paid(order, "TX-3", "webpay")
        with self.assertRaises(InvalidTransition):
            services.mark_as_paid(order, "TX-4", "webpay")

    def test_get_order_scopes_customers(self):
        order = self.checkout()
        intruder = User.objects.create_user(username="eve")
        with self.assertRaises(NotFound):
            services.get_order(self.tenant, order.pk, user=intruder)
        self.assertEqual(services.get_order(self.tenant, order.pk, user=self.staff), order)

    def test_sales_stats(self):
        paid = self.checkout()
        services.mark_as_paid(paid, "TX-5", "webpay")
        self.checkout((self.gadget, 1))
        stats = services.sales_stats(self.tenant)
        self.assertEqual(stats["total_orders"], 2)
        self.assertEqual(stats["paid_orders"], 1)
        self.assertEqual(stats["revenue"], paid.total)
        self.assertEqual(stats["by_status"], {OrderStatus.CONFIRMED: 1, OrderStatus.PENDING: 1})


class OrderApiTests(OrderTestBase):
    def setUp(self):
        super().setUp()
        self.factory = APIRequestFactory()

    def _post(self, view, path, data, user, **kwargs):
        request = self.factory.post(path, data, format="json")
        force_authenticate(request, user=user)
        request.tenant = self.tenant
        return view.as_view()(request, **kwargs)

    def test_checkout_endpoint(self):
        self.fill_cart()
        resp = self._post(CheckoutView, "/api/v1/orders/checkout",
                          {"shipping_address": ADDRESS, "payment_method": "webpay"}, self.user)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["status"], OrderStatus.PENDING)
        self.assertEqual(len(resp.data["items"]), 1)
        self.assertEqual(resp.data["status_history"][0]["status"], OrderStatus.PENDING)

    def test_other_customer_cannot_cancel(self):
        order = self.checkout()
        intruder = User.objects.create_user(username="eve")
        resp = self._post(OrderCancelView, "/api/v1/orders/1/cancel", {"reason": "x"}, intruder, pk=order.pk)
        self.assertEqual(resp.status_code, 404)

    def test_illegal_status_change_maps_to_409(self):
        order = self.checkout()
        resp = self._post(OrderStatusView, "/api/v1/orders/1/status", {"status": "shipped"}, self.staff, pk=order.pk)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "invalid_transition")

    def test_staff_cancel_through_status_endpoint_releases_stock(self):
        order = self.checkout((self.widget, 2))
        resp = self._post(OrderStatusView, "/api/v1/orders/1/status",
                          {"status": "cancelled", "comment": "fraud check"}, self.staff, pk=order.pk)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["status"], OrderStatus.CANCELLED)
        self.assertEqual(self.stock(self.widget), (5, 0))

    def test_list_date_to_includes_the_whole_day(self):
        order = self.checkout()
        afternoon = timezone.make_aware(datetime(2025, 3, 1, 15, 0), timezone.get_current_timezone())
        Order.objects.filter(pk=order.pk).update(created_at=afternoon)

        request = self.factory.get("/api/v1/orders", {"date_from": "2025-03-01", "date_to": "2025-03-01"})
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        resp = OrderListView.as_view()(request)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["total"], 1)
        self.assertEqual(resp.data["results"][0]["order_number"], order.order_number)

    def test_status_endpoint_is_staff_only(self):
        order = self.checkout()
        resp = self._post(OrderStatusView, "/api/v1/orders/1/status", {"status": "confirmed"}, self.user, pk=order.pk)
        self.assertEqual(resp.status_code, 403)
