from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from carts import services as carts
from catalog.models import Product
from common.exceptions import InvalidTransition, PaymentDeclined, ValidationError
from common.models import AuditLog
from loyalty.models import LoyaltyAccount, TransactionType
from orders import services as orders
from orders.models import Order, OrderStatus, PaymentStatus
from payments import services
from payments.gateways import GatewayResult
from payments.models import Payment, PaymentRecordStatus
from payments.views import ConfirmPaymentView
from tenants.models import Tenant

User = get_user_model()

COMMERCE = {
    "TAX_RATE": Decimal("0"),
    "SHIPPING_FLAT_COST": Decimal("0"),
    "LOYALTY_CURRENCY_PER_POINT": Decimal("100"),
    "PAYMENT_GATEWAYS": {
        "webpay": "payments.gateways.SimulatedGateway",
        "flow": "payments.gateways.DecliningGateway",
    },
}


@override_settings(COMMERCE=COMMERCE)
class SettlementTestBase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme")
        self.user = User.objects.create_user(username="ana", password="test-pass")
        self.staff = User.objects.create_user(username="ops", password="test-pass", is_staff=True)
        self.product = Product.objects.create(
            tenant=self.tenant, sku="SKU-1", name="Widget", price="10000.00", stock_current=5,
        )
        cart = carts.get_or_create_cart(self.tenant, user=self.user)
        carts.add_item(cart, self.product.pk, 2)
        self.order = orders.create_from_cart(
            self.tenant, self.user, {"street": "Main 1", "city": "Santiago"}, "credit_card",
        )

    def stock(self):
        self.product.refresh_from_db()
        return self.product.stock_current, self.product.stock_reserved


class SettleTests(SettlementTestBase):
    def test_approved_payment_settles_everything(self):
        payment, order = services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")

        self.assertEqual(payment.status, PaymentRecordStatus.COMPLETED)
        self.assertEqual(payment.amount, Decimal("20000.00"))
        self.assertEqual(payment.authorization_code, "AUTH_SIM")
        self.assertTrue(payment.transaction_id.startswith("PAY-"))

        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(order.payment_transaction_id, payment.transaction_id)
        self.assertIsNotNone(order.stock_committed_at)
        self.assertEqual(self.stock(), (3, 0))

        account = LoyaltyAccount.objects.get(tenant=self.tenant, user=self.user)
        self.assertEqual(account.points, 200)
        self.assertEqual(account.transactions.get().type, TransactionType.EARN)
        self.assertTrue(AuditLog.objects.filter(action="payment.completed").exists())

    def test_declined_payment_leaves_order_pending(self):
        with self.assertRaises(PaymentDeclined):
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "flow")

        payment = Payment.objects.get()
        self.assertEqual(payment.status, PaymentRecordStatus.FAILED)
        self.assertEqual(payment.error_code, "card_declined")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)
        self.assertEqual(self.stock(), (5, 2))
        self.assertFalse(LoyaltyAccount.objects.exists())

        # a later attempt may still succeed
        _, order = services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(Payment.objects.count(), 2)

    def test_loyalty_failure_does_not_undo_sale(self):
        with mock.patch("payments.services.loyalty.add_points", side_effect=RuntimeError("loyalty down")):
            payment, order = services.settle_order_payment(
                self.tenant, self.user, self.order.pk, "credit_card", "webpay",
            )
        self.assertEqual(payment.status, PaymentRecordStatus.COMPLETED)
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(self.stock(), (3, 0))

    def test_settlement_error_after_approval_is_recorded(self):
        with mock.patch("orders.services.commit_stock", side_effect=RuntimeError("ledger down")):
            with self.assertRaises(RuntimeError):
                services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")

        payment = Payment.objects.get()
        self.assertEqual(payment.status, PaymentRecordStatus.FAILED)
        self.assertEqual(payment.error_code, "settlement_error")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        # charged but unsettled: held in processing so it cannot be charged twice
        self.assertEqual(self.order.payment_status, PaymentStatus.PROCESSING)
        self.assertEqual(self.stock(), (5, 2))
        with self.assertRaises(InvalidTransition):
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        self.assertEqual(Payment.objects.count(), 1)
        self.assertTrue(AuditLog.objects.filter(action="payment.settlement_failed", severity="critical").exists())

    def test_attempt_in_flight_blocks_a_second_charge(self):
        Order.objects.filter(pk=self.order.pk).update(payment_status=PaymentStatus.PROCESSING)
        with mock.patch("payments.services.get_gateway") as get_gateway:
            with self.assertRaises(InvalidTransition):
                services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        get_gateway.return_value.charge.assert_not_called()
        self.assertFalse(Payment.objects.exists())

    def test_order_is_processing_while_gateway_charges(self):
        seen = []

        def charge(**kwargs):
            seen.append(Order.objects.get(pk=self.order.pk).payment_status)
            return GatewayResult(approved=True, gateway_transaction_id="GW-1", authorization_code="AUTH")

        with mock.patch("payments.services.get_gateway") as get_gateway:
            get_gateway.return_value.charge.side_effect = charge
            _, order = services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        self.assertEqual(seen, [PaymentStatus.PROCESSING])
        self.assertEqual(order.payment_status, PaymentStatus.PAID)

    def test_gateway_error_marks_attempt_failed(self):
        with mock.patch("payments.services.get_gateway") as get_gateway:
            get_gateway.return_value.charge.side_effect = ConnectionError("timeout")
            with self.assertRaises(ConnectionError):
                services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        payment = Payment.objects.get()
        self.assertEqual((payment.status, payment.error_code), (PaymentRecordStatus.FAILED, "gateway_error"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)

    def test_paid_or_cancelled_orders_are_rejected(self):
        services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        with self.assertRaises(ValidationError):
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")

        cart = carts.get_or_create_cart(self.tenant, user=self.user)
        carts.add_item(cart, self.product.pk, 1)
        other = orders.create_from_cart(self.tenant, self.user, {"street": "Main 1", "city": "Santiago"}, "webpay")
        orders.cancel(other, "changed my mind")
        with self.assertRaises(InvalidTransition):
            services.settle_order_payment(self.tenant, self.user, other.pk, "webpay", "webpay")

    def test_unknown_method_or_gateway(self):
        with self.assertRaises(ValidationError):
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "cash", "webpay")
        with self.assertRaises(ValidationError):
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "webpay", "paypal")
        with self.assertRaises(ValidationError):
            # known gateway name without a configured adapter
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "webpay", "manual")
        self.assertFalse(Payment.objects.exists())


class RefundTests(SettlementTestBase):
    def test_refund_completed_payment(self):
        payment, _ = services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "webpay")
        payment, order = services.refund_payment(payment, "damaged", self.staff)

        self.assertEqual(payment.status, PaymentRecordStatus.REFUNDED)
        self.assertEqual(payment.refund_amount, Decimal("20000.00"))
        self.assertTrue(payment.refund_transaction_id.startswith("REF-"))
        self.assertEqual(order.status, OrderStatus.REFUNDED)
        self.assertEqual(order.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(self.stock(), (3, 0))

    def test_failed_payment_cannot_be_refunded(self):
        with self.assertRaises(PaymentDeclined):
            services.settle_order_payment(self.tenant, self.user, self.order.pk, "credit_card", "flow")
        with self.assertRaises(InvalidTransition):
            services.refund_payment(Payment.objects.get(), "nope", self.staff)


class PaymentApiTests(SettlementTestBase):
    def setUp(self):
        super().setUp()
        self.factory = APIRequestFactory()

    def _confirm(self, gateway):
        request = self.factory.post(
            "/api/v1/payments/confirm",
            {"order_id": self.order.pk, "method": "credit_card", "gateway": gateway},
            format="json",
        )
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        return ConfirmPaymentView.as_view()(request)

    def test_confirm_returns_payment_and_order(self):
        resp = self._confirm("webpay")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["payment"]["status"], PaymentRecordStatus.COMPLETED)
        self.assertEqual(resp.data["order"]["status"], OrderStatus.CONFIRMED)

    def test_declined_maps_to_402(self):
        resp = self._confirm("flow")
        self.assertEqual(resp.status_code, 402)
        self.assertEqual(resp.data["code"], "payment_declined")
