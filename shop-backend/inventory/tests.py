from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from catalog.models import Product
from common.exceptions import CompensationFailed, InsufficientStock, ValidationError
from inventory import ledger
from inventory.api import ConfirmSaleView, MovementListView, ReserveView, RestockView
from inventory.models import MovementType, StockMovement
from tenants.models import Tenant


class LedgerTestBase(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme", currency_code="CLP")
        self.user = get_user_model().objects.create_user(
            username="admin", email="admin@example.com", password="test-pass", is_staff=True,
        )
        self.product = Product.objects.create(
            tenant=self.tenant, sku="SKU-1", name="Widget", price="10000.00", stock_current=5,
        )

    def refresh(self):
        self.product.refresh_from_db()
        return self.product

    def assert_conserved(self):
        p = self.refresh()
        self.assertGreaterEqual(p.stock_reserved, 0)
        self.assertLessEqual(p.stock_reserved, p.stock_current)
        self.assertEqual(p.available_stock, p.stock_current - p.stock_reserved)


class ReserveTests(LedgerTestBase):
    def test_reserve_all_then_next_reservation_fails(self):
        ledger.reserve(self.product, 5, "ORD-X")
        self.assertEqual(self.refresh().available_stock, 0)

        with self.assertRaises(InsufficientStock):
            ledger.reserve(self.product, 1, "ORD-Y")

        p = self.refresh()
        self.assertEqual(p.stock_reserved, 5)
        self.assertEqual(StockMovement.objects.filter(type=MovementType.RESERVATION).count(), 1)

    def test_reservation_movement_records_available_before_and_after(self):
        ledger.reserve(self.product, 2, "ORD-X", user=self.user)
        mv = StockMovement.objects.get()
        self.assertEqual(mv.quantity, -2)
        self.assertEqual(mv.previous_stock, 5)
        self.assertEqual(mv.new_stock, 3)
        self.assertEqual(mv.order_ref, "ORD-X")
        self.assertEqual(mv.performed_by, self.user)

    def test_non_positive_quantity_rejected(self):
        for qty in (0, -1, "abc", None):
            with self.assertRaises(ValidationError):
                ledger.reserve(self.product, qty, "ORD-X")
        self.assertFalse(StockMovement.objects.exists())


class ReleaseAndSaleTests(LedgerTestBase):
    def test_release_is_clamped_at_zero(self):
        ledger.reserve(self.product, 2, "ORD-X")
        ledger.release(self.product, 10, "ORD-X")
        p = self.refresh()
        self.assertEqual(p.stock_reserved, 0)
        self.assertEqual(p.stock_current, 5)
        self.assertEqual(StockMovement.objects.filter(type=MovementType.RELEASE).count(), 1)

    def test_confirm_sale_decrements_current_and_reserved(self):
        ledger.reserve(self.product, 3, "ORD-X")
        ledger.confirm_sale(self.product, 3, "ORD-X")
        p = self.refresh()
        self.assertEqual(p.stock_current, 2)
        self.assertEqual(p.stock_reserved, 0)

        mv = StockMovement.objects.filter(type=MovementType.SALE).get()
        self.assertEqual((mv.quantity, mv.previous_stock, mv.new_stock), (-3, 5, 2))

    def test_confirm_sale_cannot_drive_current_negative(self):
        with self.assertRaises(InsufficientStock):
            ledger.confirm_sale(self.product, 6, "ORD-X")
        self.assertEqual(self.refresh().stock_current, 5)

    def test_sequence_preserves_conservation(self):
        ledger.add_stock(self.product, 10, reason="PO-1")
        ledger.reserve(self.product, 7, "A")
        self.assert_conserved()
        ledger.reserve(self.product, 4, "B")
        self.assert_conserved()
        ledger.confirm_sale(self.product, 7, "A")
        self.assert_conserved()
        ledger.release(self.product, 4, "B")
        self.assert_conserved()
        p = self.refresh()
        self.assertEqual((p.stock_current, p.stock_reserved), (8, 0))
        self.assertEqual(ledger.movements_for(p).count(), 5)


class RestockAndAdjustTests(LedgerTestBase):
    def test_add_stock_stamps_last_restocked(self):
        self.assertIsNone(self.product.last_restocked_at)
        ledger.add_stock(self.product, 200, reason="container")
        p = self.refresh()
        self.assertEqual(p.stock_current, 205)
        self.assertIsNotNone(p.last_restocked_at)
        # max level is advisory only
        self.assertTrue(p.over_max_level)

    def test_return_increments_current(self):
        ledger.return_stock(self.product, 2, "ORD-X", reason="customer return")
        self.assertEqual(self.refresh().stock_current, 7)
        self.assertEqual(ledger.movements_for(self.product, MovementType.RETURN).count(), 1)

    def test_adjust_cannot_go_below_reserved(self):
        ledger.reserve(self.product, 4, "ORD-X")
        with self.assertRaises(InsufficientStock):
            ledger.adjust_stock(self.product, -2, "damaged")
        ledger.adjust_stock(self.product, -1, "damaged")
        self.assertEqual(self.refresh().stock_current, 4)

    def test_adjust_requires_reason(self):
        with self.assertRaises(ValidationError):
            ledger.adjust_stock(self.product, 3, "")

    def test_low_stock_products(self):
        Product.objects.create(tenant=self.tenant, sku="SKU-2", name="Gadget", price="5.00", stock_current=50)
        rows = list(ledger.low_stock_products(self.tenant))
        self.assertEqual([p.sku for p in rows], ["SKU-1"])


class ReserveManyTests(LedgerTestBase):
    def test_failure_releases_earlier_lines(self):
        other = Product.objects.create(tenant=self.tenant, sku="SKU-2", name="Gadget", price="5.00", stock_current=1)
        with self.assertRaises(InsufficientStock):
            ledger.reserve_many([(self.product.pk, 3), (other.pk, 2)], "ORD-X")

        self.assertEqual(self.refresh().stock_reserved, 0)
        other.refresh_from_db()
        self.assertEqual(other.stock_reserved, 0)
        self.assertEqual(StockMovement.objects.filter(type=MovementType.RELEASE, order_ref="ORD-X").count(), 1)

    def test_failed_compensation_surfaces_original_error(self):
        other = Product.objects.create(tenant=self.tenant, sku="SKU-2", name="Gadget", price="5.00", stock_current=1)
        real_release = ledger.release

        def broken_release(*args, **kwargs):
            raise RuntimeError("db gone")

        ledger.release = broken_release
        try:
            with self.assertRaises(CompensationFailed) as ctx:
                ledger.reserve_many([(self.product.pk, 3), (other.pk, 2)], "ORD-X")
        finally:
            ledger.release = real_release

        self.assertIsInstance(ctx.exception.original, InsufficientStock)
        self.assertEqual(ctx.exception.failures, [self.product.pk])


class StockApiTests(LedgerTestBase):
    def setUp(self):
        super().setUp()
        self.factory = APIRequestFactory()

    def _post(self, view, path, data):
        request = self.factory.post(path, data, format="json")
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        return view.as_view()(request, pk=self.product.pk)

    def test_restock_returns_updated_product(self):
        resp = self._post(RestockView, "/api/v1/inventory/products/1/restock", {"quantity": 10, "reason": "PO-7"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["stock_current"], 15)
        self.assertEqual(resp.data["available_stock"], 15)

    def test_reserve_insufficient_maps_to_409(self):
        resp = self._post(ReserveView, "/api/v1/inventory/products/1/reserve", {"quantity": 9, "order_ref": "ORD-1"})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "insufficient_stock")

    def test_confirm_sale_requires_order_ref(self):
        resp = self._post(ConfirmSaleView, "/api/v1/inventory/products/1/confirm-sale", {"quantity": 1})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["code"], "validation_error")

    def test_movements_are_paginated(self):
        for i in range(3):
            ledger.add_stock(self.product, 1, reason=f"r{i}")
        request = self.factory.get("/api/v1/inventory/products/1/movements", {"page_size": 2})
        force_authenticate(request, user=self.user)
        request.tenant = self.tenant
        resp = MovementListView.as_view()(request, pk=self.product.pk)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["total"], 3)
        self.assertEqual(resp.data["pages"], 2)
        self.assertEqual(len(resp.data["results"]), 2)
        self.assertEqual(resp.data["results"][0]["reason"], "r2")
