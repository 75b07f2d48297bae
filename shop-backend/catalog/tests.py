from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from catalog.models import Product, ProductStatus
from catalog.views import ProductDetailView, ProductListCreateView
from inventory.models import MovementType, StockMovement
from tenants.models import Tenant


class ProductModelTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme")

    def test_derived_stock_properties(self):
        p = Product.objects.create(
            tenant=self.tenant, sku="SKU-1", name="Blue Mug", price="9000.00",
            stock_current=4, stock_reserved=1,
        )
        self.assertEqual(p.slug, "blue-mug")
        self.assertEqual(p.available_stock, 3)
        self.assertTrue(p.in_stock)
        self.assertTrue(p.low_stock)
        self.assertTrue(p.needs_reorder)
        self.assertTrue(p.is_active)

    def test_discount_percent(self):
        p = Product(tenant=self.tenant, sku="S", name="S", price=Decimal("7500"), old_price=Decimal("10000"))
        self.assertTrue(p.has_discount)
        self.assertEqual(p.discount_percent, 25)
        p.old_price = None
        self.assertEqual(p.discount_percent, 0)

    def test_sku_unique_per_tenant_case_insensitive(self):
        Product.objects.create(tenant=self.tenant, sku="abc", name="A", price="1.00")
        other = Tenant.objects.create(name="Other", code="other")
        Product.objects.create(tenant=other, sku="ABC", name="A", price="1.00")
        with self.assertRaises(IntegrityError), transaction.atomic():
            Product.objects.create(tenant=self.tenant, sku="ABC", name="B", price="1.00")

    def test_reserved_cannot_exceed_current(self):
        with self.assertRaises(IntegrityError), transaction.atomic():
            Product.objects.create(
                tenant=self.tenant, sku="X", name="X", price="1.00", stock_current=1, stock_reserved=2,
            )

    def test_deactivate_keeps_row(self):
        p = Product.objects.create(tenant=self.tenant, sku="X", name="X", price="1.00")
        p.deactivate()
        p.refresh_from_db()
        self.assertEqual(p.status, ProductStatus.INACTIVE)
        self.assertFalse(Product.objects.active().exists())


class ProductApiTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.tenant = Tenant.objects.create(name="Acme", code="acme")
        self.staff = get_user_model().objects.create_user(username="ops", password="test-pass", is_staff=True)
        self.mug = Product.objects.create(
            tenant=self.tenant, sku="MUG", name="Mug", category="Kitchen", price="5000.00", stock_current=3,
        )
        self.old = Product.objects.create(
            tenant=self.tenant, sku="OLD", name="Old Mug", category="Kitchen", price="1000.00",
            status=ProductStatus.INACTIVE,
        )

    def _req(self, method, path, data=None, user=None):
        if method == "get":
            request = self.factory.get(path, data)
        else:
            request = getattr(self.factory, method)(path, data, format="json")
        if user is not None:
            force_authenticate(request, user=user)
        request.tenant = self.tenant
        return request

    def test_list_hides_inactive_for_shoppers(self):
        resp = ProductListCreateView.as_view()(self._req("get", "/api/v1/catalog/products", {"category": "kitchen"}))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([r["sku"] for r in resp.data["results"]], ["MUG"])
        self.assertEqual(resp.data["total"], 1)

    def test_staff_sees_inactive(self):
        resp = ProductListCreateView.as_view()(self._req("get", "/api/v1/catalog/products", user=self.staff))
        self.assertEqual(resp.data["total"], 2)

    def test_create_with_initial_stock_writes_ledger(self):
        resp = ProductListCreateView.as_view()(self._req(
            "post", "/api/v1/catalog/products",
            {"sku": "CUP", "name": "Cup", "price": "2500.00", "initial_stock": 10},
            user=self.staff,
        ))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["stock_current"], 10)
        mv = StockMovement.objects.get(product__sku="CUP")
        self.assertEqual(mv.type, MovementType.RESTOCK)
        self.assertEqual(mv.new_stock, 10)

    def test_duplicate_sku_is_400(self):
        resp = ProductListCreateView.as_view()(self._req(
            "post", "/api/v1/catalog/products", {"sku": "mug", "name": "Mug 2", "price": "1.00"}, user=self.staff,
        ))
        self.assertEqual(resp.status_code, 400)

    def test_inactive_detail_is_404_for_shoppers(self):
        view = ProductDetailView.as_view()
        self.assertEqual(view(self._req("get", f"/api/v1/catalog/products/{self.old.pk}"), pk=self.old.pk).status_code, 404)
        self.assertEqual(view(self._req("get", f"/api/v1/catalog/products/{self.mug.pk}"), pk=self.mug.pk).status_code, 200)

    def test_patch_ignores_stock_and_delete_deactivates(self):
        view = ProductDetailView.as_view()
        resp = view(self._req(
            "patch", f"/api/v1/catalog/products/{self.mug.pk}", {"price": "5500.00", "stock_current": 99},
            user=self.staff,
        ), pk=self.mug.pk)
        self.assertEqual(resp.status_code, 200)
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.price, Decimal("5500.00"))
        self.assertEqual(self.mug.stock_current, 3)

        resp = view(self._req("delete", f"/api/v1/catalog/products/{self.mug.pk}", user=self.staff), pk=self.mug.pk)
        self.assertEqual(resp.status_code, 204)
        self.mug.refresh_from_db()
        self.assertFalse(self.mug.is_active)
