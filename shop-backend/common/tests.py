from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.http import HttpResponse
from django.test import RequestFactory, TestCase, override_settings
from django.utils import timezone
from rest_framework import exceptions as drf_exceptions
from rest_framework.test import APIRequestFactory
from rest_framework_simplejwt.tokens import AccessToken

from common.api import aware_dt_param, domain_exception_handler, page_params, paginate
from common.auth_tokens import TenantTokenObtainPairView
from common.conf import commerce_setting
from common.exceptions import CompensationFailed, InsufficientStock, NotFound, ValidationError
from common.middleware import TenantContextMiddleware
from common.models import AuditLog
from common.money import money, to_decimal, to_quantity
from tenants.models import Tenant


class ExceptionHandlerTests(TestCase):
    def test_domain_errors_map_to_status_and_code(self):
        resp = domain_exception_handler(InsufficientStock("only 2 left", available=2), {})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data, {"code": "insufficient_stock", "detail": "only 2 left", "context": {"available": 2}})

        resp = domain_exception_handler(NotFound(), {})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["detail"], "Not found")

    def test_compensation_failure_is_500_and_keeps_original(self):
        original = InsufficientStock("boom")
        exc = CompensationFailed("release failed", original=original, failures=[7])
        self.assertIs(exc.original, original)
        self.assertEqual(exc.failures, [7])
        self.assertEqual(domain_exception_handler(exc, {}).status_code, 500)

    def test_other_errors_fall_through_to_drf(self):
        resp = domain_exception_handler(drf_exceptions.ValidationError({"name": ["required"]}), {})
        self.assertEqual(resp.status_code, 400)
        self.assertIsNone(domain_exception_handler(RuntimeError("boom"), {}))


class MoneyTests(TestCase):
    def test_money_rounds_half_up(self):
        self.assertEqual(money(Decimal("4274.995")), Decimal("4275.00"))
        self.assertEqual(money(Decimal("0.005")), Decimal("0.01"))

    def test_to_decimal_and_quantity(self):
        self.assertEqual(to_decimal("12.50"), Decimal("12.50"))
        with self.assertRaises(ValidationError):
            to_decimal("abc")
        with self.assertRaises(ValidationError):
            to_decimal(None)
        self.assertEqual(to_quantity("3"), 3)
        for bad in (0, -1, "x", None):
            with self.assertRaises(ValidationError):
                to_quantity(bad)


class ConfTests(TestCase):
    @override_settings(COMMERCE={"TAX_RATE": Decimal("0.19")})
    def test_configured_value_wins_over_default(self):
        self.assertEqual(commerce_setting("TAX_RATE"), Decimal("0.19"))
        self.assertEqual(commerce_setting("CART_TTL_DAYS"), 7)


class ParamHelperTests(TestCase):
    def setUp(self):
        self.rf = RequestFactory()

    def test_page_params_clamps_size(self):
        self.assertEqual(page_params(self.rf.get("/", {"page": "2", "page_size": "500"})), (2, 100))
        self.assertEqual(page_params(self.rf.get("/")), (1, 20))
        with self.assertRaises(ValidationError):
            page_params(self.rf.get("/", {"page": "two"}))

    def test_paginate_reports_totals(self):
        tenant = Tenant.objects.create(name="Acme", code="acme")
        for i in range(5):
            AuditLog.record(tenant=tenant, action=f"test.{i}")
        rows, meta = paginate(AuditLog.objects.order_by("id"), 2, 2)
        self.assertEqual([r.action for r in rows], ["test.2", "test.3"])
        self.assertEqual(meta, {"page": 2, "page_size": 2, "total": 5, "pages": 3})

    def test_aware_dt_param(self):
        self.assertIsNone(aware_dt_param(""))
        start = aware_dt_param("2025-03-01")
        end = aware_dt_param("2025-03-01", end_of_day=True)
        self.assertTrue(timezone.is_aware(start))
        self.assertEqual((start.hour, end.hour, end.minute), (0, 23, 59))
        explicit = aware_dt_param("2025-03-01T10:30:00+00:00")
        self.assertEqual(explicit, datetime(2025, 3, 1, 10, 30, tzinfo=dt_timezone.utc))
        with self.assertRaises(ValidationError):
            aware_dt_param("not-a-date")


class TenantMiddlewareTests(TestCase):
    def setUp(self):
        self.rf = RequestFactory()
        self.tenant = Tenant.objects.create(name="Acme", code="acme")
        self.seen = []

        def get_response(request):
            self.seen.append(request.tenant)
            return HttpResponse("ok")

        self.middleware = TenantContextMiddleware(get_response)

    def test_resolves_by_code_or_id(self):
        self.middleware(self.rf.get("/api/v1/cart", HTTP_X_TENANT_CODE="acme"))
        self.middleware(self.rf.get("/api/v1/cart", HTTP_X_TENANT_ID=str(self.tenant.pk)))
        self.assertEqual(self.seen, [self.tenant, self.tenant])

    def test_unknown_or_inactive_tenant_is_403(self):
        resp = self.middleware(self.rf.get("/api/v1/cart", HTTP_X_TENANT_CODE="nope"))
        self.assertEqual(resp.status_code, 403)
        Tenant.objects.filter(pk=self.tenant.pk).update(is_active=False)
        resp = self.middleware(self.rf.get("/api/v1/cart", HTTP_X_TENANT_CODE="acme"))
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.seen, [])

    def test_auth_paths_skip_tenant(self):
        resp = self.middleware(self.rf.post("/api/v1/auth/token/"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.seen, [None])

    def test_resolves_from_token_claims(self):
        user = get_user_model().objects.create_user(username="ana", password="test-pass")
        other = Tenant.objects.create(name="Other", code="other")
        token = AccessToken.for_user(user)
        token["tenant_code"] = "acme"

        self.middleware(self.rf.get("/api/v1/cart", HTTP_AUTHORIZATION=f"Bearer {token}"))
        # the claim wins over a header naming another tenant
        self.middleware(self.rf.get("/api/v1/cart", HTTP_AUTHORIZATION=f"Bearer {token}", HTTP_X_TENANT_CODE=other.code))
        self.assertEqual(self.seen, [self.tenant, self.tenant])

    def test_bad_token_falls_back_to_headers(self):
        self.middleware(self.rf.get("/api/v1/cart", HTTP_AUTHORIZATION="Bearer not-a-jwt", HTTP_X_TENANT_CODE="acme"))
        resp = self.middleware(self.rf.get("/api/v1/cart", HTTP_AUTHORIZATION="Bearer not-a-jwt"))
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.seen, [self.tenant])


class TenantTokenTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(name="Acme", code="acme")
        get_user_model().objects.create_user(username="ana", password="test-pass")
        self.factory = APIRequestFactory()

    def _obtain(self, data):
        request = self.factory.post("/api/v1/auth/token/", data, format="json")
        return TenantTokenObtainPairView.as_view()(request)

    def test_tenant_code_is_embedded_in_tokens(self):
        resp = self._obtain({"username": "ana", "password": "test-pass", "tenant_code": "acme"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["tenant"], {"id": self.tenant.pk, "code": "acme"})
        access = AccessToken(resp.data["access"])
        self.assertEqual((access["tenant_id"], access["tenant_code"]), (self.tenant.pk, "acme"))

    def test_without_tenant_code_tokens_are_plain(self):
        resp = self._obtain({"username": "ana", "password": "test-pass"})
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("tenant_code", AccessToken(resp.data["access"]).payload)

    def test_unknown_tenant_is_rejected(self):
        resp = self._obtain({"username": "ana", "password": "test-pass", "tenant_code": "nope"})
        self.assertEqual(resp.status_code, 401)


class AuditLogTests(TestCase):
    def test_record_captures_object_reference(self):
        tenant = Tenant.objects.create(name="Acme", code="acme")
        user = get_user_model().objects.create_user(username="ops", password="test-pass")
        entry = AuditLog.record(tenant=tenant, action="tenant.checked", user=user, obj=tenant, severity="warning")
        self.assertEqual((entry.object_type, entry.object_id), ("tenant", str(tenant.pk)))
        self.assertEqual(entry.metadata, {})
