# common/middleware.py
from django.http import JsonResponse
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication

from tenants.models import Tenant


TENANT_WHITELIST = (
    "/admin",
    "/api/v1/auth",
    "/static/",
)


def _token_claims(request) -> dict:
    """Claims of a valid Bearer token, or {} when there is none."""
    auth = JWTAuthentication()
    header = auth.get_header(request)
    if header is None:
        return {}
    try:
        raw = auth.get_raw_token(header)
        if raw is None:
            return {}
        return auth.get_validated_token(raw).payload
    except AuthenticationFailed:
        # DRF rejects the token itself when the view authenticates
        return {}


class TenantContextMiddleware:
    """
    Attach request.tenant from the tenant_id / tenant_code claims of the JWT,
    falling back to the X-Tenant-Id / X-Tenant-Code headers (guests have no
    token). Authentication itself is left to DRF (JWT / session).
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.method == "OPTIONS" or request.path.startswith(TENANT_WHITELIST):
            request.tenant = None
            return self.get_response(request)

        claims = _token_claims(request)
        tenant_id = claims.get("tenant_id") or request.headers.get("X-Tenant-Id")
        tenant_code = claims.get("tenant_code") or request.headers.get("X-Tenant-Code")

        tenant = None
        if tenant_id:
            try:
                tenant = Tenant.objects.filter(id=int(tenant_id), is_active=True).first()
            except (TypeError, ValueError):
                tenant = None
        if not tenant and tenant_code:
            tenant = Tenant.objects.filter(code=str(tenant_code), is_active=True).first()

        if not tenant:
            return JsonResponse({"code": "invalid_tenant", "detail": "Invalid tenant"}, status=403)

        request.tenant = tenant
        return self.get_response(request)
