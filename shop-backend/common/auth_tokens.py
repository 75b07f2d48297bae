from rest_framework import exceptions
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView

from tenants.models import Tenant


class TenantTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Accepts username, password and an optional tenant_code. When given, the
    tenant is embedded in the tokens so later requests can omit the
    X-Tenant-* headers.
    """

    def validate(self, attrs):
        data = super().validate(attrs)

        request = self.context.get("request")
        tenant_code = (request.data.get("tenant_code") or "").strip() if request is not None else ""
        if not tenant_code:
            return data

        tenant = Tenant.objects.filter(code=tenant_code, is_active=True).first()
        if not tenant:
            raise exceptions.AuthenticationFailed("Invalid tenant")

        refresh = self.get_token(self.user)
        refresh["tenant_id"] = tenant.id
        refresh["tenant_code"] = tenant.code

        data["refresh"] = str(refresh)
        data["access"] = str(refresh.access_token)
        data["tenant"] = {"id": tenant.id, "code": tenant.code}
        return data


class TenantTokenObtainPairView(TokenObtainPairView):
    serializer_class = TenantTokenObtainPairSerializer
