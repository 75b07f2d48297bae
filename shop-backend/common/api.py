# common/api.py
import logging
from datetime import datetime, time

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.response import Response
from rest_framework.views import exception_handler

from common.exceptions import DomainError, ValidationError

logger = logging.getLogger(__name__)


def domain_exception_handler(exc, context):
    """
    DRF EXCEPTION_HANDLER: DomainError -> {"code", "detail"} with the error's
    status code. Anything else goes through DRF's default handling.
    """
    if isinstance(exc, DomainError):
        if exc.status_code >= 500:
            logger.error("Domain error %s: %s", exc.code, exc.message)
        return Response(exc.as_dict(), status=exc.status_code)
    return exception_handler(exc, context)


def resolve_request_tenant(request):
    """Tenant attached by TenantContextMiddleware (or by tests)"""
    tenant = getattr(request, "tenant", None)
    if tenant is None:
        raise ValidationError("No tenant in context")
    return tenant


def page_params(request, default_size=20, max_size=100):
    try:
        page = max(1, int(request.GET.get("page") or 1))
        page_size = int(request.GET.get("page_size") or default_size)
    except (TypeError, ValueError):
        raise ValidationError("page and page_size must be integers")
    return page, max(1, min(page_size, max_size))


def paginate(qs, page, page_size):
    total = qs.count()
    rows = list(qs[(page - 1) * page_size: page * page_size])
    return rows, {
        "page": page,
        "page_size": page_size,
        "total": total,
        "pages": (total + page_size - 1) // page_size,
    }


def aware_dt_param(val, end_of_day=False):
    """Parse ISO datetime or YYYY-MM-DD; make timezone-aware in current TZ."""
    if not val:
        return None
    try:
        # bare YYYY-MM-DD expands to local day bounds
        d = parse_date(val) if len(val) == 10 else None
        dt = None if d else parse_datetime(val)
    except ValueError:
        d = dt = None
    if d:
        naive = datetime.combine(d, time.max if end_of_day else time.min)
        return timezone.make_aware(naive, timezone.get_current_timezone())
    if dt is None:
        raise ValidationError(f"Invalid date '{val}'")
    return timezone.make_aware(dt, timezone.get_current_timezone()) if timezone.is_naive(dt) else dt
