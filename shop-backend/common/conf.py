# common/conf.py
from decimal import Decimal

from django.conf import settings


DEFAULTS = {
    "CART_TTL_DAYS": 7,
    "CART_MAX_LINE_QTY": 99,
    "CHECKOUT_CLAIM_SECONDS": 300,
    "TAX_RATE": Decimal("0"),
    "SHIPPING_FLAT_COST": Decimal("0"),
    "FREE_SHIPPING_THRESHOLD": None,
    "LOYALTY_CURRENCY_PER_POINT": Decimal("100"),
    "POINTS_TTL_DAYS": 365,
    "COUPON_TTL_DAYS": 30,
    "REFERRAL_REFERRER_BONUS": 500,
    "REFERRAL_WELCOME_BONUS": 200,
    "ORDER_NUMBER_PREFIX": "ORD",
    "PAYMENT_GATEWAYS": {
        "webpay": "payments.gateways.SimulatedGateway",
        "mercadopago": "payments.gateways.SimulatedGateway",
        "flow": "payments.gateways.SimulatedGateway",
        "manual": "payments.gateways.SimulatedGateway",
    },
}


def commerce_setting(name):
    """
    Read a tunable from settings.COMMERCE, falling back to DEFAULTS.
    Looked up on every call so override_settings() works in tests.
    """
    configured = getattr(settings, "COMMERCE", None) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]
