# payments/gateways.py
"""
Payment gateway adapters. Only simulated gateways ship here; a real PSP
adapter subclasses BaseGateway and is wired through
COMMERCE["PAYMENT_GATEWAYS"].
"""
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict

from django.utils.module_loading import import_string

from common.conf import commerce_setting
from common.exceptions import ValidationError


@dataclass
class GatewayResult:
    approved: bool
    gateway_transaction_id: str = ""
    authorization_code: str = ""
    error_code: str = ""
    error_message: str = ""
    card_brand: str = ""
    card_last4: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)


class BaseGateway:
    name = "base"

    def charge(self, *, amount: Decimal, currency: str, reference: str, method: str) -> GatewayResult:
        raise NotImplementedError

    def refund(self, *, amount: Decimal, currency: str, reference: str) -> GatewayResult:
        raise NotImplementedError


class SimulatedGateway(BaseGateway):
    """Approves every charge and refund."""
    name = "simulated"

    def charge(self, *, amount, currency, reference, method):
        return GatewayResult(
            approved=True,
            gateway_transaction_id=f"SIM-{secrets.token_hex(6).upper()}",
            authorization_code="AUTH_SIM",
            raw={"result": "SIMULATION_SUCCESS", "amount": str(amount), "currency": currency, "reference": reference},
        )

    def refund(self, *, amount, currency, reference):
        return GatewayResult(
            approved=True,
            gateway_transaction_id=f"SIMR-{secrets.token_hex(6).upper()}",
            raw={"result": "REFUND_SUCCESS", "amount": str(amount), "reference": reference},
        )


class DecliningGateway(BaseGateway):
    """Declines every charge. For sandboxes and tests."""
    name = "declining"

    def charge(self, *, amount, currency, reference, method):
        return GatewayResult(
            approved=False,
            error_code="card_declined",
            error_message="The card was declined",
            raw={"result": "DECLINED", "reference": reference},
        )

    def refund(self, *, amount, currency, reference):
        return GatewayResult(approved=False, error_code="refund_declined", error_message="Refund declined")


def get_gateway(name) -> BaseGateway:
    registry = commerce_setting("PAYMENT_GATEWAYS")
    path = registry.get(name)
    if not path:
        raise ValidationError(f"Unknown payment gateway '{name}'")
    return import_string(path)()
