# payments/services.py
"""
Payment settlement: ties a gateway charge to the order state machine, the
inventory ledger and the loyalty engine.

The payment row is committed before the gateway is called, so an attempt
is never lost whatever happens afterwards.
"""
import logging
import secrets
import string

from django.db import transaction
from django.utils import timezone

from common.exceptions import InvalidTransition, PaymentDeclined, ValidationError
from common.models import AuditLog
from common.money import money, to_decimal
from loyalty import services as loyalty
from orders import services as orders
from orders.models import Order, OrderStatus, PaymentMethod, PaymentStatus

from .gateways import get_gateway
from .models import Gateway, Payment, PaymentRecordStatus

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_uppercase + string.digits


def _transaction_id(prefix="PAY") -> str:
    while True:
        stamp = timezone.now().strftime("%y%m%d%H%M")
        tid = f"{prefix}-{stamp}-" + "".join(secrets.choice(_ALPHABET) for _ in range(6))
        if not Payment.objects.filter(transaction_id=tid).exists():
            return tid


def _fail(payment, code, message, raw=None):
    payment.status = PaymentRecordStatus.FAILED
    payment.error_code = code
    payment.error_message = (message or "")[:255]
    payment.gateway_response = raw or {}
    payment.failed_at = timezone.now()
    payment.save()
    return payment


def _start_attempt(tenant, order, method, gateway) -> Payment:
    """
    Lock the order, move payment_status to processing and record the
    attempt. Only one attempt per order can be in flight.
    """
    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.payment_status == PaymentStatus.PAID:
            raise ValidationError(f"Order {locked.order_number} has already been paid")
        if locked.payment_status == PaymentStatus.PROCESSING:
            raise InvalidTransition(f"A payment for order {locked.order_number} is already being processed")
        if locked.status != OrderStatus.PENDING:
            raise InvalidTransition(f"Order {locked.order_number} is {locked.status} and cannot be paid")
        locked.payment_status = PaymentStatus.PROCESSING
        locked.save(update_fields=["payment_status", "updated_at"])
        return Payment.objects.create(
            tenant=tenant,
            order=locked,
            user=locked.user,
            amount=locked.total,
            currency=locked.currency,
            method=method,
            gateway=gateway,
            status=PaymentRecordStatus.PROCESSING,
            transaction_id=_transaction_id(),
            processed_at=timezone.now(),
        )


def settle_order_payment(tenant, user, order_id, method, gateway):
    """
    Charge the order total through `gateway` and settle the order.

    Approved: in one transaction the payment is completed, the order is
    marked paid (pending -> confirmed) and every line's reserved stock is
    consumed with confirm_sale. Loyalty points are awarded afterwards; a
    failure there is logged and never undoes the sale.

    While the gateway call runs the order's payment_status is processing and
    a second attempt is rejected with InvalidTransition.

    Declined: the payment is stored as failed, the order stays pending with
    payment_status failed and PaymentDeclined is raised. If settlement fails
    after an approved charge, payment_status stays processing so the order
    cannot be charged again until someone reconciles it.

    Returns (payment, order).
    """
    if method not in PaymentMethod.values:
        raise ValidationError(f"Unknown payment method '{method}'")
    if gateway not in Gateway.values:
        raise ValidationError(f"Unknown payment gateway '{gateway}'")
    adapter = get_gateway(gateway)

    order = orders.get_order(tenant, order_id, user=user)
    payment = _start_attempt(tenant, order, method, gateway)
    order.refresh_from_db()

    try:
        result = adapter.charge(
            amount=order.total, currency=order.currency, reference=order.order_number, method=method,
        )
    except Exception as exc:
        _fail(payment, "gateway_error", str(exc))
        orders.mark_payment_failed(order)
        logger.exception("Gateway %s failed for order %s", gateway, order.order_number)
        raise

    if not result.approved:
        _fail(payment, result.error_code or "declined", result.error_message, result.raw)
        orders.mark_payment_failed(order, gateway_response=result.raw)
        AuditLog.record(
            tenant=tenant, action="payment.declined", user=user, obj=payment, severity="warning",
            metadata={"order": order.order_number, "error_code": payment.error_code},
        )
        logger.info("Payment %s declined for order %s", payment.transaction_id, order.order_number)
        raise PaymentDeclined(
            result.error_message or "Payment declined",
            payment_id=payment.pk,
            transaction_id=payment.transaction_id,
        )

    try:
        with transaction.atomic():
            payment.status = PaymentRecordStatus.COMPLETED
            payment.gateway_transaction_id = result.gateway_transaction_id
            payment.authorization_code = result.authorization_code
            payment.card_brand = result.card_brand
            payment.card_last4 = result.card_last4
            payment.gateway_response = result.raw
            payment.completed_at = timezone.now()
            payment.save()

            orders.mark_as_paid(order, payment.transaction_id, gateway, result.raw, actor=user)
            orders.commit_stock(order, actor=user)
    except Exception as exc:
        # charge went through but the order could not be settled
        payment.refresh_from_db()
        _fail(payment, "settlement_error", str(exc), result.raw)
        AuditLog.record(
            tenant=tenant, action="payment.settlement_failed", user=user, obj=payment, severity="critical",
            metadata={"order": order.order_number, "gateway_transaction_id": result.gateway_transaction_id},
        )
        logger.exception("Settlement of payment %s failed for order %s", payment.transaction_id, order.order_number)
        raise

    AuditLog.record(
        tenant=tenant, action="payment.completed", user=user, obj=payment,
        metadata={"order": order.order_number, "amount": str(payment.amount)},
    )

    if order.loyalty_points_earned > 0:
        try:
            account = loyalty.get_or_create_account(tenant, order.user)
            loyalty.add_points(account, order.loyalty_points_earned, f"Order {order.order_number}", order=order)
        except Exception:
            logger.exception("Could not award loyalty points for order %s", order.order_number)

    return payment, order


def refund_payment(payment, reason, actor, amount=None):
    """
    Refund a completed payment through its gateway and drive the order to
    refunded. Stock is not restocked here.
    """
    if payment.status != PaymentRecordStatus.COMPLETED:
        raise InvalidTransition(f"Payment {payment.transaction_id} is {payment.status} and cannot be refunded")
    value = payment.amount if amount in (None, "") else money(to_decimal(amount, "amount"))
    if value <= 0 or value > payment.amount:
        raise ValidationError(f"Refund amount must be between 0 and {payment.amount}")

    order = payment.order
    if not order.can_refund:
        raise InvalidTransition(f"Order {order.order_number} cannot be refunded from {order.status}")

    result = get_gateway(payment.gateway).refund(
        amount=value, currency=payment.currency, reference=payment.transaction_id,
    )
    if not result.approved:
        raise PaymentDeclined(result.error_message or "Refund declined", payment_id=payment.pk)

    with transaction.atomic():
        payment.status = PaymentRecordStatus.REFUNDED
        payment.refund_amount = value
        payment.refund_reason = (reason or "")[:255]
        payment.refund_transaction_id = _transaction_id("REF")
        payment.refunded_by = actor
        payment.refunded_at = timezone.now()
        payment.save()
        orders.refund(order, reason, actor=actor, amount=value, transaction_id=payment.refund_transaction_id)

    logger.info("Refunded %s on payment %s", value, payment.transaction_id)
    return payment, order


def user_payments(tenant, user, status=None):
    qs = Payment.objects.filter(tenant=tenant, user=user).select_related("order")
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-created_at", "-id")
