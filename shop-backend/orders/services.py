# shop-backend/orders/services.py
"""
Order state machine and checkout.

Status only changes through _transition(), which checks TRANSITIONS and
appends one OrderStatusEvent. Stock for an order is reserved at checkout,
consumed once by commit_stock() when payment settles, and released on
cancellation before that point.
"""
import logging
import math
import secrets
import string
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Avg, Count, Sum
from django.utils import timezone

from carts.models import Cart
from carts.services import clear as clear_cart, coupon_terms
from carts.totals import ShippingPolicy, compute_totals
from common.conf import commerce_setting
from common.exceptions import CompensationFailed, InvalidTransition, NotFound, ValidationError
from common.models import AuditLog
from common.money import money, to_decimal
from inventory import ledger
from loyalty import rewards

from .models import (
    Order, OrderItem, OrderStatus, OrderStatusEvent,
    PaymentMethod, PaymentStatus, ShippingMethod,
)

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(tenant) -> str:
    prefix = commerce_setting("ORDER_NUMBER_PREFIX")
    period = timezone.now().strftime("%y%m")
    while True:
        rand = "".join(secrets.choice(_ALPHABET) for _ in range(6))
        number = f"{prefix}-{tenant.order_prefix}-{period}-{rand}"
        if not Order.objects.filter(order_number=number).exists():
            return number


def get_order(tenant, order_id, user=None) -> Order:
    qs = Order.objects.filter(tenant=tenant)
    if user is not None and not user.is_staff:
        qs = qs.filter(user=user)
    try:
        return qs.get(pk=order_id)
    except (Order.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Order {order_id} not found")


def _lock(order) -> Order:
    return Order.objects.select_for_update().get(pk=order.pk)


def _transition(order, new_status, comment="", actor=None):
    """Caller holds the row lock on `order`."""
    if not order.can_transition_to(new_status):
        raise InvalidTransition(
            f"Cannot change order {order.order_number} from {order.status} to {new_status}",
            from_status=order.status,
            to_status=str(new_status),
        )
    previous = order.status
    order.status = new_status
    order.save()
    OrderStatusEvent.objects.create(
        order=order, from_status=previous, status=new_status, comment=comment or "", actor=actor,
    )
    AuditLog.record(
        tenant=order.tenant,
        action="order.status_changed",
        user=actor,
        obj=order,
        metadata={"from": previous, "to": new_status, "comment": comment or ""},
    )
    logger.info("Order %s: %s -> %s", order.order_number, previous, new_status)
    return order


def update_status(order, new_status, comment="", actor=None) -> Order:
    """
    Move the order to `new_status`.

    Cancelled and refunded go through cancel() and refund() so stock is
    released and refund fields are stamped.

    Raises:
        InvalidTransition: if new_status is not allowed from the current status
    """
    if new_status not in OrderStatus.values:
        raise ValidationError(f"Unknown order status '{new_status}'")
    if new_status == OrderStatus.CANCELLED:
        return cancel(order, comment or "Cancelled", actor)
    if new_status == OrderStatus.REFUNDED:
        return refund(order, comment or "Refunded", actor)
    with transaction.atomic():
        _transition(_lock(order), new_status, comment, actor)
    order.refresh_from_db()
    return order


def _validate_checkout_input(shipping_address, payment_method, shipping_method):
    if not isinstance(shipping_address, dict) or not shipping_address:
        raise ValidationError("shipping_address is required")
    for field in ("street", "city"):
        if not str(shipping_address.get(field) or "").strip():
            raise ValidationError(f"shipping_address.{field} is required")
    if payment_method not in PaymentMethod.values:
        raise ValidationError(f"Unknown payment method '{payment_method}'")
    if shipping_method not in ShippingMethod.values:
        raise ValidationError(f"Unknown shipping method '{shipping_method}'")


def create_from_cart(tenant, user, shipping_address, payment_method,
                     shipping_method=ShippingMethod.STANDARD, notes="") -> Order:
    """
    Checkout: snapshot the user's cart into a pending order.

    Each line is reserved as its own atomic step. If a reservation (or the
    order insert) fails, the lines reserved so far are released and the
    original error propagates. If a release fails as well, CompensationFailed
    is raised carrying the original error. The cart is cleared only once the
    order and all reservations are durable.

    A second checkout of the same cart while one is running raises
    InvalidTransition.
    """
    _validate_checkout_input(shipping_address, payment_method, shipping_method)

    cart, items = _claim_cart(tenant, user)
    try:
        order = _checkout(tenant, user, cart, items, shipping_address, payment_method, shipping_method, notes)
    except Exception:
        Cart.objects.filter(pk=cart.pk).update(checkout_started_at=None)
        raise
    return order


def _claim_cart(tenant, user):
    """
    Lock the user's cart and stamp checkout_started_at, so a concurrent
    checkout of the same cart (double submit) is rejected instead of
    reserving the same lines twice. A claim older than
    CHECKOUT_CLAIM_SECONDS is treated as abandoned.
    """
    with transaction.atomic():
        cart = Cart.objects.select_for_update().filter(tenant=tenant, user=user).first()
        items = list(cart.items.select_related("product")) if cart else []
        if not items:
            raise ValidationError("Cart is empty")
        now = timezone.now()
        window = timedelta(seconds=int(commerce_setting("CHECKOUT_CLAIM_SECONDS")))
        if cart.checkout_started_at and cart.checkout_started_at > now - window:
            raise InvalidTransition("A checkout for this cart is already in progress")
        cart.checkout_started_at = now
        cart.save(update_fields=["checkout_started_at", "updated_at"])
    return cart, items


def _checkout(tenant, user, cart, items, shipping_address, payment_method, shipping_method, notes):
    for item in items:
        product = item.product
        if not product.is_active:
            raise ValidationError(f"Product '{product.name}' is no longer available", product_id=product.pk)
        if product.available_stock < item.quantity:
            raise ValidationError(
                f"Not enough stock for '{product.name}': {product.available_stock} available",
                product_id=product.pk,
            )

    shipping = ShippingPolicy(flat_cost=Decimal("0")) if shipping_method == ShippingMethod.PICKUP else None
    totals = compute_totals(items, coupon_terms(cart), shipping=shipping)

    coupon = None
    if cart.redeemed_reward_id:
        coupon = rewards.validate_coupon(
            tenant, cart.coupon_code, totals.subtotal,
            categories=[i.category for i in items], user=user,
        )["coupon"]

    rate = Decimal(str(commerce_setting("LOYALTY_CURRENCY_PER_POINT")))
    points_earned = int(math.floor(totals.total / rate)) if rate > 0 else 0

    order_number = generate_order_number(tenant)
    lines = [(i.product_id, i.quantity) for i in items]
    ledger.reserve_many(lines, order_number, user=user)

    try:
        with transaction.atomic():
            order = Order.objects.create(
                tenant=tenant,
                user=user,
                order_number=order_number,
                status=OrderStatus.PENDING,
                subtotal=totals.subtotal,
                discount=totals.discount,
                tax=totals.tax,
                shipping_cost=totals.shipping,
                total=totals.total,
                currency=cart.currency,
                coupon_code=cart.coupon_code,
                coupon_type=cart.coupon_type,
                coupon_value=cart.coupon_value,
                loyalty_points_earned=points_earned,
                payment_method=payment_method,
                shipping_method=shipping_method,
                shipping_address=shipping_address,
                customer_notes=notes or "",
            )
            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    product_id=i.product_id,
                    sku=i.sku,
                    name=i.name,
                    brand=i.brand,
                    category=i.category,
                    image_url=i.image_url,
                    price=i.price,
                    quantity=i.quantity,
                    subtotal=money(i.price * i.quantity),
                )
                for i in items
            ])
            OrderStatusEvent.objects.create(
                order=order, status=OrderStatus.PENDING, comment="Order created", actor=user,
            )
            if coupon is not None:
                rewards.use_coupon(coupon, order, totals.discount)
            cart.checkout_started_at = None
            clear_cart(cart)
            AuditLog.record(
                tenant=tenant, action="order.created", user=user, obj=order,
                metadata={"order_number": order_number, "total": str(order.total)},
            )
    except Exception as exc:
        failures = ledger.release_many(lines, order_number, user=user)
        if failures:
            raise CompensationFailed(
                f"Checkout {order_number} failed and stock could not be released",
                original=exc,
                failures=[pid for pid, _ in failures],
            ) from exc
        raise

    logger.info("Created order %s (%s lines, total %s)", order_number, len(items), order.total)
    return order


def cancel(order, reason, actor=None) -> Order:
    """
    Cancel a pending/confirmed order and release its reserved stock.
    Orders whose stock was already consumed at settlement must be refunded.
    """
    with transaction.atomic():
        locked = _lock(order)
        if locked.stock_committed_at is not None:
            raise InvalidTransition(
                f"Order {locked.order_number} stock has been committed; use a refund instead",
                from_status=locked.status,
                to_status=OrderStatus.CANCELLED,
            )
        if not locked.can_cancel:
            raise InvalidTransition(
                f"Order {locked.order_number} cannot be cancelled from {locked.status}",
                from_status=locked.status,
                to_status=OrderStatus.CANCELLED,
            )
        locked.cancellation_reason = (reason or "")[:255]
        locked.cancelled_by = actor
        locked.cancelled_at = timezone.now()
        _transition(locked, OrderStatus.CANCELLED, reason, actor)

    lines = list(order.items.values_list("product_id", "quantity"))
    failures = ledger.release_many(lines, order.order_number, user=actor)
    order.refresh_from_db()
    if failures:
        AuditLog.record(
            tenant=order.tenant, action="order.release_failed", user=actor, obj=order, severity="critical",
            metadata={"product_ids": [pid for pid, _ in failures]},
        )
        raise CompensationFailed(
            f"Order {order.order_number} cancelled but stock release failed",
            failures=[pid for pid, _ in failures],
        )
    return order


def mark_as_paid(order, transaction_id, gateway, gateway_response=None, actor=None) -> Order:
    """pending -> confirmed with payment stamped as paid. Does not touch stock."""
    with transaction.atomic():
        locked = _lock(order)
        if locked.payment_status == PaymentStatus.PAID:
            raise InvalidTransition(f"Order {locked.order_number} is already paid")
        locked.payment_status = PaymentStatus.PAID
        locked.payment_transaction_id = transaction_id or ""
        locked.payment_gateway = gateway or ""
        locked.paid_at = timezone.now()
        locked.gateway_response = gateway_response or {}
        _transition(locked, OrderStatus.CONFIRMED, "Payment confirmed", actor)
    order.refresh_from_db()
    return order


def mark_payment_failed(order, gateway_response=None) -> Order:
    """Payment attempt declined: the order stays pending."""
    with transaction.atomic():
        locked = _lock(order)
        locked.payment_status = PaymentStatus.FAILED
        locked.gateway_response = gateway_response or {}
        locked.save(update_fields=["payment_status", "gateway_response", "updated_at"])
    order.refresh_from_db()
    return order


def commit_stock(order, actor=None) -> Order:
    """
    confirm_sale every line exactly once. Runs inside the settlement
    transaction; a second call raises InvalidTransition.
    """
    with transaction.atomic():
        locked = _lock(order)
        if locked.stock_committed_at is not None:
            raise InvalidTransition(f"Stock for order {locked.order_number} was already committed")
        for item in locked.items.all():
            ledger.confirm_sale(item.product_id, item.quantity, locked.order_number, user=actor)
        locked.stock_committed_at = timezone.now()
        locked.save(update_fields=["stock_committed_at", "updated_at"])
    order.refresh_from_db()
    return order


def start_processing(order, actor=None, comment="Preparing order") -> Order:
    return update_status(order, OrderStatus.PROCESSING, comment, actor)


def add_tracking(order, carrier, tracking_code, tracking_url="", estimated_delivery=None, actor=None) -> Order:
    if not (carrier or "").strip() or not (tracking_code or "").strip():
        raise ValidationError("carrier and tracking_code are required")
    with transaction.atomic():
        locked = _lock(order)
        locked.carrier = carrier
        locked.tracking_code = tracking_code
        locked.tracking_url = tracking_url or ""
        locked.estimated_delivery = estimated_delivery
        locked.shipped_at = timezone.now()
        _transition(locked, OrderStatus.SHIPPED, f"Shipped with {carrier}", actor)
    order.refresh_from_db()
    return order


def mark_delivered(order, actor=None) -> Order:
    with transaction.atomic():
        locked = _lock(order)
        locked.delivered_at = timezone.now()
        _transition(locked, OrderStatus.DELIVERED, "Order delivered", actor)
    order.refresh_from_db()
    return order


def refund(order, reason, actor=None, amount=None, transaction_id="") -> Order:
    """
    Refund a paid order. Stock is not put back automatically; returned
    goods go through inventory.ledger.return_stock.
    """
    with transaction.atomic():
        locked = _lock(order)
        if not locked.can_refund:
            raise InvalidTransition(
                f"Order {locked.order_number} cannot be refunded "
                f"(status {locked.status}, payment {locked.payment_status})",
                from_status=locked.status,
                to_status=OrderStatus.REFUNDED,
            )
        value = locked.total if amount in (None, "") else money(to_decimal(amount, "amount"))
        if value <= 0 or value > locked.total:
            raise ValidationError(f"Refund amount must be between 0 and {locked.total}")
        locked.refund_amount = value
        locked.refund_reason = (reason or "")[:255]
        locked.refunded_by = actor
        locked.refunded_at = timezone.now()
        locked.refund_transaction_id = transaction_id or ""
        locked.payment_status = PaymentStatus.REFUNDED
        _transition(locked, OrderStatus.REFUNDED, reason, actor)
    order.refresh_from_db()
    return order


def user_orders(tenant, user, status=None):
    qs = Order.objects.filter(tenant=tenant, user=user).prefetch_related("items")
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-created_at", "-id")


def sales_stats(tenant, start=None, end=None) -> dict:
    qs = Order.objects.filter(tenant=tenant)
    if start:
        qs = qs.filter(created_at__gte=start)
    if end:
        qs = qs.filter(created_at__lte=end)

    paid = qs.filter(payment_status=PaymentStatus.PAID)
    agg = paid.aggregate(revenue=Sum("total"), orders=Count("id"), average=Avg("total"))
    by_status = {row["status"]: row["n"] for row in qs.values("status").annotate(n=Count("id"))}
    return {
        "total_orders": qs.count(),
        "paid_orders": agg["orders"] or 0,
        "revenue": money(agg["revenue"] or 0),
        "average_order_value": money(agg["average"] or 0),
        "by_status": by_status,
    }
