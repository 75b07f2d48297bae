# inventory/ledger.py
"""
Stock ledger for catalog products.

Every operation locks the product row (select_for_update) inside its own
transaction, mutates the counters and appends exactly one StockMovement.
Concurrent reservations against the same product are therefore serialized:
two requests cannot both take the last available unit.
"""
import logging

from django.db import transaction
from django.utils import timezone

from catalog.models import Product
from common.exceptions import CompensationFailed, InsufficientStock, NotFound, ValidationError
from common.money import to_quantity

from .models import MovementType, StockMovement

logger = logging.getLogger(__name__)


def _lock(product) -> Product:
    pk = getattr(product, "pk", product)
    try:
        return Product.objects.select_for_update().get(pk=pk)
    except Product.DoesNotExist:
        raise NotFound(f"Product {pk} not found")


def _write(product, type_, quantity, previous, new, *, order_ref="", reason="", user=None):
    return StockMovement.objects.create(
        product=product,
        type=type_,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new,
        order_ref=str(order_ref or ""),
        reason=reason or "",
        performed_by=user,
    )


def reserve(product, quantity, order_ref, user=None) -> Product:
    """
    Hold `quantity` units of available stock for an unconfirmed order.

    Raises:
        InsufficientStock: if available stock is lower than quantity
        ValidationError: if quantity is not a positive integer
    """
    qty = to_quantity(quantity)
    with transaction.atomic():
        item = _lock(product)
        available = item.available_stock
        if qty > available:
            raise InsufficientStock(
                f"Insufficient stock for {item.sku}: requested {qty}, available {available} "
                f"(current={item.stock_current}, reserved={item.stock_reserved})",
                product_id=item.pk,
                requested=qty,
                available=available,
            )
        item.stock_reserved += qty
        item.save(update_fields=["stock_reserved", "updated_at"])
        _write(item, MovementType.RESERVATION, -qty, available, item.available_stock, order_ref=order_ref, user=user)

    logger.info("Reserved %s x %s for %s", qty, item.sku, order_ref)
    return item


def release(product, quantity, order_ref, user=None) -> Product:
    """
    Give reserved units back to available stock. Clamped at zero reserved:
    a release is a compensating action and must not fail a cancellation.
    """
    qty = to_quantity(quantity)
    with transaction.atomic():
        item = _lock(product)
        available = item.available_stock
        item.stock_reserved = max(0, item.stock_reserved - qty)
        item.save(update_fields=["stock_reserved", "updated_at"])
        _write(item, MovementType.RELEASE, qty, available, item.available_stock, order_ref=order_ref, user=user)

    logger.info("Released %s x %s for %s", qty, item.sku, order_ref)
    return item


def confirm_sale(product, quantity, order_ref, user=None) -> Product:
    """
    Convert a reservation into an actual sale: decrements current and
    reserved stock (reserved floored at 0). Called once per order line when
    payment is confirmed.
    """
    qty = to_quantity(quantity)
    with transaction.atomic():
        item = _lock(product)
        previous = item.stock_current
        new_current = previous - qty
        new_reserved = max(0, item.stock_reserved - qty)
        if new_current < 0 or new_reserved > new_current:
            raise InsufficientStock(
                f"Cannot sell {qty} x {item.sku}: current={previous}, reserved={item.stock_reserved}",
                product_id=item.pk,
                requested=qty,
            )
        item.stock_current = new_current
        item.stock_reserved = new_reserved
        item.save(update_fields=["stock_current", "stock_reserved", "updated_at"])
        _write(item, MovementType.SALE, -qty, previous, new_current, order_ref=order_ref, user=user)

    logger.info("Sold %s x %s for %s", qty, item.sku, order_ref)
    return item


def add_stock(product, quantity, reason="", user=None) -> Product:
    """Admin restock. stock_max_level is advisory and not enforced here."""
    qty = to_quantity(quantity)
    with transaction.atomic():
        item = _lock(product)
        previous = item.stock_current
        item.stock_current = previous + qty
        item.last_restocked_at = timezone.now()
        item.save(update_fields=["stock_current", "last_restocked_at", "updated_at"])
        _write(item, MovementType.RESTOCK, qty, previous, item.stock_current, reason=reason, user=user)

    if item.over_max_level:
        logger.warning("Product %s above max level (%s > %s)", item.sku, item.stock_current, item.stock_max_level)
    return item


def return_stock(product, quantity, order_ref, reason="", user=None) -> Product:
    """Put returned units back on the shelf."""
    qty = to_quantity(quantity)
    with transaction.atomic():
        item = _lock(product)
        previous = item.stock_current
        item.stock_current = previous + qty
        item.save(update_fields=["stock_current", "updated_at"])
        _write(item, MovementType.RETURN, qty, previous, item.stock_current, order_ref=order_ref, reason=reason, user=user)
    return item


def adjust_stock(product, delta, reason, user=None) -> Product:
    """
    Signed manual correction (shrink, damage, count). Fails instead of
    driving current below zero or below what is already reserved.
    """
    try:
        delta = int(delta)
    except (TypeError, ValueError):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if not (reason or "").strip():
        raise ValidationError("reason is required for adjustments")

    with transaction.atomic():
        item = _lock(product)
        previous = item.stock_current
        new_current = previous + delta
        if new_current < 0 or new_current < item.stock_reserved:
            raise InsufficientStock(
                f"Adjustment of {delta} would leave {item.sku} at {new_current} "
                f"with {item.stock_reserved} reserved",
                product_id=item.pk,
            )
        item.stock_current = new_current
        item.save(update_fields=["stock_current", "updated_at"])
        _write(item, MovementType.ADJUSTMENT, delta, previous, new_current, reason=reason, user=user)
    return item


def release_many(lines, order_ref, user=None):
    """
    Release (product_id, quantity) pairs. Never raises for an individual
    line; returns the list of (product_id, error) that could not be released.
    """
    failures = []
    for product_id, qty in lines:
        try:
            release(product_id, qty, order_ref, user=user)
        except Exception as exc:  # compensation must visit every line
            logger.exception("Failed to release %s x product #%s for %s", qty, product_id, order_ref)
            failures.append((product_id, exc))
    return failures


def reserve_many(lines, order_ref, user=None):
    """
    Reserve each (product_id, quantity) pair as its own atomic step.
    If a line fails, lines already reserved are released again and the
    original error is re-raised. A failing compensating release is surfaced
    as CompensationFailed wrapping the original error.
    """
    reserved = []
    for product_id, qty in lines:
        try:
            reserve(product_id, qty, order_ref, user=user)
        except Exception as exc:
            failures = release_many(reserved, order_ref, user=user)
            if failures:
                raise CompensationFailed(
                    f"Could not release stock for {order_ref} after failed reservation",
                    original=exc,
                    failures=[pid for pid, _ in failures],
                ) from exc
            raise
        reserved.append((product_id, qty))
    return reserved


def movements_for(product, movement_type=None):
    qs = StockMovement.objects.filter(product=product).select_related("performed_by")
    if movement_type:
        qs = qs.filter(type=movement_type)
    return qs.order_by("-created_at", "-id")


def low_stock_products(tenant):
    return Product.objects.filter(tenant=tenant).low_stock()
