# carts/services.py
"""
Cart operations. Every mutation goes through _recompute(), which rebuilds
the aggregate fields from the current items and coupon only and pushes the
cart expiry forward.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from catalog.models import Product
from common.conf import commerce_setting
from common.exceptions import InsufficientStock, InvalidCoupon, NotFound, ValidationError
from common.money import to_decimal, to_quantity
from loyalty import rewards

from .models import Cart, CartItem, CouponType
from .totals import CouponTerms, compute_totals, line_subtotal

logger = logging.getLogger(__name__)


def _expiry(now=None):
    return (now or timezone.now()) + timedelta(days=int(commerce_setting("CART_TTL_DAYS")))


def coupon_terms(cart):
    if not cart.coupon_code:
        return None
    return CouponTerms(type=cart.coupon_type, value=cart.coupon_value, max_discount=cart.coupon_max_discount)


def _recompute(cart):
    totals = compute_totals(cart.items.all(), coupon_terms(cart))
    cart.subtotal = totals.subtotal
    cart.discount = totals.discount
    cart.tax = totals.tax
    cart.shipping_cost = totals.shipping
    cart.total = totals.total
    cart.expires_at = _expiry()
    cart.save()
    return cart


def _owner_filter(user, session_key):
    if user is not None and getattr(user, "is_authenticated", True):
        return {"user": user, "session_key": ""}
    if session_key:
        return {"user": None, "session_key": session_key}
    raise ValidationError("A cart needs either a user or a session key")


def get_or_create_cart(tenant, user=None, session_key=None) -> Cart:
    """
    Return the owner's cart, creating it on first access. A cart found past
    its expiry is emptied and handed back fresh.
    """
    owner = _owner_filter(user, session_key)
    cart, created = Cart.objects.get_or_create(
        tenant=tenant,
        **owner,
        defaults={"currency": tenant.currency_code, "expires_at": _expiry()},
    )
    if not created and cart.expires_at <= timezone.now():
        logger.info("Cart #%s expired, resetting", cart.pk)
        clear(cart)
    return cart


def _product_for(cart, product_id) -> Product:
    try:
        product = Product.objects.get(pk=product_id, tenant=cart.tenant)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Product {product_id} not found")
    if not product.is_active:
        raise ValidationError(f"Product {product.sku} is not available", product_id=product.pk)
    return product


def _check_line_qty(product, qty):
    max_qty = int(commerce_setting("CART_MAX_LINE_QTY"))
    if qty > max_qty:
        raise ValidationError(f"Maximum {max_qty} units per product", product_id=product.pk)
    if qty > product.available_stock:
        raise InsufficientStock(
            f"Only {product.available_stock} units of {product.sku} available",
            product_id=product.pk,
            requested=qty,
            available=product.available_stock,
        )


@transaction.atomic
def add_item(cart, product_id, quantity=1) -> Cart:
    """
    Add units of a product. An existing line gets its quantity increased;
    a new line snapshots name/image/price from the product as it is now.
    """
    qty = to_quantity(quantity)
    product = _product_for(cart, product_id)

    line = cart.items.filter(product=product).first()
    if line:
        new_qty = line.quantity + qty
        _check_line_qty(product, new_qty)
        line.quantity = new_qty
        line.subtotal = line_subtotal(line.price, new_qty)
        line.save(update_fields=["quantity", "subtotal"])
    else:
        _check_line_qty(product, qty)
        CartItem.objects.create(
            cart=cart,
            product=product,
            sku=product.sku,
            name=product.name,
            brand=product.brand,
            category=product.category,
            image_url=product.image_url,
            price=product.price,
            quantity=qty,
            subtotal=line_subtotal(product.price, qty),
        )
    return _recompute(cart)


@transaction.atomic
def update_quantity(cart, product_id, quantity) -> Cart:
    """quantity <= 0 removes the line. Unknown line raises NotFound."""
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("quantity must be an integer")

    line = cart.items.select_related("product").filter(product_id=product_id).first()
    if line is None:
        raise NotFound(f"Product {product_id} is not in the cart")
    if qty <= 0:
        line.delete()
        return _recompute(cart)

    _check_line_qty(line.product, qty)
    line.quantity = qty
    line.subtotal = line_subtotal(line.price, qty)
    line.save(update_fields=["quantity", "subtotal"])
    return _recompute(cart)


@transaction.atomic
def remove_item(cart, product_id) -> Cart:
    cart.items.filter(product_id=product_id).delete()
    return _recompute(cart)


def apply_coupon(cart, code, discount_type, discount_value, max_discount=None) -> Cart:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("coupon code is required")
    if discount_type not in CouponType.values:
        raise ValidationError(f"Unknown discount type '{discount_type}'")
    value = to_decimal(discount_value, "discount_value")
    if value < 0:
        raise ValidationError("discount_value must not be negative")
    if discount_type == CouponType.PERCENTAGE and value > 100:
        raise ValidationError("percentage discount must be between 0 and 100")

    cart.coupon_code = code
    cart.coupon_type = discount_type
    cart.coupon_value = value
    cart.coupon_max_discount = to_decimal(max_discount, "max_discount") if max_discount not in (None, "") else None
    cart.redeemed_reward = None
    return _recompute(cart)


def apply_reward_coupon(cart, code) -> Cart:
    """Apply a loyalty coupon, copying its frozen terms onto the cart."""
    if cart.user_id is None:
        raise InvalidCoupon("Sign in to use loyalty coupons")
    coupon = rewards.validate_coupon(
        cart.tenant, code, cart.subtotal,
        categories=list(cart.items.values_list("category", flat=True)),
        user=cart.user,
    )["coupon"]
    cart_type = rewards.cart_coupon_type(coupon)

    cart.coupon_code = coupon.coupon_code
    cart.coupon_type = cart_type
    cart.coupon_value = coupon.value
    cart.coupon_max_discount = coupon.max_discount
    cart.redeemed_reward = coupon
    return _recompute(cart)


def remove_coupon(cart) -> Cart:
    cart.coupon_code = ""
    cart.coupon_type = ""
    cart.coupon_value = Decimal("0")
    cart.coupon_max_discount = None
    cart.redeemed_reward = None
    return _recompute(cart)


@transaction.atomic
def clear(cart) -> Cart:
    cart.items.all().delete()
    return remove_coupon(cart)


def item_count(cart) -> int:
    return sum(cart.items.values_list("quantity", flat=True))


@transaction.atomic
def merge_carts(tenant, user, session_key) -> Cart:
    """
    Fold an anonymous session cart into the user's cart after login.
    Quantities add up (capped at CART_MAX_LINE_QTY); the guest coupon is
    kept only if the user cart has none. The session cart is deleted.
    """
    target = get_or_create_cart(tenant, user=user)
    if not session_key:
        return target
    guest = Cart.objects.filter(tenant=tenant, user=None, session_key=session_key).first()
    if guest is None:
        return target

    max_qty = int(commerce_setting("CART_MAX_LINE_QTY"))
    for g in guest.items.all():
        line = target.items.filter(product_id=g.product_id).first()
        if line:
            line.quantity = min(max_qty, line.quantity + g.quantity)
            line.subtotal = line_subtotal(line.price, line.quantity)
            line.save(update_fields=["quantity", "subtotal"])
        else:
            CartItem.objects.create(
                cart=target, product_id=g.product_id, sku=g.sku, name=g.name, brand=g.brand,
                category=g.category, image_url=g.image_url, price=g.price,
                quantity=g.quantity, subtotal=g.subtotal,
            )

    if not target.coupon_code and guest.coupon_code and guest.redeemed_reward_id is None:
        target.coupon_code = guest.coupon_code
        target.coupon_type = guest.coupon_type
        target.coupon_value = guest.coupon_value
        target.coupon_max_discount = guest.coupon_max_discount

    guest.delete()
    logger.info("Merged session cart into cart #%s for user #%s", target.pk, user.pk)
    return _recompute(target)


def purge_expired_carts(now=None) -> int:
    """Delete carts past their expiry. Safe to run repeatedly."""
    now = now or timezone.now()
    expired = Cart.objects.filter(expires_at__lte=now)
    count = expired.count()
    if count:
        expired.delete()
        logger.info("Purged %s expired carts", count)
    return count
