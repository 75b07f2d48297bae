# carts/totals.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from common.conf import commerce_setting
from common.money import ZERO, money

from .models import CouponType


@dataclass
class CouponTerms:
    type: str
    value: Decimal
    max_discount: Optional[Decimal] = None


@dataclass
class ShippingPolicy:
    flat_cost: Decimal = ZERO
    free_threshold: Optional[Decimal] = None

    @classmethod
    def from_settings(cls):
        threshold = commerce_setting("FREE_SHIPPING_THRESHOLD")
        return cls(
            flat_cost=Decimal(str(commerce_setting("SHIPPING_FLAT_COST"))),
            free_threshold=Decimal(str(threshold)) if threshold is not None else None,
        )


@dataclass
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


def line_subtotal(price, quantity) -> Decimal:
    return money(Decimal(price) * int(quantity))


def compute_discount(subtotal: Decimal, coupon: Optional[CouponTerms]) -> Decimal:
    """
    percentage: subtotal * value / 100, capped by max_discount when set
    fixed: value
    free_shipping: no discount (shipping is waived instead)
    Never more than the subtotal.
    """
    if coupon is None or subtotal <= 0:
        return ZERO
    value = Decimal(coupon.value or 0)
    if coupon.type == CouponType.PERCENTAGE:
        discount = money(subtotal * value / Decimal(100))
        if coupon.max_discount is not None:
            discount = min(discount, money(coupon.max_discount))
    elif coupon.type == CouponType.FIXED:
        discount = money(value)
    else:
        discount = ZERO
    return max(ZERO, min(discount, subtotal))


def compute_totals(lines: Iterable, coupon: Optional[CouponTerms] = None,
                   shipping: Optional[ShippingPolicy] = None, tax_rate=None) -> CartTotals:
    """
    Pure aggregate of (price, quantity) lines plus coupon terms. Lines are
    any objects with `price` and `quantity`. Never reads previously stored
    aggregates, so calling it twice on the same input gives the same result.
    """
    shipping = shipping or ShippingPolicy.from_settings()
    rate = Decimal(str(commerce_setting("TAX_RATE") if tax_rate is None else tax_rate))

    lines = list(lines)
    subtotal = money(sum((line_subtotal(l.price, l.quantity) for l in lines), ZERO))
    discount = compute_discount(subtotal, coupon)
    tax = money((subtotal - discount) * rate)

    if not lines:
        ship = ZERO
    elif coupon is not None and coupon.type == CouponType.FREE_SHIPPING:
        ship = ZERO
    elif shipping.free_threshold is not None and subtotal >= shipping.free_threshold:
        ship = ZERO
    else:
        ship = money(shipping.flat_cost)

    total = max(ZERO, money(subtotal + tax + ship - discount))
    return CartTotals(subtotal=subtotal, discount=discount, tax=tax, shipping=ship, total=total)
