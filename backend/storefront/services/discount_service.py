# Overview: Validity and price-adjustment rules for product discounts and coupon codes.

"""
Discount / Coupon Engine

Both Discount (product-level) and CouponCode (order-level) carry the
PriceAdjustmentMixin columns and go through the same rules.

STATE (evaluated fresh on every call, first failing check wins):
1. is_active is false               -> inactive
2. start_date set and now < start   -> not_yet_started
3. end_date set and now > end       -> expired   (end_date itself is still valid)
4. usage_limit set and count >= it  -> usage_exhausted
5. otherwise                        -> valid

AMOUNT for a price (0.00 unless valid):
- price below min_purchase_amount   -> 0.00
- percentage: price * value / 100;  fixed: value
- clamped to max_discount_amount, then to the price itself
- amounts are truncated to 2 decimals, never rounded up

A limit, minimum or cap of 0 counts as not set.

Redemption increments usage_count with a single conditional UPDATE, so
concurrent checkouts cannot push usage_count past usage_limit.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import CouponCode, Discount
from ..models.promotions import TYPE_PERCENTAGE
from ..validation import ValidationError
from storefront.money import ZERO, money_json, to_money
from storefront.time_utils import utcnow


STATE_INACTIVE = "inactive"
STATE_NOT_YET_STARTED = "not_yet_started"
STATE_EXPIRED = "expired"
STATE_USAGE_EXHAUSTED = "usage_exhausted"
STATE_VALID = "valid"

STATE_MESSAGES = {
    STATE_INACTIVE: "Coupon code is not active",
    STATE_NOT_YET_STARTED: "Coupon code is not yet valid",
    STATE_EXPIRED: "Coupon code has expired",
    STATE_USAGE_EXHAUSTED: "Coupon code usage limit reached",
}


class CouponRejected(Exception):
    """Coupon cannot be applied; message is safe to show to the shopper."""

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


def _naive(dt: datetime | None) -> datetime | None:
    if dt is not None and dt.tzinfo is not None:
        return dt.replace(tzinfo=None)
    return dt


def evaluate_state(rule, now: datetime | None = None) -> str:
    now = _naive(now) or utcnow()

    if not rule.is_active:
        return STATE_INACTIVE

    start = _naive(rule.start_date)
    if start is not None and now < start:
        return STATE_NOT_YET_STARTED

    end = _naive(rule.end_date)
    if end is not None and now > end:
        return STATE_EXPIRED

    if rule.usage_limit and (rule.usage_count or 0) >= rule.usage_limit:
        return STATE_USAGE_EXHAUSTED

    return STATE_VALID


def is_valid(rule, now: datetime | None = None) -> bool:
    return evaluate_state(rule, now) == STATE_VALID


def can_be_used_by_user(coupon: CouponCode, user_id: int | None = None, now: datetime | None = None) -> bool:
    """
    Same as is_valid.

    usage_limit_per_user is not checked: no per-user redemption history
    is recorded.
    """
    return is_valid(coupon, now)


def _amount_for(rule, price: Decimal) -> Decimal:
    if rule.min_purchase_amount and price < to_money(rule.min_purchase_amount):
        return ZERO

    value = to_money(rule.value)
    if rule.type == TYPE_PERCENTAGE:
        amount = to_money(price * value / Decimal(100))
    else:
        amount = to_money(value)

    if rule.max_discount_amount:
        amount = min(amount, to_money(rule.max_discount_amount))

    return max(min(amount, price), ZERO)


def calculate_discount(rule, price, now: datetime | None = None) -> Decimal:
    """
    Discount amount rule grants on price. Returns 0.00 when the rule is not
    currently valid; raises ValidationError for a negative price.
    """
    price = to_money(price)
    if price < ZERO:
        raise ValidationError("price must be >= 0")

    if not is_valid(rule, now):
        return ZERO

    return _amount_for(rule, price)


def display_text(rule) -> str:
    if rule.type == TYPE_PERCENTAGE:
        return f"{money_json(rule.value)}% OFF"
    return f"${money_json(rule.value)} OFF"


def discount_info(rule, price, now: datetime | None = None) -> dict:
    """Original vs final price and presentation fields for one rule."""
    price = to_money(price)
    amount = calculate_discount(rule, price, now)
    final = price - amount
    percentage = (amount / price * 100).quantize(Decimal("0.01")) if price > 0 else ZERO
    return {
        "discount_id": rule.id,
        "discount_uuid": rule.uuid,
        "discount_name": rule.name,
        "discount_type": rule.type,
        "discount_value": money_json(rule.value),
        "discount_amount": money_json(amount),
        "original_price": money_json(price),
        "final_price": money_json(final),
        "discount_percentage": str(percentage),
        "display_text": display_text(rule),
    }


def best_product_discount(product, now: datetime | None = None) -> dict | None:
    """
    Pick the currently valid discount of product that takes the most off
    its shelf price. Ties go to the older discount. None if nothing applies.
    """
    price = to_money(product.base_price)
    candidates = [d for d in product.discounts if is_valid(d, now)]
    if not candidates:
        return None

    best = max(
        candidates,
        key=lambda d: (calculate_discount(d, price, now), -d.id),
    )
    return discount_info(best, price, now)


# =============================================================================
# COUPONS
# =============================================================================


def find_coupon(code: str | None) -> CouponCode | None:
    if not code or not code.strip():
        return None
    normalized = code.strip().upper()
    return db.session.query(CouponCode).filter(
        db.func.upper(CouponCode.code) == normalized
    ).first()


def check_coupon(code: str | None, subtotal, user_id: int | None = None, now: datetime | None = None) -> tuple[CouponCode, Decimal]:
    """
    Resolve code and compute what it takes off subtotal.

    Raises CouponRejected when the code is unknown, not currently valid,
    or the subtotal is below its minimum purchase.
    """
    coupon = find_coupon(code)
    if coupon is None:
        raise CouponRejected("Coupon code not found", "not_found")

    state = evaluate_state(coupon, now)
    if state != STATE_VALID:
        raise CouponRejected(STATE_MESSAGES[state], state)

    if not can_be_used_by_user(coupon, user_id, now):
        raise CouponRejected("Coupon code cannot be used", "not_allowed")

    subtotal = to_money(subtotal)
    if coupon.min_purchase_amount and subtotal < to_money(coupon.min_purchase_amount):
        raise CouponRejected(
            f"Minimum purchase of {money_json(coupon.min_purchase_amount)} required",
            "min_purchase",
        )

    return coupon, calculate_discount(coupon, subtotal, now)


def preview_coupon(code: str | None, subtotal, user_id: int | None = None, now: datetime | None = None) -> dict:
    coupon, amount = check_coupon(code, subtotal, user_id, now)
    subtotal = to_money(subtotal)
    return {
        "code": coupon.code,
        "name": coupon.name,
        "type": coupon.type,
        "value": money_json(coupon.value),
        "subtotal": money_json(subtotal),
        "coupon_discount": money_json(amount),
        "total": money_json(subtotal - amount),
        "display_text": display_text(coupon),
    }


def _claim_usage(model, rule_id: int, now: datetime | None = None) -> bool:
    """
    Increment usage_count by one if the rule is still valid, as one UPDATE.

    Runs in the caller's transaction; the caller commits. Returns False
    (nothing written) when the rule is inactive, out of its date window or
    already at its usage limit.
    """
    now = _naive(now) or utcnow()
    claimed = db.session.query(model).filter(
        model.id == rule_id,
        model.is_active.is_(True),
        or_(model.start_date.is_(None), model.start_date <= now),
        or_(model.end_date.is_(None), model.end_date >= now),
        or_(
            model.usage_limit.is_(None),
            model.usage_limit == 0,
            model.usage_count < model.usage_limit,
        ),
    ).update(
        {model.usage_count: model.usage_count + 1},
        synchronize_session=False,
    )
    return claimed == 1


def redeem_coupon(coupon: CouponCode, now: datetime | None = None) -> bool:
    redeemed = _claim_usage(CouponCode, coupon.id, now)
    db.session.expire(coupon, ["usage_count"])
    return redeemed


def record_discount_usage(discount_id: int, now: datetime | None = None) -> bool:
    """Count one order that priced at least one line with this product discount."""
    return _claim_usage(Discount, discount_id, now)
