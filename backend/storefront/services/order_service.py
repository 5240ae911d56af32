# Overview: Service-layer operations for checkout and order history; encapsulates business logic and database work.

"""
Checkout

One transaction per checkout:
1. Reprice every cart line (shelf price + best product discount).
2. Apply the coupon, if any, to the discounted subtotal.
3. Claim coupon usage and one use of each product discount in the cart
   with conditional UPDATEs.
4. Decrement managed stock with conditional UPDATEs.
5. Snapshot lines into order_items, empty the cart, commit.

Any refusal rolls the whole transaction back; nothing is half-applied.

The back office lists every order with per-status counts and moves orders
through ORDER_STATUSES.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import Order, OrderItem, Product
from ..models.orders import ORDER_STATUSES
from ..validation import ValidationError
from . import cart_service
from .discount_service import CouponRejected, check_coupon, record_discount_usage, redeem_coupon
from storefront.money import ZERO, to_money
from storefront.time_utils import parse_iso_datetime, utcnow


ADMIN_ORDERS_PER_PAGE = 15

SHIPPING_FIELDS = {
    # field: (required, max length)
    "name": (True, 255),
    "email": (True, 255),
    "phone": (True, 20),
    "address": (True, None),
    "city": (True, 100),
    "state": (False, 100),
    "postal_code": (False, 20),
    "country": (False, 100),
}


class CheckoutError(Exception):
    """Checkout refused; message is safe to show to the shopper."""


def validate_shipping(payload) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("shipping must be an object")

    unknown = sorted(set(payload) - set(SHIPPING_FIELDS))
    if unknown:
        raise ValidationError(f"Field not allowed: shipping.{unknown[0]}")

    cleaned = {}
    missing = []
    for field, (required, max_len) in SHIPPING_FIELDS.items():
        value = payload.get(field)
        value = str(value).strip() if value is not None else ""
        if not value:
            if required:
                missing.append(field)
            cleaned[field] = None
            continue
        if max_len and len(value) > max_len:
            raise ValidationError(f"shipping.{field} exceeds max length {max_len}")
        cleaned[field] = value

    if missing:
        raise ValidationError(f"Missing required fields: {', '.join('shipping.' + f for f in missing)}")
    if "@" not in cleaned["email"]:
        raise ValidationError("shipping.email must be a valid email")
    return cleaned


def _take_stock(product: Product, quantity: int) -> bool:
    remaining = Product.stock_quantity - quantity
    taken = db.session.query(Product).filter(
        Product.id == product.id,
        Product.stock_quantity >= quantity,
    ).update(
        {
            Product.stock_quantity: remaining,
            Product.in_stock: case((remaining > 0, True), else_=False),
        },
        synchronize_session=False,
    )
    return taken == 1


def checkout(identity, shipping: dict, coupon_code: str | None = None, notes: str | None = None) -> Order:
    """
    Turn the caller's cart into a pending order.

    Raises:
        ValidationError: bad shipping details
        CheckoutError: empty cart, unavailable product, rejected coupon,
            or a usage limit / stock level lost to a concurrent checkout
    """
    shipping = validate_shipping(shipping)
    cart = cart_service.get_cart(identity)
    if cart is None or not cart.items:
        raise CheckoutError("Cart is empty")

    now = utcnow()
    user_id = identity.user.id if identity.user is not None else None

    try:
        for item in cart.items:
            try:
                cart_service.ensure_available(item.product, item.quantity)
            except cart_service.CartError as e:
                raise CheckoutError(f"{item.product.name}: {e}")
            cart_service.price_line(item, item.product, now)

        subtotal = sum((i.line_total for i in cart.items), ZERO)
        line_discount = sum((to_money(i.discount_amount) * i.quantity for i in cart.items), ZERO)

        coupon = None
        coupon_discount = ZERO
        if coupon_code and coupon_code.strip():
            try:
                coupon, coupon_discount = check_coupon(coupon_code, subtotal, user_id, now)
            except CouponRejected as e:
                raise CheckoutError(str(e))
            if not redeem_coupon(coupon, now):
                raise CheckoutError("Coupon code usage limit reached")

        # One use per order, however many lines share the discount
        claimed = set()
        for item in cart.items:
            if item.discount_id is None or item.discount_id in claimed:
                continue
            if not record_discount_usage(item.discount_id, now):
                raise CheckoutError(f"{item.product.name}: discount is no longer available")
            claimed.add(item.discount_id)

        for item in cart.items:
            if item.product.manage_stock and not _take_stock(item.product, item.quantity):
                raise CheckoutError(f"{item.product.name}: Insufficient stock available")

        order = Order(
            user_id=user_id,
            session_id=identity.session_id,
            subtotal=subtotal,
            discount_amount=line_discount,
            coupon_code=coupon.code if coupon is not None else None,
            coupon_discount=coupon_discount,
            total=max(subtotal - coupon_discount, ZERO),
            shipping_name=shipping["name"],
            shipping_email=shipping["email"],
            shipping_phone=shipping["phone"],
            shipping_address=shipping["address"],
            shipping_city=shipping["city"],
            shipping_state=shipping["state"],
            shipping_postal_code=shipping["postal_code"],
            shipping_country=shipping["country"],
            notes=(notes or "").strip() or None,
        )
        for item in cart.items:
            order.items.append(OrderItem(
                product_id=item.product_id,
                product_name=item.product.name,
                product_sku=item.product.sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount_amount=item.discount_amount,
                subtotal=item.line_total,
            ))

        db.session.add(order)
        cart.items.clear()
        cart.updated_at = now
        db.session.commit()
    except CheckoutError:
        db.session.rollback()
        raise

    return order


def list_orders(identity) -> list[Order]:
    q = db.session.query(Order)
    if identity.user is not None:
        q = q.filter(Order.user_id == identity.user.id)
    else:
        q = q.filter(Order.user_id.is_(None), Order.session_id == identity.session_id)
    return q.order_by(Order.id.desc()).all()


def get_order(identity, order_uuid: str) -> Order | None:
    """The order, if the caller owns it (user by id, guest by session id)."""
    order = db.session.query(Order).filter(Order.uuid == order_uuid).first()
    if order is None:
        return None
    if identity.user is not None:
        return order if order.user_id == identity.user.id else None
    if order.user_id is None and order.session_id == identity.session_id:
        return order
    return None


# =============================================================================
# BACK OFFICE
# =============================================================================


def status_counts() -> dict:
    """Order count per status, every known status present, plus the total."""
    rows = db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    counts = {status: 0 for status in ORDER_STATUSES}
    counts.update({status: count for status, count in rows})
    counts["total"] = sum(count for _, count in rows)
    return counts


def admin_list_orders(
    *,
    status: str | None = None,
    search: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Every order, newest first unless sort_order is "asc".

    search matches the order uuid and the shipping name, email and phone.
    date_from / date_to are ISO dates or datetimes; a bare date_to covers
    that whole day.

    Raises:
        ValidationError: unknown status or unparseable date
    """
    q = db.session.query(Order)

    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        q = q.filter(Order.status == status)

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Order.uuid.ilike(pattern),
            Order.shipping_name.ilike(pattern),
            Order.shipping_email.ilike(pattern),
            Order.shipping_phone.ilike(pattern),
        ))

    try:
        start = parse_iso_datetime(date_from)
        end = parse_iso_datetime(date_to)
    except ValueError:
        raise ValidationError("date_from and date_to must be ISO-8601 dates")
    if start is not None:
        q = q.filter(Order.created_at >= start)
    if end is not None:
        if len(date_to.strip()) == 10:
            end += timedelta(days=1)
            q = q.filter(Order.created_at < end)
        else:
            q = q.filter(Order.created_at <= end)

    if (sort_order or "desc").lower() == "asc":
        q = q.order_by(Order.id.asc())
    else:
        q = q.order_by(Order.id.desc())

    per_page = min(per_page or ADMIN_ORDERS_PER_PAGE, 100)
    page = max(page or 1, 1)

    total = q.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = q.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
        "status_counts": status_counts(),
    }


def find_order(order_uuid: str) -> Order | None:
    return db.session.query(Order).filter(Order.uuid == order_uuid).first()


def update_status(order: Order, status) -> Order:
    """
    Raises:
        ValidationError: status is not one of ORDER_STATUSES
    """
    if not isinstance(status, str) or status.strip().lower() not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    previous = order.status
    order.status = status.strip().lower()
    db.session.commit()
    current_app.logger.info("Order %s status %s -> %s", order.uuid, previous, order.status)
    return order
