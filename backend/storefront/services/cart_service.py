# Overview: Service-layer operations for shopping carts; encapsulates business logic and database work.

"""
Cart Service

OWNERSHIP:
- Signed-in users own exactly one cart (carts.user_id is unique).
- Guests own the cart whose session_id matches theirs and has no user_id.

LOGIN / LOGOUT:
- merge_guest_cart(): the guest cart of the session is folded into the
  user's cart (quantities summed per product) and then deleted. A user
  without a cart simply adopts the guest cart.
- release_user_cart(): the user's cart becomes the guest cart of the
  session it is logging out of, so the shopper keeps their items.

PRICING:
Every line stores the shelf price, the per-unit reduction of the best
currently valid product discount and that discount's id. Lines are
repriced whenever they are touched and again at checkout.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Cart, CartItem, Product
from ..validation import ValidationError
from .concurrency import UPSERT_RACE_ERRORS, run_with_retry
from .discount_service import best_product_discount
from storefront.money import ZERO, money_json, to_money
from storefront.time_utils import utcnow


MAX_LINE_QUANTITY = 1000


class CartError(Exception):
    """Cart operation refused; message is safe to show to the shopper."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def parse_quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        else:
            raise ValidationError("quantity must be an integer")
    if value < 1:
        raise ValidationError("quantity must be at least 1")
    if value > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")
    return value


# =============================================================================
# LOOKUP
# =============================================================================


def _user_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter(Cart.user_id == user_id).first()


def _guest_cart(session_id: str | None) -> Cart | None:
    if not session_id:
        return None
    return db.session.query(Cart).filter(
        Cart.session_id == session_id,
        Cart.user_id.is_(None),
    ).order_by(Cart.id.asc()).first()


def get_cart(identity) -> Cart | None:
    """
    The caller's cart, or None; never creates one.

    A signed-in caller sees a guest cart still left on the session merged
    in, the same as the first write would.
    """
    if identity.user is not None:
        return merge_guest_cart(identity.session_id, identity.user)
    return _guest_cart(identity.session_id)


def get_or_create_cart(identity) -> Cart:
    """
    The caller's cart, created on first use.

    For a signed-in caller, a guest cart still left on the session is
    merged in first.
    """
    user = identity.user
    if user is not None:
        merge_guest_cart(identity.session_id, user)

    def _op():
        if user is not None:
            cart = _user_cart(user.id)
            if cart is None:
                cart = Cart(user_id=user.id, session_id=identity.session_id)
                db.session.add(cart)
                db.session.commit()
            return cart

        cart = _guest_cart(identity.session_id)
        if cart is None:
            cart = Cart(user_id=None, session_id=identity.session_id)
            db.session.add(cart)
            db.session.commit()
        return cart

    return run_with_retry(_op, retry_on=UPSERT_RACE_ERRORS)


def _load_product(product_ref) -> Product:
    """Accept a numeric id or a product uuid."""
    q = db.session.query(Product)
    if isinstance(product_ref, int) and not isinstance(product_ref, bool):
        product = q.filter(Product.id == product_ref).first()
    elif isinstance(product_ref, str) and product_ref.strip():
        ref = product_ref.strip()
        if ref.isdigit():
            product = q.filter(db.or_(Product.id == int(ref), Product.uuid == ref)).first()
        else:
            product = q.filter(Product.uuid == ref).first()
    else:
        raise ValidationError("product_id is required")

    if product is None:
        raise CartError("Product not found", status_code=404)
    return product


def ensure_available(product: Product, quantity: int) -> None:
    if not product.is_active:
        raise CartError("Product is not available")
    if not product.in_stock:
        raise CartError("Product is out of stock")
    if product.manage_stock and product.stock_quantity < quantity:
        raise CartError("Insufficient stock available")


def price_line(item: CartItem, product: Product, now: datetime | None = None) -> None:
    """Write shelf price and best product discount onto the line."""
    info = best_product_discount(product, now)
    item.unit_price = to_money(product.base_price)
    if info is None:
        item.discount_amount = ZERO
        item.discount_id = None
    else:
        item.discount_amount = Decimal(info["discount_amount"])
        item.discount_id = info["discount_id"]


def _find_item(cart: Cart, item_id: int) -> CartItem:
    for item in cart.items:
        if item.id == item_id:
            return item
    raise CartError("Cart item not found", status_code=404)


# =============================================================================
# LINE OPERATIONS
# =============================================================================


def add_item(cart: Cart, product_ref, quantity) -> CartItem:
    """Add quantity of a product; an existing line for it is increased."""
    quantity = parse_quantity(quantity)
    product = _load_product(product_ref)

    item = next((i for i in cart.items if i.product_id == product.id), None)
    new_quantity = quantity + (item.quantity if item is not None else 0)
    if new_quantity > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")
    ensure_available(product, new_quantity)

    if item is None:
        item = CartItem(product_id=product.id, product=product)
        cart.items.append(item)

    item.quantity = new_quantity
    price_line(item, product)
    cart.updated_at = utcnow()
    db.session.commit()
    return item


def update_item(cart: Cart, item_id: int, quantity) -> CartItem:
    quantity = parse_quantity(quantity)
    item = _find_item(cart, item_id)
    ensure_available(item.product, quantity)

    item.quantity = quantity
    price_line(item, item.product)
    cart.updated_at = utcnow()
    db.session.commit()
    return item


def remove_item(cart: Cart, item_id: int) -> None:
    item = _find_item(cart, item_id)
    cart.items.remove(item)
    cart.updated_at = utcnow()
    db.session.commit()


def clear_cart(cart: Cart) -> None:
    cart.items.clear()
    cart.updated_at = utcnow()
    db.session.commit()


def cart_summary(cart: Cart | None) -> dict:
    items = list(cart.items) if cart is not None else []
    subtotal = sum((i.line_total for i in items), ZERO)
    total_discount = sum((to_money(i.discount_amount) * i.quantity for i in items), ZERO)
    return {
        "cart": cart.to_dict() if cart is not None else None,
        "total_items": sum(i.quantity for i in items),
        "subtotal": money_json(subtotal),
        "total_discount": money_json(total_discount),
    }


# =============================================================================
# LOGIN / LOGOUT TRANSITIONS
# =============================================================================


def _fold_items(source: Cart, target: Cart) -> int:
    """Copy source lines into target, summing quantities per product."""
    moved = 0
    by_product = {i.product_id: i for i in target.items}
    for line in source.items:
        existing = by_product.get(line.product_id)
        if existing is None:
            existing = CartItem(product_id=line.product_id, product=line.product, quantity=0)
            target.items.append(existing)
            by_product[line.product_id] = existing
        existing.quantity = min(existing.quantity + line.quantity, MAX_LINE_QUANTITY)
        price_line(existing, line.product)
        moved += 1
    target.updated_at = utcnow()
    return moved


def merge_guest_cart(session_id: str | None, user) -> Cart | None:
    """
    Fold the session's guest cart into the user's cart (login).

    Returns the user's cart, or None when neither cart exists.
    """
    guest = _guest_cart(session_id)
    user_cart = _user_cart(user.id)

    if guest is None:
        return user_cart

    if user_cart is None:
        guest.user_id = user.id
        db.session.commit()
        current_app.logger.info("Guest cart %s adopted by user %s", guest.id, user.id)
        return guest

    moved = _fold_items(guest, user_cart)
    db.session.delete(guest)
    db.session.commit()
    current_app.logger.info("Merged %d guest cart lines into cart of user %s", moved, user.id)
    return user_cart


def release_user_cart(user, session_id: str | None) -> Cart | None:
    """
    Hand the user's cart back to the session as a guest cart (logout).

    If the session already has a guest cart the user's lines are folded
    into it. Without a session id the user's cart is left as it is.
    """
    user_cart = _user_cart(user.id)
    if user_cart is None or not session_id:
        return None

    guest = _guest_cart(session_id)
    if guest is None:
        user_cart.user_id = None
        user_cart.session_id = session_id
        db.session.commit()
        return user_cart

    _fold_items(user_cart, guest)
    db.session.delete(user_cart)
    db.session.commit()
    return guest
