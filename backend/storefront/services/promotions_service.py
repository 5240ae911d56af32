# Overview: Service-layer operations for the discount and coupon catalog managed by administrators.

from __future__ import annotations

import secrets
import string

from ..extensions import db
from ..models import CouponCode, Discount, Product
from ..validation import ConflictError, ValidationError


COUPON_CODE_LENGTH = 8
_CODE_ALPHABET = string.ascii_uppercase + string.digits

ADJUSTMENT_MUTABLE_FIELDS = {
    "name", "description", "type", "value",
    "min_purchase_amount", "max_discount_amount",
    "start_date", "end_date", "usage_limit", "is_active",
}
COUPON_MUTABLE_FIELDS = ADJUSTMENT_MUTABLE_FIELDS | {"code", "usage_limit_per_user"}


def _apply_patch(rule, patch: dict, fields: set[str]) -> None:
    for k, v in patch.items():
        if k not in fields:
            continue
        setattr(rule, k, v)


def _resolve_products(product_ids) -> list[Product]:
    if not isinstance(product_ids, list) or any(
        not isinstance(pid, int) or isinstance(pid, bool) for pid in product_ids
    ):
        raise ValidationError("product_ids must be a list of integers")

    wanted = set(product_ids)
    if not wanted:
        return []

    products = db.session.query(Product).filter(Product.id.in_(wanted)).all()
    missing = wanted - {p.id for p in products}
    if missing:
        raise ValidationError(f"Unknown product_ids: {', '.join(str(i) for i in sorted(missing))}")
    return products


# =============================================================================
# DISCOUNTS
# =============================================================================


def list_discounts(active_only: bool = False) -> list[dict]:
    q = db.session.query(Discount)
    if active_only:
        q = q.filter_by(is_active=True)
    return [d.to_dict() for d in q.order_by(Discount.created_at.desc(), Discount.id.desc()).all()]


def get_discount(discount_id: int) -> Discount | None:
    return db.session.query(Discount).filter_by(id=discount_id).first()


def create_discount(*, patch: dict) -> dict:
    discount = Discount(usage_count=0)
    _apply_patch(discount, patch, ADJUSTMENT_MUTABLE_FIELDS)
    if "product_ids" in patch:
        discount.products = _resolve_products(patch["product_ids"])

    db.session.add(discount)
    db.session.commit()
    return discount.to_dict()


def update_discount(*, discount_id: int, patch: dict) -> dict | None:
    discount = get_discount(discount_id)
    if discount is None:
        return None

    # Resolve before mutating so a bad id leaves the row untouched
    products = _resolve_products(patch["product_ids"]) if "product_ids" in patch else None

    _apply_patch(discount, patch, ADJUSTMENT_MUTABLE_FIELDS)
    if products is not None:
        discount.products = products

    db.session.commit()
    return discount.to_dict()


def delete_discount(discount_id: int) -> bool:
    discount = get_discount(discount_id)
    if discount is None:
        return False
    db.session.delete(discount)
    db.session.commit()
    return True


# =============================================================================
# COUPON CODES
# =============================================================================


def generate_coupon_code() -> str:
    """Random 8-character uppercase code not used by any existing coupon."""
    while True:
        code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(COUPON_CODE_LENGTH))
        if db.session.query(CouponCode.id).filter(CouponCode.code == code).first() is None:
            return code


def _normalize_code(code) -> str:
    code = str(code or "").strip().upper()
    if not code:
        raise ValidationError("code cannot be blank")
    return code


def _ensure_code_free(code: str, exclude_id: int | None = None) -> None:
    q = db.session.query(CouponCode).filter(db.func.upper(CouponCode.code) == code)
    if exclude_id is not None:
        q = q.filter(CouponCode.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Coupon code already exists.")


def list_coupons(active_only: bool = False) -> list[dict]:
    q = db.session.query(CouponCode)
    if active_only:
        q = q.filter_by(is_active=True)
    return [c.to_dict() for c in q.order_by(CouponCode.created_at.desc(), CouponCode.id.desc()).all()]


def get_coupon(coupon_id: int) -> CouponCode | None:
    return db.session.query(CouponCode).filter_by(id=coupon_id).first()


def create_coupon(*, patch: dict) -> dict:
    """
    Create a coupon. Codes are stored upper-cased; one is generated when
    the payload has none.

    Raises:
        ConflictError: If the code is already taken
    """
    patch = dict(patch)
    if patch.get("code"):
        patch["code"] = _normalize_code(patch["code"])
        _ensure_code_free(patch["code"])
    else:
        patch["code"] = generate_coupon_code()

    coupon = CouponCode(usage_count=0)
    _apply_patch(coupon, patch, COUPON_MUTABLE_FIELDS)

    db.session.add(coupon)
    db.session.commit()
    return coupon.to_dict()


def update_coupon(*, coupon_id: int, patch: dict) -> dict | None:
    coupon = get_coupon(coupon_id)
    if coupon is None:
        return None

    patch = dict(patch)
    if "code" in patch:
        patch["code"] = _normalize_code(patch["code"])
        if patch["code"] != coupon.code:
            _ensure_code_free(patch["code"], exclude_id=coupon.id)

    _apply_patch(coupon, patch, COUPON_MUTABLE_FIELDS)
    db.session.commit()
    return coupon.to_dict()


def delete_coupon(coupon_id: int) -> bool:
    coupon = get_coupon(coupon_id)
    if coupon is None:
        return False
    db.session.delete(coupon)
    db.session.commit()
    return True
