# Overview: Service-layer operations for shopper-facing catalog browsing and recently viewed products.

"""
Catalog Service

Shoppers only ever see active products. Every product card carries the
best currently valid product discount (discount_info) and the price the
shopper would pay for one unit (final_price).

RECENTLY VIEWED:
- Signed-in viewers are keyed by user id, guests by session id.
- One row per (viewer, product); a repeat view only moves viewed_at.
- Each viewer keeps at most MAX_RECENTLY_VIEWED rows, oldest dropped first.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Category, Product, RecentlyViewedProduct
from ..validation import ValidationError
from .concurrency import UPSERT_RACE_ERRORS, run_with_retry
from .discount_service import best_product_discount
from storefront.money import money_json, to_money
from storefront.time_utils import to_utc_z, utcnow


DEFAULT_PER_PAGE = 12
MAX_PER_PAGE = 100
FEATURED_LIMIT = 8
RELATED_LIMIT = 4
RECENTLY_VIEWED_LIMIT = 10
MAX_RECENTLY_VIEWED = 20

SORT_FIELDS = ("created_at", "name", "price")


class ProductNotFound(Exception):
    pass


def product_card(product: Product, now: datetime | None = None) -> dict:
    data = product.to_dict()
    data["category"] = product.category.to_dict() if product.category is not None else None
    info = best_product_discount(product, now)
    data["discount_info"] = info
    data["final_price"] = info["final_price"] if info else money_json(product.base_price)
    return data


def _active_products():
    return db.session.query(Product).filter(Product.is_active.is_(True))


def _parse_price(value, field: str):
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    return amount


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    min_price=None,
    max_price=None,
    in_stock: bool | None = None,
    featured: bool = False,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Paginated listing of active products.

    Args:
        search: substring of name, description or sku
        category: category id or slug
        min_price / max_price: bounds on the list price
        in_stock: only products whose in_stock flag matches
        featured: only featured products
        sort_by: created_at (default), name, or price (the shelf price)
        sort_order: asc or desc (default)

    Raises:
        ValidationError: unknown sort field or order, bad price bound
    """
    q = _active_products()

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.sku.ilike(pattern),
        ))

    if category is not None and str(category).strip():
        ref = str(category).strip()
        if ref.isdigit():
            q = q.filter(Product.category_id == int(ref))
        else:
            q = q.join(Category, Product.category_id == Category.id).filter(Category.slug == ref)

    if min_price not in (None, ""):
        q = q.filter(Product.price >= _parse_price(min_price, "min_price"))
    if max_price not in (None, ""):
        q = q.filter(Product.price <= _parse_price(max_price, "max_price"))
    if in_stock is not None:
        q = q.filter(Product.in_stock.is_(bool(in_stock)))
    if featured:
        q = q.filter(Product.is_featured.is_(True))

    sort_by = sort_by or "created_at"
    sort_order = (sort_order or "desc").lower()
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")

    if sort_by == "price":
        column = func.coalesce(Product.sale_price, Product.price)
    else:
        column = getattr(Product, sort_by)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    tiebreak = Product.id.asc() if sort_order == "asc" else Product.id.desc()
    q = q.order_by(ordering, tiebreak)

    per_page = min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE)
    page = max(page or 1, 1)

    total = q.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    now = utcnow()
    products = q.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [product_card(p, now) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def find_product(product_ref, *, active_only: bool = True) -> Product | None:
    """Product by uuid or numeric id; inactive products only when active_only is False."""
    ref = str(product_ref or "").strip()
    if not ref:
        return None
    q = _active_products() if active_only else db.session.query(Product)
    if ref.isdigit():
        return q.filter(or_(Product.id == int(ref), Product.uuid == ref)).first()
    return q.filter(Product.uuid == ref).first()


def get_product(product_ref) -> Product:
    product = find_product(product_ref)
    if product is None:
        raise ProductNotFound("Product not found")
    return product


def featured_products(limit: int = FEATURED_LIMIT) -> list[dict]:
    now = utcnow()
    products = (
        _active_products()
        .filter(Product.is_featured.is_(True))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .all()
    )
    return [product_card(p, now) for p in products]


def related_products(product: Product, limit: int = RELATED_LIMIT) -> list[dict]:
    """Other active products of the same category; none for an uncategorized product."""
    if product.category_id is None:
        return []
    now = utcnow()
    products = (
        _active_products()
        .filter(Product.category_id == product.category_id, Product.id != product.id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .all()
    )
    return [product_card(p, now) for p in products]


def list_categories(search: str | None = None) -> list[dict]:
    q = db.session.query(Category).filter(Category.is_active.is_(True))
    if search and search.strip():
        q = q.filter(Category.name.ilike(f"%{search.strip()}%"))
    return [c.to_dict() for c in q.order_by(Category.name.asc(), Category.id.asc()).all()]


# =============================================================================
# RECENTLY VIEWED
# =============================================================================


def _viewer_filter(identity):
    if identity.user is not None:
        return RecentlyViewedProduct.user_id == identity.user.id
    return db.and_(
        RecentlyViewedProduct.user_id.is_(None),
        RecentlyViewedProduct.session_id == identity.session_id,
    )


def _trim_views(identity) -> None:
    stale_ids = [
        row.id
        for row in db.session.query(RecentlyViewedProduct.id)
        .filter(_viewer_filter(identity))
        .order_by(RecentlyViewedProduct.viewed_at.desc(), RecentlyViewedProduct.id.desc())
        .offset(MAX_RECENTLY_VIEWED)
        .all()
    ]
    if stale_ids:
        db.session.query(RecentlyViewedProduct).filter(
            RecentlyViewedProduct.id.in_(stale_ids)
        ).delete(synchronize_session=False)


def track_view(identity, product_ref) -> RecentlyViewedProduct:
    """
    Record that the caller looked at a product.

    Raises:
        ProductNotFound: unknown or inactive product
    """
    product = get_product(product_ref)
    user_id = identity.user.id if identity.user is not None else None

    def _op():
        now = utcnow()
        view = (
            db.session.query(RecentlyViewedProduct)
            .filter(_viewer_filter(identity), RecentlyViewedProduct.product_id == product.id)
            .first()
        )
        if view is None:
            view = RecentlyViewedProduct(
                user_id=user_id,
                session_id=None if user_id is not None else identity.session_id,
                product_id=product.id,
                viewed_at=now,
            )
            db.session.add(view)
        else:
            view.viewed_at = now
        db.session.flush()
        _trim_views(identity)
        db.session.commit()
        return view

    return run_with_retry(_op, retry_on=UPSERT_RACE_ERRORS)


def recently_viewed(identity, limit: int | None = None) -> list[dict]:
    limit = min(limit or RECENTLY_VIEWED_LIMIT, MAX_RECENTLY_VIEWED)
    now = utcnow()
    views = (
        db.session.query(RecentlyViewedProduct)
        .join(Product, RecentlyViewedProduct.product_id == Product.id)
        .filter(_viewer_filter(identity), Product.is_active.is_(True))
        .order_by(RecentlyViewedProduct.viewed_at.desc(), RecentlyViewedProduct.id.desc())
        .limit(limit)
        .all()
    )
    items = []
    for view in views:
        card = product_card(view.product, now)
        card["viewed_at"] = to_utc_z(view.viewed_at)
        items.append(card)
    return items


def remove_recently_viewed(identity, product_ref) -> bool:
    """
    False when the caller never viewed the product.

    Raises:
        ProductNotFound: unknown product
    """
    product = find_product(product_ref, active_only=False)
    if product is None:
        raise ProductNotFound("Product not found")

    deleted = (
        db.session.query(RecentlyViewedProduct)
        .filter(_viewer_filter(identity), RecentlyViewedProduct.product_id == product.id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted > 0


def clear_recently_viewed(identity) -> int:
    deleted = (
        db.session.query(RecentlyViewedProduct)
        .filter(_viewer_filter(identity))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
