# Overview: Flask API routes for shopper-facing catalog browsing; parses input and returns JSON responses.

# backend/storefront/routes/catalog.py
"""
Catalog API routes

Browsing is public. Recently viewed products are kept per signed-in user,
or per session id for guests, so these routes resolve the caller's
identity and hand the session cookie back like the cart routes do.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import catalog_service
from ..services.catalog_service import ProductNotFound
from ..validation import ValidationError
from ..decorators import with_identity
from storefront.time_utils import to_utc_z


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _flag(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes")


@catalog_bp.get("/categories")
def list_categories_route():
    items = catalog_service.list_categories(search=request.args.get("search"))
    return jsonify({"items": items, "count": len(items)}), 200


@catalog_bp.get("/products")
def list_products_route():
    """
    Query parameters:
        search, category (id or slug), min_price, max_price,
        in_stock (true/false), featured (true),
        sort_by (created_at|name|price), sort_order (asc|desc),
        page, per_page (default 12, max 100)
    """
    try:
        result = catalog_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category") or request.args.get("category_id"),
            min_price=request.args.get("min_price"),
            max_price=request.args.get("max_price"),
            in_stock=_flag("in_stock"),
            featured=bool(_flag("featured")),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@catalog_bp.get("/products/featured")
def featured_products_route():
    items = catalog_service.featured_products()
    return jsonify({"items": items, "count": len(items)}), 200


# =============================================================================
# RECENTLY VIEWED
# =============================================================================

@catalog_bp.get("/products/recently-viewed")
@with_identity
def recently_viewed_route():
    items = catalog_service.recently_viewed(g.identity, limit=request.args.get("limit", type=int))
    return jsonify({"items": items, "count": len(items), "session_id": g.identity.session_id}), 200


@catalog_bp.post("/products/recently-viewed")
@with_identity
def track_view_route():
    """
    Request body: {"product_id": <uuid or id>}
    """
    data = request.get_json(silent=True) or {}
    product_ref = data.get("product_id")
    if product_ref is None or isinstance(product_ref, (bool, dict, list)):
        return jsonify({"error": "product_id is required"}), 400

    try:
        view = catalog_service.track_view(g.identity, product_ref)
    except ProductNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to track product view")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "product_id": view.product.uuid,
        "viewed_at": to_utc_z(view.viewed_at),
        "session_id": g.identity.session_id,
        "message": "Product view tracked",
    }), 200


@catalog_bp.delete("/products/recently-viewed")
@with_identity
def clear_recently_viewed_route():
    deleted = catalog_service.clear_recently_viewed(g.identity)
    return jsonify({"deleted_count": deleted, "message": "Recently viewed products cleared"}), 200


@catalog_bp.delete("/products/recently-viewed/<product_ref>")
@with_identity
def remove_recently_viewed_route(product_ref: str):
    try:
        removed = catalog_service.remove_recently_viewed(g.identity, product_ref)
    except ProductNotFound as e:
        return jsonify({"error": str(e)}), 404
    if not removed:
        return jsonify({"error": "Product not found in recently viewed"}), 404
    return jsonify({"message": "Product removed from recently viewed"}), 200


# =============================================================================
# PRODUCT DETAIL
# =============================================================================

@catalog_bp.get("/products/<product_ref>")
def get_product_route(product_ref: str):
    try:
        product = catalog_service.get_product(product_ref)
    except ProductNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"product": catalog_service.product_card(product)}), 200


@catalog_bp.get("/products/<product_ref>/related")
def related_products_route(product_ref: str):
    try:
        product = catalog_service.get_product(product_ref)
    except ProductNotFound as e:
        return jsonify({"error": str(e)}), 404
    items = catalog_service.related_products(product)
    return jsonify({"items": items, "count": len(items)}), 200
