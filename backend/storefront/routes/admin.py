# Overview: Flask API routes for the back office (admin auth, orders, discounts, coupons); parses input and returns JSON responses.

# backend/storefront/routes/admin.py
"""
Admin API routes

Admin login exchanges email + password of an is_admin account for an
encrypted admin token (also set as the httponly admin_token cookie).
Every other route here requires that token through @require_admin,
which never reads or writes the client session store.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import CouponCode, Discount
from ..services import auth_service
from ..services import order_service
from ..services import promotions_service
from ..services import token_service
from ..services.identity_service import ADMIN_COOKIE
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_price_adjustment,
    ValidationError,
    ConflictError,
)
from ..decorators import require_admin, unauthorized


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

_ADJUSTMENT_FIELDS = {
    "name", "description", "type", "value",
    "min_purchase_amount", "max_discount_amount",
    "start_date", "end_date", "usage_limit", "is_active",
}

DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_ADJUSTMENT_FIELDS | {"product_ids"}),
    required_on_create=frozenset({"name", "type", "value"}),
)

COUPON_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_ADJUSTMENT_FIELDS | {"code", "usage_limit_per_user"}),
    required_on_create=frozenset({"name", "type", "value"}),
)


# =============================================================================
# ADMIN AUTH
# =============================================================================

@admin_bp.post("/login")
def admin_login_route():
    """
    Request body: {"email": "...", "password": "..."}

    Returns the admin token; send it back as the AdminToken /
    X-Admin-Token header or rely on the admin_token cookie.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        return jsonify({"error": "email and password required"}), 400

    try:
        admin = auth_service.authenticate_admin(email, password, ip_address=request.remote_addr)
        if admin is None:
            current_app.logger.debug("Admin login failed for %s", email)
            return unauthorized()

        issued = token_service.issue_admin_token(admin)
        max_age = current_app.config.get("ADMIN_TOKEN_MAX_AGE") or None

        response = jsonify({
            "admin": admin.to_dict(),
            "token": issued.value,
            "token_type": issued.kind,
            "expires_in": max_age,
            "message": "Login successful",
        })
        response.set_cookie(
            ADMIN_COOKIE,
            issued.value,
            max_age=max_age,
            path="/",
            secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
            httponly=True,
            samesite="Lax",
        )
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to login admin")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/logout")
@require_admin
def admin_logout_route():
    try:
        token_service.clear_admin_token(g.current_admin)
        response = jsonify({"message": "Logout successful"})
        response.delete_cookie(ADMIN_COOKIE, path="/")
        return response, 200
    except Exception:
        current_app.logger.exception("Failed to logout admin")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/profile")
@require_admin
def admin_profile_route():
    return jsonify({"admin": g.current_admin.to_dict()}), 200


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders")
@require_admin
def list_orders_route():
    """
    Query parameters: status, search, date_from, date_to, sort_order,
    page, per_page (default 15)
    """
    try:
        result = order_service.admin_list_orders(
            status=request.args.get("status"),
            search=request.args.get("search"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            sort_order=request.args.get("sort_order"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@admin_bp.get("/orders/<order_uuid>")
@require_admin
def get_order_route(order_uuid: str):
    order = order_service.find_order(order_uuid)
    if order is None:
        return jsonify({"error": "Not found"}), 404
    return jsonify({"order": order.to_dict()}), 200


@admin_bp.patch("/orders/<order_uuid>/status")
@require_admin
def update_order_status_route(order_uuid: str):
    """
    Request body: {"status": "processing"}
    """
    order = order_service.find_order(order_uuid)
    if order is None:
        return jsonify({"error": "Not found"}), 404

    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_status(order, data.get("status"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"order": order.to_dict(), "message": "Order status updated"}), 200


# =============================================================================
# DISCOUNTS
# =============================================================================

@admin_bp.get("/discounts")
@require_admin
def list_discounts_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    items = promotions_service.list_discounts(active_only=active_only)
    return jsonify({"items": items, "count": len(items)}), 200


@admin_bp.post("/discounts")
@require_admin
def create_discount_route():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=False)
        enforce_rules_price_adjustment(patch)
        result = promotions_service.create_discount(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create discount")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 201


@admin_bp.get("/discounts/<int:discount_id>")
@require_admin
def get_discount_route(discount_id: int):
    discount = promotions_service.get_discount(discount_id)
    if discount is None:
        return jsonify({"error": "Not found"}), 404
    return jsonify(discount.to_dict()), 200


@admin_bp.patch("/discounts/<int:discount_id>")
@require_admin
def update_discount_route(discount_id: int):
    discount = promotions_service.get_discount(discount_id)
    if discount is None:
        return jsonify({"error": "Not found"}), 404

    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=True)
        enforce_rules_price_adjustment(patch, current=discount)
        result = promotions_service.update_discount(discount_id=discount_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update discount")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 200


@admin_bp.delete("/discounts/<int:discount_id>")
@require_admin
def delete_discount_route(discount_id: int):
    if not promotions_service.delete_discount(discount_id):
        return jsonify({"error": "Not found"}), 404
    return jsonify({"message": "Discount deleted"}), 200


# =============================================================================
# COUPON CODES
# =============================================================================

@admin_bp.get("/coupons")
@require_admin
def list_coupons_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    items = promotions_service.list_coupons(active_only=active_only)
    return jsonify({"items": items, "count": len(items)}), 200


@admin_bp.post("/coupons")
@require_admin
def create_coupon_route():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=CouponCode, payload=payload, policy=COUPON_POLICY, partial=False)
        enforce_rules_price_adjustment(patch)
        result = promotions_service.create_coupon(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create coupon")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 201


@admin_bp.get("/coupons/<int:coupon_id>")
@require_admin
def get_coupon_route(coupon_id: int):
    coupon = promotions_service.get_coupon(coupon_id)
    if coupon is None:
        return jsonify({"error": "Not found"}), 404
    return jsonify(coupon.to_dict()), 200


@admin_bp.patch("/coupons/<int:coupon_id>")
@require_admin
def update_coupon_route(coupon_id: int):
    coupon = promotions_service.get_coupon(coupon_id)
    if coupon is None:
        return jsonify({"error": "Not found"}), 404

    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=CouponCode, payload=payload, policy=COUPON_POLICY, partial=True)
        enforce_rules_price_adjustment(patch, current=coupon)
        result = promotions_service.update_coupon(coupon_id=coupon_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update coupon")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 200


@admin_bp.delete("/coupons/<int:coupon_id>")
@require_admin
def delete_coupon_route(coupon_id: int):
    if not promotions_service.delete_coupon(coupon_id):
        return jsonify({"error": "Not found"}), 404
    return jsonify({"message": "Coupon deleted"}), 200
