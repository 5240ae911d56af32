# Overview: Flask API routes for the shopping cart; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import cart_service
from ..services import discount_service
from ..services.cart_service import CartError
from ..services.discount_service import CouponRejected
from ..validation import ValidationError
from ..decorators import with_identity


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("/")
@with_identity
def get_cart_route():
    cart = cart_service.get_cart(g.identity)
    return jsonify(cart_service.cart_summary(cart)), 200


@cart_bp.post("/items")
@with_identity
def add_item_route():
    """
    Request body: {"product_id": <id or uuid>, "quantity": 1}
    """
    data = request.get_json(silent=True) or {}
    try:
        cart = cart_service.get_or_create_cart(g.identity)
        cart_service.add_item(cart, data.get("product_id"), data.get("quantity", 1))
        return jsonify(cart_service.cart_summary(cart)), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CartError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.patch("/items/<int:item_id>")
@with_identity
def update_item_route(item_id: int):
    data = request.get_json(silent=True) or {}
    cart = cart_service.get_cart(g.identity)
    if cart is None:
        return jsonify({"error": "Cart item not found"}), 404
    try:
        cart_service.update_item(cart, item_id, data.get("quantity"))
        return jsonify(cart_service.cart_summary(cart)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CartError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:item_id>")
@with_identity
def remove_item_route(item_id: int):
    cart = cart_service.get_cart(g.identity)
    if cart is None:
        return jsonify({"error": "Cart item not found"}), 404
    try:
        cart_service.remove_item(cart, item_id)
        return jsonify(cart_service.cart_summary(cart)), 200
    except CartError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/")
@with_identity
def clear_cart_route():
    cart = cart_service.get_cart(g.identity)
    if cart is not None:
        cart_service.clear_cart(cart)
    return jsonify(cart_service.cart_summary(cart)), 200


@cart_bp.post("/coupon")
@with_identity
def preview_coupon_route():
    """
    Show what a coupon would take off the current cart. Nothing is redeemed.

    Request body: {"code": "SAVE10"}
    """
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code:
        return jsonify({"error": "code is required"}), 400

    identity = g.identity
    summary = cart_service.cart_summary(cart_service.get_cart(identity))
    user_id = identity.user.id if identity.user else None
    try:
        preview = discount_service.preview_coupon(code, summary["subtotal"], user_id)
        return jsonify(preview), 200
    except CouponRejected as e:
        return jsonify({"error": str(e), "reason": e.reason}), 400
    except Exception:
        current_app.logger.exception("Failed to preview coupon")
        return jsonify({"error": "Internal server error"}), 500
