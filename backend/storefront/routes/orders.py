# Overview: Flask API routes for checkout and order history; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import order_service
from ..services.order_service import CheckoutError
from ..validation import ValidationError
from ..decorators import with_identity


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/")
@with_identity
def checkout_route():
    """
    Place an order from the caller's cart.

    Request body:
    {
        "shipping": {"name", "email", "phone", "address", "city",
                     "state"?, "postal_code"?, "country"?},
        "coupon_code": "SAVE10",   // optional
        "notes": "..."             // optional
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.checkout(
            g.identity,
            data.get("shipping"),
            coupon_code=data.get("coupon_code"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict(), "message": "Order placed"}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@with_identity
def list_orders_route():
    orders = order_service.list_orders(g.identity)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.get("/<order_uuid>")
@with_identity
def get_order_route(order_uuid: str):
    order = order_service.get_order(g.identity, order_uuid)
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"order": order.to_dict()}), 200
