from __future__ import annotations

import uuid

from ..extensions import db
from storefront.money import money_json
from storefront.time_utils import to_utc_z


ORDER_PENDING = "pending"
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled", "refunded")


class Order(db.Model):
    """
    Placed order. Guests' orders are tied to their session id so they can
    still be listed after the cart is emptied.
    """
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    session_id = db.Column(db.String(128), nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default=ORDER_PENDING, index=True)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    coupon_code = db.Column(db.String(50), nullable=True)
    coupon_discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    shipping_name = db.Column(db.String(255), nullable=False)
    shipping_email = db.Column(db.String(255), nullable=False)
    shipping_phone = db.Column(db.String(20), nullable=False)
    shipping_address = db.Column(db.Text, nullable=False)
    shipping_city = db.Column(db.String(100), nullable=False)
    shipping_state = db.Column(db.String(100), nullable=True)
    shipping_postal_code = db.Column(db.String(20), nullable=True)
    shipping_country = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("OrderItem", backref="order", lazy="selectin", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "user_id": self.user_id,
            "status": self.status,
            "subtotal": money_json(self.subtotal),
            "discount_amount": money_json(self.discount_amount),
            "coupon_code": self.coupon_code,
            "coupon_discount": money_json(self.coupon_discount),
            "total": money_json(self.total),
            "shipping": {
                "name": self.shipping_name,
                "email": self.shipping_email,
                "phone": self.shipping_phone,
                "address": self.shipping_address,
                "city": self.shipping_city,
                "state": self.shipping_state,
                "postal_code": self.shipping_postal_code,
                "country": self.shipping_country,
            },
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
        }


class OrderItem(db.Model):
    """Immutable snapshot of a cart line at checkout."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price": money_json(self.unit_price),
            "discount_amount": money_json(self.discount_amount),
            "subtotal": money_json(self.subtotal),
        }
