from __future__ import annotations

import uuid

from ..extensions import db
from storefront.money import money_json, to_money
from storefront.time_utils import to_utc_z


class Cart(db.Model):
    """
    Shopping cart owned by a user (user_id) or by a guest session (session_id).

    A user has at most one cart. Guest carts are found by session id with
    user_id NULL.
    """
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    session_id = db.Column(db.String(128), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "CartItem",
        backref="cart",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "items": [item.to_dict() for item in self.items],
            "updated_at": to_utc_z(self.updated_at),
        }


class CartItem(db.Model):
    """
    One product line. unit_price is the shelf price at the time the line
    was priced; discount_amount is the per-unit reduction from the best
    valid product discount.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id", ondelete="SET NULL"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    product = db.relationship("Product", lazy="joined")
    discount = db.relationship("Discount")

    @property
    def final_price(self):
        return to_money(self.unit_price) - to_money(self.discount_amount)

    @property
    def line_total(self):
        return self.final_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "discount_id": self.discount_id,
            "quantity": self.quantity,
            "unit_price": money_json(self.unit_price),
            "discount_amount": money_json(self.discount_amount),
            "final_price": money_json(self.final_price),
            "line_total": money_json(self.line_total),
        }
