from __future__ import annotations

import uuid

from ..extensions import db
from storefront.money import money_json
from storefront.time_utils import to_utc_z


discount_product = db.Table(
    "discount_product",
    db.Column("discount_id", db.Integer, db.ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    db.Column("created_at", db.DateTime(timezone=True), nullable=False, server_default=db.func.now()),
)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Sellable catalog item.

    The shelf price is sale_price when set, otherwise price. Product-level
    discounts attach through the discount_product table.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    sale_price = db.Column(db.Numeric(10, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False, index=True)
    manage_stock = db.Column(db.Boolean, nullable=False, default=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    in_stock = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    discounts = db.relationship("Discount", secondary=discount_product, back_populates="products", lazy="selectin")

    @property
    def base_price(self):
        return self.sale_price if self.sale_price is not None else self.price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "category_id": self.category_id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "price": money_json(self.price),
            "sale_price": money_json(self.sale_price),
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "manage_stock": self.manage_stock,
            "stock_quantity": self.stock_quantity,
            "in_stock": self.in_stock,
            "created_at": to_utc_z(self.created_at),
        }


class RecentlyViewedProduct(db.Model):
    """
    One row per (viewer, product); viewed_at moves on every repeat view.

    The viewer is a user when signed in, otherwise the client session id.
    """
    __tablename__ = "recently_viewed_products"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_recently_viewed_user_product"),
        db.UniqueConstraint("session_id", "product_id", name="uq_recently_viewed_session_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    session_id = db.Column(db.String(128), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    viewed_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", lazy="joined")
