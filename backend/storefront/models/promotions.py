from __future__ import annotations

import uuid

from ..extensions import db
from storefront.money import money_json
from storefront.time_utils import to_utc_z


TYPE_PERCENTAGE = "percentage"
TYPE_FIXED = "fixed"
ADJUSTMENT_TYPES = (TYPE_PERCENTAGE, TYPE_FIXED)


class PriceAdjustmentMixin:
    """
    Columns shared by product discounts and coupon codes.

    value is a percentage (0-100) for percentage rules and an amount for
    fixed rules. Validity is evaluated by discount_service on every call.
    """
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    type = db.Column(db.String(16), nullable=False, default=TYPE_PERCENTAGE)
    value = db.Column(db.Numeric(10, 2), nullable=False)

    min_purchase_amount = db.Column(db.Numeric(10, 2), nullable=True)
    max_discount_amount = db.Column(db.Numeric(10, 2), nullable=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def _adjustment_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "value": money_json(self.value),
            "min_purchase_amount": money_json(self.min_purchase_amount),
            "max_discount_amount": money_json(self.max_discount_amount),
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Discount(PriceAdjustmentMixin, db.Model):
    """Automatic product-level price reduction."""
    __tablename__ = "discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))

    products = db.relationship("Product", secondary="discount_product", back_populates="discounts", lazy="selectin")

    def to_dict(self) -> dict:
        data = self._adjustment_dict()
        data["product_ids"] = [p.id for p in self.products]
        return data


class CouponCode(PriceAdjustmentMixin, db.Model):
    """
    Order-level reduction unlocked by a human-entered code.

    usage_limit_per_user is stored for the admin UI but not enforced:
    there is no per-user redemption ledger.
    """
    __tablename__ = "coupon_codes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    usage_limit_per_user = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        data = self._adjustment_dict()
        data["code"] = self.code
        data["usage_limit_per_user"] = self.usage_limit_per_user
        return data
