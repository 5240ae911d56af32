from __future__ import annotations

import uuid

from ..extensions import db
from storefront.time_utils import to_utc_z


class User(db.Model):
    """
    Storefront customers and back-office administrators.

    A user only counts for authentication once `is_registered` is set;
    admin access additionally requires `is_admin`.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    mobile = db.Column(db.String(20), nullable=True, unique=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_registered = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_ip = db.Column(db.String(45), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "name": self.name,
            "email": self.email,
            "mobile": self.mobile,
            "is_active": self.is_active,
            "is_admin": self.is_admin,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class UserToken(db.Model):
    """
    The single credential record of a user.

    One row per user, with one slot per token kind. Bearer tokens are
    kept as SHA-256 hashes; the admin slot only records the hash and
    issue time of the last encrypted admin token. Deleting the row
    signs the user out everywhere.
    """
    __tablename__ = "user_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    web_token_hash = db.Column(db.String(64), nullable=True, unique=True, index=True)
    app_token_hash = db.Column(db.String(64), nullable=True, unique=True, index=True)
    device_token = db.Column(db.String(255), nullable=True)
    device_type = db.Column(db.String(32), nullable=True)

    admin_token_hash = db.Column(db.String(64), nullable=True)
    admin_issued_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("token", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "has_web_token": self.web_token_hash is not None,
            "has_app_token": self.app_token_hash is not None,
            "device_type": self.device_type,
            "admin_issued_at": to_utc_z(self.admin_issued_at) if self.admin_issued_at else None,
            "updated_at": to_utc_z(self.updated_at),
        }
