from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


DEVICE_WEB = "web"
DEVICE_MOBILE = "mobile"
DEVICE_TABLET = "tablet"


class Session(db.Model):
    """
    Long-lived client session shared by guests and signed-in users.

    session_id is the upsert key and never changes for a client; user_id
    is set at login and cleared at logout, so a guest cart keyed by the
    session survives both transitions.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.Index("ix_sessions_user_activity", "user_id", "last_activity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(128), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    device_type = db.Column(db.String(16), nullable=False, default=DEVICE_WEB)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    last_activity = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "device_type": self.device_type,
            "ip_address": self.ip_address,
            "last_activity": to_utc_z(self.last_activity),
        }
