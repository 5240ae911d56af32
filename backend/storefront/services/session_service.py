# Overview: Service-layer operations for client sessions; encapsulates business logic and database work.

"""
Client Session Store

WHY: Guests and signed-in users share one long-lived session id so that a
cart started anonymously follows the client through login and logout.

LIFECYCLE:
- Every resolved request upserts its session row (keyed by session_id)
  and refreshes last_activity.
- Login sets user_id on the row; logout clears it. The session_id itself
  never changes across those transitions.
- Guest rows idle past the retention window are swept by cleanup_sessions().
  Rows that still belong to a user are never swept here.

SESSION ID SOURCES (first match wins):
1. X-Session-ID header (mobile apps and SPA clients keeping it in localStorage)
2. session_id cookie (browsers)
3. Flask's own session, if the client already carries one
4. A freshly generated id
"""

from __future__ import annotations

import secrets
import string
from datetime import timedelta

from flask import current_app, session as flask_session

from ..extensions import db
from ..models import Session
from ..models.sessions import DEVICE_MOBILE, DEVICE_TABLET, DEVICE_WEB
from .concurrency import UPSERT_RACE_ERRORS, run_with_retry
from storefront.time_utils import unix_timestamp, utcnow


SESSION_HEADER = "X-Session-ID"
SESSION_COOKIE = "session_id"
FLASK_SESSION_KEY = "storefront_session_id"

SESSION_ID_PREFIX = "session_"
SESSION_ID_RANDOM_LENGTH = 40
DEFAULT_RETENTION_DAYS = 90

_ALPHANUMERIC = string.ascii_letters + string.digits


def generate_session_id() -> str:
    """
    Build a new session id: "session_" + 40 random alphanumerics + "_" + unix time.

    Uniqueness comes from the random part (~238 bits from the OS CSPRNG);
    the timestamp suffix only helps when reading logs. The unique index on
    sessions.session_id is the actual guarantee.
    """
    random_part = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(SESSION_ID_RANDOM_LENGTH))
    return f"{SESSION_ID_PREFIX}{random_part}_{unix_timestamp()}"


def detect_device_type(user_agent: str | None) -> str:
    """
    Classify a user agent as tablet, mobile or web.

    Tablet markers are checked first: iPad and Android tablet agents also
    contain "mobile"-ish tokens.
    """
    ua = (user_agent or "").lower()

    if "tablet" in ua or "ipad" in ua:
        return DEVICE_TABLET

    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return DEVICE_MOBILE

    return DEVICE_WEB


def get_session_id(request) -> str | None:
    """Return the client's session id from the request, without creating one."""
    header_value = (request.headers.get(SESSION_HEADER) or "").strip()
    if header_value:
        return header_value

    cookie_value = (request.cookies.get(SESSION_COOKIE) or "").strip()
    if cookie_value:
        return cookie_value

    return flask_session.get(FLASK_SESSION_KEY)


def upsert_session(
    session_id: str,
    user_id: int | None,
    device_type: str,
    user_agent: str | None,
    ip_address: str | None,
) -> Session:
    """
    Create or update the row for session_id and refresh last_activity.

    user_id is written as given, so an unauthenticated request on a
    session that was signed in leaves it as a guest session.
    """
    def _op():
        record = db.session.query(Session).filter_by(session_id=session_id).first()
        if record is None:
            record = Session(session_id=session_id)
            db.session.add(record)

        record.user_id = user_id
        record.device_type = device_type
        record.user_agent = (user_agent or "")[:512] or None
        record.ip_address = ip_address
        record.last_activity = utcnow()

        db.session.commit()
        return record

    return run_with_retry(_op, retry_on=UPSERT_RACE_ERRORS)


def get_or_create_session_id(request, user=None) -> str:
    """
    Resolve the request's session id (or generate one) and upsert its row.

    Always writes: last_activity stays fresh and the row is guaranteed to
    exist for anything keyed by the session id afterwards.
    """
    session_id = get_session_id(request) or generate_session_id()
    user_agent = request.headers.get("User-Agent")

    upsert_session(
        session_id=session_id,
        user_id=user.id if user is not None else None,
        device_type=detect_device_type(user_agent),
        user_agent=user_agent,
        ip_address=request.remote_addr,
    )
    flask_session[FLASK_SESSION_KEY] = session_id
    return session_id


def associate_session_with_user(session_id: str, user) -> None:
    """
    Attach the session to user (login).

    Also touches every other session already owned by the user so that a
    login on one device keeps the user's other devices out of cleanup.
    """
    if user is None:
        return

    now = utcnow()

    db.session.query(Session).filter(
        Session.session_id == session_id
    ).update(
        {Session.user_id: user.id, Session.last_activity: now},
        synchronize_session=False,
    )

    db.session.query(Session).filter(
        Session.user_id == user.id,
        Session.session_id != session_id,
    ).update(
        {Session.last_activity: now},
        synchronize_session=False,
    )

    db.session.commit()


def disassociate_session_from_user(session_id: str) -> None:
    """Detach the user from the session (logout); the row itself is kept."""
    db.session.query(Session).filter(
        Session.session_id == session_id
    ).update(
        {Session.user_id: None, Session.last_activity: utcnow()},
        synchronize_session=False,
    )
    db.session.commit()


def cleanup_sessions(days_old: int = DEFAULT_RETENTION_DAYS) -> int:
    """
    Delete guest sessions idle for more than days_old days.

    Returns count of sessions deleted.
    """
    cutoff = utcnow() - timedelta(days=days_old)

    deleted = db.session.query(Session).filter(
        Session.user_id.is_(None),
        Session.last_activity < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    current_app.logger.info("Session cleanup removed %d guest sessions older than %d days", deleted, days_old)
    return deleted


def set_session_cookie(response, session_id: str):
    """
    Persist the session id in a cookie.

    Not httponly: the SPA reads it and echoes it back as X-Session-ID.
    """
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=current_app.config.get("SESSION_COOKIE_DAYS", 30) * 24 * 3600,
        path="/",
        secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
        httponly=False,
        samesite="Lax",
    )
    return response
