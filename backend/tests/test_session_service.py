# Overview: Pytest coverage for the client session store.

"""
Session Store Tests

Verifies:
- Session id format and device classification
- Session id source precedence (header > cookie > Flask session)
- Upsert keeps one row per session id and refreshes last_activity
- Login/logout toggle user_id without changing the session id
- Cleanup only removes idle guest sessions
"""

import re
from datetime import timedelta

from storefront.extensions import db
from storefront.models import Session
from storefront.services import session_service
from storefront.services.session_service import (
    associate_session_with_user,
    cleanup_sessions,
    detect_device_type,
    disassociate_session_from_user,
    generate_session_id,
    get_session_id,
    upsert_session,
)
from storefront.time_utils import utcnow


def _row(session_id):
    db.session.expire_all()
    return db.session.query(Session).filter_by(session_id=session_id).first()


# =============================================================================
# IDS AND DEVICES
# =============================================================================


class TestSessionIds:

    def test_format(self):
        sid = generate_session_id()
        assert re.fullmatch(r"session_[A-Za-z0-9]{40}_\d+", sid)

    def test_ids_are_unique(self):
        ids = {generate_session_id() for _ in range(50)}
        assert len(ids) == 50

    def test_device_detection(self):
        assert detect_device_type("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Mobile") == "tablet"
        assert detect_device_type("Mozilla/5.0 (Linux; Android 14) Tablet") == "tablet"
        assert detect_device_type("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)") == "mobile"
        assert detect_device_type("Mozilla/5.0 (Linux; Android 14; Pixel 8)") == "mobile"
        assert detect_device_type("Mozilla/5.0 (Windows NT 10.0; Win64; x64)") == "web"
        assert detect_device_type(None) == "web"


class TestSessionIdSources:

    def test_header_wins_over_cookie(self, app):
        with app.test_request_context("/", headers={
            "X-Session-ID": "from-header",
            "Cookie": "session_id=from-cookie",
        }):
            from flask import request
            assert get_session_id(request) == "from-header"

    def test_cookie_used_without_header(self, app):
        with app.test_request_context("/", headers={"Cookie": "session_id=from-cookie"}):
            from flask import request
            assert get_session_id(request) == "from-cookie"

    def test_none_when_client_has_nothing(self, app):
        with app.test_request_context("/"):
            from flask import request
            assert get_session_id(request) is None

    def test_get_or_create_generates_and_persists(self, app, db_session):
        with app.test_request_context("/", headers={"User-Agent": "Mozilla/5.0 (iPhone)"}):
            from flask import request
            sid = session_service.get_or_create_session_id(request)

        row = _row(sid)
        assert row is not None
        assert row.user_id is None
        assert row.device_type == "mobile"


# =============================================================================
# UPSERT / ASSOCIATE / DISASSOCIATE
# =============================================================================


class TestSessionRows:

    def test_upsert_keeps_single_row(self, db_session, customer):
        upsert_session("sid-1", None, "web", "agent-a", "10.0.0.1")
        first_seen = _row("sid-1").last_activity

        upsert_session("sid-1", customer.id, "mobile", "agent-b", "10.0.0.2")

        assert db_session.query(Session).filter_by(session_id="sid-1").count() == 1
        row = _row("sid-1")
        assert row.user_id == customer.id
        assert row.device_type == "mobile"
        assert row.ip_address == "10.0.0.2"
        assert row.last_activity >= first_seen

    def test_login_logout_login_keeps_session_id(self, db_session, customer):
        upsert_session("sid-stable", None, "web", None, None)

        associate_session_with_user("sid-stable", customer)
        assert _row("sid-stable").user_id == customer.id

        disassociate_session_from_user("sid-stable")
        row = _row("sid-stable")
        assert row is not None
        assert row.user_id is None

        associate_session_with_user("sid-stable", customer)
        assert _row("sid-stable").user_id == customer.id
        assert db_session.query(Session).count() == 1

    def test_associate_refreshes_other_sessions_of_user(self, db_session, customer):
        old = utcnow() - timedelta(days=10)
        db_session.add(Session(session_id="sid-phone", user_id=customer.id, device_type="mobile", last_activity=old))
        db_session.add(Session(session_id="sid-laptop", user_id=None, device_type="web", last_activity=old))
        db_session.commit()

        associate_session_with_user("sid-laptop", customer)

        laptop = _row("sid-laptop")
        phone = _row("sid-phone")
        assert laptop.user_id == customer.id
        assert laptop.last_activity > old
        assert phone.last_activity > old


# =============================================================================
# CLEANUP
# =============================================================================


class TestCleanup:

    def test_only_idle_guest_sessions_are_deleted(self, db_session, customer):
        stale = utcnow() - timedelta(days=100)
        db_session.add(Session(session_id="guest-stale", user_id=None, device_type="web", last_activity=stale))
        db_session.add(Session(session_id="guest-fresh", user_id=None, device_type="web", last_activity=utcnow()))
        db_session.add(Session(session_id="user-stale", user_id=customer.id, device_type="web", last_activity=stale))
        db_session.commit()

        deleted = cleanup_sessions(days_old=90)

        assert deleted == 1
        remaining = {s.session_id for s in db_session.query(Session).all()}
        assert remaining == {"guest-fresh", "user-stale"}

    def test_cli_command(self, app, db_session):
        stale = utcnow() - timedelta(days=40)
        db_session.add(Session(session_id="guest-old", user_id=None, device_type="web", last_activity=stale))
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["maintenance", "cleanup-sessions", "--days", "30"])

        assert result.exit_code == 0, result.output
        assert "Deleted 1 guest sessions" in result.output
        assert db_session.query(Session).count() == 0
