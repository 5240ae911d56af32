# Overview: Pytest coverage for request identity resolution and the route guards.

"""
Identity Resolver Tests

Verifies:
- Guests get a session id and no principal
- Bearer tokens are read from the Authorization header, the auth_token
  cookie, or the raw Cookie header
- Admin tokens are read from any AdminToken header spelling or the
  admin_token cookie (URL-encoded or not)
- Failed credentials degrade to guest; store errors propagate
- @require_admin answers 400 Unauthorized and never touches sessions
"""

from urllib.parse import quote

import pytest
from flask import request
from sqlalchemy.exc import OperationalError

from storefront.models import Session
from storefront.services import identity_service, token_service
from storefront.services.identity_service import (
    PRINCIPAL_ADMIN,
    PRINCIPAL_GUEST,
    PRINCIPAL_USER,
    extract_admin_token,
    resolve,
)

from conftest import admin_headers, auth_headers


def _outage(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


# =============================================================================
# RESOLVE
# =============================================================================


class TestResolve:

    def test_guest(self, app, db_session):
        with app.test_request_context("/"):
            identity = resolve(request)

        assert identity.is_guest
        assert identity.kind == PRINCIPAL_GUEST
        assert identity.user is None
        assert identity.session_id.startswith("session_")
        assert db_session.query(Session).filter_by(session_id=identity.session_id).count() == 1

    def test_bearer_header(self, app, db_session, customer):
        token = token_service.issue_web_token(customer).value
        with app.test_request_context("/", headers=auth_headers(token)):
            identity = resolve(request)

        assert identity.kind == PRINCIPAL_USER
        assert identity.user.id == customer.id
        row = db_session.query(Session).filter_by(session_id=identity.session_id).one()
        assert row.user_id == customer.id

    @pytest.mark.parametrize("scheme", ["bearer", "BEARER", "Bearer"])
    def test_bearer_scheme_is_case_insensitive(self, app, db_session, customer, scheme):
        token = token_service.issue_web_token(customer).value
        with app.test_request_context("/", headers={"Authorization": f"{scheme} {token}"}):
            identity = resolve(request)

        assert identity.user.id == customer.id

    def test_other_auth_schemes_are_ignored(self, app, db_session, customer):
        token = token_service.issue_web_token(customer).value
        with app.test_request_context("/", headers={"Authorization": f"Basic {token}"}):
            identity = resolve(request)

        assert identity.is_guest

    def test_bearer_cookie(self, app, db_session, customer):
        token = token_service.issue_app_token(customer).value
        with app.test_request_context("/", headers={"Cookie": f"auth_token={token}"}):
            identity = resolve(request)

        assert identity.user.id == customer.id

    def test_invalid_bearer_degrades_to_guest(self, app, db_session, customer):
        with app.test_request_context("/", headers=auth_headers("web_" + "0" * 64)):
            identity = resolve(request)

        assert identity.is_guest

    def test_session_header_is_reused(self, app, db_session):
        with app.test_request_context("/", headers={"X-Session-ID": "session_mobile_client"}):
            identity = resolve(request)

        assert identity.session_id == "session_mobile_client"

    def test_admin_token_as_principal(self, app, db_session, admin_user):
        token = token_service.issue_admin_token(admin_user).value
        with app.test_request_context("/", headers={"X-Admin-Token": token}):
            identity = resolve(request)

        assert identity.kind == PRINCIPAL_ADMIN
        assert identity.principal.is_admin

    def test_store_outage_propagates(self, app, db_session, customer, monkeypatch):
        token = token_service.issue_web_token(customer).value
        monkeypatch.setattr(token_service, "check_credential", _outage)

        with app.test_request_context("/", headers=auth_headers(token)):
            with pytest.raises(OperationalError):
                resolve(request)


# =============================================================================
# ADMIN TOKEN CARRIERS
# =============================================================================


class TestAdminTokenExtraction:

    @pytest.mark.parametrize("header", ["AdminToken", "admintoken", "ADMINTOKEN", "Admin-Token", "X-Admin-Token"])
    def test_header_spellings(self, app, header):
        with app.test_request_context("/", headers={header: "tok"}):
            assert extract_admin_token(request) == "tok"

    def test_cookie(self, app):
        with app.test_request_context("/", headers={"Cookie": "admin_token=abc"}):
            assert extract_admin_token(request) == "abc"

    def test_url_encoded_cookie(self, app, db_session, admin_user):
        token = token_service.issue_admin_token(admin_user).value
        with app.test_request_context("/", headers={"Cookie": f"other=1; admin_token={quote(token, safe='')}"}):
            extracted = extract_admin_token(request)

        assert extracted == token
        assert token_service.verify_admin(extracted).id == admin_user.id

    def test_absent(self, app):
        with app.test_request_context("/"):
            assert extract_admin_token(request) is None


# =============================================================================
# ROUTE GUARDS
# =============================================================================


class TestRequireAdmin:

    def test_no_credentials_is_unauthorized_without_session_write(self, client, db_session):
        resp = client.get("/api/admin/profile")

        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Unauthorized"}
        assert db_session.query(Session).count() == 0

    def test_customer_bearer_is_not_admin(self, client, db_session, customer):
        token = token_service.issue_web_token(customer).value
        resp = client.get("/api/admin/profile", headers=auth_headers(token))
        assert resp.status_code == 400

    def test_non_admin_encrypted_token(self, client, db_session, customer):
        token = token_service.encrypt_admin_payload({"user_id": customer.id, "timestamp": 0, "type": "admin"})
        resp = client.get("/api/admin/profile", headers=admin_headers(token))
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Unauthorized"}

    def test_valid_admin_token(self, client, db_session, admin_user):
        token = token_service.issue_admin_token(admin_user).value
        resp = client.get("/api/admin/profile", headers=admin_headers(token))

        assert resp.status_code == 200
        assert resp.get_json()["admin"]["email"] == admin_user.email
        assert db_session.query(Session).count() == 0


class TestRequireUser:

    def test_guest_is_unauthorized(self, client, db_session):
        resp = client.get("/api/auth/profile")
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Unauthorized"}

    def test_store_outage_is_500_not_guest(self, client, db_session, customer, monkeypatch):
        token = token_service.issue_web_token(customer).value
        monkeypatch.setattr(token_service, "check_credential", _outage)

        resp = client.get("/api/auth/profile", headers=auth_headers(token))

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}
