# Overview: Issue, verify and revoke user credentials (web, app and admin tokens).

"""
Token Issuer / Verifier

Three token kinds share one credential row per user (UserToken):

- web:   "web_" + 64 hex chars, stored as a SHA-256 hash in web_token_hash
- app:   "app_" + 64 hex chars, stored as a SHA-256 hash in app_token_hash,
         together with the push device token and device type
- admin: a Fernet ciphertext of {"user_id", "timestamp", "type": "admin"}.
         Verified by decryption, not by lookup; the row only records the
         hash and issue time of the latest one.

Issuing a token of a kind overwrites that kind's slot, so the previous
token of the same kind stops verifying. revoke() deletes the row and
with it every bearer token of the user.

Verification never raises for bad credentials. check_* functions return a
TokenCheck whose outcome says why a credential failed (for logs); the
verify_* wrappers collapse every failure to None.
"""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
import time
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from ..extensions import db
from ..models import User, UserToken
from .concurrency import UPSERT_RACE_ERRORS, run_with_retry
from storefront.time_utils import unix_timestamp, utcnow


KIND_WEB = "web"
KIND_APP = "app"
KIND_ADMIN = "admin"

BEARER_KINDS = (KIND_WEB, KIND_APP)

OUTCOME_OK = "ok"
OUTCOME_ABSENT = "absent"
OUTCOME_MALFORMED = "malformed"
OUTCOME_UNKNOWN = "unknown"
OUTCOME_EXPIRED = "expired"
OUTCOME_NOT_ADMIN = "not_admin"
OUTCOME_INACTIVE = "inactive"


@dataclass(frozen=True)
class IssuedToken:
    """A credential handed to a client, tagged with its kind."""
    kind: str
    value: str


@dataclass(frozen=True)
class TokenCheck:
    outcome: str
    kind: str | None = None
    user: User | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_OK


class AdminTokenError(Exception):
    """Admin token could not be decrypted or decoded."""

    def __init__(self, outcome: str):
        super().__init__(outcome)
        self.outcome = outcome


def generate_token(kind: str) -> str:
    """Kind-prefixed bearer token with 32 bytes of CSPRNG entropy."""
    return f"{kind}_{secrets.token_hex(32)}"


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Bearer tokens are already high-entropy, so a fast hash is enough.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def parse_token(raw: str | None) -> IssuedToken | None:
    """
    Tag a presented credential with its kind.

    Anything without a bearer prefix is treated as an admin ciphertext;
    decryption decides whether it really is one.
    """
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    for kind in BEARER_KINDS:
        if value.startswith(f"{kind}_"):
            return IssuedToken(kind=kind, value=value)
    return IssuedToken(kind=KIND_ADMIN, value=value)


# =============================================================================
# ADMIN TOKEN ENCRYPTION
# =============================================================================


def _fernet() -> Fernet:
    key = current_app.config.get("TOKEN_ENCRYPTION_KEY")
    if not key:
        digest = hashlib.sha256(current_app.config["SECRET_KEY"].encode("utf-8")).digest()
        key = base64.urlsafe_b64encode(digest)
    return Fernet(key)


def encrypt_admin_payload(payload: dict) -> str:
    return _fernet().encrypt(json.dumps(payload).encode("utf-8")).decode("utf-8")


def decrypt_admin_payload(token: str, *, max_age: int | None = None) -> dict:
    """
    Decrypt and decode an admin token.

    Raises AdminTokenError("malformed") for anything that is not an intact
    admin payload, AdminTokenError("expired") when older than max_age seconds.
    """
    f = _fernet()
    try:
        raw = f.decrypt(token.encode("utf-8"))
    except (InvalidToken, ValueError):
        raise AdminTokenError(OUTCOME_MALFORMED)

    if max_age:
        issued_at = f.extract_timestamp(token.encode("utf-8"))
        if time.time() - issued_at > max_age:
            raise AdminTokenError(OUTCOME_EXPIRED)

    try:
        payload = json.loads(raw)
    except ValueError:
        raise AdminTokenError(OUTCOME_MALFORMED)

    if not isinstance(payload, dict) or payload.get("type") != KIND_ADMIN:
        raise AdminTokenError(OUTCOME_MALFORMED)
    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise AdminTokenError(OUTCOME_MALFORMED)
    return payload


# =============================================================================
# ISSUE
# =============================================================================


def _write_token_row(user_id: int, values: dict) -> UserToken:
    """Upsert the user's credential row (one per user) with values."""
    def _op():
        row = db.session.query(UserToken).filter_by(user_id=user_id).first()
        if row is None:
            row = UserToken(user_id=user_id)
            db.session.add(row)
        for key, value in values.items():
            setattr(row, key, value)
        db.session.commit()
        return row

    return run_with_retry(_op, retry_on=UPSERT_RACE_ERRORS)


def issue_web_token(user: User) -> IssuedToken:
    token = generate_token(KIND_WEB)
    _write_token_row(user.id, {"web_token_hash": hash_token(token)})
    return IssuedToken(kind=KIND_WEB, value=token)


def issue_app_token(user: User, device_token: str | None = None, device_type: str | None = None) -> IssuedToken:
    token = generate_token(KIND_APP)
    _write_token_row(user.id, {
        "app_token_hash": hash_token(token),
        "device_token": device_token,
        "device_type": device_type,
    })
    return IssuedToken(kind=KIND_APP, value=token)


def issue_admin_token(user: User) -> IssuedToken:
    token = encrypt_admin_payload({
        "user_id": user.id,
        "timestamp": unix_timestamp(),
        "type": KIND_ADMIN,
    })
    _write_token_row(user.id, {
        "admin_token_hash": hash_token(token),
        "admin_issued_at": utcnow(),
    })
    return IssuedToken(kind=KIND_ADMIN, value=token)


# =============================================================================
# VERIFY
# =============================================================================


def check_bearer(raw: str | None) -> TokenCheck:
    """Verify a web or app bearer token against its stored hash."""
    token = parse_token(raw)
    if token is None:
        return TokenCheck(OUTCOME_ABSENT)
    if token.kind not in BEARER_KINDS:
        return TokenCheck(OUTCOME_MALFORMED, kind=token.kind)

    column = UserToken.web_token_hash if token.kind == KIND_WEB else UserToken.app_token_hash
    row = db.session.query(UserToken).filter(column == hash_token(token.value)).first()
    if row is None:
        return TokenCheck(OUTCOME_UNKNOWN, kind=token.kind)

    user = row.user
    if user is None or not user.is_active or not user.is_registered:
        return TokenCheck(OUTCOME_INACTIVE, kind=token.kind)

    return TokenCheck(OUTCOME_OK, kind=token.kind, user=user)


def check_admin(raw: str | None) -> TokenCheck:
    """
    Verify an encrypted admin token.

    The payload must decrypt, be younger than ADMIN_TOKEN_MAX_AGE (when
    non-zero) and name a registered, active admin.
    """
    token = parse_token(raw)
    if token is None:
        return TokenCheck(OUTCOME_ABSENT)
    if token.kind != KIND_ADMIN:
        return TokenCheck(OUTCOME_MALFORMED, kind=token.kind)

    try:
        payload = decrypt_admin_payload(
            token.value,
            max_age=current_app.config.get("ADMIN_TOKEN_MAX_AGE") or None,
        )
    except AdminTokenError as exc:
        return TokenCheck(exc.outcome, kind=KIND_ADMIN)

    admin = db.session.query(User).filter(
        User.id == payload["user_id"],
        User.is_registered.is_(True),
        User.is_admin.is_(True),
        User.is_active.is_(True),
    ).first()
    if admin is None:
        return TokenCheck(OUTCOME_NOT_ADMIN, kind=KIND_ADMIN)

    return TokenCheck(OUTCOME_OK, kind=KIND_ADMIN, user=admin)


def check_credential(raw: str | None) -> TokenCheck:
    """Dispatch on the token kind: bearer lookup or admin decryption."""
    token = parse_token(raw)
    if token is None:
        return TokenCheck(OUTCOME_ABSENT)
    if token.kind == KIND_ADMIN:
        result = check_admin(token.value)
    else:
        result = check_bearer(token.value)
    if not result.ok:
        current_app.logger.debug("Credential rejected: kind=%s outcome=%s", result.kind, result.outcome)
    return result


def verify_bearer(raw: str | None) -> User | None:
    return check_bearer(raw).user


def verify_admin(raw: str | None) -> User | None:
    return check_admin(raw).user


# =============================================================================
# REVOKE
# =============================================================================


def revoke(user: User) -> bool:
    """
    Delete the user's credential row (logout).

    Returns True if a row existed.
    """
    deleted = db.session.query(UserToken).filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.commit()
    return deleted > 0


def clear_admin_token(user: User) -> None:
    """
    Forget the latest admin token (admin logout).

    Admin tokens are verified by decryption, so an already issued one
    keeps working until ADMIN_TOKEN_MAX_AGE; clients drop it on logout.
    """
    db.session.query(UserToken).filter_by(user_id=user.id).update(
        {UserToken.admin_token_hash: None, UserToken.admin_issued_at: None},
        synchronize_session=False,
    )
    db.session.commit()
