# Overview: Resolve the acting principal and session id of an inbound request.

"""
Identity Resolver

Credential carriers, in the order they are consulted:

Bearer (user) credential:
1. Authorization: Bearer <token>
2. auth_token cookie
3. auth_token scanned out of the raw Cookie header

Admin credential:
1. AdminToken header (any casing; Admin-Token / X-Admin-Token also accepted)
2. admin_token cookie
3. admin_token scanned out of the raw Cookie header

A credential that fails verification is treated exactly like a missing
one: the request continues as a guest. Store errors are not caught here
and propagate to the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote

from ..models import User
from . import session_service, token_service
from .token_service import TokenCheck


PRINCIPAL_GUEST = "guest"
PRINCIPAL_USER = "user"
PRINCIPAL_ADMIN = "admin"

AUTH_COOKIE = "auth_token"
ADMIN_COOKIE = "admin_token"

# Header spellings are compared after lower-casing and dropping "-"/"_"
_ADMIN_HEADER_KEYS = frozenset({"admintoken", "xadmintoken"})


@dataclass(frozen=True)
class Principal:
    kind: str
    user: User | None = None

    @property
    def is_admin(self) -> bool:
        return self.kind == PRINCIPAL_ADMIN


@dataclass(frozen=True)
class RequestIdentity:
    """What downstream code needs: who is acting (maybe nobody) and the session id."""
    principal: Principal | None
    session_id: str

    @property
    def user(self) -> User | None:
        return self.principal.user if self.principal else None

    @property
    def kind(self) -> str:
        return self.principal.kind if self.principal else PRINCIPAL_GUEST

    @property
    def is_guest(self) -> bool:
        return self.principal is None


def _scan_cookie_header(request, name: str) -> str | None:
    header = request.headers.get("Cookie", "")
    match = re.search(rf"(?:^|;)\s*{re.escape(name)}=([^;]+)", header)
    if not match:
        return None
    value = unquote(match.group(1)).strip()
    return value or None


def extract_bearer_token(request) -> str | None:
    scheme, _, credentials = request.headers.get("Authorization", "").strip().partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    token = unquote(request.cookies.get(AUTH_COOKIE) or "").strip()
    if token:
        return token

    return _scan_cookie_header(request, AUTH_COOKIE)


def extract_admin_token(request) -> str | None:
    """Cookie values may arrive URL-encoded (e.g. "%3D" padding); they are decoded."""
    for name, value in request.headers.items():
        key = name.lower().replace("-", "").replace("_", "")
        if key in _ADMIN_HEADER_KEYS and value.strip():
            return value.strip()

    token = unquote(request.cookies.get(ADMIN_COOKIE) or "").strip()
    if token:
        return token

    return _scan_cookie_header(request, ADMIN_COOKIE)


def _principal_for(check: TokenCheck) -> Principal | None:
    if not check.ok:
        return None
    kind = PRINCIPAL_ADMIN if check.kind == token_service.KIND_ADMIN else PRINCIPAL_USER
    return Principal(kind=kind, user=check.user)


def resolve_principal(request) -> Principal | None:
    """
    Find the acting user, if any.

    The bearer credential is tried first (stored web/app token, or an
    admin ciphertext presented as a bearer); then the admin carriers.
    """
    bearer = extract_bearer_token(request)
    if bearer:
        principal = _principal_for(token_service.check_credential(bearer))
        if principal is not None:
            return principal

    admin_token = extract_admin_token(request)
    if admin_token:
        return _principal_for(token_service.check_credential(admin_token))

    return None


def resolve(request) -> RequestIdentity:
    """
    Resolve principal and session id; upserts the session row every time.
    """
    principal = resolve_principal(request)
    session_id = session_service.get_or_create_session_id(
        request,
        principal.user if principal else None,
    )
    return RequestIdentity(principal=principal, session_id=session_id)


def authenticate_admin_request(request) -> TokenCheck:
    """
    Admin gate for back-office routes. Read-only: no session row is touched.
    """
    token = extract_admin_token(request)
    if not token:
        return TokenCheck(token_service.OUTCOME_ABSENT)
    return token_service.check_admin(token)
