# Overview: Request decorators that establish identity for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import identity_service


UNAUTHORIZED_STATUS = 400


def unauthorized():
    """
    The one response for every credential failure.

    Absent, malformed, expired and unknown credentials all look the same
    from outside.
    """
    return jsonify({"error": "Unauthorized"}), UNAUTHORIZED_STATUS


def _ensure_identity():
    if not hasattr(g, "identity"):
        g.identity = identity_service.resolve(request)
    return g.identity


def with_identity(f):
    """
    Resolve the caller and their session id.

    Sets g.identity (RequestIdentity). Guests are allowed through; the
    session cookie is written by the app's after_request hook.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _ensure_identity()
        return f(*args, **kwargs)

    return decorated_function


def require_user(f):
    """
    Require a signed-in user (web/app bearer, or an admin token).

    Sets g.identity and g.current_user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = _ensure_identity()
        if identity.user is None:
            return unauthorized()

        g.current_user = identity.user
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require a valid encrypted admin token.

    Does not resolve or write the client session. Sets g.current_admin
    and g.admin_token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        check = identity_service.authenticate_admin_request(request)
        if not check.ok:
            current_app.logger.debug("Admin request rejected on %s: %s", request.path, check.outcome)
            return unauthorized()

        g.current_admin = check.user
        g.admin_token = identity_service.extract_admin_token(request)
        return f(*args, **kwargs)

    return decorated_function
