# Overview: Flask API routes for customer auth; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Customer Authentication API routes

- Web logins get a web_ token, also set as the httponly auth_token cookie.
- App logins get an app_ token and record the push device token.
- Login attaches the client session to the user and folds the guest
  cart into the user's cart; logout reverses both.
- Every credential failure answers 400 {"error": "Unauthorized"}.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import cart_service
from ..services import session_service
from ..services import token_service
from ..services.auth_service import PasswordValidationError
from ..services.identity_service import AUTH_COOKIE
from ..validation import ValidationError, ConflictError
from ..decorators import with_identity, require_user, unauthorized


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOGIN_TYPES = (token_service.KIND_WEB, token_service.KIND_APP)


def _set_auth_cookie(response, token: str):
    response.set_cookie(
        AUTH_COOKIE,
        token,
        max_age=current_app.config.get("SESSION_COOKIE_DAYS", 30) * 24 * 3600,
        path="/",
        secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
        httponly=True,
        samesite="Lax",
    )


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account.

    Request body: {"name", "email", "password", "mobile"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.register_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password") or "",
            mobile=data.get("mobile"),
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "Registration successful"}), 201


@auth_bp.post("/login")
@with_identity
def login_route():
    """
    Authenticate and issue a web or app token.

    Request body:
    {
        "email": "...",
        "password": "...",
        "login_type": "web" | "app",   // default "web"
        "device_token": "...",          // app only, optional
        "device_type": "ios"            // app only, optional
    }
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    login_type = data.get("login_type") or token_service.KIND_WEB

    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        return jsonify({"error": "email and password required"}), 400
    if not isinstance(login_type, str) or login_type.strip().lower() not in LOGIN_TYPES:
        return jsonify({"error": "login_type must be 'web' or 'app'"}), 400
    login_type = login_type.strip().lower()

    try:
        user = auth_service.authenticate(email, password, ip_address=request.remote_addr)
        if user is None:
            current_app.logger.debug("Login failed for %s", email)
            return unauthorized()

        if login_type == token_service.KIND_APP:
            issued = token_service.issue_app_token(
                user,
                device_token=data.get("device_token"),
                device_type=data.get("device_type"),
            )
        else:
            issued = token_service.issue_web_token(user)

        session_id = g.identity.session_id
        session_service.associate_session_with_user(session_id, user)
        cart = cart_service.merge_guest_cart(session_id, user)

        response = jsonify({
            "user": user.to_dict(),
            "token": issued.value,
            "token_type": issued.kind,
            "session_id": session_id,
            "cart": cart_service.cart_summary(cart),
            "message": "Login successful",
        })
        if issued.kind == token_service.KIND_WEB:
            _set_auth_cookie(response, issued.value)
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_user
def logout_route():
    """
    Revoke the user's tokens and hand the cart back to the session.

    The session id survives, so the client keeps shopping as a guest.
    """
    try:
        user = g.current_user
        session_id = g.identity.session_id

        cart_service.release_user_cart(user, session_id)
        token_service.revoke(user)
        session_service.disassociate_session_from_user(session_id)

        response = jsonify({"message": "Logout successful", "session_id": session_id})
        response.delete_cookie(AUTH_COOKIE, path="/")
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/profile")
@require_user
def profile_route():
    identity = g.identity
    return jsonify({
        "user": g.current_user.to_dict(),
        "principal": identity.kind,
        "session_id": identity.session_id,
    }), 200
