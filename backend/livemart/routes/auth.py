# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/livemart/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration
- Login failures never reveal whether the email exists
- Refresh tokens rotate on every use; a replayed refresh token is rejected
- Logout blacklists the access token until it expires
"""

from flask import Blueprint, request, current_app, g

from ..extensions import get_auth_service
from ..responses import ok, fail, error_response, DOMAIN_ERRORS
from ..services.token_service import TokenMismatchError
from ..validation import json_object
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, tokens) -> dict:
    return {"user": user.to_dict(), "tokens": tokens.to_dict()}


@auth_bp.post("/register")
def register_route():
    """
    Self-registration for customers, retailers and wholesalers.

    Admins are created with the CLI (flask users create-admin).
    """
    data = request.get_json(silent=True) or {}
    try:
        user, tokens = get_auth_service().register(data)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return fail("Internal server error", 500)

    current_app.logger.info("User registered: id=%s role=%s", user.id, user.role)
    return ok(_session_payload(user, tokens), "User registered successfully", 201)


@auth_bp.post("/login")
def login_route():
    try:
        data = json_object(request.get_json(silent=True))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return fail("Email and password are required", 400)
    if not isinstance(email, str) or not isinstance(password, str):
        return fail("Email and password must be strings", 400)

    try:
        user, tokens = get_auth_service().login(email, password)
    except DOMAIN_ERRORS as e:
        current_app.logger.info("Login failed for %s: %s", str(email).strip().lower(), e)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return fail("Internal server error", 500)

    current_app.logger.info("User logged in: id=%s", user.id)
    return ok(_session_payload(user, tokens), "Login successful")


@auth_bp.post("/refresh")
def refresh_route():
    """
    Exchange a refresh token for a new token pair.

    The presented refresh token stops working as soon as this succeeds.
    """
    try:
        data = json_object(request.get_json(silent=True))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    refresh_token = data.get("refresh_token")
    if not refresh_token:
        return fail("Refresh token required", 400)
    if not isinstance(refresh_token, str):
        return fail("Invalid refresh token", 400)

    try:
        user, tokens = get_auth_service().refresh(refresh_token)
    except TokenMismatchError as e:
        current_app.logger.warning("Refresh token reuse detected")
        return error_response(e)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refresh token")
        return fail("Internal server error", 500)

    current_app.logger.info("Token refreshed: user id=%s", user.id)
    return ok(_session_payload(user, tokens), "Token refreshed successfully")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        get_auth_service().logout(g.current_user.id, g.access_token)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return fail("Internal server error", 500)

    current_app.logger.info("User logged out: id=%s", g.current_user.id)
    return ok(message="Logout successful")


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    """
    Drop the stored refresh token so every device must log in again.

    Access tokens already handed out stay valid until they expire.
    """
    try:
        get_auth_service().logout_all(g.current_user.id)
    except Exception:
        current_app.logger.exception("Failed to logout user from all devices")
        return fail("Internal server error", 500)

    current_app.logger.info("User logged out of all devices: id=%s", g.current_user.id)
    return ok(message="Logged out from all devices")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok({"user": g.current_user.to_dict()})
