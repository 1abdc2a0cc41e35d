# Overview: Flask API routes for user profiles and admin account management.

from flask import Blueprint, request, current_app, g

from ..extensions import get_auth_service
from ..responses import ok, fail, error_response, DOMAIN_ERRORS
from ..services import user_service
from ..validation import json_object, parse_pagination, parse_bool_arg
from ..decorators import require_auth, require_role


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/me")
@require_auth
def get_profile_route():
    return ok({"user": g.current_user.to_dict()})


@users_bp.patch("/me")
@require_auth
def update_profile_route():
    """Partial update of name, avatar_url, address and preferences."""
    payload = request.get_json(silent=True)
    try:
        user = user_service.update_profile(g.current_user, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return fail("Internal server error", 500)
    return ok({"user": user.to_dict()}, "Profile updated successfully")


@users_bp.post("/me/deactivate")
@require_auth
def deactivate_self_route():
    auth = get_auth_service()
    try:
        auth.deactivate(g.current_user.id)
        auth.tokens.revoke(g.access_token)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate account")
        return fail("Internal server error", 500)

    current_app.logger.info("Account deactivated by owner: id=%s", g.current_user.id)
    return ok(message="Account deactivated")


@users_bp.get("")
@require_auth
@require_role("ADMIN")
def list_users_route():
    try:
        limit, offset = parse_pagination(request.args, default_limit=100)
        active = parse_bool_arg(request.args.get("active"), "active")
        role = (request.args.get("role") or "").strip().upper() or None
        users = user_service.list_users(role=role, active=active, limit=limit, offset=offset)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"users": [u.to_dict() for u in users], "limit": limit, "offset": offset})


@users_bp.get("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def get_user_route(user_id: int):
    try:
        user = get_auth_service().get_user(user_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"user": user.to_dict()})


@users_bp.post("/<int:user_id>/activate")
@require_auth
@require_role("ADMIN")
def activate_user_route(user_id: int):
    try:
        user = get_auth_service().reactivate(user_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to activate user")
        return fail("Internal server error", 500)

    current_app.logger.info("User %s reactivated by admin %s", user_id, g.current_user.id)
    return ok({"user": user.to_dict()}, "User activated")


@users_bp.post("/<int:user_id>/deactivate")
@require_auth
@require_role("ADMIN")
def deactivate_user_route(user_id: int):
    if user_id == g.current_user.id:
        return fail("Use /api/users/me/deactivate to close your own account", 400)
    try:
        user = get_auth_service().deactivate(user_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return fail("Internal server error", 500)

    current_app.logger.info("User %s deactivated by admin %s", user_id, g.current_user.id)
    return ok({"user": user.to_dict()}, "User deactivated")


@users_bp.get("/me/wishlist")
@require_auth
@require_role("CUSTOMER")
def get_wishlist_route():
    products = user_service.get_wishlist(g.current_user)
    return ok({"products": [p.to_dict() for p in products]})


@users_bp.post("/me/wishlist")
@require_auth
@require_role("CUSTOMER")
def add_to_wishlist_route():
    try:
        payload = json_object(request.get_json(silent=True))
        details = user_service.add_to_wishlist(g.current_user.id, payload.get("product_id"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update wishlist")
        return fail("Internal server error", 500)
    return ok({"wishlist": details.wishlist}, "Added to wishlist")


@users_bp.delete("/me/wishlist/<int:product_id>")
@require_auth
@require_role("CUSTOMER")
def remove_from_wishlist_route(product_id: int):
    try:
        details = user_service.remove_from_wishlist(g.current_user.id, product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update wishlist")
        return fail("Internal server error", 500)
    return ok({"wishlist": details.wishlist}, "Removed from wishlist")


@users_bp.post("/me/loyalty-points/redeem")
@require_auth
@require_role("CUSTOMER")
def redeem_points_route():
    try:
        payload = json_object(request.get_json(silent=True))
        details = user_service.redeem_loyalty_points(g.current_user.id, payload.get("points"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to redeem loyalty points")
        return fail("Internal server error", 500)

    current_app.logger.info("Loyalty points redeemed: user=%s balance=%s", g.current_user.id, details.loyalty_points)
    return ok({"loyalty_points": details.loyalty_points}, "Points redeemed")


@users_bp.get("/loyalty")
@require_auth
@require_role("ADMIN")
def loyalty_leaders_route():
    """Active customers with at least ?min_points=, highest balance first."""
    try:
        min_points = int(request.args.get("min_points", 0))
    except ValueError:
        return fail("min_points must be an integer", 400)
    users = user_service.find_by_loyalty_points(min_points)
    return ok({"users": [u.to_dict() for u in users]})


@users_bp.post("/<int:user_id>/loyalty-points")
@require_auth
@require_role("ADMIN")
def award_points_route(user_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        details = user_service.add_loyalty_points(user_id, payload.get("points"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to award loyalty points")
        return fail("Internal server error", 500)

    current_app.logger.info("Loyalty points awarded: user=%s by admin %s", user_id, g.current_user.id)
    return ok({"loyalty_points": details.loyalty_points}, "Points awarded")
