# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, g

from .extensions import get_auth_service
from .responses import fail
from .services.token_service import TokenError


def require_auth(f):
    """
    Require a valid access token.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated, active User
    - g.access_token: the raw bearer token (needed for logout)
    - g.token_claims: the decoded TokenClaims

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or blacklisted token
    - User deleted or deactivated since the token was issued
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return fail("Access token required", 401)

        token = auth_header.split(" ", 1)[1].strip()

        try:
            user, claims = get_auth_service().authenticate_request(token)
        except TokenError as e:
            return fail(str(e), 401)

        g.current_user = user
        g.access_token = token
        g.token_claims = claims

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of the given roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return fail("Access token required", 401)
            if user.role not in roles:
                return fail("Insufficient permissions", 403)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
