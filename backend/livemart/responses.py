# Overview: JSON envelope helpers and the domain-error -> HTTP status mapping used by every route.

"""
Every API response has the same shape:

    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "message": "..."}

error_response() is the single place that decides which status code a
domain exception maps to; routes catch DOMAIN_ERRORS and hand them here.
"""

from flask import jsonify

from .validation import ValidationError, ConflictError, NotFoundError, PermissionDeniedError
from .services.token_service import TokenError
from .services.auth_service import InvalidCredentialsError, AccountDeactivatedError


# First match wins; subclasses must come before their bases.
_STATUS_BY_ERROR = (
    (TokenError, 401),
    (InvalidCredentialsError, 401),
    (AccountDeactivatedError, 403),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 400),
)

DOMAIN_ERRORS = tuple(cls for cls, _ in _STATUS_BY_ERROR)


def ok(data=None, message: str = "OK", status: int = 200):
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def fail(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def error_response(exc: Exception):
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return fail(str(exc), status)
    return fail("Internal server error", 500)
