from __future__ import annotations
from datetime import datetime
from livemart.time_utils import parse_iso_datetime

import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")

SELF_REGISTER_ROLES = {"CUSTOMER", "RETAILER", "WHOLESALER"}
PRODUCT_UNITS = {"kg", "gram", "liter", "ml", "piece", "dozen", "packet", "box"}
DISCOUNT_TYPES = {"PERCENTAGE", "FIXED_AMOUNT", "BUY_ONE_GET_ONE", "FREE_SHIPPING"}


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


class NotFoundError(LookupError):
    """404-level missing entity."""


class PermissionDeniedError(Exception):
    """403-level: authenticated, but not allowed to touch this resource."""


def json_object(payload: Any) -> dict:
    """Request body as a dict; a missing body is empty, arrays and scalars are rejected."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # bool is an int subclass; never accept it as a quantity or price
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_positive_quantity(value: Any, key: str = "quantity") -> int:
    qty = _coerce_int(key, value)
    if qty <= 0:
        raise ValidationError(f"{key} must be > 0")
    return qty


def _check_price(key: str, value) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def validate_registration(payload: dict) -> dict:
    """
    Normalize the identity part of a registration request.

    Role-specific fields are validated by the role details variant
    (see models.users.details_for_role).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    email = str(payload.get("email") or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Please provide a valid email address")

    profile = payload.get("profile") or {}
    if not isinstance(profile, dict):
        raise ValidationError("profile must be an object")

    phone = str(profile.get("phone") or payload.get("phone") or "").strip()
    if not PHONE_RE.match(phone):
        raise ValidationError("Please provide a valid phone number")

    name = str(profile.get("name") or payload.get("name") or "").strip()
    if not 2 <= len(name) <= 100:
        raise ValidationError("Name must be between 2 and 100 characters")

    password = payload.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("Password is required")

    role = str(payload.get("role") or payload.get("user_type") or "CUSTOMER").strip().upper()
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError(f"Invalid user type. Must be one of: {', '.join(sorted(SELF_REGISTER_ROLES))}")

    return {
        "email": email,
        "phone": phone,
        "name": name,
        "password": password,
        "role": role,
    }


def enforce_rules_product(patch: dict) -> None:
    _check_price("base_price_cents", patch.get("base_price_cents"))
    if "unit" in patch and patch["unit"] not in PRODUCT_UNITS:
        raise ValidationError(f"unit must be one of: {', '.join(sorted(PRODUCT_UNITS))}")
    if "name" in patch and len(patch["name"]) < 2:
        raise ValidationError("Product name must be at least 2 characters")


def enforce_rules_inventory(patch: dict) -> None:
    _check_price("selling_price_cents", patch.get("selling_price_cents"))
    for key in ("current_stock", "reorder_level"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} cannot be negative")


def enforce_rules_discount(patch: dict) -> None:
    if patch.get("type") not in DISCOUNT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(DISCOUNT_TYPES))}")

    value = patch.get("value")
    if value is None or value < 0:
        raise ValidationError("value must be >= 0")
    if patch["type"] == "PERCENTAGE" and value > 100:
        raise ValidationError("PERCENTAGE value cannot exceed 100")

    for key in ("min_purchase_cents", "max_discount_cents"):
        _check_price(key, patch.get(key))

    valid_from = patch.get("valid_from")
    valid_until = patch.get("valid_until")
    if valid_until is None:
        raise ValidationError("valid_until is required")
    if valid_from is not None and valid_from >= valid_until:
        raise ValidationError("valid_from must be before valid_until")


def validate_address(address: Any, field: str = "delivery_address") -> dict:
    if not isinstance(address, dict):
        raise ValidationError(f"{field} must be an object")
    cleaned = {}
    for key in ("street", "city", "state", "zip_code"):
        value = str(address.get(key) or "").strip()
        if not value:
            raise ValidationError(f"{field}.{key} is required")
        cleaned[key] = value
    cleaned["country"] = str(address.get("country") or "India").strip()
    return cleaned


def parse_pagination(args, default_limit: int = 50, max_limit: int = 200) -> tuple[int, int]:
    """limit/offset from a query string; both must be plain integers."""
    limit = _coerce_int("limit", args.get("limit", default_limit))
    offset = _coerce_int("offset", args.get("offset", 0))
    if not 1 <= limit <= max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    return limit, offset


def parse_bool_arg(value: str | None, key: str) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{key} must be true or false")
