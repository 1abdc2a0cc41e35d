from __future__ import annotations

import copy

from ..extensions import db
from ..models import User, Product
from ..models.users import USER_ROLES, DEFAULT_PREFERENCES, CustomerDetails
from ..validation import ValidationError, ConflictError, NotFoundError, validate_address
from .concurrency import lock_for_update


PROFILE_FIELDS = {"name", "avatar_url", "address", "preferences"}


def list_users(role: str | None = None, active: bool | None = None, limit: int = 100, offset: int = 0) -> list[User]:
    q = db.session.query(User)
    if role:
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
        q = q.filter_by(role=role)
    if active is not None:
        q = q.filter_by(is_active=active)
    return q.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()


def _merge_preferences(current: dict | None, patch: dict) -> dict:
    merged = copy.deepcopy(DEFAULT_PREFERENCES)
    merged.update(current or {})
    for key, value in patch.items():
        if key not in DEFAULT_PREFERENCES:
            raise ValidationError(f"Unknown preference: {key}")
        if key == "notifications":
            if not isinstance(value, dict):
                raise ValidationError("preferences.notifications must be an object")
            notifications = dict(merged.get("notifications") or {})
            notifications.update({k: bool(v) for k, v in value.items() if k in DEFAULT_PREFERENCES["notifications"]})
            merged["notifications"] = notifications
        elif key == "delivery_radius_km":
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 50:
                raise ValidationError("delivery_radius_km must be between 1 and 50")
            merged[key] = value
        elif key == "language":
            if value not in ("en", "hi"):
                raise ValidationError("language must be 'en' or 'hi'")
            merged[key] = value
        else:
            merged[key] = value
    return merged


def update_profile(user: User, payload: dict) -> User:
    """Apply a partial profile update. Identity fields (email, phone, role) are not editable here."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if "name" in payload:
        name = str(payload["name"] or "").strip()
        if not 2 <= len(name) <= 100:
            raise ValidationError("Name must be between 2 and 100 characters")
        user.name = name

    if "avatar_url" in payload:
        avatar = payload["avatar_url"]
        if avatar is not None and not str(avatar).startswith(("http://", "https://")):
            raise ValidationError("avatar_url must be an http(s) URL")
        user.avatar_url = avatar

    if "address" in payload:
        user.address = validate_address(payload["address"], "address") if payload["address"] is not None else None

    if "preferences" in payload:
        if not isinstance(payload["preferences"], dict):
            raise ValidationError("preferences must be an object")
        user.preferences = _merge_preferences(user.preferences, payload["preferences"])

    db.session.commit()
    return user


def _positive_int(key: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{key} must be a positive integer")
    return value


def _locked_customer(user_id: int) -> User:
    user = lock_for_update(db.session.query(User).filter(User.id == user_id)).first()
    if user is None:
        raise NotFoundError("User not found")
    if user.role != "CUSTOMER":
        db.session.rollback()
        raise ValidationError("Only customer accounts have a wishlist and loyalty points")
    return user


def get_wishlist(user: User) -> list[Product]:
    """Wishlisted products in the order they were added."""
    ids = user.details.wishlist if user.role == "CUSTOMER" else []
    if not ids:
        return []
    by_id = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}
    return [by_id[i] for i in ids if i in by_id]


def add_to_wishlist(user_id: int, product_id) -> CustomerDetails:
    product_id = _positive_int("product_id", product_id)
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")

    user = _locked_customer(user_id)
    details = user.details
    details.add_to_wishlist(product_id)
    user.details = details
    db.session.commit()
    return details


def remove_from_wishlist(user_id: int, product_id: int) -> CustomerDetails:
    user = _locked_customer(user_id)
    details = user.details
    if not details.remove_from_wishlist(product_id):
        db.session.rollback()
        raise NotFoundError("Product is not on the wishlist")
    user.details = details
    db.session.commit()
    return details


def add_loyalty_points(user_id: int, points) -> CustomerDetails:
    points = _positive_int("points", points)
    user = _locked_customer(user_id)
    details = user.details
    details.add_loyalty_points(points)
    user.details = details
    db.session.commit()
    return details


def redeem_loyalty_points(user_id: int, points) -> CustomerDetails:
    """
    Spend loyalty points.

    Raises:
        ConflictError: balance is lower than the points requested
    """
    points = _positive_int("points", points)
    user = _locked_customer(user_id)
    details = user.details
    if not details.redeem_loyalty_points(points):
        db.session.rollback()
        raise ConflictError(f"Insufficient loyalty points: balance {details.loyalty_points}, requested {points}")
    user.details = details
    db.session.commit()
    return details


def find_by_loyalty_points(min_points: int = 0) -> list[User]:
    """Active customers holding at least min_points, highest balance first."""
    customers = db.session.query(User).filter_by(role="CUSTOMER", is_active=True).all()
    matched = [u for u in customers if u.details.loyalty_points >= min_points]
    return sorted(matched, key=lambda u: (-u.details.loyalty_points, u.id))
