# backend/livemart/routes/inventory.py
"""
Seller inventory routes.

SECURITY: All routes require authentication.
- Listing, stock changes and discounts are limited to the record's owner (or an admin)
- Price quotes and availability lookups are open to any signed-in user

Money is integer cents throughout. Discount windows are half-open:
valid_from <= now < valid_until.
"""
from flask import Blueprint, request, current_app, g

from ..models import InventoryRecord, Discount
from ..responses import ok, fail, error_response, DOMAIN_ERRORS
from ..services import inventory_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_inventory,
    enforce_rules_discount,
    require_positive_quantity,
    json_object,
)
from ..decorators import require_auth, require_role


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

SELLER_ROLES = ("RETAILER", "WHOLESALER")

INVENTORY_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "current_stock", "reorder_level", "selling_price_cents", "availability"},
    required_on_create={"product_id", "selling_price_cents"},
)

INVENTORY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"reorder_level", "selling_price_cents", "availability"},
)

DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={
        "code",
        "type",
        "value",
        "min_purchase_cents",
        "max_discount_cents",
        "valid_from",
        "valid_until",
        "is_active",
    },
    required_on_create={"code", "type", "value", "valid_until"},
)


@inventory_bp.post("")
@require_auth
@require_role(*SELLER_ROLES)
def create_inventory_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=InventoryRecord,
            payload=payload,
            policy=INVENTORY_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_inventory(patch)
        record = inventory_service.create_inventory(g.current_user, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create inventory record")
        return fail("Internal server error", 500)

    current_app.logger.info("Inventory created: id=%s owner=%s", record.id, record.owner_id)
    return ok({"inventory": record.to_dict()}, "Inventory created", 201)


@inventory_bp.get("/mine")
@require_auth
@require_role(*SELLER_ROLES)
def my_inventory_route():
    records = inventory_service.find_by_owner(g.current_user.id)
    return ok({"inventory": [r.to_dict() for r in records]})


@inventory_bp.get("/low-stock")
@require_auth
@require_role(*SELLER_ROLES)
def low_stock_route():
    """Records at or below their reorder level."""
    records = inventory_service.find_low_stock(g.current_user.id)
    return ok({"inventory": [r.to_dict(include_discounts=False) for r in records]})


@inventory_bp.get("/available/<int:product_id>")
@require_auth
def available_for_product_route(product_id: int):
    """Sellers with free stock for a product, cheapest first."""
    records = inventory_service.find_available_by_product(product_id)
    return ok({"inventory": [r.to_dict() for r in records]})


@inventory_bp.get("/<int:inventory_id>")
@require_auth
def get_inventory_route(inventory_id: int):
    try:
        record = inventory_service.get_inventory(inventory_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"inventory": record.to_dict()})


@inventory_bp.patch("/<int:inventory_id>")
@require_auth
def update_inventory_route(inventory_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        inventory_service.get_inventory_for_owner(inventory_id, g.current_user)
        patch = validate_payload(
            model=InventoryRecord,
            payload=payload,
            policy=INVENTORY_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_inventory(patch)
        record = inventory_service.update_inventory(inventory_id, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory record")
        return fail("Internal server error", 500)
    return ok({"inventory": record.to_dict()}, "Inventory updated")


@inventory_bp.post("/<int:inventory_id>/stock")
@require_auth
def update_stock_route(inventory_id: int):
    """
    Restock (positive quantity_delta) or write stock down (negative).

    Stock can never drop below what is reserved for open orders.
    """
    try:
        payload = json_object(request.get_json(silent=True))
        inventory_service.get_inventory_for_owner(inventory_id, g.current_user)
        record = inventory_service.update_stock(inventory_id, payload.get("quantity_delta"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return fail("Internal server error", 500)

    current_app.logger.info(
        "Stock updated: inventory=%s delta=%s current=%s",
        inventory_id, payload.get("quantity_delta"), record.current_stock,
    )
    return ok({"inventory": record.to_dict()}, "Stock updated")


@inventory_bp.get("/<int:inventory_id>/price")
@require_auth
def price_route(inventory_id: int):
    try:
        quantity = require_positive_quantity(request.args.get("quantity", 1))
        record = inventory_service.get_inventory(inventory_id)
        quote = inventory_service.calculate_price(record, quantity)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"price": quote})


@inventory_bp.post("/<int:inventory_id>/discounts")
@require_auth
def add_discount_route(inventory_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        inventory_service.get_inventory_for_owner(inventory_id, g.current_user)
        patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=False)
        if "type" in patch:
            patch["type"] = patch["type"].upper()
        enforce_rules_discount(patch)
        discount = inventory_service.add_discount(inventory_id, patch)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add discount")
        return fail("Internal server error", 500)

    current_app.logger.info("Discount %s added to inventory %s", discount.discount_id, inventory_id)
    return ok({"discount": discount.to_dict()}, "Discount added", 201)


@inventory_bp.delete("/<int:inventory_id>/discounts/<discount_id>")
@require_auth
def remove_discount_route(inventory_id: int, discount_id: str):
    try:
        inventory_service.get_inventory_for_owner(inventory_id, g.current_user)
        inventory_service.remove_discount(inventory_id, discount_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove discount")
        return fail("Internal server error", 500)
    return ok(message="Discount removed")
