# backend/livemart/routes/products.py
from flask import Blueprint, request, current_app, g

from ..models import Product
from ..responses import ok, fail, error_response, DOMAIN_ERRORS
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_pagination,
    json_object,
)
from ..decorators import require_auth, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "unit", "base_price_cents"},
    required_on_create={"name", "category", "base_price_cents"},
)


@products_bp.get("")
def list_products_route():
    try:
        limit, offset = parse_pagination(request.args)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    products = catalog_service.list_products(
        category=request.args.get("category") or None,
        search=request.args.get("search") or None,
        limit=limit,
        offset=offset,
    )
    return ok({"products": [p.to_dict() for p in products], "limit": limit, "offset": offset})


@products_bp.post("")
@require_auth
@require_role("RETAILER", "WHOLESALER", "ADMIN")
def create_product_route():
    try:
        payload = dict(json_object(request.get_json(silent=True)))
        tags = payload.pop("tags", None)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(g.current_user, patch, tags)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return fail("Internal server error", 500)

    current_app.logger.info("Product created: id=%s by user %s", product.id, g.current_user.id)
    return ok({"product": product.to_dict()}, "Product created", 201)


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"product": product.to_dict()})


@products_bp.get("/top-rated")
def top_rated_route():
    try:
        limit, _ = parse_pagination(request.args, default_limit=10, max_limit=50)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    products = catalog_service.find_top_rated(limit)
    return ok({"products": [p.to_dict() for p in products]})


@products_bp.get("/by-creator/<int:user_id>")
@require_auth
def by_creator_route(user_id: int):
    """Sellers see their own catalog (inactive included); admins see anyone's."""
    if g.current_user.role != "ADMIN" and g.current_user.id != user_id:
        return fail("Insufficient permissions", 403)
    products = catalog_service.find_by_creator(user_id)
    return ok({"products": [p.to_dict() for p in products]})


@products_bp.post("/<int:product_id>/rating")
@require_auth
@require_role("CUSTOMER")
def rate_product_route(product_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        product = catalog_service.rate_product(product_id, payload.get("rating"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to rate product")
        return fail("Internal server error", 500)
    return ok({"product": product.to_dict()}, "Rating recorded")


@products_bp.post("/<int:product_id>/toggle-active")
@require_auth
@require_role("RETAILER", "WHOLESALER", "ADMIN")
def toggle_product_route(product_id: int):
    try:
        product = catalog_service.toggle_product_active(product_id, g.current_user)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle product")
        return fail("Internal server error", 500)

    current_app.logger.info("Product %s active=%s by user %s", product.id, product.is_active, g.current_user.id)
    return ok({"product": product.to_dict()}, "Product activated" if product.is_active else "Product deactivated")


@products_bp.post("/<int:product_id>/images")
@require_auth
@require_role("RETAILER", "WHOLESALER", "ADMIN")
def add_image_route(product_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        product = catalog_service.add_product_image(product_id, g.current_user, payload.get("url"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add product image")
        return fail("Internal server error", 500)
    return ok({"product": product.to_dict()}, "Image added")


@products_bp.delete("/<int:product_id>/images")
@require_auth
@require_role("RETAILER", "WHOLESALER", "ADMIN")
def remove_image_route(product_id: int):
    """The image to drop is passed as ?url=..."""
    try:
        product = catalog_service.remove_product_image(product_id, g.current_user, request.args.get("url"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove product image")
        return fail("Internal server error", 500)
    return ok({"product": product.to_dict()}, "Image removed")
