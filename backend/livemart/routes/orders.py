# Overview: Flask API routes for orders; checkout, tracking, status changes and payment.

from flask import Blueprint, request, current_app, g

from ..responses import ok, fail, error_response, DOMAIN_ERRORS
from ..services import order_service
from ..validation import ValidationError, json_object, parse_pagination
from ..decorators import require_auth, require_role
from livemart.time_utils import parse_iso_datetime


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _date_arg(key: str):
    try:
        return parse_iso_datetime(request.args.get(key))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


@orders_bp.post("")
@require_auth
@require_role("CUSTOMER")
def place_order_route():
    """
    Checkout: reserves stock for every line or for none of them.

    Body: {"retailer_id", "items": [{"inventory_id", "quantity"}], "delivery_address", ...}
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.place_order(g.current_user, payload)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to place order")
        return fail("Internal server error", 500)

    current_app.logger.info(
        "Order placed: %s customer=%s retailer=%s total_cents=%s",
        order.order_number, order.customer_id, order.retailer_id, order.total_amount_cents,
    )
    return ok({"order": order.to_dict()}, "Order placed successfully", 201)


@orders_bp.get("/mine")
@require_auth
def my_orders_route():
    """Customers see orders they placed; sellers see orders placed with them."""
    try:
        limit, offset = parse_pagination(request.args)
        orders = order_service.list_orders_for_user(
            g.current_user,
            status=request.args.get("status") or None,
            limit=limit,
            offset=offset,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"orders": [o.to_dict() for o in orders], "limit": limit, "offset": offset})


@orders_bp.get("/stats")
@require_auth
@require_role("RETAILER", "WHOLESALER")
def order_stats_route():
    try:
        stats = order_service.retailer_statistics(
            g.current_user.id,
            start=_date_arg("start"),
            end=_date_arg("end"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"stats": stats})


@orders_bp.get("/<order_number>")
@require_auth
def get_order_route(order_number: str):
    try:
        order = order_service.get_order_for_user(order_number, g.current_user)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return ok({"order": order.to_dict()})


@orders_bp.post("/<order_number>/status")
@require_auth
@require_role("RETAILER", "WHOLESALER", "ADMIN")
def update_status_route(order_number: str):
    """
    Move an order along its lifecycle.

    DELIVERED consumes the reserved stock; CANCELLED and RETURNED give it back.
    """
    try:
        payload = json_object(request.get_json(silent=True))
        order = order_service.update_order_status(
            order_number,
            g.current_user,
            payload.get("status"),
            payload.get("note"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return fail("Internal server error", 500)

    current_app.logger.info("Order %s moved to %s by user %s", order_number, order.status, g.current_user.id)
    return ok({"order": order.to_dict()}, "Order status updated")


@orders_bp.post("/<order_number>/cancel")
@require_auth
def cancel_order_route(order_number: str):
    try:
        payload = json_object(request.get_json(silent=True))
        order = order_service.cancel_order(order_number, g.current_user, payload.get("reason"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return fail("Internal server error", 500)

    current_app.logger.info("Order %s cancelled by user %s", order_number, g.current_user.id)
    return ok({"order": order.to_dict()}, "Order cancelled")


@orders_bp.post("/<order_number>/pay")
@require_auth
def pay_order_route(order_number: str):
    try:
        order = order_service.mark_order_paid(order_number, g.current_user)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return fail("Internal server error", 500)
    return ok({"order": order.to_dict()}, "Payment recorded")
