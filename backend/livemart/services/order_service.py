# Overview: Service-layer operations for orders; checkout, status transitions and their stock effects.

"""
Order Service

CHECKOUT (place_order):
- every line reserves stock on the retailer's InventoryRecord
- all-or-nothing: one failed reservation rolls back the whole checkout
- line prices are snapshots of InventoryRecord.price_for(qty) at checkout

STATUS EFFECTS (update_order_status / cancel_order):
- DELIVERED           -> confirm each line's reservation (stock is consumed)
- CANCELLED/RETURNED  -> release each line's reservation
- the order row and the inventory rows change in one commit

STATE MACHINE (enforced by models.orders):
    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> OUT_FOR_DELIVERY -> DELIVERED
    any non-terminal -> CANCELLED | RETURNED
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderItem, InventoryRecord, User
from ..models.orders import ORDER_STATUSES, ORDER_TYPES, InvalidTransitionError
from ..validation import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    require_positive_quantity,
    validate_address,
)
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import InsufficientStockError
from livemart.time_utils import parse_iso_datetime

__all__ = [
    "InvalidTransitionError",
    "place_order",
    "get_order_for_user",
    "update_order_status",
    "cancel_order",
    "mark_order_paid",
    "list_orders_for_user",
    "retailer_statistics",
]

_DOMAIN_ERRORS = (ValidationError, ConflictError, NotFoundError, PermissionDeniedError)


def _run(unit):
    try:
        return run_with_retry(unit)
    except _DOMAIN_ERRORS:
        db.session.rollback()
        raise


def _parse_lines(raw_items) -> list[tuple[int, int]]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must have at least one item")
    lines: list[tuple[int, int]] = []
    seen: set[int] = set()
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        inventory_id = require_positive_quantity(raw.get("inventory_id"), "inventory_id")
        if inventory_id in seen:
            raise ValidationError(f"Inventory {inventory_id} appears more than once")
        seen.add(inventory_id)
        lines.append((inventory_id, require_positive_quantity(raw.get("quantity"))))
    return lines


def _parse_optional_datetime(payload: dict, key: str) -> datetime | None:
    value = payload.get(key)
    if value in (None, ""):
        return None
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def place_order(customer: User, payload: dict) -> Order:
    if customer.role != "CUSTOMER":
        raise PermissionDeniedError("Only customers can place orders")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    retailer_id = require_positive_quantity(payload.get("retailer_id"), "retailer_id")
    retailer = db.session.get(User, retailer_id)
    if retailer is None or not retailer.is_seller or not retailer.is_active:
        raise NotFoundError("Retailer not found")

    lines = _parse_lines(payload.get("items"))
    address = validate_address(payload.get("delivery_address"))
    order_type = str(payload.get("order_type") or "ONLINE").upper()
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"order_type must be one of: {', '.join(ORDER_TYPES)}")
    scheduled_date = _parse_optional_datetime(payload, "scheduled_date")
    notes = payload.get("notes")

    def _unit():
        # rows are always locked in ascending id order
        records: dict[int, InventoryRecord] = {}
        for inventory_id in sorted(i for i, _ in lines):
            record = lock_for_update(
                db.session.query(InventoryRecord).filter_by(id=inventory_id)
            ).first()
            if record is None:
                raise NotFoundError(f"Inventory record {inventory_id} not found")
            if record.owner_id != retailer.id:
                raise ValidationError(f"Inventory record {inventory_id} is not sold by this retailer")
            if not record.availability or not record.product.is_active:
                raise InsufficientStockError(f"{record.product.name} is not available")
            records[inventory_id] = record

        order = Order(
            customer_id=customer.id,
            retailer_id=retailer.id,
            order_type=order_type,
            delivery_street=address["street"],
            delivery_city=address["city"],
            delivery_state=address["state"],
            delivery_zip_code=address["zip_code"],
            delivery_country=address["country"],
            scheduled_date=scheduled_date,
            notes=notes,
        )

        for line_number, (inventory_id, quantity) in enumerate(lines, start=1):
            record = records[inventory_id]
            if not record.reserve(quantity):
                raise InsufficientStockError(
                    f"Insufficient stock for {record.product.name}: "
                    f"requested {quantity}, available {record.available_stock}"
                )
            subtotal = record.price_for(quantity)
            order.items.append(OrderItem(
                line_number=line_number,
                product_id=record.product_id,
                inventory_id=record.id,
                name=record.product.name,
                quantity=quantity,
                unit_price_cents=record.selling_price_cents,
                subtotal_cents=subtotal,
                discount_cents=record.selling_price_cents * quantity - subtotal,
            ))

        order.total_amount_cents = order.calculate_total()
        order.record_status("PENDING", "Order placed")
        db.session.add(order)
        db.session.commit()
        return order

    return _run(_unit)


def _can_view(order: Order, user: User) -> bool:
    return user.role == "ADMIN" or user.id in (order.customer_id, order.retailer_id)


def _find(order_number: str, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(order_number=order_number)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for_user(order_number: str, user: User) -> Order:
    order = _find(order_number)
    if not _can_view(order, user):
        # indistinguishable from a missing order
        raise NotFoundError("Order not found")
    return order


def _apply_stock_effects(order: Order, new_status: str) -> None:
    if new_status not in ("DELIVERED", "CANCELLED", "RETURNED"):
        return
    for item in sorted(order.items, key=lambda i: i.inventory_id):
        record = lock_for_update(
            db.session.query(InventoryRecord).filter_by(id=item.inventory_id)
        ).first()
        if record is None:
            raise NotFoundError(f"Inventory record {item.inventory_id} not found")
        if new_status == "DELIVERED":
            record.confirm(item.quantity)
        else:
            record.release(item.quantity)


def update_order_status(order_number: str, user: User, new_status: str, note: str | None = None) -> Order:
    """Seller-side status change (or admin). Customers may only cancel."""
    new_status = str(new_status or "").upper()
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    def _unit():
        order = _find(order_number, lock=True)
        if not _can_view(order, user):
            raise NotFoundError("Order not found")
        if user.role != "ADMIN" and user.id != order.retailer_id:
            raise PermissionDeniedError("Only the retailer can update this order")

        if new_status == "CANCELLED":
            order.cancel(note)
        else:
            order.update_status(new_status, note)
            if new_status == "RETURNED" and order.payment_status == "COMPLETED":
                order.set_payment_status("REFUNDED")
        _apply_stock_effects(order, new_status)
        db.session.commit()
        return order

    return _run(_unit)


def cancel_order(order_number: str, user: User, reason: str | None = None) -> Order:
    def _unit():
        order = _find(order_number, lock=True)
        if not _can_view(order, user):
            raise NotFoundError("Order not found")
        order.cancel(reason)
        _apply_stock_effects(order, "CANCELLED")
        db.session.commit()
        return order

    return _run(_unit)


def mark_order_paid(order_number: str, user: User) -> Order:
    def _unit():
        order = _find(order_number, lock=True)
        if not _can_view(order, user):
            raise NotFoundError("Order not found")
        if user.role != "ADMIN" and user.id != order.customer_id:
            raise PermissionDeniedError("Only the customer can pay for this order")
        order.mark_as_paid()
        db.session.commit()
        return order

    return _run(_unit)


def list_orders_for_user(user: User, status: str | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
    q = db.session.query(Order)
    if user.role == "CUSTOMER":
        q = q.filter(Order.customer_id == user.id)
    elif user.is_seller:
        q = q.filter(Order.retailer_id == user.id)
    if status:
        status = status.upper()
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()


def retailer_statistics(retailer_id: int, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    q = db.session.query(
        Order.status,
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount_cents), 0),
    ).filter(Order.retailer_id == retailer_id)
    if start is not None:
        q = q.filter(Order.created_at >= start)
    if end is not None:
        q = q.filter(Order.created_at <= end)
    rows = q.group_by(Order.status).order_by(Order.status.asc()).all()
    return [
        {"status": status, "count": int(count), "total_revenue_cents": int(total)}
        for status, count, total in rows
    ]
