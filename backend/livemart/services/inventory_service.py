# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Invariants (authoritative)

Stock model:
- One InventoryRecord per (product, seller). current_stock is on-hand units,
  reserved_stock is units held for orders that are not yet delivered.
- 0 <= reserved_stock <= current_stock at every commit.
- reserve() only succeeds when current_stock - reserved_stock covers the
  quantity; it returns False instead of raising.
- release() never drives reserved_stock below zero.
- confirm() is the only operation that consumes stock; it decrements both
  counters by the same quantity in one commit.

Concurrency:
- Every mutation is load FOR UPDATE -> mutate -> commit, wrapped in
  run_with_retry. InventoryRecord.version_id makes a concurrent commit on the
  same row fail with StaleDataError; the retry reloads and re-checks.

Pricing:
- price_for(qty) = selling_price * qty minus each currently valid discount
  (valid_from <= now < valid_until, is_active) whose min purchase is met by
  the running total, in list order, capped per discount; floored at 0.
"""

from __future__ import annotations

import uuid

from ..extensions import db
from ..models import InventoryRecord, Discount, Product, User
from ..models.inventory import InsufficientReservationError
from ..validation import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    require_positive_quantity,
)
from .concurrency import lock_for_update, run_with_retry
from livemart.time_utils import utcnow

__all__ = [
    "InsufficientReservationError",
    "InsufficientStockError",
    "create_inventory",
    "get_inventory",
    "get_inventory_for_owner",
    "reserve_stock",
    "release_reserved_stock",
    "confirm_reserved_stock",
    "update_stock",
    "update_inventory",
    "calculate_price",
    "add_discount",
    "remove_discount",
    "find_low_stock",
    "find_available_by_product",
    "find_by_owner",
]


class InsufficientStockError(ConflictError):
    """Raised when an order line cannot be reserved."""


def create_inventory(owner: User, patch: dict) -> InventoryRecord:
    """List a product for sale by a retailer or wholesaler."""
    if not owner.is_seller:
        raise PermissionDeniedError("Only retailers and wholesalers can hold inventory")

    product = db.session.get(Product, patch["product_id"])
    if product is None:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ValidationError("Product is inactive")

    existing = db.session.query(InventoryRecord.id).filter_by(
        product_id=product.id, owner_id=owner.id
    ).first()
    if existing:
        raise ConflictError("Inventory for this product already exists")

    record = InventoryRecord(owner_id=owner.id, **patch)
    if record.current_stock:
        record.last_restocked_at = utcnow()
    db.session.add(record)
    db.session.commit()
    return record


def get_inventory(inventory_id: int) -> InventoryRecord:
    record = db.session.get(InventoryRecord, inventory_id)
    if record is None:
        raise NotFoundError("Inventory record not found")
    return record


def get_inventory_for_owner(inventory_id: int, user: User) -> InventoryRecord:
    """Load a record the user may modify (its owner, or an admin)."""
    record = get_inventory(inventory_id)
    if user.role != "ADMIN" and record.owner_id != user.id:
        raise PermissionDeniedError("You do not own this inventory record")
    return record


def _locked(inventory_id: int) -> InventoryRecord:
    record = lock_for_update(db.session.query(InventoryRecord).filter_by(id=inventory_id)).first()
    if record is None:
        raise NotFoundError("Inventory record not found")
    return record


def _mutate(inventory_id: int, op):
    def _unit():
        record = _locked(inventory_id)
        result = op(record)
        db.session.commit()
        return result
    try:
        return run_with_retry(_unit)
    except (ValidationError, ConflictError, NotFoundError):
        db.session.rollback()
        raise


def reserve_stock(inventory_id: int, quantity) -> bool:
    qty = require_positive_quantity(quantity)
    return _mutate(inventory_id, lambda record: record.reserve(qty))


def release_reserved_stock(inventory_id: int, quantity) -> int:
    qty = require_positive_quantity(quantity)
    return _mutate(inventory_id, lambda record: record.release(qty))


def confirm_reserved_stock(inventory_id: int, quantity) -> None:
    qty = require_positive_quantity(quantity)
    _mutate(inventory_id, lambda record: record.confirm(qty))


def update_stock(inventory_id: int, delta) -> InventoryRecord:
    """Restock (delta > 0) or write stock down (delta < 0)."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer")

    def _op(record):
        record.update_stock(delta)
        return record
    return _mutate(inventory_id, _op)


def update_inventory(inventory_id: int, patch: dict) -> InventoryRecord:
    """Seller-editable settings: selling price, reorder level, availability."""
    def _op(record):
        for key in ("selling_price_cents", "reorder_level", "availability"):
            if key in patch:
                setattr(record, key, patch[key])
        return record
    return _mutate(inventory_id, _op)


def calculate_price(record: InventoryRecord, quantity) -> dict:
    qty = require_positive_quantity(quantity)
    gross = record.selling_price_cents * qty
    final, applied = record.price_breakdown(qty, now=utcnow())
    return {
        "inventory_id": record.id,
        "quantity": qty,
        "unit_price_cents": record.selling_price_cents,
        "gross_cents": gross,
        "discount_cents": gross - final,
        "final_cents": final,
        "applied_discounts": [d.code for d in applied],
    }


def add_discount(inventory_id: int, patch: dict) -> Discount:
    discount = Discount(
        discount_id=f"DSC-{uuid.uuid4().hex[:12].upper()}",
        code=patch["code"].upper(),
        type=patch["type"],
        value=patch["value"],
        min_purchase_cents=patch.get("min_purchase_cents") or 0,
        max_discount_cents=patch.get("max_discount_cents"),
        valid_from=patch.get("valid_from") or utcnow(),
        valid_until=patch["valid_until"],
        is_active=patch.get("is_active", True),
    )

    def _op(record):
        record.add_discount(discount)
        # touch the parent row so discount edits bump version_id
        record.updated_at = utcnow()
        return discount
    return _mutate(inventory_id, _op)


def remove_discount(inventory_id: int, discount_id: str) -> None:
    def _op(record):
        if not record.remove_discount(discount_id):
            raise NotFoundError("Discount not found")
        record.updated_at = utcnow()
    _mutate(inventory_id, _op)


def find_low_stock(owner_id: int) -> list[InventoryRecord]:
    return (
        db.session.query(InventoryRecord)
        .filter(
            InventoryRecord.owner_id == owner_id,
            InventoryRecord.current_stock <= InventoryRecord.reorder_level,
        )
        .order_by(InventoryRecord.current_stock.asc(), InventoryRecord.id.asc())
        .all()
    )


def find_available_by_product(product_id: int) -> list[InventoryRecord]:
    return (
        db.session.query(InventoryRecord)
        .filter(
            InventoryRecord.product_id == product_id,
            InventoryRecord.availability.is_(True),
            InventoryRecord.current_stock > InventoryRecord.reserved_stock,
        )
        .order_by(InventoryRecord.selling_price_cents.asc(), InventoryRecord.id.asc())
        .all()
    )


def find_by_owner(owner_id: int) -> list[InventoryRecord]:
    return (
        db.session.query(InventoryRecord)
        .filter_by(owner_id=owner_id)
        .order_by(InventoryRecord.current_stock.asc(), InventoryRecord.id.asc())
        .all()
    )
