from __future__ import annotations

import secrets
import string
import time

from sqlalchemy import event

from ..extensions import db
from ..validation import ConflictError
from livemart.time_utils import utcnow, to_utc_z


ORDER_FLOW = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "OUT_FOR_DELIVERY", "DELIVERED")
ORDER_STATUSES = ORDER_FLOW + ("CANCELLED", "RETURNED")
TERMINAL_STATUSES = {"DELIVERED", "CANCELLED", "RETURNED"}
ORDER_TYPES = ("ONLINE", "OFFLINE")

PAYMENT_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED", "CANCELLED")
PAYMENT_TRANSITIONS = {
    ("PENDING", "PROCESSING"),
    ("PENDING", "COMPLETED"),
    ("PENDING", "FAILED"),
    ("PROCESSING", "COMPLETED"),
    ("PROCESSING", "FAILED"),
    ("FAILED", "PROCESSING"),
    ("COMPLETED", "REFUNDED"),
}

_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class InvalidTransitionError(ConflictError):
    """Raised when an order or payment status change breaks the state machine."""


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Forward-only moves along ORDER_FLOW, plus CANCELLED/RETURNED from any
    non-terminal state. Terminal states never move again.
    """
    if from_status in TERMINAL_STATUSES or from_status == to_status:
        return False
    if to_status in ("CANCELLED", "RETURNED"):
        return True
    if to_status not in ORDER_FLOW:
        return False
    return ORDER_FLOW.index(to_status) > ORDER_FLOW.index(from_status)


class Order(db.Model):
    """
    Customer order placed with one retailer.

    Line items are price snapshots taken at checkout. status_history is
    append-only and is what tracking screens display.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.Index("ix_orders_retailer_status", "retailer_id", "status"),
        db.Index("ix_orders_status_payment", "status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), nullable=False, default=generate_order_number, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    retailer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    order_type = db.Column(db.String(16), nullable=False, default="ONLINE")
    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    delivery_street = db.Column(db.String(255), nullable=False)
    delivery_city = db.Column(db.String(100), nullable=False)
    delivery_state = db.Column(db.String(100), nullable=False)
    delivery_zip_code = db.Column(db.String(20), nullable=False)
    delivery_country = db.Column(db.String(100), nullable=False, default="India")

    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("User", foreign_keys=[customer_id])
    retailer = db.relationship("User", foreign_keys=[retailer_id])
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
        cascade="save-update, merge",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_cancel(self) -> bool:
        return not self.is_terminal

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def calculate_total(self) -> int:
        return sum(item.subtotal_cents for item in self.items)

    def record_status(self, status: str, note: str | None = None) -> "OrderStatusHistory":
        entry = OrderStatusHistory(status=status, note=note, created_at=utcnow())
        self.status_history.append(entry)
        return entry

    def update_status(self, new_status: str, note: str | None = None) -> None:
        if new_status not in ORDER_STATUSES:
            raise InvalidTransitionError(f"Unknown order status '{new_status}'")
        if not can_transition(self.status, new_status):
            raise InvalidTransitionError(f"Cannot move order from {self.status} to {new_status}")
        self.status = new_status
        self.record_status(new_status, note)

    def cancel(self, reason: str | None = None) -> None:
        if self.status == "DELIVERED":
            raise InvalidTransitionError("Cannot cancel delivered order")
        self.update_status("CANCELLED", reason)
        self.payment_status = "CANCELLED"

    def set_payment_status(self, new_status: str) -> None:
        if (self.payment_status, new_status) not in PAYMENT_TRANSITIONS:
            raise InvalidTransitionError(
                f"Cannot move payment from {self.payment_status} to {new_status}"
            )
        self.payment_status = new_status

    def mark_as_paid(self) -> None:
        if self.status in ("CANCELLED", "RETURNED"):
            raise InvalidTransitionError(f"Cannot take payment for a {self.status} order")
        self.set_payment_status("COMPLETED")

    def delivery_address(self) -> dict:
        return {
            "street": self.delivery_street,
            "city": self.delivery_city,
            "state": self.delivery_state,
            "zip_code": self.delivery_zip_code,
            "country": self.delivery_country,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "retailer_id": self.retailer_id,
            "retailer": self.retailer.to_public_dict() if self.retailer else None,
            "order_type": self.order_type,
            "status": self.status,
            "payment_status": self.payment_status,
            "total_amount_cents": self.total_amount_cents,
            "item_count": self.item_count,
            "can_cancel": self.can_cancel,
            "delivery_address": self.delivery_address(),
            "scheduled_date": to_utc_z(self.scheduled_date),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
            "status_history": [entry.to_dict() for entry in self.status_history],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """Line snapshot: name and prices are copied at checkout and never repriced."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_items_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False)

    name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")
    inventory = db.relationship("InventoryRecord")

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "inventory_id": self.inventory_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
        }


class OrderStatusHistory(db.Model):
    """Append-only audit trail of order status changes."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False)
    note = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="status_history")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": to_utc_z(self.created_at),
            "note": self.note,
        }


@event.listens_for(OrderStatusHistory, "before_update")
def _history_is_immutable(mapper, connection, target):
    raise InvalidTransitionError("Order status history entries cannot be modified")


@event.listens_for(OrderStatusHistory, "before_delete")
def _history_is_undeletable(mapper, connection, target):
    raise InvalidTransitionError("Order status history entries cannot be removed")
