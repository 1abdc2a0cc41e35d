from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..validation import ConflictError, ValidationError
from livemart.time_utils import utcnow, to_utc_z


class InsufficientReservationError(ConflictError):
    """Raised when confirming more stock than is currently reserved."""


class InventoryRecord(db.Model):
    """
    Stock ledger for one product held by one seller (retailer or wholesaler).

    INVARIANTS:
    - 0 <= reserved_stock <= current_stock
    - only confirm() consumes stock; reserve/release move the reserved counter

    The methods below mutate the row in memory only. Callers (inventory_service)
    load the row FOR UPDATE and commit; version_id turns a concurrent write on
    the same record into a StaleDataError that the service retries.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "owner_id", name="uq_inventory_product_owner"),
        db.Index("ix_inventory_owner_availability", "owner_id", "availability"),
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_current_stock_nonneg"),
        db.CheckConstraint("reserved_stock >= 0", name="ck_inventory_reserved_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0, index=True)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    selling_price_cents = db.Column(db.Integer, nullable=False)

    availability = db.Column(db.Boolean, nullable=False, default=True, index=True)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))
    owner = db.relationship("User", backref=db.backref("inventory_records", lazy=True))
    discounts = db.relationship(
        "Discount",
        back_populates="inventory",
        order_by="Discount.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_stock(self) -> int:
        return self.current_stock - self.reserved_stock

    def is_low_stock(self) -> bool:
        return self.current_stock <= self.reorder_level

    @property
    def stock_status(self) -> str:
        if self.current_stock == 0:
            return "OUT_OF_STOCK"
        if self.is_low_stock():
            return "LOW_STOCK"
        return "IN_STOCK"

    def reserve(self, quantity: int) -> bool:
        """Hold stock for an order line. False means not enough unreserved stock."""
        if self.available_stock >= quantity:
            self.reserved_stock += quantity
            return True
        return False

    def release(self, quantity: int) -> int:
        """Return held stock to the available pool; returns the amount released."""
        released = min(quantity, self.reserved_stock)
        self.reserved_stock -= released
        return released

    def confirm(self, quantity: int) -> None:
        """Convert reserved stock into sold stock."""
        if self.reserved_stock < quantity:
            raise InsufficientReservationError("Insufficient reserved stock")
        self.reserved_stock -= quantity
        self.current_stock -= quantity

    def update_stock(self, delta: int, *, now: datetime | None = None) -> None:
        new_stock = self.current_stock + delta
        if new_stock < 0:
            raise ValidationError("Insufficient stock")
        if new_stock < self.reserved_stock:
            raise ValidationError("Stock cannot drop below the reserved quantity")
        self.current_stock = new_stock
        if delta > 0:
            self.last_restocked_at = now or utcnow()

    def active_discounts(self, now: datetime | None = None) -> list["Discount"]:
        now = now or utcnow()
        return [d for d in self.discounts if d.is_valid_at(now)]

    def price_for(self, quantity: int = 1, *, now: datetime | None = None) -> int:
        """
        Final price in cents for ``quantity`` units after discounts.

        Discounts apply in list order against the running total; each one only
        applies if the running total still meets its minimum purchase.
        """
        return self.price_breakdown(quantity, now=now)[0]

    def price_breakdown(self, quantity: int = 1, *, now: datetime | None = None) -> tuple[int, list["Discount"]]:
        """price_for() plus the discounts that actually reduced the price."""
        final = Decimal(self.selling_price_cents * quantity)
        applied = []
        for discount in self.active_discounts(now):
            if final < discount.min_purchase_cents:
                continue
            amount = discount.amount_off(final)
            if amount > 0:
                final -= amount
                applied.append(discount)
        final = final.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return max(0, int(final)), applied

    def find_discount(self, discount_id: str) -> "Discount | None":
        for discount in self.discounts:
            if discount.discount_id == discount_id:
                return discount
        return None

    def add_discount(self, discount: "Discount") -> None:
        self.discounts.append(discount)

    def remove_discount(self, discount_id: str) -> bool:
        discount = self.find_discount(discount_id)
        if discount is None:
            return False
        self.discounts.remove(discount)
        return True

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord id={self.id} product_id={self.product_id} owner_id={self.owner_id} "
            f"current={self.current_stock} reserved={self.reserved_stock}>"
        )

    def to_dict(self, include_discounts: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "owner_id": self.owner_id,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "reorder_level": self.reorder_level,
            "stock_status": self.stock_status,
            "selling_price_cents": self.selling_price_cents,
            "availability": self.availability,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_discounts:
            data["discounts"] = [d.to_dict() for d in self.discounts]
        return data


class Discount(db.Model):
    """
    Time-boxed discount attached to one inventory record.

    value is a whole percent for PERCENTAGE and cents for FIXED_AMOUNT.
    BUY_ONE_GET_ONE and FREE_SHIPPING are stored but do not change price_for().
    """
    __tablename__ = "inventory_discounts"
    __table_args__ = (
        db.UniqueConstraint("discount_id", name="uq_inventory_discounts_discount_id"),
        db.Index("ix_inventory_discounts_code", "code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False, index=True)

    discount_id = db.Column(db.String(64), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    type = db.Column(db.String(32), nullable=False)  # PERCENTAGE, FIXED_AMOUNT, BUY_ONE_GET_ONE, FREE_SHIPPING
    value = db.Column(db.Integer, nullable=False, default=0)
    min_purchase_cents = db.Column(db.Integer, nullable=False, default=0)
    max_discount_cents = db.Column(db.Integer, nullable=True)  # NULL or 0 = uncapped

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory = db.relationship("InventoryRecord", back_populates="discounts")

    def is_valid_at(self, now: datetime) -> bool:
        return self.is_active and self.valid_from <= now < self.valid_until

    def amount_off(self, running_total: Decimal) -> Decimal:
        if self.type == "PERCENTAGE":
            amount = running_total * Decimal(self.value) / Decimal(100)
        elif self.type == "FIXED_AMOUNT":
            amount = Decimal(self.value)
        else:
            return Decimal(0)
        if self.max_discount_cents:
            amount = min(amount, Decimal(self.max_discount_cents))
        return amount

    def to_dict(self) -> dict:
        return {
            "discount_id": self.discount_id,
            "code": self.code,
            "type": self.type,
            "value": self.value,
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
        }
