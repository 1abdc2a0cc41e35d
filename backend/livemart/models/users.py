from __future__ import annotations

import copy
from dataclasses import dataclass, field, asdict
from typing import ClassVar, Union

from ..extensions import db
from ..validation import ValidationError
from livemart.time_utils import to_utc_z


USER_ROLES = ("CUSTOMER", "RETAILER", "WHOLESALER", "ADMIN")
SELLER_ROLES = ("RETAILER", "WHOLESALER")

DEFAULT_PREFERENCES = {
    "categories": [],
    "delivery_radius_km": 10,
    "language": "en",
    "currency": "INR",
    "notifications": {
        "email_enabled": True,
        "sms_enabled": True,
        "push_enabled": True,
        "order_updates": True,
        "promotions": False,
    },
}


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class CustomerDetails:
    role: ClassVar[str] = "CUSTOMER"
    loyalty_points: int = 0
    wishlist: list[int] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> "CustomerDetails":
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> "CustomerDetails":
        return cls(
            loyalty_points=int(data.get("loyalty_points", 0)),
            wishlist=[int(p) for p in data.get("wishlist") or []],
        )

    def validate(self) -> None:
        if self.loyalty_points < 0:
            raise ValidationError("loyalty_points cannot be negative")

    def add_to_wishlist(self, product_id: int) -> bool:
        """False if the product was already on the list."""
        if product_id in self.wishlist:
            return False
        self.wishlist.append(product_id)
        return True

    def remove_from_wishlist(self, product_id: int) -> bool:
        if product_id not in self.wishlist:
            return False
        self.wishlist = [p for p in self.wishlist if p != product_id]
        return True

    def add_loyalty_points(self, points: int) -> None:
        self.loyalty_points += points

    def redeem_loyalty_points(self, points: int) -> bool:
        """Spend points if the balance covers them; the balance never goes negative."""
        if self.loyalty_points < points:
            return False
        self.loyalty_points -= points
        return True

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RetailerDetails:
    role: ClassVar[str] = "RETAILER"
    business_name: str | None = None
    gstin: str | None = None
    store_name: str | None = None
    store_verified: bool = False

    @classmethod
    def from_payload(cls, payload: dict) -> "RetailerDetails":
        business_name = _clean(payload.get("business_name"))
        return cls(
            business_name=business_name,
            gstin=_clean(payload.get("gstin")),
            store_name=business_name,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "RetailerDetails":
        return cls(**{k: data.get(k) for k in ("business_name", "gstin", "store_name")},
                   store_verified=bool(data.get("store_verified", False)))

    def validate(self) -> None:
        if not self.business_name:
            raise ValidationError("Business name is required for retailers")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BankDetails:
    account_number: str
    ifsc_code: str
    bank_name: str
    account_holder_name: str


@dataclass
class WholesalerDetails:
    role: ClassVar[str] = "WHOLESALER"
    business_name: str | None = None
    gstin: str | None = None
    bank_details: BankDetails | None = None
    minimum_order_value: int = 1000

    @classmethod
    def from_payload(cls, payload: dict) -> "WholesalerDetails":
        raw_bank = payload.get("bank_details")
        bank = None
        if isinstance(raw_bank, dict):
            values = {k: _clean(raw_bank.get(k)) for k in BankDetails.__dataclass_fields__}
            if any(v is None for v in values.values()):
                missing = ", ".join(k for k, v in values.items() if v is None)
                raise ValidationError(f"Bank details are incomplete: {missing}")
            bank = BankDetails(**values)
        return cls(
            business_name=_clean(payload.get("business_name")),
            gstin=_clean(payload.get("gstin")),
            bank_details=bank,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "WholesalerDetails":
        bank = data.get("bank_details")
        return cls(
            business_name=data.get("business_name"),
            gstin=data.get("gstin"),
            bank_details=BankDetails(**bank) if bank else None,
            minimum_order_value=int(data.get("minimum_order_value", 1000)),
        )

    def validate(self) -> None:
        if not self.business_name or not self.gstin:
            raise ValidationError("Business name and GSTIN are required for wholesalers")
        if self.bank_details is None:
            raise ValidationError("Bank details are required for wholesalers")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AdminDetails:
    role: ClassVar[str] = "ADMIN"

    @classmethod
    def from_payload(cls, payload: dict) -> "AdminDetails":
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> "AdminDetails":
        return cls()

    def validate(self) -> None:
        return None

    def to_dict(self) -> dict:
        return {}


RoleDetails = Union[CustomerDetails, RetailerDetails, WholesalerDetails, AdminDetails]

ROLE_DETAILS: dict[str, type] = {
    cls.role: cls for cls in (CustomerDetails, RetailerDetails, WholesalerDetails, AdminDetails)
}


def details_for_role(role: str, payload: dict) -> RoleDetails:
    """Build and validate the role-specific part of a registration payload."""
    try:
        cls = ROLE_DETAILS[role]
    except KeyError:
        raise ValidationError("Invalid user type")
    details = cls.from_payload(payload)
    details.validate()
    return details


class User(db.Model):
    """
    Platform account. One row per person; ``role`` is the tag selecting which
    RoleDetails variant lives in ``details_json``.

    Accounts are never hard-deleted: closing an account flips is_active.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.UniqueConstraint("phone", name="uq_users_phone"),
        db.Index("ix_users_active_verified", "is_active", "is_verified"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(20), nullable=False, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    avatar_url = db.Column(db.String(512), nullable=True)
    address = db.Column(db.JSON, nullable=True)
    preferences = db.Column(db.JSON, nullable=False, default=lambda: copy.deepcopy(DEFAULT_PREFERENCES))
    details_json = db.Column("details", db.JSON, nullable=False, default=dict)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_active_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def details(self) -> RoleDetails:
        return ROLE_DETAILS[self.role].from_dict(self.details_json or {})

    @details.setter
    def details(self, value: RoleDetails) -> None:
        if value.role != self.role:
            raise ValidationError(f"{value.role} details cannot be attached to a {self.role} account")
        # reassign so the JSON column is flagged dirty
        self.details_json = value.to_dict()

    @property
    def is_seller(self) -> bool:
        return self.role in SELLER_ROLES

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "profile": {
                "name": self.name,
                "avatar_url": self.avatar_url,
                "address": self.address,
                "preferences": self.preferences,
            },
            "details": self.details.to_dict(),
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_public_dict(self) -> dict:
        """Subset shown to other users (e.g. the retailer on an order)."""
        data = {"id": self.id, "role": self.role, "name": self.name}
        if self.role == "RETAILER":
            data["store_name"] = self.details.store_name
        elif self.role == "WHOLESALER":
            data["business_name"] = self.details.business_name
        return data
