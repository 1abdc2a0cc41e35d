from __future__ import annotations

from ..extensions import db
from ..validation import ValidationError
from livemart.time_utils import to_utc_z


MIN_RATING = 1
MAX_RATING = 5

# A product needs this many reviews before it can rank as top rated or popular
TOP_RATED_MIN_REVIEWS = 5
POPULAR_MIN_REVIEWS = 10
POPULAR_MIN_RATING = 4.0


class Product(db.Model):
    """
    Product master data, shared by every seller that stocks it.

    Per-seller price and stock live on InventoryRecord, not here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category", "is_active"),
        db.Index("ix_products_active_rating", "is_active", "average_rating"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="piece")

    # Suggested retail price in cents; sellers set their own selling price
    base_price_cents = db.Column(db.Integer, nullable=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    images = db.Column(db.JSON, nullable=False, default=list)

    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    review_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    created_by = db.relationship("User")

    @property
    def is_popular(self) -> bool:
        return (self.review_count or 0) >= POPULAR_MIN_REVIEWS and (self.average_rating or 0) >= POPULAR_MIN_RATING

    def update_rating(self, rating) -> None:
        """Fold one new review into the running average."""
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            raise ValidationError("rating must be a number")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"rating must be between {MIN_RATING} and {MAX_RATING}")
        count = self.review_count or 0
        total = (self.average_rating or 0.0) * count
        self.review_count = count + 1
        self.average_rating = (total + rating) / self.review_count

    def toggle_active(self) -> bool:
        self.is_active = not self.is_active
        return self.is_active

    def add_image(self, url: str) -> bool:
        """False if the image is already attached."""
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ValidationError("Invalid image URL format")
        current = list(self.images or [])
        if url in current:
            return False
        # reassign so the JSON column is flagged dirty
        self.images = current + [url]
        return True

    def remove_image(self, url: str) -> bool:
        current = list(self.images or [])
        if url not in current:
            return False
        self.images = [i for i in current if i != url]
        return True

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "base_price_cents": self.base_price_cents,
            "tags": self.tags or [],
            "images": self.images or [],
            "average_rating": round(self.average_rating or 0.0, 2),
            "review_count": self.review_count or 0,
            "is_popular": self.is_popular,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
