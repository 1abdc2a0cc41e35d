from __future__ import annotations

from ..extensions import db
from ..models import Product, User
from ..models.catalog import TOP_RATED_MIN_REVIEWS
from ..validation import NotFoundError, PermissionDeniedError, ValidationError
from .concurrency import lock_for_update


def create_product(creator: User, patch: dict, tags: list | None = None) -> Product:
    if not (creator.is_seller or creator.role == "ADMIN"):
        raise PermissionDeniedError("Only retailers, wholesalers and admins can create products")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        raise ValidationError("tags must be a list of strings")

    product = Product(
        created_by_user_id=creator.id,
        tags=sorted({t.strip().lower() for t in tags or [] if t.strip()}),
        **patch,
    )
    db.session.add(product)
    db.session.commit()
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_products(
    *,
    category: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[Product]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if category:
        q = q.filter(Product.category == category)
    if search:
        q = q.filter(Product.name.ilike(f"%{search}%"))
    return q.order_by(Product.name.asc(), Product.id.asc()).offset(offset).limit(limit).all()


def _locked_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _ensure_can_manage(product: Product, user: User) -> None:
    if user.role != "ADMIN" and product.created_by_user_id != user.id:
        db.session.rollback()
        raise PermissionDeniedError("Only the product's creator or an admin can change it")


def rate_product(product_id: int, rating) -> Product:
    product = _locked_product(product_id)
    if not product.is_active:
        db.session.rollback()
        raise ValidationError("Inactive products cannot be rated")
    try:
        product.update_rating(rating)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    return product


def toggle_product_active(product_id: int, user: User) -> Product:
    product = _locked_product(product_id)
    _ensure_can_manage(product, user)
    product.toggle_active()
    db.session.commit()
    return product


def add_product_image(product_id: int, user: User, url) -> Product:
    product = _locked_product(product_id)
    _ensure_can_manage(product, user)
    try:
        product.add_image(url)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    return product


def remove_product_image(product_id: int, user: User, url) -> Product:
    product = _locked_product(product_id)
    _ensure_can_manage(product, user)
    if not product.remove_image(url):
        db.session.rollback()
        raise NotFoundError("Image not found on product")
    db.session.commit()
    return product


def find_top_rated(limit: int = 10) -> list[Product]:
    """Active products with enough reviews, best average first."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.review_count >= TOP_RATED_MIN_REVIEWS)
        .order_by(Product.average_rating.desc(), Product.review_count.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def find_by_creator(creator_id: int) -> list[Product]:
    """Everything a user created, inactive products included, newest first."""
    return (
        db.session.query(Product)
        .filter(Product.created_by_user_id == creator_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )
