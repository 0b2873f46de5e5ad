# backend/stockroom/services/products_service.py
"""
Products Service

Catalogue maintenance: create, partial update, image reference, delete.
Variant stock is owned by inventory_service; everything returned here is
enriched through reporting_service so callers always see current stock and
lifetime sales.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import atomic_unit
from .reporting_service import enrich_products
from stockroom.time_utils import utcnow


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "ref", "category", "price", "wholesale_price",
        "status", "trend", "season", "description",
    },
    required_on_create={"name", "ref", "category", "price"},
)


def _ref_taken(ref: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Product.id).filter(Product.ref == ref)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    return q.first() is not None


def list_products() -> list[dict]:
    products = db.session.query(Product).order_by(Product.id.asc()).all()
    return enrich_products(products)


def get_product(product_id: int) -> dict:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return enrich_products([product])[0]


def create_product(payload: dict) -> dict:
    """
    Create a catalogue entry from a JSON payload. New products carry the
    'new' status label.

    Raises:
        ValidationError: missing/malformed fields
        ConflictError: the reference code is already used
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    patch.setdefault("status", "new")

    try:
        with atomic_unit():
            if _ref_taken(patch["ref"]):
                raise ConflictError("A product with this reference code already exists")
            product = Product(**patch)
            db.session.add(product)
            db.session.flush()
    except IntegrityError:
        raise ConflictError("A product with this reference code already exists")

    current_app.logger.info("Created product %s (%s)", product.id, product.ref)
    return enrich_products([product])[0]


def update_product(product_id: int, payload: dict) -> dict:
    """Partial update: absent or null fields keep their stored value."""
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    try:
        with atomic_unit():
            product = db.session.query(Product).filter_by(id=product_id).first()
            if product is None:
                raise NotFoundError("Product not found")
            if "ref" in patch and _ref_taken(patch["ref"], exclude_id=product_id):
                raise ConflictError("A product with this reference code already exists")

            for k, v in patch.items():
                setattr(product, k, v)
            product.updated_at = utcnow()
            db.session.flush()
    except IntegrityError:
        raise ConflictError("A product with this reference code already exists")

    return enrich_products([product])[0]


def set_product_image(product_id: int, image_url: str | None) -> dict:
    """
    Associate an image reference with a product. Returns the previous
    reference so the caller can dispose of the old file.
    """
    if image_url is not None and not isinstance(image_url, str):
        raise ValidationError("image_url must be a string")
    image_url = (image_url or "").strip() or None
    if image_url and len(image_url) > 512:
        raise ValidationError("image_url exceeds max length 512")

    with atomic_unit():
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError("Product not found")
        previous = product.image_url
        product.image_url = image_url
        product.updated_at = utcnow()

    return {"image_url": image_url, "previous_image_url": previous}


def delete_product(product_id: int) -> str | None:
    """
    Delete a product and its variants. Sale items keep their product_id
    snapshot. Returns the removed image reference, if any.
    """
    with atomic_unit():
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError("Product not found")
        image_url = product.image_url
        db.session.delete(product)

    current_app.logger.info("Deleted product %s", product_id)
    return image_url
