# Overview: Service-layer operations for inventory; owns the per-variant stock counters.

"""
Variant Ledger invariants (authoritative)

- Stock lives on product_variants, one row per (product, color, size, channel).
- A stock counter never goes below zero: decrements clamp at 0.
- Adjusting a variant that does not exist is a silent no-op (sale items may
  outlive the variant they were sold from).
- Variant lists are replaced wholesale; there is no partial merge.
- Sale-driven stock changes go through adjust_stock only, and only from
  inside an atomic unit owned by the sales service.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductVariant
from ..validation import CHANNELS, NotFoundError, ValidationError, coerce_int
from .concurrency import atomic_unit, lock_for_update


def _variant_query(product_id: int, color: str, size: str, channel: str):
    return db.session.query(ProductVariant).filter_by(
        product_id=product_id,
        color=color,
        size=size,
        channel=channel,
    )


def adjust_stock(
    product_id: int,
    color: str | None,
    size: str | None,
    channel: str | None,
    delta: int,
) -> ProductVariant | None:
    """
    Add `delta` to the matching variant's stock, clamped at zero.

    Returns the variant, or None when no row matches. Does not commit.
    """
    variant = lock_for_update(_variant_query(product_id, color, size, channel)).first()
    if variant is None:
        return None

    variant.stock = max(0, (variant.stock or 0) + delta)
    db.session.flush()
    return variant


def _clean_variants(variants: list) -> list[dict]:
    cleaned = []
    seen = set()
    for v in variants:
        if not isinstance(v, dict):
            raise ValidationError("each variant must be an object")
        color = (str(v.get("color") or "")).strip()
        size = (str(v.get("size") or "")).strip()
        channel = (str(v.get("channel") or "")).strip()
        if not color or not size or not channel:
            # incomplete rows are dropped, not rejected
            continue
        if channel not in CHANNELS:
            raise ValidationError(f"channel must be one of: {', '.join(CHANNELS)}")

        raw_stock = v.get("stock")
        stock = 0 if raw_stock in (None, "") else coerce_int(raw_stock, "stock")
        if stock < 0:
            raise ValidationError("stock must be >= 0")

        key = (color, size, channel)
        if key in seen:
            raise ValidationError(f"duplicate variant {color}/{size}/{channel}")
        seen.add(key)
        cleaned.append({"color": color, "size": size, "channel": channel, "stock": stock})
    return cleaned


def replace_variants(product_id: int, variants: list) -> list[ProductVariant]:
    """
    Delete every variant of the product and insert the supplied list.

    Entries missing color, size or channel are skipped. Catalogue
    maintenance only; sales never call this.
    """
    if not isinstance(variants, list):
        raise ValidationError("variants must be an array")

    cleaned = _clean_variants(variants)

    with atomic_unit():
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError("Product not found")

        # delete-orphan cascade removes the old rows
        product.variants.clear()
        db.session.flush()

        created = []
        for v in cleaned:
            variant = ProductVariant(product_id=product_id, **v)
            product.variants.append(variant)
            created.append(variant)
        db.session.flush()

    current_app.logger.info(
        "Replaced variants for product %s (%d rows)", product_id, len(created)
    )
    return created


def aggregate_stock(product_id: int, channel: str | None = None) -> int:
    """Sum of stock across a product's variants, optionally for one channel."""
    q = db.session.query(func.coalesce(func.sum(ProductVariant.stock), 0)).filter(
        ProductVariant.product_id == product_id
    )
    if channel and channel != "both":
        q = q.filter(ProductVariant.channel == channel)
    return int(q.scalar() or 0)


def stock_by_product(channel: str | None = None) -> dict[int, int]:
    """{product_id: summed stock} for every product that has variants."""
    q = db.session.query(
        ProductVariant.product_id,
        func.coalesce(func.sum(ProductVariant.stock), 0).label("stock"),
    )
    if channel and channel != "both":
        q = q.filter(ProductVariant.channel == channel)
    rows = q.group_by(ProductVariant.product_id).all()
    return {row.product_id: int(row.stock or 0) for row in rows}
