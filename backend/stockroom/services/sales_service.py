"""
Sales Service - inventory-consistent sale lifecycle

Every operation here runs as one atomic unit: the transaction rows and the
variant stock counters change together or not at all.

Lifecycle:
- reserved  -> completed   (finalize)
- reserved  -> deleted
- completed -> deleted
- completed -> completed   (edit items / price / payment in place)

Stock semantics:
- Creating a sale decrements stock for every item that names a color and a
  size, including reservations. Finalize never decrements again.
- Deleting a sale restores the quantity of every item carrying full variant
  identity (color, size, channel).
- Edit/finalize restore stock for removed items and for quantity decreases.
  Quantity increases are NOT debited from stock.
"""

from __future__ import annotations

import math

from flask import current_app

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..validation import (
    CHANNELS,
    MAX_QUANTITY,
    NotFoundError,
    ValidationError,
    coerce_amount,
    coerce_int,
)
from . import inventory_service, transaction_service
from .concurrency import atomic_unit


TRANSACTION_TYPES = ("sale", "in", "out")
STATUS_COMPLETED = "completed"
STATUS_RESERVED = "reserved"


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleStateError(SaleError):
    """The transaction's type or status does not allow the requested operation."""


def _clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_sale_items(items) -> list[dict]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("items must be an array")

    cleaned = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"item {index} must be an object")
        if item.get("product_id") in (None, ""):
            raise ValidationError(f"item {index}: product_id is required")

        product_id = coerce_int(item["product_id"], f"item {index} product_id")
        quantity = coerce_int(item.get("quantity"), f"item {index} quantity")
        if quantity <= 0:
            raise ValidationError(f"item {index}: quantity must be > 0")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"item {index}: quantity cannot exceed {MAX_QUANTITY:,}")
        unit_price = coerce_amount(item.get("unit_price"), f"item {index} unit_price")
        if unit_price < 0:
            raise ValidationError(f"item {index}: unit_price must be >= 0")

        channel = _clean_text(item.get("channel")) or "single"
        if channel not in CHANNELS:
            raise ValidationError(f"item {index}: channel must be one of: {', '.join(CHANNELS)}")

        cleaned.append({
            "product_id": product_id,
            "color": _clean_text(item.get("color")),
            "size": _clean_text(item.get("size")),
            "channel": channel,
            "quantity": quantity,
            "unit_price": unit_price,
        })
    return cleaned


def _index_replacements(items) -> dict[int, dict] | None:
    """Replacement list for edit/finalize, keyed by existing item id."""
    if not isinstance(items, list):
        return None

    by_id: dict[int, dict] = {}
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"item {index} must be an object")
        if item.get("item_id") in (None, ""):
            raise ValidationError(f"item {index}: item_id is required")
        by_id[coerce_int(item["item_id"], f"item {index} item_id")] = item
    return by_id


def _clamped_quantity(value) -> int:
    try:
        qty = float(value)
    except (TypeError, ValueError, OverflowError):
        return 1
    if math.isnan(qty):
        return 1
    return int(min(MAX_QUANTITY, max(1, qty)))


def _clamped_price(value) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(price):
        return 0.0
    return max(0.0, price)


def _require_products(product_ids: set[int]) -> None:
    if not product_ids:
        return
    found = {
        row.id
        for row in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
    }
    missing = sorted(product_ids - found)
    if missing:
        raise NotFoundError(f"Product not found: {', '.join(str(m) for m in missing)}")


def _get_transaction_or_404(txn_id: str) -> Transaction:
    txn = transaction_service.get_transaction(txn_id, lock=True)
    if txn is None:
        raise NotFoundError("Transaction not found")
    return txn


def _restore(item: TransactionItem, quantity: int) -> None:
    if quantity > 0 and item.has_variant_identity:
        inventory_service.adjust_stock(
            item.product_id, item.color, item.size, item.channel, quantity
        )


def _reconcile_items(txn: Transaction, replacements: dict[int, dict] | None) -> None:
    """
    Bring the item set in line with the replacement list.

    Items missing from the list are removed and fully restored; quantity
    decreases restore the difference. Increases are not debited.
    """
    if replacements is None:
        return

    for orig in transaction_service.get_items(txn.id):
        updated = replacements.get(orig.id)

        if updated is None:
            _restore(orig, orig.quantity)
            transaction_service.delete_item(orig)
            continue

        new_qty = _clamped_quantity(updated.get("quantity"))
        new_price = _clamped_price(updated.get("unit_price"))

        if new_qty < orig.quantity:
            _restore(orig, orig.quantity - new_qty)

        transaction_service.update_item(orig, quantity=new_qty, unit_price=new_price)


def create_transaction(
    *,
    txn_type: str,
    total,
    payment_method: str | None = None,
    description: str | None = None,
    items: list | None = None,
    status: str | None = None,
    location: str | None = None,
    actor: str | None = None,
) -> Transaction:
    """
    Record a sale or a manual cash entry.

    Sale items that carry both color and size decrement the matching variant
    (channel defaults to 'single'). `total` is stored as given.
    """
    if not txn_type or total is None or total == "":
        raise ValidationError("Type and total are required")
    if txn_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")

    total = coerce_amount(total, "total")
    cleaned = _clean_sale_items(items) if txn_type == "sale" else []
    txn_status = STATUS_RESERVED if txn_type == "sale" and status == STATUS_RESERVED else STATUS_COMPLETED

    with atomic_unit():
        _require_products({item["product_id"] for item in cleaned})

        txn = transaction_service.insert_transaction(
            txn_id=transaction_service.next_transaction_id(txn_type),
            txn_type=txn_type,
            status=txn_status,
            total=total,
            payment_method=_clean_text(payment_method),
            description=_clean_text(description),
            created_by=actor,
            location=_clean_text(location),
        )

        for item in cleaned:
            transaction_service.insert_item(txn, **item)
            if item["color"] and item["size"]:
                inventory_service.adjust_stock(
                    item["product_id"],
                    item["color"],
                    item["size"],
                    item["channel"],
                    -item["quantity"],
                )

    current_app.logger.info(
        "Created %s transaction %s (%s, %d items) by %s",
        txn_type, txn.id, txn_status, len(cleaned), actor,
    )
    return txn


def delete_transaction(txn_id: str) -> str:
    """Delete a transaction; sales give their variant stock back first."""
    with atomic_unit():
        txn = _get_transaction_or_404(txn_id)
        restored = 0

        if txn.type == "sale":
            for item in transaction_service.get_items(txn.id):
                if item.has_variant_identity:
                    _restore(item, item.quantity)
                    restored += item.quantity

        transaction_service.delete_transaction(txn)

    current_app.logger.info("Deleted transaction %s (restored %d units)", txn_id, restored)
    return txn_id


def edit_sale(txn_id: str, *, items: list | None = None, payment_method: str | None = None) -> Transaction:
    """Edit items, prices or payment of a completed sale and recompute its total."""
    replacements = _index_replacements(items)

    with atomic_unit():
        txn = _get_transaction_or_404(txn_id)
        if txn.type != "sale" or txn.status == STATUS_RESERVED:
            raise SaleStateError(
                "This endpoint is for completed sales only",
                details={"type": txn.type, "status": txn.status},
            )

        _reconcile_items(txn, replacements)
        transaction_service.update_header(
            txn,
            total=transaction_service.items_total(txn.id),
            payment_method=_clean_text(payment_method) or txn.payment_method,
        )

    current_app.logger.info("Edited sale %s (total %.2f)", txn_id, txn.total)
    return txn


def finalize_sale(txn_id: str, *, items: list | None = None, payment_method: str | None = None) -> Transaction:
    """
    Lock in a reservation: reconcile its items like edit_sale, then mark it
    completed. Stock was already taken at reservation time.
    """
    replacements = _index_replacements(items)

    with atomic_unit():
        txn = _get_transaction_or_404(txn_id)
        if txn.status != STATUS_RESERVED:
            raise SaleStateError(
                "Transaction is not reserved",
                details={"type": txn.type, "status": txn.status},
            )

        _reconcile_items(txn, replacements)
        transaction_service.update_header(
            txn,
            status=STATUS_COMPLETED,
            total=transaction_service.items_total(txn.id),
            payment_method=_clean_text(payment_method) or txn.payment_method,
        )

    current_app.logger.info("Finalized sale %s (total %.2f)", txn_id, txn.total)
    return txn


def update_transaction_header(
    txn_id: str,
    *,
    description: str | None = None,
    total=None,
    payment_method: str | None = None,
) -> Transaction:
    """
    Header-only correction, no stock effect.

    Sales accept description and payment method (not while reserved);
    manual entries also accept a new total. None leaves a field unchanged.
    """
    with atomic_unit():
        txn = _get_transaction_or_404(txn_id)
        fields: dict = {}

        if txn.type == "sale":
            if txn.status == STATUS_RESERVED:
                raise SaleStateError(
                    "Use the finalize endpoint for reserved sales",
                    details={"status": txn.status},
                )
        elif total is not None:
            fields["total"] = coerce_amount(total, "total")

        if description is not None:
            fields["description"] = description
        if payment_method is not None:
            fields["payment_method"] = payment_method

        if fields:
            transaction_service.update_header(txn, **fields)

    return txn


def list_transactions(limit: int | None = None) -> list[Transaction]:
    if limit is None:
        limit = current_app.config.get("TRANSACTION_LIST_LIMIT", 200)
    return transaction_service.list_recent(limit)


def get_transaction(txn_id: str) -> Transaction:
    txn = transaction_service.get_transaction(txn_id)
    if txn is None:
        raise NotFoundError("Transaction not found")
    return txn
