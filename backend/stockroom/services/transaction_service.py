# Overview: Persistence for transactions and their items; no business rules, never commits.

from __future__ import annotations

import time

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Transaction, TransactionItem
from .concurrency import lock_for_update


HEADER_FIELDS = {"status", "total", "payment_method", "description", "location"}


def id_prefix(txn_type: str) -> str:
    return "TXN" if txn_type == "sale" else "MAN"


def next_transaction_id(txn_type: str, now_ms: int | None = None) -> str:
    """
    "<PREFIX>-<epoch millis>", bumped until unused so that two entries
    created within the same millisecond stay distinct.
    """
    prefix = id_prefix(txn_type)
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    while db.session.query(Transaction.id).filter_by(id=f"{prefix}-{stamp}").first() is not None:
        stamp += 1
    return f"{prefix}-{stamp}"


def insert_transaction(
    *,
    txn_id: str,
    txn_type: str,
    status: str,
    total: float,
    payment_method: str | None = None,
    description: str | None = None,
    created_by: str | None = None,
    location: str | None = None,
) -> Transaction:
    txn = Transaction(
        id=txn_id,
        type=txn_type,
        status=status,
        total=total,
        payment_method=payment_method,
        description=description,
        created_by=created_by,
        location=location,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def insert_item(
    txn: Transaction,
    *,
    product_id: int,
    quantity: int,
    unit_price: float,
    color: str | None = None,
    size: str | None = None,
    channel: str | None = None,
) -> TransactionItem:
    item = TransactionItem(
        product_id=product_id,
        color=color,
        size=size,
        channel=channel,
        quantity=quantity,
        unit_price=unit_price,
    )
    txn.items.append(item)
    db.session.flush()
    return item


def get_transaction(txn_id: str, *, lock: bool = False) -> Transaction | None:
    query = db.session.query(Transaction).filter_by(id=txn_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_items(txn_id: str) -> list[TransactionItem]:
    return (
        db.session.query(TransactionItem)
        .filter_by(transaction_id=txn_id)
        .order_by(TransactionItem.id.asc())
        .all()
    )


def list_recent(limit: int = 200) -> list[Transaction]:
    """Newest first, bounded."""
    return (
        db.session.query(Transaction)
        .options(selectinload(Transaction.items))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
        .all()
    )


def delete_transaction(txn: Transaction) -> None:
    # items go with it (delete-orphan cascade)
    db.session.delete(txn)
    db.session.flush()


def delete_item(item: TransactionItem) -> None:
    txn = item.transaction
    if txn is not None and item in txn.items:
        txn.items.remove(item)
    else:
        db.session.delete(item)
    db.session.flush()


def update_item(item: TransactionItem, *, quantity: int, unit_price: float) -> TransactionItem:
    item.quantity = quantity
    item.unit_price = unit_price
    db.session.flush()
    return item


def update_header(txn: Transaction, **fields) -> Transaction:
    for key, value in fields.items():
        if key not in HEADER_FIELDS:
            raise KeyError(f"not a mutable header field: {key}")
        setattr(txn, key, value)
    db.session.flush()
    return txn


def items_total(txn_id: str) -> float:
    total = db.session.query(
        func.coalesce(func.sum(TransactionItem.quantity * TransactionItem.unit_price), 0)
    ).filter(TransactionItem.transaction_id == txn_id).scalar()
    return round(float(total or 0), 2)
