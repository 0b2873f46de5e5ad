from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow


class Transaction(db.Model):
    """
    Cash-book entry: a sale (with items) or a manual cash movement.

    Ids are client-visible tokens, "TXN-<millis>" for sales and
    "MAN-<millis>" for manual entries. A NULL status is legacy data and
    counts as completed.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("type IN ('sale', 'in', 'out')", name="ck_transactions_type"),
        db.Index("ix_transactions_type_status_created", "type", "status", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True)
    type = db.Column(db.String(8), nullable=False)
    status = db.Column(db.String(16), nullable=True, default="completed")
    total = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(64), nullable=True)
    created_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        index=True,
    )

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "total": self.total,
            "payment_method": self.payment_method,
            "description": self.description,
            "created_by": self.created_by,
            "location": self.location,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class TransactionItem(db.Model):
    """
    Line of a sale.

    product_id and color/size/channel are a point-in-time snapshot, not a
    live reference: item history must survive product and variant deletion,
    so product_id carries no foreign key.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_transaction_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.String(32),
        db.ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, nullable=True, index=True)
    color = db.Column(db.String(32), nullable=True)
    size = db.Column(db.String(16), nullable=True)
    channel = db.Column(db.String(16), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")

    @property
    def has_variant_identity(self) -> bool:
        return bool(self.color and self.size and self.channel)

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "color": self.color,
            "size": self.size,
            "channel": self.channel,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
        }
