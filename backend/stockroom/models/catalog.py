from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Catalogue entry.

    Stock is never stored on the product itself: it is the sum of the
    product's variant rows, one per (color, size, channel).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    ref = db.Column(db.String(64), nullable=False, unique=True)
    category = db.Column(db.String(64), nullable=False)

    price = db.Column(db.Float, nullable=False)
    wholesale_price = db.Column(db.Float, nullable=True)

    # Free-form labels shown by the frontend
    trend = db.Column(db.String(16), nullable=True, default="+0%")
    status = db.Column(db.String(16), nullable=True, default="good")
    season = db.Column(db.String(32), nullable=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} ref={self.ref!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "ref": self.ref,
            "category": self.category,
            "price": self.price,
            "wholesale_price": self.wholesale_price,
            "trend": self.trend,
            "status": self.status,
            "season": self.season,
            "description": self.description,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """One stock-keeping unit: (product, color, size, channel) with a stock counter."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "color", "size", "channel", name="uq_variant_identity"),
        db.CheckConstraint("channel IN ('single', 'wholesale')", name="ck_variant_channel"),
        db.CheckConstraint("stock >= 0", name="ck_variant_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    color = db.Column(db.String(32), nullable=False)
    size = db.Column(db.String(16), nullable=False)
    channel = db.Column(db.String(16), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="variants")

    def __repr__(self) -> str:
        return (
            f"<ProductVariant product_id={self.product_id} {self.color}/{self.size}"
            f"/{self.channel} stock={self.stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color": self.color,
            "size": self.size,
            "channel": self.channel,
            "stock": self.stock,
        }
