# Overview: Service-layer operations for reporting; read-only views derived from the sales ledger.

from __future__ import annotations

from calendar import month_abbr
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, case, func, or_

from ..extensions import db
from ..models import Product, ProductVariant, Transaction, TransactionItem
from ..validation import ValidationError
from .inventory_service import stock_by_product
from stockroom.time_utils import day_bounds, months_ago, parse_iso_datetime, utcnow


def _completed_sale():
    """Sale transactions that count towards sold/revenue (NULL status is legacy completed)."""
    return and_(
        Transaction.type == "sale",
        or_(Transaction.status == "completed", Transaction.status.is_(None)),
    )


def _channel_filter(query, channel: str, column=TransactionItem.channel):
    if channel and channel != "both":
        query = query.filter(column == channel)
    return query


def _revenue_expr():
    return func.coalesce(func.sum(TransactionItem.quantity * TransactionItem.unit_price), 0)


def _units_expr():
    return func.coalesce(func.sum(TransactionItem.quantity), 0)


def _thousands(amount) -> float:
    return round(float(amount or 0) / 1000.0, 1)


def sold_by_product(channel: str = "both") -> dict[int, dict]:
    """{product_id: {"units", "revenue"}} over completed sale items."""
    q = (
        db.session.query(
            TransactionItem.product_id,
            _units_expr().label("units"),
            _revenue_expr().label("revenue"),
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(_completed_sale())
    )
    q = _channel_filter(q, channel)
    rows = q.group_by(TransactionItem.product_id).all()
    return {
        row.product_id: {"units": int(row.units or 0), "revenue": round(float(row.revenue or 0), 2)}
        for row in rows
    }


def enrich_products(products: list[Product]) -> list[dict]:
    """
    Attach variants, channel stock and lifetime sold/revenue to products.

    Pure read: calling it twice without writes in between gives the same
    figures.
    """
    if not products:
        return []

    ids = [p.id for p in products]
    variants = (
        db.session.query(ProductVariant)
        .filter(ProductVariant.product_id.in_(ids))
        .order_by(
            ProductVariant.product_id,
            ProductVariant.channel,
            ProductVariant.color,
            ProductVariant.size,
        )
        .all()
    )
    by_product: dict[int, list[ProductVariant]] = {}
    for v in variants:
        by_product.setdefault(v.product_id, []).append(v)

    sold = sold_by_product()

    enriched = []
    for p in products:
        pvs = by_product.get(p.id, [])
        stock_single = sum(v.stock or 0 for v in pvs if v.channel == "single")
        stock_wholesale = sum(v.stock or 0 for v in pvs if v.channel == "wholesale")
        s = sold.get(p.id, {})
        data = p.to_dict()
        data.update({
            "variants": [v.to_dict() for v in pvs],
            "stock": stock_single + stock_wholesale,
            "stock_single": stock_single,
            "stock_wholesale": stock_wholesale,
            "sold": s.get("units", 0),
            "revenue": s.get("revenue", 0.0),
        })
        enriched.append(data)
    return enriched


def dashboard_stats(channel: str = "both", now: datetime | None = None) -> dict:
    now = now or utcnow()
    today_start, today_end = day_bounds(now.date())
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 20)

    totals_q = (
        db.session.query(_revenue_expr().label("revenue"), _units_expr().label("units"))
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(_completed_sale())
    )
    totals = _channel_filter(totals_q, channel).one()

    today_q = (
        db.session.query(
            _revenue_expr().label("revenue"),
            func.count(func.distinct(Transaction.id)).label("count"),
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(
            _completed_sale(),
            Transaction.created_at >= today_start,
            Transaction.created_at < today_end,
        )
    )
    today = _channel_filter(today_q, channel).one()

    completed = or_(Transaction.status == "completed", Transaction.status.is_(None))
    cash_change = db.session.query(
        func.coalesce(
            func.sum(
                case(
                    (and_(Transaction.type.in_(["sale", "in"]), completed), Transaction.total),
                    (Transaction.type == "out", -Transaction.total),
                    else_=0,
                )
            ),
            0,
        )
    ).filter(
        Transaction.created_at >= today_start,
        Transaction.created_at < today_end,
    ).scalar()

    active_skus = db.session.query(func.count(Product.id)).scalar() or 0
    low_stock = sum(1 for stock in stock_by_product(channel).values() if stock < threshold)

    return {
        "todaysSales": round(float(today.revenue or 0), 2),
        "todaysSalesCount": int(today.count or 0),
        "todaysCashChange": round(float(cash_change or 0), 2),
        "totalRevenue": round(float(totals.revenue or 0), 2),
        "totalUnits": int(totals.units or 0),
        "activeSKUs": int(active_skus),
        "lowStockCount": low_stock,
    }


def _parse_day(value: str | None, field: str) -> datetime | None:
    if not value:
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def monthly_series(
    channel: str = "both",
    date_from: str | None = None,
    date_to: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Revenue (thousands, one decimal) and units per calendar month.

    Without bounds the window is the trailing 12 months; `date_to` includes
    its whole day.
    """
    now = now or utcnow()
    start = _parse_day(date_from, "from")
    end = _parse_day(date_to, "to")

    period_expr = func.strftime("%Y-%m", Transaction.created_at)

    q = (
        db.session.query(
            period_expr.label("period"),
            _revenue_expr().label("revenue"),
            _units_expr().label("units"),
        )
        .join(TransactionItem, TransactionItem.transaction_id == Transaction.id)
        .filter(_completed_sale())
    )
    q = _channel_filter(q, channel)

    if start is None and end is None:
        q = q.filter(Transaction.created_at >= months_ago(now, 12))
    if start is not None:
        q = q.filter(Transaction.created_at >= start)
    if end is not None:
        end_exclusive = datetime.combine(end.date(), datetime.min.time()) + timedelta(days=1)
        q = q.filter(Transaction.created_at < end_exclusive)

    rows = q.group_by("period").order_by("period").all()
    return {
        "periods": [row.period for row in rows],
        "months": [month_abbr[int(row.period[5:7])] for row in rows],
        "revenue": [_thousands(row.revenue) for row in rows],
        "units": [int(row.units or 0) for row in rows],
    }


def top_sellers(channel: str = "both", limit: int | None = None) -> list[dict]:
    if limit is None:
        limit = current_app.config.get("TOP_SELLERS_LIMIT", 8)

    sold = sold_by_product(channel)
    stock = stock_by_product(channel)
    products = db.session.query(Product).order_by(Product.id.asc()).all()

    rows = []
    for p in products:
        s = sold.get(p.id, {})
        data = p.to_dict()
        data.update({
            "sold": s.get("units", 0),
            "revenue_total": s.get("revenue", 0.0),
            "stock": stock.get(p.id, 0),
        })
        rows.append(data)

    rows.sort(key=lambda r: r["sold"], reverse=True)
    return rows[:limit]


def category_revenue() -> dict:
    """Revenue per category in thousands; categories without sales report 0."""
    revenue_rows = (
        db.session.query(Product.category, _revenue_expr().label("revenue"))
        .join(TransactionItem, TransactionItem.product_id == Product.id)
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(_completed_sale())
        .group_by(Product.category)
        .all()
    )
    revenue = {row.category: float(row.revenue or 0) for row in revenue_rows}
    categories = [row.category for row in db.session.query(Product.category).distinct().all()]

    ranked = sorted(
        ((c, _thousands(revenue.get(c, 0))) for c in categories),
        key=lambda pair: pair[1],
        reverse=True,
    )
    return {
        "categories": [c[:1].upper() + c[1:] for c, _ in ranked],
        "values": [value for _, value in ranked],
    }


def rankings() -> list[dict]:
    """Every product by units sold, descending, with total stock."""
    sold = sold_by_product()
    stock = stock_by_product()
    products = db.session.query(Product).order_by(Product.id.asc()).all()

    rows = []
    for p in products:
        data = p.to_dict()
        data["sold"] = sold.get(p.id, {}).get("units", 0)
        data["stock"] = stock.get(p.id, 0)
        rows.append(data)

    rows.sort(key=lambda r: r["sold"], reverse=True)
    return rows


def color_breakdown() -> list[dict]:
    """Sold units/revenue per (product, color, channel) next to current stock."""
    sales = (
        db.session.query(
            TransactionItem.product_id,
            TransactionItem.color,
            TransactionItem.channel,
            _units_expr().label("sold"),
            _revenue_expr().label("revenue"),
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(
            _completed_sale(),
            TransactionItem.color.isnot(None),
            TransactionItem.color != "",
        )
        .group_by(TransactionItem.product_id, TransactionItem.color, TransactionItem.channel)
        .order_by(TransactionItem.product_id, TransactionItem.color, TransactionItem.channel)
        .all()
    )

    stock_rows = (
        db.session.query(
            ProductVariant.product_id,
            ProductVariant.color,
            ProductVariant.channel,
            func.coalesce(func.sum(ProductVariant.stock), 0).label("stock"),
        )
        .filter(ProductVariant.color.isnot(None), ProductVariant.color != "")
        .group_by(ProductVariant.product_id, ProductVariant.color, ProductVariant.channel)
        .all()
    )
    stock = {(r.product_id, r.color, r.channel): int(r.stock or 0) for r in stock_rows}

    return [
        {
            "product_id": row.product_id,
            "color": row.color,
            "channel": row.channel,
            "sold": int(row.sold or 0),
            "revenue": round(float(row.revenue or 0), 2),
            "stock": stock.get((row.product_id, row.color, row.channel), 0),
        }
        for row in sales
    ]
