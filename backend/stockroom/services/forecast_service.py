# Overview: Per-product weekly demand forecast (weighted moving average + linear trend).

from __future__ import annotations

import math
from datetime import date, datetime, timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from stockroom.time_utils import utcnow


PROJECTION_WEEKS = 4
TREND_THRESHOLD = 0.3


def round_half_up(value: float, digits: int = 0) -> float:
    """Ties round toward +inf, not to even."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def weighted_moving_average(series: list[float]) -> float:
    """Weights 1..n, oldest to newest. 0 for an empty series."""
    if not series:
        return 0.0
    weight_sum = 0
    value_sum = 0.0
    for i, value in enumerate(series):
        weight = i + 1
        value_sum += value * weight
        weight_sum += weight
    return value_sum / weight_sum if weight_sum else 0.0


def linear_slope(series: list[float]) -> float:
    """Least-squares slope of value against index. 0 below two points."""
    n = len(series)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2
    y_mean = sum(series) / n
    num = 0.0
    den = 0.0
    for i, y in enumerate(series):
        num += (i - x_mean) * (y - y_mean)
        den += (i - x_mean) ** 2
    return num / den if den else 0.0


def project(base: float, slope: float, horizon: int = PROJECTION_WEEKS) -> list[int]:
    return [max(0, int(round_half_up(base + slope * w))) for w in range(1, horizon + 1)]


def trend_label(slope: float) -> str:
    if slope > TREND_THRESHOLD:
        return "rising"
    if slope < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def confidence_label(series: list[float]) -> str:
    non_zero = sum(1 for v in series if v > 0)
    if non_zero >= 4:
        return "high"
    if non_zero >= 2:
        return "medium"
    return "low"


def forecast_series(series: list[float]) -> dict:
    base = weighted_moving_average(series)
    slope = linear_slope(series)
    projected = project(base, slope)
    return {
        "base_weekly": round_half_up(base, 1),
        "slope": round_half_up(slope, 2),
        "projected_4w": projected,
        "total_projected": sum(projected),
        "trend": trend_label(slope),
        "confidence": confidence_label(series),
    }


def iso_week_key(day: date) -> tuple[int, int]:
    iso = day.isocalendar()
    return iso[0], iso[1]


def week_keys(now: datetime, weeks: int) -> list[tuple[int, int]]:
    """The `weeks` ISO weeks ending with the week that contains `now`, oldest first."""
    monday = now.date() - timedelta(days=now.weekday())
    return [iso_week_key(monday - timedelta(weeks=offset)) for offset in range(weeks - 1, -1, -1)]


def weekly_units(now: datetime, weeks: int) -> dict[int, dict[tuple[int, int], int]]:
    """{product_id: {(iso_year, iso_week): units}} for completed sales in the window."""
    monday = now.date() - timedelta(days=now.weekday())
    window_start = datetime.combine(monday - timedelta(weeks=weeks - 1), datetime.min.time())

    rows = (
        db.session.query(
            TransactionItem.product_id,
            Transaction.created_at,
            TransactionItem.quantity,
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(
            Transaction.type == "sale",
            or_(Transaction.status == "completed", Transaction.status.is_(None)),
            Transaction.created_at >= window_start,
            Transaction.created_at <= now,
        )
        .all()
    )

    by_product: dict[int, dict[tuple[int, int], int]] = {}
    for row in rows:
        key = iso_week_key(row.created_at.date())
        weeks_for_product = by_product.setdefault(row.product_id, {})
        weeks_for_product[key] = weeks_for_product.get(key, 0) + int(row.quantity or 0)
    return by_product


def demand_forecast(now: datetime | None = None, weeks: int = 8) -> list[dict]:
    """
    Forecast every product from its trailing weekly unit series.

    Sorted by total projected units over the next four weeks, descending.
    """
    now = now or utcnow()
    keys = week_keys(now, weeks)
    units = weekly_units(now, weeks)

    products = db.session.query(Product).order_by(Product.id.asc()).all()
    results = []
    for product in products:
        by_week = units.get(product.id, {})
        series = [by_week.get(key, 0) for key in keys]
        result = {
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "price": float(product.price),
            "weekly_units": series,
        }
        result.update(forecast_series(series))
        results.append(result)

    results.sort(key=lambda r: r["total_projected"], reverse=True)
    return results
