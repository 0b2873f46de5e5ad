"""
Reporting tests: figures derived from completed sales next to current stock.
"""

from datetime import datetime

import pytest

from stockroom.models import Product, Transaction, TransactionItem
from stockroom.services import reporting_service
from stockroom.validation import ValidationError


NOW = datetime(2026, 3, 11, 17, 30, 0)


def _entry(db_session, txn_id, when, lines=(), status="completed", txn_type="sale", total=None):
    items = [
        TransactionItem(
            product_id=p.id, color=color, size=size, channel=channel,
            quantity=qty, unit_price=price,
        )
        for p, color, size, channel, qty, price in lines
    ]
    txn = Transaction(
        id=txn_id,
        type=txn_type,
        status=status,
        total=total if total is not None else sum(i.quantity * i.unit_price for i in items),
        created_at=when,
    )
    txn.items = items
    db_session.add(txn)
    db_session.commit()
    return txn


@pytest.fixture
def ledger(db_session, product, second_product):
    """
    - today: single sale 2 x 50, a reservation of the skirt, cash in 40 and out 15
    - February: wholesale sale 5 x 300
    """
    _entry(db_session, "TXN-1", datetime(2026, 3, 11, 9, 0),
           [(product, "BLACK", "40", "single", 2, 50.0)])
    _entry(db_session, "TXN-2", datetime(2026, 2, 10, 15, 0),
           [(product, "BLACK", "S", "wholesale", 5, 300.0)])
    _entry(db_session, "TXN-3", datetime(2026, 3, 11, 10, 0),
           [(second_product, "NAVY", "38", "single", 1, 80.0)], status="reserved")
    _entry(db_session, "MAN-1", datetime(2026, 3, 11, 11, 0), txn_type="in", total=40.0)
    _entry(db_session, "MAN-2", datetime(2026, 3, 11, 12, 0), txn_type="out", total=15.0)
    return product, second_product


class TestEnrichProducts:

    def test_stock_and_sales_figures(self, ledger):
        product, _ = ledger
        [data] = reporting_service.enrich_products([product])

        assert data["stock"] == 31
        assert data["stock_single"] == 11
        assert data["stock_wholesale"] == 20
        assert data["sold"] == 7
        assert data["revenue"] == 1600.0
        assert [(v["channel"], v["size"]) for v in data["variants"]] == [
            ("single", "40"), ("single", "42"), ("wholesale", "S"),
        ]

    def test_reservations_are_not_sold(self, ledger):
        _, skirt = ledger
        [data] = reporting_service.enrich_products([skirt])
        assert data["sold"] == 0
        assert data["revenue"] == 0.0

    def test_is_idempotent(self, ledger, db_session):
        products = db_session.query(Product).order_by(Product.id).all()
        assert reporting_service.enrich_products(products) == reporting_service.enrich_products(products)

    def test_empty(self, db_session):
        assert reporting_service.enrich_products([]) == []


class TestDashboardStats:

    def test_both_channels(self, ledger):
        stats = reporting_service.dashboard_stats(now=NOW)

        assert stats == {
            "todaysSales": 100.0,
            "todaysSalesCount": 1,
            "todaysCashChange": 125.0,
            "totalRevenue": 1600.0,
            "totalUnits": 7,
            "activeSKUs": 2,
            "lowStockCount": 0,
        }

    def test_single_channel(self, ledger):
        stats = reporting_service.dashboard_stats(channel="single", now=NOW)

        assert stats["totalRevenue"] == 100.0
        assert stats["totalUnits"] == 2
        assert stats["todaysSales"] == 100.0
        # blouse single stock 11 is below 20, skirt has 30
        assert stats["lowStockCount"] == 1

    def test_wholesale_channel(self, ledger):
        stats = reporting_service.dashboard_stats(channel="wholesale", now=NOW)

        assert stats["totalRevenue"] == 1500.0
        assert stats["todaysSales"] == 0.0
        assert stats["todaysSalesCount"] == 0
        # skirt has no wholesale variants and is not counted
        assert stats["lowStockCount"] == 0

    def test_threshold_from_config(self, app, ledger):
        app.config["LOW_STOCK_THRESHOLD"] = 40
        try:
            assert reporting_service.dashboard_stats(now=NOW)["lowStockCount"] == 2
        finally:
            app.config["LOW_STOCK_THRESHOLD"] = 20


class TestMonthlySeries:

    def test_default_window(self, ledger, db_session):
        product, _ = ledger
        _entry(db_session, "TXN-OLD", datetime(2024, 6, 1, 10, 0),
               [(product, "BLACK", "40", "single", 1, 1000.0)])

        series = reporting_service.monthly_series(now=NOW)

        assert series["periods"] == ["2026-02", "2026-03"]
        assert series["months"] == ["Feb", "Mar"]
        assert series["revenue"] == [1.5, 0.1]
        assert series["units"] == [5, 2]

    def test_from_only(self, ledger):
        series = reporting_service.monthly_series(date_from="2026-03-01", now=NOW)
        assert series["months"] == ["Mar"]

    def test_to_includes_whole_day(self, ledger):
        series = reporting_service.monthly_series(date_to="2026-02-10", now=NOW)
        assert series["months"] == ["Feb"]
        assert series["units"] == [5]

    def test_channel_filter(self, ledger):
        series = reporting_service.monthly_series(channel="single", now=NOW)
        assert series["months"] == ["Mar"]
        assert series["revenue"] == [0.1]

    def test_invalid_date(self, ledger):
        with pytest.raises(ValidationError):
            reporting_service.monthly_series(date_from="last tuesday", now=NOW)


class TestRankings:

    def test_top_sellers(self, ledger):
        product, skirt = ledger
        rows = reporting_service.top_sellers()

        assert [r["id"] for r in rows] == [product.id, skirt.id]
        assert rows[0]["sold"] == 7
        assert rows[0]["revenue_total"] == 1600.0
        assert rows[0]["stock"] == 31

    def test_top_sellers_limit_and_channel(self, ledger):
        product, _ = ledger
        [row] = reporting_service.top_sellers(channel="wholesale", limit=1)

        assert row["id"] == product.id
        assert row["sold"] == 5
        assert row["stock"] == 20

    def test_category_revenue(self, ledger):
        assert reporting_service.category_revenue() == {
            "categories": ["Tops", "Skirts"],
            "values": [1.6, 0.0],
        }

    def test_rankings(self, ledger):
        product, skirt = ledger
        rows = reporting_service.rankings()

        assert [(r["id"], r["sold"], r["stock"]) for r in rows] == [
            (product.id, 7, 31),
            (skirt.id, 0, 30),
        ]

    def test_color_breakdown(self, ledger):
        product, _ = ledger
        assert reporting_service.color_breakdown() == [
            {"product_id": product.id, "color": "BLACK", "channel": "single",
             "sold": 2, "revenue": 100.0, "stock": 11},
            {"product_id": product.id, "color": "BLACK", "channel": "wholesale",
             "sold": 5, "revenue": 1500.0, "stock": 20},
        ]
