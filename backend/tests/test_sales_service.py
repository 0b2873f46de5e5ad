"""
Sale lifecycle tests.

Verifies:
- Creating a sale takes stock from the named variant and stores the total as given
- Reservations take stock at creation; finalizing never takes it again
- Editing restores stock for removed items and quantity decreases only
- Deleting a sale gives back exactly what its items took
- A failure part-way through leaves no trace
"""

import pytest

from stockroom.models import Transaction, TransactionItem
from stockroom.services import inventory_service, sales_service, transaction_service
from stockroom.services.sales_service import SaleStateError
from stockroom.validation import MAX_QUANTITY, NotFoundError, ValidationError


def _item(product, quantity, unit_price=50.0, color="BLACK", size="40", channel="single"):
    return {
        "product_id": product.id,
        "color": color,
        "size": size,
        "channel": channel,
        "quantity": quantity,
        "unit_price": unit_price,
    }


def _sale(product, quantity, total=None, status=None, **item_kwargs):
    item = _item(product, quantity, **item_kwargs)
    return sales_service.create_transaction(
        txn_type="sale",
        total=total if total is not None else quantity * item["unit_price"],
        payment_method="cash",
        items=[item],
        status=status,
        actor="anna",
    )


# =============================================================================
# CREATE
# =============================================================================


class TestCreateTransaction:

    def test_sale_decrements_variant_and_keeps_total(self, product, stock_of):
        txn = _sale(product, 3)

        assert txn.id.startswith("TXN-")
        assert txn.status == "completed"
        assert txn.total == 150.0
        assert txn.created_by == "anna"
        assert stock_of(product.id, "BLACK", "40", "single") == 5
        assert stock_of(product.id, "BLACK", "42", "single") == 3

    def test_total_is_stored_as_given(self, product):
        txn = _sale(product, 3, total=999.0)
        assert txn.total == 999.0

    def test_decrement_clamps_at_zero(self, product, stock_of):
        _sale(product, 10, size="42")
        assert stock_of(product.id, "BLACK", "42", "single") == 0

    def test_channel_defaults_to_single(self, product, stock_of):
        item = _item(product, 2)
        item.pop("channel")
        txn = sales_service.create_transaction(txn_type="sale", total=100, items=[item])

        assert txn.items[0].channel == "single"
        assert stock_of(product.id, "BLACK", "40", "single") == 6

    def test_item_without_size_is_recorded_but_takes_no_stock(self, product, stock_of):
        txn = sales_service.create_transaction(
            txn_type="sale",
            total=50,
            items=[{"product_id": product.id, "color": "BLACK", "quantity": 1, "unit_price": 50}],
        )

        assert len(txn.items) == 1
        assert stock_of(product.id, "BLACK", "40", "single") == 8

    def test_unknown_variant_is_recorded_without_stock_change(self, product, stock_of):
        txn = _sale(product, 1, color="PINK")
        assert len(txn.items) == 1
        assert stock_of(product.id, "BLACK", "40", "single") == 8

    def test_manual_cash_entry(self, db_session):
        txn = sales_service.create_transaction(txn_type="in", total="25.5", description="float")

        assert txn.id.startswith("MAN-")
        assert txn.total == 25.5
        assert txn.status == "completed"
        assert txn.items == []

    def test_reserved_status_only_applies_to_sales(self, db_session):
        txn = sales_service.create_transaction(txn_type="out", total=10, status="reserved")
        assert txn.status == "completed"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"txn_type": None, "total": 10},
            {"txn_type": "sale", "total": None},
            {"txn_type": "refund", "total": 10},
            {"txn_type": "sale", "total": "abc"},
            {"txn_type": "sale", "total": "nan"},
            {"txn_type": "in", "total": "inf"},
            {"txn_type": "out", "total": "-inf"},
            {"txn_type": "in", "total": float("inf")},
            {"txn_type": "sale", "total": 10, "items": "nope"},
        ],
    )
    def test_rejects_malformed_header(self, db_session, kwargs):
        with pytest.raises(ValidationError):
            sales_service.create_transaction(**kwargs)
        assert db_session.query(Transaction).count() == 0

    @pytest.mark.parametrize(
        "bad",
        [
            {"quantity": 0},
            {"quantity": -2},
            {"quantity": 1.5},
            {"unit_price": -1},
            {"unit_price": "nan"},
            {"unit_price": "inf"},
            {"quantity": 10**20},
            {"quantity": MAX_QUANTITY + 1},
            {"product_id": None},
            {"channel": "retail"},
        ],
    )
    def test_rejects_malformed_items(self, product, bad, stock_of):
        item = _item(product, 1)
        item.update(bad)

        with pytest.raises(ValidationError):
            sales_service.create_transaction(txn_type="sale", total=50, items=[item])

        assert stock_of(product.id, "BLACK", "40", "single") == 8

    def test_unknown_product_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.create_transaction(
                txn_type="sale",
                total=10,
                items=[{"product_id": 4242, "quantity": 1, "unit_price": 10}],
            )
        assert db_session.query(Transaction).count() == 0


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteTransaction:

    def test_create_then_delete_restores_stock(self, product, second_product, stock_of):
        txn = sales_service.create_transaction(
            txn_type="sale",
            total=230,
            items=[
                _item(product, 3),
                _item(product, 5, unit_price=10, size="S", channel="wholesale"),
                _item(second_product, 2, color="NAVY", size="38", unit_price=15),
            ],
        )
        assert stock_of(product.id, "BLACK", "S", "wholesale") == 15

        sales_service.delete_transaction(txn.id)

        assert stock_of(product.id, "BLACK", "40", "single") == 8
        assert stock_of(product.id, "BLACK", "S", "wholesale") == 20
        assert stock_of(second_product.id, "NAVY", "38", "single") == 30

    def test_only_items_with_variant_identity_are_restored(self, product, stock_of, db_session):
        txn = sales_service.create_transaction(
            txn_type="sale",
            total=150,
            items=[
                _item(product, 2),
                {"product_id": product.id, "quantity": 1, "unit_price": 50},
            ],
        )
        assert stock_of(product.id, "BLACK", "40", "single") == 6

        sales_service.delete_transaction(txn.id)

        assert stock_of(product.id, "BLACK", "40", "single") == 8
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(TransactionItem).count() == 0

    def test_deleting_reservation_restores_stock(self, product, stock_of):
        txn = _sale(product, 4, status="reserved")
        assert stock_of(product.id, "BLACK", "40", "single") == 4

        sales_service.delete_transaction(txn.id)
        assert stock_of(product.id, "BLACK", "40", "single") == 8

    def test_manual_entry_delete_has_no_stock_effect(self, product, stock_of):
        txn = sales_service.create_transaction(txn_type="out", total=12)
        sales_service.delete_transaction(txn.id)
        assert stock_of(product.id, "BLACK", "40", "single") == 8

    def test_restore_after_variant_removed_is_noop(self, product, stock_of, db_session):
        txn = _sale(product, 2)
        inventory_service.replace_variants(product.id, [
            {"color": "BLACK", "size": "42", "channel": "single", "stock": 3},
        ])

        sales_service.delete_transaction(txn.id)

        assert stock_of(product.id, "BLACK", "40", "single") is None
        assert db_session.query(Transaction).count() == 0

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.delete_transaction("TXN-0")


# =============================================================================
# EDIT
# =============================================================================


class TestEditSale:

    def test_quantity_decrease_restores_difference(self, product, stock_of):
        txn = _sale(product, 5)
        assert stock_of(product.id, "BLACK", "40", "single") == 3

        item_id = txn.items[0].id
        edited = sales_service.edit_sale(
            txn.id, items=[{"item_id": item_id, "quantity": 2, "unit_price": 50}]
        )

        assert stock_of(product.id, "BLACK", "40", "single") == 6
        assert edited.total == 100.0
        assert edited.items[0].quantity == 2

    def test_quantity_increase_is_not_debited(self, product, stock_of):
        txn = _sale(product, 2)
        item_id = txn.items[0].id

        edited = sales_service.edit_sale(
            txn.id, items=[{"item_id": item_id, "quantity": 4, "unit_price": 50}]
        )

        assert stock_of(product.id, "BLACK", "40", "single") == 6
        assert edited.total == 200.0

    def test_omitted_item_is_removed_and_restored(self, product, stock_of, db_session):
        txn = sales_service.create_transaction(
            txn_type="sale",
            total=200,
            items=[_item(product, 2), _item(product, 2, size="42")],
        )
        keep_id = txn.items[0].id

        edited = sales_service.edit_sale(
            txn.id, items=[{"item_id": keep_id, "quantity": 2, "unit_price": 45}]
        )

        assert [i.id for i in edited.items] == [keep_id]
        assert edited.total == 90.0
        assert stock_of(product.id, "BLACK", "42", "single") == 3
        assert stock_of(product.id, "BLACK", "40", "single") == 6
        assert db_session.query(TransactionItem).count() == 1

    def test_values_are_clamped(self, product):
        txn = _sale(product, 3)
        item_id = txn.items[0].id

        edited = sales_service.edit_sale(
            txn.id, items=[{"item_id": item_id, "quantity": "junk", "unit_price": -4}]
        )

        assert edited.items[0].quantity == 1
        assert edited.items[0].unit_price == 0.0
        assert edited.total == 0.0

    @pytest.mark.parametrize("quantity", ["1e30", 10**20, "inf"])
    def test_huge_quantity_is_clamped(self, product, stock_of, quantity):
        txn = _sale(product, 3)
        item_id = txn.items[0].id

        edited = sales_service.edit_sale(
            txn.id, items=[{"item_id": item_id, "quantity": quantity, "unit_price": 1}]
        )

        assert edited.items[0].quantity == MAX_QUANTITY
        assert edited.total == float(MAX_QUANTITY)
        assert stock_of(product.id, "BLACK", "40", "single") == 5

    def test_payment_method_only(self, product, stock_of):
        txn = _sale(product, 3, total=999)

        edited = sales_service.edit_sale(txn.id, payment_method="card")

        assert edited.payment_method == "card"
        assert edited.total == 150.0
        assert stock_of(product.id, "BLACK", "40", "single") == 5

    def test_missing_payment_method_keeps_previous(self, product):
        txn = _sale(product, 3)
        edited = sales_service.edit_sale(txn.id, items=None)
        assert edited.payment_method == "cash"

    def test_reserved_sale_is_rejected(self, product):
        txn = _sale(product, 1, status="reserved")
        with pytest.raises(SaleStateError):
            sales_service.edit_sale(txn.id, items=[])

    def test_manual_entry_is_rejected(self, db_session):
        txn = sales_service.create_transaction(txn_type="in", total=10)
        with pytest.raises(SaleStateError):
            sales_service.edit_sale(txn.id)

    def test_replacement_requires_item_id(self, product):
        txn = _sale(product, 1)
        with pytest.raises(ValidationError):
            sales_service.edit_sale(txn.id, items=[{"quantity": 1}])


# =============================================================================
# FINALIZE
# =============================================================================


class TestFinalizeSale:

    def test_unchanged_reservation_takes_no_more_stock(self, product, stock_of):
        txn = _sale(product, 3, status="reserved", total=120)
        assert txn.status == "reserved"
        assert stock_of(product.id, "BLACK", "40", "single") == 5

        done = sales_service.finalize_sale(txn.id, payment_method="card")

        assert done.status == "completed"
        assert done.total == 150.0
        assert done.payment_method == "card"
        assert stock_of(product.id, "BLACK", "40", "single") == 5

    def test_finalize_with_smaller_quantity(self, product, stock_of):
        txn = _sale(product, 3, status="reserved")
        item_id = txn.items[0].id

        done = sales_service.finalize_sale(
            txn.id, items=[{"item_id": item_id, "quantity": 1, "unit_price": 50}]
        )

        assert done.total == 50.0
        assert stock_of(product.id, "BLACK", "40", "single") == 7

    def test_completed_sale_cannot_be_finalized(self, product):
        txn = _sale(product, 1)
        with pytest.raises(SaleStateError) as exc:
            sales_service.finalize_sale(txn.id)
        assert exc.value.details["status"] == "completed"

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.finalize_sale("TXN-1")


# =============================================================================
# HEADER UPDATE
# =============================================================================


class TestUpdateHeader:

    def test_sale_ignores_total(self, product, stock_of):
        txn = _sale(product, 3)

        updated = sales_service.update_transaction_header(
            txn.id, description="gift wrap", total=1, payment_method="card"
        )

        assert updated.description == "gift wrap"
        assert updated.payment_method == "card"
        assert updated.total == 150.0
        assert stock_of(product.id, "BLACK", "40", "single") == 5

    def test_manual_entry_accepts_total(self, db_session):
        txn = sales_service.create_transaction(txn_type="out", total=10, description="taxi")

        updated = sales_service.update_transaction_header(txn.id, total="12.5")

        assert updated.total == 12.5
        assert updated.description == "taxi"

    @pytest.mark.parametrize("total", ["nan", "inf", "-inf", float("nan")])
    def test_manual_entry_rejects_non_finite_total(self, db_session, total):
        txn = sales_service.create_transaction(txn_type="out", total=10, description="taxi")

        with pytest.raises(ValidationError):
            sales_service.update_transaction_header(txn.id, total=total)

        db_session.expire_all()
        assert db_session.get(Transaction, txn.id).total == 10.0

    def test_reserved_sale_is_rejected(self, product):
        txn = _sale(product, 1, status="reserved")
        with pytest.raises(SaleStateError):
            sales_service.update_transaction_header(txn.id, description="x")


# =============================================================================
# ATOMICITY
# =============================================================================


class TestAtomicity:

    def test_failure_mid_create_rolls_back_everything(self, product, monkeypatch, stock_of, db_session):
        real_adjust = inventory_service.adjust_stock
        calls = []

        def flaky_adjust(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return real_adjust(*args, **kwargs)

        monkeypatch.setattr(inventory_service, "adjust_stock", flaky_adjust)

        with pytest.raises(RuntimeError):
            sales_service.create_transaction(
                txn_type="sale",
                total=100,
                items=[_item(product, 1), _item(product, 1, size="42")],
            )

        assert stock_of(product.id, "BLACK", "40", "single") == 8
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(TransactionItem).count() == 0

    def test_failure_mid_delete_keeps_sale(self, product, monkeypatch, stock_of, db_session):
        txn = _sale(product, 2)
        txn_id = txn.id

        def broken_delete(_txn):
            raise RuntimeError("locked")

        monkeypatch.setattr(transaction_service, "delete_transaction", broken_delete)

        with pytest.raises(RuntimeError):
            sales_service.delete_transaction(txn_id)

        assert stock_of(product.id, "BLACK", "40", "single") == 6
        assert db_session.query(Transaction).filter_by(id=txn_id).count() == 1


# =============================================================================
# IDS AND LISTING
# =============================================================================


class TestTransactionStore:

    def test_id_is_bumped_when_taken(self, db_session):
        transaction_service.insert_transaction(
            txn_id="TXN-1000", txn_type="sale", status="completed", total=0
        )
        db_session.commit()

        assert transaction_service.next_transaction_id("sale", now_ms=1000) == "TXN-1001"
        assert transaction_service.next_transaction_id("in", now_ms=1000) == "MAN-1000"

    def test_two_sales_in_a_row_get_distinct_ids(self, product):
        first = _sale(product, 1)
        second = _sale(product, 1)
        assert first.id != second.id

    def test_list_is_newest_first_and_bounded(self, app, db_session):
        for _ in range(3):
            sales_service.create_transaction(txn_type="in", total=1)

        listed = sales_service.list_transactions(limit=2)

        assert len(listed) == 2
        assert listed[0].created_at >= listed[1].created_at
