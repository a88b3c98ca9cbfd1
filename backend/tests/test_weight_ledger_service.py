from decimal import Decimal

from conftest import melted_row, transaction_data
from goldbook.services.transaction_service import delete_transaction, save_transaction
from goldbook.services.weight_ledger_service import (
    get_weight_balance,
    list_contact_ledger,
    normalize_weight,
    record_weight_change,
)


def _assert_chain_exact(entries):
    previous = Decimal(0)
    for entry in entries:
        assert entry.balance_after_grams == previous + entry.change_weight_grams
        previous = entry.balance_after_grams
    return previous


def test_normalize_weight():
    assert normalize_weight(10, 900) == 12.0
    assert normalize_weight(1, 1000) == 1.3333
    assert normalize_weight(None, 750) == 0.0
    assert normalize_weight(5, None) == 0.0


def test_balance_chain_sums_exactly(db_session, melted_category):
    for change in (0.1, 0.2, -0.7, 1.0001):
        record_weight_change(
            contact_id=5,
            category_id=melted_category.id,
            change=change,
            event_type="TRANSACTION",
        )
    db_session.commit()
    db_session.expire_all()

    entries = list_contact_ledger(5, melted_category.id)
    assert [e.balance_after_grams for e in entries] == [
        Decimal("0.1"), Decimal("0.3"), Decimal("-0.4"), Decimal("0.6001"),
    ]
    assert _assert_chain_exact(entries) == Decimal("0.6001")
    assert get_weight_balance(5, melted_category.id) == Decimal("0.6001")


def test_small_sales_accumulate_without_drift(db_session, melted_product, melted_category, catalog):
    save_transaction(transaction_data("sell", [melted_row(melted_product, weight="0.1")]), catalog=catalog)
    save_transaction(transaction_data("sell", [melted_row(melted_product, weight="0.2")]), catalog=catalog)
    db_session.expire_all()

    entries = list_contact_ledger(42, melted_category.id)
    assert entries[-1].balance_after_grams == Decimal("0.3")
    _assert_chain_exact(entries)


def test_changes_below_one_milligram_are_skipped(db_session, melted_category):
    assert record_weight_change(
        contact_id=5, category_id=melted_category.id, change=0.0004, event_type="TRANSACTION",
    ) is None
    assert list_contact_ledger(5) == []


def test_rebuild_after_delete_keeps_chain_exact(db_session, melted_product, melted_category, catalog):
    ids = [
        save_transaction(transaction_data("sell", [melted_row(melted_product, weight=w)]), catalog=catalog).id
        for w in ("0.1", "0.2", "0.4")
    ]
    delete_transaction(ids[1])
    db_session.expire_all()

    entries = list_contact_ledger(42, melted_category.id)
    assert [e.related_transaction_id for e in entries] == [ids[0], ids[2]]
    assert [e.balance_after_grams for e in entries] == [Decimal("0.1"), Decimal("0.5")]
    _assert_chain_exact(entries)
