from decimal import Decimal

import pytest

from conftest import coin_row, melted_row, transaction_data
from goldbook.errors import NotFoundError, StateError, ValidationError
from goldbook.models import (
    ContactWeightLedgerEntry,
    InventoryLedgerEntry,
    PhysicalSettlement,
    Product,
    ProductCategory,
    StockBucket,
)
from goldbook.models.catalog import BASE_SILVER_BULLION, UNIT_GRAM
from goldbook.services import settlement_service
from goldbook.services.settlement_service import (
    complete_delivery,
    list_physical_settlements,
    record_physical_settlement,
)
from goldbook.services.stock_service import get_bucket, get_stock_summary
from goldbook.services.transaction_service import get_transaction, save_transaction
from goldbook.services.weight_ledger_service import get_weight_balance, list_contact_ledger


def test_coin_receipt_adds_count_stock_only(db_session, coin_product, catalog):
    tx = save_transaction(transaction_data("buy", [coin_row(coin_product, quantity="5")]), catalog=catalog)

    settled = complete_delivery(tx.id, "receipt", actor_user_id=9)

    assert settled.delivery_status == "completed"
    assert settled.delivery_date is not None
    assert settled.updated_by_user_id == 9
    bucket = get_bucket("product", "COIN-EMAMI")
    assert bucket.quantity == 5
    assert db_session.query(ContactWeightLedgerEntry).count() == 0

    movement = db_session.query(InventoryLedgerEntry).one()
    assert movement.event_type == "PURCHASE"
    assert movement.change_quantity == 5
    assert movement.quantity_after == 5


def test_weight_delivery_moves_stock_and_nets_ledger(db_session, melted_product, melted_category, catalog):
    tx = save_transaction(
        transaction_data("sell", [melted_row(melted_product, carat="900")]),
        catalog=catalog,
    )
    assert get_weight_balance(42, melted_category.id) == 12.0

    complete_delivery(tx.id, "delivery")

    bucket = get_bucket("carat", "900")
    assert bucket.weight_grams == -10.0
    entries = list_contact_ledger(42, melted_category.id)
    assert [e.event_type for e in entries] == ["TRANSACTION", "DELIVERY"]
    assert entries[-1].change_weight_grams == -12.0
    assert get_weight_balance(42, melted_category.id) == 0.0

    movement = db_session.query(InventoryLedgerEntry).one()
    assert movement.event_type == "SALE"
    assert movement.change_weight_grams == -10.0


def test_receipt_then_delivery_accumulates_buckets(db_session, melted_product, catalog):
    buy = save_transaction(
        transaction_data("buy", [melted_row(melted_product, weight="20", carat="750")]),
        catalog=catalog,
    )
    sell = save_transaction(
        transaction_data("sell", [melted_row(melted_product, weight="7.5", carat="750")], contact_id=43),
        catalog=catalog,
    )
    complete_delivery(buy.id, "receipt")
    complete_delivery(sell.id, "delivery")

    summary = get_stock_summary()
    assert [b["bucket_key"] for b in summary["by_carat"]] == ["750"]
    assert summary["by_carat"][0]["weight_grams"] == 12.5
    assert summary["total_weight_750"] == 12.5

    movements = db_session.query(InventoryLedgerEntry).order_by(InventoryLedgerEntry.id).all()
    assert [m.weight_grams_after for m in movements] == [20.0, 12.5]


@pytest.mark.parametrize("transaction_type,action", [("sell", "receipt"), ("buy", "delivery")])
def test_type_mismatch_changes_nothing(db_session, melted_product, catalog, transaction_type, action):
    tx = save_transaction(transaction_data(transaction_type, [melted_row(melted_product)]), catalog=catalog)
    ledger_before = db_session.query(ContactWeightLedgerEntry).count()

    with pytest.raises(StateError):
        complete_delivery(tx.id, action)

    assert get_transaction(tx.id).delivery_status != "completed"
    assert db_session.query(StockBucket).count() == 0
    assert db_session.query(ContactWeightLedgerEntry).count() == ledger_before


def test_settlement_happens_once(db_session, coin_product, catalog):
    tx = save_transaction(transaction_data("buy", [coin_row(coin_product)]), catalog=catalog)
    complete_delivery(tx.id, "receipt")

    with pytest.raises(StateError):
        complete_delivery(tx.id, "receipt")
    assert get_bucket("product", "COIN-EMAMI").quantity == 5


def test_canceled_transaction_cannot_settle(db_session, coin_product, catalog):
    tx = save_transaction(
        transaction_data("buy", [coin_row(coin_product)], delivery_status="canceled"),
        catalog=catalog,
    )
    with pytest.raises(StateError):
        complete_delivery(tx.id, "receipt")


def test_invalid_action_and_unknown_transaction(db_session):
    with pytest.raises(ValidationError):
        complete_delivery(1, "ship")
    with pytest.raises(NotFoundError):
        complete_delivery(1, "receipt")


@pytest.fixture
def silver_product(db_session):
    category = ProductCategory(name="Silver bars", code="SILVER", base_category=BASE_SILVER_BULLION)
    db_session.add(category)
    db_session.commit()
    product = Product(
        name="Silver bar",
        product_code="SILVER-BAR",
        category_id=category.id,
        unit_of_measure=UNIT_GRAM,
    )
    db_session.add(product)
    db_session.commit()
    return product


def test_failure_midway_rolls_back_settlement(db_session, melted_product, catalog, monkeypatch):
    tx = save_transaction(transaction_data("sell", [melted_row(melted_product, carat="900")]), catalog=catalog)

    def _broken(**kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(settlement_service, "record_weight_change", _broken)
    with pytest.raises(RuntimeError):
        complete_delivery(tx.id, "delivery")

    assert get_transaction(tx.id).delivery_status == "pending_delivery"
    assert db_session.query(StockBucket).count() == 0
    assert db_session.query(InventoryLedgerEntry).count() == 0
    assert [e.event_type for e in db_session.query(ContactWeightLedgerEntry).all()] == ["TRANSACTION"]


def test_weight_without_carat_is_kept_per_product(db_session, silver_product, catalog):
    row = {
        "product_id": str(silver_product.id),
        "item_weight_scale_silverbullion": "250",
        "item_unit_price_silverbullion": "900,000",
    }
    tx = save_transaction(transaction_data("buy", [row]), catalog=catalog)
    complete_delivery(tx.id, "receipt")

    assert get_bucket("carat", "0") is None
    bucket = get_bucket("product", "SILVER-BAR")
    assert bucket.weight_grams == Decimal("250")
    assert bucket.quantity == 0
    summary = get_stock_summary()
    assert summary["by_carat"] == []
    assert summary["total_weight_750"] == 0


class TestPhysicalSettlement:
    def test_inflow_posts_settlement_entry(self, db_session, melted_product, melted_category):
        settlement = record_physical_settlement(
            42,
            "inflow",
            [
                {"product_id": melted_product.id, "weight_grams": "10", "carat": "900", "tag_number": "T-9"},
                {"product_id": melted_product.id, "weight": "3", "carat": "750"},
            ],
            notes="scrap brought in",
            actor_user_id=3,
        )

        assert settlement.direction == "inflow"
        assert settlement.total_weight_750 == Decimal("15")
        assert [i.weight_750 for i in settlement.items] == [Decimal("12"), Decimal("3")]
        assert settlement.items[0].tag_number == "T-9"

        entries = list_contact_ledger(42, melted_category.id)
        assert len(entries) == 1
        assert entries[0].event_type == "SETTLEMENT"
        assert entries[0].change_weight_grams == Decimal("15")
        assert entries[0].related_settlement_id == settlement.id
        assert entries[0].related_transaction_id is None
        assert db_session.query(StockBucket).count() == 0

    def test_outflow_offsets_open_sale_commitment(self, db_session, melted_product, melted_category, catalog):
        save_transaction(transaction_data("sell", [melted_row(melted_product, carat="900")]), catalog=catalog)
        assert get_weight_balance(42, melted_category.id) == Decimal("12")

        record_physical_settlement(42, "OUTFLOW", [{"product_id": melted_product.id, "weight_grams": "16", "carat": "750"}])

        assert get_weight_balance(42, melted_category.id) == Decimal("-4")
        assert [e.event_type for e in list_contact_ledger(42)] == ["TRANSACTION", "SETTLEMENT"]
        assert [s.direction for s in list_physical_settlements(42)] == ["outflow"]

    @pytest.mark.parametrize("direction,items", [
        ("sideways", [{"product_id": 1, "weight_grams": "1", "carat": "750"}]),
        ("inflow", []),
        ("inflow", [{"product_id": 1, "weight_grams": "0", "carat": "750"}]),
        ("inflow", [{"product_id": 1, "weight_grams": "1", "carat": "1200"}]),
        ("inflow", [{"weight_grams": "1", "carat": "750"}]),
    ])
    def test_invalid_input_rejected(self, db_session, direction, items):
        with pytest.raises(ValidationError):
            record_physical_settlement(42, direction, items)
        assert db_session.query(PhysicalSettlement).count() == 0

    def test_count_product_or_unknown_product_writes_nothing(self, db_session, melted_product, coin_product):
        rows = [
            {"product_id": melted_product.id, "weight_grams": "2", "carat": "750"},
            {"product_id": coin_product.id, "weight_grams": "8", "carat": "900"},
        ]
        with pytest.raises(ValidationError):
            record_physical_settlement(42, "inflow", rows)
        with pytest.raises(NotFoundError):
            record_physical_settlement(42, "inflow", [{"product_id": 999, "weight_grams": "2", "carat": "750"}])

        assert db_session.query(PhysicalSettlement).count() == 0
        assert db_session.query(ContactWeightLedgerEntry).count() == 0
