from decimal import Decimal

import pytest

from conftest import melted_row, transaction_data
from goldbook.errors import NotFoundError, StateError, ValidationError
from goldbook.models import InitialBalance, InventoryLedgerEntry, StockBucket
from goldbook.services.initial_balance_service import (
    create_initial_balance,
    get_initial_balance,
    list_initial_balances,
)
from goldbook.services.settlement_service import complete_delivery
from goldbook.services.stock_service import get_bucket
from goldbook.services.transaction_service import save_transaction


class TestCreateInitialBalance:
    def test_weight_product_seeds_carat_bucket_and_ledger(self, db_session, melted_product):
        balance = create_initial_balance(
            {
                "product_id": melted_product.id,
                "balance_date": "2026-10-01",
                "weight_grams": "100",
                "carat": "900",
                "average_purchase_price_per_unit": "10,000,000",
            },
            actor_user_id=2,
        )

        assert balance.weight_750 == Decimal("120")
        assert balance.total_purchase_value == 1_200_000_000
        assert balance.created_by_user_id == 2
        assert get_bucket("carat", "900").weight_grams == Decimal("100")

        movement = db_session.query(InventoryLedgerEntry).one()
        assert movement.event_type == "INITIAL"
        assert movement.initial_balance_id == balance.id
        assert movement.transaction_id is None
        assert movement.weight_grams_after == Decimal("100")

    def test_carat_defaults_to_product_and_market_price_sets_average(self, db_session, melted_product):
        balance = create_initial_balance({
            "product_id": melted_product.id,
            "weight_grams": "10",
            "market_price": "43,318,000",
        })
        assert balance.carat == 750
        assert balance.average_purchase_price_per_unit == 10_000_000
        assert balance.total_purchase_value == 100_000_000

    def test_count_product_seeds_quantity(self, db_session, coin_product):
        balance = create_initial_balance({
            "product_id": coin_product.id,
            "quantity": "12",
            "average_purchase_price_per_unit": "30,000,000",
        })
        assert balance.quantity == 12
        assert balance.total_purchase_value == 360_000_000
        assert get_bucket("product", "COIN-EMAMI").quantity == 12
        assert db_session.query(InventoryLedgerEntry).one().quantity_after == 12

    def test_settlement_continues_from_opening_balance(self, db_session, melted_product, catalog):
        create_initial_balance({"product_id": melted_product.id, "weight_grams": "50", "carat": "750"})
        tx = save_transaction(transaction_data("sell", [melted_row(melted_product, weight="7.5")]), catalog=catalog)
        complete_delivery(tx.id, "delivery")

        movements = db_session.query(InventoryLedgerEntry).order_by(InventoryLedgerEntry.id).all()
        assert [m.event_type for m in movements] == ["INITIAL", "SALE"]
        assert movements[-1].weight_grams_after == Decimal("42.5")
        assert get_bucket("carat", "750").weight_grams == Decimal("42.5")


class TestInitialBalanceRules:
    def test_one_opening_balance_per_product(self, db_session, coin_product):
        create_initial_balance({"product_id": coin_product.id, "quantity": "1"})
        with pytest.raises(StateError):
            create_initial_balance({"product_id": coin_product.id, "quantity": "2"})

        assert get_initial_balance(coin_product.id).quantity == 1
        assert len(list_initial_balances()) == 1
        assert get_bucket("product", "COIN-EMAMI").quantity == 1

    @pytest.mark.parametrize("data", [
        {"weight_grams": "0"},
        {"weight_grams": "5", "carat": "2000"},
        {"weight_grams": "5", "balance_date": "yesterday"},
        {"weight_grams": "5", "average_purchase_price_per_unit": "-1"},
    ])
    def test_invalid_weight_balance_rejected(self, db_session, melted_product, data):
        with pytest.raises(ValidationError):
            create_initial_balance({"product_id": melted_product.id, **data})
        assert db_session.query(InitialBalance).count() == 0
        assert db_session.query(StockBucket).count() == 0

    def test_count_product_needs_whole_quantity(self, db_session, coin_product):
        with pytest.raises(ValidationError):
            create_initial_balance({"product_id": coin_product.id, "quantity": "1.5"})
        with pytest.raises(ValidationError):
            create_initial_balance({"product_id": coin_product.id})

    def test_unknown_product(self, db_session):
        with pytest.raises(ValidationError):
            create_initial_balance({})
        with pytest.raises(NotFoundError):
            create_initial_balance({"product_id": 404})
