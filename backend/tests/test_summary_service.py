from conftest import coin_row, melted_row
from goldbook.services.pricing_service import price_item
from goldbook.services.summary_service import TransactionSummary, summarize_items


def test_summary_of_melted_scenario(melted_product, catalog):
    priced = price_item(melted_row(melted_product), melted_product, mazaneh_price=0, catalog=catalog)
    summary = summarize_items([priced])

    assert summary == TransactionSummary(
        total_items_value=10000000,
        total_profit_wage_fee=200000,
        total_general_tax=18000,
        total_before_vat=10218000,
        total_vat=0,
        final_payable_amount=10218000,
    )


def test_summary_identity_holds_for_mixed_items(melted_product, manufactured_product, coin_product, catalog):
    rows = [
        (melted_row(melted_product, weight="3.217", carat="705", unit_price="1,234,567", profit="1.5"), melted_product),
        ({
            "product_id": manufactured_product.id,
            "item_weight_scale_manufactured": "7.05",
            "item_carat_manufactured": "740",
            "item_unit_price_manufactured": "2,345,678",
            "item_manufacturing_fee_rate_manufactured": "12.5",
            "item_profit_percent_manufactured": "7",
            "item_fee_percent_manufactured": "0.5",
        }, manufactured_product),
        (coin_row(coin_product, quantity="3", unit_price="31,500,000"), coin_product),
    ]
    priced = [price_item(row, product, mazaneh_price=0, catalog=catalog) for row, product in rows]
    summary = summarize_items(priced)

    assert all(isinstance(v, int) for v in summary.as_dict().values())
    assert summary.final_payable_amount == (
        summary.total_items_value
        + summary.total_profit_wage_fee
        + summary.total_general_tax
        + summary.total_vat
    )
    assert summary.total_before_vat == summary.final_payable_amount - summary.total_vat


def test_summary_formulas_agree_with_aggregator(melted_product, coin_product, catalog):
    priced = [
        price_item(melted_row(melted_product), melted_product, mazaneh_price=0, catalog=catalog),
        price_item(coin_row(coin_product), coin_product, mazaneh_price=0, catalog=catalog),
    ]
    by_formula = catalog.calculate_transaction_summary(p.summary_row() for p in priced)
    assert by_formula == {k: float(v) for k, v in summarize_items(priced).as_dict().items()}


def test_empty_summary_is_zero():
    assert summarize_items([]).as_dict() == TransactionSummary().as_dict()
