from conftest import melted_row, transaction_data
from goldbook.models import Formula
from goldbook.services.settlement_service import complete_delivery
from goldbook.services.transaction_service import save_transaction


def test_load_formulas_defaults_to_packaged_file(app, db_session):
    result = app.test_cli_runner().invoke(args=["trades", "load-formulas"])
    assert result.exit_code == 0, result.output
    assert "PASS Loaded" in result.output
    assert db_session.query(Formula).filter_by(name="melted_total_value").count() == 1


def test_stock_and_ledger_output(app, db_session, melted_product, catalog):
    tx = save_transaction(transaction_data("sell", [melted_row(melted_product, carat="900")]), catalog=catalog)
    complete_delivery(tx.id, "delivery")
    runner = app.test_cli_runner()

    stock = runner.invoke(args=["trades", "stock"])
    assert stock.exit_code == 0, stock.output
    assert "carat  900: -10.0000 g" in stock.output

    ledger = runner.invoke(args=["trades", "ledger", "42"])
    assert ledger.exit_code == 0, ledger.output
    assert "TRANSACTION" in ledger.output
    assert "+12.0000 -> 12.0000" in ledger.output
    assert "-12.0000 -> 0.0000" in ledger.output


def test_ledger_without_entries(app, db_session):
    result = app.test_cli_runner().invoke(args=["trades", "ledger", "7"])
    assert "No weight ledger entries for contact 7" in result.output


def test_load_formulas_reports_invalid_file(app, db_session, tmp_path):
    path = tmp_path / "formulas.json"
    path.write_text(
        '[{"name": "a", "group": "coin", "expression": "1", "priority": "soon"}]',
        encoding="utf-8",
    )
    result = app.test_cli_runner().invoke(args=["trades", "load-formulas", str(path)])
    assert result.exit_code == 0, result.output
    assert "FAIL" in result.output
    assert "invalid priority" in result.output
    assert db_session.query(Formula).count() == 0
