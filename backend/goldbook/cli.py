# Overview: Flask CLI commands for trade bootstrap and inspection.

# backend/goldbook/cli.py
# Commands Legend (run from the backend directory, FLASK_APP=goldbook):
# - python -m flask trades init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - python -m flask trades load-formulas [PATH] [--replace]
#   Upsert formula definitions from JSON; defaults to FORMULAS_PATH.
#   --replace deletes formulas missing from the file.
# - python -m flask trades stock
#   Print physical stock buckets (by carat and by product code).
# - python -m flask trades ledger CONTACT_ID [--category-id 3]
#   Print a counterparty's weight ledger with running balances.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .services.formula_service import load_formulas_from_json
from .services.stock_service import get_stock_summary
from .services.weight_ledger_service import list_contact_ledger


@click.group('trades')
def trades_group():
    """Trade bootstrap and inspection commands."""


@trades_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created")


@trades_group.command('load-formulas')
@click.argument('path', required=False, type=click.Path(exists=True, dir_okay=False))
@click.option('--replace', is_flag=True, help='Delete formulas not present in the file')
@with_appcontext
def load_formulas(path, replace):
    """Load formula definitions from a JSON file."""
    path = path or current_app.config["FORMULAS_PATH"]
    try:
        count = load_formulas_from_json(path, replace=replace)
    except ValidationError as e:
        click.echo(f"FAIL Formulas in {path} were not loaded: {e.message}")
        return
    click.echo(f"PASS Loaded {count} formulas from {path}")


@trades_group.command('stock')
@with_appcontext
def show_stock():
    """Print physical stock buckets."""
    summary = get_stock_summary()

    click.echo("Weight stock by carat:")
    if not summary["by_carat"]:
        click.echo("  (none)")
    for bucket in summary["by_carat"]:
        click.echo(f"  carat {bucket['bucket_key']:>4}: {bucket['weight_grams']:.4f} g")

    click.echo("Stock by product code:")
    if not summary["by_product"]:
        click.echo("  (none)")
    for bucket in summary["by_product"]:
        line = f"  {bucket['bucket_key']}: {bucket['quantity']}"
        if bucket["weight_grams"]:
            line += f" ({bucket['weight_grams']:.4f} g)"
        click.echo(line)

    click.echo(f"Total 750-equivalent weight: {summary['total_weight_750']:.4f} g")


@trades_group.command('ledger')
@click.argument('contact_id', type=int)
@click.option('--category-id', type=int, default=None, help='Only this product category')
@with_appcontext
def show_ledger(contact_id, category_id):
    """Print a counterparty's weight ledger."""
    entries = list_contact_ledger(contact_id, category_id)
    if not entries:
        click.echo(f"No weight ledger entries for contact {contact_id}")
        return

    for entry in entries:
        click.echo(
            f"#{entry.id} cat={entry.product_category_id} {entry.event_type:<11} "
            f"{entry.change_weight_grams:+.4f} -> {entry.balance_after_grams:.4f} "
            f"tx={entry.related_transaction_id or '-'} settlement={entry.related_settlement_id or '-'}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(trades_group)
