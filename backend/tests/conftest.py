"""
Pytest fixtures for goldbook backend tests.

Provides the app with an in-memory database, a per-test clean session,
a small product catalog and the default formula catalog.
"""

import pytest
from goldbook import create_app
from goldbook.extensions import db
from goldbook.models import Product, ProductCategory
from goldbook.models.catalog import (
    BASE_COIN,
    BASE_MANUFACTURED,
    BASE_MELTED,
    TAX_BASE_PROFIT_ONLY,
    TAX_BASE_WAGE_PROFIT,
    UNIT_COUNT,
    UNIT_GRAM,
)
from goldbook.services.formula_service import FormulaCatalog, invalidate_formula_catalog


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'FORMULA_STRICT': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        invalidate_formula_catalog()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def catalog(app):
    """Default formula definitions shipped with the package."""
    return FormulaCatalog.from_json(app.config['FORMULAS_PATH'])


@pytest.fixture(scope='function')
def melted_category(db_session):
    category = ProductCategory(name="Melted gold", code="MELTED", base_category=BASE_MELTED)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def manufactured_category(db_session):
    category = ProductCategory(name="Manufactured gold", code="MANUF", base_category=BASE_MANUFACTURED)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def coin_category(db_session):
    category = ProductCategory(name="Coins", code="COIN", base_category=BASE_COIN)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def melted_product(db_session, melted_category):
    """Weight-based product taxed 9% on profit only."""
    product = Product(
        name="Melted 750",
        product_code="MELT-750",
        category_id=melted_category.id,
        unit_of_measure=UNIT_GRAM,
        default_carat=750,
        tax_enabled=True,
        tax_rate=9.0,
        general_tax_base_type=TAX_BASE_PROFIT_ONLY,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def manufactured_product(db_session, manufactured_category):
    """Weight-based product taxed 9% and VAT 10% on wage + profit."""
    product = Product(
        name="Ring",
        product_code="RING-01",
        category_id=manufactured_category.id,
        unit_of_measure=UNIT_GRAM,
        default_carat=750,
        tax_enabled=True,
        tax_rate=9.0,
        general_tax_base_type=TAX_BASE_WAGE_PROFIT,
        vat_enabled=True,
        vat_rate=10.0,
        vat_base_type=TAX_BASE_WAGE_PROFIT,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def coin_product(db_session, coin_category):
    """Count-based product without taxes."""
    product = Product(
        name="Emami coin",
        product_code="COIN-EMAMI",
        category_id=coin_category.id,
        unit_of_measure=UNIT_COUNT,
    )
    db_session.add(product)
    db_session.commit()
    return product


def melted_row(product, *, weight="10", carat="750", unit_price="1,000,000", profit="2", **extra):
    """Submitted melted item row, keyed the way the entry form posts it."""
    row = {
        "product_id": str(product.id),
        "item_weight_scale_melted": weight,
        "item_carat_melted": carat,
        "item_unit_price_melted": unit_price,
        "item_profit_percent_melted": profit,
    }
    row.update(extra)
    return row


def coin_row(product, *, quantity="5", unit_price="30,000,000", **extra):
    row = {
        "product_id": str(product.id),
        "item_quantity_coin": quantity,
        "item_unit_price_coin": unit_price,
    }
    row.update(extra)
    return row


def transaction_data(transaction_type, items, *, contact_id=42, **extra):
    data = {
        "transaction_type": transaction_type,
        "counterparty_contact_id": contact_id,
        "transaction_date": "2026-10-19T10:30:00",
        "mazaneh_price": "43,318,000",
        "items": items,
    }
    data.update(extra)
    return data
