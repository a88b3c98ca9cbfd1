"""
Opening balances: stock a product held before the first recorded transaction.

Creating one writes the balance row, moves the product's stock bucket and
appends an INITIAL row to the inventory ledger, all in one unit of work.
"""

from __future__ import annotations

import logging
from typing import Mapping

from ..errors import NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import InitialBalance, Product
from ..models.catalog import BASE_COIN, BASE_JEWELRY
from ..models.ledgers import EVENT_INITIAL
from ..number_utils import parse_number, to_money, to_weight
from goldbook.time_utils import coerce_datetime, utcnow
from .concurrency import run_atomic
from .item_types import MAX_CARAT
from .stock_service import adjust_product_stock, adjust_weight_stock, record_inventory_movement
from .weight_ledger_service import normalize_weight


logger = logging.getLogger(__name__)

# grams per mithqal; market (mazaneh) prices are quoted per mithqal
MITHQAL_GRAMS = 4.3318


def _parse_balance(data: Mapping, product: Product) -> dict:
    label = f"Opening balance of {product.product_code or product.name}"
    try:
        balance_date = coerce_datetime(data["balance_date"]) if data.get("balance_date") else utcnow()
    except ValueError as exc:
        raise ValidationError(f"{label}: invalid date", details={"field": "balance_date"}) from exc

    quantity = parse_number(data.get("quantity")) or 0
    weight = parse_number(data.get("weight_grams")) or 0
    carat = parse_number(data.get("carat"))
    if carat is None:
        carat = product.default_carat

    if product.is_weight_based:
        if weight <= 0:
            raise ValidationError(f"{label}: weight must be greater than zero", details={"field": "weight_grams"})
        if carat is not None and not (0 < carat <= MAX_CARAT):
            raise ValidationError(f"{label}: carat must be between 1 and {MAX_CARAT}", details={"field": "carat"})
    elif quantity <= 0 or quantity != int(quantity):
        raise ValidationError(f"{label}: quantity must be a positive whole number", details={"field": "quantity"})

    carat = int(carat) if carat and product.is_weight_based else None
    weight_750 = to_weight(normalize_weight(weight, carat)) if product.is_weight_based else to_weight(0)

    average_price = parse_number(data.get("average_purchase_price_per_unit")) or 0
    market_price = parse_number(data.get("market_price"))
    if market_price and product.base_category not in (BASE_COIN, BASE_JEWELRY):
        average_price = market_price / MITHQAL_GRAMS
    if average_price < 0:
        raise ValidationError(
            f"{label}: average purchase price cannot be negative",
            details={"field": "average_purchase_price_per_unit"},
        )

    total_value = parse_number(data.get("total_purchase_value"))
    if not total_value:
        basis = quantity if not product.is_weight_based else float(weight_750)
        total_value = basis * average_price

    return {
        "balance_date": balance_date,
        "quantity": int(quantity) if not product.is_weight_based else 0,
        "weight_grams": to_weight(weight) if product.is_weight_based else to_weight(0),
        "carat": carat,
        "weight_750": weight_750,
        "average_purchase_price_per_unit": to_money(average_price),
        "total_purchase_value": to_money(total_value),
        "notes": data.get("notes"),
    }


def create_initial_balance(data: Mapping, *, actor_user_id: int | None = None) -> InitialBalance:
    """
    Record a product's opening stock.

    data carries product_id, balance_date, quantity (count products) or
    weight_grams and carat (weight products), and optionally
    average_purchase_price_per_unit, market_price and total_purchase_value.
    """
    product_id = parse_number(data.get("product_id"))
    if product_id is None:
        raise ValidationError("Product is required", details={"field": "product_id"})

    def _op():
        product = db.session.get(Product, int(product_id))
        if product is None:
            raise NotFoundError(f"Product {int(product_id)} not found")
        if db.session.query(InitialBalance).filter_by(product_id=product.id).first() is not None:
            raise StateError(f"Product {product.id} already has an opening balance")

        balance = InitialBalance(product_id=product.id, created_by_user_id=actor_user_id, **_parse_balance(data, product))
        db.session.add(balance)
        db.session.flush()

        note = f"Opening balance #{balance.id}"
        if product.is_weight_based:
            adjust_weight_stock(product, balance.carat, balance.weight_grams)
            record_inventory_movement(
                product_id=product.id,
                initial_balance_id=balance.id,
                event_type=EVENT_INITIAL,
                change_weight_grams=balance.weight_grams,
                notes=note,
            )
        else:
            adjust_product_stock(product, balance.quantity)
            record_inventory_movement(
                product_id=product.id,
                initial_balance_id=balance.id,
                event_type=EVENT_INITIAL,
                change_quantity=balance.quantity,
                notes=note,
            )
        return balance

    balance = run_atomic(_op, label=f"Creating opening balance for product {int(product_id)}")
    logger.info(
        "Opening balance %s created for product %s (quantity=%s, weight_750=%s)",
        balance.id, balance.product_id, balance.quantity, balance.weight_750,
    )
    return balance


def get_initial_balance(product_id: int) -> InitialBalance | None:
    return db.session.query(InitialBalance).filter_by(product_id=product_id).first()


def list_initial_balances() -> list[InitialBalance]:
    return db.session.query(InitialBalance).order_by(InitialBalance.id.asc()).all()
