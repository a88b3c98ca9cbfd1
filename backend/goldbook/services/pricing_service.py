"""
Item pricing: the authoritative price, profit, fee and tax figures of one item.

Whatever the client computed is ignored; the item is re-priced from its
inputs, the product's tax configuration and the transaction's market rate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from ..errors import ValidationError
from ..models import Product
from ..models.catalog import TAX_BASE_PROFIT_ONLY, TAX_BASE_WAGE_PROFIT
from ..number_utils import parse_number, round_half_up
from .formula_service import FormulaCatalog
from .item_types import TradeItem, parse_item
from .weight_ledger_service import normalize_weight


@dataclass(frozen=True)
class PricedItem:
    item: TradeItem
    product_id: int
    category_id: int
    base_category: str
    weight_based: bool
    unit_price: float
    total_value: float
    profit_amount: float
    fee_amount: float
    manufacturing_fee_percent: float
    manufacturing_fee_amount: float
    general_tax: float
    vat: float
    weight_750: float
    values: dict = field(default_factory=dict, compare=False)

    def summary_row(self) -> dict[str, float]:
        """Fields summed by summary formulas."""
        return {
            "total_value": self.total_value,
            "profit_amount": self.profit_amount,
            "fee_amount": self.fee_amount,
            "manufacturing_fee_amount": self.manufacturing_fee_amount,
            "general_tax": self.general_tax,
            "vat": self.vat,
            "weight_750": self.weight_750,
        }


def tax_base(base_type: str | None, profit: float, wage: float) -> float:
    if base_type == TAX_BASE_WAGE_PROFIT:
        return profit + wage
    if base_type == TAX_BASE_PROFIT_ONLY:
        return profit
    return 0.0


def _tax(enabled: bool, base_type: str | None, rate: float | None, profit: float, wage: float) -> float:
    if not enabled:
        return 0.0
    base = tax_base(base_type, profit, wage)
    return round_half_up(base * (rate or 0.0) / 100.0, 0)


def price_item(
    row: Mapping | TradeItem,
    product: Product,
    *,
    mazaneh_price,
    catalog: FormulaCatalog,
    index: int | None = None,
) -> PricedItem:
    if isinstance(row, TradeItem):
        item = row
    else:
        item = parse_item(row, product.base_category, index=index)

    if item.base_category != product.base_category:
        raise ValidationError(
            f"Item of category {item.base_category} cannot use product {product.id} "
            f"({product.base_category})"
        )

    values: dict[str, object] = dict(item.formula_values())
    values.update({
        "mazaneh_price": parse_number(mazaneh_price) or 0.0,
        "product_group": item.group,
        "tax_enabled": 1.0 if product.tax_enabled else 0.0,
        "tax_rate": float(product.tax_rate or 0.0),
        "vat_enabled": 1.0 if product.vat_enabled else 0.0,
        "vat_rate": float(product.vat_rate or 0.0),
    })

    outputs = catalog.calculate_all_for_item(values)
    merged = {**values, **outputs}

    def number(name: str) -> float:
        return parse_number(merged.get(name)) or 0.0

    profit = number("profit_amount")
    wage = number("manufacturing_fee_amount")
    general_tax = _tax(product.tax_enabled, product.general_tax_base_type, product.tax_rate, profit, wage)
    vat = _tax(product.vat_enabled, product.vat_base_type, product.vat_rate, profit, wage)
    weight_750 = normalize_weight(item.weight_grams, item.carat) if product.is_weight_based else 0.0

    merged.update({
        "general_tax": general_tax,
        "vat": vat,
        "weight_750": weight_750,
    })

    return PricedItem(
        item=item,
        product_id=product.id,
        category_id=product.category_id,
        base_category=product.base_category,
        weight_based=product.is_weight_based,
        unit_price=number("unit_price"),
        total_value=number("total_value"),
        profit_amount=profit,
        fee_amount=number("fee_amount"),
        manufacturing_fee_percent=number("manufacturing_fee_percent"),
        manufacturing_fee_amount=wage,
        general_tax=general_tax,
        vat=vat,
        weight_750=weight_750,
        values=merged,
    )
