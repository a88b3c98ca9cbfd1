"""
Typed trade item variants.

Submitted rows arrive keyed by category-suffixed names (item_weight_scale_melted,
item_quantity_coin, ...). parse_item() reads such a row exactly once into the
variant for its base category; everything downstream works with typed fields.
Client-computed values (totals, profit, tax) are never read.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import ClassVar, Mapping

from ..errors import ValidationError
from ..models.catalog import (
    BASE_BULLION,
    BASE_COIN,
    BASE_GOLD_BULLION,
    BASE_JEWELRY,
    BASE_MANUFACTURED,
    BASE_MELTED,
    BASE_SILVER_BULLION,
    group_token,
)
from ..models.trades import CATEGORY_ATTRIBUTES
from ..number_utils import parse_number

MAX_CARAT = 1000

# attribute -> (raw field stem, kind); raw name is item_<stem>_<group token>
_COMMON_FIELDS = {
    "weight_grams": ("weight_scale", "float"),
    "carat": ("carat", "int"),
    "quantity": ("quantity", "int"),
    "unit_price": ("unit_price", "float"),
    "profit_percent": ("profit_percent", "float"),
    "fee_percent": ("fee_percent", "float"),
}

_PERCENT_FIELDS = ("profit_percent", "fee_percent", "manufacturing_fee_percent")


@dataclass
class TradeItem:
    """Fields shared by every category; subclasses add their own."""
    base_category: ClassVar[str] = ""
    requires_weight: ClassVar[bool] = True
    requires_carat: ClassVar[bool] = True
    requires_quantity: ClassVar[bool] = False
    raw_fields: ClassVar[dict] = {}

    product_id: int = 0
    id: int | None = None
    description: str | None = None
    weight_grams: float | None = None
    carat: int | None = None
    quantity: int | None = None
    unit_price: float = 0.0
    profit_percent: float = 0.0
    fee_percent: float = 0.0

    @property
    def group(self) -> str:
        return group_token(self.base_category)

    def formula_values(self) -> dict[str, float]:
        """Numeric inputs exposed to formulas under their plain names."""
        values: dict[str, float] = {}
        for f in fields(self):
            if f.name in ("id", "product_id"):
                continue
            value = getattr(self, f.name)
            if isinstance(value, bool):
                values[f.name] = 1.0 if value else 0.0
            elif isinstance(value, (int, float)):
                values[f.name] = float(value)
            elif value is None and f.name in self.raw_fields:
                kind = self.raw_fields[f.name][1]
                if kind in ("float", "int"):
                    values[f.name] = 0.0
        return values

    def category_attributes(self) -> dict[str, object]:
        return {
            name: getattr(self, name)
            for name in self.raw_fields
            if name in CATEGORY_ATTRIBUTES
        }

    def validate(self, label: str) -> None:
        if self.requires_weight and not (self.weight_grams and self.weight_grams > 0):
            raise ValidationError(f"{label}: weight must be greater than zero", details={"field": "weight_grams"})
        if self.carat is not None and not (0 < self.carat <= MAX_CARAT):
            raise ValidationError(f"{label}: carat must be between 1 and {MAX_CARAT}", details={"field": "carat"})
        if self.requires_carat and self.carat is None:
            raise ValidationError(f"{label}: carat is required", details={"field": "carat"})
        if self.requires_quantity and not (self.quantity and self.quantity > 0):
            raise ValidationError(f"{label}: quantity must be greater than zero", details={"field": "quantity"})
        if self.unit_price < 0:
            raise ValidationError(f"{label}: unit price cannot be negative", details={"field": "unit_price"})
        for name in _PERCENT_FIELDS:
            value = getattr(self, name, 0.0) or 0.0
            if not 0 <= value <= 100:
                raise ValidationError(f"{label}: {name} must be between 0 and 100", details={"field": name})


@dataclass
class MeltedItem(TradeItem):
    base_category: ClassVar[str] = BASE_MELTED
    raw_fields: ClassVar[dict] = {
        **_COMMON_FIELDS,
        "assay_office_id": ("assay_office", "int"),
        "tag_number": ("tag_number", "str"),
        "tag_type": ("tag_type", "str"),
    }

    assay_office_id: int | None = None
    tag_number: str | None = None
    tag_type: str | None = None


@dataclass
class ManufacturedItem(TradeItem):
    base_category: ClassVar[str] = BASE_MANUFACTURED
    raw_fields: ClassVar[dict] = {
        **_COMMON_FIELDS,
        "manufacturing_fee_percent": ("manufacturing_fee_rate", "float"),
        "workshop_name": ("workshop", "str"),
        "stone_weight_grams": ("attachment_weight", "float"),
        "manufactured_item_type": ("type", "str"),
        "has_attachments": ("has_attachments", "bool"),
        "attachment_type": ("attachment_type", "str"),
    }

    manufacturing_fee_percent: float = 0.0
    workshop_name: str | None = None
    stone_weight_grams: float | None = None
    manufactured_item_type: str | None = None
    has_attachments: bool = False
    attachment_type: str | None = None


@dataclass
class CoinItem(TradeItem):
    base_category: ClassVar[str] = BASE_COIN
    requires_weight: ClassVar[bool] = False
    requires_carat: ClassVar[bool] = False
    requires_quantity: ClassVar[bool] = True
    raw_fields: ClassVar[dict] = {
        **_COMMON_FIELDS,
        "coin_year": ("coin_year", "int"),
        "is_bank_coin": ("type", "bool"),
        "seal_name": ("vacuum_name", "str"),
    }

    coin_year: int | None = None
    is_bank_coin: bool = False
    seal_name: str | None = None


@dataclass
class BullionItem(TradeItem):
    base_category: ClassVar[str] = BASE_BULLION
    raw_fields: ClassVar[dict] = {
        **_COMMON_FIELDS,
        "tag_number": ("bullion_number", "str"),
        "workshop_name": ("manufacturer", "str"),
    }

    tag_number: str | None = None
    workshop_name: str | None = None


@dataclass
class GoldBullionItem(BullionItem):
    base_category: ClassVar[str] = BASE_GOLD_BULLION


@dataclass
class SilverBullionItem(BullionItem):
    base_category: ClassVar[str] = BASE_SILVER_BULLION
    requires_carat: ClassVar[bool] = False


@dataclass
class JewelryItem(TradeItem):
    base_category: ClassVar[str] = BASE_JEWELRY
    requires_carat: ClassVar[bool] = False
    raw_fields: ClassVar[dict] = {
        **_COMMON_FIELDS,
        "weight_grams": ("weight_carat", "float"),
        "jewelry_type": ("type", "str"),
        "jewelry_color": ("color", "str"),
        "jewelry_quality": ("quality_grade", "str"),
    }

    jewelry_type: str | None = None
    jewelry_color: str | None = None
    jewelry_quality: str | None = None


ITEM_TYPES: dict[str, type[TradeItem]] = {
    cls.base_category: cls
    for cls in (
        MeltedItem,
        ManufacturedItem,
        CoinItem,
        BullionItem,
        GoldBullionItem,
        SilverBullionItem,
        JewelryItem,
    )
}

_TRUTHY = ("1", "true", "yes", "on", "bank")


def _coerce(kind: str, value, label: str, name: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if kind == "str":
        return str(value).strip()
    if kind == "bool":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUTHY
    number = parse_number(value)
    if number is None:
        raise ValidationError(f"{label}: {name} must be numeric", details={"field": name, "value": value})
    if kind == "int":
        return int(round(number))
    return number


def _lookup(row: Mapping, stem: str, token: str, name: str):
    suffixed = f"item_{stem}_{token}"
    if suffixed in row:
        return row[suffixed]
    return row.get(name)


def parse_item(row: Mapping, base_category: str, *, index: int | None = None) -> TradeItem:
    """Build the typed variant for a submitted row of the given base category."""
    cls = ITEM_TYPES.get(base_category)
    label = f"Item {index + 1}" if index is not None else "Item"
    if cls is None:
        raise ValidationError(f"{label}: unknown base category {base_category!r}")

    token = group_token(base_category)
    kwargs: dict[str, object] = {}
    for name, (stem, kind) in cls.raw_fields.items():
        value = _coerce(kind, _lookup(row, stem, token, name), label, name)
        if value is not None:
            kwargs[name] = value

    product_id = parse_number(row.get("product_id"))
    if product_id is None:
        raise ValidationError(f"{label}: product_id is required", details={"field": "product_id"})
    item_id = parse_number(row.get("id"))
    description = row.get("item_description", row.get("description"))

    item = cls(
        product_id=int(product_id),
        id=int(item_id) if item_id else None,
        description=str(description).strip() if description else None,
        **kwargs,
    )
    item.validate(label)
    return item
