from __future__ import annotations

import json

from ..extensions import db
from goldbook.time_utils import to_utc_z


BASE_MELTED = "MELTED"
BASE_MANUFACTURED = "MANUFACTURED"
BASE_COIN = "COIN"
BASE_BULLION = "BULLION"
BASE_JEWELRY = "JEWELRY"
BASE_GOLD_BULLION = "GOLD_BULLION"
BASE_SILVER_BULLION = "SILVER_BULLION"

BASE_CATEGORIES = (
    BASE_MELTED,
    BASE_MANUFACTURED,
    BASE_COIN,
    BASE_BULLION,
    BASE_JEWELRY,
    BASE_GOLD_BULLION,
    BASE_SILVER_BULLION,
)

UNIT_GRAM = "gram"
UNIT_COUNT = "count"

TAX_BASE_NONE = "NONE"
TAX_BASE_WAGE_PROFIT = "WAGE_PROFIT"
TAX_BASE_PROFIT_ONLY = "PROFIT_ONLY"
TAX_BASE_TYPES = (TAX_BASE_NONE, TAX_BASE_WAGE_PROFIT, TAX_BASE_PROFIT_ONLY)

VALUE_TYPES = ("price", "amount", "weight", "percent")


def group_token(base_category: str) -> str:
    """Formula group / field-suffix token for a base category: GOLD_BULLION -> goldbullion."""
    return base_category.replace("_", "").lower()


class ProductCategory(db.Model):
    """
    Category family of a product.

    base_category drives which item fields and which formula group apply.
    Counterparty weight balances are kept per category id.
    """
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_product_categories_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(64), nullable=True)
    base_category = db.Column(db.String(32), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def group(self) -> str:
        return group_token(self.base_category)

    def __repr__(self) -> str:
        return f"<ProductCategory id={self.id} code={self.code!r} base={self.base_category}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "base_category": self.base_category,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data with its tax configuration.

    Read-only during pricing: a transaction's computation never mutates products.
    unit_of_measure decides how settlement moves stock:
    - gram  -> weight-based, bucketed by carat (by product_code without one)
    - count -> count-based, bucketed by product_code
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    product_code = db.Column(db.String(64), nullable=True, unique=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False, index=True)

    unit_of_measure = db.Column(db.String(16), nullable=False, default=UNIT_GRAM)
    default_carat = db.Column(db.Integer, nullable=True)

    tax_enabled = db.Column(db.Boolean, nullable=False, default=False)
    tax_rate = db.Column(db.Float, nullable=True)
    general_tax_base_type = db.Column(db.String(16), nullable=False, default=TAX_BASE_NONE)

    vat_enabled = db.Column(db.Boolean, nullable=False, default=False)
    vat_rate = db.Column(db.Float, nullable=True)
    vat_base_type = db.Column(db.String(16), nullable=False, default=TAX_BASE_NONE)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))

    @property
    def base_category(self) -> str:
        return self.category.base_category

    @property
    def is_weight_based(self) -> bool:
        return self.unit_of_measure == UNIT_GRAM

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "product_code": self.product_code,
            "category_id": self.category_id,
            "unit_of_measure": self.unit_of_measure,
            "default_carat": self.default_carat,
            "tax_enabled": self.tax_enabled,
            "tax_rate": self.tax_rate,
            "general_tax_base_type": self.general_tax_base_type,
            "vat_enabled": self.vat_enabled,
            "vat_rate": self.vat_rate,
            "vat_base_type": self.vat_base_type,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Formula(db.Model):
    """
    Stored formula definition.

    group NULL = transaction-level summary formula.
    fields is a JSON list of variable names the expression needs.
    """
    __tablename__ = "formulas"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_formulas_name"),
        db.Index("ix_formulas_group_priority", "group_name", "priority"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    label = db.Column(db.String(255), nullable=True)
    group_name = db.Column(db.String(32), nullable=True)
    expression = db.Column(db.Text, nullable=False)
    fields_json = db.Column(db.Text, nullable=False, default="[]")
    output_field = db.Column(db.String(128), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=99)
    value_type = db.Column(db.String(16), nullable=False, default="amount")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def fields(self) -> list[str]:
        return list(json.loads(self.fields_json or "[]"))

    @fields.setter
    def fields(self, value) -> None:
        self.fields_json = json.dumps(list(value or []))

    def __repr__(self) -> str:
        return f"<Formula name={self.name!r} group={self.group_name!r} priority={self.priority}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "group": self.group_name,
            "expression": self.expression,
            "fields": self.fields,
            "output_field": self.output_field,
            "priority": self.priority,
            "value_type": self.value_type,
        }
