from __future__ import annotations

from ..extensions import db
from goldbook.time_utils import to_utc_z


EVENT_TRANSACTION = "TRANSACTION"
EVENT_RECEIPT = "RECEIPT"
EVENT_DELIVERY = "DELIVERY"
EVENT_SETTLEMENT = "SETTLEMENT"

EVENT_PURCHASE = "PURCHASE"
EVENT_SALE = "SALE"
EVENT_INITIAL = "INITIAL"

DIRECTION_INFLOW = "inflow"
DIRECTION_OUTFLOW = "outflow"
SETTLEMENT_DIRECTIONS = (DIRECTION_INFLOW, DIRECTION_OUTFLOW)

BUCKET_CARAT = "carat"
BUCKET_PRODUCT = "product"


class ContactWeightLedgerEntry(db.Model):
    """
    Append-only weight balance between the business and a counterparty.

    Weights are 750-equivalent grams. Positive balance = counterparty owes weight.
    balance_after_grams = previous entry's balance (same contact + category, by id) + change.
    """
    __tablename__ = "contact_weight_ledger"
    __table_args__ = (
        db.Index("ix_cwl_contact_category_id", "contact_id", "product_category_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, nullable=False)
    product_category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False)
    event_type = db.Column(db.String(32), nullable=False)
    change_weight_grams = db.Column(db.Numeric(18, 4), nullable=False)
    balance_after_grams = db.Column(db.Numeric(18, 4), nullable=False)
    related_transaction_id = db.Column(
        db.Integer, db.ForeignKey("trade_transactions.id"), nullable=True, index=True
    )
    related_settlement_id = db.Column(
        db.Integer, db.ForeignKey("physical_settlements.id"), nullable=True, index=True
    )
    notes = db.Column(db.String(255), nullable=True)
    event_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contact_id": self.contact_id,
            "product_category_id": self.product_category_id,
            "event_type": self.event_type,
            "change_weight_grams": self.change_weight_grams,
            "balance_after_grams": self.balance_after_grams,
            "related_transaction_id": self.related_transaction_id,
            "related_settlement_id": self.related_settlement_id,
            "notes": self.notes,
            "event_date": to_utc_z(self.event_date),
        }


class StockBucket(db.Model):
    """
    Physical stock accumulator.

    - bucket_type='carat'   key = carat (weight-based stock with a purity, grams)
    - bucket_type='product' key = product code (count stock in units; weight
      stock without a purity in grams)

    Only settlement and opening balances write here.
    """
    __tablename__ = "stock_buckets"
    __table_args__ = (
        db.UniqueConstraint("bucket_type", "bucket_key", name="uq_stock_buckets_type_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bucket_type = db.Column(db.String(16), nullable=False)
    bucket_key = db.Column(db.String(64), nullable=False)
    weight_grams = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bucket_type": self.bucket_type,
            "bucket_key": self.bucket_key,
            "weight_grams": self.weight_grams,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryLedgerEntry(db.Model):
    """Per-product stock movement (settlement or opening balance) with running balances."""
    __tablename__ = "inventory_ledger"
    __table_args__ = (
        db.Index("ix_inventory_ledger_product_id", "product_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("trade_transactions.id"), nullable=True, index=True)
    transaction_item_id = db.Column(db.Integer, db.ForeignKey("trade_transaction_items.id"), nullable=True)
    initial_balance_id = db.Column(db.Integer, db.ForeignKey("initial_balances.id"), nullable=True)
    event_type = db.Column(db.String(16), nullable=False)
    change_quantity = db.Column(db.Integer, nullable=False, default=0)
    change_weight_grams = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    quantity_after = db.Column(db.Integer, nullable=False, default=0)
    weight_grams_after = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)
    event_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "transaction_id": self.transaction_id,
            "transaction_item_id": self.transaction_item_id,
            "initial_balance_id": self.initial_balance_id,
            "event_type": self.event_type,
            "change_quantity": self.change_quantity,
            "change_weight_grams": self.change_weight_grams,
            "quantity_after": self.quantity_after,
            "weight_grams_after": self.weight_grams_after,
            "notes": self.notes,
            "event_date": to_utc_z(self.event_date),
        }


class PhysicalSettlement(db.Model):
    """
    Weight handed over outside a transaction (inflow from or outflow to a counterparty).

    Each settlement posts one SETTLEMENT entry per product category on the
    counterparty weight ledger (related_settlement_id).
    """
    __tablename__ = "physical_settlements"
    __table_args__ = (
        db.CheckConstraint("direction IN ('inflow', 'outflow')", name="ck_physical_settlements_direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, nullable=False, index=True)
    direction = db.Column(db.String(16), nullable=False)
    settlement_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    total_weight_750 = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contact_id": self.contact_id,
            "direction": self.direction,
            "settlement_date": to_utc_z(self.settlement_date),
            "total_weight_750": self.total_weight_750,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class PhysicalSettlementItem(db.Model):
    __tablename__ = "physical_settlement_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("physical_settlements.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    weight_grams = db.Column(db.Numeric(18, 4), nullable=False)
    carat = db.Column(db.Integer, nullable=False)
    weight_750 = db.Column(db.Numeric(18, 4), nullable=False)
    tag_number = db.Column(db.String(64), nullable=True)
    assay_office_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    settlement = db.relationship(
        "PhysicalSettlement",
        backref=db.backref("items", lazy=True, order_by="PhysicalSettlementItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_id": self.settlement_id,
            "product_id": self.product_id,
            "weight_grams": self.weight_grams,
            "carat": self.carat,
            "weight_750": self.weight_750,
            "tag_number": self.tag_number,
            "assay_office_id": self.assay_office_id,
            "notes": self.notes,
        }


class InitialBalance(db.Model):
    """Opening stock of a product, entered once before trading starts."""
    __tablename__ = "initial_balances"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_initial_balances_product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    balance_date = db.Column(db.DateTime(timezone=True), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    weight_grams = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    carat = db.Column(db.Integer, nullable=True)
    weight_750 = db.Column(db.Numeric(18, 4), nullable=False, default=0)
    average_purchase_price_per_unit = db.Column(db.BigInteger, nullable=False, default=0)
    total_purchase_value = db.Column(db.BigInteger, nullable=False, default=0)
    notes = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "balance_date": to_utc_z(self.balance_date),
            "quantity": self.quantity,
            "weight_grams": self.weight_grams,
            "carat": self.carat,
            "weight_750": self.weight_750,
            "average_purchase_price_per_unit": self.average_purchase_price_per_unit,
            "total_purchase_value": self.total_purchase_value,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
