from __future__ import annotations

from ..extensions import db
from goldbook.time_utils import to_utc_z


TYPE_BUY = "buy"
TYPE_SELL = "sell"
TRANSACTION_TYPES = (TYPE_BUY, TYPE_SELL)

STATUS_PENDING_RECEIPT = "pending_receipt"
STATUS_PENDING_DELIVERY = "pending_delivery"
STATUS_COMPLETED = "completed"
STATUS_CANCELED = "canceled"
DELIVERY_STATUSES = (
    STATUS_PENDING_RECEIPT,
    STATUS_PENDING_DELIVERY,
    STATUS_COMPLETED,
    STATUS_CANCELED,
)

# Category-only columns of TransactionItem; cleared before a variant writes its own.
CATEGORY_ATTRIBUTES = (
    "assay_office_id",
    "tag_number",
    "tag_type",
    "workshop_name",
    "stone_weight_grams",
    "manufactured_item_type",
    "has_attachments",
    "attachment_type",
    "coin_year",
    "is_bank_coin",
    "seal_name",
    "jewelry_type",
    "jewelry_color",
    "jewelry_quality",
)


class Transaction(db.Model):
    """
    Buy/sell trade document with its computed totals.

    Totals are integer currency units and always recomputed server-side.
    delivery_status moves to 'completed' only through settlement.
    """
    __tablename__ = "trade_transactions"
    __table_args__ = (
        db.Index("ix_trade_tx_contact_date", "counterparty_contact_id", "transaction_date"),
        db.Index("ix_trade_tx_status", "delivery_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_type = db.Column(db.String(8), nullable=False)
    counterparty_contact_id = db.Column(db.Integer, nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Market reference rate ("mazaneh") used as pricing input
    mazaneh_price = db.Column(db.Float, nullable=False, default=0.0)

    delivery_status = db.Column(db.String(32), nullable=False)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    total_items_value = db.Column(db.BigInteger, nullable=False, default=0)
    total_profit_wage_fee = db.Column(db.BigInteger, nullable=False, default=0)
    total_general_tax = db.Column(db.BigInteger, nullable=False, default=0)
    total_before_vat = db.Column(db.BigInteger, nullable=False, default=0)
    total_vat = db.Column(db.BigInteger, nullable=False, default=0)
    final_payable_amount = db.Column(db.BigInteger, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} type={self.transaction_type} status={self.delivery_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "counterparty_contact_id": self.counterparty_contact_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "mazaneh_price": self.mazaneh_price,
            "delivery_status": self.delivery_status,
            "delivery_date": to_utc_z(self.delivery_date) if self.delivery_date else None,
            "notes": self.notes,
            "total_items_value": self.total_items_value,
            "total_profit_wage_fee": self.total_profit_wage_fee,
            "total_general_tax": self.total_general_tax,
            "total_before_vat": self.total_before_vat,
            "total_vat": self.total_vat,
            "final_payable_amount": self.final_payable_amount,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TransactionItem(db.Model):
    """Priced line of a transaction; category-only columns stay NULL for other categories."""
    __tablename__ = "trade_transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("trade_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    base_category = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    weight_grams = db.Column(db.Float, nullable=True)
    carat = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    weight_750 = db.Column(db.Float, nullable=False, default=0.0)

    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    total_value = db.Column(db.Float, nullable=False, default=0.0)
    profit_percent = db.Column(db.Float, nullable=False, default=0.0)
    profit_amount = db.Column(db.Float, nullable=False, default=0.0)
    fee_percent = db.Column(db.Float, nullable=False, default=0.0)
    fee_amount = db.Column(db.Float, nullable=False, default=0.0)
    manufacturing_fee_percent = db.Column(db.Float, nullable=False, default=0.0)
    manufacturing_fee_amount = db.Column(db.Float, nullable=False, default=0.0)
    general_tax = db.Column(db.Float, nullable=False, default=0.0)
    vat = db.Column(db.Float, nullable=False, default=0.0)

    # Melted
    assay_office_id = db.Column(db.Integer, nullable=True)
    tag_number = db.Column(db.String(64), nullable=True)
    tag_type = db.Column(db.String(64), nullable=True)
    # Manufactured / bullion
    workshop_name = db.Column(db.String(128), nullable=True)
    stone_weight_grams = db.Column(db.Float, nullable=True)
    manufactured_item_type = db.Column(db.String(64), nullable=True)
    has_attachments = db.Column(db.Boolean, nullable=True)
    attachment_type = db.Column(db.String(64), nullable=True)
    # Coin
    coin_year = db.Column(db.Integer, nullable=True)
    is_bank_coin = db.Column(db.Boolean, nullable=True)
    seal_name = db.Column(db.String(128), nullable=True)
    # Jewelry
    jewelry_type = db.Column(db.String(64), nullable=True)
    jewelry_color = db.Column(db.String(64), nullable=True)
    jewelry_quality = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship(
        "Transaction",
        backref=db.backref("items", lazy=True, order_by="TransactionItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "base_category": self.base_category,
            "description": self.description,
            "weight_grams": self.weight_grams,
            "carat": self.carat,
            "quantity": self.quantity,
            "weight_750": self.weight_750,
            "unit_price": self.unit_price,
            "total_value": self.total_value,
            "profit_percent": self.profit_percent,
            "profit_amount": self.profit_amount,
            "fee_percent": self.fee_percent,
            "fee_amount": self.fee_amount,
            "manufacturing_fee_percent": self.manufacturing_fee_percent,
            "manufacturing_fee_amount": self.manufacturing_fee_amount,
            "general_tax": self.general_tax,
            "vat": self.vat,
            "created_at": to_utc_z(self.created_at),
        }
        for attr in CATEGORY_ATTRIBUTES:
            data[attr] = getattr(self, attr)
        return data
