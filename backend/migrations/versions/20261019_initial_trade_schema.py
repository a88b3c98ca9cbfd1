"""Initial trade schema: catalog, transactions, weight ledger, settlements and stock

Revision ID: 20261019_trade_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_trade_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True):
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)
        )
    return columns


def upgrade():
    op.create_table(
        "product_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("code", sa.String(64), nullable=True),
        sa.Column("base_category", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_product_categories_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_categories", schema=None) as batch_op:
        batch_op.create_index("ix_product_categories_base_category", ["base_category"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("product_code", sa.String(64), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("unit_of_measure", sa.String(16), nullable=False, server_default="gram"),
        sa.Column("default_carat", sa.Integer(), nullable=True),
        sa.Column("tax_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_rate", sa.Float(), nullable=True),
        sa.Column("general_tax_base_type", sa.String(16), nullable=False, server_default="NONE"),
        sa.Column("vat_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("vat_rate", sa.Float(), nullable=True),
        sa.Column("vat_base_type", sa.String(16), nullable=False, server_default="NONE"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["category_id"], ["product_categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_category_id", ["category_id"], unique=False)
        batch_op.create_index("ix_products_category_active", ["category_id", "is_active"], unique=False)

    op.create_table(
        "formulas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("group_name", sa.String(32), nullable=True),
        sa.Column("expression", sa.Text(), nullable=False),
        sa.Column("fields_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("output_field", sa.String(128), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("99")),
        sa.Column("value_type", sa.String(16), nullable=False, server_default="amount"),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_formulas_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("formulas", schema=None) as batch_op:
        batch_op.create_index("ix_formulas_group_priority", ["group_name", "priority"], unique=False)

    op.create_table(
        "trade_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(8), nullable=False),
        sa.Column("counterparty_contact_id", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("mazaneh_price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivery_status", sa.String(32), nullable=False),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("total_items_value", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_profit_wage_fee", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_general_tax", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_before_vat", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_vat", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("final_payable_amount", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("trade_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_trade_tx_contact_date", ["counterparty_contact_id", "transaction_date"], unique=False)
        batch_op.create_index("ix_trade_tx_status", ["delivery_status"], unique=False)

    op.create_table(
        "trade_transaction_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("base_category", sa.String(32), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("weight_grams", sa.Float(), nullable=True),
        sa.Column("carat", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("weight_750", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_value", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("profit_percent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("profit_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("fee_percent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("fee_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("manufacturing_fee_percent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("manufacturing_fee_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("general_tax", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("vat", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("assay_office_id", sa.Integer(), nullable=True),
        sa.Column("tag_number", sa.String(64), nullable=True),
        sa.Column("tag_type", sa.String(64), nullable=True),
        sa.Column("workshop_name", sa.String(128), nullable=True),
        sa.Column("stone_weight_grams", sa.Float(), nullable=True),
        sa.Column("manufactured_item_type", sa.String(64), nullable=True),
        sa.Column("has_attachments", sa.Boolean(), nullable=True),
        sa.Column("attachment_type", sa.String(64), nullable=True),
        sa.Column("coin_year", sa.Integer(), nullable=True),
        sa.Column("is_bank_coin", sa.Boolean(), nullable=True),
        sa.Column("seal_name", sa.String(128), nullable=True),
        sa.Column("jewelry_type", sa.String(64), nullable=True),
        sa.Column("jewelry_color", sa.String(64), nullable=True),
        sa.Column("jewelry_quality", sa.String(64), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(["transaction_id"], ["trade_transactions.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("trade_transaction_items", schema=None) as batch_op:
        batch_op.create_index("ix_trade_transaction_items_transaction_id", ["transaction_id"], unique=False)
        batch_op.create_index("ix_trade_transaction_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "physical_settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("contact_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("settlement_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("total_weight_750", sa.Numeric(precision=18, scale=4), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("direction IN ('inflow', 'outflow')", name="ck_physical_settlements_direction"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("physical_settlements", schema=None) as batch_op:
        batch_op.create_index("ix_physical_settlements_contact_id", ["contact_id"], unique=False)

    op.create_table(
        "physical_settlement_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("settlement_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("weight_grams", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("carat", sa.Integer(), nullable=False),
        sa.Column("weight_750", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("tag_number", sa.String(64), nullable=True),
        sa.Column("assay_office_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["settlement_id"], ["physical_settlements.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("physical_settlement_items", schema=None) as batch_op:
        batch_op.create_index("ix_physical_settlement_items_settlement_id", ["settlement_id"], unique=False)

    op.create_table(
        "initial_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("balance_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("weight_grams", sa.Numeric(precision=18, scale=4), nullable=False, server_default=sa.text("0")),
        sa.Column("carat", sa.Integer(), nullable=True),
        sa.Column("weight_750", sa.Numeric(precision=18, scale=4), nullable=False, server_default=sa.text("0")),
        sa.Column("average_purchase_price_per_unit", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_purchase_value", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", name="uq_initial_balances_product_id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "contact_weight_ledger",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("contact_id", sa.Integer(), nullable=False),
        sa.Column("product_category_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("change_weight_grams", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("balance_after_grams", sa.Numeric(precision=18, scale=4), nullable=False),
        sa.Column("related_transaction_id", sa.Integer(), nullable=True),
        sa.Column("related_settlement_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_category_id"], ["product_categories.id"]),
        sa.ForeignKeyConstraint(["related_transaction_id"], ["trade_transactions.id"]),
        sa.ForeignKeyConstraint(["related_settlement_id"], ["physical_settlements.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("contact_weight_ledger", schema=None) as batch_op:
        batch_op.create_index("ix_cwl_contact_category_id", ["contact_id", "product_category_id", "id"], unique=False)
        batch_op.create_index("ix_contact_weight_ledger_related_transaction_id", ["related_transaction_id"], unique=False)
        batch_op.create_index("ix_contact_weight_ledger_related_settlement_id", ["related_settlement_id"], unique=False)

    op.create_table(
        "stock_buckets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bucket_type", sa.String(16), nullable=False),
        sa.Column("bucket_key", sa.String(64), nullable=False),
        sa.Column("weight_grams", sa.Numeric(precision=18, scale=4), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bucket_type", "bucket_key", name="uq_stock_buckets_type_key"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "inventory_ledger",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("transaction_item_id", sa.Integer(), nullable=True),
        sa.Column("initial_balance_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(16), nullable=False),
        sa.Column("change_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("change_weight_grams", sa.Numeric(precision=18, scale=4), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_after", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("weight_grams_after", sa.Numeric(precision=18, scale=4), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["trade_transactions.id"]),
        sa.ForeignKeyConstraint(["transaction_item_id"], ["trade_transaction_items.id"]),
        sa.ForeignKeyConstraint(["initial_balance_id"], ["initial_balances.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_ledger", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_ledger_product_id", ["product_id", "id"], unique=False)
        batch_op.create_index("ix_inventory_ledger_transaction_id", ["transaction_id"], unique=False)


def downgrade():
    op.drop_table("inventory_ledger")
    op.drop_table("stock_buckets")
    op.drop_table("contact_weight_ledger")
    op.drop_table("initial_balances")
    op.drop_table("physical_settlement_items")
    op.drop_table("physical_settlements")
    op.drop_table("trade_transaction_items")
    op.drop_table("trade_transactions")
    op.drop_table("formulas")
    op.drop_table("products")
    op.drop_table("product_categories")
