"""
Trade transaction persistence - priced, all-or-nothing saves.

The header, its items and its weight-ledger commitments are written in one
unit of work. Nothing computed by the client is stored; every item is priced
again from its inputs.
"""

from __future__ import annotations

import logging
from typing import Mapping

from ..errors import NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..models.trades import (
    CATEGORY_ATTRIBUTES,
    DELIVERY_STATUSES,
    STATUS_COMPLETED,
    STATUS_PENDING_DELIVERY,
    STATUS_PENDING_RECEIPT,
    TRANSACTION_TYPES,
    TYPE_BUY,
)
from ..number_utils import parse_number
from goldbook.time_utils import coerce_datetime
from .concurrency import lock_for_update, run_atomic
from .formula_service import FormulaCatalog, get_formula_catalog
from .pricing_service import PricedItem, price_item
from .summary_service import summarize_items
from .weight_ledger_service import (
    calculate_weight_commitments,
    delete_transaction_entries,
    record_commitments,
)
"""
Transaction Invariants (authoritative)

- Header totals always equal the summary of the stored items.
- The weight ledger holds exactly one set of commitments per transaction;
  an edit removes the previous set before writing the new one.
- Completed transactions are settled and can no longer be edited or deleted.
- Any failure leaves the database as it was before the call.
"""


logger = logging.getLogger(__name__)


def default_delivery_status(transaction_type: str) -> str:
    return STATUS_PENDING_RECEIPT if transaction_type == TYPE_BUY else STATUS_PENDING_DELIVERY


def _parse_header(data: Mapping) -> dict:
    """Validate top-level fields. Raises ValidationError before anything is touched."""
    missing = [
        name for name in ("transaction_type", "counterparty_contact_id", "transaction_date")
        if data.get(name) in (None, "")
    ]
    if missing:
        raise ValidationError(
            "Missing required transaction fields: " + ", ".join(missing),
            details={"missing": missing},
        )

    transaction_type = str(data["transaction_type"]).strip().lower()
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(
            f"Invalid transaction type {data['transaction_type']!r}",
            details={"field": "transaction_type"},
        )

    contact_id = parse_number(data["counterparty_contact_id"])
    if contact_id is None or contact_id <= 0:
        raise ValidationError("Invalid counterparty", details={"field": "counterparty_contact_id"})

    try:
        transaction_date = coerce_datetime(data["transaction_date"])
    except ValueError as exc:
        raise ValidationError(
            f"Invalid transaction date {data['transaction_date']!r}",
            details={"field": "transaction_date"},
        ) from exc

    status = data.get("delivery_status") or default_delivery_status(transaction_type)
    if status not in DELIVERY_STATUSES:
        raise ValidationError(f"Invalid delivery status {status!r}", details={"field": "delivery_status"})
    if status == STATUS_COMPLETED:
        raise ValidationError(
            "Transactions are completed through settlement only",
            details={"field": "delivery_status"},
        )

    mazaneh_price = parse_number(data.get("mazaneh_price"))
    if mazaneh_price is not None and mazaneh_price < 0:
        raise ValidationError("Mazaneh price cannot be negative", details={"field": "mazaneh_price"})

    return {
        "transaction_type": transaction_type,
        "counterparty_contact_id": int(contact_id),
        "transaction_date": transaction_date,
        "delivery_status": status,
        "mazaneh_price": mazaneh_price or 0.0,
        "notes": data.get("notes"),
    }


def _load_products(rows: list[Mapping]) -> dict[int, Product]:
    """One batch lookup for every product referenced by the rows."""
    ids = set()
    for row in rows:
        product_id = parse_number(row.get("product_id"))
        if product_id is not None:
            ids.add(int(product_id))
    if not ids:
        return {}

    products = {
        p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()
    }
    missing = sorted(ids - set(products))
    if missing:
        raise NotFoundError(
            "Product not found: " + ", ".join(str(i) for i in missing),
            details={"product_ids": missing},
        )
    return products


def _write_item(row: TransactionItem, priced: PricedItem) -> None:
    item = priced.item
    row.product_id = priced.product_id
    row.base_category = priced.base_category
    row.description = item.description
    row.weight_grams = item.weight_grams
    row.carat = item.carat
    row.quantity = item.quantity
    row.weight_750 = priced.weight_750
    row.unit_price = priced.unit_price
    row.total_value = priced.total_value
    row.profit_percent = item.profit_percent
    row.profit_amount = priced.profit_amount
    row.fee_percent = item.fee_percent
    row.fee_amount = priced.fee_amount
    row.manufacturing_fee_percent = priced.manufacturing_fee_percent
    row.manufacturing_fee_amount = priced.manufacturing_fee_amount
    row.general_tax = priced.general_tax
    row.vat = priced.vat

    for attr in CATEGORY_ATTRIBUTES:
        setattr(row, attr, None)
    for attr, value in item.category_attributes().items():
        setattr(row, attr, value)


def price_rows(
    rows: list[Mapping],
    *,
    mazaneh_price,
    catalog: FormulaCatalog,
) -> list[PricedItem]:
    """Price every row that names a product. Unknown products raise NotFoundError."""
    products = _load_products(rows)
    priced_items = []
    for index, row in enumerate(rows):
        if parse_number(row.get("product_id")) is None:
            continue
        product = products[int(parse_number(row["product_id"]))]
        priced_items.append(
            price_item(row, product, mazaneh_price=mazaneh_price, catalog=catalog, index=index)
        )
    return priced_items


def save_transaction(
    data: Mapping,
    transaction_id: int | None = None,
    *,
    actor_user_id: int | None = None,
    catalog: FormulaCatalog | None = None,
) -> Transaction:
    """
    Create a transaction, or replace an existing one's content.

    data carries the header fields and 'items', a list of submitted rows.
    """
    header = _parse_header(data)
    rows = list(data.get("items") or [])
    if catalog is None:
        catalog = get_formula_catalog()

    def _op():
        if transaction_id is not None:
            transaction = lock_for_update(
                db.session.query(Transaction).filter_by(id=transaction_id)
            ).first()
            if transaction is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            if transaction.delivery_status == STATUS_COMPLETED:
                raise StateError(f"Transaction {transaction_id} is completed and cannot be edited")
            delete_transaction_entries(transaction.id)
            for key, value in header.items():
                setattr(transaction, key, value)
            transaction.updated_by_user_id = actor_user_id
        else:
            transaction = Transaction(created_by_user_id=actor_user_id, **header)
            db.session.add(transaction)

        priced_items = price_rows(rows, mazaneh_price=header["mazaneh_price"], catalog=catalog)
        if not priced_items:
            raise ValidationError("A transaction needs at least one item")

        summarize_items(priced_items).apply_to(transaction)
        db.session.flush()

        existing = {item.id: item for item in transaction.items}
        kept = set()
        for priced in priced_items:
            row = existing.get(priced.item.id) if priced.item.id is not None else None
            if row is None or row.id in kept:
                row = TransactionItem(transaction_id=transaction.id)
                db.session.add(row)
            else:
                kept.add(row.id)
            _write_item(row, priced)

        for item_id, row in existing.items():
            if item_id not in kept:
                db.session.delete(row)
        db.session.flush()

        record_commitments(
            contact_id=transaction.counterparty_contact_id,
            transaction_id=transaction.id,
            transaction_type=transaction.transaction_type,
            commitments=calculate_weight_commitments(priced_items),
        )
        return transaction

    transaction = run_atomic(_op, label="Saving transaction")
    db.session.refresh(transaction)
    logger.info(
        "Saved %s transaction %s with %d items, final payable %s",
        transaction.transaction_type,
        transaction.id,
        len(transaction.items),
        transaction.final_payable_amount,
    )
    return transaction


def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


def delete_transaction(transaction_id: int) -> None:
    """Delete an unsettled transaction with its items and ledger commitments."""
    def _op():
        transaction = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if transaction.delivery_status == STATUS_COMPLETED:
            raise StateError(f"Transaction {transaction_id} is completed and cannot be deleted")

        delete_transaction_entries(transaction.id)
        for item in list(transaction.items):
            db.session.delete(item)
        db.session.delete(transaction)

    run_atomic(_op, label="Deleting transaction")
    logger.info("Deleted transaction %s", transaction_id)
