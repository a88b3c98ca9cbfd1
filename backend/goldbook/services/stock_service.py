# Overview: Physical stock buckets and the per-product inventory ledger written by settlement.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import InventoryLedgerEntry, StockBucket
from ..models.ledgers import BUCKET_CARAT, BUCKET_PRODUCT
from ..number_utils import to_weight
from goldbook.time_utils import utcnow
from .concurrency import lock_for_update
from .weight_ledger_service import normalize_weight
"""
Stock Invariants (authoritative)

- Buckets change only through completed settlements and opening balances.
- Weight-based stock with a purity is bucketed by carat; count-based stock and
  weight stock without a purity (silver, gem carats) by product code.
- Bucket and ledger weights are exact 4-place Decimals.
- Inventory ledger rows carry the product's running quantity/weight after the move.
"""


def carat_bucket_key(carat: int) -> str:
    return str(int(carat))


def product_bucket_key(product) -> str:
    return product.product_code or f"product-{product.id}"


def get_bucket(bucket_type: str, bucket_key: str) -> StockBucket | None:
    return db.session.query(StockBucket).filter_by(
        bucket_type=bucket_type,
        bucket_key=bucket_key,
    ).first()


def adjust_bucket(
    bucket_type: str,
    bucket_key: str,
    *,
    weight_delta=0,
    quantity_delta: int = 0,
) -> StockBucket:
    """Apply a signed change to a bucket, creating it on first use. Caller owns the commit."""
    bucket = lock_for_update(
        db.session.query(StockBucket).filter_by(bucket_type=bucket_type, bucket_key=bucket_key)
    ).first()
    if bucket is None:
        bucket = StockBucket(bucket_type=bucket_type, bucket_key=bucket_key, weight_grams=to_weight(0), quantity=0)
        db.session.add(bucket)

    bucket.weight_grams = to_weight(bucket.weight_grams) + to_weight(weight_delta)
    bucket.quantity = (bucket.quantity or 0) + quantity_delta
    db.session.flush()
    return bucket


def adjust_carat_stock(carat: int, weight_delta) -> StockBucket:
    return adjust_bucket(BUCKET_CARAT, carat_bucket_key(carat), weight_delta=weight_delta)


def adjust_product_stock(product, quantity_delta: int) -> StockBucket:
    return adjust_bucket(BUCKET_PRODUCT, product_bucket_key(product), quantity_delta=quantity_delta)


def adjust_weight_stock(product, carat: int | None, weight_delta) -> StockBucket:
    """Weight stock goes to its carat bucket; without a purity it stays under the product code."""
    if carat:
        return adjust_carat_stock(carat, weight_delta)
    return adjust_bucket(BUCKET_PRODUCT, product_bucket_key(product), weight_delta=weight_delta)


def get_product_balance(product_id: int) -> tuple[int, Decimal]:
    last = db.session.query(InventoryLedgerEntry).filter_by(
        product_id=product_id,
    ).order_by(InventoryLedgerEntry.id.desc()).first()
    if last is None:
        return 0, to_weight(0)
    return last.quantity_after, to_weight(last.weight_grams_after)


def record_inventory_movement(
    *,
    product_id: int,
    event_type: str,
    transaction_id: int | None = None,
    transaction_item_id: int | None = None,
    initial_balance_id: int | None = None,
    change_quantity: int = 0,
    change_weight_grams=0,
    notes: str | None = None,
) -> InventoryLedgerEntry:
    quantity, weight = get_product_balance(product_id)
    change_weight_grams = to_weight(change_weight_grams)
    entry = InventoryLedgerEntry(
        product_id=product_id,
        transaction_id=transaction_id,
        transaction_item_id=transaction_item_id,
        initial_balance_id=initial_balance_id,
        event_type=event_type,
        change_quantity=change_quantity,
        change_weight_grams=change_weight_grams,
        quantity_after=quantity + change_quantity,
        weight_grams_after=weight + change_weight_grams,
        notes=notes,
        event_date=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_stock_summary() -> dict:
    buckets = db.session.query(StockBucket).order_by(
        StockBucket.bucket_type.asc(),
        StockBucket.bucket_key.asc(),
    ).all()
    total_750 = sum(
        (to_weight(normalize_weight(b.weight_grams, int(b.bucket_key))) for b in buckets if b.bucket_type == BUCKET_CARAT),
        to_weight(0),
    )
    return {
        "by_carat": [b.to_dict() for b in buckets if b.bucket_type == BUCKET_CARAT],
        "by_product": [b.to_dict() for b in buckets if b.bucket_type == BUCKET_PRODUCT],
        "total_weight_750": total_750,
    }
