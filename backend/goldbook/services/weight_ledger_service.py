# Overview: Counterparty weight ledger; 750-equivalent normalization, commitments and running balances.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..extensions import db
from ..models import ContactWeightLedgerEntry
from ..models.ledgers import EVENT_TRANSACTION
from ..models.trades import TYPE_SELL
from ..number_utils import round_half_up, to_weight
from goldbook.time_utils import utcnow
from .concurrency import lock_for_update
"""
Contact Weight Ledger Invariants (authoritative)

- Append-only per (contact, category) chain, ordered by id.
- balance_after_grams = previous balance_after_grams + change_weight_grams.
- Weights are 750-equivalent grams: grams * carat / 750, held as exact
  4-place Decimals so the chain sums without drift.
- Positive balance: the counterparty owes the business weight.
  A sale adds its commitment (+), a purchase subtracts it (-); settlement posts
  the opposite entry so a settled transaction nets to zero.
- The only deletions are a transaction's own entries when it is edited or
  deleted before completion; the affected chains are re-derived right after.
"""


logger = logging.getLogger(__name__)

REFERENCE_CARAT = 750
MIN_WEIGHT_CHANGE = Decimal("0.001")


@dataclass(frozen=True)
class WeightCommitment:
    category_id: int
    weight_change: Decimal


def normalize_weight(grams: float | None, carat: float | None) -> float:
    """Convert raw grams at a purity to 750-equivalent grams."""
    if not grams or not carat:
        return 0.0
    return round_half_up(float(grams) * carat / REFERENCE_CARAT, 4)


def commitment_sign(transaction_type: str) -> int:
    return 1 if transaction_type == TYPE_SELL else -1


def calculate_weight_commitments(priced_items: Iterable) -> list[WeightCommitment]:
    """Sum 750-equivalent weight of weight-based items per product category."""
    totals: dict[int, Decimal] = {}
    for priced in priced_items:
        if not priced.weight_based or not priced.weight_750:
            continue
        totals[priced.category_id] = totals.get(priced.category_id, Decimal(0)) + to_weight(priced.weight_750)

    return [
        WeightCommitment(category_id=category_id, weight_change=total)
        for category_id, total in sorted(totals.items())
        if abs(total) >= MIN_WEIGHT_CHANGE
    ]


def _last_entry(contact_id: int, category_id: int, *, lock: bool = False) -> ContactWeightLedgerEntry | None:
    query = db.session.query(ContactWeightLedgerEntry).filter_by(
        contact_id=contact_id,
        product_category_id=category_id,
    ).order_by(ContactWeightLedgerEntry.id.desc())
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_weight_balance(contact_id: int, category_id: int) -> Decimal:
    entry = _last_entry(contact_id, category_id)
    return to_weight(entry.balance_after_grams if entry else 0)


def record_weight_change(
    *,
    contact_id: int,
    category_id: int,
    change,
    event_type: str,
    transaction_id: int | None = None,
    settlement_id: int | None = None,
    notes: str | None = None,
) -> ContactWeightLedgerEntry | None:
    """
    Append one entry on top of the chain's last balance.

    Changes below 0.001 g are not recorded. Caller owns the commit.
    """
    change = to_weight(change)
    if abs(change) < MIN_WEIGHT_CHANGE:
        return None

    last = _last_entry(contact_id, category_id, lock=True)
    previous = to_weight(last.balance_after_grams if last else 0)

    entry = ContactWeightLedgerEntry(
        contact_id=contact_id,
        product_category_id=category_id,
        event_type=event_type,
        change_weight_grams=change,
        balance_after_grams=previous + change,
        related_transaction_id=transaction_id,
        related_settlement_id=settlement_id,
        notes=notes,
        event_date=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record_commitments(
    *,
    contact_id: int,
    transaction_id: int,
    transaction_type: str,
    commitments: Iterable[WeightCommitment],
) -> list[ContactWeightLedgerEntry]:
    sign = commitment_sign(transaction_type)
    entries = []
    for commitment in commitments:
        entry = record_weight_change(
            contact_id=contact_id,
            category_id=commitment.category_id,
            change=sign * commitment.weight_change,
            event_type=EVENT_TRANSACTION,
            transaction_id=transaction_id,
            notes=f"Transaction #{transaction_id}",
        )
        if entry is not None:
            entries.append(entry)
    return entries


def rebuild_balances(contact_id: int, category_id: int) -> int:
    """Re-derive balance_after_grams along one chain. Returns entries touched."""
    entries = lock_for_update(
        db.session.query(ContactWeightLedgerEntry).filter_by(
            contact_id=contact_id,
            product_category_id=category_id,
        ).order_by(ContactWeightLedgerEntry.id.asc())
    ).all()

    balance = to_weight(0)
    for entry in entries:
        balance += to_weight(entry.change_weight_grams)
        entry.balance_after_grams = balance
    db.session.flush()
    return len(entries)


def delete_transaction_entries(transaction_id: int) -> int:
    """Remove a transaction's entries and repair the chains they sat in."""
    entries = db.session.query(ContactWeightLedgerEntry).filter_by(
        related_transaction_id=transaction_id,
    ).all()
    chains = {(e.contact_id, e.product_category_id) for e in entries}

    for entry in entries:
        db.session.delete(entry)
    db.session.flush()

    for contact_id, category_id in sorted(chains):
        rebuild_balances(contact_id, category_id)

    if entries:
        logger.info(
            "Removed %d weight ledger entries of transaction %s", len(entries), transaction_id
        )
    return len(entries)


def list_contact_ledger(contact_id: int, category_id: int | None = None) -> list[ContactWeightLedgerEntry]:
    query = db.session.query(ContactWeightLedgerEntry).filter_by(contact_id=contact_id)
    if category_id is not None:
        query = query.filter_by(product_category_id=category_id)
    return query.order_by(ContactWeightLedgerEntry.id.asc()).all()
