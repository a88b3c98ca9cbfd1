"""
Delivery settlement: moves a transaction to 'completed' and applies its
physical stock and counterparty weight effects exactly once.

Physical settlement: records weight handed over outside any transaction and
posts it on the counterparty weight ledger.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping

from ..errors import NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import PhysicalSettlement, PhysicalSettlementItem, Product, Transaction
from ..models.ledgers import (
    DIRECTION_INFLOW,
    EVENT_DELIVERY,
    EVENT_PURCHASE,
    EVENT_RECEIPT,
    EVENT_SALE,
    EVENT_SETTLEMENT,
    SETTLEMENT_DIRECTIONS,
)
from ..models.trades import (
    STATUS_COMPLETED,
    STATUS_PENDING_DELIVERY,
    STATUS_PENDING_RECEIPT,
    TYPE_BUY,
    TYPE_SELL,
)
from ..number_utils import parse_number, to_weight
from goldbook.time_utils import coerce_datetime, utcnow
from .concurrency import lock_for_update, run_atomic
from .item_types import MAX_CARAT
from .stock_service import adjust_product_stock, adjust_weight_stock, record_inventory_movement
from .weight_ledger_service import MIN_WEIGHT_CHANGE, normalize_weight, record_weight_change
"""
Settlement Invariants (authoritative)

- receipt:  buy  + pending_receipt  -> completed, stock +, ledger +weight_750
- delivery: sell + pending_delivery -> completed, stock -, ledger -weight_750
- Every check happens before the first write; a failed settlement changes nothing.
- Completed is terminal, so a second settlement of the same transaction is rejected.
- Count-based items move product stock only; they never touch the weight ledger.
- Physical settlements (inflow +, outflow -) post SETTLEMENT entries on the
  counterparty ledger only; they do not move stock.
"""


logger = logging.getLogger(__name__)

ACTION_RECEIPT = "receipt"
ACTION_DELIVERY = "delivery"

# action -> (required type, required status, stock sign, ledger event, inventory event)
_ACTIONS = {
    ACTION_RECEIPT: (TYPE_BUY, STATUS_PENDING_RECEIPT, 1, EVENT_RECEIPT, EVENT_PURCHASE),
    ACTION_DELIVERY: (TYPE_SELL, STATUS_PENDING_DELIVERY, -1, EVENT_DELIVERY, EVENT_SALE),
}


def complete_delivery(transaction_id: int, action: str, *, actor_user_id: int | None = None) -> Transaction:
    rule = _ACTIONS.get((action or "").strip().lower())
    if rule is None:
        raise ValidationError(f"Invalid settlement action {action!r}", details={"field": "action"})
    required_type, required_status, sign, ledger_event, inventory_event = rule

    def _op():
        transaction = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        if transaction.transaction_type != required_type:
            raise StateError(
                f"Cannot {action} a {transaction.transaction_type} transaction",
                details={"transaction_type": transaction.transaction_type},
            )
        if transaction.delivery_status != required_status:
            raise StateError(
                f"Transaction {transaction_id} is {transaction.delivery_status}, expected {required_status}",
                details={"delivery_status": transaction.delivery_status},
            )
        items = list(transaction.items)
        if not items:
            raise StateError(f"Transaction {transaction_id} has no items to settle")

        transaction.delivery_status = STATUS_COMPLETED
        transaction.delivery_date = utcnow()
        transaction.updated_by_user_id = actor_user_id
        db.session.flush()

        note = f"Transaction #{transaction.id} {action}"
        weight_by_category: dict[int, Decimal] = {}
        for item in items:
            product = item.product
            if product.is_weight_based:
                weight = sign * to_weight(item.weight_grams)
                adjust_weight_stock(product, item.carat, weight)
                weight_by_category[product.category_id] = (
                    weight_by_category.get(product.category_id, Decimal(0)) + to_weight(item.weight_750)
                )
                record_inventory_movement(
                    product_id=product.id,
                    transaction_id=transaction.id,
                    transaction_item_id=item.id,
                    event_type=inventory_event,
                    change_weight_grams=weight,
                    notes=note,
                )
            else:
                quantity = sign * (item.quantity or 0)
                adjust_product_stock(product, quantity)
                record_inventory_movement(
                    product_id=product.id,
                    transaction_id=transaction.id,
                    transaction_item_id=item.id,
                    event_type=inventory_event,
                    change_quantity=quantity,
                    notes=note,
                )

        for category_id, weight_750 in sorted(weight_by_category.items()):
            record_weight_change(
                contact_id=transaction.counterparty_contact_id,
                category_id=category_id,
                change=sign * weight_750,
                event_type=ledger_event,
                transaction_id=transaction.id,
                notes=note,
            )
        return transaction

    transaction = run_atomic(_op, label=f"Settling transaction {transaction_id}")
    logger.info("Transaction %s settled by %s", transaction_id, action)
    return transaction


def _parse_settlement_item(row: Mapping, index: int) -> dict:
    label = f"Item {index + 1}"
    product_id = parse_number(row.get("product_id"))
    if product_id is None:
        raise ValidationError(f"{label}: product is required", details={"index": index, "field": "product_id"})

    weight = parse_number(row.get("weight_grams", row.get("weight")))
    if weight is None or weight <= 0:
        raise ValidationError(
            f"{label}: weight must be greater than zero",
            details={"index": index, "field": "weight_grams"},
        )

    carat = parse_number(row.get("carat"))
    if carat is None or not (0 < carat <= MAX_CARAT):
        raise ValidationError(
            f"{label}: carat must be between 1 and {MAX_CARAT}",
            details={"index": index, "field": "carat"},
        )

    assay_office_id = parse_number(row.get("assay_office_id"))
    return {
        "product_id": int(product_id),
        "weight_grams": to_weight(weight),
        "carat": int(carat),
        "weight_750": to_weight(normalize_weight(weight, int(carat))),
        "tag_number": row.get("tag_number") or None,
        "assay_office_id": int(assay_office_id) if assay_office_id is not None else None,
        "notes": row.get("notes") or None,
    }


def record_physical_settlement(
    contact_id: int,
    direction: str,
    items: list[Mapping],
    *,
    settlement_date=None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> PhysicalSettlement:
    """
    Record weight received from (inflow) or handed to (outflow) a counterparty.

    Each item row carries product_id, weight_grams (or weight) and carat.
    Inflow adds the 750-equivalent weight to the counterparty balance,
    outflow subtracts it, one SETTLEMENT entry per product category.
    """
    direction = (direction or "").strip().lower()
    if direction not in SETTLEMENT_DIRECTIONS:
        raise ValidationError(f"Invalid settlement direction {direction!r}", details={"field": "direction"})
    contact = parse_number(contact_id)
    if contact is None or contact <= 0:
        raise ValidationError("Invalid counterparty", details={"field": "contact_id"})
    if not items:
        raise ValidationError("A settlement needs at least one item", details={"field": "items"})
    try:
        settled_at = coerce_datetime(settlement_date) if settlement_date else utcnow()
    except ValueError as exc:
        raise ValidationError(
            f"Invalid settlement date {settlement_date!r}",
            details={"field": "settlement_date"},
        ) from exc

    parsed = [_parse_settlement_item(row, index) for index, row in enumerate(items)]
    total_750 = sum((p["weight_750"] for p in parsed), Decimal(0))
    if total_750 < MIN_WEIGHT_CHANGE:
        raise ValidationError("Settlement weight is below 0.001 g", details={"field": "items"})
    sign = 1 if direction == DIRECTION_INFLOW else -1

    def _op():
        ids = {p["product_id"] for p in parsed}
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()
        }
        missing = sorted(ids - set(products))
        if missing:
            raise NotFoundError(
                "Product not found: " + ", ".join(str(i) for i in missing),
                details={"product_ids": missing},
            )
        count_based = sorted(i for i in ids if not products[i].is_weight_based)
        if count_based:
            raise ValidationError(
                "Only weight-based products can be settled by weight",
                details={"product_ids": count_based},
            )

        settlement = PhysicalSettlement(
            contact_id=int(contact),
            direction=direction,
            settlement_date=settled_at,
            total_weight_750=total_750,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(settlement)
        db.session.flush()

        weight_by_category: dict[int, Decimal] = {}
        for values in parsed:
            db.session.add(PhysicalSettlementItem(settlement_id=settlement.id, **values))
            category_id = products[values["product_id"]].category_id
            weight_by_category[category_id] = weight_by_category.get(category_id, Decimal(0)) + values["weight_750"]
        db.session.flush()

        for category_id, weight_750 in sorted(weight_by_category.items()):
            record_weight_change(
                contact_id=settlement.contact_id,
                category_id=category_id,
                change=sign * weight_750,
                event_type=EVENT_SETTLEMENT,
                settlement_id=settlement.id,
                notes=f"Physical settlement #{settlement.id} ({direction})",
            )
        return settlement

    settlement = run_atomic(_op, label=f"Recording {direction} settlement for contact {contact_id}")
    logger.info(
        "Physical settlement %s recorded: contact %s %s %s g (750)",
        settlement.id, settlement.contact_id, direction, total_750,
    )
    return settlement


def list_physical_settlements(contact_id: int) -> list[PhysicalSettlement]:
    return db.session.query(PhysicalSettlement).filter_by(
        contact_id=contact_id,
    ).order_by(PhysicalSettlement.id.asc()).all()
