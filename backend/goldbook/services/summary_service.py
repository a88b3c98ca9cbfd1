from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Iterable

from ..number_utils import to_money


@dataclass(frozen=True)
class TransactionSummary:
    """Transaction totals in integer currency units."""
    total_items_value: int = 0
    total_profit_wage_fee: int = 0
    total_general_tax: int = 0
    total_before_vat: int = 0
    total_vat: int = 0
    final_payable_amount: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def apply_to(self, transaction) -> None:
        for key, value in self.as_dict().items():
            setattr(transaction, key, value)


def summarize_items(priced_items: Iterable) -> TransactionSummary:
    """
    Sum priced items into the six transaction totals.

    Each term is rounded first, so
    final_payable_amount == items + profit/wage/fee + general tax + vat holds exactly.
    """
    items = list(priced_items)
    base = to_money(sum(p.total_value for p in items))
    profit_wage_fee = to_money(
        sum(p.profit_amount + p.fee_amount + p.manufacturing_fee_amount for p in items)
    )
    general_tax = to_money(sum(p.general_tax for p in items))
    vat = to_money(sum(p.vat for p in items))

    before_vat = base + profit_wage_fee + general_tax
    return TransactionSummary(
        total_items_value=base,
        total_profit_wage_fee=profit_wage_fee,
        total_general_tax=general_tax,
        total_before_vat=before_vat,
        total_vat=vat,
        final_payable_amount=before_vat + vat,
    )

