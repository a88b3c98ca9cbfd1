from .catalog import ProductCategory, Product, Formula
from .trades import Transaction, TransactionItem
from .ledgers import (
    ContactWeightLedgerEntry,
    StockBucket,
    InventoryLedgerEntry,
    PhysicalSettlement,
    PhysicalSettlementItem,
    InitialBalance,
)

__all__ = [
    'ProductCategory', 'Product', 'Formula',
    'Transaction', 'TransactionItem',
    'ContactWeightLedgerEntry', 'StockBucket', 'InventoryLedgerEntry',
    'PhysicalSettlement', 'PhysicalSettlementItem', 'InitialBalance',
]
