from .account import Account
from .auditlog import AuditLog
from .banking import BankAccount
from .counter import Counter
from .customer import Customer
from .item import Item
from .journal import GLJournal, GLJournalLine
from .order import Order, OrderLine, OrderMovement
from .stock import (DIMENSION_FIELDS, InventoryTransaction, ProvisionalBalance,
                    StockBalance)
from .subledger import SubledgerTransaction
from .vendor import Vendor
from .voucher import Voucher, VoucherLine

__all__ = [
    "Account",
    "AuditLog",
    "BankAccount",
    "Counter",
    "Customer",
    "DIMENSION_FIELDS",
    "GLJournal",
    "GLJournalLine",
    "InventoryTransaction",
    "Item",
    "Order",
    "OrderLine",
    "OrderMovement",
    "ProvisionalBalance",
    "StockBalance",
    "SubledgerTransaction",
    "Vendor",
    "Voucher",
    "VoucherLine",
]
