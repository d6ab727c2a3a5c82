from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError
from django.db import models

from .account import Account
from .banking import BankAccount
from .base import HexIdModel
from .customer import Customer
from .item import Item
from .journal import SUBLEDGER_KINDS
from .vendor import Vendor

SUBLEDGER_SOURCE_TYPES = [
    ("SALES", "Sales"),
    ("PURCHASE", "Purchase"),
    ("JOURNAL", "Journal"),
    ("BANK_TRANSFER", "Bank transfer"),
    ("JOURNAL_REVERSAL", "Journal reversal"),
]


# ---------- Sub-ledger transaction ----------
class SubledgerTransaction(HexIdModel):
    """
    One movement on a sub-ledger (AR, AP, bank, inventory).

    Lineage: `previous_txn` points at the prior movement of the same
    sub-ledger entity; the voucher fields are stamped by
    services.voucher.build_voucher once the movement is posted.
    """

    txn_date = models.DateField()
    subledger_type = models.CharField(max_length=10, choices=SUBLEDGER_KINDS)
    source_type = models.CharField(max_length=20, choices=SUBLEDGER_SOURCE_TYPES)
    source_id = models.CharField(max_length=24, null=True, blank=True)
    source_line = models.PositiveIntegerField(null=True, blank=True)
    # 1, 2, 3 ... per (subledger_type, source_type, source_id)
    line_num = models.PositiveIntegerField(default=1)

    ledger_account = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="subledger_txns"
    )
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT
    )
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.PROTECT)
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT
    )
    item = models.ForeignKey(Item, null=True, blank=True, on_delete=models.PROTECT)

    # Signed: positive = debit side of the sub-ledger
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=2, default=1)
    local_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    previous_txn = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="following_txns",
    )
    related_voucher = models.CharField(max_length=32, null=True, blank=True)
    current_voucher = models.CharField(max_length=32, null=True, blank=True)
    next_voucher = models.CharField(max_length=32, null=True, blank=True)

    dims = models.JSONField(default=dict, blank=True)
    extras = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["subledger_type", "source_type", "source_id"]),
            models.Index(fields=["subledger_type", "customer"]),
            models.Index(fields=["subledger_type", "vendor"]),
            models.Index(fields=["subledger_type", "bank_account"]),
            models.Index(fields=["subledger_type", "item"]),
        ]

    def __str__(self):
        return f"{self.subledger_type} {self.source_type}:{self.source_id} #{self.line_num} {self.amount}"

    def clean(self):
        if not self.currency:
            raise ValidationError("Currency is required")
        if self.exchange_rate < 0:
            raise ValidationError("Exchange rate must be >= 0")

    def save(self, *args, **kwargs):
        # local amount always follows amount × rate
        self.local_amount = (
            Decimal(self.amount) * Decimal(self.exchange_rate)
        ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        self.full_clean()
        return super().save(*args, **kwargs)
