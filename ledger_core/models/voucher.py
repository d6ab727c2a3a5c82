from django.core.exceptions import ValidationError
from django.db import models

from .base import HexIdModel

POSTING_EVENT_TYPES = [
    ("NONE", "None"),
    ("POSITIONAL", "Positional"),
    ("PHYSICAL", "Physical"),
    ("MANAGEMENT", "Management"),
    ("FINANCIAL", "Financial"),
    ("AUDIT", "Audit"),
]

VOUCHER_SOURCE_TYPES = [
    ("SALES_ORDER", "Sales order"),
    ("SALES_INVOICE", "Sales invoice"),
    ("PURCHASE_ORDER", "Purchase order"),
    ("PURCHASE_INVOICE", "Purchase invoice"),
    ("JOURNAL", "Journal"),
]

# Fields a voucher may still receive after creation (forward lineage only)
VOUCHER_MUTABLE_FIELDS = {"next_voucher_no", "next_posting_event_type"}


# ---------- Voucher ----------
class Voucher(HexIdModel):
    """
    Immutable, balanced record of one ledger posting.

    Vouchers point at their source (journal / order) by id; nothing
    points back at them except by voucher number.
    """

    voucher_no = models.CharField(max_length=32, unique=True)
    previous_voucher_no = models.CharField(max_length=32, null=True, blank=True)
    next_voucher_no = models.CharField(max_length=32, null=True, blank=True)
    related_voucher_no = models.CharField(max_length=32, null=True, blank=True)

    previous_posting_event_type = models.CharField(
        max_length=12, choices=POSTING_EVENT_TYPES, default="NONE"
    )
    posting_event_type = models.CharField(
        max_length=12, choices=POSTING_EVENT_TYPES, default="FINANCIAL"
    )
    next_posting_event_type = models.CharField(
        max_length=12, choices=POSTING_EVENT_TYPES, default="NONE"
    )

    voucher_date = models.DateField()
    source_type = models.CharField(max_length=20, choices=VOUCHER_SOURCE_TYPES)
    source_id = models.CharField(max_length=24)
    # the posted journal this voucher was built from
    journal_ref = models.CharField(max_length=24, unique=True)

    invoice_ref_id = models.CharField(max_length=24, null=True, blank=True)
    invoice_ref_num = models.CharField(max_length=200, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["source_type", "source_id"])]

    def __str__(self):
        return f"{self.voucher_no} {self.source_type}:{self.source_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if not update_fields or not set(update_fields) <= VOUCHER_MUTABLE_FIELDS:
                raise ValidationError("Voucher is immutable once created.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Voucher is immutable once created.")


class VoucherLine(HexIdModel):
    voucher = models.ForeignKey(
        Voucher, on_delete=models.CASCADE, related_name="lines"
    )
    line_num = models.PositiveIntegerField()

    account_code = models.CharField(max_length=32)
    # customer / vendor / item / bank account / account id, first present
    subledger_code = models.CharField(max_length=32, null=True, blank=True)

    debit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=2, default=1)
    local_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    # Originating sub-ledger transaction (not the journal)
    subledger_source_type = models.CharField(max_length=20, null=True, blank=True)
    subledger_txn_id = models.CharField(max_length=24, null=True, blank=True)
    subledger_line_num = models.PositiveIntegerField(null=True, blank=True)

    dims = models.JSONField(default=dict, blank=True)
    extras = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["line_num"]
        constraints = [
            models.UniqueConstraint(
                fields=["voucher", "line_num"], name="uq_voucher_line_num"
            ),
        ]

    def __str__(self):
        return f"{self.voucher_id}#{self.line_num} {self.account_code} {self.local_amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Voucher lines are immutable once created.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Voucher lines are immutable once created.")
