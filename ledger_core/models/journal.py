from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from ..exceptions import InvalidStatusTransition, UnbalancedJournalError
from ..managers import JournalLineQuerySet, JournalQuerySet
from .account import Account
from .banking import BankAccount
from .base import HexIdModel
from .customer import Customer
from .item import Item
from .vendor import Vendor

JOURNAL_STATUS = [
    ("draft", "Draft"),  # still editable
    ("posted", "Posted"),  # finalized, voucher may be built
    ("cancelled", "Cancelled"),  # archived
    ("admin_mode", "Admin mode"),  # administrative override
    ("any_mode", "Any mode"),  # administrative override
]

OVERRIDE_STATUSES = ("admin_mode", "any_mode")

# Legal next statuses per current status.
# The override statuses can be entered from and left to any state.
JOURNAL_STATUS_TRANSITIONS = {
    "draft": ["posted"],
    "posted": ["cancelled"],
    "cancelled": [],
    "admin_mode": ["draft", "posted", "cancelled"],
    "any_mode": ["draft", "posted", "cancelled"],
}

JOURNAL_SOURCE_TYPES = [
    ("JOURNAL", "Manual journal"),
    ("SALES_INVOICE", "Sales invoice"),
    ("PURCHASE_INVOICE", "Purchase invoice"),
]

SUBLEDGER_KINDS = [
    ("AR", "Accounts receivable"),
    ("AP", "Accounts payable"),
    ("BANK", "Bank"),
    ("INVENTORY", "Inventory"),
]

TAX_REGIMES = [
    ("intra", "Intra-state (CGST + SGST)"),
    ("inter", "Inter-state (IGST)"),
]


def allowed_journal_transitions(status):
    allowed = list(JOURNAL_STATUS_TRANSITIONS.get(status, []))
    for override in OVERRIDE_STATUSES:
        if override != status and override not in allowed:
            allowed.append(override)
    return allowed


# ---------- GLJournal (Header) & GLJournalLine ----------
class GLJournal(HexIdModel):
    journal_no = models.CharField(max_length=32, unique=True)
    journal_date = models.DateField()
    reference = models.CharField(max_length=200, null=True, blank=True)
    description = models.TextField(null=True, blank=True)
    status = models.CharField(
        max_length=12,
        choices=JOURNAL_STATUS,
        default="draft",
    )
    posted_at = models.DateTimeField(null=True, blank=True)
    # Free-form actor name, no auth model behind it
    created_by = models.CharField(max_length=100, default="system")

    # Which business document produced this journal (if any)
    source_type = models.CharField(
        max_length=20, choices=JOURNAL_SOURCE_TYPES, default="JOURNAL"
    )
    source_id = models.CharField(max_length=24, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    objects = JournalQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["journal_date"]),
            models.Index(fields=["status"]),
            models.Index(fields=["source_type", "source_id"]),
        ]

    def __str__(self):
        return f"{self.journal_no} {self.journal_date} [{self.status}]"

    # Aggregate all debit and credit amounts across the journal's lines
    def compute_totals(self):
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def check_balanced(self):
        if not self.lines.exists():
            raise ValidationError("GLJournal must have at least one line.")
        td, tc = self.compute_totals()
        if td != tc:
            raise UnbalancedJournalError(
                f"Journal not balanced: debits={td}, credits={tc}"
            )

    def clean(self):
        """Don't modify the business fields of a posted journal"""
        if self._state.adding:
            return
        orig = GLJournal.objects.filter(pk=self.pk).first()
        if orig and orig.status == "posted":
            for f in ("journal_date", "reference", "description", "source_id"):
                if getattr(orig, f) != getattr(self, f):
                    raise ValidationError(
                        "Cannot modify a posted GLJournal. It is immutable."
                    )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    # Control status changes
    @transaction.atomic
    def transition_to(self, new_status):
        je = GLJournal.objects.select_for_update().get(pk=self.pk)
        if new_status not in allowed_journal_transitions(je.status):
            raise InvalidStatusTransition(je.status, new_status)

        update_fields = ["status"]
        if new_status == "posted":
            # every road into POSTED re-checks double entry
            je.check_balanced()
            je.posted_at = timezone.now()
            update_fields.append("posted_at")

        je.status = new_status
        je.save(update_fields=update_fields)
        self.status = je.status
        self.posted_at = je.posted_at
        return self

    def post(self):
        """DRAFT → POSTED; any other starting status is an error."""
        current = GLJournal.objects.values_list("status", flat=True).get(pk=self.pk)
        if current != "draft":
            raise InvalidStatusTransition(current, "posted")
        return self.transition_to("posted")


class GLJournalLine(HexIdModel):
    """
    One processed journal line. `account` is always the resolved
    posting account; the sub-ledger pointer (if the line came in
    through one) is kept next to it.
    """

    journal = models.ForeignKey(
        GLJournal,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    line_num = models.PositiveIntegerField()
    remarks = models.CharField(max_length=400, null=True, blank=True)

    account = models.ForeignKey(Account, on_delete=models.PROTECT)

    # Sub-ledger pointer {subledger_type, txn_id}
    subledger_type = models.CharField(
        max_length=10, choices=SUBLEDGER_KINDS, null=True, blank=True
    )
    subledger_txn_id = models.CharField(max_length=24, null=True, blank=True)

    # Optional master-data pointers
    item = models.ForeignKey(Item, null=True, blank=True, on_delete=models.PROTECT)
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT
    )
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.PROTECT)
    bank_account = models.ForeignKey(
        BankAccount, null=True, blank=True, on_delete=models.PROTECT
    )

    # Valuation inputs
    qty = models.DecimalField(max_digits=18, decimal_places=4, default=0)
    unit_price = models.DecimalField(max_digits=18, decimal_places=4, default=0)
    discount_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    charge_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    gst_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    tds_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    tax_regime = models.CharField(max_length=5, choices=TAX_REGIMES, default="intra")

    # Valuation outputs (services.valuation)
    assessable_value = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    charges_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    taxable_value = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    total_gst = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    cgst = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    sgst = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    igst = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    tds_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    # Posting amounts
    debit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=2, default=1)
    local_amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    dims = models.JSONField(default=dict, blank=True)
    extras = models.JSONField(default=dict, blank=True)

    objects = JournalLineQuerySet.as_manager()

    class Meta:
        ordering = ["line_num"]
        indexes = [
            models.Index(fields=["account"]),
            models.Index(fields=["subledger_type", "subledger_txn_id"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["journal", "line_num"], name="uq_gl_line_num"
            ),
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="gl_line_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit=0) & models.Q(credit=0)),
                name="gl_line_debit_or_credit_nonzero",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit__gt=0) & models.Q(credit__gt=0)),
                name="gl_line_not_both_sides",
            ),
            models.CheckConstraint(
                condition=models.Q(exchange_rate__gte=0),
                name="gl_line_exchange_rate_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.journal_id}#{self.line_num} | {self.account.code} | D:{self.debit} C:{self.credit}"

    @property
    def subledger_code(self):
        # first present pointer wins, the account is the fallback
        for pointer in ("customer_id", "vendor_id", "item_id", "bank_account_id", "account_id"):
            value = getattr(self, pointer)
            if value:
                return value
        return None

    def clean(self):
        if self.debit < 0 or self.credit < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if (self.debit > 0) == (self.credit > 0):
            raise ValidationError(
                "Exactly one of debit or credit must be greater than 0"
            )
        if not self.currency:
            raise ValidationError("Currency is required")
        if self.exchange_rate is not None and self.exchange_rate < 0:
            raise ValidationError("Exchange rate must be >= 0")

        # Lines of a posted journal are frozen
        if self.journal_id and GLJournal.objects.filter(
            pk=self.journal_id, status="posted"
        ).exists():
            if self._state.adding:
                raise ValidationError("Cannot add a line: parent journal is posted.")
            raise ValidationError("Cannot modify a line: parent journal is posted.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if GLJournal.objects.filter(pk=self.journal_id, status="posted").exists():
            raise ValidationError("Cannot delete a line: parent journal is posted.")
        return super().delete(*args, **kwargs)
