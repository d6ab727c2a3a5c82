from django.core.exceptions import ValidationError
from django.db import models

from .base import HexIdModel

# Choice Lists
AC_TYPES = [
    # Used in Account model to classify general ledger accounts
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("income", "Income"),
    ("expense", "Expense"),
]

# Define whether the account normally increases
# on the debit side or credit side
NORMAL_BALANCE = [
    ("debit", "Debit"),
    ("credit", "Credit"),
]


class Account(HexIdModel):
    """
    Ledger account in the Chart of Accounts.
    - code is unique and is what vouchers carry (account_code)
    - only leaf accounts that allow manual posting take journal lines
    """

    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=200)

    ac_type = models.CharField(max_length=10, choices=AC_TYPES)
    normal_balance = models.CharField(
        max_length=6,
        choices=NORMAL_BALANCE,
        default="debit",
    )
    # Optional hierarchy (1000 Cash → 1001 Petty Cash)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )

    # A group account cannot take postings, only its leaves can
    is_leaf = models.BooleanField(default=True)
    # Off: no journal line may post here, whether given directly or
    # resolved through a sub-ledger
    allow_manual_post = models.BooleanField(default=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["ac_type"]),
            models.Index(fields=["parent"]),
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"

    def clean(self):
        if self.parent_id and self.parent_id == self.pk:
            raise ValidationError("Account cannot be its own parent.")
        if self.parent_id and self.parent.is_leaf:
            raise ValidationError(
                "Parent account must be a group account (is_leaf=False)."
            )

    def save(self, *args, **kwargs):
        """Enforce business immutability
        (can’t disable accounts used in journal lines)"""
        self.full_clean()
        if self._state.adding:
            return super().save(*args, **kwargs)

        old = Account.objects.filter(pk=self.pk).first()
        if old and old.is_active and not self.is_active:
            from .journal import GLJournalLine

            if GLJournalLine.objects.filter(account=self).exists():
                raise ValidationError(
                    "Cannot disable an account that is used in journal lines."
                )
        return super().save(*args, **kwargs)
