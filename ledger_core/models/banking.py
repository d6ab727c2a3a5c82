from django.db import models

from .account import Account
from .base import HexIdModel


# ---------- Bank account ----------
class BankAccount(HexIdModel):
    name = models.CharField(max_length=200)
    account_number = models.CharField(max_length=64, null=True, blank=True)
    currency = models.CharField(max_length=3, default="INR")

    # GL cash/bank account BANK sub-ledger lines resolve to
    linked_coa_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="linked_bank_accounts",
    )

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
