from django.db import models

from .account import Account
from .base import HexIdModel


# ---------- Customer ----------
# Client on the AR side; its linked account receives AR postings
class Customer(HexIdModel):
    name = models.CharField(max_length=200, unique=True)
    contact_email = models.EmailField(null=True, blank=True)

    # Ledger account AR sub-ledger lines for this customer resolve to
    linked_coa_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="linked_customers",
    )

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)
