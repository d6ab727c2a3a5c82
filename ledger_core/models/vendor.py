from django.db import models

from .account import Account
from .base import HexIdModel


# ---------- Vendor ----------
# Supplier on the AP side; its linked account receives AP postings
class Vendor(HexIdModel):
    name = models.CharField(max_length=200, unique=True)
    contact_email = models.EmailField(null=True, blank=True)

    linked_coa_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="linked_vendors",
    )

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
