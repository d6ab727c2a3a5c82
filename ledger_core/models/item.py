from decimal import Decimal

from django.db import models

from .account import Account
from .base import HexIdModel


# ---------- Items (stocked products) ----------
class Item(HexIdModel):
    # Stock Keeping Unit (optional unique code)
    sku = models.CharField(max_length=80, null=True, blank=True, unique=True)
    name = models.CharField(max_length=200)

    # Inventory account INVENTORY sub-ledger lines resolve to
    linked_coa_account = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="linked_items",
    )

    default_unit_price = models.DecimalField(
        max_digits=18, decimal_places=4, default=Decimal("0.00")
    )

    class Meta:
        indexes = [models.Index(fields=["name"])]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
