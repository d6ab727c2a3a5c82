from decimal import ROUND_HALF_UP, Decimal

from django.db import models

from ..managers import StockKeyQuerySet
from .base import HexIdModel
from .item import Item

# Inventory dimensions making up the composite stock key (besides item)
DIMENSION_FIELDS = (
    "site",
    "warehouse",
    "zone",
    "location",
    "aisle",
    "rack",
    "shelf",
    "bin",
    "config",
    "color",
    "size",
    "style",
    "version",
    "batch",
    "serial",
)

STOCK_REF_TYPES = [
    ("SalesOrder", "Sales order"),
    ("PurchaseOrder", "Purchase order"),
]

INVENTORY_ACTIONS = [
    ("RESERVE", "Reserve"),
    ("RELEASE", "Release"),
    ("RECEIPT", "Receipt"),
    ("ISSUE", "Issue"),
    ("RECEIPT_REVERSAL", "Receipt reversal"),
    ("ISSUE_REVERSAL", "Issue reversal"),
]


def dimension_field():
    # "" means "dimension not set"; keeps NULLs out of the unique key
    return models.CharField(max_length=24, blank=True, default="")


class DimensionedModel(HexIdModel):
    """Abstract: item + the fifteen inventory dimensions."""

    item = models.ForeignKey(Item, on_delete=models.PROTECT)

    site = dimension_field()
    warehouse = dimension_field()
    zone = dimension_field()
    location = dimension_field()
    aisle = dimension_field()
    rack = dimension_field()
    shelf = dimension_field()
    bin = dimension_field()
    config = dimension_field()
    color = dimension_field()
    size = dimension_field()
    style = dimension_field()
    version = dimension_field()
    batch = dimension_field()
    serial = dimension_field()

    class Meta:
        abstract = True

    def dimensions(self):
        # only the dimensions that are actually set
        return {f: getattr(self, f) for f in DIMENSION_FIELDS if getattr(self, f)}


class StockRefModel(DimensionedModel):
    """Abstract: composite-keyed balance stamped with its last writer."""

    ref_type = models.CharField(max_length=20, choices=STOCK_REF_TYPES, blank=True, default="")
    ref_id = models.CharField(max_length=24, blank=True, default="")
    ref_num = models.CharField(max_length=32, blank=True, default="")
    ref_line_num = models.PositiveIntegerField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ---------- Provisional (reserved) balance ----------
class ProvisionalBalance(StockRefModel):
    quantity = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0"))
    total_reserve_value = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0")
    )

    objects = StockKeyQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["item", *DIMENSION_FIELDS],
                name="uq_provisional_balance_key",
            ),
        ]

    def __str__(self):
        return f"Provisional {self.item_id} {self.dimensions()} qty={self.quantity}"


# ---------- Actual stock balance ----------
class StockBalance(StockRefModel):
    quantity = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0"))
    total_cost_value = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0")
    )
    total_purchase_value = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0")
    )
    total_sales_value = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0")
    )
    total_revenue_value = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0")
    )
    # moving average: total_cost_value / quantity, 0 when quantity is 0
    cost_price = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0"))

    objects = StockKeyQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["item", *DIMENSION_FIELDS],
                name="uq_stock_balance_key",
            ),
        ]

    def __str__(self):
        return f"Stock {self.item_id} {self.dimensions()} qty={self.quantity} @ {self.cost_price}"

    def recompute_cost_price(self):
        if self.quantity:
            self.cost_price = (self.total_cost_value / self.quantity).quantize(
                Decimal("0.0001"), rounding=ROUND_HALF_UP
            )
        else:
            self.cost_price = Decimal("0")
        return self.cost_price


# ---------- Inventory transaction log ----------
class InventoryTransaction(DimensionedModel):
    """Append-only log: one row per order line per stock operation."""

    action = models.CharField(max_length=20, choices=INVENTORY_ACTIONS)
    quantity = models.DecimalField(max_digits=18, decimal_places=4)
    price = models.DecimalField(max_digits=18, decimal_places=4)
    value = models.DecimalField(max_digits=18, decimal_places=2)
    ref_type = models.CharField(max_length=20, choices=STOCK_REF_TYPES)
    ref_id = models.CharField(max_length=24)
    ref_num = models.CharField(max_length=32, blank=True, default="")
    ref_line_num = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["ref_type", "ref_id"]),
            models.Index(fields=["item", "created_at"]),
        ]

    def __str__(self):
        return f"{self.action} {self.item_id} {self.quantity} ({self.ref_num})"
