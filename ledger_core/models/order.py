from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from ..managers import OrderMovementQuerySet
from .base import HexIdModel
from .customer import Customer
from .journal import TAX_REGIMES
from .stock import DIMENSION_FIELDS, DimensionedModel
from .vendor import Vendor

ORDER_KINDS = [
    ("sales", "Sales"),
    ("purchase", "Purchase"),
]

ORDER_TYPES = [
    ("order", "Order"),
    ("return", "Return"),
]

ORDER_STATUS = [
    ("draft", "Draft"),
    ("approved", "Approved"),
    ("confirmed", "Confirmed"),
    ("shipped", "Shipped"),
    ("partially_shipped", "Partially shipped"),
    ("delivered", "Delivered"),
    ("partially_delivered", "Partially delivered"),
    ("invoiced", "Invoiced"),
    ("partially_invoiced", "Partially invoiced"),
    ("cancelled", "Cancelled"),
    ("admin_mode", "Admin mode"),
    ("any_mode", "Any mode"),
]

MOVEMENT_ACTIONS = [
    ("ship", "Ship"),
    ("deliver", "Deliver"),
    ("invoice", "Invoice"),
]

MOVEMENT_STATUS = [
    ("draft", "Draft"),
    ("posted", "Posted"),
    ("cancelled", "Cancelled"),
]


# ---------- Order (Header), OrderLine & OrderMovement ----------
class Order(HexIdModel):
    """
    Sales or purchase order. The status machine lives in
    services.fulfillment; the stock_* flags record which stock
    ledger effects are currently in force for this order.
    """

    kind = models.CharField(max_length=10, choices=ORDER_KINDS)
    order_type = models.CharField(max_length=10, choices=ORDER_TYPES, default="order")
    order_num = models.CharField(max_length=32, unique=True)
    order_date = models.DateField()
    status = models.CharField(max_length=20, choices=ORDER_STATUS, default="draft")

    # Sales orders carry a customer, purchase orders a vendor
    customer = models.ForeignKey(
        Customer, null=True, blank=True, on_delete=models.PROTECT
    )
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.PROTECT)

    currency = models.CharField(max_length=3, default="INR")
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=2, default=1)
    tax_regime = models.CharField(max_length=5, choices=TAX_REGIMES, default="intra")

    stock_reserved = models.BooleanField(default=False)
    stock_applied = models.BooleanField(default=False)

    created_by = models.CharField(max_length=100, default="system")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["kind", "status"]),
            models.Index(fields=["order_date"]),
        ]

    def __str__(self):
        return f"{self.order_num} [{self.status}]"

    @property
    def is_return(self):
        return self.order_type == "return"

    @property
    def ref_type(self):
        # tag stamped on stock balances written for this order
        return "SalesOrder" if self.kind == "sales" else "PurchaseOrder"

    @property
    def party(self):
        return self.customer if self.kind == "sales" else self.vendor

    def ordered_quantity(self):
        total = self.lines.aggregate(total=models.Sum("quantity"))["total"]
        return total or Decimal("0")

    def clean(self):
        if self.kind == "sales" and self.vendor_id:
            raise ValidationError("A sales order cannot reference a vendor.")
        if self.kind == "purchase" and self.customer_id:
            raise ValidationError("A purchase order cannot reference a customer.")
        if self.exchange_rate is not None and self.exchange_rate < 0:
            raise ValidationError("Exchange rate must be >= 0")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class OrderLine(DimensionedModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="lines")
    line_num = models.PositiveIntegerField()

    quantity = models.DecimalField(max_digits=18, decimal_places=4)
    price = models.DecimalField(max_digits=18, decimal_places=4)
    discount_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    charge_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    gst_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)
    tds_percent = models.DecimalField(max_digits=7, decimal_places=3, default=0)

    class Meta:
        ordering = ["line_num"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "line_num"], name="uq_order_line_num"
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="order_line_quantity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="order_line_price_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.order_id}#{self.line_num} {self.item_id} x{self.quantity}"

    def stock_key(self):
        """Composite key for ProvisionalBalance / StockBalance lookups."""
        key = {"item_id": self.item_id}
        for f in DIMENSION_FIELDS:
            key[f] = getattr(self, f) or ""
        return key

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)


class OrderMovement(HexIdModel):
    """One ship / deliver / invoice row; only posted rows count."""

    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name="movements"
    )
    action = models.CharField(max_length=10, choices=MOVEMENT_ACTIONS)
    qty = models.DecimalField(max_digits=18, decimal_places=4)
    mode = models.CharField(max_length=50, blank=True, default="")
    external_ref = models.CharField(max_length=100, blank=True, default="")
    date = models.DateField()
    status = models.CharField(max_length=10, choices=MOVEMENT_STATUS, default="draft")
    created_at = models.DateTimeField(auto_now_add=True)

    objects = OrderMovementQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [models.Index(fields=["order", "action", "status"])]

    def __str__(self):
        return f"{self.action} {self.qty} [{self.status}] for {self.order_id}"

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
