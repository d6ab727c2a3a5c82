import datetime
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction

from ..conf import ledger_setting
from ..exceptions import InvalidStatusTransition, QuantityOutOfRange
from ..models import (Account, GLJournal, Order, OrderLine, OrderMovement,
                      DIMENSION_FIELDS)
from ..models.base import is_object_id
from ..models.order import ORDER_STATUS
from . import stock
from .audit_helper import log_action
from .journal import create_journal, post_journal
from .sequences import next_order_no
from .subledger import SubledgerKind, record_subledger_txn
from .valuation import compute_lines, to_decimal

logger = logging.getLogger(__name__)

OVERRIDE_STATUSES = ("admin_mode", "any_mode")

# Legal next statuses per current status (overrides added by allowed_order_transitions)
ORDER_STATUS_TRANSITIONS = {
    "draft": ["approved", "confirmed", "cancelled"],
    "approved": ["confirmed", "cancelled"],
    "confirmed": ["shipped", "cancelled"],
    "shipped": ["delivered", "cancelled"],
    "partially_shipped": ["shipped", "cancelled"],
    "delivered": ["invoiced"],
    "partially_delivered": ["delivered"],
    "invoiced": [],
    "partially_invoiced": ["invoiced"],
    "cancelled": [],
    "admin_mode": ["draft"],
}

# Statuses that only ever come from posted movement rows
MOVEMENT_DERIVED_STATUSES = {
    "shipped",
    "partially_shipped",
    "delivered",
    "partially_delivered",
    "invoiced",
    "partially_invoiced",
}

# Movement rows are only accepted once the order is live
MOVEMENT_BLOCKED_STATUSES = {"draft", "approved", "cancelled"}

# Reaching either of these moves the goods on the stock ledger
STOCK_APPLY_STATUSES = ("delivered", "invoiced")

MOVEMENT_ACTIONS = ("ship", "deliver", "invoice")


def allowed_order_transitions(status):
    if status == "any_mode":
        return [s for s, _ in ORDER_STATUS if s != "any_mode"]
    allowed = list(ORDER_STATUS_TRANSITIONS.get(status, []))
    for override in OVERRIDE_STATUSES:
        if override != status and override not in allowed:
            allowed.append(override)
    return allowed


def _lock_order(order_id):
    if isinstance(order_id, Order):
        order_id = order_id.pk
    if not is_object_id(order_id):
        raise ValidationError(f"Invalid order id {order_id!r}")
    return Order.objects.select_for_update().get(pk=order_id.lower())


# ----------------------------------------------
# Order creation
# ----------------------------------------------
@transaction.atomic
def create_order(
    kind,
    lines,
    *,
    customer=None,
    vendor=None,
    order_type="order",
    order_date=None,
    currency="INR",
    exchange_rate=1,
    tax_regime=None,
    user=None,
):
    """Create a draft order; `lines` are dicts with item, quantity, price, ..."""
    if not lines:
        raise ValidationError("Order must have at least one line")
    order = Order.objects.create(
        kind=kind,
        order_type=order_type,
        order_num=next_order_no(kind),
        order_date=order_date or datetime.date.today(),
        customer=customer,
        vendor=vendor,
        currency=currency,
        exchange_rate=to_decimal(exchange_rate, default="1"),
        tax_regime=tax_regime or ledger_setting("DEFAULT_TAX_REGIME"),
        created_by=user or "system",
    )
    for line_num, data in enumerate(lines, start=1):
        dims = data.get("dims") or {}
        unknown = set(dims) - set(DIMENSION_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown dimensions: {', '.join(sorted(unknown))}")
        OrderLine.objects.create(
            order=order,
            line_num=line_num,
            item=data["item"],
            quantity=to_decimal(data["quantity"]),
            price=to_decimal(data.get("price")),
            discount_percent=to_decimal(data.get("discount_percent")),
            charge_percent=to_decimal(data.get("charge_percent")),
            gst_percent=to_decimal(data.get("gst_percent")),
            tds_percent=to_decimal(data.get("tds_percent")),
            **dims,
        )
    log_action(action="create", instance=order, user=user,
               changes={"order_num": order.order_num, "lines": len(lines)})
    logger.info("Created %s order %s", kind, order.order_num)
    return order


# ----------------------------------------------
# Header status machine
# ----------------------------------------------
@transaction.atomic
def change_order_status(order_id, new_status, user=None):
    """
    Move an order to `new_status` and run the ledger effects that go
    with it, all in one transaction:
      confirmed → reserve stock
      delivered → release the reservation, apply stock
      invoiced  → apply stock if still pending, journal + voucher
      cancelled → release / reverse whatever is in force
    """
    order = _lock_order(order_id)
    old_status = order.status
    if new_status not in allowed_order_transitions(old_status):
        raise InvalidStatusTransition(old_status, new_status)

    _run_status_effects(order, new_status, user=user)

    order.status = new_status
    if new_status in MOVEMENT_DERIVED_STATUSES and order.movements.exists():
        # partial movements win over the requested full status
        derived = derive_status(order)
        if derived.startswith("partially_"):
            order.status = derived
    status = order.status

    order.save(update_fields=["status", "stock_reserved", "stock_applied", "updated_at"])
    log_action(action="status", instance=order, user=user,
               changes={"from": old_status, "to": status})
    logger.info("Order %s status %s → %s", order.order_num, old_status, status)
    return order


def _run_status_effects(order, status, user=None):
    """Stock and ledger effects of reaching `status`.

    The stock flags and the idempotent ledger posting make every effect
    run at most once, whether the header is moved directly or derived
    from movement rows. The caller saves the flags.
    """
    if status == "confirmed" and not order.stock_reserved:
        stock.reserve(order)
        order.stock_reserved = True
    elif status in STOCK_APPLY_STATUSES and not order.stock_applied:
        if order.stock_reserved:
            stock.release(order)
            order.stock_reserved = False
        stock.apply(order)
        order.stock_applied = True
    elif status == "cancelled":
        if order.stock_reserved:
            stock.release(order)
            order.stock_reserved = False
        if order.stock_applied:
            stock.reverse(order)
            order.stock_applied = False

    if status == "invoiced":
        post_order_to_ledger(order, user=user)


# ----------------------------------------------
# Partial movements (ship / deliver / invoice rows)
# ----------------------------------------------
def movement_totals(order):
    movements = OrderMovement.objects.filter(order=order)
    return {
        "ordered": order.ordered_quantity(),
        "shipped": movements.posted_total("ship"),
        "delivered": movements.posted_total("deliver"),
        "invoiced": movements.posted_total("invoice"),
    }


def remaining_quantity(action, totals):
    if action == "ship":
        return totals["ordered"] - totals["shipped"]
    if action == "deliver":
        return totals["shipped"] - totals["delivered"]
    if action == "invoice":
        return totals["delivered"] - totals["invoiced"]
    raise ValidationError(f"Unknown movement action {action!r}")


def _check_range(order, action, qty):
    remaining = remaining_quantity(action, movement_totals(order))
    if qty <= 0 or qty > remaining:
        raise QuantityOutOfRange(format(remaining.normalize(), "f"))


def derive_status(order, totals=None):
    """Aggregate status from posted movement rows.

    The most advanced stage with anything posted decides, measured
    against the stage before it: shipped against ordered, delivered
    against shipped, invoiced against delivered. Cancelled and override
    statuses are never replaced.
    """
    if order.status == "cancelled" or order.status in OVERRIDE_STATUSES:
        return order.status
    totals = totals or movement_totals(order)
    ordered = totals["ordered"]
    shipped, delivered, invoiced = totals["shipped"], totals["delivered"], totals["invoiced"]

    if invoiced > 0:
        return "invoiced" if invoiced == delivered else "partially_invoiced"
    if delivered > 0:
        return "delivered" if delivered == shipped else "partially_delivered"
    if shipped > 0:
        return "shipped" if shipped == ordered else "partially_shipped"
    # nothing posted any more: fall back from a movement-derived status
    if order.status in MOVEMENT_DERIVED_STATUSES:
        return "confirmed"
    return order.status


def _rederive(order, user=None):
    new_status = derive_status(order)
    if new_status != order.status:
        old_status = order.status
        if new_status in STOCK_APPLY_STATUSES:
            _run_status_effects(order, new_status, user=user)
        order.status = new_status
        order.save(update_fields=["status", "stock_reserved", "stock_applied", "updated_at"])
        log_action(action="derive_status", instance=order, user=user,
                   changes={"from": old_status, "to": new_status})
        logger.info("Order %s derived status %s → %s",
                    order.order_num, old_status, new_status)
    return order


@transaction.atomic
def add_movement(
    order_id,
    action,
    qty,
    *,
    mode="",
    external_ref="",
    date=None,
    post=False,
    user=None,
):
    """Add a ship / deliver / invoice row (draft, or posted when post=True)."""
    order = _lock_order(order_id)
    if action not in MOVEMENT_ACTIONS:
        raise ValidationError(f"Unknown movement action {action!r}")
    _check_live(order, action)
    qty = to_decimal(qty)
    _check_range(order, action, qty)

    movement = OrderMovement.objects.create(
        order=order,
        action=action,
        qty=qty,
        mode=mode or "",
        external_ref=external_ref or "",
        date=date or datetime.date.today(),
        status="posted" if post else "draft",
    )
    _rederive(order, user=user)
    return movement


def _check_live(order, action):
    if order.status in MOVEMENT_BLOCKED_STATUSES:
        raise ValidationError(
            f"Cannot record a {action} movement on a {order.status} order"
        )


def _lock_movement(movement_id):
    if isinstance(movement_id, OrderMovement):
        movement_id = movement_id.pk
    return OrderMovement.objects.select_for_update().get(pk=movement_id)


@transaction.atomic
def post_movement(movement_id, user=None):
    """draft → posted; rows in any other status are left alone."""
    movement = _lock_movement(movement_id)
    order = _lock_order(movement.order_id)
    _check_live(order, movement.action)
    if movement.status == "draft":
        _check_range(order, movement.action, movement.qty)
        movement.status = "posted"
        movement.save(update_fields=["status"])
    _rederive(order, user=user)
    return movement


@transaction.atomic
def cancel_movement(movement_id, user=None):
    """Cancel a row whatever its status; a posted row stops counting."""
    movement = _lock_movement(movement_id)
    order = _lock_order(movement.order_id)
    _check_live(order, movement.action)
    movement.status = "cancelled"
    movement.save(update_fields=["status"])
    _rederive(order, user=user)
    return movement


# ----------------------------------------------
# Ledger posting for an invoiced order
# ----------------------------------------------
def _account_by_code(setting_name):
    code = ledger_setting(setting_name)
    account = Account.objects.filter(code=code).first()
    if account is None:
        raise ValidationError(f"Ledger account {code} is not configured")
    return account


def _side(amount, debit_side):
    # {"debit": x} or {"credit": x}
    return {"debit": amount} if debit_side else {"credit": amount}


def _order_journal_lines(order, txn_date):
    """Build journal input lines (and sub-ledger txns) for an order."""
    sales = order.kind == "sales"
    # returns flip every side
    flip = order.is_return
    order_lines = list(order.lines.select_related("item"))
    valued = compute_lines([
        {
            "qty": line.quantity,
            "unit_price": line.price,
            "discount_percent": line.discount_percent,
            "charge_percent": line.charge_percent,
            "gst_percent": line.gst_percent,
            "tds_percent": line.tds_percent,
            "tax_regime": order.tax_regime,
            "exchange_rate": order.exchange_rate,
        }
        for line in order_lines
    ])

    common = {"currency": order.currency, "exchange_rate": order.exchange_rate}
    source = {
        "source_type": "SALES" if sales else "PURCHASE",
        "source_id": order.pk,
        "txn_date": txn_date,
        "currency": order.currency,
        "exchange_rate": order.exchange_rate,
    }
    journal_lines = []
    total_gst = Decimal("0.00")
    gross = Decimal("0.00")

    for line, values in zip(order_lines, valued):
        taxable = values["taxable_value"]
        total_gst += values["total_gst"]
        gross += taxable + values["total_gst"]
        if taxable <= 0:
            continue
        if sales:
            # Cr revenue per item
            journal_lines.append({
                "account": _account_by_code("SALES_REVENUE_ACCOUNT").pk,
                "item": line.item_id,
                **_side(taxable, debit_side=flip),
                **common,
            })
        else:
            # Dr inventory through the item's sub-ledger
            txn = record_subledger_txn(
                SubledgerKind.INVENTORY, line.item,
                -taxable if flip else taxable,
                source_line=line.line_num, dims=line.dimensions(), **source,
            )
            journal_lines.append({
                "subledger": {"subledger_type": "INVENTORY", "txn_id": txn.pk},
                "item": line.item_id,
                **_side(taxable, debit_side=not flip),
                **common,
            })

    if total_gst > 0:
        setting = "GST_OUTPUT_ACCOUNT" if sales else "GST_INPUT_ACCOUNT"
        journal_lines.append({
            "account": _account_by_code(setting).pk,
            **_side(total_gst, debit_side=(not sales) != flip),
            **common,
        })

    if gross <= 0:
        raise ValidationError(f"Order {order.order_num} has nothing to post")

    party = order.party
    if party is None:
        raise ValidationError(f"Order {order.order_num} has no counterparty")
    kind = SubledgerKind.AR if sales else SubledgerKind.AP
    # AR is a debit balance, AP a credit balance
    party_debit = sales != flip
    txn = record_subledger_txn(
        kind, party, gross if party_debit else -gross, **source
    )
    journal_lines.append({
        "subledger": {"subledger_type": kind.code, "txn_id": txn.pk},
        kind.party_field: party.pk,
        **_side(gross, debit_side=party_debit),
        **common,
    })
    return journal_lines


@transaction.atomic
def post_order_to_ledger(order, user=None):
    """Create, post and voucher the journal for an invoiced order (once)."""
    from .voucher import build_voucher

    source_type = "SALES_INVOICE" if order.kind == "sales" else "PURCHASE_INVOICE"
    existing = GLJournal.objects.posted().filter(
        source_type=source_type, source_id=order.pk
    ).first()
    if existing is not None:
        logger.info("Order %s already posted as %s", order.order_num, existing.journal_no)
        return existing

    txn_date = datetime.date.today()
    journal = create_journal(
        {
            "journal_date": txn_date,
            "reference": order.order_num,
            "source_type": source_type,
            "source_id": order.pk,
            "lines": _order_journal_lines(order, txn_date),
        },
        user=user,
    )
    post_journal(journal, user=user)
    build_voucher(journal, posting_event_type="FINANCIAL", user=user)
    return journal
