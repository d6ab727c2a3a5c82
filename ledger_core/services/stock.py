"""
Stock ledger: provisional (reserved) and actual balances per composite key.

reserve / release move ProvisionalBalance, apply / reverse move
StockBalance. Each takes an order and optionally a subset of its lines
(one line is just a one-element list) and joins the caller's
transaction, so the order status change and the ledger writes commit or
roll back together.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import IntegrityError, models, transaction

from ..exceptions import StockBalanceMissing, StockLedgerConflict
from ..models import InventoryTransaction, ProvisionalBalance, StockBalance
from .valuation import round2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLine:
    """What the stock ledger needs from one order line."""

    key: dict
    quantity: Decimal
    price: Decimal
    line_num: int

    @property
    def value(self):
        return round2(self.quantity * self.price)


def _lines(order, lines):
    if lines is None:
        lines = order.lines.all()
    return [
        StockLine(
            key=line.stock_key(),
            quantity=Decimal(line.quantity),
            price=Decimal(line.price),
            line_num=line.line_num,
        )
        for line in lines
    ]


def reservation_sign(order):
    return -1 if order.is_return else 1


def movement_sign(order):
    """+1 when goods come in, -1 when they go out.

    Purchase receipts and sales returns come in; sales deliveries and
    purchase returns go out.
    """
    inbound = (order.kind == "purchase") != order.is_return
    return 1 if inbound else -1


def _refs(order, line):
    return {
        "ref_type": order.ref_type,
        "ref_id": order.pk,
        "ref_num": order.order_num,
        "ref_line_num": line.line_num,
    }


def _log(order, line, action, quantity):
    InventoryTransaction.objects.create(
        action=action,
        quantity=quantity,
        price=line.price,
        value=round2(quantity * line.price),
        **_refs(order, line),
        **line.key,
    )


def _increment(model, key, increments, refs):
    """Add `increments` to the row at `key`; returns rows touched (0 or 1)."""
    values = {f: models.F(f) + amount for f, amount in increments.items()}
    return model.objects.for_key(key).update(**values, **refs)


def _upsert(model, key, increments, refs):
    """Increment the row at `key`, creating it on first use.

    A concurrent creator may insert the same key between our update and
    insert; the unique constraint then fires and we retry once as a
    plain update. A second miss is a hard error.
    """
    if _increment(model, key, increments, refs):
        return
    try:
        # savepoint: the outer transaction survives the IntegrityError
        with transaction.atomic():
            model.objects.create(**key, **increments, **refs)
        return
    except IntegrityError:
        logger.warning(
            "Concurrent first insert on %s %s; retrying as update",
            model.__name__, key,
        )
    if not _increment(model, key, increments, refs):
        raise StockLedgerConflict(
            f"{model.__name__} {key} could not be created or updated"
        )


def _refresh_cost_price(key):
    balance = StockBalance.objects.select_for_update().for_key(key).get()
    balance.recompute_cost_price()
    balance.save(update_fields=["cost_price"])
    return balance


# ----------------------------------------------
# Provisional balance
# ----------------------------------------------
@transaction.atomic
def reserve(order, lines=None):
    sign = reservation_sign(order)
    stock_lines = _lines(order, lines)
    for line in stock_lines:
        qty = sign * line.quantity
        _upsert(
            ProvisionalBalance,
            line.key,
            {"quantity": qty, "total_reserve_value": round2(qty * line.price)},
            _refs(order, line),
        )
        _log(order, line, "RESERVE", qty)
    logger.info("Reserved %d line(s) for %s", len(stock_lines), order.order_num)


@transaction.atomic
def release(order, lines=None):
    """Undo reserve(); keys that were never reserved are skipped."""
    sign = reservation_sign(order)
    stock_lines = _lines(order, lines)
    for line in stock_lines:
        qty = sign * line.quantity
        touched = _increment(
            ProvisionalBalance,
            line.key,
            {"quantity": -qty, "total_reserve_value": -round2(qty * line.price)},
            _refs(order, line),
        )
        if not touched:
            logger.debug("No provisional balance for %s; nothing to release", line.key)
            continue
        _log(order, line, "RELEASE", -qty)
    logger.info("Released %d line(s) for %s", len(stock_lines), order.order_num)


# ----------------------------------------------
# Actual stock balance
# ----------------------------------------------
def _stock_increments(order, qty, price):
    value = round2(qty * price)
    increments = {"quantity": qty, "total_cost_value": value}
    if qty > 0:
        inbound_field = (
            "total_purchase_value" if order.kind == "purchase" else "total_sales_value"
        )
        increments[inbound_field] = value
    elif qty < 0:
        increments["total_revenue_value"] = -value
    return increments


@transaction.atomic
def apply(order, lines=None):
    sign = movement_sign(order)
    action = "RECEIPT" if sign > 0 else "ISSUE"
    stock_lines = _lines(order, lines)
    for line in stock_lines:
        qty = sign * line.quantity
        _upsert(
            StockBalance,
            line.key,
            _stock_increments(order, qty, line.price),
            _refs(order, line),
        )
        _refresh_cost_price(line.key)
        _log(order, line, action, qty)
    logger.info("Applied %d line(s) for %s", len(stock_lines), order.order_num)


@transaction.atomic
def reverse(order, lines=None):
    """Undo apply(); a missing balance is a data-integrity fault."""
    sign = movement_sign(order)
    action = "RECEIPT_REVERSAL" if sign > 0 else "ISSUE_REVERSAL"
    stock_lines = _lines(order, lines)
    for line in stock_lines:
        if not StockBalance.objects.for_key(line.key).exists():
            raise StockBalanceMissing("Stock record not found for reversal")
        qty = sign * line.quantity
        increments = {
            field: -amount
            for field, amount in _stock_increments(order, qty, line.price).items()
        }
        _increment(StockBalance, line.key, increments, _refs(order, line))
        _refresh_cost_price(line.key)
        _log(order, line, action, -qty)
    logger.info("Reversed %d line(s) for %s", len(stock_lines), order.order_num)


def recompute_cost_prices():
    """Re-derive every moving-average cost price; returns rows changed."""
    changed = 0
    for balance in StockBalance.objects.iterator():
        before = balance.cost_price
        if balance.recompute_cost_price() != before:
            balance.save(update_fields=["cost_price"])
            changed += 1
    return changed
