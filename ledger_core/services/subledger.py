"""
Sub-ledger kinds and the records behind them.

SubledgerKind is the closed set of sub-ledgers a journal line may post
through. Each kind knows which master record carries its linked ledger
account and which line field holds that record's id.
"""

import datetime
import logging
from dataclasses import dataclass
from enum import Enum

from django.core.exceptions import ValidationError
from django.db import models, transaction

from ..exceptions import UnknownSubledgerType
from ..models import (BankAccount, Customer, Item, SubledgerTransaction,
                      Vendor)
from ..models.base import is_object_id
from .valuation import round2, to_decimal

logger = logging.getLogger(__name__)


class SubledgerKind(Enum):
    AR = ("AR", Customer, "customer")
    AP = ("AP", Vendor, "vendor")
    BANK = ("BANK", BankAccount, "bank_account")
    INVENTORY = ("INVENTORY", Item, "item")

    def __init__(self, code, master_model, party_field):
        self.code = code
        self.master_model = master_model
        self.party_field = party_field

    @classmethod
    def parse(cls, tag):
        if isinstance(tag, cls):
            return tag
        code = str(tag or "").strip().upper()
        code = _ALIASES.get(code, code)
        for kind in cls:
            if kind.code == code:
                return kind
        raise UnknownSubledgerType(f"Unknown sub-ledger type: {tag!r}")

    def resolve_account(self, party_id):
        """Return the master record's linked ledger account (or raise)."""
        label = self.party_field.replace("_", " ")
        if not is_object_id(party_id):
            raise ValidationError(f"{self.code} line needs a valid {label} id")
        party = (
            self.master_model.objects.select_related("linked_coa_account")
            .filter(pk=party_id.lower())
            .first()
        )
        if party is None:
            raise ValidationError(f"{label.capitalize()} {party_id} not found")
        if party.linked_coa_account is None:
            raise ValidationError(
                f"Cannot resolve ledger account from {label} {party_id}"
            )
        return party.linked_coa_account


_ALIASES = {
    "INV": "INVENTORY",
    "BANK_ACCOUNT": "BANK",
}


@dataclass(frozen=True)
class SubledgerPointer:
    """{subledger_type, txn_id} carried by a journal line."""

    kind: SubledgerKind
    txn_id: str

    def __post_init__(self):
        object.__setattr__(self, "kind", SubledgerKind.parse(self.kind))
        if not is_object_id(self.txn_id):
            raise ValidationError(f"Invalid sub-ledger txn id: {self.txn_id!r}")
        object.__setattr__(self, "txn_id", self.txn_id.lower())

    @classmethod
    def from_dict(cls, data):
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise ValidationError("Sub-ledger pointer must be an object")
        return cls(data.get("subledger_type"), data.get("txn_id"))


def previous_txn_for(kind, party):
    """Latest txn on the same sub-ledger entity (the lineage parent)."""
    return (
        SubledgerTransaction.objects.filter(
            subledger_type=kind.code, **{kind.party_field: party}
        )
        .order_by("-created_at", "-id")
        .first()
    )


@transaction.atomic
def record_subledger_txn(
    kind,
    party,
    amount,
    *,
    source_type,
    source_id=None,
    source_line=None,
    txn_date=None,
    currency="INR",
    exchange_rate=1,
    ledger_account=None,
    dims=None,
    extras=None,
):
    """Create one sub-ledger transaction for `party` (customer/vendor/bank/item)."""
    kind = SubledgerKind.parse(kind)
    if ledger_account is None:
        ledger_account = kind.resolve_account(party.pk)

    last_line = SubledgerTransaction.objects.filter(
        subledger_type=kind.code, source_type=source_type, source_id=source_id
    ).aggregate(last=models.Max("line_num"))["last"]

    txn = SubledgerTransaction.objects.create(
        txn_date=txn_date or datetime.date.today(),
        subledger_type=kind.code,
        source_type=source_type,
        source_id=source_id,
        source_line=source_line,
        line_num=(last_line or 0) + 1,
        ledger_account=ledger_account,
        amount=round2(amount),
        currency=currency,
        exchange_rate=round2(to_decimal(exchange_rate, default="1")),
        previous_txn=previous_txn_for(kind, party),
        dims=dims or {},
        extras=extras or {},
        **{kind.party_field: party},
    )
    logger.info(
        "Recorded %s sub-ledger txn %s for %s %s amount=%s",
        kind.code, txn.pk, kind.party_field, party.pk, txn.amount,
    )
    return txn
