import datetime
import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from ..exceptions import JournalLineError
from ..models import (Account, BankAccount, Customer, GLJournal,
                      GLJournalLine, Item, Vendor)
from ..models.base import is_object_id
from .audit_helper import log_action
from .sequences import next_journal_no
from .subledger import SubledgerPointer
from .valuation import compute_line, to_decimal

logger = logging.getLogger(__name__)

POINTER_MODELS = {
    "item": Item,
    "customer": Customer,
    "vendor": Vendor,
    "bank_account": BankAccount,
}
POINTER_FIELDS = tuple(POINTER_MODELS)

# Raw valuation inputs stored as given (0 when absent)
INPUT_FIELDS = (
    "qty",
    "unit_price",
    "discount_percent",
    "charge_percent",
    "gst_percent",
    "tds_percent",
)

# Columns copied from a valued line dict onto GLJournalLine
VALUED_FIELDS = (
    "tax_regime",
    "assessable_value",
    "discount_amount",
    "charges_amount",
    "taxable_value",
    "total_gst",
    "cgst",
    "sgst",
    "igst",
    "tds_amount",
    "debit",
    "credit",
    "exchange_rate",
    "local_amount",
)


def _present(value):
    return value not in (None, "")


# ----------------------------------------------
# Line validation
# ----------------------------------------------
def _resolve_account(index, line):
    """Return (account, pointer) for one raw line or raise JournalLineError."""
    has_account = _present(line.get("account"))
    has_subledger = _present(line.get("subledger"))
    if has_account == has_subledger:
        raise JournalLineError(
            index, "Exactly one of account or sub-ledger pointer is required"
        )

    pointer = None
    try:
        if has_subledger:
            pointer = SubledgerPointer.from_dict(line["subledger"])
            account = pointer.kind.resolve_account(line.get(pointer.kind.party_field))
        else:
            account_id = line["account"]
            if not is_object_id(account_id):
                raise ValidationError(f"Invalid account id {account_id!r}")
            account = Account.objects.filter(pk=account_id.lower()).first()
            if account is None:
                raise ValidationError(f"Account {account_id} not found")
    except ValidationError as exc:
        raise JournalLineError(index, "; ".join(exc.messages)) from exc

    if not account.is_leaf:
        raise JournalLineError(index, f"Account {account.code} is not a leaf account")
    if not account.allow_manual_post:
        raise JournalLineError(
            index, f"Account {account.code} does not allow manual posting"
        )
    return account, pointer


def _validate_line(index, line):
    """Validate and value one raw line; returns the kwargs for GLJournalLine."""
    if not isinstance(line, dict):
        raise JournalLineError(index, "Line must be an object")

    account, pointer = _resolve_account(index, line)

    pointers = {}
    for field in POINTER_FIELDS:
        value = line.get(field)
        if not _present(value):
            continue
        label = field.replace("_", " ")
        if not is_object_id(value):
            raise JournalLineError(index, f"Invalid {label} id")
        if not POINTER_MODELS[field].objects.filter(pk=value.lower()).exists():
            raise JournalLineError(index, f"{label.capitalize()} {value} not found")
        pointers[f"{field}_id"] = value.lower()

    currency = line.get("currency")
    if not isinstance(currency, str) or not currency.strip():
        raise JournalLineError(index, "Currency is required")

    try:
        valued = compute_line(line)
    except ValueError as exc:
        raise JournalLineError(index, str(exc)) from exc
    # checked after rounding, as stored
    rate, debit, credit = valued["exchange_rate"], valued["debit"], valued["credit"]
    if rate < 0:
        raise JournalLineError(index, "Exchange rate must be >= 0")
    if debit < 0 or credit < 0:
        raise JournalLineError(index, "Debit and credit must be >= 0")
    if (debit > 0) == (credit > 0):
        raise JournalLineError(
            index, "Exactly one of debit or credit must be greater than 0"
        )

    row = {field: valued[field] for field in VALUED_FIELDS}
    row.update({field: to_decimal(line.get(field)) for field in INPUT_FIELDS})
    row.update(pointers)
    row.update(
        line_num=index,
        account=account,
        currency=currency.strip().upper(),
        remarks=line.get("remarks") or None,
        dims=line.get("dims") or {},
        extras=line.get("extras") or {},
    )
    if pointer is not None:
        row["subledger_type"] = pointer.kind.code
        row["subledger_txn_id"] = pointer.txn_id
    return row


def validate_lines(lines):
    """Validate every line before anything is written."""
    if not lines:
        raise ValidationError("Journal must have at least one line")
    return [_validate_line(i, line) for i, line in enumerate(lines, start=1)]


# ----------------------------------------------
# Journal workflows
# ----------------------------------------------
@transaction.atomic
def create_journal(data, user=None):
    """Validate all lines, then persist a DRAFT GLJournal with them."""
    rows = validate_lines(data.get("lines") or [])

    created_by = user or data.get("created_by") or "system"
    journal = GLJournal.objects.create(
        journal_no=next_journal_no(),
        journal_date=data.get("journal_date") or datetime.date.today(),
        reference=data.get("reference"),
        description=data.get("description"),
        created_by=created_by,
        source_type=data.get("source_type") or "JOURNAL",
        source_id=data.get("source_id"),
    )
    for row in rows:
        GLJournalLine.objects.create(journal=journal, **row)

    log_action(
        action="create",
        instance=journal,
        user=created_by,
        changes={"lines": len(rows), "journal_no": journal.journal_no},
    )
    logger.info("Created journal %s with %d lines", journal.journal_no, len(rows))
    return journal


def _get_journal(journal_id):
    if isinstance(journal_id, GLJournal):
        return journal_id
    if not is_object_id(journal_id):
        raise ValidationError(f"Invalid journal id {journal_id!r}")
    return GLJournal.objects.get(pk=journal_id.lower())


@transaction.atomic
def post_journal(journal_id, user=None):
    """DRAFT → POSTED (balance re-checked)."""
    journal = _get_journal(journal_id)
    journal.post()
    log_action(
        action="post",
        instance=journal,
        user=user,
        changes={"status": "posted"},
    )
    logger.info("Posted journal %s", journal.journal_no)
    return journal


@transaction.atomic
def change_journal_status(journal_id, new_status, user=None):
    journal = _get_journal(journal_id)
    old_status = journal.status
    journal.transition_to(new_status)
    log_action(
        action="status",
        instance=journal,
        user=user,
        changes={"from": old_status, "to": new_status},
    )
    logger.info(
        "Journal %s status %s → %s", journal.journal_no, old_status, new_status
    )
    return journal


def archive_journal(journal_id, user=None):
    return change_journal_status(journal_id, "cancelled", user=user)


@transaction.atomic
def post_and_build_voucher(journal_id, user=None, **voucher_kwargs):
    """Post a draft journal and build its voucher in one transaction."""
    from .voucher import build_voucher

    journal = post_journal(journal_id, user=user)
    voucher = build_voucher(journal, user=user, **voucher_kwargs)
    return journal, voucher
