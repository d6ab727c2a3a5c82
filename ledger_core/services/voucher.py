import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction

from ..conf import fx_tolerance, ledger_setting
from ..models import GLJournal, SubledgerTransaction, Voucher, VoucherLine
from .audit_helper import log_action
from .sequences import format_sequence, voucher_counter
from .valuation import round2

logger = logging.getLogger(__name__)


def _voucher_line(line, sub):
    """VoucherLine kwargs for one posted journal line."""
    return {
        "account_code": line.account.code,
        "subledger_code": line.subledger_code,
        "debit": line.debit,
        "credit": line.credit,
        "currency": line.currency,
        "exchange_rate": line.exchange_rate,
        "local_amount": round2((line.debit - line.credit) * line.exchange_rate),
        "dims": line.dims,
        "extras": line.extras,
        # points at the originating sub-ledger txn, not at the journal
        "subledger_source_type": sub.source_type if sub else "JOURNAL",
        "subledger_txn_id": line.subledger_txn_id,
        "subledger_line_num": sub.line_num if sub else line.line_num,
    }


def fx_balancing_line(lines):
    """Return an FX_GAIN / FX_LOSS line netting `lines` to zero, or None.

    A positive balancing amount is booked as a debit to the FX loss
    account, a negative one as a credit to the FX gain account.
    """
    total = sum((line["local_amount"] for line in lines), Decimal("0.00"))
    if abs(total) <= fx_tolerance():
        return None

    balancing = -round2(total)
    if balancing > 0:
        account_code = ledger_setting("FX_LOSS_ACCOUNT")
        debit, credit = balancing, Decimal("0.00")
    else:
        account_code = ledger_setting("FX_GAIN_ACCOUNT")
        debit, credit = Decimal("0.00"), -balancing

    return {
        "account_code": account_code,
        "subledger_code": account_code,
        "debit": debit,
        "credit": credit,
        "currency": ledger_setting("FUNCTIONAL_CURRENCY"),
        "exchange_rate": Decimal("1.00"),
        "local_amount": balancing,
        "dims": {},
        "extras": {"fx_adjustment": True},
        "subledger_source_type": "FX",
        "subledger_txn_id": None,
        "subledger_line_num": None,
    }


def _previous_voucher(subs):
    # the voucher that last touched the same sub-ledger entity
    for sub in subs:
        prev = sub.previous_txn
        if prev is not None and prev.current_voucher:
            return Voucher.objects.filter(voucher_no=prev.current_voucher).first()
    return None


def _stamp_lineage(voucher, subs):
    """Back-stamp sub-ledger txns and forward-stamp their predecessors."""
    voucher_no = voucher.voucher_no
    SubledgerTransaction.objects.filter(pk__in=[s.pk for s in subs]).update(
        related_voucher=voucher_no, current_voucher=voucher_no
    )

    previous = [s.previous_txn for s in subs if s.previous_txn_id]
    SubledgerTransaction.objects.filter(pk__in=[p.pk for p in previous]).update(
        next_voucher=voucher_no
    )

    earlier_nos = {
        p.current_voucher for p in previous if p.current_voucher
    } - {voucher_no}
    for earlier in Voucher.objects.filter(voucher_no__in=earlier_nos):
        earlier.next_voucher_no = voucher_no
        earlier.next_posting_event_type = voucher.posting_event_type
        earlier.save(update_fields=["next_voucher_no", "next_posting_event_type"])


@transaction.atomic
def build_voucher(
    journal,
    posting_event_type="FINANCIAL",
    related_voucher_no=None,
    user=None,
):
    """Build the immutable, balanced voucher for a posted journal."""
    journal = GLJournal.objects.select_for_update().get(pk=journal.pk)
    if journal.status != "posted":
        raise ValidationError(
            f"Voucher can only be built for a posted journal ({journal.status})"
        )
    if Voucher.objects.filter(journal_ref=journal.pk).exists():
        raise ValidationError(f"Voucher already built for {journal.journal_no}")

    lines = list(journal.lines.select_related("account").order_by("line_num"))
    txn_ids = {line.subledger_txn_id for line in lines if line.subledger_txn_id}
    subs_by_id = SubledgerTransaction.objects.select_related("previous_txn").in_bulk(
        txn_ids
    )
    # keep journal line order for lineage lookups
    subs = []
    for line in lines:
        sub = subs_by_id.get(line.subledger_txn_id)
        if sub is not None and sub not in subs:
            subs.append(sub)

    rows = [_voucher_line(line, subs_by_id.get(line.subledger_txn_id)) for line in lines]
    fx_line = fx_balancing_line(rows)
    if fx_line is not None:
        rows.append(fx_line)

    previous = _previous_voucher(subs)
    counter = voucher_counter()
    with counter.reserve() as seq:
        voucher = Voucher.objects.create(
            voucher_no=format_sequence(ledger_setting("VOUCHER_PREFIX"), seq),
            previous_voucher_no=previous.voucher_no if previous else None,
            previous_posting_event_type=(
                previous.posting_event_type if previous else "NONE"
            ),
            related_voucher_no=related_voucher_no,
            posting_event_type=posting_event_type,
            voucher_date=journal.journal_date,
            source_type=journal.source_type,
            source_id=journal.source_id or journal.pk,
            journal_ref=journal.pk,
            invoice_ref_id=journal.source_id or journal.pk,
            invoice_ref_num=journal.reference or journal.journal_no,
        )
        for line_num, row in enumerate(rows, start=1):
            VoucherLine.objects.create(voucher=voucher, line_num=line_num, **row)
        _stamp_lineage(voucher, subs)

    log_action(
        action="build_voucher",
        instance=voucher,
        user=user,
        changes={
            "journal": journal.journal_no,
            "lines": len(rows),
            "fx_adjusted": fx_line is not None,
        },
    )
    logger.info(
        "Built voucher %s for journal %s (%d lines%s)",
        voucher.voucher_no,
        journal.journal_no,
        len(rows),
        ", FX adjusted" if fx_line is not None else "",
    )
    return voucher
