"""
Read-only aggregations over posted journals.

These are point-in-time scans: a journal posted while a report runs
may or may not be included.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db.models import Q, Sum

from ..models import Account, GLJournalLine
from ..models.base import is_object_id

ZERO = Decimal("0.00")


def trial_balance(as_of=None):
    """One row per account with posted activity, ordered by account code."""
    lines = GLJournalLine.objects.posted().as_of(as_of)

    rows = (
        lines.values("account_id", "account__code", "account__name")
        .annotate(total_debit=Sum("debit"), total_credit=Sum("credit"))
        .order_by("account__code")
    )
    result = []
    for row in rows:
        debit = row["total_debit"] or ZERO
        credit = row["total_credit"] or ZERO
        result.append({
            "account_id": row["account_id"],
            "account_code": row["account__code"],
            "account_name": row["account__name"],
            "total_debit": debit,
            "total_credit": credit,
            "balance": debit - credit,
        })
    return result


def account_ledger(account_id, date_from=None, date_to=None):
    """Posted lines of one account with a running balance.

    Activity before `date_from` is folded into an opening row.
    """
    if not is_object_id(account_id):
        raise ValidationError(f"Invalid account id {account_id!r}")
    account = Account.objects.get(pk=account_id.lower())

    lines = GLJournalLine.objects.posted().filter(account=account)

    running = ZERO
    rows = []
    if date_from is not None:
        opening = lines.filter(journal__journal_date__lt=date_from).aggregate(
            debit=Sum("debit"), credit=Sum("credit")
        )
        running = (opening["debit"] or ZERO) - (opening["credit"] or ZERO)
        rows.append({
            "journal_no": None,
            "journal_date": date_from,
            "line_num": None,
            "debit": ZERO,
            "credit": ZERO,
            "running_balance": running,
            "opening": True,
        })

    period = Q()
    if date_from is not None:
        period &= Q(journal__journal_date__gte=date_from)
    if date_to is not None:
        period &= Q(journal__journal_date__lte=date_to)

    for line in (
        lines.filter(period)
        .select_related("journal")
        .order_by("journal__journal_date", "journal__journal_no", "line_num")
    ):
        running += line.debit - line.credit
        rows.append({
            "journal_no": line.journal.journal_no,
            "journal_date": line.journal.journal_date,
            "line_num": line.line_num,
            "debit": line.debit,
            "credit": line.credit,
            "running_balance": running,
            "opening": False,
        })
    return rows
