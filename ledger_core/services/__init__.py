from .fulfillment import (add_movement, allowed_order_transitions,
                          cancel_movement, change_order_status, create_order,
                          derive_status, movement_totals, post_movement,
                          post_order_to_ledger)
from .journal import (archive_journal, change_journal_status, create_journal,
                      post_and_build_voucher, post_journal)
from .reports import account_ledger, trial_balance
from .sequences import AtomicCounter
from .stock import apply, release, reserve, reverse
from .subledger import SubledgerKind, SubledgerPointer, record_subledger_txn
from .valuation import compute_line, compute_lines, round2
from .voucher import build_voucher

__all__ = [
    "AtomicCounter",
    "SubledgerKind",
    "SubledgerPointer",
    "account_ledger",
    "add_movement",
    "allowed_order_transitions",
    "apply",
    "archive_journal",
    "build_voucher",
    "cancel_movement",
    "change_journal_status",
    "change_order_status",
    "compute_line",
    "compute_lines",
    "create_journal",
    "create_order",
    "derive_status",
    "movement_totals",
    "post_and_build_voucher",
    "post_journal",
    "post_movement",
    "post_order_to_ledger",
    "record_subledger_txn",
    "release",
    "reserve",
    "reverse",
    "round2",
    "trial_balance",
]
