import logging
from contextlib import contextmanager

from django.db import DatabaseError, models, transaction

from ..conf import ledger_setting
from ..models import Counter

logger = logging.getLogger(__name__)


class AtomicCounter:
    """
    Named, shared sequence backed by one Counter row.

    next_value() increments and reads under a row lock, so two
    creators never get the same value. Values burned by a failed
    caller may leave gaps; that is acceptable.
    """

    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return f"AtomicCounter({self.name!r})"

    @transaction.atomic
    def next_value(self):
        # first use creates the row; concurrent creators meet on the PK
        Counter.objects.get_or_create(name=self.name)
        Counter.objects.filter(name=self.name).update(seq=models.F("seq") + 1)
        return Counter.objects.select_for_update().values_list(
            "seq", flat=True
        ).get(name=self.name)

    def current_value(self):
        return (
            Counter.objects.filter(name=self.name)
            .values_list("seq", flat=True)
            .first()
            or 0
        )

    def compensate(self, value):
        """Best-effort decrement after a failed caller.

        Only undoes `value` if nobody took a later number meanwhile.
        Never raises: a failure here is logged and the value stays burned.
        """
        try:
            with transaction.atomic():
                undone = Counter.objects.filter(name=self.name, seq=value).update(
                    seq=models.F("seq") - 1
                )
        except DatabaseError:
            logger.exception(
                "Compensating decrement failed for %s at %s", self.name, value
            )
            return False
        if undone:
            logger.warning("Compensated sequence %s back from %s", self.name, value)
        else:
            logger.warning(
                "Sequence %s moved past %s; value left as a gap", self.name, value
            )
        return bool(undone)

    @contextmanager
    def reserve(self):
        """Yield the next value; compensate if the block raises."""
        value = self.next_value()
        try:
            yield value
        except Exception:
            self.compensate(value)
            raise


def format_sequence(prefix, value):
    padding = int(ledger_setting("SEQUENCE_PADDING"))
    return f"{prefix}{value:0{padding}d}"


def voucher_counter():
    return AtomicCounter("voucher")


def next_journal_no():
    return format_sequence(
        ledger_setting("JOURNAL_PREFIX"), AtomicCounter("journal").next_value()
    )


def next_order_no(kind):
    if kind == "sales":
        counter, prefix = "sales_order", ledger_setting("SALES_ORDER_PREFIX")
    else:
        counter, prefix = "purchase_order", ledger_setting("PURCHASE_ORDER_PREFIX")
    return format_sequence(prefix, AtomicCounter(counter).next_value())
