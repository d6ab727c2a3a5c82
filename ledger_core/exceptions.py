from django.core.exceptions import ValidationError


class UnbalancedJournalError(Exception):
    """Raised when a GLJournal fails the double-entry balance check."""
    pass


class JournalLineError(ValidationError):
    """Raised when one journal line fails validation.

    line_index is 1-based, matching what callers show to users.
    """

    def __init__(self, line_index, reason):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Line {line_index}: {reason}")


class InvalidStatusTransition(ValidationError):
    """Raised when a status change is not in the allowed table."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot go from {current} to {requested}")


class QuantityOutOfRange(ValidationError):
    """Raised when a movement qty is <= 0 or larger than what remains."""

    def __init__(self, remaining):
        self.remaining = remaining
        super().__init__(f"Qty out of range (remaining {remaining})")


class UnknownSubledgerType(ValidationError):
    """Raised when a sub-ledger tag is not one of the known kinds."""
    pass


class StockBalanceMissing(Exception):
    """Raised when a reversal finds no StockBalance for the key."""
    pass


class StockLedgerConflict(Exception):
    """Raised when the retried update after a duplicate-key race still misses."""
    pass
