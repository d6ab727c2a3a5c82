from django.db import models


# ---------- Sequence counter ----------
# One row per named sequence ("voucher", "journal", ...).
# Only services.sequences.AtomicCounter touches `seq`.
class Counter(models.Model):
    name = models.CharField(primary_key=True, max_length=50)
    seq = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name}={self.seq}"
