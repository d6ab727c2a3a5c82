from decimal import Decimal

from django.db import models


# -----------------------------------------
# Journal scoping: reports only ever read
# posted journals
# -----------------------------------------
class JournalQuerySet(models.QuerySet):
    def posted(self):
        return self.filter(status="posted")


class JournalLineQuerySet(models.QuerySet):
    def posted(self):
        return self.filter(journal__status="posted")

    def as_of(self, date):
        # Lines of journals dated on or before `date` (None = no cut-off)
        if date is None:
            return self
        return self.filter(journal__journal_date__lte=date)


# -----------------------------------------
# Composite stock key lookups
# -----------------------------------------
class StockKeyQuerySet(models.QuerySet):
    def for_key(self, key):
        # key = {"item_id": ..., "site": "", ..., "serial": ""}
        return self.filter(**key)


# -----------------------------------------
# Order movements: only posted rows count
# towards shipped / delivered / invoiced
# -----------------------------------------
class OrderMovementQuerySet(models.QuerySet):
    def posted(self):
        return self.filter(status="posted")

    def posted_total(self, action):
        total = self.posted().filter(action=action).aggregate(
            total=models.Sum("qty")
        )["total"]
        return total or Decimal("0")
