from django.db import models


# ---------- Audit / Event log ----------
class AuditLog(models.Model):  # accountability and traceability across postings
    # Who performed the action ("system" for automated flows)
    user = models.CharField(max_length=100, default="system")
    # Type of event: create, post, status, build_voucher ...
    action = models.CharField(max_length=50)
    # What kind of object was affected ("GLJournal", "Order", "Voucher")
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    # before/after details, JSON
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["object_type", "object_id"]),
            models.Index(fields=["created_at"]),
        ]

    def __str__(self):
        return f"[{self.created_at:%Y-%m-%d %H:%M}] {self.user} {self.action} {self.object_type}({self.object_id})"
