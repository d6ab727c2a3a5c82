import re
import secrets

from django.db import models

OBJECT_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def new_object_id():
    # 12 random bytes → 24 lowercase hex characters
    return secrets.token_hex(12)


def is_object_id(value):
    """True when value is a 24-char hex id (case-insensitive)."""
    return isinstance(value, str) and bool(OBJECT_ID_RE.match(value.lower()))


class HexIdModel(models.Model):
    """Abstract base: primary key is an opaque 24-char hex string."""

    id = models.CharField(
        primary_key=True,
        max_length=24,
        default=new_object_id,
        editable=False,
    )

    class Meta:
        abstract = True
