"""
Django settings for the ledger / stock core.

Only infrastructure lives here: storage, logging, Celery and the
LEDGER knobs read by ledger_core.conf.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "erp-dev-key-replace-before-deployment")

DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"

ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "").split() or []

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "ledger_core",
]

# ── Database ──────────────────────────────────────────────────
# SQLite for development, PostgreSQL when POSTGRES_DB is provided
if os.environ.get("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ["POSTGRES_DB"],
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Celery ────────────────────────────────────────────────────
# read by erp_project/celery.py through namespace="CELERY"
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "cache+memory://")
CELERY_TASK_ALWAYS_EAGER = os.environ.get("CELERY_TASK_ALWAYS_EAGER", "1") == "1"
CELERY_TASK_SERIALIZER = "json"

# ── Ledger ────────────────────────────────────────────────────
# Missing keys fall back to ledger_core.conf.DEFAULTS
LEDGER = {
    "VOUCHER_PREFIX": "FVCHR_",
    "JOURNAL_PREFIX": "JRNL_",
    "SALES_ORDER_PREFIX": "SO_",
    "PURCHASE_ORDER_PREFIX": "PO_",
    "SEQUENCE_PADDING": 6,
    "FX_GAIN_ACCOUNT": "FX_GAIN",
    "FX_LOSS_ACCOUNT": "FX_LOSS",
    "FX_TOLERANCE": "0.01",
    "FUNCTIONAL_CURRENCY": os.environ.get("LEDGER_FUNCTIONAL_CURRENCY", "INR"),
    "DEFAULT_TAX_REGIME": os.environ.get("LEDGER_TAX_REGIME", "intra"),
    "GST_OUTPUT_ACCOUNT": "GST_PAYABLE",
    "GST_INPUT_ACCOUNT": "GST_INPUT",
    "SALES_REVENUE_ACCOUNT": "SALES_REVENUE",
}

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "ledger_core": {
            "handlers": ["console"],
            "level": os.environ.get("LEDGER_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
