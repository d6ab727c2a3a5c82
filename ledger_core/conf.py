from decimal import Decimal

from django.conf import settings

# Values used when settings.LEDGER does not define a key
DEFAULTS = {
    "VOUCHER_PREFIX": "FVCHR_",
    "JOURNAL_PREFIX": "JRNL_",
    "SALES_ORDER_PREFIX": "SO_",
    "PURCHASE_ORDER_PREFIX": "PO_",
    "SEQUENCE_PADDING": 6,
    "FX_GAIN_ACCOUNT": "FX_GAIN",
    "FX_LOSS_ACCOUNT": "FX_LOSS",
    "FX_TOLERANCE": "0.01",
    "FUNCTIONAL_CURRENCY": "INR",
    "DEFAULT_TAX_REGIME": "intra",
    "GST_OUTPUT_ACCOUNT": "GST_PAYABLE",
    "GST_INPUT_ACCOUNT": "GST_INPUT",
    "SALES_REVENUE_ACCOUNT": "SALES_REVENUE",
}


def ledger_setting(name):
    """Read one LEDGER setting, falling back to DEFAULTS."""
    configured = getattr(settings, "LEDGER", {}) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]


def fx_tolerance():
    return Decimal(str(ledger_setting("FX_TOLERANCE")))
