"""
Line valuation: discount, charges, GST and TDS amounts per line.

Pure functions, no database access. Lines are plain dicts; the output
is a new dict per line carrying every input key plus the computed
amounts, so the same code values journal lines and order lines.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..conf import ledger_setting

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")
TAX_REGIMES = ("intra", "inter")


def to_decimal(value, default="0"):
    """Coerce numbers/strings to Decimal; None and "" mean `default`."""
    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() so floats keep their printed value (0.1 → 0.1, not 0.1000000000000000055...)
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    # NaN and Infinity parse but cannot be compared or rounded
    if not result.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return result


def round2(value):
    """Round half-up to 2 decimal places."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def split_gst(total_gst, regime):
    """Return (cgst, sgst, igst) for the given tax regime.

    intra-state: CGST and SGST each carry half, IGST is zero.
    inter-state: IGST carries the full amount.
    """
    if regime == "intra":
        half = round2(total_gst / 2)
        return half, half, Decimal("0.00")
    if regime == "inter":
        return Decimal("0.00"), Decimal("0.00"), round2(total_gst)
    raise ValueError(f"Unknown tax regime: {regime!r}")


def compute_line(line):
    qty = to_decimal(line.get("qty"))
    unit_price = to_decimal(line.get("unit_price"))

    if line.get("assessable_value") not in (None, ""):
        assessable_value = to_decimal(line["assessable_value"])
    else:
        assessable_value = qty * unit_price

    discount_amount = round2(
        assessable_value * to_decimal(line.get("discount_percent")) / HUNDRED
    )
    charges_amount = round2(
        assessable_value * to_decimal(line.get("charge_percent")) / HUNDRED
    )
    taxable_value = round2(assessable_value - discount_amount + charges_amount)
    total_gst = round2(taxable_value * to_decimal(line.get("gst_percent")) / HUNDRED)

    regime = line.get("tax_regime") or ledger_setting("DEFAULT_TAX_REGIME")
    cgst, sgst, igst = split_gst(total_gst, regime)

    tds_amount = round2(taxable_value * to_decimal(line.get("tds_percent")) / HUNDRED)

    debit = round2(line.get("debit"))
    credit = round2(line.get("credit"))
    exchange_rate = round2(to_decimal(line.get("exchange_rate"), default="1"))

    if line.get("local_amount") not in (None, ""):
        local_amount = round2(line["local_amount"])
    else:
        local_amount = round2((debit - credit) * exchange_rate)

    return {
        **line,
        "tax_regime": regime,
        "assessable_value": round2(assessable_value),
        "discount_amount": discount_amount,
        "charges_amount": charges_amount,
        "taxable_value": taxable_value,
        "total_gst": total_gst,
        "cgst": cgst,
        "sgst": sgst,
        "igst": igst,
        "tds_amount": tds_amount,
        "debit": debit,
        "credit": credit,
        "exchange_rate": exchange_rate,
        "local_amount": local_amount,
    }


def compute_lines(lines):
    """Value every line; input lines are left untouched."""
    return [compute_line(line) for line in lines]
