"""
Money helpers. Amounts are Decimal dollars rounded half-up to cents.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
# Differences below a cent are treated as rounding noise
TOLERANCE = Decimal('0.01')


def to_decimal(value, default=ZERO):
    """Convert int/float/str/Decimal/None to a Decimal without float artefacts."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")


def to_money(value):
    """Round any amount to cents"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value):
    """$1,234.56 (negative amounts as -$1,234.56)"""
    amount = to_money(value)
    sign = '-' if amount < 0 else ''
    return f"{sign}${abs(amount):,.2f}"


def format_amount(value):
    """Processor wire format: plain two-decimal string"""
    return f"{to_money(value):.2f}"
