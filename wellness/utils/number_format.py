"""Lenient number parsing for amounts and percentage rates coming from JSON."""
import re
from decimal import Decimal, InvalidOperation

PERCENT_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%?\s*$")

ZERO = Decimal('0')


def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """
    Convert an amount from a JSON document to Decimal.

    Accepts int, float, Decimal and numeric strings. Booleans, None, NaN,
    infinities and anything unparseable yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not number.is_finite():
        return default
    return number


def parse_percentage(value) -> Decimal:
    """
    Parse a configured percentage into a fraction.

    "15%" -> Decimal('0.15'), 20 -> Decimal('0.2'), "12.5" -> Decimal('0.125').
    Missing, negative, above 100 or malformed values yield 0 and never raise.
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, (int, float, Decimal)):
        number = to_decimal(value, default=None)
    else:
        match = PERCENT_PATTERN.match(str(value))
        number = Decimal(match.group(1)) if match else None

    if number is None or number < 0 or number > 100:
        return ZERO

    return number / Decimal('100')
