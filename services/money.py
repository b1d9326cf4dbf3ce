"""
Money & Quantity Normalizer
Canonical integer minor-unit ("cents") amounts from heterogeneous price inputs
"""
from typing import Any, Optional
import logging
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

logger = logging.getLogger(__name__)

# How an input without an explicit unit should be read.
UNIT_AUTO = "auto"
UNIT_MAJOR = "major"
UNIT_MINOR = "minor"

_NON_NUMERIC = re.compile(r"[^\d,.\-]")
_HUNDRED = Decimal("100")


def _parse_decimal_text(text: str) -> Optional[Decimal]:
    """Parse '1,234.56', '1.234,56', '$19.99', '19,99 €' into a Decimal."""
    cleaned = _NON_NUMERIC.sub("", text.strip())
    if not cleaned or cleaned in {"-", ".", ","}:
        return None

    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        # Whichever separator comes last is the decimal point
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma:
        head, _, tail = cleaned.rpartition(",")
        if len(tail) == 3 and head:
            cleaned = cleaned.replace(",", "")  # thousands separator
        else:
            cleaned = head.replace(",", "") + "." + tail
    elif cleaned.count(".") > 1:
        head, _, tail = cleaned.rpartition(".")
        if len(tail) == 3:
            cleaned = cleaned.replace(".", "")
        else:
            cleaned = head.replace(".", "") + "." + tail

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def to_minor_units(value: Any, unit: str = UNIT_AUTO) -> int:
    """
    Convert a price into integer minor units.

    In ``auto`` mode integers are taken as minor units (the cart endpoint
    format), floats and strings as major units (product listing format).
    Unparsable input normalizes to 0.
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, int):
        amount = Decimal(value)
        as_major = unit == UNIT_MAJOR
    elif isinstance(value, (float, Decimal)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return 0
        as_major = unit != UNIT_MINOR
    elif isinstance(value, str):
        parsed = _parse_decimal_text(value)
        if parsed is None:
            logger.debug(f"Unparsable money value {value!r}, treating as 0")
            return 0
        amount = parsed
        as_major = unit != UNIT_MINOR
    else:
        logger.warning(f"Unsupported money type {type(value).__name__}, treating as 0")
        return 0

    if amount.is_nan() or amount.is_infinite():
        return 0
    if as_major:
        amount = amount * _HUNDRED
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_quantity(value: Any) -> int:
    """Non-negative integer quantity; anything unparsable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        quantity = int(Decimal(str(value).strip()).to_integral_value(rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return 0
    return max(0, quantity)


def format_money(amount_minor_units: int, money_format: str = "${{amount}}") -> str:
    """Render minor units through a storefront money format such as ``${{amount}}``."""
    major = (Decimal(int(amount_minor_units)) / _HUNDRED).quantize(Decimal("0.01"))
    amount = f"{major:,.2f}"
    no_decimals = f"{major.to_integral_value(rounding=ROUND_HALF_UP):,}"
    with_comma = amount.replace(",", "_").replace(".", ",").replace("_", ".")
    return (
        money_format.replace("{{amount_no_decimals}}", no_decimals)
        .replace("{{amount_with_comma_separator}}", with_comma)
        .replace("{{amount}}", amount)
    )
