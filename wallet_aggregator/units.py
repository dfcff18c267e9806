"""
Unit conversion between on-chain base units and display decimals.

Amounts stay Decimal end to end and are rendered as plain decimal
strings (no exponent), so 18-decimal balances keep full precision.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union


# uint256 has 78 digits; leave room for the scale shift
_PRECISION = 100


def parse_int(raw: Union[str, int, None]) -> int:
    """Parse a decimal or 0x-prefixed hex quantity. Empty means zero."""
    if raw is None:
        return 0
    if isinstance(raw, int):
        return raw
    text = raw.strip()
    if not text or text == "0x":
        return 0
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def to_decimal(raw: Union[str, int, None], decimals: int) -> Decimal:
    """Base units -> Decimal display units."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(parse_int(raw)).scaleb(-decimals)


def format_decimal(value: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        normalized = value.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")


def to_decimal_string(raw: Union[str, int, None], decimals: int) -> str:
    """
    Convert a base-unit amount to a decimal string.

    >>> to_decimal_string("0xde0b6b3a7640000", 18)
    '1'
    >>> to_decimal_string(1000000000, 9)
    '1'
    """
    return format_decimal(to_decimal(raw, decimals))


def usd_value(balance: str, price: float) -> float:
    """balance * price as a float; unparseable balances value at 0."""
    if not price:
        return 0.0
    try:
        return float(Decimal(balance) * Decimal(str(price)))
    except (InvalidOperation, ValueError):
        return 0.0
