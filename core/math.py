# PATH: core/math.py
"""
Math utilities for TRADEWIRE.

Split fractions are Decimal end to end (no float money). On the wire a
split is a uint24 where MAX_UINT24 means 100%.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from core.constants import MAX_UINT24


def safe_decimal(value: Union[str, int, float, Decimal, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Floats go through str() so 0.6 stays Decimal("0.6").
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def split_to_uint24(split: Union[str, float, Decimal]) -> int:
    """
    Convert a split fraction in [0, 1] to its uint24 wire value.

    Example: Decimal("0.6") -> 10066329
    """
    fraction = safe_decimal(split)
    scaled = (fraction * MAX_UINT24).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(scaled)


def uint24_to_split(value: int) -> Decimal:
    """Inverse of split_to_uint24 (lossy, for display only)."""
    return Decimal(value) / Decimal(MAX_UINT24)


def apply_split(amount: int, split_uint24: int) -> int:
    """
    Share of `amount` allotted by a uint24 split (rounds down).

    Rounding down guarantees the remainder-taking sibling never goes negative.
    """
    return (amount * split_uint24) // MAX_UINT24


def to_uint_bytes(value: int, size: int) -> bytes:
    """Big-endian fixed-width unsigned integer."""
    if value < 0 or value >= 1 << (8 * size):
        raise ValueError(f"Value {value} does not fit in uint{8 * size}")
    return value.to_bytes(size, "big")


def from_uint_bytes(data: bytes) -> int:
    return int.from_bytes(data, "big")
