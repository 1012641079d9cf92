# PATH: core/validators.py
"""
Unified validators for TRADEWIRE.

Addresses are normalized to lowercase 0x-prefixed hex everywhere so that
token and venue comparisons are plain string equality.

CONTRACTS:
- normalize_address(): returns lowercase address or raises EncodingError
- address_to_bytes(): always 20 bytes
- validate_split(): Decimal in [0, 1]
"""

import re
from decimal import Decimal
from typing import Any, Union

from core.constants import ADDRESS_SIZE, ErrorCode
from core.exceptions import EncodingError
from core.math import safe_decimal

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_address(address: Any) -> bool:
    """True if value is a 0x-prefixed 40-char hex string."""
    return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address))


def normalize_address(address: Any, field_name: str = "address") -> str:
    """
    Normalize an address to lowercase hex.

    Accepts 0x-prefixed strings and raw 20-byte values.
    """
    if isinstance(address, (bytes, bytearray)):
        if len(address) != ADDRESS_SIZE:
            raise EncodingError(
                f"Invalid {field_name}: expected {ADDRESS_SIZE} bytes, got {len(address)}",
                ErrorCode.INVALID_INPUT,
                {"field": field_name, "length": len(address)},
            )
        return "0x" + bytes(address).hex()

    if not is_valid_address(address):
        raise EncodingError(
            f"Invalid {field_name}: {address!r}",
            ErrorCode.INVALID_INPUT,
            {"field": field_name, "value": str(address)},
        )
    return address.lower()


def address_to_bytes(address: str) -> bytes:
    """20-byte form of a (validated) address."""
    return bytes.fromhex(normalize_address(address)[2:])


def bytes_to_address(data: bytes) -> str:
    return normalize_address(bytes(data))


def validate_amount(value: Any, field_name: str = "amount") -> int:
    """Amounts are non-negative ints in base units."""
    if isinstance(value, bool) or not isinstance(value, int):
        try:
            value = int(str(value))
        except (TypeError, ValueError):
            raise EncodingError(
                f"Invalid {field_name}: {value!r}",
                ErrorCode.INVALID_INPUT,
                {"field": field_name, "value": str(value)},
            )
    if value < 0:
        raise EncodingError(
            f"{field_name} must be non-negative, got {value}",
            ErrorCode.INVALID_INPUT,
            {"field": field_name, "value": value},
        )
    return value


def validate_split(value: Union[str, int, float, Decimal, None], field_name: str = "split") -> Decimal:
    """Split fractions must lie in [0, 1]."""
    split = safe_decimal(value, default=Decimal("-1"))
    if split < 0 or split > 1:
        raise EncodingError(
            f"{field_name} must be between 0 and 1, got {value}",
            ErrorCode.INVALID_SPLIT,
            {"field": field_name, "value": str(value)},
        )
    return split
