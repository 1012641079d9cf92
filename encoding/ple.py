"""
encoding/ple.py - Packed length-encoded (PLE) arrays.

Layout: each element is a uint16 big-endian length followed by that many
bytes. Zero-length elements are legal padding; they survive a round
trip but are never counted as hops by the program decoder.
"""

from typing import Iterable, List

from core.constants import ErrorCode, MAX_UINT16, PLE_PREFIX_SIZE
from core.exceptions import EncodingError, LengthMismatchError


def ple_encode(elements: Iterable[bytes]) -> bytes:
    """Concatenate elements, each prefixed with its uint16 length."""
    out = bytearray()
    for index, element in enumerate(elements):
        if len(element) > MAX_UINT16:
            raise EncodingError(
                f"PLE element {index} is {len(element)} bytes, limit is {MAX_UINT16}",
                ErrorCode.ELEMENT_TOO_LARGE,
                {"index": index, "size": len(element), "limit": MAX_UINT16},
            )
        out += len(element).to_bytes(PLE_PREFIX_SIZE, "big")
        out += element
    return bytes(out)


def ple_decode(data: bytes) -> List[bytes]:
    """
    Split a PLE array back into its elements (padding included).

    Raises LengthMismatchError when a prefix or an element runs past the
    end of the data.
    """
    elements: List[bytes] = []
    offset = 0
    total = len(data)
    while offset < total:
        if offset + PLE_PREFIX_SIZE > total:
            raise LengthMismatchError(
                f"Truncated PLE prefix at offset {offset}",
                expected=offset + PLE_PREFIX_SIZE,
                actual=total,
            )
        size = int.from_bytes(data[offset:offset + PLE_PREFIX_SIZE], "big")
        offset += PLE_PREFIX_SIZE
        if offset + size > total:
            raise LengthMismatchError(
                f"PLE element at offset {offset - PLE_PREFIX_SIZE} declares {size} bytes",
                expected=offset + size,
                actual=total,
            )
        elements.append(bytes(data[offset:offset + size]))
        offset += size
    return elements
