"""
encoding/calldata.py - Program wire format.

PROGRAM LAYOUT
==============

Header (94 bytes):
  tag(1) | flags(1) | token_in(20) | token_out(20) | receiver(20) | min_out(32)

flags: bit0 wrap-in, bit1 unwrap-out, bit2 cyclic

Body:
  SINGLE      hop unit (rest of the program)
  SEQUENTIAL  uint16 hop_count | PLE[hop unit]
  SPLIT       uint8 n_tokens | uint16 hop_count | PLE[split unit]
  CYCLIC      same as SPLIT

split unit: uint8 in_idx | uint8 out_idx | uint24 split | hop unit
hop unit:   executor(20) | token_in(20) | token_out(20) | directive(1) |
            unit_flags(1) | venue params

Zero-length PLE elements are padding. hop_count counts non-empty
elements only and must match exactly.
==============
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from core.constants import (
    FLAG_CYCLIC,
    FLAG_UNWRAP,
    FLAG_WRAP,
    HEADER_SIZE,
    HOP_UNIT_FIXED_SIZE,
    MAX_UINT8,
    MAX_UINT16,
    SPLIT_PREFIX_SIZE,
    UNIT_FLAG_APPROVAL_NEEDED,
    ErrorCode,
    Strategy,
    TransferDirective,
)
from core.exceptions import DecodingError, EncodingError, LengthMismatchError
from core.math import from_uint_bytes, to_uint_bytes
from core.validators import address_to_bytes, bytes_to_address, normalize_address
from encoding.ple import ple_decode, ple_encode

_KNOWN_FLAGS = FLAG_WRAP | FLAG_UNWRAP | FLAG_CYCLIC


# ============================================================================
# UNITS
# ============================================================================

@dataclass(frozen=True)
class HopUnit:
    """One executor invocation."""
    executor: str
    token_in: str
    token_out: str
    directive: TransferDirective
    approval_needed: bool
    params: bytes

    def __post_init__(self):
        object.__setattr__(self, "executor", normalize_address(self.executor, "executor"))
        object.__setattr__(self, "token_in", normalize_address(self.token_in, "token_in"))
        object.__setattr__(self, "token_out", normalize_address(self.token_out, "token_out"))
        object.__setattr__(self, "directive", TransferDirective(self.directive))

    def to_bytes(self) -> bytes:
        unit_flags = UNIT_FLAG_APPROVAL_NEEDED if self.approval_needed else 0
        return (
            address_to_bytes(self.executor)
            + address_to_bytes(self.token_in)
            + address_to_bytes(self.token_out)
            + bytes([int(self.directive), unit_flags])
            + self.params
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "HopUnit":
        if len(data) < HOP_UNIT_FIXED_SIZE:
            raise LengthMismatchError(
                "Hop unit shorter than its fixed part",
                expected=HOP_UNIT_FIXED_SIZE,
                actual=len(data),
            )
        directive_byte = data[60]
        try:
            directive = TransferDirective(directive_byte)
        except ValueError:
            raise DecodingError(
                f"Unknown transfer directive {directive_byte}",
                details={"directive": directive_byte},
            )
        unit_flags = data[61]
        if unit_flags & ~UNIT_FLAG_APPROVAL_NEEDED:
            raise DecodingError(
                f"Unknown hop unit flags {unit_flags:#04x}",
                details={"unit_flags": unit_flags},
            )
        return cls(
            executor=bytes_to_address(data[0:20]),
            token_in=bytes_to_address(data[20:40]),
            token_out=bytes_to_address(data[40:60]),
            directive=directive,
            approval_needed=bool(unit_flags & UNIT_FLAG_APPROVAL_NEEDED),
            params=bytes(data[HOP_UNIT_FIXED_SIZE:]),
        )


@dataclass(frozen=True)
class SplitUnit:
    """Hop unit addressed by token indices, with its uint24 share."""
    token_in_index: int
    token_out_index: int
    split: int
    hop: HopUnit

    def to_bytes(self) -> bytes:
        return (
            to_uint_bytes(self.token_in_index, 1)
            + to_uint_bytes(self.token_out_index, 1)
            + to_uint_bytes(self.split, 3)
            + self.hop.to_bytes()
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "SplitUnit":
        if len(data) < SPLIT_PREFIX_SIZE + HOP_UNIT_FIXED_SIZE:
            raise LengthMismatchError(
                "Split unit shorter than its fixed part",
                expected=SPLIT_PREFIX_SIZE + HOP_UNIT_FIXED_SIZE,
                actual=len(data),
            )
        return cls(
            token_in_index=data[0],
            token_out_index=data[1],
            split=from_uint_bytes(data[2:5]),
            hop=HopUnit.from_bytes(data[SPLIT_PREFIX_SIZE:]),
        )


Unit = Union[HopUnit, SplitUnit]


# ============================================================================
# HEADER
# ============================================================================

@dataclass(frozen=True)
class ProgramHeader:
    strategy: Strategy
    token_in: str
    token_out: str
    receiver: str
    min_output: int
    wrap: bool = False
    unwrap: bool = False
    cyclic: bool = False

    def __post_init__(self):
        object.__setattr__(self, "strategy", Strategy(self.strategy))
        for name in ("token_in", "token_out", "receiver"):
            object.__setattr__(self, name, normalize_address(getattr(self, name), name))

    @property
    def flags(self) -> int:
        return (
            (FLAG_WRAP if self.wrap else 0)
            | (FLAG_UNWRAP if self.unwrap else 0)
            | (FLAG_CYCLIC if self.cyclic else 0)
        )

    def to_bytes(self) -> bytes:
        return (
            bytes([int(self.strategy), self.flags])
            + address_to_bytes(self.token_in)
            + address_to_bytes(self.token_out)
            + address_to_bytes(self.receiver)
            + to_uint_bytes(self.min_output, 32)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProgramHeader":
        if len(data) < HEADER_SIZE:
            raise LengthMismatchError(
                "Program shorter than its header",
                expected=HEADER_SIZE,
                actual=len(data),
            )
        tag = data[0]
        try:
            strategy = Strategy(tag)
        except ValueError:
            raise DecodingError(f"Unknown strategy tag {tag}", details={"tag": tag})
        flags = data[1]
        if flags & ~_KNOWN_FLAGS:
            raise DecodingError(f"Unknown header flags {flags:#04x}", details={"flags": flags})
        return cls(
            strategy=strategy,
            token_in=bytes_to_address(data[2:22]),
            token_out=bytes_to_address(data[22:42]),
            receiver=bytes_to_address(data[42:62]),
            min_output=from_uint_bytes(data[62:94]),
            wrap=bool(flags & FLAG_WRAP),
            unwrap=bool(flags & FLAG_UNWRAP),
            cyclic=bool(flags & FLAG_CYCLIC),
        )


# ============================================================================
# PROGRAM
# ============================================================================

@dataclass(frozen=True)
class DecodedProgram:
    """Structured view of a program."""
    header: ProgramHeader
    units: Tuple[Unit, ...]
    n_tokens: Optional[int] = None
    padding: Tuple[int, ...] = ()

    @property
    def strategy(self) -> Strategy:
        return self.header.strategy

    @property
    def hops(self) -> Tuple[HopUnit, ...]:
        return tuple(u.hop if isinstance(u, SplitUnit) else u for u in self.units)


@dataclass(frozen=True)
class EncodedProgram:
    """Immutable program bytes."""
    data: bytes
    strategy: Strategy

    def __len__(self) -> int:
        return len(self.data)

    def hex(self) -> str:
        return "0x" + self.data.hex()

    def decode(self) -> DecodedProgram:
        return decode_program(self.data)


@dataclass(frozen=True)
class EncodedTransaction:
    """
    What the caller submits: program bytes addressed to the dispatcher
    (or venue params addressed to an executor), plus the native currency
    that must travel with the call.
    """
    to: str
    value: int
    data: bytes

    def to_dict(self) -> dict:
        # value as a decimal string; it can exceed JSON-safe integers
        return {"to": self.to, "value": str(self.value), "data": "0x" + self.data.hex()}


def _with_padding(elements: Sequence[bytes], padding: Iterable[int]) -> list:
    out = list(elements)
    for position in sorted(padding):
        out.insert(position, b"")
    return out


def encode_program(
    header: ProgramHeader,
    units: Sequence[Unit],
    n_tokens: Optional[int] = None,
    padding: Iterable[int] = (),
) -> EncodedProgram:
    """
    Serialize a header and its units.

    `padding` lists positions (in the final element list) where
    zero-length PLE elements are inserted. SINGLE programs have no PLE
    array and accept no padding.
    """
    padding = tuple(padding)
    strategy = header.strategy
    if not units:
        raise EncodingError("Program has no hop units", ErrorCode.EMPTY_GRAPH)
    if len(units) > MAX_UINT16:
        raise EncodingError(
            f"Program holds {len(units)} hop units, limit is {MAX_UINT16}",
            ErrorCode.ELEMENT_TOO_LARGE,
            {"hop_count": len(units)},
        )

    if strategy == Strategy.SINGLE:
        if len(units) != 1 or padding:
            raise EncodingError(
                "SINGLE program takes exactly one hop unit and no padding",
                ErrorCode.INVALID_INPUT,
                {"hop_count": len(units), "padding": list(padding)},
            )
        body = units[0].to_bytes()
    elif strategy == Strategy.SEQUENTIAL:
        elements = _with_padding([u.to_bytes() for u in units], padding)
        body = to_uint_bytes(len(units), 2) + ple_encode(elements)
    else:
        if n_tokens is None or not 0 < n_tokens <= MAX_UINT8:
            raise EncodingError(
                f"Split program needs 1..{MAX_UINT8} tokens, got {n_tokens}",
                ErrorCode.ELEMENT_TOO_LARGE,
                {"n_tokens": n_tokens},
            )
        elements = _with_padding([u.to_bytes() for u in units], padding)
        body = to_uint_bytes(n_tokens, 1) + to_uint_bytes(len(units), 2) + ple_encode(elements)

    return EncodedProgram(data=header.to_bytes() + body, strategy=strategy)


def _decode_elements(data: bytes, hop_count: int, parse) -> Tuple[Tuple[Unit, ...], Tuple[int, ...]]:
    elements = ple_decode(data)
    padding = tuple(i for i, e in enumerate(elements) if not e)
    units = tuple(parse(e) for e in elements if e)
    if len(units) != hop_count:
        raise LengthMismatchError(
            f"Declared {hop_count} hops, found {len(units)}",
            expected=hop_count,
            actual=len(units),
        )
    if hop_count == 0:
        raise DecodingError("Program declares no hops", ErrorCode.EMPTY_GRAPH)
    return units, padding


def decode_program(data: bytes) -> DecodedProgram:
    """Parse program bytes; any structural mismatch raises."""
    data = bytes(data)
    header = ProgramHeader.from_bytes(data)
    body = data[HEADER_SIZE:]

    if header.strategy == Strategy.SINGLE:
        return DecodedProgram(header=header, units=(HopUnit.from_bytes(body),))

    if header.strategy == Strategy.SEQUENTIAL:
        if len(body) < 2:
            raise LengthMismatchError("Missing hop count", expected=HEADER_SIZE + 2, actual=len(data))
        hop_count = from_uint_bytes(body[:2])
        units, padding = _decode_elements(body[2:], hop_count, HopUnit.from_bytes)
        return DecodedProgram(header=header, units=units, padding=padding)

    if len(body) < 3:
        raise LengthMismatchError("Missing token and hop counts", expected=HEADER_SIZE + 3, actual=len(data))
    n_tokens = body[0]
    hop_count = from_uint_bytes(body[1:3])
    units, padding = _decode_elements(body[3:], hop_count, SplitUnit.from_bytes)
    for unit in units:
        if unit.token_in_index >= n_tokens or unit.token_out_index >= n_tokens:
            raise DecodingError(
                f"Token index out of range for {n_tokens} tokens",
                details={
                    "n_tokens": n_tokens,
                    "token_in_index": unit.token_in_index,
                    "token_out_index": unit.token_out_index,
                },
            )
    return DecodedProgram(header=header, units=units, n_tokens=n_tokens, padding=padding)
