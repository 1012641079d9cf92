# PATH: tests/unit/test_calldata.py
"""
Unit tests for the program wire format.

Covers the header layout, hop and split units, every strategy body,
zero-length padding and the structural errors the decoder raises.

Run: python -m pytest tests/unit/test_calldata.py -v
"""

import itertools
import unittest

import pytest

from core.constants import ErrorCode, HEADER_SIZE, Strategy, TransferDirective
from core.exceptions import DecodingError, EncodingError, LengthMismatchError
from core.math import split_to_uint24
from encoding.calldata import (
    HopUnit,
    ProgramHeader,
    SplitUnit,
    decode_program,
    encode_program,
)

USDC = "0x" + "c1" * 20
DAI = "0x" + "da" * 20
USDT = "0x" + "d7" * 20
ALICE = "0x" + "a1" * 20
EXECUTOR = "0x" + "e2" * 20
PARAMS = b"\x90" * 41


def hop_unit(token_in=USDC, token_out=DAI, directive=TransferDirective.DIRECT_PUSH, approval=False, params=PARAMS):
    return HopUnit(EXECUTOR, token_in, token_out, directive, approval, params)


def header(strategy, token_in=USDC, token_out=DAI, **flags):
    return ProgramHeader(strategy, token_in, token_out, ALICE, 990, **flags)


class TestHeader(unittest.TestCase):
    """94-byte header."""

    def test_layout(self):
        data = header(Strategy.SINGLE, wrap=False, unwrap=True).to_bytes()
        self.assertEqual(len(data), HEADER_SIZE)
        self.assertEqual(data[0], 0)
        self.assertEqual(data[1], 0b010)
        self.assertEqual(data[2:22], bytes.fromhex("c1" * 20))
        self.assertEqual(data[22:42], bytes.fromhex("da" * 20))
        self.assertEqual(data[42:62], bytes.fromhex("a1" * 20))
        self.assertEqual(int.from_bytes(data[62:94], "big"), 990)

    def test_flags(self):
        h = header(Strategy.CYCLIC, token_out=USDC, cyclic=True)
        self.assertEqual(h.flags, 0b100)
        self.assertEqual(ProgramHeader.from_bytes(h.to_bytes()), h)

    def test_unknown_tag(self):
        data = bytearray(header(Strategy.SINGLE).to_bytes())
        data[0] = 7
        with self.assertRaises(DecodingError):
            ProgramHeader.from_bytes(bytes(data))

    def test_unknown_flag_bits(self):
        data = bytearray(header(Strategy.SINGLE).to_bytes())
        data[1] = 0b1000
        with self.assertRaises(DecodingError):
            ProgramHeader.from_bytes(bytes(data))

    def test_short_header(self):
        with self.assertRaises(LengthMismatchError):
            ProgramHeader.from_bytes(b"\x00" * 93)


class TestHopUnit(unittest.TestCase):
    """Hop unit layout."""

    def test_layout(self):
        data = hop_unit(directive=TransferDirective.PREFUNDED, approval=True).to_bytes()
        self.assertEqual(len(data), 62 + len(PARAMS))
        self.assertEqual(data[60], 2)
        self.assertEqual(data[61], 1)
        self.assertEqual(HopUnit.from_bytes(data), hop_unit(directive=TransferDirective.PREFUNDED, approval=True))

    def test_unknown_directive(self):
        data = bytearray(hop_unit().to_bytes())
        data[60] = 4
        with self.assertRaises(DecodingError):
            HopUnit.from_bytes(bytes(data))

    def test_unknown_unit_flags(self):
        data = bytearray(hop_unit().to_bytes())
        data[61] = 0b10
        with self.assertRaises(DecodingError):
            HopUnit.from_bytes(bytes(data))

    def test_split_unit_prefix(self):
        unit = SplitUnit(0, 2, split_to_uint24("0.6"), hop_unit())
        data = unit.to_bytes()
        self.assertEqual(data[:5], b"\x00\x02" + (10066329).to_bytes(3, "big"))
        self.assertEqual(SplitUnit.from_bytes(data), unit)


class TestPrograms(unittest.TestCase):
    """Strategy bodies."""

    def test_single(self):
        program = encode_program(header(Strategy.SINGLE), [hop_unit()])
        self.assertEqual(len(program), HEADER_SIZE + 62 + 41)
        self.assertEqual(program.hex()[:4], "0x00")
        decoded = program.decode()
        self.assertEqual(decoded.strategy, Strategy.SINGLE)
        self.assertEqual(decoded.hops, (hop_unit(),))

    def test_single_rejects_two_units(self):
        with self.assertRaises(EncodingError):
            encode_program(header(Strategy.SINGLE), [hop_unit(), hop_unit()])

    def test_single_rejects_padding(self):
        with self.assertRaises(EncodingError):
            encode_program(header(Strategy.SINGLE), [hop_unit()], padding=[0])

    def test_sequential(self):
        units = [hop_unit(USDC, DAI), hop_unit(DAI, USDT)]
        program = encode_program(header(Strategy.SEQUENTIAL, token_out=USDT), units)
        self.assertEqual(program.data[HEADER_SIZE:HEADER_SIZE + 2], b"\x00\x02")
        self.assertEqual(decode_program(program.data).units, tuple(units))

    def test_split_needs_token_count(self):
        unit = SplitUnit(0, 1, 0, hop_unit())
        with self.assertRaises(EncodingError) as ctx:
            encode_program(header(Strategy.SPLIT), [unit])
        self.assertEqual(ctx.exception.code, ErrorCode.ELEMENT_TOO_LARGE)

    def test_split(self):
        units = [
            SplitUnit(0, 1, split_to_uint24("0.6"), hop_unit()),
            SplitUnit(0, 1, 0, hop_unit()),
        ]
        program = encode_program(header(Strategy.SPLIT), units, n_tokens=2)
        self.assertEqual(program.data[HEADER_SIZE], 2)
        decoded = decode_program(program.data)
        self.assertEqual(decoded.n_tokens, 2)
        self.assertEqual(decoded.units, tuple(units))

    def test_token_index_out_of_range(self):
        program = encode_program(header(Strategy.SPLIT), [SplitUnit(0, 2, 0, hop_unit())], n_tokens=2)
        with self.assertRaises(DecodingError):
            decode_program(program.data)

    def test_empty_program(self):
        with self.assertRaises(EncodingError) as ctx:
            encode_program(header(Strategy.SEQUENTIAL), [])
        self.assertEqual(ctx.exception.code, ErrorCode.EMPTY_GRAPH)

    def test_zero_declared_hops(self):
        data = header(Strategy.SEQUENTIAL).to_bytes() + b"\x00\x00"
        with self.assertRaises(DecodingError) as ctx:
            decode_program(data)
        self.assertEqual(ctx.exception.code, ErrorCode.EMPTY_GRAPH)

    def test_hop_count_mismatch(self):
        program = encode_program(header(Strategy.SEQUENTIAL), [hop_unit(), hop_unit()])
        data = bytearray(program.data)
        data[HEADER_SIZE + 1] = 3
        with self.assertRaises(LengthMismatchError) as ctx:
            decode_program(bytes(data))
        self.assertEqual(ctx.exception.expected, 3)
        self.assertEqual(ctx.exception.actual, 2)

    def test_trailing_byte(self):
        program = encode_program(header(Strategy.SEQUENTIAL), [hop_unit()])
        with self.assertRaises(LengthMismatchError):
            decode_program(program.data + b"\x00")

    def test_split_trailing_byte(self):
        units = [SplitUnit(0, 1, split_to_uint24("0.6"), hop_unit()), SplitUnit(0, 1, 0, hop_unit())]
        program = encode_program(header(Strategy.SPLIT), units, n_tokens=2)
        with self.assertRaises(LengthMismatchError):
            decode_program(program.data + b"\x00")

    def test_single_trailing_bytes_land_in_params(self):
        # a SINGLE body has no length of its own; the executor rejects the params
        program = encode_program(header(Strategy.SINGLE), [hop_unit()])
        decoded = decode_program(program.data + b"\xde\xad")
        self.assertEqual(decoded.hops[0].params, PARAMS + b"\xde\xad")

    def test_missing_byte(self):
        program = encode_program(header(Strategy.SEQUENTIAL), [hop_unit()])
        with self.assertRaises(LengthMismatchError):
            decode_program(program.data[:-1])

    def test_deterministic(self):
        units = [hop_unit(USDC, DAI), hop_unit(DAI, USDT)]
        first = encode_program(header(Strategy.SEQUENTIAL, token_out=USDT), units)
        second = encode_program(header(Strategy.SEQUENTIAL, token_out=USDT), list(units))
        self.assertEqual(first, second)


PADDING_LAYOUTS = [
    positions
    for n in range(0, 3)
    for positions in itertools.combinations(range(4), n)
]


@pytest.mark.parametrize(
    "strategy,padding",
    list(itertools.product([Strategy.SEQUENTIAL, Strategy.SPLIT], PADDING_LAYOUTS)),
)
def test_padding_is_skipped(strategy, padding):
    units = [hop_unit(USDC, DAI), hop_unit(DAI, USDT)]
    n_tokens = None
    if strategy == Strategy.SPLIT:
        units = [SplitUnit(0, 1, 0, units[0]), SplitUnit(1, 2, 0, units[1])]
        n_tokens = 3
    # padding positions index the final element list (units + padding)
    positions = [p for p in padding if p < len(units) + len(padding)]
    program = encode_program(header(strategy, token_out=USDT), units, n_tokens=n_tokens, padding=positions)

    decoded = decode_program(program.data)

    assert decoded.units == tuple(units)
    assert decoded.padding == tuple(sorted(positions))


@pytest.mark.parametrize(
    "first,second,padding",
    list(itertools.product(TransferDirective, TransferDirective, [(0,), (1,), (0, 2)])),
)
def test_directives_survive_padding(first, second, padding):
    units = [
        hop_unit(USDC, DAI, directive=first, approval=True),
        hop_unit(DAI, USDT, directive=second),
    ]
    program = encode_program(header(Strategy.SEQUENTIAL, token_out=USDT), units, padding=list(padding))

    decoded = decode_program(program.data)

    assert [u.directive for u in decoded.units] == [first, second]
    assert [u.approval_needed for u in decoded.units] == [True, False]
    assert decoded.padding == padding
