"""
encoding/ - Program serialization.

- ple: packed length-encoded arrays
- calldata: program header, hop / split units, encode and decode
- encoder: trade graph -> program
"""

from encoding.calldata import (
    DecodedProgram,
    EncodedProgram,
    HopUnit,
    ProgramHeader,
    SplitUnit,
    decode_program,
    encode_program,
)
from encoding.ple import ple_decode, ple_encode

__all__ = [
    "DecodedProgram",
    "EncodedProgram",
    "HopUnit",
    "ProgramHeader",
    "SplitUnit",
    "decode_program",
    "encode_program",
    "ple_decode",
    "ple_encode",
]
