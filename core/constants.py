# PATH: core/constants.py
"""
Constants for TRADEWIRE.

Contains enums, wire-format sizes, and protocol constants shared by the
encoding engine and the dispatcher.

WIRE CONTRACT:
- Every tag/enum value below is written to calldata as a single byte.
- Changing a value breaks every previously encoded program.
"""

from enum import Enum, IntEnum
from typing import Final

# =============================================================================
# ADDRESSES
# =============================================================================

NATIVE_TOKEN: Final[str] = "0x0000000000000000000000000000000000000000"
ZERO_ADDRESS: Final[str] = NATIVE_TOKEN

ADDRESS_SIZE: Final[int] = 20

# =============================================================================
# NUMERIC LIMITS
# =============================================================================

MAX_UINT256: Final[int] = 2**256 - 1
MAX_UINT24: Final[int] = 2**24 - 1
MAX_UINT16: Final[int] = 2**16 - 1
MAX_UINT8: Final[int] = 2**8 - 1

# Allowances at or above this are treated as "unlimited" (already granted)
APPROVAL_THRESHOLD: Final[int] = MAX_UINT256 // 2

# =============================================================================
# WIRE LAYOUT
# =============================================================================

# tag(1) | flags(1) | token_in(20) | token_out(20) | receiver(20) | min_out(32)
HEADER_SIZE: Final[int] = 94

# executor(20) | token_in(20) | token_out(20) | directive(1) | unit_flags(1)
HOP_UNIT_FIXED_SIZE: Final[int] = 62

# token_in_index(1) | token_out_index(1) | split(3)
SPLIT_PREFIX_SIZE: Final[int] = 5

# PLE element length prefix
PLE_PREFIX_SIZE: Final[int] = 2

FLAG_WRAP: Final[int] = 0b001
FLAG_UNWRAP: Final[int] = 0b010
FLAG_CYCLIC: Final[int] = 0b100

UNIT_FLAG_APPROVAL_NEEDED: Final[int] = 0b1

# Default number of blocks between executor registration and activation
DEFAULT_SAFETY_WINDOW_BLOCKS: Final[int] = 2


class Strategy(IntEnum):
    """Execution shape chosen for a trade graph."""
    SINGLE = 0
    SEQUENTIAL = 1
    SPLIT = 2
    CYCLIC = 3


class TransferDirective(IntEnum):
    """How tokens reach a hop's venue before (or while) it executes."""
    DELEGATED_PULL = 0
    DIRECT_PUSH = 1
    PREFUNDED = 2
    RESIDENT = 3


class NativeAction(str, Enum):
    """Native currency handling around the swaps."""
    WRAP = "wrap"
    UNWRAP = "unwrap"


class UserTransferType(str, Enum):
    """How the caller funds the run."""
    TRANSFER_FROM = "transfer_from"
    NONE = "none"


class ErrorCode(str, Enum):
    """
    Error codes carried by every TradewireError.

    Grouped by the stage that raises them.
    """
    # Encoding (before submission, not retryable without new input)
    INVALID_INPUT = "INVALID_INPUT"
    EMPTY_GRAPH = "EMPTY_GRAPH"
    UNDECOMPOSABLE_GRAPH = "UNDECOMPOSABLE_GRAPH"
    INVALID_SPLIT = "INVALID_SPLIT"
    EXCLUSIVE_FLAGS = "EXCLUSIVE_FLAGS"
    UNSUPPORTED_VENUE = "UNSUPPORTED_VENUE"
    LENGTH_MISMATCH = "LENGTH_MISMATCH"
    DECODING_FAILED = "DECODING_FAILED"
    ELEMENT_TOO_LARGE = "ELEMENT_TOO_LARGE"

    # Authorization (recoverable by re-authorizing)
    INSUFFICIENT_AUTHORIZATION = "INSUFFICIENT_AUTHORIZATION"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Registry
    UNKNOWN_EXECUTOR = "UNKNOWN_EXECUTOR"
    EXECUTOR_NOT_APPROVED = "EXECUTOR_NOT_APPROVED"
    EXECUTOR_NOT_ACTIVE = "EXECUTOR_NOT_ACTIVE"
    ACCESS_DENIED = "ACCESS_DENIED"

    # Accounting (always fatal, always rolled back)
    NEGATIVE_SLIPPAGE = "NEGATIVE_SLIPPAGE"
    AMOUNT_CONSUMED_MISMATCH = "AMOUNT_CONSUMED_MISMATCH"
    RESIDUAL_BALANCE = "RESIDUAL_BALANCE"
    UNEXPECTED_CALLBACK = "UNEXPECTED_CALLBACK"
    REENTRANT_CALL = "REENTRANT_CALL"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"

    UNKNOWN = "UNKNOWN"


# Error codes that may succeed when resubmitted after the caller acts
RECOVERABLE_CODES: Final[frozenset[ErrorCode]] = frozenset([
    ErrorCode.INSUFFICIENT_AUTHORIZATION,
    ErrorCode.INSUFFICIENT_BALANCE,
    ErrorCode.INFRA_RPC_ERROR,
    ErrorCode.INFRA_TIMEOUT,
])
