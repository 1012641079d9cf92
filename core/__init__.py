"""
core - Core utilities and models for TRADEWIRE.

This package contains:
- models.py: TradeGraph / Hop and their builders
- constants.py: Enums, wire-format sizes, error codes
- exceptions.py: Typed exceptions with error codes
- math.py: Split fractions and fixed-width integers (no float)
- validators.py: Address, amount and split validation
- logging.py: Structured JSON logging
"""

from core.constants import (
    ErrorCode,
    NativeAction,
    Strategy,
    TransferDirective,
    UserTransferType,
)
from core.exceptions import (
    AccountingError,
    AmountConsumedMismatchError,
    AuthorizationError,
    DecodingError,
    EncodingError,
    InfraError,
    LengthMismatchError,
    NegativeSlippageError,
    RegistryError,
    ResidualBalanceError,
    TradewireError,
    UnexpectedCallbackError,
)
from core.logging import bind_context, get_logger, setup_logging
from core.models import (
    Hop,
    HopBuilder,
    TradeGraph,
    TradeGraphBuilder,
    build_graph,
)

__all__ = [
    # Constants
    "ErrorCode",
    "NativeAction",
    "Strategy",
    "TransferDirective",
    "UserTransferType",
    # Exceptions
    "AccountingError",
    "AmountConsumedMismatchError",
    "AuthorizationError",
    "DecodingError",
    "EncodingError",
    "InfraError",
    "LengthMismatchError",
    "NegativeSlippageError",
    "RegistryError",
    "ResidualBalanceError",
    "TradewireError",
    "UnexpectedCallbackError",
    # Models
    "Hop",
    "HopBuilder",
    "TradeGraph",
    "TradeGraphBuilder",
    "build_graph",
    # Logging
    "bind_context",
    "get_logger",
    "setup_logging",
]
