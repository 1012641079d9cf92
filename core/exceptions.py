# PATH: core/exceptions.py
"""
Typed exceptions for TRADEWIRE.

Taxonomy:
- EncodingError: bad graph or bad bytes, detected before submission
- AuthorizationError: missing delegated-pull authorization (recoverable)
- RegistryError: unknown, unapproved or not-yet-active executor
- AccountingError: invariant violated during a run (always fatal)
- InfraError: RPC failures

Runtime errors carry the two compared values in `details`.
"""

from typing import Any, Optional

from core.constants import ErrorCode, RECOVERABLE_CODES


class TradewireError(Exception):
    """Base exception for TRADEWIRE."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @property
    def recoverable(self) -> bool:
        return self.code in RECOVERABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


# =============================================================================
# ENCODING
# =============================================================================

class EncodingError(TradewireError):
    """Malformed or undecomposable trade graph."""
    default_code = ErrorCode.INVALID_INPUT


class LengthMismatchError(EncodingError):
    """Declared structure and actual byte content disagree."""

    def __init__(self, message: str, expected: int, actual: int, details: Optional[dict] = None):
        merged = {"expected": expected, "actual": actual}
        merged.update(details or {})
        super().__init__(message, ErrorCode.LENGTH_MISMATCH, merged)
        self.expected = expected
        self.actual = actual


class DecodingError(EncodingError):
    """Bytes could not be interpreted (bad tag, bad directive, bad index)."""
    default_code = ErrorCode.DECODING_FAILED


# =============================================================================
# AUTHORIZATION
# =============================================================================

class AuthorizationError(TradewireError):
    """Delegated pull is not (sufficiently) authorized."""
    default_code = ErrorCode.INSUFFICIENT_AUTHORIZATION


class InsufficientBalanceError(TradewireError):
    """Account does not hold enough of a token."""
    default_code = ErrorCode.INSUFFICIENT_BALANCE


# =============================================================================
# REGISTRY
# =============================================================================

class RegistryError(TradewireError):
    """Executor is unknown, unapproved, or not yet active."""
    default_code = ErrorCode.UNKNOWN_EXECUTOR


class AccessDeniedError(RegistryError):
    """Caller lacks the privileged role."""
    default_code = ErrorCode.ACCESS_DENIED


# =============================================================================
# ACCOUNTING
# =============================================================================

class AccountingError(TradewireError):
    """Run-time invariant violation."""
    default_code = ErrorCode.UNKNOWN


class NegativeSlippageError(AccountingError):
    """Realized output below declared minimum."""

    def __init__(self, realized: int, minimum: int, details: Optional[dict] = None):
        merged = {"realized": realized, "minimum": minimum}
        merged.update(details or {})
        super().__init__(
            f"Negative slippage: realized {realized} < minimum {minimum}",
            ErrorCode.NEGATIVE_SLIPPAGE,
            merged,
        )
        self.realized = realized
        self.minimum = minimum


class AmountConsumedMismatchError(AccountingError):
    """Consumed input differs from declared input."""

    def __init__(self, consumed: int, expected: int, details: Optional[dict] = None):
        merged = {"consumed": consumed, "expected": expected}
        merged.update(details or {})
        super().__init__(
            f"Amount consumed {consumed} != amount in {expected}",
            ErrorCode.AMOUNT_CONSUMED_MISMATCH,
            merged,
        )
        self.consumed = consumed
        self.expected = expected


class ResidualBalanceError(AccountingError):
    """Dispatcher ends the run holding input token."""

    def __init__(self, token: str, residual: int, details: Optional[dict] = None):
        merged = {"token": token, "residual": residual}
        merged.update(details or {})
        super().__init__(
            f"Residual balance of {residual} left for token {token}",
            ErrorCode.RESIDUAL_BALANCE,
            merged,
        )
        self.token = token
        self.residual = residual


class UnexpectedCallbackError(AccountingError):
    """Callback outside the expected window, from the wrong caller, or with the wrong selector."""
    default_code = ErrorCode.UNEXPECTED_CALLBACK


class ReentrancyError(AccountingError):
    """A second run was started while one is in flight."""
    default_code = ErrorCode.REENTRANT_CALL


# =============================================================================
# INFRA
# =============================================================================

class InfraError(TradewireError):
    """Infrastructure-related errors (RPC, timeouts)."""
    default_code = ErrorCode.INFRA_RPC_ERROR
