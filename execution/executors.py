"""
execution/executors.py - Per-venue executors.

EXECUTOR CONTRACT
=================

An executor is stateless code the dispatcher runs with delegate
semantics: every transfer it makes comes from the dispatcher's address.

  execute(ctx, amount_in, params) -> amount_out
      Swap `amount_in` of ctx.token_in on the venue described by
      `params` and return the output the venue reported.

  handle_callback(ctx, caller, request)
      Settle a venue's "pay me" callback. Only called by the dispatcher
      after it checked the callback window.

Class attributes:
  venue               protocol system name this executor serves
  callback_selector   selector of the venue's callback, None if it has none
  pays_in_callback    input is paid inside the callback, not up front
  funds_in_dispatcher venue pulls from the dispatcher's own holding

The dispatcher performs the directive's transfer before execute() for
executors that do not pay in their callback; the destination of that
transfer is funding_address().
=================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type

from chains.state import ChainState
from chains.venues import CallbackRequest, VenueError
from core.constants import APPROVAL_THRESHOLD, MAX_UINT256, TransferDirective
from core.exceptions import DecodingError, LengthMismatchError
from core.logging import get_logger
from core.math import from_uint_bytes
from core.validators import bytes_to_address, normalize_address
from encoding.ple import ple_decode

logger = get_logger(__name__)

# keccak256("uniswapV3SwapCallback(int256,int256,bytes)")[:4]
SELECTOR_V3_SWAP_CALLBACK = "fa461e33"
# keccak256("unlockCallback(bytes)")[:4]
SELECTOR_V4_UNLOCK_CALLBACK = "91dd7346"


@dataclass
class HopContext:
    """What an executor sees while running one hop."""
    chain: ChainState
    dispatcher: str
    sender: str
    token_in: str
    token_out: str
    directive: TransferDirective
    approval_needed: bool = False

    def pay(self, recipient: str, amount: int) -> None:
        """Move `amount` of token_in to `recipient` as the directive says."""
        recipient = normalize_address(recipient)
        if self.directive == TransferDirective.DELEGATED_PULL:
            self.chain.transfer_from(self.token_in, self.dispatcher, self.sender, recipient, amount)
        elif self.directive == TransferDirective.DIRECT_PUSH or self._sends_value:
            if recipient != self.dispatcher:
                self.chain.transfer(self.token_in, self.dispatcher, recipient, amount)
        # PREFUNDED: already at the venue. RESIDENT: venue takes it itself.

    @property
    def _sends_value(self) -> bool:
        """Resident native currency leaves the dispatcher as call value."""
        return (
            self.directive == TransferDirective.RESIDENT
            and normalize_address(self.token_in) == self.chain.native_token
        )

    def approve_max(self, spender: str) -> None:
        """One-time unlimited approval of token_in, skipped when already granted."""
        if self.chain.allowance(self.token_in, self.dispatcher, spender) < APPROVAL_THRESHOLD:
            self.chain.approve(self.token_in, self.dispatcher, spender, MAX_UINT256)


class VenueExecutor(ABC):
    """Base class for per-venue executors."""

    venue: str = ""
    callback_selector: Optional[str] = None
    pays_in_callback: bool = False
    funds_in_dispatcher: bool = False

    def __init__(self, address: str):
        self.address = normalize_address(address, "executor")

    def _venue_at(self, chain: ChainState, pool: str):
        contract = chain.contract_at(pool)
        if contract is None:
            raise VenueError(f"No venue deployed at {pool}")
        return contract

    def funding_address(self, ctx: HopContext, params: bytes) -> str:
        """Where the up-front transfer of the input goes."""
        if self.funds_in_dispatcher:
            return ctx.dispatcher
        return self.pool(params)

    @abstractmethod
    def pool(self, params: bytes) -> str:
        """Address of the venue contract addressed by `params`."""

    def expected_callback_caller(self, params: bytes) -> Optional[str]:
        return self.pool(params) if self.callback_selector else None

    @abstractmethod
    def execute(self, ctx: HopContext, amount_in: int, params: bytes) -> int:
        """Run the swap; return the reported output amount."""

    def handle_callback(self, ctx: HopContext, caller: str, request: CallbackRequest) -> None:
        if request.token != normalize_address(ctx.token_in):
            raise VenueError(
                f"Callback asks for {request.token}, hop pays {ctx.token_in}"
            )
        ctx.pay(caller, request.amount)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"


def _require_length(params: bytes, size: int, venue: str) -> None:
    if len(params) != size:
        raise LengthMismatchError(
            f"{venue} params are {len(params)} bytes, expected {size}",
            expected=size,
            actual=len(params),
            details={"venue": venue},
        )


# ============================================================================
# UNISWAP V2
# ============================================================================

class UniswapV2Executor(VenueExecutor):
    """
    params: pool(20) | receiver(20) | zero_for_one(1)

    Input is transferred to the pair before the swap (or was already
    sent there by the previous hop).
    """

    venue = "uniswap_v2"
    PARAMS_SIZE = 41

    def pool(self, params: bytes) -> str:
        _require_length(params, self.PARAMS_SIZE, self.venue)
        return bytes_to_address(params[0:20])

    def execute(self, ctx: HopContext, amount_in: int, params: bytes) -> int:
        pool = self.pool(params)
        receiver = bytes_to_address(params[20:40])
        return self._venue_at(ctx.chain, pool).swap(ctx.token_in, ctx.token_out, receiver)


# ============================================================================
# UNISWAP V3
# ============================================================================

class UniswapV3Executor(VenueExecutor):
    """params: pool(20) | fee(3) | receiver(20) | zero_for_one(1)"""

    venue = "uniswap_v3"
    callback_selector = SELECTOR_V3_SWAP_CALLBACK
    pays_in_callback = True
    PARAMS_SIZE = 44

    def pool(self, params: bytes) -> str:
        _require_length(params, self.PARAMS_SIZE, self.venue)
        return bytes_to_address(params[0:20])

    def execute(self, ctx: HopContext, amount_in: int, params: bytes) -> int:
        pool = self.pool(params)
        receiver = bytes_to_address(params[23:43])
        return self._venue_at(ctx.chain, pool).swap(
            ctx.dispatcher, ctx.token_in, ctx.token_out, amount_in, receiver
        )


# ============================================================================
# UNISWAP V4
# ============================================================================

V4_LEG_SIZE = 46


@dataclass(frozen=True)
class V4Leg:
    token_out: str
    pool: str
    fee: int
    tick_spacing: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "V4Leg":
        if len(data) != V4_LEG_SIZE:
            raise DecodingError(
                f"uniswap_v4 leg is {len(data)} bytes, expected {V4_LEG_SIZE}",
                details={"length": len(data)},
            )
        return cls(
            token_out=bytes_to_address(data[0:20]),
            pool=bytes_to_address(data[20:40]),
            fee=from_uint_bytes(data[40:43]),
            tick_spacing=from_uint_bytes(data[43:46]),
        )


class UniswapV4Executor(VenueExecutor):
    """
    params: receiver(20) | leg | PLE[leg]
    leg:    token_out(20) | pool(20) | fee(3) | tick_spacing(3)

    All legs of a group settle in one unlock; the first leg's pool is
    the pool manager that calls back.
    """

    venue = "uniswap_v4"
    callback_selector = SELECTOR_V4_UNLOCK_CALLBACK
    pays_in_callback = True

    def decode_legs(self, params: bytes) -> Tuple[str, List[V4Leg]]:
        if len(params) < 20 + V4_LEG_SIZE:
            raise LengthMismatchError(
                f"uniswap_v4 params are {len(params)} bytes, need at least {20 + V4_LEG_SIZE}",
                expected=20 + V4_LEG_SIZE,
                actual=len(params),
                details={"venue": self.venue},
            )
        receiver = bytes_to_address(params[0:20])
        legs = [V4Leg.from_bytes(params[20:20 + V4_LEG_SIZE])]
        legs.extend(V4Leg.from_bytes(e) for e in ple_decode(params[20 + V4_LEG_SIZE:]) if e)
        return receiver, legs

    def pool(self, params: bytes) -> str:
        _, legs = self.decode_legs(params)
        return legs[0].pool

    def execute(self, ctx: HopContext, amount_in: int, params: bytes) -> int:
        receiver, legs = self.decode_legs(params)
        if legs[-1].token_out != normalize_address(ctx.token_out):
            raise DecodingError(
                "uniswap_v4 path does not end in the hop's output token",
                details={"path_out": legs[-1].token_out, "token_out": ctx.token_out},
            )
        path = []
        token = normalize_address(ctx.token_in)
        for leg in legs:
            path.append((token, leg.token_out))
            token = leg.token_out
        return self._venue_at(ctx.chain, legs[0].pool).swap_path(
            ctx.dispatcher, path, amount_in, receiver
        )


# ============================================================================
# CURVE
# ============================================================================

class CurveExecutor(VenueExecutor):
    """
    params: pool(20) | i(1) | j(1) | receiver(20)

    The pool pulls its input from the dispatcher, so it needs an
    allowance; the encoder flags the first use of each (token, pool).
    """

    venue = "curve"
    funds_in_dispatcher = True
    PARAMS_SIZE = 42

    def pool(self, params: bytes) -> str:
        _require_length(params, self.PARAMS_SIZE, self.venue)
        return bytes_to_address(params[0:20])

    def execute(self, ctx: HopContext, amount_in: int, params: bytes) -> int:
        pool = self.pool(params)
        i, j = params[20], params[21]
        receiver = bytes_to_address(params[22:42])
        if ctx.approval_needed:
            ctx.approve_max(pool)
        return self._venue_at(ctx.chain, pool).exchange(ctx.dispatcher, i, j, amount_in, receiver)


EXECUTOR_CLASSES: Dict[str, Type[VenueExecutor]] = {
    "uniswap_v2": UniswapV2Executor,
    "sushiswap_v2": UniswapV2Executor,
    "uniswap_v3": UniswapV3Executor,
    "pancakeswap_v3": UniswapV3Executor,
    "uniswap_v4": UniswapV4Executor,
    "curve": CurveExecutor,
}


def build_executors(addresses: Dict[str, str]) -> Dict[str, VenueExecutor]:
    """
    Instantiate executors from a venue -> address mapping.

    Returns executors keyed by their (normalized) address.
    """
    executors: Dict[str, VenueExecutor] = {}
    for venue, address in addresses.items():
        cls = EXECUTOR_CLASSES.get(venue)
        if cls is None:
            logger.warning(
                "No executor implementation for venue",
                extra={"context": {"venue": venue, "address": address}},
            )
            continue
        executor = cls(address)
        executors[executor.address] = executor
    return executors
