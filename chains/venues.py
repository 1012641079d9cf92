"""
chains/venues.py - Simulated liquidity venues.

Stand-ins for on-chain pools, used by the dispatcher simulation and the
tests. Pricing is a fixed rate per (token_in, token_out) pair; the point
is the funding model of each venue, not its curve:

  PrepaidVenue   - input must already sit in the pool (v2 style);
                   output amount is computed from balance over reserves
  CallbackVenue  - sends output first, then calls back the caller to be
                   paid (v3 / v4 style); can batch several legs
  PullVenue      - pulls input from the caller with transfer_from
                   (curve style); needs an allowance

Venue failures raise VenueError and propagate unchanged through the
dispatcher.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from chains.state import ChainState
from core.logging import get_logger
from core.validators import normalize_address

logger = get_logger(__name__)


class VenueError(Exception):
    """Raised by a simulated venue (the equivalent of a pool revert)."""


@dataclass(frozen=True)
class CallbackRequest:
    """Payment a venue asks for during its callback."""
    token: str
    amount: int
    data: bytes = b""


class SimulatedVenue:
    """Base venue: fixed-rate quotes and inventory held on the ledger."""

    def __init__(self, chain: ChainState, address: str):
        self.chain = chain
        self.address = normalize_address(address, "venue")
        self._rates: Dict[Tuple[str, str], Tuple[int, int]] = {}
        chain.deploy(self.address, self)

    def set_rate(self, token_in: str, token_out: str, numerator: int, denominator: int = 1) -> "SimulatedVenue":
        """Every unit of token_in buys numerator/denominator units of token_out."""
        if denominator <= 0:
            raise ValueError("denominator must be positive")
        key = (normalize_address(token_in), normalize_address(token_out))
        self._rates[key] = (numerator, denominator)
        return self

    def fund(self, token: str, amount: int) -> "SimulatedVenue":
        self.chain.mint(token, self.address, amount)
        return self

    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        key = (normalize_address(token_in), normalize_address(token_out))
        if key not in self._rates:
            raise VenueError(f"{self.address} does not trade {key[0]} -> {key[1]}")
        numerator, denominator = self._rates[key]
        return amount_in * numerator // denominator

    def _pay_out(self, token_out: str, recipient: str, amount_out: int) -> None:
        if self.chain.balance_of(token_out, self.address) < amount_out:
            raise VenueError(f"{self.address} has insufficient liquidity of {token_out}")
        self.chain.transfer(token_out, self.address, recipient, amount_out)

    def snapshot(self) -> Dict[str, Any]:
        return {"rates": dict(self._rates)}

    def restore(self, state: Dict[str, Any]) -> None:
        self._rates = state["rates"]


class PrepaidVenue(SimulatedVenue):
    """Pool that swaps whatever arrived since its last sync."""

    def __init__(self, chain: ChainState, address: str):
        super().__init__(chain, address)
        self._reserves: Dict[str, int] = {}

    def fund(self, token: str, amount: int) -> "PrepaidVenue":
        super().fund(token, amount)
        self.sync(token)
        return self

    def sync(self, token: str) -> None:
        token = normalize_address(token)
        self._reserves[token] = self.chain.balance_of(token, self.address)

    def pending_input(self, token_in: str) -> int:
        token_in = normalize_address(token_in)
        return self.chain.balance_of(token_in, self.address) - self._reserves.get(token_in, 0)

    def swap(self, token_in: str, token_out: str, recipient: str) -> int:
        amount_in = self.pending_input(token_in)
        if amount_in <= 0:
            raise VenueError(f"{self.address}: insufficient input amount")
        amount_out = self.quote(token_in, token_out, amount_in)
        self._pay_out(token_out, recipient, amount_out)
        self.sync(token_in)
        self.sync(token_out)
        return amount_out

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state["reserves"] = dict(self._reserves)
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        super().restore(state)
        self._reserves = state["reserves"]


class CallbackVenue(SimulatedVenue):
    """
    Pool that pays first and is paid in a callback.

    The callback goes to the contract deployed at `caller` through its
    venue_callback(caller, selector, request) entry point. The venue then
    checks its own balance and reverts if it was underpaid.
    """

    def __init__(self, chain: ChainState, address: str, callback_selector: str):
        super().__init__(chain, address)
        self.callback_selector = callback_selector

    def swap(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        recipient: str,
        data: bytes = b"",
    ) -> int:
        return self.swap_path(caller, [(token_in, token_out)], amount_in, recipient, data)

    def swap_path(
        self,
        caller: str,
        legs: Sequence[Tuple[str, str]],
        amount_in: int,
        recipient: str,
        data: bytes = b"",
    ) -> int:
        """Swap through consecutive legs; only the first input is owed."""
        if not legs:
            raise VenueError(f"{self.address}: empty swap path")
        amount = amount_in
        for token_in, token_out in legs:
            amount = self.quote(token_in, token_out, amount)
        token_in = normalize_address(legs[0][0])
        token_out = normalize_address(legs[-1][1])

        self._pay_out(token_out, recipient, amount)

        target = self.chain.contract_at(caller)
        if target is None or not hasattr(target, "venue_callback"):
            raise VenueError(f"{self.address}: caller {caller} cannot receive callbacks")
        before = self.chain.balance_of(token_in, self.address)
        target.venue_callback(
            self.address,
            self.callback_selector,
            CallbackRequest(token=token_in, amount=amount_in, data=data),
        )
        received = self.chain.balance_of(token_in, self.address) - before
        if received < amount_in:
            raise VenueError(
                f"{self.address}: callback paid {received}, owed {amount_in}"
            )
        return amount


class PullVenue(SimulatedVenue):
    """Pool with an indexed coin list that pulls its input from the caller."""

    def __init__(self, chain: ChainState, address: str, coins: Sequence[str]):
        super().__init__(chain, address)
        self.coins: List[str] = [normalize_address(c, "coin") for c in coins]

    def coin_index(self, token: str) -> Optional[int]:
        token = normalize_address(token)
        return self.coins.index(token) if token in self.coins else None

    def exchange(self, caller: str, i: int, j: int, amount_in: int, recipient: str) -> int:
        if not (0 <= i < len(self.coins) and 0 <= j < len(self.coins)) or i == j:
            raise VenueError(f"{self.address}: invalid coin indices {i}, {j}")
        token_in, token_out = self.coins[i], self.coins[j]
        amount_out = self.quote(token_in, token_out, amount_in)
        self.chain.transfer_from(token_in, self.address, caller, self.address, amount_in)
        self._pay_out(token_out, recipient, amount_out)
        return amount_out
