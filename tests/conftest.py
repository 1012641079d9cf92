# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for TRADEWIRE tests.

The `deployment` fixture wires a ledger, an executor registry (with the
test executors registered and already active), a dispatcher and a
program encoder on a throwaway chain.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chains.state import ChainState  # noqa: E402
from chains.venues import CallbackVenue, PrepaidVenue, PullVenue  # noqa: E402
from config import ChainConfig  # noqa: E402
from core.constants import NATIVE_TOKEN, UserTransferType  # noqa: E402
from core.models import HopBuilder, TradeGraph, build_graph  # noqa: E402
from core.validators import normalize_address  # noqa: E402
from dex.registry import VenueEncoderRegistry  # noqa: E402
from encoding.encoder import ProgramEncoder  # noqa: E402
from execution.dispatcher import Dispatcher  # noqa: E402
from execution.executors import (  # noqa: E402
    SELECTOR_V3_SWAP_CALLBACK,
    SELECTOR_V4_UNLOCK_CALLBACK,
    build_executors,
)
from execution.registry import EXECUTOR_SETTER_ROLE, ExecutorRegistry  # noqa: E402
from strategy.approvals import ApprovalsManager, LedgerAllowanceSource  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def pool_address(n: int) -> str:
    return "0x" + "90" * 19 + f"{n:02x}"


class Deployment:
    """Ledger, registry, dispatcher and encoder on a test chain."""

    CHAIN_ID = 31337
    WETH = "0x" + "ee" * 20
    USDC = "0x" + "c1" * 20
    DAI = "0x" + "da" * 20
    USDT = "0x" + "d7" * 20
    WBTC = "0x" + "bb" * 20

    ALICE = "0x" + "a1" * 20
    BOB = "0x" + "b0" * 20
    ADMIN = "0x" + "ad" * 20
    OPERATOR = "0x" + "0e" * 20
    DISPATCHER = "0x" + "d1" * 20

    EXECUTORS = {
        "uniswap_v2": "0x" + "e2" * 20,
        "uniswap_v3": "0x" + "e3" * 20,
        "uniswap_v4": "0x" + "e4" * 20,
        "curve": "0x" + "ec" * 20,
    }

    def __init__(
        self,
        register: bool = True,
        user_transfer_type: UserTransferType = UserTransferType.TRANSFER_FROM,
        safety_window: int = 2,
    ):
        self.chain = ChainState(self.CHAIN_ID, self.WETH)
        self.registry = ExecutorRegistry(self.chain, self.ADMIN, safety_window)
        self.registry.grant_role(self.ADMIN, EXECUTOR_SETTER_ROLE, self.OPERATOR)
        if register:
            self.registry.register(self.OPERATOR, self.EXECUTORS.values())
            self.chain.mine(safety_window)

        self.dispatcher = Dispatcher(
            self.chain, self.registry, self.DISPATCHER, build_executors(self.EXECUTORS)
        )
        self.config = ChainConfig(
            chain_key="testnet",
            chain_id=self.CHAIN_ID,
            wrapped_token=self.WETH,
            dispatcher_address=self.DISPATCHER,
            safety_window_blocks=safety_window,
        )
        self.encoders = VenueEncoderRegistry(self.EXECUTORS)
        self.approvals = ApprovalsManager(LedgerAllowanceSource(self.chain), self.DISPATCHER)
        self.encoder = ProgramEncoder(
            self.config,
            self.encoders,
            user_transfer_type,
            approvals=self.approvals,
            executor_registry=self.registry,
        )

    # ------------------------------------------------------------------
    # Venues
    # ------------------------------------------------------------------

    def fund(self, venue, token: str, amount: int) -> None:
        if normalize_address(token) == normalize_address(self.WETH):
            # wrapped inventory is backed by native currency held by WETH
            self.chain.mint(NATIVE_TOKEN, self.WETH, amount)
        venue.fund(token, amount)

    def price(self, venue, token_a: str, token_b: str, rate=(1, 1), liquidity: int = 10**24):
        numerator, denominator = rate
        venue.set_rate(token_a, token_b, numerator, denominator)
        venue.set_rate(token_b, token_a, denominator, numerator)
        self.fund(venue, token_a, liquidity)
        self.fund(venue, token_b, liquidity)
        return venue

    def v2_pair(self, n: int, token_a: str, token_b: str, rate=(1, 1), liquidity: int = 10**24) -> PrepaidVenue:
        return self.price(PrepaidVenue(self.chain, pool_address(n)), token_a, token_b, rate, liquidity)

    def v3_pool(self, n: int, token_a: str, token_b: str, rate=(1, 1), liquidity: int = 10**24) -> CallbackVenue:
        venue = CallbackVenue(self.chain, pool_address(n), SELECTOR_V3_SWAP_CALLBACK)
        return self.price(venue, token_a, token_b, rate, liquidity)

    def v4_manager(self, n: int) -> CallbackVenue:
        return CallbackVenue(self.chain, pool_address(n), SELECTOR_V4_UNLOCK_CALLBACK)

    def curve_pool(self, n: int, coins, rate=(1, 1), liquidity: int = 10**24) -> PullVenue:
        venue = PullVenue(self.chain, pool_address(n), coins)
        return self.price(venue, coins[0], coins[1], rate, liquidity)

    # ------------------------------------------------------------------
    # Callers
    # ------------------------------------------------------------------

    def give(self, token: str, amount: int, owner: str = None, approve: bool = True) -> None:
        """Mint `amount` to the owner and (optionally) authorize the dispatcher to pull it."""
        owner = owner or self.ALICE
        self.chain.mint(token, owner, amount)
        if approve:
            self.chain.approve(token, owner, self.DISPATCHER, amount)

    def balance(self, token: str, account: str = None) -> int:
        return self.chain.balance_of(token, account or self.ALICE)

    # ------------------------------------------------------------------
    # Graphs
    # ------------------------------------------------------------------

    def hop(self, venue: str, n: int, token_in: str, token_out: str, split="0", **attributes):
        """Hop on pool `n`; fee and tick spacing default to common tiers."""
        if venue in ("uniswap_v3", "uniswap_v4"):
            attributes.setdefault("fee", 3000 if venue == "uniswap_v3" else 500)
        if venue == "uniswap_v4":
            attributes.setdefault("tick_spacing", 10)
        builder = HopBuilder(venue, pool_address(n), token_in, token_out).split(split)
        for name, value in attributes.items():
            builder.attribute(name, value)
        return builder.build()

    def graph(self, token_in: str, token_out: str, hops, min_output: int = 0, amount_in: int = 1000, **kwargs) -> TradeGraph:
        sender = kwargs.pop("sender", self.ALICE)
        return build_graph((token_in, token_out), hops, min_output, amount_in=amount_in, sender=sender, **kwargs)

    def run(self, graph: TradeGraph, value: int = 0):
        program = self.encoder.encode(graph)
        return program, self.dispatcher.submit(program, graph.amount_in, graph.sender, value)


@pytest.fixture
def deployment():
    return Deployment()


@pytest.fixture
def unregistered_deployment():
    return Deployment(register=False)


@pytest.fixture
def make_deployment():
    return Deployment


@pytest.fixture(autouse=True)
def _reset_global_log_context():
    from core.logging import clear_global_context

    clear_global_context()
    yield
    clear_global_context()
