# PATH: tests/unit/test_chain_state.py
"""
Unit tests for the in-memory ledger and the simulated venues.

Run: python -m pytest tests/unit/test_chain_state.py -v
"""

import pytest

from chains.state import ChainState
from chains.venues import CallbackVenue, PrepaidVenue, PullVenue, VenueError
from core.constants import MAX_UINT256, NATIVE_TOKEN, ErrorCode
from core.exceptions import AuthorizationError, InsufficientBalanceError

WETH = "0x" + "ee" * 20
USDC = "0x" + "c1" * 20
DAI = "0x" + "da" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
POOL = "0x" + "90" * 20


@pytest.fixture
def chain():
    return ChainState(1, WETH)


class TestBalances:
    def test_transfer(self, chain):
        chain.mint(USDC, ALICE, 100)
        chain.transfer(USDC, ALICE, BOB, 40)
        assert chain.balance_of(USDC, ALICE) == 60
        assert chain.balance_of(USDC, BOB) == 40
        assert chain.transfer_log[-1].amount == 40

    def test_insufficient_balance(self, chain):
        chain.mint(USDC, ALICE, 10)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            chain.transfer(USDC, ALICE, BOB, 11)
        assert exc_info.value.code == ErrorCode.INSUFFICIENT_BALANCE
        assert exc_info.value.details["balance"] == 10

    def test_addresses_are_case_insensitive(self, chain):
        chain.mint(USDC, ALICE.upper().replace("0X", "0x"), 5)
        assert chain.balance_of(USDC, ALICE) == 5


class TestAllowances:
    def test_transfer_from_decrements(self, chain):
        chain.mint(USDC, ALICE, 100)
        chain.approve(USDC, ALICE, BOB, 70)
        chain.transfer_from(USDC, BOB, ALICE, POOL, 50)
        assert chain.allowance(USDC, ALICE, BOB) == 20
        assert chain.balance_of(USDC, POOL) == 50

    def test_unlimited_allowance_is_kept(self, chain):
        chain.mint(USDC, ALICE, 100)
        chain.approve(USDC, ALICE, BOB, MAX_UINT256)
        chain.transfer_from(USDC, BOB, ALICE, POOL, 50)
        assert chain.allowance(USDC, ALICE, BOB) == MAX_UINT256

    def test_missing_allowance(self, chain):
        chain.mint(USDC, ALICE, 100)
        with pytest.raises(AuthorizationError) as exc_info:
            chain.transfer_from(USDC, BOB, ALICE, POOL, 1)
        assert exc_info.value.details["allowance"] == 0


class TestNative:
    def test_wrap_and_unwrap(self, chain):
        chain.mint(NATIVE_TOKEN, ALICE, 10)
        chain.wrap(ALICE, 10)
        assert chain.balance_of(WETH, ALICE) == 10
        assert chain.balance_of(NATIVE_TOKEN, ALICE) == 0
        chain.unwrap(ALICE, 4)
        assert chain.balance_of(WETH, ALICE) == 6
        assert chain.balance_of(NATIVE_TOKEN, ALICE) == 4

    def test_unwrap_more_than_held(self, chain):
        with pytest.raises(InsufficientBalanceError):
            chain.unwrap(ALICE, 1)


class TestAtomic:
    def test_rollback_on_error(self, chain):
        chain.mint(USDC, ALICE, 100)
        with pytest.raises(RuntimeError):
            with chain.atomic():
                chain.transfer(USDC, ALICE, BOB, 100)
                chain.mine()
                raise RuntimeError("boom")
        assert chain.balance_of(USDC, ALICE) == 100
        assert chain.balance_of(USDC, BOB) == 0
        assert chain.block_number == 1
        assert chain.transfer_log == []

    def test_commit_on_success(self, chain):
        chain.mint(USDC, ALICE, 100)
        with chain.atomic():
            chain.transfer(USDC, ALICE, BOB, 30)
        assert chain.balance_of(USDC, BOB) == 30

    def test_contract_state_rolls_back(self, chain):
        venue = PrepaidVenue(chain, POOL).set_rate(USDC, DAI, 1)
        with pytest.raises(RuntimeError):
            with chain.atomic():
                venue.set_rate(USDC, DAI, 2)
                raise RuntimeError("boom")
        assert venue.quote(USDC, DAI, 10) == 10
        assert chain.contract_at(POOL) is venue

    def test_participants_roll_back(self, chain):
        class Counter:
            value = 0

            def snapshot(self):
                return self.value

            def restore(self, state):
                self.value = state

        counter = Counter()
        with pytest.raises(RuntimeError):
            with chain.atomic(counter):
                counter.value = 5
                raise RuntimeError("boom")
        assert counter.value == 0


class TestVenues:
    def test_prepaid_swaps_pending_input(self, chain):
        venue = PrepaidVenue(chain, POOL).set_rate(USDC, DAI, 99, 100)
        venue.fund(DAI, 10_000)
        chain.mint(USDC, POOL, 1000)
        assert venue.swap(USDC, DAI, ALICE) == 990
        assert chain.balance_of(DAI, ALICE) == 990

    def test_prepaid_without_input(self, chain):
        venue = PrepaidVenue(chain, POOL).set_rate(USDC, DAI, 1)
        venue.fund(DAI, 10)
        with pytest.raises(VenueError):
            venue.swap(USDC, DAI, ALICE)

    def test_unknown_pair(self, chain):
        venue = PrepaidVenue(chain, POOL)
        with pytest.raises(VenueError):
            venue.quote(USDC, DAI, 1)

    def test_callback_needs_receiver_contract(self, chain):
        venue = CallbackVenue(chain, POOL, "fa461e33").set_rate(USDC, DAI, 1)
        venue.fund(DAI, 10)
        with pytest.raises(VenueError):
            venue.swap(ALICE, USDC, DAI, 10, ALICE)

    def test_pull_venue_uses_allowance(self, chain):
        venue = PullVenue(chain, POOL, [USDC, DAI]).set_rate(USDC, DAI, 1)
        venue.fund(DAI, 100)
        chain.mint(USDC, ALICE, 100)
        with pytest.raises(AuthorizationError):
            venue.exchange(ALICE, 0, 1, 100, ALICE)
        chain.approve(USDC, ALICE, POOL, 100)
        assert venue.exchange(ALICE, 0, 1, 100, BOB) == 100
        assert venue.coin_index(DAI) == 1
        assert venue.coin_index(WETH) is None
