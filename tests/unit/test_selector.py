# PATH: tests/unit/test_selector.py
"""
Unit tests for strategy selection, path validation and hop grouping.

Run: python -m pytest tests/unit/test_selector.py -v
"""

from decimal import Decimal

import pytest

from core.constants import NATIVE_TOKEN, ErrorCode, NativeAction, Strategy
from core.exceptions import EncodingError
from core.models import Hop, HopBuilder, TradeGraph, build_graph
from dex.registry import VenueEncoderRegistry
from strategy.selector import StrategySelector, group_hops

WETH = "0x" + "ee" * 20
USDC = "0x" + "c1" * 20
DAI = "0x" + "da" * 20
USDT = "0x" + "d7" * 20
ALICE = "0x" + "a1" * 20

EXECUTORS = {
    "uniswap_v2": "0x" + "e2" * 20,
    "uniswap_v3": "0x" + "e3" * 20,
    "uniswap_v4": "0x" + "e4" * 20,
    "curve": "0x" + "ec" * 20,
}


def pool(n):
    return "0x" + "90" * 19 + f"{n:02x}"


def v2(n, token_in, token_out, split="0"):
    return HopBuilder("uniswap_v2", pool(n), token_in, token_out).split(split).build()


def v4(n, token_in, token_out, split="0"):
    return (HopBuilder("uniswap_v4", pool(n), token_in, token_out)
            .split(split)
            .attribute("fee", 500)
            .attribute("tick_spacing", 10)
            .build())


def graph(token_in, token_out, hops, **kwargs):
    return build_graph((token_in, token_out), hops, 0, amount_in=1000, sender=ALICE, **kwargs)


@pytest.fixture
def selector():
    return StrategySelector(VenueEncoderRegistry(EXECUTORS), WETH)


def assert_encoding_error(code, fn, *args):
    with pytest.raises(EncodingError) as exc_info:
        fn(*args)
    assert exc_info.value.code == code
    return exc_info.value


class TestStrategyTags:
    def test_single_hop(self, selector):
        plan = selector.select(graph(USDC, DAI, [v2(1, USDC, DAI)]))
        assert plan.strategy == Strategy.SINGLE
        assert plan.tokens == (USDC, DAI)
        assert len(plan.groups) == 1

    def test_sequential(self, selector):
        plan = selector.select(graph(USDC, USDT, [v2(1, USDC, DAI), v2(2, DAI, USDT)]))
        assert plan.strategy == Strategy.SEQUENTIAL
        assert plan.tokens == (USDC, DAI, USDT)
        assert [(g.token_in_index, g.token_out_index) for g in plan.groups] == [(0, 1), (1, 2)]

    def test_split_with_remainder(self, selector):
        plan = selector.select(graph(USDC, DAI, [v2(1, USDC, DAI, "0.6"), v2(2, USDC, DAI)]))
        assert plan.strategy == Strategy.SPLIT
        assert plan.is_split
        assert [g.split_uint24 for g in plan.groups] == [10066329, 0]

    def test_explicit_splits_summing_to_one(self, selector):
        plan = selector.select(graph(USDC, DAI, [v2(1, USDC, DAI, "0.6"), v2(2, USDC, DAI, "0.4")]))
        assert plan.strategy == Strategy.SPLIT
        assert plan.groups[-1].split == Decimal("0")

    def test_single_hop_with_full_split_is_single(self, selector):
        plan = selector.select(graph(USDC, DAI, [v2(1, USDC, DAI, "1")]))
        assert plan.strategy == Strategy.SINGLE

    def test_cyclic(self, selector):
        plan = selector.select(graph(USDC, USDC, [v2(1, USDC, DAI), v2(2, DAI, USDC)]))
        assert plan.strategy == Strategy.CYCLIC
        assert plan.cyclic
        assert plan.tokens == (USDC, DAI)
        assert [(g.token_in_index, g.token_out_index) for g in plan.groups] == [(0, 1), (1, 0)]

    def test_wrap_uses_wrapped_token(self, selector):
        plan = selector.select(graph(NATIVE_TOKEN, DAI, [v2(1, WETH, DAI)], native_action=NativeAction.WRAP))
        assert plan.wrap
        assert plan.effective_token_in == WETH
        assert plan.tokens == (WETH, DAI)

    def test_unwrap_uses_wrapped_token(self, selector):
        plan = selector.select(graph(DAI, NATIVE_TOKEN, [v2(1, DAI, WETH)], native_action=NativeAction.UNWRAP))
        assert plan.unwrap
        assert plan.effective_token_out == WETH


class TestGrouping:
    def test_v4_chain_collapses_to_single(self, selector):
        plan = selector.select(graph(USDC, USDT, [v4(1, USDC, DAI), v4(1, DAI, USDT)]))
        assert plan.strategy == Strategy.SINGLE
        assert len(plan.groups) == 1
        assert plan.groups[0].token_in == USDC
        assert plan.groups[0].token_out == USDT
        assert len(plan.groups[0].hops) == 2

    def test_v2_chain_is_not_grouped(self, selector):
        plan = selector.select(graph(USDC, USDT, [v2(1, USDC, DAI), v2(2, DAI, USDT)]))
        assert len(plan.groups) == 2

    def test_mixed_venues_break_groups(self, selector):
        hops = [v4(1, USDC, DAI), v2(2, DAI, WETH), v4(1, WETH, USDT)]
        plan = selector.select(graph(USDC, USDT, hops))
        assert plan.strategy == Strategy.SEQUENTIAL
        assert len(plan.groups) == 3

    def test_split_joint_is_not_grouped(self, selector):
        hops = [
            v4(1, USDC, DAI),
            v4(1, DAI, USDT, "0.5"),
            v4(2, DAI, WETH),
            v2(3, WETH, USDT),
        ]
        plan = selector.select(graph(USDC, USDT, hops))
        assert plan.strategy == Strategy.SPLIT
        assert len(plan.groups) == 4

    def test_cycle_through_one_manager(self, selector):
        plan = selector.select(graph(USDC, USDC, [v4(1, USDC, DAI), v4(1, DAI, USDC)]))
        assert plan.strategy == Strategy.CYCLIC
        assert len(plan.groups) == 1
        assert (plan.groups[0].token_in_index, plan.groups[0].token_out_index) == (0, 0)

    def test_shared_token_is_never_a_joint(self):
        hops = [v4(1, DAI, USDC), v4(1, USDC, DAI)]
        groups = group_hops(hops, [Decimal("0")] * 2, {"uniswap_v4": True}, shared_token=USDC)
        assert len(groups) == 2


class TestValidation:
    def test_empty_graph(self, selector):
        assert_encoding_error(ErrorCode.EMPTY_GRAPH, selector.select, graph(USDC, DAI, []))

    def test_unsupported_venue(self, selector):
        hop = Hop("balancer_v2", pool(1), USDC, DAI)
        assert_encoding_error(ErrorCode.UNSUPPORTED_VENUE, selector.select, graph(USDC, DAI, [hop]))

    def test_cyclic_flag_must_match_tokens(self, selector):
        g = TradeGraph(ALICE, ALICE, USDC, USDC, 1000, 0, (v2(1, USDC, DAI), v2(2, DAI, USDC)), cyclic=False)
        assert_encoding_error(ErrorCode.INVALID_INPUT, selector.select, g)

    def test_cyclic_flag_on_linear_trade(self, selector):
        g = TradeGraph(ALICE, ALICE, USDC, DAI, 1000, 0, (v2(1, USDC, DAI),), cyclic=True)
        assert_encoding_error(ErrorCode.INVALID_INPUT, selector.select, g)

    def test_cycle_cannot_wrap(self, selector):
        g = TradeGraph(
            ALICE, ALICE, NATIVE_TOKEN, NATIVE_TOKEN, 1000, 0,
            (v2(1, WETH, DAI), v2(2, DAI, WETH)),
            cyclic=True,
            native_action=NativeAction.WRAP,
        )
        assert_encoding_error(ErrorCode.EXCLUSIVE_FLAGS, selector.select, g)

    def test_wrap_needs_native_input(self, selector):
        g = graph(USDC, DAI, [v2(1, USDC, DAI)], native_action=NativeAction.WRAP)
        assert_encoding_error(ErrorCode.INVALID_INPUT, selector.select, g)

    def test_unwrap_needs_native_output(self, selector):
        g = graph(USDC, DAI, [v2(1, USDC, DAI)], native_action=NativeAction.UNWRAP)
        assert_encoding_error(ErrorCode.INVALID_INPUT, selector.select, g)

    def test_unreachable_token(self, selector):
        g = graph(USDC, USDT, [v2(1, DAI, USDT), v2(2, USDC, DAI)])
        error = assert_encoding_error(ErrorCode.UNDECOMPOSABLE_GRAPH, selector.select, g)
        assert error.details["hop"] == 0

    def test_dangling_exit(self, selector):
        g = graph(USDC, DAI, [v2(1, USDC, DAI, "0.5"), v2(2, USDC, USDT)])
        error = assert_encoding_error(ErrorCode.UNDECOMPOSABLE_GRAPH, selector.select, g)
        assert error.details["tokens"] == [USDT]

    def test_output_never_produced(self, selector):
        g = graph(USDC, USDT, [v2(1, USDC, DAI)])
        assert_encoding_error(ErrorCode.UNDECOMPOSABLE_GRAPH, selector.select, g)

    def test_linear_trade_cannot_return_to_input(self, selector):
        g = graph(USDC, USDT, [v2(1, USDC, DAI), v2(2, DAI, USDC), v2(3, USDC, USDT)])
        assert_encoding_error(ErrorCode.UNDECOMPOSABLE_GRAPH, selector.select, g)

    def test_token_repeated_after_spent(self, selector):
        hops = [v2(1, USDC, DAI), v2(2, DAI, WETH), v2(3, WETH, DAI), v2(4, DAI, USDT)]
        assert_encoding_error(ErrorCode.UNDECOMPOSABLE_GRAPH, selector.select, graph(USDC, USDT, hops))

    def test_too_many_tokens(self, selector):
        tokens = [f"0x{i + 1:040x}" for i in range(256)]
        hops = [v2(1, tokens[i], tokens[i + 1]) for i in range(255)]
        assert_encoding_error(ErrorCode.ELEMENT_TOO_LARGE, selector.select, graph(tokens[0], tokens[-1], hops))


class TestSplitValidation:
    @pytest.mark.parametrize("splits", [
        ("0", "0.4"),          # remainder not last
        ("0.5", "0.4"),        # explicit siblings short of 1
        ("0.6", "0.4", "0"),   # nothing left for the remainder
        ("0", "0"),            # two remainders
        ("0.00000001", "0"),   # rounds to zero on the wire
    ])
    def test_invalid_fractions(self, selector, splits):
        hops = [v2(i + 1, USDC, DAI, s) for i, s in enumerate(splits)]
        assert_encoding_error(ErrorCode.INVALID_SPLIT, selector.select, graph(USDC, DAI, hops))

    def test_three_way_split(self, selector):
        hops = [v2(1, USDC, DAI, "0.2"), v2(2, USDC, DAI, "0.3"), v2(3, USDC, DAI)]
        plan = selector.select(graph(USDC, DAI, hops))
        assert [g.split for g in plan.groups] == [Decimal("0.2"), Decimal("0.3"), Decimal("0")]
