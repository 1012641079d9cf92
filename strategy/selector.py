"""
strategy/selector.py - Strategy selection and graph validation.

STRATEGY CONTRACT
=================

1. Validate the graph (fail before any byte is produced):
   - at least one hop, every venue supported
   - native action consistent with the tokens; never combined with a cycle
   - cyclic flag == (token_in == token_out)
   - every hop input is available when the hop runs, every produced
     token is consumed later (no dangling exits), the output is produced
   - once a token has been consumed nothing may produce it again; for a
     cycle the only exception is the shared token, which is credited to
     the net-amount accumulator
   - siblings leaving one token: explicit fractions in (0, 1], at most
     one remainder (split 0) and only as the last sibling; explicit
     fractions sum to < 1 with a remainder, exactly 1 without one

2. Group consecutive unsplit hops on a groupable venue that chain into
   each other; a group is invoked once.

3. Pick the tag:
     cyclic                          -> CYCLIC
     one group, nothing split        -> SINGLE
     nothing split                   -> SEQUENTIAL
     otherwise                       -> SPLIT
=================
"""

from collections import defaultdict
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from core.constants import MAX_UINT8, NATIVE_TOKEN, ErrorCode, NativeAction, Strategy
from core.exceptions import EncodingError
from core.logging import get_logger
from core.math import split_to_uint24
from core.models import Hop, TradeGraph
from core.validators import normalize_address
from dex.registry import VenueEncoderRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class HopGroup:
    """One executor invocation: a single hop or a batch of chained legs."""
    hops: Tuple[Hop, ...]
    split: Decimal = Decimal("0")
    token_in_index: int = 0
    token_out_index: int = 0

    @property
    def venue(self) -> str:
        return self.hops[0].venue

    @property
    def pool(self) -> str:
        return self.hops[0].pool

    @property
    def token_in(self) -> str:
        return self.hops[0].token_in

    @property
    def token_out(self) -> str:
        return self.hops[-1].token_out

    @property
    def split_uint24(self) -> int:
        return 0 if self.split == 0 else split_to_uint24(self.split)


@dataclass(frozen=True)
class StrategyPlan:
    """Outcome of selection: tag, groups in execution order, token index."""
    strategy: Strategy
    groups: Tuple[HopGroup, ...]
    tokens: Tuple[str, ...]
    effective_token_in: str
    effective_token_out: str
    wrap: bool = False
    unwrap: bool = False
    cyclic: bool = False
    is_split: bool = False

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy.name,
            "tokens": list(self.tokens),
            "groups": [
                {
                    "venue": g.venue,
                    "pool": g.pool,
                    "token_in": g.token_in,
                    "token_out": g.token_out,
                    "legs": len(g.hops),
                    "split": str(g.split),
                }
                for g in self.groups
            ],
        }


def _fail(message: str, code: ErrorCode, **details) -> EncodingError:
    return EncodingError(message, code, details)


# ============================================================================
# VALIDATION
# ============================================================================

def effective_tokens(graph: TradeGraph, wrapped_token: str, native_token: str) -> Tuple[str, str]:
    """Tokens the swaps actually trade, after the dispatcher's wrap/unwrap."""
    if graph.native_action is not None and graph.cyclic:
        raise _fail(
            "A cyclic trade cannot wrap or unwrap native currency",
            ErrorCode.EXCLUSIVE_FLAGS,
            native_action=graph.native_action.value,
        )
    token_in, token_out = graph.token_in, graph.token_out
    if graph.native_action == NativeAction.WRAP:
        if token_in != native_token:
            raise _fail(
                "wrap requires the native token as input",
                ErrorCode.INVALID_INPUT,
                token_in=token_in,
            )
        token_in = wrapped_token
    elif graph.native_action == NativeAction.UNWRAP:
        if token_out != native_token:
            raise _fail(
                "unwrap requires the native token as output",
                ErrorCode.INVALID_INPUT,
                token_out=token_out,
            )
        token_out = wrapped_token
    return token_in, token_out


def _normalize_splits(hops: Sequence[Hop]) -> Tuple[List[Decimal], bool]:
    """
    Validate sibling fractions per input token.

    Returns the per-hop fraction to encode (the last sibling of a set
    summing to exactly 1 becomes the remainder) and whether any token
    is split between several hops.
    """
    siblings: Dict[str, List[int]] = defaultdict(list)
    for index, hop in enumerate(hops):
        siblings[hop.token_in].append(index)

    splits = [hop.split for hop in hops]
    any_split = False
    for token, indices in siblings.items():
        if len(indices) > 1:
            any_split = True
        fractions = [hops[i].split for i in indices]
        remainders = [pos for pos, f in enumerate(fractions) if f == 0]
        if len(remainders) > 1 or (remainders and remainders[0] != len(indices) - 1):
            raise _fail(
                f"Only the last hop leaving {token} may take the remainder",
                ErrorCode.INVALID_SPLIT,
                token=token,
                splits=[str(f) for f in fractions],
            )
        explicit = sum((f for f in fractions if f != 0), Decimal("0"))
        if remainders:
            if explicit >= 1:
                raise _fail(
                    f"Explicit splits leaving {token} leave nothing for the remainder",
                    ErrorCode.INVALID_SPLIT,
                    token=token,
                    total=str(explicit),
                )
        elif explicit != 1:
            raise _fail(
                f"Splits leaving {token} sum to {explicit}, expected 1",
                ErrorCode.INVALID_SPLIT,
                token=token,
                total=str(explicit),
            )
        last = indices[-1]
        splits[last] = Decimal("0")
        for i in indices[:-1]:
            if split_to_uint24(splits[i]) == 0:
                raise _fail(
                    f"Split {splits[i]} leaving {token} rounds to zero",
                    ErrorCode.INVALID_SPLIT,
                    token=token,
                    split=str(splits[i]),
                )
    return splits, any_split


def validate_path(hops: Sequence[Hop], token_in: str, token_out: str, cyclic: bool) -> None:
    """Check that the hops, run in order, route token_in to token_out."""
    available = {token_in}
    consumed = set()
    produced = set()
    shared_produced = False

    for index, hop in enumerate(hops):
        if hop.token_in not in available:
            raise _fail(
                f"Hop {index} consumes {hop.token_in}, which is not reachable at that point",
                ErrorCode.UNDECOMPOSABLE_GRAPH,
                hop=index,
                token=hop.token_in,
            )
        if cyclic:
            if hop.token_in == token_in and shared_produced:
                raise _fail(
                    f"Hop {index} spends {token_in} after the cycle closed",
                    ErrorCode.UNDECOMPOSABLE_GRAPH,
                    hop=index,
                )
        else:
            if hop.token_in == token_out:
                raise _fail(
                    f"Hop {index} consumes the output token {token_out}",
                    ErrorCode.UNDECOMPOSABLE_GRAPH,
                    hop=index,
                )
            if hop.token_out == token_in:
                raise _fail(
                    f"Hop {index} produces the input token {token_in} in a non-cyclic trade",
                    ErrorCode.UNDECOMPOSABLE_GRAPH,
                    hop=index,
                )
        consumed.add(hop.token_in)

        if cyclic and hop.token_out == token_in:
            shared_produced = True
        else:
            if hop.token_out in consumed:
                raise _fail(
                    f"Hop {index} produces {hop.token_out} after it was already spent",
                    ErrorCode.UNDECOMPOSABLE_GRAPH,
                    hop=index,
                    token=hop.token_out,
                )
            produced.add(hop.token_out)
            available.add(hop.token_out)

    final = token_in if cyclic else token_out
    if (cyclic and not shared_produced) or (not cyclic and token_out not in produced):
        raise _fail(
            f"No hop produces the output token {final}",
            ErrorCode.UNDECOMPOSABLE_GRAPH,
            token=final,
        )
    dangling = sorted(t for t in produced - consumed if t != final)
    if dangling:
        raise _fail(
            f"Tokens produced but never spent: {', '.join(dangling)}",
            ErrorCode.UNDECOMPOSABLE_GRAPH,
            tokens=dangling,
        )


# ============================================================================
# GROUPING
# ============================================================================

def group_hops(
    hops: Sequence[Hop],
    splits: Sequence[Decimal],
    groupable: Dict[str, bool],
    shared_token: Optional[str] = None,
) -> List[HopGroup]:
    """
    Batch consecutive unsplit hops on the same groupable venue.

    A hop joins the current group when it runs on the same venue, the
    venue is groupable, it consumes the group's output, and the token
    between them has no other producer or consumer.
    """
    consumers: Dict[str, int] = defaultdict(int)
    producers: Dict[str, int] = defaultdict(int)
    for hop in hops:
        consumers[hop.token_in] += 1
        producers[hop.token_out] += 1

    groups: List[List[int]] = []
    for index, hop in enumerate(hops):
        if groups:
            current = groups[-1]
            previous = hops[current[-1]]
            joint = previous.token_out
            if (
                groupable.get(hop.venue, False)
                and hop.venue == previous.venue
                and hop.token_in == joint
                and joint != shared_token
                and consumers[joint] == 1
                and producers[joint] == 1
            ):
                current.append(index)
                continue
        groups.append([index])

    return [
        HopGroup(hops=tuple(hops[i] for i in members), split=splits[members[0]])
        for members in groups
    ]


def index_tokens(groups: Sequence[HopGroup], token_in: str, token_out: str, cyclic: bool) -> Tuple[str, ...]:
    """Index 0 is the input; the output is last unless the trade is cyclic."""
    intermediates = set()
    for group in groups:
        intermediates.update((group.token_in, group.token_out))
    intermediates -= {token_in, token_out}
    if cyclic:
        return (token_in,) + tuple(sorted(intermediates))
    return (token_in,) + tuple(sorted(intermediates)) + (token_out,)


# ============================================================================
# SELECTOR
# ============================================================================

class StrategySelector:
    """
    Usage:
        selector = StrategySelector(encoders, wrapped_token)
        plan = selector.select(graph)
    """

    def __init__(
        self,
        encoders: VenueEncoderRegistry,
        wrapped_token: str,
        native_token: str = NATIVE_TOKEN,
    ):
        self.encoders = encoders
        self.wrapped_token = normalize_address(wrapped_token, "wrapped_token")
        self.native_token = normalize_address(native_token, "native_token")

    def select(self, graph: TradeGraph) -> StrategyPlan:
        if not graph.hops:
            raise _fail("Trade graph has no hops", ErrorCode.EMPTY_GRAPH)
        if graph.cyclic != graph.is_cyclic_path:
            raise _fail(
                "cyclic flag must be set exactly when token_in == token_out",
                ErrorCode.INVALID_INPUT,
                cyclic=graph.cyclic,
                token_in=graph.token_in,
                token_out=graph.token_out,
            )

        groupable = {hop.venue: self.encoders.get(hop.venue).groupable for hop in graph.hops}
        token_in, token_out = effective_tokens(graph, self.wrapped_token, self.native_token)

        validate_path(graph.hops, token_in, token_out, graph.cyclic)
        splits, any_split = _normalize_splits(graph.hops)

        groups = group_hops(
            graph.hops,
            splits,
            groupable,
            shared_token=token_in if graph.cyclic else None,
        )
        tokens = index_tokens(groups, token_in, token_out, graph.cyclic)
        if len(tokens) > MAX_UINT8:
            raise _fail(
                f"Trade touches {len(tokens)} tokens, limit is {MAX_UINT8}",
                ErrorCode.ELEMENT_TOO_LARGE,
                n_tokens=len(tokens),
            )
        position = {token: i for i, token in enumerate(tokens)}
        groups = [
            replace(g, token_in_index=position[g.token_in], token_out_index=position[g.token_out])
            for g in groups
        ]

        if graph.cyclic:
            strategy = Strategy.CYCLIC
        elif not any_split and len(groups) == 1:
            strategy = Strategy.SINGLE
        elif not any_split:
            strategy = Strategy.SEQUENTIAL
        else:
            strategy = Strategy.SPLIT

        logger.info(
            "Strategy selected",
            extra={"context": {
                "strategy": strategy.name,
                "hops": len(graph.hops),
                "groups": len(groups),
                "tokens": len(tokens),
            }},
        )

        return StrategyPlan(
            strategy=strategy,
            groups=tuple(groups),
            tokens=tokens,
            effective_token_in=token_in,
            effective_token_out=token_out,
            wrap=graph.wrap,
            unwrap=graph.unwrap,
            cyclic=graph.cyclic,
            is_split=any_split,
        )
