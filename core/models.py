# PATH: core/models.py
"""
Core data models for TRADEWIRE.

TRADE GRAPH CONTRACT
====================

A TradeGraph ("solution") is an immutable description of a trade:

  sender, receiver        who pays / who gets paid
  token_in, amount_in     what is sold (exact input)
  token_out, min_output   what is bought and the minimum acceptable amount
  hops                    ordered tuple of Hop, in execution order
  cyclic                  must be set explicitly when token_in == token_out
  native_action           WRAP (sell native) / UNWRAP (buy native) / None

A Hop is one leg against one venue. `split` is the fraction of the
hop's input token balance it consumes:
  - 0 means "whatever is left" (the remainder); it must be the last
    sibling leaving that token
  - explicit siblings may also sum to exactly 1

Both are frozen. Use HopBuilder / TradeGraphBuilder (or build_graph) to
construct them; there is no way to mutate one after construction.
====================
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from core.constants import ErrorCode, NativeAction
from core.exceptions import EncodingError
from core.validators import normalize_address, validate_amount, validate_split


def _freeze(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


def _parse_user_data(value: Union[None, str, bytes]) -> Optional[bytes]:
    if value is None or isinstance(value, bytes):
        return value
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise EncodingError(
            f"Invalid user_data hex: {value!r}",
            ErrorCode.INVALID_INPUT,
            {"field": "user_data"},
        )


# ============================================================================
# HOP
# ============================================================================

@dataclass(frozen=True)
class Hop:
    """One atomic trade leg against one liquidity venue."""
    venue: str
    pool: str
    token_in: str
    token_out: str
    split: Decimal = Decimal("0")
    user_data: Optional[bytes] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "pool", normalize_address(self.pool, "pool"))
        object.__setattr__(self, "token_in", normalize_address(self.token_in, "token_in"))
        object.__setattr__(self, "token_out", normalize_address(self.token_out, "token_out"))
        object.__setattr__(self, "split", validate_split(self.split))
        object.__setattr__(self, "attributes", _freeze(self.attributes))
        if self.token_in == self.token_out:
            raise EncodingError(
                f"Hop on {self.venue} swaps {self.token_in} for itself",
                ErrorCode.INVALID_INPUT,
                {"field": "token_out", "venue": self.venue},
            )

    @property
    def is_split(self) -> bool:
        return self.split != 0

    def attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "pool": self.pool,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "split": str(self.split),
            "user_data": "0x" + self.user_data.hex() if self.user_data is not None else None,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Hop":
        return cls(
            venue=data["venue"],
            pool=data["pool"],
            token_in=data["token_in"],
            token_out=data["token_out"],
            split=Decimal(str(data.get("split", "0"))),
            user_data=_parse_user_data(data.get("user_data")),
            attributes=data.get("attributes") or {},
        )


class HopBuilder:
    """
    Fluent builder for Hop.

    Usage:
        hop = (HopBuilder("uniswap_v2", pool, usdc, dai)
               .split("0.6")
               .attribute("fee", 3000)
               .build())
    """

    def __init__(self, venue: str, pool: str, token_in: str, token_out: str):
        self._fields: Dict[str, Any] = {
            "venue": venue,
            "pool": pool,
            "token_in": token_in,
            "token_out": token_out,
        }
        self._attributes: Dict[str, Any] = {}

    def split(self, value: Union[str, int, Decimal]) -> "HopBuilder":
        self._fields["split"] = Decimal(str(value))
        return self

    def user_data(self, value: Union[str, bytes]) -> "HopBuilder":
        self._fields["user_data"] = _parse_user_data(value)
        return self

    def attribute(self, name: str, value: Any) -> "HopBuilder":
        self._attributes[name] = value
        return self

    def build(self) -> Hop:
        return Hop(attributes=self._attributes, **self._fields)


# ============================================================================
# TRADE GRAPH
# ============================================================================

@dataclass(frozen=True)
class TradeGraph:
    """Immutable description of a desired trade."""
    sender: str
    receiver: str
    token_in: str
    token_out: str
    amount_in: int
    min_output: int
    hops: Tuple[Hop, ...]
    cyclic: bool = False
    native_action: Optional[NativeAction] = None

    def __post_init__(self):
        for name in ("sender", "receiver", "token_in", "token_out"):
            object.__setattr__(self, name, normalize_address(getattr(self, name), name))
        object.__setattr__(self, "amount_in", validate_amount(self.amount_in, "amount_in"))
        object.__setattr__(self, "min_output", validate_amount(self.min_output, "min_output"))
        object.__setattr__(self, "hops", tuple(self.hops))
        if self.native_action is not None:
            object.__setattr__(self, "native_action", NativeAction(self.native_action))

    @property
    def wrap(self) -> bool:
        return self.native_action == NativeAction.WRAP

    @property
    def unwrap(self) -> bool:
        return self.native_action == NativeAction.UNWRAP

    @property
    def is_cyclic_path(self) -> bool:
        """True when the declared tokens close a loop (regardless of flag)."""
        return self.token_in == self.token_out

    def with_hops(self, hops: Iterable[Hop]) -> "TradeGraph":
        return replace(self, hops=tuple(hops))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "receiver": self.receiver,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "min_output": str(self.min_output),
            "cyclic": self.cyclic,
            "native_action": self.native_action.value if self.native_action else None,
            "hops": [hop.to_dict() for hop in self.hops],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TradeGraph":
        missing = [
            key for key in ("sender", "receiver", "token_in", "token_out", "amount_in", "hops")
            if key not in data
        ]
        if missing:
            raise EncodingError(
                f"Trade graph is missing fields: {', '.join(missing)}",
                ErrorCode.INVALID_INPUT,
                {"missing": missing},
            )
        return cls(
            sender=data["sender"],
            receiver=data["receiver"],
            token_in=data["token_in"],
            token_out=data["token_out"],
            amount_in=int(str(data["amount_in"])),
            min_output=int(str(data.get("min_output", "0"))),
            hops=tuple(Hop.from_dict(h) for h in data["hops"]),
            cyclic=bool(data.get("cyclic", False)),
            native_action=data.get("native_action"),
        )


class TradeGraphBuilder:
    """
    Fluent builder for TradeGraph.

    Usage:
        graph = (TradeGraphBuilder(usdc, dai, 1000)
                 .sender(alice).receiver(alice)
                 .min_output(990)
                 .hop(hop)
                 .build())
    """

    def __init__(self, token_in: str, token_out: str, amount_in: int):
        self._token_in = token_in
        self._token_out = token_out
        self._amount_in = amount_in
        self._sender: Optional[str] = None
        self._receiver: Optional[str] = None
        self._min_output = 0
        self._hops: List[Hop] = []
        self._cyclic = False
        self._native_action: Optional[NativeAction] = None

    def sender(self, address: str) -> "TradeGraphBuilder":
        self._sender = address
        return self

    def receiver(self, address: str) -> "TradeGraphBuilder":
        self._receiver = address
        return self

    def min_output(self, amount: int) -> "TradeGraphBuilder":
        self._min_output = amount
        return self

    def hop(self, hop: Hop) -> "TradeGraphBuilder":
        self._hops.append(hop)
        return self

    def hops(self, hops: Iterable[Hop]) -> "TradeGraphBuilder":
        self._hops.extend(hops)
        return self

    def cyclic(self, flag: bool = True) -> "TradeGraphBuilder":
        self._cyclic = flag
        return self

    def native_action(self, action: Optional[NativeAction]) -> "TradeGraphBuilder":
        self._native_action = action
        return self

    def build(self) -> TradeGraph:
        if self._sender is None:
            raise EncodingError("Trade graph needs a sender", ErrorCode.INVALID_INPUT, {"field": "sender"})
        return TradeGraph(
            sender=self._sender,
            receiver=self._receiver or self._sender,
            token_in=self._token_in,
            token_out=self._token_out,
            amount_in=self._amount_in,
            min_output=self._min_output,
            hops=tuple(self._hops),
            cyclic=self._cyclic,
            native_action=self._native_action,
        )


def build_graph(
    tokens: Sequence[str],
    hops: Iterable[Hop],
    min_output: int,
    *,
    amount_in: int,
    sender: str,
    receiver: Optional[str] = None,
    native_action: Optional[NativeAction] = None,
) -> TradeGraph:
    """
    Build a TradeGraph from (token_in, token_out), hops and a minimum output.

    The cyclic flag is derived from the tokens: a loop back to the input
    token is flagged, anything else is not.
    """
    if len(tokens) != 2:
        raise EncodingError(
            f"Expected (token_in, token_out), got {len(tokens)} tokens",
            ErrorCode.INVALID_INPUT,
            {"field": "tokens"},
        )
    token_in, token_out = tokens
    return (
        TradeGraphBuilder(token_in, token_out, amount_in)
        .sender(sender)
        .receiver(receiver or sender)
        .min_output(min_output)
        .hops(hops)
        .cyclic(normalize_address(token_in) == normalize_address(token_out))
        .native_action(native_action)
        .build()
    )
