"""
dex/adapters/base.py - Venue encoder interface.

A venue encoder turns one hop (or one batched group of hops) into the
venue params bytes its executor decodes, and declares the funding
traits the transfer optimizer plans around.
"""

from dataclasses import dataclass
from typing import Sequence

from core.constants import ErrorCode
from core.exceptions import EncodingError
from core.models import Hop
from core.validators import address_to_bytes, normalize_address


@dataclass(frozen=True)
class EncodingContext:
    """Per-group facts decided by the optimizer."""
    receiver: str


class VenueEncoder:
    """
    Base venue encoder.

    Traits:
      groupable             consecutive legs can be batched into one call
      requires_in_transfer  the venue expects its input to be sent to it
      callback_constrained  the venue is paid inside its callback, so the
                            previous hop cannot prefund it
      requires_approval     the venue pulls from the dispatcher
    """

    venue: str = ""
    groupable = False
    requires_in_transfer = True
    callback_constrained = False
    requires_approval = False

    def __init__(self, executor_address: str, venue: str = ""):
        self.executor_address = normalize_address(executor_address, "executor")
        if venue:
            self.venue = venue

    @property
    def redirect_target(self) -> bool:
        """True when a previous hop may send its output straight to this venue."""
        return self.requires_in_transfer and not self.callback_constrained

    def approval_spender(self, hop: Hop) -> str:
        return hop.pool

    def encode(self, hops: Sequence[Hop], ctx: EncodingContext) -> bytes:
        if len(hops) != 1:
            raise EncodingError(
                f"{self.venue} cannot batch {len(hops)} hops",
                ErrorCode.UNDECOMPOSABLE_GRAPH,
                {"venue": self.venue, "hops": len(hops)},
            )
        return self.encode_hop(hops[0], ctx)

    def encode_hop(self, hop: Hop, ctx: EncodingContext) -> bytes:
        raise NotImplementedError

    def _require_attribute(self, hop: Hop, name: str):
        value = hop.attribute(name)
        if value is None:
            raise EncodingError(
                f"{self.venue} hop on {hop.pool} is missing attribute '{name}'",
                ErrorCode.INVALID_INPUT,
                {"venue": self.venue, "pool": hop.pool, "attribute": name},
            )
        return value


def zero_for_one(token_in: str, token_out: str) -> bytes:
    """1 when token_in sorts before token_out (token0 -> token1)."""
    return b"\x01" if address_to_bytes(token_in) < address_to_bytes(token_out) else b"\x00"
