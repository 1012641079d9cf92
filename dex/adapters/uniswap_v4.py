"""
dex/adapters/uniswap_v4.py - Uniswap V4 singleton pools.

Consecutive V4 legs settle inside one unlock, so they are batched into
a single hop unit. The receiver appears once, before the first leg;
the remaining legs follow as a PLE array.

params: receiver(20) | leg | PLE[leg]
leg:    token_out(20) | pool(20) | fee(3) | tick_spacing(3)
"""

from typing import Sequence

from core.constants import ErrorCode
from core.exceptions import EncodingError
from core.math import to_uint_bytes
from core.models import Hop
from core.validators import address_to_bytes
from dex.adapters.base import EncodingContext, VenueEncoder
from dex.adapters.uniswap_v3 import encode_fee
from encoding.ple import ple_encode


class UniswapV4Encoder(VenueEncoder):
    venue = "uniswap_v4"
    groupable = True
    callback_constrained = True

    def encode_leg(self, hop: Hop) -> bytes:
        fee = self._require_attribute(hop, "fee")
        tick_spacing = self._require_attribute(hop, "tick_spacing")
        try:
            tick_bytes = to_uint_bytes(int(tick_spacing), 3)
        except (TypeError, ValueError):
            raise EncodingError(
                f"{self.venue} hop on {hop.pool} has invalid tick_spacing {tick_spacing!r}",
                ErrorCode.INVALID_INPUT,
                {"venue": self.venue, "pool": hop.pool, "tick_spacing": str(tick_spacing)},
            )
        return (
            address_to_bytes(hop.token_out)
            + address_to_bytes(hop.pool)
            + encode_fee(self.venue, hop, fee)
            + tick_bytes
        )

    def encode(self, hops: Sequence[Hop], ctx: EncodingContext) -> bytes:
        if not hops:
            raise EncodingError(f"{self.venue} group is empty", ErrorCode.EMPTY_GRAPH)
        first, rest = hops[0], hops[1:]
        return (
            address_to_bytes(ctx.receiver)
            + self.encode_leg(first)
            + ple_encode(self.encode_leg(h) for h in rest)
        )

    def encode_hop(self, hop: Hop, ctx: EncodingContext) -> bytes:
        return self.encode([hop], ctx)
