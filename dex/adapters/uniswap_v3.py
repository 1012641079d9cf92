"""
dex/adapters/uniswap_v3.py - Uniswap V3 style pools (and forks).

Pools pay out first and collect the input in uniswapV3SwapCallback, so
a previous hop can never prefund them.

params: pool(20) | fee(3) | receiver(20) | zero_for_one(1)
"""

from core.constants import ErrorCode
from core.exceptions import EncodingError
from core.math import to_uint_bytes
from core.models import Hop
from core.validators import address_to_bytes
from dex.adapters.base import EncodingContext, VenueEncoder, zero_for_one


def encode_fee(venue: str, hop: Hop, value) -> bytes:
    try:
        return to_uint_bytes(int(value), 3)
    except (TypeError, ValueError):
        raise EncodingError(
            f"{venue} hop on {hop.pool} has invalid fee {value!r}",
            ErrorCode.INVALID_INPUT,
            {"venue": venue, "pool": hop.pool, "fee": str(value)},
        )


class UniswapV3Encoder(VenueEncoder):
    venue = "uniswap_v3"
    callback_constrained = True

    def encode_hop(self, hop: Hop, ctx: EncodingContext) -> bytes:
        fee = self._require_attribute(hop, "fee")
        return (
            address_to_bytes(hop.pool)
            + encode_fee(self.venue, hop, fee)
            + address_to_bytes(ctx.receiver)
            + zero_for_one(hop.token_in, hop.token_out)
        )
