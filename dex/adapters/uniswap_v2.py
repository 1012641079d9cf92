"""
dex/adapters/uniswap_v2.py - Uniswap V2 style pairs (and forks).

params: pool(20) | receiver(20) | zero_for_one(1)
"""

from core.models import Hop
from core.validators import address_to_bytes
from dex.adapters.base import EncodingContext, VenueEncoder, zero_for_one


class UniswapV2Encoder(VenueEncoder):
    venue = "uniswap_v2"

    def encode_hop(self, hop: Hop, ctx: EncodingContext) -> bytes:
        return (
            address_to_bytes(hop.pool)
            + address_to_bytes(ctx.receiver)
            + zero_for_one(hop.token_in, hop.token_out)
        )
