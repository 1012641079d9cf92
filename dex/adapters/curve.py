"""
dex/adapters/curve.py - Curve style pools.

The pool pulls its input from the dispatcher with transfer_from, so the
dispatcher must have approved it. Coin indices come from the hop's
`coins` attribute (ordered pool coin list) or explicit `i` / `j`.

params: pool(20) | i(1) | j(1) | receiver(20)
"""

from core.constants import ErrorCode, MAX_UINT8
from core.exceptions import EncodingError
from core.models import Hop
from core.validators import address_to_bytes, normalize_address
from dex.adapters.base import EncodingContext, VenueEncoder


class CurveEncoder(VenueEncoder):
    venue = "curve"
    requires_in_transfer = False
    requires_approval = True

    def coin_indices(self, hop: Hop) -> tuple:
        coins = hop.attribute("coins")
        if coins is not None:
            normalized = [normalize_address(c, "coin") for c in coins]
            try:
                return normalized.index(hop.token_in), normalized.index(hop.token_out)
            except ValueError:
                raise EncodingError(
                    f"curve pool {hop.pool} does not list {hop.token_in} and {hop.token_out}",
                    ErrorCode.INVALID_INPUT,
                    {"pool": hop.pool, "coins": normalized},
                )
        return int(self._require_attribute(hop, "i")), int(self._require_attribute(hop, "j"))

    def encode_hop(self, hop: Hop, ctx: EncodingContext) -> bytes:
        i, j = self.coin_indices(hop)
        if not (0 <= i <= MAX_UINT8 and 0 <= j <= MAX_UINT8):
            raise EncodingError(
                f"curve coin index out of range: i={i}, j={j}",
                ErrorCode.INVALID_INPUT,
                {"pool": hop.pool, "i": i, "j": j},
            )
        return address_to_bytes(hop.pool) + bytes([i, j]) + address_to_bytes(ctx.receiver)
