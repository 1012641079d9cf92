"""
dex/adapters/ - Per-venue parameter encoders.

Adapters:
- uniswap_v2: V2 pairs (also sushiswap_v2)
- uniswap_v3: V3 pools (also pancakeswap_v3)
- uniswap_v4: V4 singleton, batched legs
- curve: pools that pull from the dispatcher
"""

from typing import Dict, Type

from dex.adapters.base import EncodingContext, VenueEncoder
from dex.adapters.curve import CurveEncoder
from dex.adapters.uniswap_v2 import UniswapV2Encoder
from dex.adapters.uniswap_v3 import UniswapV3Encoder
from dex.adapters.uniswap_v4 import UniswapV4Encoder

ENCODER_CLASSES: Dict[str, Type[VenueEncoder]] = {
    "uniswap_v2": UniswapV2Encoder,
    "sushiswap_v2": UniswapV2Encoder,
    "uniswap_v3": UniswapV3Encoder,
    "pancakeswap_v3": UniswapV3Encoder,
    "uniswap_v4": UniswapV4Encoder,
    "curve": CurveEncoder,
}

__all__ = [
    "ENCODER_CLASSES",
    "EncodingContext",
    "VenueEncoder",
    "CurveEncoder",
    "UniswapV2Encoder",
    "UniswapV3Encoder",
    "UniswapV4Encoder",
]
