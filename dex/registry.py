"""
dex/registry.py - Venue encoders by protocol system name.

Built from the chain's executors config: a venue is supported when it
has both an encoder implementation and a configured executor address.
"""

from typing import Dict, List, Optional

from config import load_executor_addresses
from core.constants import ErrorCode
from core.exceptions import EncodingError
from core.logging import get_logger
from dex.adapters import ENCODER_CLASSES, VenueEncoder

logger = get_logger(__name__)


class VenueEncoderRegistry:
    """
    Usage:
        registry = VenueEncoderRegistry.from_config("ethereum")
        encoder = registry.get("uniswap_v3")
    """

    def __init__(self, executor_addresses: Dict[str, str]):
        self._encoders: Dict[str, VenueEncoder] = {}
        for venue, address in executor_addresses.items():
            cls = ENCODER_CLASSES.get(venue)
            if cls is None:
                logger.warning(
                    "Executor configured for venue without encoder",
                    extra={"context": {"venue": venue}},
                )
                continue
            self._encoders[venue] = cls(address, venue=venue)

    @classmethod
    def from_config(cls, chain_key: str, path: Optional[str] = None) -> "VenueEncoderRegistry":
        return cls(load_executor_addresses(chain_key, path))

    @property
    def venues(self) -> List[str]:
        return sorted(self._encoders)

    def get(self, venue: str) -> VenueEncoder:
        encoder = self._encoders.get(venue)
        if encoder is None:
            raise EncodingError(
                f"Unsupported venue: {venue}",
                ErrorCode.UNSUPPORTED_VENUE,
                {"venue": venue, "supported": self.venues},
            )
        return encoder

    def __contains__(self, venue: str) -> bool:
        return venue in self._encoders
