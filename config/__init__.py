# PATH: config/__init__.py
"""
Configuration loading utilities for TRADEWIRE.

Files:
- chains.yaml     chain id, native / wrapped token, dispatcher, safety window
- executors.yaml  chain -> venue -> executor address

Environment overrides (also read from .env):
- TRADEWIRE_EXECUTORS_FILE      path to an alternative executors.yaml
- TRADEWIRE_DISPATCHER_ADDRESS  dispatcher address for every chain
- RPC_URL                       single RPC endpoint replacing rpc_urls
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from core.constants import DEFAULT_SAFETY_WINDOW_BLOCKS, NATIVE_TOKEN, ErrorCode
from core.exceptions import TradewireError
from core.validators import normalize_address

load_dotenv()

CONFIG_DIR = Path(__file__).parent


def load_yaml(filename: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory, or an absolute path

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(filename)
    if not filepath.is_absolute():
        filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass
class ChainConfig:
    """Per-chain settings the encoder and dispatcher need."""
    chain_key: str
    chain_id: int
    wrapped_token: str
    dispatcher_address: str
    native_token: str = NATIVE_TOKEN
    safety_window_blocks: int = DEFAULT_SAFETY_WINDOW_BLOCKS
    rpc_urls: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.wrapped_token = normalize_address(self.wrapped_token, "wrapped_token")
        self.dispatcher_address = normalize_address(self.dispatcher_address, "dispatcher_address")
        self.native_token = normalize_address(self.native_token, "native_token")
        if self.safety_window_blocks < 1:
            raise TradewireError(
                f"safety_window_blocks must be at least 1, got {self.safety_window_blocks}",
                ErrorCode.INVALID_INPUT,
                {"chain": self.chain_key},
            )

    @classmethod
    def from_dict(cls, chain_key: str, data: Dict[str, Any]) -> "ChainConfig":
        return cls(
            chain_key=chain_key,
            chain_id=int(data["chain_id"]),
            wrapped_token=data["wrapped_token"],
            dispatcher_address=data["dispatcher_address"],
            native_token=data.get("native_token", NATIVE_TOKEN),
            safety_window_blocks=int(data.get("safety_window_blocks", DEFAULT_SAFETY_WINDOW_BLOCKS)),
            rpc_urls=list(data.get("rpc_urls") or []),
        )


def load_chains() -> Dict[str, Any]:
    """Load chains configuration."""
    return load_yaml("chains.yaml")


def load_chain_config(chain_key: str, chains: Optional[Dict[str, Any]] = None) -> ChainConfig:
    """
    Get configuration for a specific chain, with env overrides applied.

    Args:
        chain_key: Chain identifier (e.g., 'ethereum')
        chains: Pre-loaded chains mapping (defaults to chains.yaml)
    """
    chains = chains if chains is not None else load_chains()
    if chain_key not in chains:
        raise KeyError(f"Unknown chain: {chain_key}")
    data = dict(chains[chain_key])

    dispatcher_override = os.getenv("TRADEWIRE_DISPATCHER_ADDRESS")
    if dispatcher_override:
        data["dispatcher_address"] = dispatcher_override
    rpc_override = os.getenv("RPC_URL")
    if rpc_override:
        data["rpc_urls"] = [rpc_override]

    return ChainConfig.from_dict(chain_key, data)


def load_executor_addresses(chain_key: str, path: Optional[str] = None) -> Dict[str, str]:
    """
    Venue -> executor address for a chain.

    Args:
        chain_key: Chain identifier
        path: Explicit executors file; falls back to TRADEWIRE_EXECUTORS_FILE,
              then to config/executors.yaml
    """
    source = path or os.getenv("TRADEWIRE_EXECUTORS_FILE") or "executors.yaml"
    executors = load_yaml(source)
    if chain_key not in executors:
        raise KeyError(f"No executors configured for chain: {chain_key}")
    return {
        venue: normalize_address(address, f"executor[{venue}]")
        for venue, address in (executors[chain_key] or {}).items()
    }
