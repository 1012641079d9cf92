"""
strategy/approvals.py - Allowance lookups for the transfer optimizer.

Two questions need live allowances:
- does the dispatcher still need to approve a venue that pulls from it
  (unit flag "approval needed")
- has the caller authorized the dispatcher to pull the input amount

Allowances come from an AllowanceSource: the in-memory ledger when
simulating, or a snapshot prefetched over JSON-RPC with
fetch_allowances().
"""

import asyncio
from typing import Dict, Iterable, Optional, Protocol, Tuple

from chains.providers import RPCProvider
from chains.state import ChainState
from core.constants import APPROVAL_THRESHOLD, ErrorCode
from core.exceptions import InfraError
from core.logging import get_logger
from core.validators import normalize_address

logger = get_logger(__name__)

# keccak256("allowance(address,address)")[:4]
SELECTOR_ALLOWANCE = "dd62ed3e"

AllowanceKey = Tuple[str, str, str]


class AllowanceSource(Protocol):
    def allowance(self, token: str, owner: str, spender: str) -> int:
        ...


class LedgerAllowanceSource:
    """Reads allowances straight from a ChainState."""

    def __init__(self, chain: ChainState):
        self.chain = chain

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.chain.allowance(token, owner, spender)


class StaticAllowanceSource:
    """Fixed allowances, e.g. prefetched over RPC. Unknown pairs read as 0."""

    def __init__(self, allowances: Optional[Dict[AllowanceKey, int]] = None):
        self._allowances: Dict[AllowanceKey, int] = {}
        for (token, owner, spender), amount in (allowances or {}).items():
            self.set(token, owner, spender, amount)

    def set(self, token: str, owner: str, spender: str, amount: int) -> None:
        key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
        self._allowances[key] = amount

    def allowance(self, token: str, owner: str, spender: str) -> int:
        key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
        return self._allowances.get(key, 0)


class ApprovalsManager:
    """Answers approval and authorization questions for one dispatcher."""

    def __init__(self, source: AllowanceSource, dispatcher: str):
        self.source = source
        self.dispatcher = normalize_address(dispatcher, "dispatcher")

    def approval_needed(self, token: str, spender: str) -> bool:
        """True when the dispatcher's allowance to `spender` is below the unlimited threshold."""
        return self.source.allowance(token, self.dispatcher, spender) < APPROVAL_THRESHOLD

    def authorized_amount(self, token: str, owner: str) -> int:
        """How much of `token` the dispatcher may pull from `owner`."""
        return self.source.allowance(token, owner, self.dispatcher)


def encode_allowance_call(owner: str, spender: str) -> str:
    """Calldata for ERC-20 allowance(owner, spender)."""
    owner_padded = normalize_address(owner)[2:].zfill(64)
    spender_padded = normalize_address(spender)[2:].zfill(64)
    return f"0x{SELECTOR_ALLOWANCE}{owner_padded}{spender_padded}"


def decode_uint256(hex_result: Optional[str]) -> int:
    if not hex_result or hex_result == "0x":
        raise InfraError(
            "Empty allowance response",
            ErrorCode.INFRA_RPC_ERROR,
            {"raw": hex_result},
        )
    data = hex_result[2:] if hex_result.startswith("0x") else hex_result
    if len(data) < 64:
        raise InfraError(
            f"Allowance response too short: {len(data)} chars",
            ErrorCode.INFRA_RPC_ERROR,
            {"raw": hex_result[:100]},
        )
    return int(data[:64], 16)


async def fetch_allowances(
    provider: RPCProvider,
    queries: Iterable[AllowanceKey],
) -> StaticAllowanceSource:
    """
    Prefetch allowances for (token, owner, spender) triples.

    Calls are issued concurrently; any failure raises InfraError.
    """
    keys = [
        (normalize_address(t), normalize_address(o), normalize_address(s))
        for t, o, s in queries
    ]
    results = await asyncio.gather(*(
        provider.eth_call(token, encode_allowance_call(owner, spender))
        for token, owner, spender in keys
    ))
    source = StaticAllowanceSource()
    for key, raw in zip(keys, results):
        source.set(*key, decode_uint256(raw))

    logger.debug(
        "Prefetched allowances",
        extra={"context": {"count": len(keys), "chain_id": provider.chain_id}},
    )
    return source
