"""
execution/registry.py - Executor registry with activation delay.

REGISTRY CONTRACT
=================

- Only holders of EXECUTOR_SETTER_ROLE may register or remove executors.
  DEFAULT_ADMIN_ROLE grants and revokes roles.
- A registered executor becomes active at
  registration block + safety_window (safety_window >= 1), so it can
  never be used in the block it was registered in.
- The dispatcher checks require_active() at every hop, so a removal
  takes effect for the very next hop (including callbacks in flight).
- snapshot()/restore() let the dispatcher roll registry changes back
  together with the ledger.
=================
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from chains.state import ChainState
from core.constants import DEFAULT_SAFETY_WINDOW_BLOCKS, ErrorCode
from core.exceptions import AccessDeniedError, RegistryError
from core.logging import get_logger
from core.validators import normalize_address

logger = get_logger(__name__)

DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"
EXECUTOR_SETTER_ROLE = "EXECUTOR_SETTER_ROLE"


@dataclass
class ExecutorRecord:
    address: str
    approved: bool
    activation_block: Optional[int]

    def is_active(self, block: int) -> bool:
        return self.approved and self.activation_block is not None and block >= self.activation_block


@dataclass(frozen=True)
class RegistryEvent:
    """ExecutorRegistered / ExecutorRemoved log entry."""
    name: str
    address: str
    block: int
    activation_block: Optional[int] = None


class ExecutorRegistry:
    """
    Usage:
        registry = ExecutorRegistry(chain, admin)
        registry.grant_role(admin, EXECUTOR_SETTER_ROLE, operator)
        registry.register(operator, [executor_address])
        chain.mine(registry.safety_window)
    """

    def __init__(
        self,
        chain: ChainState,
        admin: str,
        safety_window: int = DEFAULT_SAFETY_WINDOW_BLOCKS,
    ):
        if safety_window < 1:
            raise RegistryError(
                f"safety_window must be at least 1 block, got {safety_window}",
                ErrorCode.INVALID_INPUT,
                {"safety_window": safety_window},
            )
        self.chain = chain
        self.safety_window = safety_window
        self._roles: Dict[str, Set[str]] = {
            DEFAULT_ADMIN_ROLE: {normalize_address(admin, "admin")},
            EXECUTOR_SETTER_ROLE: set(),
        }
        self._records: Dict[str, ExecutorRecord] = {}
        self.events: List[RegistryEvent] = []

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def has_role(self, role: str, account: str) -> bool:
        return normalize_address(account) in self._roles.get(role, set())

    def _require_role(self, role: str, account: str) -> None:
        if not self.has_role(role, account):
            raise AccessDeniedError(
                f"{account} lacks {role}",
                details={"role": role, "account": normalize_address(account)},
            )

    def grant_role(self, caller: str, role: str, account: str) -> None:
        self._require_role(DEFAULT_ADMIN_ROLE, caller)
        self._roles.setdefault(role, set()).add(normalize_address(account))

    def revoke_role(self, caller: str, role: str, account: str) -> None:
        self._require_role(DEFAULT_ADMIN_ROLE, caller)
        self._roles.get(role, set()).discard(normalize_address(account))

    # ------------------------------------------------------------------
    # Executors
    # ------------------------------------------------------------------

    def register(self, caller: str, addresses: Iterable[str]) -> List[ExecutorRecord]:
        self._require_role(EXECUTOR_SETTER_ROLE, caller)
        block = self.chain.block_number
        records = []
        for address in addresses:
            address = normalize_address(address, "executor")
            record = ExecutorRecord(address=address, approved=True, activation_block=block + self.safety_window)
            self._records[address] = record
            self.events.append(RegistryEvent("ExecutorRegistered", address, block, record.activation_block))
            logger.info(
                "Executor registered",
                extra={"context": {"executor": address, "activation_block": record.activation_block}},
            )
            records.append(record)
        return records

    def remove(self, caller: str, address: str) -> None:
        self._require_role(EXECUTOR_SETTER_ROLE, caller)
        address = normalize_address(address, "executor")
        record = self._records.get(address)
        if record is None:
            raise RegistryError(
                f"Executor {address} is not registered",
                ErrorCode.UNKNOWN_EXECUTOR,
                {"executor": address},
            )
        record.approved = False
        record.activation_block = None
        self.events.append(RegistryEvent("ExecutorRemoved", address, self.chain.block_number))
        logger.info("Executor removed", extra={"context": {"executor": address}})

    def get(self, address: str) -> Optional[ExecutorRecord]:
        return self._records.get(normalize_address(address, "executor"))

    def is_active(self, address: str, block: Optional[int] = None) -> bool:
        record = self.get(address)
        block = self.chain.block_number if block is None else block
        return record is not None and record.is_active(block)

    def require_active(self, address: str, block: Optional[int] = None) -> ExecutorRecord:
        """Return the record, or raise the reason the executor may not run."""
        block = self.chain.block_number if block is None else block
        record = self.get(address)
        if record is None:
            raise RegistryError(
                f"Unknown executor {address}",
                ErrorCode.UNKNOWN_EXECUTOR,
                {"executor": normalize_address(address)},
            )
        if not record.approved or record.activation_block is None:
            raise RegistryError(
                f"Executor {record.address} is not approved",
                ErrorCode.EXECUTOR_NOT_APPROVED,
                {"executor": record.address},
            )
        if block < record.activation_block:
            raise RegistryError(
                f"Executor {record.address} is active from block {record.activation_block}",
                ErrorCode.EXECUTOR_NOT_ACTIVE,
                {"executor": record.address, "block": block, "activation_block": record.activation_block},
            )
        return record

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "roles": copy.deepcopy(self._roles),
            "records": copy.deepcopy(self._records),
            "events": list(self.events),
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._roles = state["roles"]
        self._records = state["records"]
        self.events = state["events"]
