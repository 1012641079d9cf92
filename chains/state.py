"""
chains/state.py - In-memory ledger with transactional rollback.

Models the slice of chain state the dispatcher touches:
- ERC-20 style balances and allowances (native currency under NATIVE_TOKEN)
- wrap / unwrap of the native currency
- block number
- deployed contracts (simulated venues) by address

atomic() snapshots everything and restores it if the body raises, so a
failed run leaves no observable change.
"""

import copy
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from core.constants import MAX_UINT256, NATIVE_TOKEN
from core.exceptions import AuthorizationError, InsufficientBalanceError
from core.logging import get_logger
from core.validators import normalize_address

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferRecord:
    """One token movement, in the order it happened."""
    token: str
    sender: str
    recipient: str
    amount: int


class ChainState:
    """
    Ledger for one chain.

    All addresses are normalized on the way in, so callers may pass
    checksummed or lowercase forms interchangeably.
    """

    def __init__(
        self,
        chain_id: int,
        wrapped_token: str,
        native_token: str = NATIVE_TOKEN,
        block_number: int = 1,
    ):
        self.chain_id = chain_id
        self.native_token = normalize_address(native_token, "native_token")
        self.wrapped_token = normalize_address(wrapped_token, "wrapped_token")
        self.block_number = block_number
        self._balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._contracts: Dict[str, Any] = {}
        self.transfer_log: List[TransferRecord] = []

    # ------------------------------------------------------------------
    # Blocks and contracts
    # ------------------------------------------------------------------

    def mine(self, blocks: int = 1) -> int:
        """Advance the chain by `blocks` blocks."""
        self.block_number += blocks
        return self.block_number

    def deploy(self, address: str, contract: Any) -> Any:
        self._contracts[normalize_address(address)] = contract
        return contract

    def contract_at(self, address: str) -> Optional[Any]:
        return self._contracts.get(normalize_address(address))

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def balance_of(self, token: str, account: str) -> int:
        return self._balances[normalize_address(token)][normalize_address(account)]

    def mint(self, token: str, account: str, amount: int) -> None:
        self._balances[normalize_address(token)][normalize_address(account)] += amount

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        token = normalize_address(token)
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        balance = self._balances[token][sender]
        if balance < amount:
            raise InsufficientBalanceError(
                f"Insufficient balance of {token} at {sender}",
                details={"token": token, "account": sender, "balance": balance, "required": amount},
            )
        self._balances[token][sender] = balance - amount
        self._balances[token][recipient] += amount
        self.transfer_log.append(TransferRecord(token, sender, recipient, amount))

    # ------------------------------------------------------------------
    # Allowances
    # ------------------------------------------------------------------

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
        self._allowances[key] = amount

    def allowance(self, token: str, owner: str, spender: str) -> int:
        key = (normalize_address(token), normalize_address(owner), normalize_address(spender))
        return self._allowances.get(key, 0)

    def transfer_from(self, token: str, spender: str, owner: str, recipient: str, amount: int) -> None:
        """Move `amount` from `owner` to `recipient` using `spender`'s allowance."""
        current = self.allowance(token, owner, spender)
        if current < amount:
            raise AuthorizationError(
                f"Allowance of {spender} over {owner}'s {token} is {current}, needs {amount}",
                details={
                    "token": normalize_address(token),
                    "owner": normalize_address(owner),
                    "spender": normalize_address(spender),
                    "allowance": current,
                    "required": amount,
                },
            )
        self.transfer(token, owner, recipient, amount)
        if current != MAX_UINT256:
            self.approve(token, owner, spender, current - amount)

    # ------------------------------------------------------------------
    # Native currency
    # ------------------------------------------------------------------

    def wrap(self, account: str, amount: int) -> None:
        """Convert native currency held by `account` into the wrapped token."""
        self.transfer(self.native_token, account, self.wrapped_token, amount)
        self.mint(self.wrapped_token, account, amount)

    def unwrap(self, account: str, amount: int) -> None:
        """Burn wrapped token held by `account` and release native currency."""
        account = normalize_address(account)
        balance = self._balances[self.wrapped_token][account]
        if balance < amount:
            raise InsufficientBalanceError(
                f"Cannot unwrap {amount}, {account} holds {balance}",
                details={"account": account, "balance": balance, "required": amount},
            )
        self._balances[self.wrapped_token][account] = balance - amount
        self.transfer(self.native_token, self.wrapped_token, account, amount)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        # Contracts hold a reference back to this ledger, so they are kept
        # by identity and asked for their own state instead of deep-copied.
        return {
            "block_number": self.block_number,
            "balances": copy.deepcopy(self._balances),
            "allowances": dict(self._allowances),
            "contracts": dict(self._contracts),
            "contract_states": {
                address: contract.snapshot()
                for address, contract in self._contracts.items()
                if hasattr(contract, "snapshot")
            },
            "transfer_log": list(self.transfer_log),
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.block_number = snapshot["block_number"]
        self._balances = snapshot["balances"]
        self._allowances = snapshot["allowances"]
        self._contracts = snapshot["contracts"]
        for address, state in snapshot["contract_states"].items():
            self._contracts[address].restore(state)
        self.transfer_log = snapshot["transfer_log"]

    @contextmanager
    def atomic(self, *participants: Any) -> Iterator["ChainState"]:
        """
        Run the body as one transaction.

        `participants` are extra objects exposing snapshot()/restore()
        (e.g. the executor registry) that roll back together with the ledger.
        """
        saved = self.snapshot()
        saved_participants = [p.snapshot() for p in participants]
        try:
            yield self
        except BaseException:
            self.restore(saved)
            for participant, state in zip(participants, saved_participants):
                participant.restore(state)
            logger.debug(
                "Rolled back ledger",
                extra={"context": {"block_number": self.block_number}},
            )
            raise
