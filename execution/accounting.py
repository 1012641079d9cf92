# PATH: execution/accounting.py
"""
Running account of one dispatcher run.

Token slots follow the program's token indices (slot 0 is the effective
input). Each slot tracks:
- amounts:   everything that arrived at the slot (the base for splits)
- remaining: what arrived and is not yet spent
- consumed:  what hops spent from the slot

For cyclic runs output credited to slot 0 goes to a separate
accumulator, so that consumed[0] stays comparable with amount_in and
the net amount is accumulator - consumed[0].
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from core.exceptions import AmountConsumedMismatchError
from core.math import apply_split


@dataclass(frozen=True)
class HopRecord:
    """One executed hop."""
    index: int
    executor: str
    token_in: str
    token_out: str
    directive: str
    amount_in: int
    amount_out: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "executor": self.executor,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "directive": self.directive,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
        }


class RunningAccount:
    """Per-slot amounts for one run."""

    def __init__(self, amount_in: int, n_tokens: int, cyclic: bool = False):
        self.amount_in = amount_in
        self.cyclic = cyclic
        self.amounts: List[int] = [0] * n_tokens
        self.remaining: List[int] = [0] * n_tokens
        self.consumed: List[int] = [0] * n_tokens
        self.amounts[0] = amount_in
        self.remaining[0] = amount_in
        self.accumulator = 0
        self.hops: List[HopRecord] = []

    def share(self, index: int, split: int) -> int:
        """Amount a hop leaving slot `index` may spend (split 0 = all that is left)."""
        if split == 0:
            return self.remaining[index]
        amount = apply_split(self.amounts[index], split)
        if amount > self.remaining[index]:
            raise AmountConsumedMismatchError(
                consumed=self.consumed[index] + amount,
                expected=self.amounts[index],
                details={"slot": index},
            )
        return amount

    def consume(self, index: int, amount: int) -> None:
        self.remaining[index] -= amount
        self.consumed[index] += amount

    def credit(self, index: int, amount: int) -> None:
        if self.cyclic and index == 0:
            self.accumulator += amount
            return
        self.amounts[index] += amount
        self.remaining[index] += amount

    def record(self, hop: HopRecord) -> None:
        self.hops.append(hop)

    @property
    def total_consumed(self) -> int:
        return self.consumed[0]

    @property
    def net_amount(self) -> int:
        """Cyclic profit (negative for a loss); meaningless for non-cyclic runs."""
        return self.accumulator - self.consumed[0]

    def unspent(self, exclude: int = -1) -> Dict[int, int]:
        """Slots still holding funds, other than `exclude`."""
        return {
            index: amount
            for index, amount in enumerate(self.remaining)
            if amount and index != exclude
        }

    def get_summary(self) -> Dict[str, Any]:
        summary = {
            "amount_in": str(self.amount_in),
            "consumed": str(self.total_consumed),
            "hops": [h.to_dict() for h in self.hops],
        }
        if self.cyclic:
            summary["accumulator"] = str(self.accumulator)
            summary["net_amount"] = str(self.net_amount)
        return summary
