# PATH: execution/state_machine.py
"""
Dispatcher run state machine.

DISPATCH STATE CONTRACT:
========================

States (DispatchState):
  IDLE              → run accepted, nothing decoded yet
  UNPACKING         → decoding header and body
  EXECUTING         → invoking executors hop by hop
  CALLBACK_PENDING  → a hop is in flight; its venue may call back once
  CALLBACK_HANDLED  → the in-flight hop's callback was settled
  RECONCILING       → checking global invariants
  DONE              → run committed
  REVERTED          → run failed, every change rolled back

Transitions:
  IDLE              → UNPACKING
  UNPACKING         → EXECUTING
  EXECUTING         → CALLBACK_PENDING   (hop with a callback starts)
  CALLBACK_PENDING  → CALLBACK_HANDLED   (venue called back)
  CALLBACK_PENDING  → EXECUTING          (hop returned)
  CALLBACK_HANDLED  → EXECUTING          (hop returned)
  EXECUTING         → RECONCILING
  RECONCILING       → DONE
  *                 → REVERTED           (from any non-terminal state)

========================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.constants import ErrorCode
from core.exceptions import TradewireError


class DispatchState(str, Enum):
    """Dispatcher run states."""
    IDLE = "IDLE"
    UNPACKING = "UNPACKING"
    EXECUTING = "EXECUTING"
    CALLBACK_PENDING = "CALLBACK_PENDING"
    CALLBACK_HANDLED = "CALLBACK_HANDLED"
    RECONCILING = "RECONCILING"
    DONE = "DONE"
    REVERTED = "REVERTED"


TERMINAL_STATES = frozenset([DispatchState.DONE, DispatchState.REVERTED])

VALID_TRANSITIONS: Dict[DispatchState, List[DispatchState]] = {
    DispatchState.IDLE: [DispatchState.UNPACKING, DispatchState.REVERTED],
    DispatchState.UNPACKING: [DispatchState.EXECUTING, DispatchState.REVERTED],
    DispatchState.EXECUTING: [
        DispatchState.CALLBACK_PENDING,
        DispatchState.RECONCILING,
        DispatchState.REVERTED,
    ],
    DispatchState.CALLBACK_PENDING: [
        DispatchState.CALLBACK_HANDLED,
        DispatchState.EXECUTING,
        DispatchState.REVERTED,
    ],
    DispatchState.CALLBACK_HANDLED: [DispatchState.EXECUTING, DispatchState.REVERTED],
    DispatchState.RECONCILING: [DispatchState.DONE, DispatchState.REVERTED],
    DispatchState.DONE: [],  # Terminal state
    DispatchState.REVERTED: [],  # Terminal state
}


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: DispatchState
    to_state: DispatchState
    timestamp: str = ""
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


class InvalidTransitionError(TradewireError):
    """Raised when an invalid state transition is attempted."""
    default_code = ErrorCode.INVALID_TRANSITION


@dataclass
class DispatchStateMachine:
    """
    State machine for one dispatcher run.

    Tracks current state and transition history.
    """
    run_id: str
    state: DispatchState = DispatchState.IDLE
    history: List[StateTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition_to(self, new_state: DispatchState) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(
        self,
        new_state: DispatchState,
        reason: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """
        Transition to a new state.

        Raises InvalidTransitionError if transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(self.state, [])]}",
                details={"from": self.state.value, "to": new_state.value},
            )

        transition = StateTransition(
            from_state=self.state,
            to_state=new_state,
            reason=reason,
            metadata=metadata or {},
        )
        self.history.append(transition)
        self.state = new_state
        return transition

    def revert(self, reason: str) -> StateTransition:
        """Move to REVERTED from any non-terminal state."""
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Cannot revert run in terminal state {self.state.value}",
                details={"from": self.state.value},
            )
        return self.transition_to(DispatchState.REVERTED, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "history": [
                {
                    "from": t.from_state.value,
                    "to": t.to_state.value,
                    "timestamp": t.timestamp,
                    "reason": t.reason,
                }
                for t in self.history
            ],
        }
