# PATH: execution/__init__.py
"""
TRADEWIRE execution layer.

- dispatcher: runs encoded programs against the ledger
- executors: per-venue executors (delegate semantics)
- registry: executor registry with activation delay
- state_machine: dispatcher run states
- accounting: running account of a run
"""

from execution.accounting import HopRecord, RunningAccount
from execution.dispatcher import DispatchResult, Dispatcher
from execution.executors import (
    CurveExecutor,
    HopContext,
    UniswapV2Executor,
    UniswapV3Executor,
    UniswapV4Executor,
    VenueExecutor,
    build_executors,
)
from execution.registry import (
    DEFAULT_ADMIN_ROLE,
    EXECUTOR_SETTER_ROLE,
    ExecutorRecord,
    ExecutorRegistry,
)
from execution.state_machine import (
    DispatchState,
    DispatchStateMachine,
    InvalidTransitionError,
    StateTransition,
    VALID_TRANSITIONS,
)

__all__ = [
    # Dispatcher
    "DispatchResult",
    "Dispatcher",
    "HopRecord",
    "RunningAccount",
    # Executors
    "CurveExecutor",
    "HopContext",
    "UniswapV2Executor",
    "UniswapV3Executor",
    "UniswapV4Executor",
    "VenueExecutor",
    "build_executors",
    # Registry
    "DEFAULT_ADMIN_ROLE",
    "EXECUTOR_SETTER_ROLE",
    "ExecutorRecord",
    "ExecutorRegistry",
    # State machine
    "DispatchState",
    "DispatchStateMachine",
    "InvalidTransitionError",
    "StateTransition",
    "VALID_TRANSITIONS",
]
