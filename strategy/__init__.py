"""Strategy package for TRADEWIRE: selection, transfer planning, approvals."""

from strategy.selector import HopGroup, StrategyPlan, StrategySelector
from strategy.transfers import TransferOptimizer, TransferPlan

__all__ = [
    "HopGroup",
    "StrategyPlan",
    "StrategySelector",
    "TransferOptimizer",
    "TransferPlan",
]
