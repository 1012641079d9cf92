"""
strategy/transfers.py - Transfer optimizer.

Decides per group how the input physically reaches the venue, where the
group's output goes, and whether a one-time approval is needed.

DIRECTIVE ORDER (first match wins)
==================================

1. previous group sent its output to this venue -> PREFUNDED
2. input is the native token                    -> RESIDENT (sent as
                                                   call value when paid)
   input is the dispatcher's own wrap           -> DIRECT_PUSH
                                                   (RESIDENT if the venue
                                                   takes no in-transfer)
3. consumes the trade input, caller authorized  -> DELEGATED_PULL
   consumes the trade input, not authorized     -> DIRECT_PUSH, or RESIDENT
                                                   for venues that take funds
                                                   from the dispatcher
4. venue takes funds from the dispatcher        -> RESIDENT
5. otherwise                                    -> DIRECT_PUSH

Receivers: groups producing the trade output pay the receiver (the
dispatcher when it must unwrap). In linear trades an intermediate
output is sent straight to the next venue when that venue accepts an
in-transfer and is not paid in a callback. Everything else returns to
the dispatcher.
==================================
"""

from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from core.constants import NATIVE_TOKEN, TransferDirective, UserTransferType
from core.exceptions import AuthorizationError
from core.logging import get_logger
from core.models import TradeGraph
from core.validators import normalize_address
from dex.registry import VenueEncoderRegistry
from strategy.approvals import ApprovalsManager
from strategy.selector import StrategyPlan

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferPlan:
    """Per-group funding decision."""
    directive: TransferDirective
    receiver: str
    approval_needed: bool = False

    def to_dict(self) -> dict:
        return {
            "directive": self.directive.name,
            "receiver": self.receiver,
            "approval_needed": self.approval_needed,
        }


class TransferOptimizer:
    """
    Usage:
        optimizer = TransferOptimizer(encoders, dispatcher, UserTransferType.TRANSFER_FROM)
        plans = optimizer.plan(graph, selection)
    """

    def __init__(
        self,
        encoders: VenueEncoderRegistry,
        dispatcher: str,
        user_transfer_type: UserTransferType = UserTransferType.TRANSFER_FROM,
        approvals: Optional[ApprovalsManager] = None,
        native_token: str = NATIVE_TOKEN,
    ):
        self.encoders = encoders
        self.dispatcher = normalize_address(dispatcher, "dispatcher")
        self.user_transfer_type = UserTransferType(user_transfer_type)
        self.approvals = approvals
        self.native_token = normalize_address(native_token, "native_token")

    def _receivers(self, graph: TradeGraph, selection: StrategyPlan) -> Tuple[List[str], List[bool]]:
        groups = selection.groups
        final_token = selection.effective_token_in if selection.cyclic else selection.effective_token_out
        final_receiver = self.dispatcher if selection.unwrap else graph.receiver
        linear = not selection.is_split

        receivers: List[str] = []
        redirected = [False] * len(groups)
        for index, group in enumerate(groups):
            if group.token_out == final_token:
                receivers.append(final_receiver)
                continue
            if linear and index + 1 < len(groups):
                following = groups[index + 1]
                if following.token_in == group.token_out and self.encoders.get(following.venue).redirect_target:
                    receivers.append(following.pool)
                    redirected[index + 1] = True
                    continue
            receivers.append(self.dispatcher)
        return receivers, redirected

    def _directive(self, selection: StrategyPlan, index: int, redirected: bool) -> TransferDirective:
        group = selection.groups[index]
        encoder = self.encoders.get(group.venue)
        consumes_input = group.token_in == selection.effective_token_in

        if redirected:
            return TransferDirective.PREFUNDED
        if group.token_in == self.native_token:
            return TransferDirective.RESIDENT
        if consumes_input and selection.wrap:
            return TransferDirective.DIRECT_PUSH if encoder.requires_in_transfer else TransferDirective.RESIDENT
        if consumes_input:
            if self.user_transfer_type == UserTransferType.TRANSFER_FROM:
                return TransferDirective.DELEGATED_PULL
            return TransferDirective.DIRECT_PUSH if encoder.requires_in_transfer else TransferDirective.RESIDENT
        if not encoder.requires_in_transfer:
            return TransferDirective.RESIDENT
        return TransferDirective.DIRECT_PUSH

    def plan(self, graph: TradeGraph, selection: StrategyPlan) -> List[TransferPlan]:
        receivers, redirected = self._receivers(graph, selection)
        approved: Set[Tuple[str, str]] = set()
        plans: List[TransferPlan] = []

        for index, group in enumerate(selection.groups):
            encoder = self.encoders.get(group.venue)
            directive = self._directive(selection, index, redirected[index])

            approval_needed = False
            if encoder.requires_approval:
                key = (group.token_in, encoder.approval_spender(group.hops[0]))
                if key not in approved:
                    approved.add(key)
                    approval_needed = (
                        self.approvals.approval_needed(*key) if self.approvals is not None else True
                    )

            plans.append(TransferPlan(directive=directive, receiver=receivers[index], approval_needed=approval_needed))

        self._check_authorization(graph, selection, plans)

        logger.debug(
            "Transfers planned",
            extra={"context": {"directives": [p.directive.name for p in plans]}},
        )
        return plans

    def _check_authorization(
        self,
        graph: TradeGraph,
        selection: StrategyPlan,
        plans: List[TransferPlan],
    ) -> None:
        if self.approvals is None:
            return
        if not any(p.directive == TransferDirective.DELEGATED_PULL for p in plans):
            return
        authorized = self.approvals.authorized_amount(selection.effective_token_in, graph.sender)
        if authorized < graph.amount_in:
            raise AuthorizationError(
                f"Sender authorized {authorized}, trade needs {graph.amount_in}",
                details={
                    "token": selection.effective_token_in,
                    "owner": graph.sender,
                    "spender": self.dispatcher,
                    "authorized": authorized,
                    "required": graph.amount_in,
                },
            )
