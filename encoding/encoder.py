"""
encoding/encoder.py - Trade graph to program bytes.

Pipeline: validate + select strategy -> plan transfers -> encode venue
params -> serialize. Pure: the same graph and the same allowance view
always give the same bytes.

ExecutorEncoder is the bare variant for callers that invoke one executor
directly: no header, no dispatcher, one hop group only.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Tuple

from config import ChainConfig
from core.constants import ErrorCode, Strategy, TransferDirective, UserTransferType
from core.exceptions import EncodingError, RegistryError
from core.logging import get_logger
from core.models import TradeGraph
from dex.adapters import EncodingContext
from dex.registry import VenueEncoderRegistry
from encoding.calldata import (
    EncodedProgram,
    EncodedTransaction,
    HopUnit,
    ProgramHeader,
    SplitUnit,
    encode_program,
)
from strategy.approvals import ApprovalsManager
from strategy.selector import HopGroup, StrategyPlan, StrategySelector
from strategy.transfers import TransferOptimizer, TransferPlan

logger = get_logger(__name__)


def call_value(graph: TradeGraph, native_token: str) -> int:
    """Native currency that must be attached to the call."""
    return graph.amount_in if graph.token_in == native_token else 0


class ProgramEncoder:
    """
    Usage:
        encoder = ProgramEncoder(chain_config, VenueEncoderRegistry.from_config("ethereum"))
        program = encoder.encode(graph)
        program.hex()
    """

    def __init__(
        self,
        chain_config: ChainConfig,
        encoders: VenueEncoderRegistry,
        user_transfer_type: UserTransferType = UserTransferType.TRANSFER_FROM,
        approvals: Optional[ApprovalsManager] = None,
        executor_registry=None,
    ):
        self.chain_config = chain_config
        self.encoders = encoders
        self.executor_registry = executor_registry
        self.selector = StrategySelector(
            encoders,
            chain_config.wrapped_token,
            native_token=chain_config.native_token,
        )
        self.optimizer = TransferOptimizer(
            encoders,
            chain_config.dispatcher_address,
            user_transfer_type=user_transfer_type,
            approvals=approvals,
            native_token=chain_config.native_token,
        )

    def plan(self, graph: TradeGraph) -> Tuple[StrategyPlan, List[TransferPlan]]:
        selection = self.selector.select(graph)
        return selection, self.optimizer.plan(graph, selection)

    def _check_executor(self, address: str, venue: str) -> None:
        if self.executor_registry is None:
            return
        record = self.executor_registry.get(address)
        if record is None:
            raise RegistryError(
                f"Executor {address} for {venue} is not registered",
                ErrorCode.UNKNOWN_EXECUTOR,
                {"executor": address, "venue": venue},
            )
        if not record.approved:
            raise RegistryError(
                f"Executor {address} for {venue} is not approved",
                ErrorCode.EXECUTOR_NOT_APPROVED,
                {"executor": address, "venue": venue},
            )

    def encode(self, graph: TradeGraph) -> EncodedProgram:
        selection, transfers = self.plan(graph)
        return self.serialize(graph, selection, transfers)

    def serialize(
        self,
        graph: TradeGraph,
        selection: StrategyPlan,
        transfers: List[TransferPlan],
    ) -> EncodedProgram:
        """Bytes for an already planned graph."""
        units = []
        for group, transfer in zip(selection.groups, transfers):
            encoder = self.encoders.get(group.venue)
            self._check_executor(encoder.executor_address, group.venue)
            hop = HopUnit(
                executor=encoder.executor_address,
                token_in=group.token_in,
                token_out=group.token_out,
                directive=transfer.directive,
                approval_needed=transfer.approval_needed,
                params=encoder.encode(group.hops, EncodingContext(receiver=transfer.receiver)),
            )
            if selection.strategy in (Strategy.SPLIT, Strategy.CYCLIC):
                units.append(SplitUnit(
                    token_in_index=group.token_in_index,
                    token_out_index=group.token_out_index,
                    split=group.split_uint24,
                    hop=hop,
                ))
            else:
                units.append(hop)

        header = ProgramHeader(
            strategy=selection.strategy,
            token_in=graph.token_in,
            token_out=graph.token_out,
            receiver=graph.receiver,
            min_output=graph.min_output,
            wrap=selection.wrap,
            unwrap=selection.unwrap,
            cyclic=selection.cyclic,
        )
        n_tokens = len(selection.tokens) if selection.strategy in (Strategy.SPLIT, Strategy.CYCLIC) else None
        program = encode_program(header, units, n_tokens=n_tokens)

        logger.info(
            "Program encoded",
            extra={"context": {
                "strategy": selection.strategy.name,
                "units": len(units),
                "bytes": len(program),
                "chain": self.chain_config.chain_key,
            }},
        )
        return program

    def transaction(self, graph: TradeGraph, program: EncodedProgram) -> EncodedTransaction:
        return EncodedTransaction(
            to=self.chain_config.dispatcher_address,
            value=call_value(graph, self.chain_config.native_token),
            data=program.data,
        )

    def encode_transaction(self, graph: TradeGraph) -> EncodedTransaction:
        return self.transaction(graph, self.encode(graph))

    def encode_many(self, graphs: Iterable[TradeGraph], max_workers: int = 4) -> List[EncodedProgram]:
        """Encode independent graphs concurrently; results keep input order."""
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.encode, graphs))


class ExecutorEncoder:
    """
    Venue params for calling a single executor directly.

    The caller takes the dispatcher's place: it funds the hop itself and
    receives nothing back from a router, so the graph must reduce to one
    hop group with no wrap or unwrap. The input is pushed to the venue
    when the venue takes an in-transfer; otherwise the executor holds it.

    Usage:
        encoder = ExecutorEncoder(chain_config, VenueEncoderRegistry.from_config("ethereum"))
        tx, transfer = encoder.encode(graph)
    """

    def __init__(self, chain_config: ChainConfig, encoders: VenueEncoderRegistry):
        self.chain_config = chain_config
        self.encoders = encoders
        self.selector = StrategySelector(
            encoders,
            chain_config.wrapped_token,
            native_token=chain_config.native_token,
        )

    def group(self, graph: TradeGraph) -> HopGroup:
        selection = self.selector.select(graph)
        if len(selection.groups) != 1:
            raise EncodingError(
                f"Executor call needs exactly one hop group, graph has {len(selection.groups)}",
                ErrorCode.INVALID_INPUT,
                {"groups": len(selection.groups), "strategy": selection.strategy.name},
            )
        if selection.wrap or selection.unwrap:
            raise EncodingError(
                "Wrapping native currency needs the dispatcher",
                ErrorCode.INVALID_INPUT,
                {"native_action": graph.native_action.value},
            )
        return selection.groups[0]

    def encode(self, graph: TradeGraph) -> Tuple[EncodedTransaction, TransferPlan]:
        group = self.group(graph)
        encoder = self.encoders.get(group.venue)
        directive = TransferDirective.DIRECT_PUSH if encoder.requires_in_transfer else TransferDirective.RESIDENT
        transfer = TransferPlan(directive=directive, receiver=graph.receiver)
        params = encoder.encode(group.hops, EncodingContext(receiver=graph.receiver))

        logger.info(
            "Executor call encoded",
            extra={"context": {"venue": group.venue, "executor": encoder.executor_address, "bytes": len(params)}},
        )
        tx = EncodedTransaction(
            to=encoder.executor_address,
            value=call_value(graph, self.chain_config.native_token),
            data=params,
        )
        return tx, transfer
