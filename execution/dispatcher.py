# PATH: execution/dispatcher.py
"""
Dispatcher: runs an encoded program against the ledger.

DISPATCH CONTRACT
=================

submit(program, amount_in, sender, value=0):
  1. UNPACKING    decode; any structural mismatch raises before a token moves
  2. EXECUTING    per hop, in program order:
                    - the executor must be registered, approved and active now
                    - the directive's transfer is made up front, unless the
                      executor is paid inside its venue's callback
                    - the executor runs as the dispatcher
  3. CALLBACK     while a hop is in flight exactly one callback is accepted,
                  from the venue the hop addressed, with the selector its
                  executor declares, while the executor is still active
  4. RECONCILING  amounts fully consumed, no residual input at the
                  dispatcher, minimum output honored (receiver's balance
                  delta, or the accumulator for cyclic runs)

Any failure restores the ledger and the registry to their state at
entry. Only one run may be in flight.
=================
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from chains.state import ChainState
from chains.venues import CallbackRequest
from core.constants import ErrorCode, Strategy, TransferDirective
from core.exceptions import (
    AmountConsumedMismatchError,
    DecodingError,
    NegativeSlippageError,
    RegistryError,
    ReentrancyError,
    ResidualBalanceError,
    TradewireError,
    UnexpectedCallbackError,
)
from core.logging import bind_context, get_logger
from core.validators import normalize_address
from encoding.calldata import DecodedProgram, EncodedProgram, HopUnit, SplitUnit, decode_program
from execution.accounting import HopRecord, RunningAccount
from execution.executors import HopContext, VenueExecutor
from execution.registry import ExecutorRegistry
from execution.state_machine import DispatchState, DispatchStateMachine

logger = get_logger(__name__)

_run_ids = itertools.count(1)


@dataclass
class DispatchResult:
    """Outcome of a committed run."""
    run_id: str
    strategy: Strategy
    amount_in: int
    amount_out: int
    net_amount: Optional[int] = None
    hops: List[HopRecord] = field(default_factory=list)
    history: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "strategy": self.strategy.name,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "net_amount": str(self.net_amount) if self.net_amount is not None else None,
            "hops": [h.to_dict() for h in self.hops],
            "history": self.history,
        }


@dataclass
class _CallbackWindow:
    executor: VenueExecutor
    ctx: HopContext
    caller: Optional[str]
    selector: Optional[str]
    used: bool = False


class Dispatcher:
    """
    Usage:
        dispatcher = Dispatcher(chain, registry, dispatcher_address, executors)
        result = dispatcher.submit(program, amount_in=1000, sender=alice)
    """

    def __init__(
        self,
        chain: ChainState,
        registry: ExecutorRegistry,
        address: str,
        executors: Union[Dict[str, VenueExecutor], Iterable[VenueExecutor]],
        wrapped_token: Optional[str] = None,
    ):
        self.chain = chain
        self.registry = registry
        self.address = normalize_address(address, "dispatcher")
        if isinstance(executors, dict):
            executors = executors.values()
        self.executors: Dict[str, VenueExecutor] = {e.address: e for e in executors}
        self.wrapped_token = normalize_address(wrapped_token or chain.wrapped_token, "wrapped_token")
        self._in_flight = False
        self._window: Optional[_CallbackWindow] = None
        self._machine: Optional[DispatchStateMachine] = None
        chain.deploy(self.address, self)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def submit(
        self,
        program: Union[EncodedProgram, bytes],
        amount_in: int,
        sender: str,
        value: int = 0,
    ) -> DispatchResult:
        if self._in_flight:
            raise ReentrancyError("A run is already in flight")

        data = program.data if isinstance(program, EncodedProgram) else bytes(program)
        machine = DispatchStateMachine(run_id=f"run-{next(_run_ids)}")
        self._machine = machine
        self._in_flight = True
        try:
            with bind_context(run_id=machine.run_id), self.chain.atomic(self.registry):
                return self._run(machine, data, amount_in, normalize_address(sender, "sender"), value)
        except Exception as e:
            if not machine.is_terminal:
                machine.revert(str(e))
            logger.warning(
                "Run reverted",
                extra={"context": {
                    "run_id": machine.run_id,
                    "code": e.code.value if isinstance(e, TradewireError) else type(e).__name__,
                    "error": str(e),
                }},
            )
            raise
        finally:
            self._in_flight = False
            self._window = None

    def venue_callback(self, caller: str, selector: str, request: CallbackRequest) -> None:
        """Entry point venues call to be paid for the in-flight hop."""
        window = self._window
        caller = normalize_address(caller, "caller")
        if window is None or window.used:
            raise UnexpectedCallbackError(
                "Callback outside an open callback window",
                details={"caller": caller, "selector": selector},
            )
        if caller != window.caller:
            raise UnexpectedCallbackError(
                f"Callback from {caller}, expected {window.caller}",
                details={"caller": caller, "expected": window.caller},
            )
        if selector != window.selector:
            raise UnexpectedCallbackError(
                f"Callback selector {selector}, expected {window.selector}",
                details={"selector": selector, "expected": window.selector},
            )
        try:
            self.registry.require_active(window.executor.address)
        except RegistryError as e:
            raise UnexpectedCallbackError(
                f"Executor {window.executor.address} is no longer active",
                details={"executor": window.executor.address, "reason": e.code.value},
            ) from e

        window.used = True
        self._transition(DispatchState.CALLBACK_HANDLED, "venue callback")
        window.executor.handle_callback(window.ctx, caller, request)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _transition(self, state: DispatchState, reason: str = "") -> None:
        machine = self._machine
        previous = machine.state
        machine.transition_to(state, reason=reason)
        logger.debug(
            "Dispatch state",
            extra={"context": {"from": previous.value, "to": state.value}},
        )

    def _effective_tokens(self, program: DecodedProgram) -> tuple:
        header = program.header
        token_in = self.wrapped_token if header.wrap else header.token_in
        token_out = self.wrapped_token if header.unwrap else header.token_out
        return token_in, token_out

    def _fund(self, program: DecodedProgram, amount_in: int, sender: str, value: int) -> None:
        header = program.header
        if header.wrap:
            if value != amount_in:
                raise TradewireError(
                    f"Wrapping run needs value == amount_in, got {value} != {amount_in}",
                    ErrorCode.INVALID_INPUT,
                    {"value": value, "amount_in": amount_in},
                )
            self.chain.transfer(self.chain.native_token, sender, self.address, value)
            self.chain.wrap(self.address, value)
        elif header.token_in == self.chain.native_token:
            if value != amount_in:
                raise TradewireError(
                    f"Native input run needs value == amount_in, got {value} != {amount_in}",
                    ErrorCode.INVALID_INPUT,
                    {"value": value, "amount_in": amount_in},
                )
            self.chain.transfer(self.chain.native_token, sender, self.address, value)
        elif value:
            raise TradewireError(
                "Native value sent to a run that does not spend native currency",
                ErrorCode.INVALID_INPUT,
                {"value": value, "token_in": header.token_in},
            )

    def _run(
        self,
        machine: DispatchStateMachine,
        data: bytes,
        amount_in: int,
        sender: str,
        value: int,
    ) -> DispatchResult:
        self._transition(DispatchState.UNPACKING)
        program = decode_program(data)
        header = program.header
        token_in, token_out = self._effective_tokens(program)
        slots = self._slot_tokens(program, token_in, token_out)

        self._fund(program, amount_in, sender, value)

        first_directive = program.hops[0].directive
        pulled = first_directive == TransferDirective.DELEGATED_PULL
        dispatcher_before = self.chain.balance_of(token_in, self.address)
        receiver_before = self.chain.balance_of(header.token_out, header.receiver)

        self._transition(DispatchState.EXECUTING)
        account = RunningAccount(amount_in, len(slots), cyclic=header.cyclic)

        if isinstance(program.units[0], SplitUnit):
            for index, unit in enumerate(program.units):
                amount = account.share(unit.token_in_index, unit.split)
                account.consume(unit.token_in_index, amount)
                out = self._run_hop(account, index, unit.hop, amount, sender)
                account.credit(unit.token_out_index, out)
        else:
            for index, unit in enumerate(program.units):
                amount = account.share(index, 0)
                account.consume(index, amount)
                out = self._run_hop(account, index, unit, amount, sender)
                account.credit(index + 1, out)

        final_slot = 0 if header.cyclic else len(slots) - 1
        self._check_consumed(account, final_slot)

        if header.unwrap:
            produced = account.amounts[final_slot]
            self.chain.unwrap(self.address, produced)
            self.chain.transfer(self.chain.native_token, self.address, header.receiver, produced)

        self._transition(DispatchState.RECONCILING)
        expected_after = dispatcher_before if pulled else dispatcher_before - amount_in
        residual = self.chain.balance_of(token_in, self.address) - expected_after
        if residual != 0:
            raise ResidualBalanceError(token_in, residual)

        if header.cyclic:
            realized = account.accumulator
        else:
            realized = self.chain.balance_of(header.token_out, header.receiver) - receiver_before
        if realized < header.min_output:
            raise NegativeSlippageError(realized, header.min_output)

        self._transition(DispatchState.DONE)
        logger.debug(
            "Run committed",
            extra={"context": account.get_summary()},
        )
        return DispatchResult(
            run_id=machine.run_id,
            strategy=header.strategy,
            amount_in=amount_in,
            amount_out=realized,
            net_amount=account.net_amount if header.cyclic else None,
            hops=list(account.hops),
            history=[t.to_state.value for t in machine.history],
        )

    def _slot_tokens(self, program: DecodedProgram, token_in: str, token_out: str) -> List[str]:
        """Token per accounting slot; rejects programs whose hops do not chain."""
        header = program.header
        if header.cyclic != (header.strategy == Strategy.CYCLIC):
            raise DecodingError(
                "cyclic flag does not match the strategy tag",
                details={"strategy": header.strategy.name, "cyclic": header.cyclic},
            )
        if header.cyclic and (header.wrap or header.unwrap):
            raise DecodingError(
                "cyclic program cannot wrap or unwrap",
                ErrorCode.EXCLUSIVE_FLAGS,
                {"flags": header.flags},
            )

        if program.n_tokens is None:
            slots = [token_in]
            for index, unit in enumerate(program.units):
                if unit.token_in != slots[-1]:
                    raise DecodingError(
                        f"Hop {index} consumes {unit.token_in}, previous hop produced {slots[-1]}",
                        details={"hop": index},
                    )
                slots.append(unit.token_out)
            if slots[-1] != token_out:
                raise DecodingError(
                    f"Last hop produces {slots[-1]}, program pays out {token_out}",
                    details={"produced": slots[-1], "token_out": token_out},
                )
            return slots

        slots: List[Optional[str]] = [None] * program.n_tokens
        slots[0] = token_in
        if not header.cyclic:
            slots[-1] = token_out
        for index, unit in enumerate(program.units):
            for slot, token in ((unit.token_in_index, unit.hop.token_in), (unit.token_out_index, unit.hop.token_out)):
                if slots[slot] is None:
                    slots[slot] = token
                elif slots[slot] != token:
                    raise DecodingError(
                        f"Hop {index} disagrees on the token at index {slot}",
                        details={"hop": index, "index": slot, "token": token, "expected": slots[slot]},
                    )
        return slots

    def _run_hop(self, account: RunningAccount, index: int, unit: HopUnit, amount: int, sender: str) -> int:
        self.registry.require_active(unit.executor)
        executor = self.executors.get(unit.executor)
        if executor is None:
            raise RegistryError(
                f"No executor code deployed at {unit.executor}",
                ErrorCode.UNKNOWN_EXECUTOR,
                {"executor": unit.executor},
            )

        ctx = HopContext(
            chain=self.chain,
            dispatcher=self.address,
            sender=sender,
            token_in=unit.token_in,
            token_out=unit.token_out,
            directive=unit.directive,
            approval_needed=unit.approval_needed,
        )
        if not executor.pays_in_callback:
            ctx.pay(executor.funding_address(ctx, unit.params), amount)

        if executor.callback_selector:
            self._window = _CallbackWindow(
                executor=executor,
                ctx=ctx,
                caller=executor.expected_callback_caller(unit.params),
                selector=executor.callback_selector,
            )
            self._transition(DispatchState.CALLBACK_PENDING, f"hop {index}")
        try:
            amount_out = executor.execute(ctx, amount, unit.params)
        finally:
            self._window = None
        if self._machine.state != DispatchState.EXECUTING:
            self._transition(DispatchState.EXECUTING, f"hop {index} returned")

        account.record(HopRecord(
            index=index,
            executor=unit.executor,
            token_in=unit.token_in,
            token_out=unit.token_out,
            directive=unit.directive.name,
            amount_in=amount,
            amount_out=amount_out,
        ))
        logger.debug(
            "Hop executed",
            extra={"context": {
                "hop": index,
                "executor": unit.executor,
                "directive": unit.directive.name,
                "amount_in": amount,
                "amount_out": amount_out,
            }},
        )
        return amount_out

    def _check_consumed(self, account: RunningAccount, final_slot: int) -> None:
        if account.cyclic and account.total_consumed != account.amount_in:
            raise AmountConsumedMismatchError(account.total_consumed, account.amount_in)
        unspent = account.unspent(exclude=-1 if account.cyclic else final_slot)
        if unspent:
            slot = min(unspent)
            raise AmountConsumedMismatchError(
                account.consumed[slot],
                account.amounts[slot],
                details={"slot": slot, "unspent": unspent[slot]},
            )
