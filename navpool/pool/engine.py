"""`NavPool`: the imperative shell around the settlement and transition kernels.

Every mutating entry point:

1. Acquires the non-reentrant `ExecutionGuard`.
2. Snapshots pool state and all collaborators.
3. Runs the operation (claim-then-act for user calls).
4. Checks all invariants on the post-state.
5. On any exception restores the snapshot and re-raises; on success
   appends the emitted events to the pool's event log.

`step(pool, command)` is the non-raising dispatch-table entry point used by
scenario replay; it returns a ``StepResult`` (accepted or rejected with reason).
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from ..core.errors import MisconfiguredError, PoolError, PoolInvariantError
from ..core.fees import FeeRates
from ..core.fixed_point import asset_scale
from ..state.epochs import EpochRecord
from ..state.shares import ShareTable
from ..state.tickets import TicketRegistry
from .guards import ExecutionGuard, require_account, require_not_pool, require_operator, require_positive
from .invariants import check_all
from .orchestrator import contribute_epoch, preview_epoch
from .settlement import drain_matured, queue_position
from .state import PoolContext, PoolState, initial_state
from .types import (
    Action,
    Custody,
    DepositQueued,
    EpochContributed,
    EpochPreview,
    FeesUpdated,
    PoolCommand,
    PoolConfig,
    PoolEvent,
    QueueAction,
    QueuePosition,
    ShareLedger,
    StepResult,
    TicketIndex,
    WithdrawQueued,
)


logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _wall_clock() -> int:
    return int(time.time())


class NavPool:
    def __init__(
        self,
        config: PoolConfig,
        *,
        custody: Custody,
        shares: Optional[ShareLedger] = None,
        tickets: Optional[TicketIndex] = None,
        clock: Clock = _wall_clock,
        state: Optional[PoolState] = None,
        check_invariants: bool = True,
    ) -> None:
        try:
            scale = asset_scale(custody.decimals)
        except (TypeError, ValueError) as exc:
            raise MisconfiguredError(str(exc), reason="misconfigured:decimals") from exc
        if state is None:
            state = initial_state(fee_rates=config.fee_rates, scale=scale, timestamp=clock())
        elif state.scale != scale:
            raise MisconfiguredError(
                f"state scale {state.scale} does not match asset scale {scale}",
                reason="misconfigured:scale",
            )

        self._ctx = PoolContext(
            config=config,
            state=state,
            shares=shares if shares is not None else ShareTable(),
            tickets=tickets if tickets is not None else TicketRegistry(),
            custody=custody,
        )
        self._clock = clock
        self._guard = ExecutionGuard()
        self._check_invariants = check_invariants
        self._events: list[PoolEvent] = []

    # -- Transaction plumbing ------------------------------------------------

    @contextmanager
    def _atomic(self, entry_point: str) -> Iterator[list[PoolEvent]]:
        with self._guard.enter(entry_point):
            ctx = self._ctx
            saved = (
                ctx.state.copy(),
                ctx.shares.snapshot(),
                ctx.tickets.snapshot(),
                ctx.custody.snapshot(),
            )
            emitted: list[PoolEvent] = []
            try:
                yield emitted
                if self._check_invariants:
                    violations = check_all(ctx)
                    if violations:
                        raise PoolInvariantError(violations)
            except BaseException as exc:
                ctx.state = saved[0]
                ctx.shares.restore(saved[1])
                ctx.tickets.restore(saved[2])
                ctx.custody.restore(saved[3])
                logger.warning("%s rolled back: %s", entry_point, exc)
                raise
            self._events.extend(emitted)

    # -- User entry points ---------------------------------------------------

    def deposit(self, caller: str, amount: int) -> list[PoolEvent]:
        """Settle the caller's matured tickets, then queue `amount` assets for the next epoch."""
        with self._atomic("deposit") as emitted:
            require_account(caller)
            require_not_pool(self._ctx.config, caller)
            require_positive(amount, "amount")

            emitted.extend(drain_matured(self._ctx, caller))
            self._ctx.custody.transfer_in(caller, amount)
            ticket_id, position = queue_position(self._ctx, caller, QueueAction.DEPOSIT, amount)
            emitted.append(DepositQueued(
                account=caller,
                ticket_id=ticket_id,
                assets=amount,
                target_epoch=position.target_epoch,
            ))
            logger.info("deposit queued: %s ticket=%d assets=%d epoch=%d",
                        caller, ticket_id, amount, position.target_epoch)
        return list(emitted)

    def withdraw(self, caller: str, shares: int) -> list[PoolEvent]:
        """Settle the caller's matured tickets, then queue `shares` for redemption at the next epoch."""
        with self._atomic("withdraw") as emitted:
            require_account(caller)
            require_not_pool(self._ctx.config, caller)
            require_positive(shares, "shares")

            emitted.extend(drain_matured(self._ctx, caller))
            self._ctx.shares.transfer(caller, self._ctx.config.pool_account, shares)
            ticket_id, position = queue_position(self._ctx, caller, QueueAction.WITHDRAW, shares)
            emitted.append(WithdrawQueued(
                account=caller,
                ticket_id=ticket_id,
                shares=shares,
                target_epoch=position.target_epoch,
            ))
            logger.info("withdraw queued: %s ticket=%d shares=%d epoch=%d",
                        caller, ticket_id, shares, position.target_epoch)
        return list(emitted)

    def claim(self, caller: str) -> list[PoolEvent]:
        """Settle every matured ticket of the caller. A no-op when nothing has matured."""
        with self._atomic("claim") as emitted:
            require_account(caller)
            emitted.extend(drain_matured(self._ctx, caller))
        return list(emitted)

    # -- Operator entry points -----------------------------------------------

    def contribute_epoch(self, caller: str, nav: int, *, timestamp: Optional[int] = None) -> EpochContributed:
        with self._atomic("contribute_epoch") as emitted:
            require_operator(self._ctx.config, caller)
            now = self._clock() if timestamp is None else timestamp
            event = contribute_epoch(self._ctx, nav, now)
            emitted.append(event)
        return event

    def set_fees(self, caller: str, management_wad: int, performance_wad: int) -> FeesUpdated:
        with self._atomic("set_fees") as emitted:
            require_operator(self._ctx.config, caller)
            previous = self._ctx.state.fee_rates
            self._ctx.state.fee_rates = FeeRates(
                management_wad=management_wad,
                performance_wad=performance_wad,
            )
            event = FeesUpdated(
                management_wad=management_wad,
                performance_wad=performance_wad,
                previous_management_wad=previous.management_wad,
                previous_performance_wad=previous.performance_wad,
            )
            emitted.append(event)
            logger.info("fees updated: management=%d performance=%d", management_wad, performance_wad)
        return event

    def preview(self, nav: int, *, timestamp: Optional[int] = None) -> EpochPreview:
        """Simulate `contribute_epoch(nav)` without mutating anything."""
        now = self._clock() if timestamp is None else timestamp
        return preview_epoch(self._ctx, nav, now)

    # -- Read accessors ------------------------------------------------------

    @property
    def config(self) -> PoolConfig:
        return self._ctx.config

    @property
    def context(self) -> PoolContext:
        return self._ctx

    @property
    def state(self) -> PoolState:
        return self._ctx.state

    @property
    def shares(self) -> ShareLedger:
        return self._ctx.shares

    @property
    def tickets(self) -> TicketIndex:
        return self._ctx.tickets

    @property
    def custody(self) -> Custody:
        return self._ctx.custody

    @property
    def current_epoch(self) -> int:
        return self._ctx.state.current_epoch

    @property
    def high_water_mark(self) -> int:
        return self._ctx.state.high_water_mark

    @property
    def pending_deposits(self) -> int:
        return self._ctx.state.pending_deposits

    @property
    def pending_withdraw(self) -> int:
        return self._ctx.state.pending_withdraw

    @property
    def withdraw_reserve(self) -> int:
        return self._ctx.state.withdraw_reserve

    @property
    def fee_rates(self) -> FeeRates:
        return self._ctx.state.fee_rates

    @property
    def events(self) -> tuple[PoolEvent, ...]:
        return tuple(self._events)

    def price_at(self, epoch: int) -> int:
        return self._ctx.state.epochs.price_at(epoch)

    def epoch_record(self, epoch: int) -> EpochRecord:
        return self._ctx.state.epochs.record_at(epoch)

    def position(self, ticket_id: int) -> Optional[QueuePosition]:
        return self._ctx.state.positions.get(ticket_id)

    def positions_of(self, owner: str) -> list[tuple[int, QueuePosition]]:
        positions = self._ctx.state.positions
        return [(t, positions[t]) for t in self._ctx.tickets.tickets_of(owner)]

    def effective_supply(self) -> int:
        return self._ctx.effective_supply()


# ---------------------------------------------------------------------------
# Dispatch-table entry point
# ---------------------------------------------------------------------------

def _do_deposit(pool: NavPool, cmd: PoolCommand) -> list[PoolEvent]:
    return pool.deposit(cmd.caller, cmd.amount)


def _do_withdraw(pool: NavPool, cmd: PoolCommand) -> list[PoolEvent]:
    return pool.withdraw(cmd.caller, cmd.amount)


def _do_claim(pool: NavPool, cmd: PoolCommand) -> list[PoolEvent]:
    return pool.claim(cmd.caller)


def _do_contribute(pool: NavPool, cmd: PoolCommand) -> list[PoolEvent]:
    return [pool.contribute_epoch(cmd.caller, cmd.nav)]


def _do_set_fees(pool: NavPool, cmd: PoolCommand) -> list[PoolEvent]:
    return [pool.set_fees(cmd.caller, cmd.management_wad, cmd.performance_wad)]


_DISPATCH: dict[Action, Callable[[NavPool, PoolCommand], list[PoolEvent]]] = {
    Action.DEPOSIT: _do_deposit,
    Action.WITHDRAW: _do_withdraw,
    Action.CLAIM: _do_claim,
    Action.CONTRIBUTE_EPOCH: _do_contribute,
    Action.SET_FEES: _do_set_fees,
}


def step(pool: NavPool, cmd: PoolCommand) -> StepResult:
    """Execute one command against the pool.

    Returns ``StepResult`` with ``accepted=True`` and the emitted events on
    success, or ``accepted=False`` with a ``rejection`` reason string. A
    rejected command leaves the pool unchanged.
    """
    handler = _DISPATCH.get(cmd.action)
    if handler is None:
        return StepResult(accepted=False, rejection=f"unknown_action:{cmd.action}")
    try:
        events = handler(pool, cmd)
    except PoolError as exc:
        return StepResult(accepted=False, rejection=exc.reason)
    except (TypeError, ValueError, ArithmeticError) as exc:
        return StepResult(accepted=False, rejection=f"{type(exc).__name__}:{exc}")
    return StepResult(accepted=True, events=tuple(events))


def step_or_raise(pool: NavPool, cmd: PoolCommand) -> StepResult:
    """Like ``step()`` but lets the underlying exception propagate on rejection."""
    handler = _DISPATCH.get(cmd.action)
    if handler is None:
        raise ValueError(f"unknown action: {cmd.action}")
    return StepResult(accepted=True, events=tuple(handler(pool, cmd)))
