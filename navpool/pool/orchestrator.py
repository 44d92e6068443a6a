"""Epoch transition: the operator's NAV report turns into a finalized price.

`plan_transition()` is pure and backs both the read-only `preview_epoch()` and
the mutating `contribute_epoch()`, so a preview always matches the transition
that would follow it on the same state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..core.cashflow import reconcile, withdraw_value
from ..core.fees import FeeAccrual, compute_fee_accrual
from ..core.fixed_point import to_uint256
from ..state.epochs import EpochRecord
from .settlement import deposit_shares
from .state import PoolContext
from .types import EpochContributed, EpochPreview, FeeBreakdown, QueueAction


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionPlan:
    epoch: int
    timestamp: int
    elapsed_seconds: int
    nav: int
    supply_before: int
    accrual: FeeAccrual
    delta: int

    @property
    def fees(self) -> FeeBreakdown:
        a = self.accrual
        return FeeBreakdown(
            management_shares=a.management_shares,
            performance_shares=a.performance_shares,
            management_assets=a.management_assets,
            performance_assets=a.performance_assets,
        )


def elapsed_since(prior_timestamp: int, now: int) -> int:
    """Seconds since the prior epoch; 0 when the prior epoch carries no timestamp."""
    if prior_timestamp == 0:
        return 0
    # A clock running backwards fails the cast and rejects the transition.
    return to_uint256(now - prior_timestamp)


def plan_transition(ctx: PoolContext, nav: int, now: int) -> TransitionPlan:
    state = ctx.state
    if not isinstance(nav, int) or isinstance(nav, bool) or nav < 0:
        raise ValueError(f"nav must be a non-negative int: {nav!r}")

    latest = state.epochs.latest
    elapsed = elapsed_since(latest.timestamp, now)
    supply_before = ctx.effective_supply()
    accrual = compute_fee_accrual(
        supply_before=supply_before,
        price_before=latest.share_price,
        high_water_before=state.high_water_mark,
        nav=nav,
        elapsed_seconds=elapsed,
        rates=state.fee_rates,
        scale=state.scale,
        clamp=ctx.config.performance_clamp,
    )
    delta = reconcile(
        pending_withdraw_shares=state.pending_withdraw,
        price_after=accrual.price_after,
        pool_balance=ctx.custody.balance(),
        withdraw_reserve=state.withdraw_reserve,
        scale=state.scale,
    )
    return TransitionPlan(
        epoch=state.current_epoch + 1,
        timestamp=now,
        elapsed_seconds=elapsed,
        nav=nav,
        supply_before=supply_before,
        accrual=accrual,
        delta=delta,
    )


def _matured_liabilities(ctx: PoolContext, epoch: int, price: int) -> tuple[int, int]:
    """Deposit shares and withdraw assets owed to the tickets targeting `epoch`."""
    state = ctx.state
    shares = assets = 0
    for position in state.positions.values():
        if position.target_epoch != epoch:
            continue
        if position.action is QueueAction.DEPOSIT:
            shares += deposit_shares(position.amount, price, state.scale)
        else:
            assets += withdraw_value(position.amount, price, state.scale)
    return shares, assets


def preview_epoch(ctx: PoolContext, nav: int, now: int) -> EpochPreview:
    plan = plan_transition(ctx, nav, now)
    return EpochPreview(
        epoch=plan.epoch,
        share_price=plan.accrual.price_after,
        delta=plan.delta,
        high_water_after=plan.accrual.high_water_after,
        fees=plan.fees,
        supply_before=plan.supply_before,
        elapsed_seconds=plan.elapsed_seconds,
    )


def contribute_epoch(ctx: PoolContext, nav: int, now: int) -> EpochContributed:
    """Finalize the next epoch. The caller owns atomicity: any raise must roll back."""
    state = ctx.state
    operator = ctx.config.operator
    plan = plan_transition(ctx, nav, now)
    price = plan.accrual.price_after

    if plan.delta > 0:
        ctx.custody.transfer_in(operator, plan.delta)
    elif plan.delta < 0:
        ctx.custody.transfer_out(operator, -plan.delta)

    fee_shares = plan.accrual.total_fee_shares
    if fee_shares > 0:
        ctx.shares.mint(operator, fee_shares)

    epoch = state.epochs.append(EpochRecord(share_price=price, timestamp=now))
    high_water_before = state.high_water_mark
    state.high_water_mark = plan.accrual.high_water_after

    # Credit the per-ticket floors so that claims drain both counters to zero.
    owed_shares, owed_assets = _matured_liabilities(ctx, epoch, price)
    state.unclaimed_deposit_shares += owed_shares
    state.queued_deposits = 0
    state.withdraw_reserve += owed_assets
    state.matured_withdraw_shares += state.pending_withdraw
    state.pending_withdraw = 0

    logger.info(
        "epoch %d finalized: nav=%d price=%d hwm=%d delta=%d fee_shares=%d",
        epoch, nav, price, state.high_water_mark, plan.delta, fee_shares,
    )
    return EpochContributed(
        epoch=epoch,
        timestamp=now,
        elapsed_seconds=plan.elapsed_seconds,
        nav=nav,
        supply_before=plan.supply_before,
        price_pre_fee=plan.accrual.price_pre_fee,
        share_price=price,
        high_water_before=high_water_before,
        high_water_after=state.high_water_mark,
        fees=plan.fees,
        delta=plan.delta,
    )
