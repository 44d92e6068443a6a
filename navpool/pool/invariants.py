"""Invariant checkers for the pool.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant IDs (empty = all pass). The engine runs
`check_all()` after every mutating call and rolls back on any violation.
"""

from __future__ import annotations

from typing import Callable

from ..core.cashflow import withdraw_value
from .settlement import deposit_shares
from .state import PoolContext
from .types import QueueAction


def _sum_positions(ctx: PoolContext, action: QueueAction, matured: bool) -> int:
    s = ctx.state
    return sum(
        p.amount
        for p in s.positions.values()
        if p.action is action and s.is_matured(p) == matured
    )


def inv_counters_nonneg(ctx: PoolContext) -> bool:
    s = ctx.state
    return min(
        s.pending_deposits,
        s.pending_withdraw,
        s.queued_deposits,
        s.matured_withdraw_shares,
        s.unclaimed_deposit_shares,
        s.withdraw_reserve,
    ) >= 0


def inv_pending_deposits_sum(ctx: PoolContext) -> bool:
    s = ctx.state
    return s.pending_deposits == sum(
        p.amount for p in s.positions.values() if p.action is QueueAction.DEPOSIT
    )


def inv_queued_deposits_sum(ctx: PoolContext) -> bool:
    return ctx.state.queued_deposits == _sum_positions(ctx, QueueAction.DEPOSIT, matured=False)


def inv_pending_withdraw_sum(ctx: PoolContext) -> bool:
    return ctx.state.pending_withdraw == _sum_positions(ctx, QueueAction.WITHDRAW, matured=False)


def inv_matured_withdraw_sum(ctx: PoolContext) -> bool:
    return ctx.state.matured_withdraw_shares == _sum_positions(ctx, QueueAction.WITHDRAW, matured=True)


def inv_targets_next_epoch_at_most(ctx: PoolContext) -> bool:
    nxt = ctx.state.current_epoch + 1
    return all(p.target_epoch <= nxt for p in ctx.state.positions.values())


def inv_pool_share_custody(ctx: PoolContext) -> bool:
    s = ctx.state
    held = ctx.shares.balance_of(ctx.config.pool_account)
    return held == s.pending_withdraw + s.matured_withdraw_shares


def inv_prices_positive(ctx: PoolContext) -> bool:
    return all(r.share_price > 0 for r in ctx.state.epochs)


def inv_high_water_is_peak(ctx: PoolContext) -> bool:
    return ctx.state.high_water_mark == ctx.state.epochs.max_price()


def inv_reserve_funded(ctx: PoolContext) -> bool:
    return ctx.custody.balance() >= ctx.state.withdraw_reserve


def inv_reserve_covers_matured(ctx: PoolContext) -> bool:
    s = ctx.state
    owed = sum(
        withdraw_value(p.amount, s.epochs.price_at(p.target_epoch), s.scale)
        for p in s.positions.values()
        if p.action is QueueAction.WITHDRAW and s.is_matured(p)
    )
    return s.withdraw_reserve == owed


def inv_unclaimed_shares_cover_matured(ctx: PoolContext) -> bool:
    s = ctx.state
    owed = sum(
        deposit_shares(p.amount, s.epochs.price_at(p.target_epoch), s.scale)
        for p in s.positions.values()
        if p.action is QueueAction.DEPOSIT and s.is_matured(p)
    )
    return s.unclaimed_deposit_shares == owed


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[PoolContext], bool]] = {
    "inv_counters_nonneg": inv_counters_nonneg,
    "inv_pending_deposits_sum": inv_pending_deposits_sum,
    "inv_queued_deposits_sum": inv_queued_deposits_sum,
    "inv_pending_withdraw_sum": inv_pending_withdraw_sum,
    "inv_matured_withdraw_sum": inv_matured_withdraw_sum,
    "inv_targets_next_epoch_at_most": inv_targets_next_epoch_at_most,
    "inv_pool_share_custody": inv_pool_share_custody,
    "inv_prices_positive": inv_prices_positive,
    "inv_high_water_is_peak": inv_high_water_is_peak,
    "inv_reserve_funded": inv_reserve_funded,
    "inv_reserve_covers_matured": inv_reserve_covers_matured,
    "inv_unclaimed_shares_cover_matured": inv_unclaimed_shares_cover_matured,
}


def check_all(ctx: PoolContext) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(ctx)
    ]
