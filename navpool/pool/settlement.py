"""Lazy settlement of queued tickets.

A ticket moves Queued(target) -> Matured (its target epoch has a finalized
price) -> Settled (position deleted, ticket revoked). Nothing is settled by a
scheduler: every deposit, withdraw and claim of an owner first drains all of
that owner's matured tickets.
"""

from __future__ import annotations

import logging

from ..core.cashflow import withdraw_value
from ..core.fixed_point import WAD, mul_div, normalize
from .state import PoolContext
from .types import (
    DepositClaimed,
    PoolEvent,
    QueueAction,
    QueuePosition,
    SettlementOrder,
    WithdrawClaimed,
)


logger = logging.getLogger(__name__)


def deposit_shares(amount: int, price: int, scale: int) -> int:
    """Shares minted for `amount` assets at `price` (floor)."""
    return mul_div(normalize(amount, scale), WAD, price)


def matured_tickets(ctx: PoolContext, owner: str) -> list[tuple[int, QueuePosition]]:
    """Matured tickets of `owner` in the configured settlement order."""
    state = ctx.state
    matured = []
    # tickets_of() is a snapshot, so revoking while settling cannot skip entries.
    for ticket_id in ctx.tickets.tickets_of(owner):
        position = state.positions[ticket_id]
        if state.is_matured(position):
            matured.append((ticket_id, position))
    if ctx.config.settlement_order is SettlementOrder.PARTITIONED:
        matured.sort(key=lambda item: item[1].action is not QueueAction.DEPOSIT)
    return matured


def settle_deposit(ctx: PoolContext, owner: str, ticket_id: int, position: QueuePosition) -> DepositClaimed:
    state = ctx.state
    price = state.epochs.price_at(position.target_epoch)
    shares = deposit_shares(position.amount, price, state.scale)

    state.pending_deposits -= position.amount
    state.unclaimed_deposit_shares -= shares
    del state.positions[ticket_id]
    ctx.tickets.revoke(ticket_id)
    ctx.shares.mint(owner, shares)

    logger.debug("deposit ticket %s settled: %s assets -> %s shares @ %s", ticket_id, position.amount, shares, price)
    return DepositClaimed(
        account=owner,
        ticket_id=ticket_id,
        epoch=position.target_epoch,
        share_price=price,
        assets=position.amount,
        shares=shares,
    )


def settle_withdraw(ctx: PoolContext, owner: str, ticket_id: int, position: QueuePosition) -> WithdrawClaimed:
    state = ctx.state
    price = state.epochs.price_at(position.target_epoch)
    assets = withdraw_value(position.amount, price, state.scale)

    state.matured_withdraw_shares -= position.amount
    state.withdraw_reserve -= assets
    del state.positions[ticket_id]
    ctx.tickets.revoke(ticket_id)
    ctx.shares.burn(ctx.config.pool_account, position.amount)
    if assets > 0:
        ctx.custody.transfer_out(owner, assets)

    logger.debug("withdraw ticket %s settled: %s shares -> %s assets @ %s", ticket_id, position.amount, assets, price)
    return WithdrawClaimed(
        account=owner,
        ticket_id=ticket_id,
        epoch=position.target_epoch,
        share_price=price,
        shares=position.amount,
        assets=assets,
    )


def drain_matured(ctx: PoolContext, owner: str) -> list[PoolEvent]:
    """Settle every matured ticket of `owner`. Unmatured tickets are left untouched."""
    events: list[PoolEvent] = []
    for ticket_id, position in matured_tickets(ctx, owner):
        if position.action is QueueAction.DEPOSIT:
            events.append(settle_deposit(ctx, owner, ticket_id, position))
        else:
            events.append(settle_withdraw(ctx, owner, ticket_id, position))
    if events:
        logger.info("settled %d matured ticket(s) for %s", len(events), owner)
    return events


def queue_position(ctx: PoolContext, owner: str, action: QueueAction, amount: int) -> tuple[int, QueuePosition]:
    """Register a new ticket targeting the next epoch; funds must already be in custody."""
    state = ctx.state
    position = QueuePosition(action=action, amount=amount, target_epoch=state.current_epoch + 1)
    ticket_id = ctx.tickets.issue(owner)
    state.positions[ticket_id] = position
    if action is QueueAction.DEPOSIT:
        state.pending_deposits += amount
        state.queued_deposits += amount
    else:
        state.pending_withdraw += amount
    return ticket_id, position
