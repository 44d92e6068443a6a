"""Tests for navpool/pool/engine.py: entry points, atomicity and dispatch.

End-to-end sequences through `NavPool` with an in-memory custody and a manual
clock. Amounts use a 6-decimal asset, so one asset unit is 1e12 shares at par.
"""

import pytest

from navpool.core.errors import (
    FeeOutOfBoundsError,
    InsufficientFundsError,
    InvalidPriceError,
    MisconfiguredError,
    PoolInvariantError,
    ReentrancyError,
    UnauthorizedError,
    ZeroAmountError,
)
from navpool.core.fees import FeeRates
from navpool.core.fixed_point import WAD, mul_div
from navpool.integration.scenario import ManualClock
from navpool.integration.snapshot import state_root
from navpool.pool import (
    Action,
    DepositClaimed,
    Event,
    NavPool,
    PoolCommand,
    PoolConfig,
    SettlementOrder,
    WithdrawClaimed,
    step,
    step_or_raise,
)
from navpool.pool.types import ZERO_ADDRESS
from navpool.state.custody import AssetCustody


OP = "op"
T0 = 1_700_000_000
UNIT = 10**12  # shares per asset unit at par (6 decimals)
RATES = FeeRates(management_wad=2 * 10**16, performance_wad=2 * 10**17)


def _make_pool(
    balances=None,
    *,
    decimals: int = 6,
    order: SettlementOrder = SettlementOrder.PARTITIONED,
) -> tuple[NavPool, ManualClock]:
    """Helper: funded pool with 2% management / 20% performance fees."""
    clock = ManualClock(T0)
    custody = AssetCustody(symbol="USDC", decimals=decimals)
    if balances is None:
        balances = {"alice": 10_000, "bob": 10_000, OP: 1_000_000}
    for account, amount in balances.items():
        custody.credit(account, amount)
    config = PoolConfig(operator=OP, fee_rates=RATES, settlement_order=order)
    return NavPool(config, custody=custody, clock=clock), clock


def _seeded_holder(pool: NavPool, account: str = "alice", amount: int = 100) -> None:
    """Helper: `account` deposits `amount`, epoch 1 finalizes at par, shares claimed."""
    pool.deposit(account, amount)
    pool.contribute_epoch(OP, 0)
    pool.claim(account)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_fresh_pool_is_at_par(self):
        pool, _ = _make_pool()
        assert pool.current_epoch == 0
        assert pool.price_at(0) == WAD
        assert pool.high_water_mark == WAD
        assert pool.epoch_record(0).timestamp == T0

    def test_asset_above_18_decimals_rejected(self):
        with pytest.raises(MisconfiguredError):
            AssetCustody(symbol="X", decimals=19)

    def test_zero_operator_rejected(self):
        with pytest.raises(MisconfiguredError):
            PoolConfig(operator=ZERO_ADDRESS, fee_rates=RATES)
        with pytest.raises(MisconfiguredError):
            PoolConfig(operator="", fee_rates=RATES)

    def test_operator_cannot_be_pool_account(self):
        with pytest.raises(MisconfiguredError):
            PoolConfig(operator="navpool", fee_rates=RATES)


# ---------------------------------------------------------------------------
# First deposit and the empty-pool transition
# ---------------------------------------------------------------------------

class TestFirstEpoch:
    def test_deposit_is_queued_for_next_epoch(self):
        pool, _ = _make_pool()
        events = pool.deposit("alice", 100)
        assert [e.event for e in events] == [Event.DEPOSIT_QUEUED]
        assert events[0].target_epoch == 1
        assert pool.pending_deposits == 100
        assert pool.custody.balance() == 100
        assert pool.custody.balance_of("alice") == 9_900

    def test_nav_zero_finalizes_at_par_without_fees(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        ev = pool.contribute_epoch(OP, 0)
        assert ev.epoch == 1
        assert ev.share_price == WAD
        assert pool.price_at(1) == WAD
        assert ev.fees.management_shares == 0
        assert ev.fees.performance_shares == 0
        assert pool.shares.balance_of(OP) == 0

    def test_queued_deposits_are_swept_to_operator(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        ev = pool.contribute_epoch(OP, 0)
        # Nothing is owed to withdrawals; deposited assets go to the strategy.
        assert ev.delta == -100
        assert pool.custody.balance() == 0
        assert pool.custody.balance_of(OP) == 1_000_100

    def test_claim_mints_at_par(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        pool.contribute_epoch(OP, 0)
        events = pool.claim("alice")
        assert len(events) == 1
        assert isinstance(events[0], DepositClaimed)
        assert events[0].shares == 100 * UNIT
        assert pool.shares.balance_of("alice") == 100 * UNIT
        assert pool.pending_deposits == 0

    def test_claim_is_idempotent(self):
        pool, _ = _make_pool()
        _seeded_holder(pool)
        root = state_root(pool)
        assert pool.claim("alice") == []
        assert state_root(pool) == root

    def test_claim_before_maturity_is_noop(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        assert pool.claim("alice") == []
        assert pool.pending_deposits == 100
        assert len(pool.positions_of("alice")) == 1


# ---------------------------------------------------------------------------
# Settlement price
# ---------------------------------------------------------------------------

class TestSettlementPrice:
    def test_second_deposit_uses_target_epoch_price(self):
        pool, _ = _make_pool()
        _seeded_holder(pool)
        pool.deposit("bob", 200)
        ev = pool.contribute_epoch(OP, 250)
        assert ev.share_price == 22 * WAD // 10
        assert pool.price_at(2) != pool.price_at(1)

        (claimed,) = pool.claim("bob")
        assert claimed.epoch == 2
        assert claimed.share_price == pool.price_at(2)
        assert claimed.shares == mul_div(200 * UNIT, WAD, pool.price_at(2))
        assert claimed.shares != 200 * UNIT

    def test_matured_tickets_settle_on_next_deposit(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        pool.contribute_epoch(OP, 0)
        events = pool.deposit("alice", 50)
        assert [e.event for e in events] == [Event.DEPOSIT_CLAIMED, Event.DEPOSIT_QUEUED]
        assert pool.shares.balance_of("alice") == 100 * UNIT
        assert pool.pending_deposits == 50

    def test_withdraw_round_trip_at_par(self):
        pool, _ = _make_pool()
        _seeded_holder(pool, amount=1_000)
        pool.withdraw("alice", 1_000 * UNIT)
        assert pool.pending_withdraw == 1_000 * UNIT

        ev = pool.contribute_epoch(OP, 1_000)
        assert ev.share_price == WAD
        assert ev.delta == 1_000
        assert pool.withdraw_reserve == 1_000

        (claimed,) = pool.claim("alice")
        assert isinstance(claimed, WithdrawClaimed)
        assert claimed.assets == 1_000
        assert pool.custody.balance_of("alice") == 10_000
        assert pool.shares.total_supply() == 0
        assert pool.withdraw_reserve == 0


# ---------------------------------------------------------------------------
# Full exit and restart
# ---------------------------------------------------------------------------

SMALL_HOLDERS = ("bob", "carol", "dave")


def _drained_pool() -> NavPool:
    """Helper: deposits settle at par and at 2.2, then every holder exits and claims."""
    balances = {"alice": 10_000, "bob": 10_000, "carol": 10_000, "dave": 10_000, OP: 1_000_000}
    pool, _ = _make_pool(balances)
    _seeded_holder(pool)
    for account in SMALL_HOLDERS:
        pool.deposit(account, 1)
    assert pool.contribute_epoch(OP, 250).share_price == 22 * WAD // 10
    for account in SMALL_HOLDERS:
        pool.claim(account)
    # 1/2.2 floors per ticket, so three tickets sum below the floor of their total.
    assert pool.state.unclaimed_deposit_shares == 0

    for account in ("alice", OP) + SMALL_HOLDERS:
        pool.withdraw(account, pool.shares.balance_of(account))
    pool.contribute_epoch(OP, 250)
    for account in ("alice", OP) + SMALL_HOLDERS:
        pool.claim(account)
    return pool


class TestFullExit:
    def test_counters_drain_to_zero(self):
        pool = _drained_pool()
        assert pool.shares.total_supply() == 0
        assert pool.state.positions == {}
        assert pool.state.unclaimed_deposit_shares == 0
        assert pool.state.matured_withdraw_shares == 0
        assert pool.withdraw_reserve == 0
        assert pool.effective_supply() == 0

    def test_nav_zero_restarts_at_par(self):
        pool = _drained_pool()
        ev = pool.contribute_epoch(OP, 0)
        assert ev.supply_before == 0
        assert ev.share_price == WAD
        assert ev.fees.management_shares == ev.fees.performance_shares == 0
        assert pool.high_water_mark == 22 * WAD // 10
        # Rounding surplus left over from the exit is swept to the operator.
        assert pool.custody.balance() == 0

    def test_new_deposit_after_restart_mints_at_par(self):
        pool = _drained_pool()
        pool.contribute_epoch(OP, 0)
        pool.deposit("alice", 100)
        pool.contribute_epoch(OP, 0)
        pool.claim("alice")
        assert pool.shares.balance_of("alice") == 100 * UNIT
        assert pool.shares.total_supply() == 100 * UNIT


# ---------------------------------------------------------------------------
# Fees through the engine
# ---------------------------------------------------------------------------

class TestFees:
    def test_management_fee_needs_elapsed_time(self):
        pool, clock = _make_pool()
        _seeded_holder(pool)
        ev = pool.contribute_epoch(OP, 100)
        assert ev.elapsed_seconds == 0
        assert ev.fees.management_shares == 0

        clock.set(T0 + 30 * 86_400)
        ev = pool.contribute_epoch(OP, 100)
        assert ev.elapsed_seconds == 30 * 86_400
        assert ev.fees.management_shares > 0
        assert pool.shares.balance_of(OP) == ev.fees.management_shares

    def test_no_performance_fee_until_peak_is_exceeded(self):
        pool, _ = _make_pool()
        _seeded_holder(pool)

        peak = pool.contribute_epoch(OP, 200)
        assert peak.fees.performance_shares == 100 * UNIT // 9
        assert peak.share_price == 18 * WAD // 10
        assert pool.high_water_mark == peak.share_price

        for nav in (150, 120):
            ev = pool.contribute_epoch(OP, nav)
            assert ev.share_price < peak.share_price
            assert ev.fees.performance_shares == 0
            assert pool.high_water_mark == peak.share_price

        ev = pool.contribute_epoch(OP, 250)
        fee_per_share = (ev.price_pre_fee - peak.share_price) * RATES.performance_wad // WAD
        assert ev.share_price == ev.price_pre_fee - fee_per_share
        assert ev.fees.performance_shares == mul_div(ev.supply_before, fee_per_share, ev.share_price)
        assert pool.high_water_mark == ev.share_price

    def test_set_fees(self):
        pool, _ = _make_pool()
        ev = pool.set_fees(OP, 10**16, 10**17)
        assert ev.previous_management_wad == RATES.management_wad
        assert pool.fee_rates == FeeRates(management_wad=10**16, performance_wad=10**17)

    def test_set_fees_bounds(self):
        pool, _ = _make_pool()
        with pytest.raises(ZeroAmountError):
            pool.set_fees(OP, 0, 10**17)
        with pytest.raises(FeeOutOfBoundsError):
            pool.set_fees(OP, WAD // 10 + 1, 10**17)
        with pytest.raises(FeeOutOfBoundsError):
            pool.set_fees(OP, 10**16, WAD // 2 + 1)
        assert pool.fee_rates == RATES
        assert pool.events == ()


# ---------------------------------------------------------------------------
# Authorization and argument checks
# ---------------------------------------------------------------------------

class TestGuards:
    def test_non_operator_cannot_contribute(self):
        pool, _ = _make_pool()
        with pytest.raises(UnauthorizedError):
            pool.contribute_epoch("alice", 0)
        assert pool.current_epoch == 0

    def test_non_operator_cannot_set_fees(self):
        pool, _ = _make_pool()
        with pytest.raises(UnauthorizedError):
            pool.set_fees("alice", 10**16, 10**17)

    def test_zero_amounts(self):
        pool, _ = _make_pool()
        with pytest.raises(ZeroAmountError):
            pool.deposit("alice", 0)
        with pytest.raises(ZeroAmountError):
            pool.withdraw("alice", 0)

    def test_pool_account_cannot_queue(self):
        pool, _ = _make_pool({"navpool": 10})
        with pytest.raises(UnauthorizedError):
            pool.deposit("navpool", 10)

    def test_withdraw_more_than_held(self):
        pool, _ = _make_pool()
        _seeded_holder(pool)
        root = state_root(pool)
        with pytest.raises(InsufficientFundsError):
            pool.withdraw("alice", 100 * UNIT + 1)
        assert state_root(pool) == root

    def test_deposit_more_than_balance(self):
        pool, _ = _make_pool({"alice": 5, OP: 0})
        with pytest.raises(InsufficientFundsError) as exc:
            pool.deposit("alice", 6)
        assert exc.value.reason == "insufficient_assets"
        assert pool.pending_deposits == 0


# ---------------------------------------------------------------------------
# Atomic rollback
# ---------------------------------------------------------------------------

class TestRollback:
    def test_operator_cannot_cover_withdrawals(self):
        pool, _ = _make_pool({"alice": 1_000, OP: 0})
        _seeded_holder(pool)  # operator now holds the swept 100
        pool.withdraw("alice", 100 * UNIT)
        root = state_root(pool)

        with pytest.raises(InsufficientFundsError):
            pool.contribute_epoch(OP, 300)  # owes 260, holds 100

        assert state_root(pool) == root
        assert pool.current_epoch == 1
        assert pool.pending_withdraw == 100 * UNIT
        assert pool.shares.balance_of(OP) == 0

    def test_zero_price_rejected(self):
        pool, _ = _make_pool()
        _seeded_holder(pool)
        with pytest.raises(InvalidPriceError):
            pool.contribute_epoch(OP, 0)
        assert pool.current_epoch == 1

    def test_clock_moving_backwards_rejected(self):
        pool, _ = _make_pool()
        with pytest.raises(OverflowError):
            pool.contribute_epoch(OP, 0, timestamp=T0 - 1)
        assert pool.current_epoch == 0

    def test_invariant_violation_rolls_back(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        pool.state.withdraw_reserve = 1_000  # more than custody holds
        with pytest.raises(PoolInvariantError) as exc:
            pool.deposit("bob", 10)
        assert "inv_reserve_funded" in exc.value.violations
        assert pool.pending_deposits == 100
        assert pool.custody.balance_of("bob") == 10_000

    def test_failed_call_emits_no_events(self):
        pool, _ = _make_pool()
        pool.deposit("alice", 100)
        with pytest.raises(UnauthorizedError):
            pool.contribute_epoch("bob", 0)
        assert [e.event for e in pool.events] == [Event.DEPOSIT_QUEUED]


# ---------------------------------------------------------------------------
# Reentrancy
# ---------------------------------------------------------------------------

class TestReentrancy:
    def test_transfer_hook_reentry_is_rejected(self):
        pool, _ = _make_pool()
        calls = []

        def hook(direction, account, amount):
            calls.append(direction)
            pool.deposit(account, 1)

        pool.custody.on_transfer = hook
        root = state_root(pool)
        with pytest.raises(ReentrancyError) as exc:
            pool.deposit("alice", 100)
        assert exc.value.reason == "reentrancy:deposit"
        assert calls == ["in"]
        assert state_root(pool) == root

    def test_guard_released_after_failure(self):
        pool, _ = _make_pool()
        pool.custody.on_transfer = lambda d, a, n: pool.claim(a)
        with pytest.raises(ReentrancyError):
            pool.deposit("alice", 100)
        pool.custody.on_transfer = None
        pool.deposit("alice", 100)
        assert pool.pending_deposits == 100

    def test_hook_reentry_during_claim_payout(self):
        pool, _ = _make_pool()
        _seeded_holder(pool)
        pool.withdraw("alice", 100 * UNIT)
        pool.contribute_epoch(OP, 100)
        pool.custody.on_transfer = lambda d, a, n: pool.withdraw(a, 1)
        with pytest.raises(ReentrancyError):
            pool.claim("alice")
        assert pool.custody.balance_of("alice") == 9_900
        assert len(pool.positions_of("alice")) == 1


# ---------------------------------------------------------------------------
# Settlement order across mixed tickets
# ---------------------------------------------------------------------------

def _mixed_matured_tickets(order: SettlementOrder) -> NavPool:
    """Helper: alice ends with a matured withdraw (t2) and a matured deposit (t3)."""
    pool, _ = _make_pool(order=order)
    pool.deposit("alice", 100)                 # t1 -> epoch 1
    pool.contribute_epoch(OP, 0)
    pool.withdraw("alice", 50 * UNIT)          # settles t1, queues t2 -> epoch 2
    pool.deposit("alice", 10)                  # t3 -> epoch 2
    pool.contribute_epoch(OP, 100)
    return pool


class TestSettlementOrder:
    def test_partitioned_settles_deposits_first(self):
        pool = _mixed_matured_tickets(SettlementOrder.PARTITIONED)
        events = pool.claim("alice")
        assert [(e.event, e.ticket_id) for e in events] == [
            (Event.DEPOSIT_CLAIMED, 3),
            (Event.WITHDRAW_CLAIMED, 2),
        ]

    def test_ticket_order(self):
        pool = _mixed_matured_tickets(SettlementOrder.TICKET)
        events = pool.claim("alice")
        assert [(e.event, e.ticket_id) for e in events] == [
            (Event.WITHDRAW_CLAIMED, 2),
            (Event.DEPOSIT_CLAIMED, 3),
        ]

    def test_orders_reach_same_balances(self):
        a = _mixed_matured_tickets(SettlementOrder.PARTITIONED)
        b = _mixed_matured_tickets(SettlementOrder.TICKET)
        a.claim("alice")
        b.claim("alice")
        assert a.custody.balance_of("alice") == b.custody.balance_of("alice") == 9_940
        assert a.shares.balance_of("alice") == b.shares.balance_of("alice") == 60 * UNIT


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

def test_preview_matches_contribution_and_mutates_nothing() -> None:
    pool, clock = _make_pool()
    _seeded_holder(pool)
    pool.withdraw("alice", 40 * UNIT)
    clock.set(T0 + 86_400)
    root = state_root(pool)

    preview = pool.preview(180)
    assert state_root(pool) == root

    ev = pool.contribute_epoch(OP, 180)
    assert preview.epoch == ev.epoch
    assert preview.share_price == ev.share_price
    assert preview.delta == ev.delta
    assert preview.fees == ev.fees
    assert preview.high_water_after == ev.high_water_after


# ---------------------------------------------------------------------------
# step(): non-raising dispatch
# ---------------------------------------------------------------------------

class TestStep:
    def test_accepted(self):
        pool, _ = _make_pool()
        r = step(pool, PoolCommand(action=Action.DEPOSIT, caller="alice", amount=10))
        assert r.accepted
        assert r.rejection is None
        assert r.events[0].event == Event.DEPOSIT_QUEUED

    def test_rejection_reasons(self):
        pool, _ = _make_pool()
        r = step(pool, PoolCommand(action=Action.DEPOSIT, caller="alice", amount=0))
        assert not r.accepted
        assert r.rejection == "zero_amount:amount"

        r = step(pool, PoolCommand(action=Action.CONTRIBUTE_EPOCH, caller="alice"))
        assert r.rejection == "unauthorized:operator"

        r = step(pool, PoolCommand(action=Action.DEPOSIT, caller="alice", amount=-5))
        assert r.rejection.startswith("ValueError:")

    def test_unknown_action(self):
        pool, _ = _make_pool()
        r = step(pool, PoolCommand(action="bogus", caller="alice"))  # type: ignore[arg-type]
        assert r.rejection == "unknown_action:bogus"

    def test_step_or_raise_propagates(self):
        pool, _ = _make_pool()
        with pytest.raises(UnauthorizedError):
            step_or_raise(pool, PoolCommand(action=Action.SET_FEES, caller="bob", management_wad=1, performance_wad=1))
