"""Pool state and its serialization.

`PoolState` is the single explicit struct every operation works on. It is
mutable; atomicity is provided by the engine, which snapshots it with
`copy()` before a call and swaps the snapshot back on failure.

Round-trip property (tested): `state_from_dict(state_to_dict(s)) == s`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from ..core.fees import FeeRates
from ..core.fixed_point import WAD
from ..state.epochs import EpochLedger, EpochRecord
from .types import Custody, PoolConfig, QueueAction, QueuePosition, ShareLedger, TicketIndex


STATE_VERSION = 1


@dataclass
class PoolState:
    epochs: EpochLedger
    fee_rates: FeeRates
    scale: int
    high_water_mark: int = WAD
    positions: Dict[int, QueuePosition] = field(default_factory=dict)

    # Exact sums over live positions (see invariants.py).
    pending_deposits: int = 0
    pending_withdraw: int = 0
    queued_deposits: int = 0
    matured_withdraw_shares: int = 0

    # Aggregates priced at transition time, drawn down by claims.
    unclaimed_deposit_shares: int = 0
    withdraw_reserve: int = 0

    @property
    def current_epoch(self) -> int:
        return self.epochs.current_epoch

    def is_matured(self, position: QueuePosition) -> bool:
        return self.epochs.price_at(position.target_epoch) != 0

    def copy(self) -> "PoolState":
        return PoolState(
            epochs=self.epochs.copy(),
            fee_rates=self.fee_rates,
            scale=self.scale,
            high_water_mark=self.high_water_mark,
            positions=dict(self.positions),
            pending_deposits=self.pending_deposits,
            pending_withdraw=self.pending_withdraw,
            queued_deposits=self.queued_deposits,
            matured_withdraw_shares=self.matured_withdraw_shares,
            unclaimed_deposit_shares=self.unclaimed_deposit_shares,
            withdraw_reserve=self.withdraw_reserve,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PoolState):
            return NotImplemented
        return state_to_dict(self) == state_to_dict(other)


@dataclass
class PoolContext:
    """Everything an operation may touch, passed by exclusive reference."""

    config: PoolConfig
    state: PoolState
    shares: ShareLedger
    tickets: TicketIndex
    custody: Custody

    def effective_supply(self) -> int:
        """Shares with a claim on the reported NAV."""
        s = self.state
        return self.shares.total_supply() - s.matured_withdraw_shares + s.unclaimed_deposit_shares


def initial_state(*, fee_rates: FeeRates, scale: int, timestamp: int) -> PoolState:
    return PoolState(epochs=EpochLedger.seeded(timestamp), fee_rates=fee_rates, scale=scale)


_COUNTERS: tuple[str, ...] = (
    "high_water_mark",
    "pending_deposits",
    "pending_withdraw",
    "queued_deposits",
    "matured_withdraw_shares",
    "unclaimed_deposit_shares",
    "withdraw_reserve",
)


def state_to_dict(state: PoolState) -> dict[str, Any]:
    """Serialize a PoolState to plain JSON-compatible data (ints, strs, lists)."""
    out: dict[str, Any] = {
        "version": STATE_VERSION,
        "scale": state.scale,
        "fee_rates": {
            "management_wad": state.fee_rates.management_wad,
            "performance_wad": state.fee_rates.performance_wad,
        },
        "epochs": [[r.share_price, r.timestamp] for r in state.epochs],
        "positions": [
            [ticket_id, p.action.value, p.amount, p.target_epoch]
            for ticket_id, p in sorted(state.positions.items())
        ],
    }
    for name in _COUNTERS:
        out[name] = getattr(state, name)
    return out


def state_from_dict(d: Mapping[str, Any]) -> PoolState:
    """Deserialize a dict to a PoolState. Raises KeyError on missing fields."""
    if d["version"] != STATE_VERSION:
        raise ValueError(f"unsupported state version: {d['version']!r}")
    fees = d["fee_rates"]
    kwargs: dict[str, Any] = {}
    for name in _COUNTERS:
        val = d[name]
        if not isinstance(val, int) or isinstance(val, bool) or val < 0:
            raise TypeError(f"state var {name!r} must be a non-negative int, got {val!r}")
        kwargs[name] = int(val)
    return PoolState(
        epochs=EpochLedger([EpochRecord(share_price=int(p), timestamp=int(t)) for p, t in d["epochs"]]),
        fee_rates=FeeRates(
            management_wad=int(fees["management_wad"]),
            performance_wad=int(fees["performance_wad"]),
        ),
        scale=int(d["scale"]),
        positions={
            int(ticket_id): QueuePosition(
                action=QueueAction(action),
                amount=int(amount),
                target_epoch=int(target),
            )
            for ticket_id, action, amount, target in d["positions"]
        },
        **kwargs,
    )
