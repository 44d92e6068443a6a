"""Data types for the pooled-fund engine.

Units/conventions:
- `*_price`, `high_water_*` and fee rates are WAD-scaled (1e18).
- `assets` / `nav` / `delta` are integer asset units (asset decimals).
- `shares` are integer share units (18 decimals).
- Accounts are opaque non-empty strings.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum, unique
from typing import Any, Protocol

from ..core.fees import FeeRates, PerformanceClamp
from ..core.errors import MisconfiguredError


ZERO_ADDRESS = "0x" + "00" * 20


@unique
class QueueAction(Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@unique
class SettlementOrder(Enum):
    """How matured tickets of one owner are drained."""

    PARTITIONED = "partitioned"  # all deposits first, then all withdraws
    TICKET = "ticket"  # ticket enumeration order


@unique
class Event(Enum):
    DEPOSIT_QUEUED = "DepositQueued"
    WITHDRAW_QUEUED = "WithdrawQueued"
    DEPOSIT_CLAIMED = "DepositClaimed"
    WITHDRAW_CLAIMED = "WithdrawClaimed"
    FEES_UPDATED = "FeesUpdated"
    EPOCH_CONTRIBUTED = "EpochContributed"


@dataclass(frozen=True)
class QueuePosition:
    action: QueueAction
    amount: int  # assets for deposits, shares for withdraws
    target_epoch: int

    def __post_init__(self) -> None:
        if not isinstance(self.action, QueueAction):
            raise TypeError("action must be a QueueAction")
        for name, v in (("amount", self.amount), ("target_epoch", self.target_epoch)):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
        if self.amount <= 0:
            raise ValueError(f"amount must be positive: {self.amount}")
        if self.target_epoch <= 0:
            raise ValueError(f"target_epoch must be positive: {self.target_epoch}")


@dataclass(frozen=True)
class PoolConfig:
    """Deployment-time configuration. `fee_rates` is only the initial schedule."""

    operator: str
    fee_rates: FeeRates
    pool_account: str = "navpool"
    settlement_order: SettlementOrder = SettlementOrder.PARTITIONED
    performance_clamp: PerformanceClamp = PerformanceClamp.MINT_CLAMPED

    def __post_init__(self) -> None:
        for name, v in (("operator", self.operator), ("pool_account", self.pool_account)):
            if not isinstance(v, str) or not v or v == ZERO_ADDRESS:
                raise MisconfiguredError(f"{name} must be a non-zero account", reason=f"misconfigured:{name}")
        if self.operator == self.pool_account:
            raise MisconfiguredError("operator cannot be the pool account", reason="misconfigured:operator")
        if not isinstance(self.fee_rates, FeeRates):
            raise MisconfiguredError("fee_rates must be FeeRates", reason="misconfigured:fee_rates")


# -- Events -------------------------------------------------------------------

class _EventBase:
    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)  # type: ignore[call-overload]
        out["event"] = self.event.value  # type: ignore[attr-defined]
        return out


@dataclass(frozen=True)
class DepositQueued(_EventBase):
    account: str
    ticket_id: int
    assets: int
    target_epoch: int
    event: Event = field(default=Event.DEPOSIT_QUEUED, init=False)


@dataclass(frozen=True)
class WithdrawQueued(_EventBase):
    account: str
    ticket_id: int
    shares: int
    target_epoch: int
    event: Event = field(default=Event.WITHDRAW_QUEUED, init=False)


@dataclass(frozen=True)
class DepositClaimed(_EventBase):
    account: str
    ticket_id: int
    epoch: int
    share_price: int
    assets: int
    shares: int
    event: Event = field(default=Event.DEPOSIT_CLAIMED, init=False)


@dataclass(frozen=True)
class WithdrawClaimed(_EventBase):
    account: str
    ticket_id: int
    epoch: int
    share_price: int
    shares: int
    assets: int
    event: Event = field(default=Event.WITHDRAW_CLAIMED, init=False)


@dataclass(frozen=True)
class FeesUpdated(_EventBase):
    management_wad: int
    performance_wad: int
    previous_management_wad: int
    previous_performance_wad: int
    event: Event = field(default=Event.FEES_UPDATED, init=False)


@dataclass(frozen=True)
class FeeBreakdown:
    management_shares: int
    performance_shares: int
    management_assets: int
    performance_assets: int


@dataclass(frozen=True)
class EpochContributed(_EventBase):
    epoch: int
    timestamp: int
    elapsed_seconds: int
    nav: int
    supply_before: int
    price_pre_fee: int
    share_price: int
    high_water_before: int
    high_water_after: int
    fees: FeeBreakdown
    delta: int
    event: Event = field(default=Event.EPOCH_CONTRIBUTED, init=False)


PoolEvent = DepositQueued | WithdrawQueued | DepositClaimed | WithdrawClaimed | FeesUpdated | EpochContributed


@dataclass(frozen=True)
class EpochPreview:
    """Read-only simulation of the next transition."""

    epoch: int
    share_price: int
    delta: int
    high_water_after: int
    fees: FeeBreakdown
    supply_before: int
    elapsed_seconds: int


# -- Collaborator capabilities ------------------------------------------------

class ShareLedger(Protocol):
    def mint(self, account: str, amount: int) -> None: ...
    def burn(self, account: str, amount: int) -> None: ...
    def transfer(self, sender: str, recipient: str, amount: int) -> None: ...
    def total_supply(self) -> int: ...
    def balance_of(self, account: str) -> int: ...
    def snapshot(self) -> Any: ...
    def restore(self, snap: Any) -> None: ...


class TicketIndex(Protocol):
    def issue(self, owner: str) -> int: ...
    def revoke(self, ticket_id: int) -> None: ...
    def ticket_count_of(self, owner: str) -> int: ...
    def ticket_at(self, owner: str, index: int) -> int: ...
    def tickets_of(self, owner: str) -> tuple[int, ...]: ...
    def snapshot(self) -> Any: ...
    def restore(self, snap: Any) -> None: ...


class Custody(Protocol):
    decimals: int

    def transfer_in(self, sender: str, amount: int) -> None: ...
    def transfer_out(self, recipient: str, amount: int) -> None: ...
    def balance(self) -> int: ...
    def snapshot(self) -> Any: ...
    def restore(self, snap: Any) -> None: ...


# -- Command / result (non-raising API) ---------------------------------------

@unique
class Action(Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CLAIM = "claim"
    CONTRIBUTE_EPOCH = "contribute_epoch"
    SET_FEES = "set_fees"


@dataclass(frozen=True)
class PoolCommand:
    """Parameters for an action. Unused fields default to 0."""

    action: Action
    caller: str
    amount: int = 0            # deposit (assets) / withdraw (shares)
    nav: int = 0               # contribute_epoch
    management_wad: int = 0    # set_fees
    performance_wad: int = 0   # set_fees


@dataclass(frozen=True)
class StepResult:
    accepted: bool
    events: tuple[PoolEvent, ...] = ()
    rejection: str | None = None
