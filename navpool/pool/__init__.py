"""`pool`: epoch settlement and queue accounting for a NAV-priced fund.

- deterministic, integer-only arithmetic (WAD-scaled prices and rates),
- lazy, ticket-based settlement of queued deposits and withdrawals,
- fail-closed guards, atomic entry points and invariant checks.

Public API:
- `NavPool(config, custody=...)` with `deposit`, `withdraw`, `claim`,
  `contribute_epoch`, `preview`, `set_fees`
- `step(pool, command) -> StepResult`
- `step_or_raise(pool, command) -> StepResult` (raises on rejection)
"""

from .engine import NavPool, step, step_or_raise
from .state import PoolContext, PoolState, initial_state, state_from_dict, state_to_dict
from .types import (
    Action,
    DepositClaimed,
    DepositQueued,
    EpochContributed,
    EpochPreview,
    Event,
    FeeBreakdown,
    FeesUpdated,
    PoolCommand,
    PoolConfig,
    QueueAction,
    QueuePosition,
    SettlementOrder,
    StepResult,
    WithdrawClaimed,
    WithdrawQueued,
)

__all__ = [
    "NavPool",
    "step",
    "step_or_raise",
    "PoolContext",
    "PoolState",
    "initial_state",
    "state_from_dict",
    "state_to_dict",
    "Action",
    "DepositClaimed",
    "DepositQueued",
    "EpochContributed",
    "EpochPreview",
    "Event",
    "FeeBreakdown",
    "FeesUpdated",
    "PoolCommand",
    "PoolConfig",
    "QueueAction",
    "QueuePosition",
    "SettlementOrder",
    "StepResult",
    "WithdrawClaimed",
    "WithdrawQueued",
]
