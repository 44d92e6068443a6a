"""
Scenario replay: run a scripted sequence of pool commands.

A scenario is a YAML (or JSON) mapping:

    asset: {symbol: USDC, decimals: 6}
    operator: op
    fees: {management_wad: 20000000000000000, performance_wad: 200000000000000000}
    start_time: 1700000000
    balances: {alice: 1000, op: 100000}
    steps:
      - {action: deposit, caller: alice, amount: 100}
      - {action: contribute_epoch, caller: op, nav: 0, at: 1700086400}
      - {action: claim, caller: alice, expect: accepted}

Optional keys: `pool_account`, `settlement_order`, `performance_clamp`. Each
step may carry `at` (absolute clock time, never decreasing) and `expect`
(`accepted` / `rejected`); a mismatched expectation fails the replay.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..core.fees import FeeRates, PerformanceClamp
from ..pool.engine import NavPool, step
from ..pool.types import Action, PoolCommand, PoolConfig, SettlementOrder, StepResult
from ..state.custody import AssetCustody
from .snapshot import state_root


logger = logging.getLogger(__name__)


class ScenarioError(Exception):
    """Raised for malformed scenarios or unmet step expectations."""


class ManualClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def set(self, now: int) -> None:
        if now < self.now:
            raise ScenarioError(f"clock cannot move backwards: {now} < {self.now}")
        self.now = now

    def __call__(self) -> int:
        return self.now


@dataclass(frozen=True)
class StepOutcome:
    index: int
    command: PoolCommand
    result: StepResult


@dataclass
class ScenarioReport:
    pool: NavPool
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def accepted(self) -> int:
        return sum(1 for o in self.outcomes if o.result.accepted)

    @property
    def rejected(self) -> int:
        return len(self.outcomes) - self.accepted

    def state_root(self) -> str:
        return state_root(self.pool)

    def to_dict(self) -> dict[str, Any]:
        pool = self.pool
        return {
            "steps": [
                {
                    "index": o.index,
                    "action": o.command.action.value,
                    "caller": o.command.caller,
                    "accepted": o.result.accepted,
                    "rejection": o.result.rejection,
                    "events": [e.to_dict() for e in o.result.events],
                }
                for o in self.outcomes
            ],
            "current_epoch": pool.current_epoch,
            "high_water_mark": pool.high_water_mark,
            "pending_deposits": pool.pending_deposits,
            "pending_withdraw": pool.pending_withdraw,
            "withdraw_reserve": pool.withdraw_reserve,
            "state_root": self.state_root(),
        }


def load_scenario(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        doc = json.loads(text)
    else:
        doc = yaml.safe_load(text)
    if not isinstance(doc, Mapping):
        raise ScenarioError("scenario must be a mapping")
    return dict(doc)


def _int(raw: Mapping[str, Any], key: str, default: int = 0) -> int:
    v = raw.get(key, default)
    if not isinstance(v, int) or isinstance(v, bool):
        raise ScenarioError(f"{key} must be an int, got {v!r}")
    return v


def _command(raw: Mapping[str, Any]) -> PoolCommand:
    try:
        action = Action(raw["action"])
    except (KeyError, ValueError) as exc:
        raise ScenarioError(f"invalid step action: {raw.get('action')!r}") from exc
    caller = raw.get("caller")
    if not isinstance(caller, str) or not caller:
        raise ScenarioError("step caller must be a non-empty string")
    return PoolCommand(
        action=action,
        caller=caller,
        amount=_int(raw, "amount"),
        nav=_int(raw, "nav"),
        management_wad=_int(raw, "management_wad"),
        performance_wad=_int(raw, "performance_wad"),
    )


def build_pool(doc: Mapping[str, Any], clock: ManualClock) -> NavPool:
    asset = doc.get("asset") or {}
    fees = doc.get("fees") or {}
    custody = AssetCustody(symbol=str(asset.get("symbol", "ASSET")), decimals=_int(asset, "decimals", 18))
    for account, amount in (doc.get("balances") or {}).items():
        custody.credit(str(account), int(amount))

    config = PoolConfig(
        operator=str(doc.get("operator", "")),
        pool_account=str(doc.get("pool_account", "navpool")),
        fee_rates=FeeRates(
            management_wad=_int(fees, "management_wad"),
            performance_wad=_int(fees, "performance_wad"),
        ),
        settlement_order=SettlementOrder(doc.get("settlement_order", SettlementOrder.PARTITIONED.value)),
        performance_clamp=PerformanceClamp(doc.get("performance_clamp", PerformanceClamp.MINT_CLAMPED.value)),
    )
    return NavPool(config, custody=custody, clock=clock)


def run_scenario(doc: Mapping[str, Any], *, strict: bool = True) -> ScenarioReport:
    """Replay every step. With `strict`, an unmet `expect` raises ScenarioError."""
    clock = ManualClock(_int(doc, "start_time", 0))
    report = ScenarioReport(pool=build_pool(doc, clock))

    steps = doc.get("steps") or []
    if not isinstance(steps, list):
        raise ScenarioError("steps must be a list")
    for index, raw in enumerate(steps):
        if not isinstance(raw, Mapping):
            raise ScenarioError(f"step {index} must be a mapping")
        if "at" in raw:
            clock.set(_int(raw, "at"))
        cmd = _command(raw)
        result = step(report.pool, cmd)
        report.outcomes.append(StepOutcome(index=index, command=cmd, result=result))
        if not result.accepted:
            logger.info("step %d (%s) rejected: %s", index, cmd.action.value, result.rejection)

        expect = raw.get("expect")
        if strict and expect is not None:
            if expect not in ("accepted", "rejected"):
                raise ScenarioError(f"step {index}: expect must be 'accepted' or 'rejected'")
            if (expect == "accepted") != result.accepted:
                raise ScenarioError(
                    f"step {index} ({cmd.action.value}) expected {expect}, got "
                    f"{'accepted' if result.accepted else 'rejected: ' + str(result.rejection)}",
                )
    return report
