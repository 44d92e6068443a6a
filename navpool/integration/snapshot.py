"""
Pool snapshots: canonical JSON persistence and state-root hashing.

A snapshot captures the pool state plus the in-memory collaborators (share
balances, live tickets, asset custody). Encoding is canonical, so two pools in
the same logical state always produce the same `state_root()`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from ..core.fees import FeeRates, PerformanceClamp
from ..pool.engine import NavPool
from ..pool.state import state_from_dict, state_to_dict
from ..pool.types import PoolConfig, SettlementOrder
from ..state.canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex
from ..state.custody import AssetCustody, TransferHook
from ..state.shares import ShareTable
from ..state.tickets import TicketRegistry


SNAPSHOT_VERSION = 1


def _require_in_memory(pool: NavPool) -> tuple[ShareTable, TicketRegistry, AssetCustody]:
    shares, tickets, custody = pool.shares, pool.tickets, pool.custody
    if not isinstance(shares, ShareTable):
        raise TypeError("snapshots require a ShareTable share ledger")
    if not isinstance(tickets, TicketRegistry):
        raise TypeError("snapshots require a TicketRegistry")
    if not isinstance(custody, AssetCustody):
        raise TypeError("snapshots require an AssetCustody")
    return shares, tickets, custody


def pool_snapshot(pool: NavPool) -> dict[str, Any]:
    shares, tickets, custody = _require_in_memory(pool)
    cfg = pool.config
    balances, total_supply = shares.snapshot()
    owner_of, next_ticket = tickets.snapshot()
    accounts, pool_balance = custody.snapshot()
    return {
        "version": SNAPSHOT_VERSION,
        "config": {
            "operator": cfg.operator,
            "pool_account": cfg.pool_account,
            "settlement_order": cfg.settlement_order.value,
            "performance_clamp": cfg.performance_clamp.value,
            "fee_rates": {
                "management_wad": cfg.fee_rates.management_wad,
                "performance_wad": cfg.fee_rates.performance_wad,
            },
        },
        "asset": {"symbol": custody.symbol, "decimals": custody.decimals},
        "state": state_to_dict(pool.state),
        "shares": {"balances": balances, "total_supply": total_supply},
        "tickets": {"owners": {str(t): o for t, o in owner_of.items()}, "next_id": next_ticket},
        "custody": {"accounts": accounts, "pool_balance": pool_balance},
    }


def state_root(pool: NavPool) -> str:
    """sha256 over the canonical snapshot encoding."""
    return sha256_hex(domain_sep_bytes("pool_snapshot") + canonical_json_bytes(pool_snapshot(pool)))


def pool_from_snapshot(
    snap: Mapping[str, Any],
    *,
    clock: Optional[Callable[[], int]] = None,
    on_transfer: Optional[TransferHook] = None,
) -> NavPool:
    if snap.get("version") != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version: {snap.get('version')!r}")

    cfg = snap["config"]
    config = PoolConfig(
        operator=cfg["operator"],
        pool_account=cfg["pool_account"],
        settlement_order=SettlementOrder(cfg["settlement_order"]),
        performance_clamp=PerformanceClamp(cfg["performance_clamp"]),
        fee_rates=FeeRates(
            management_wad=int(cfg["fee_rates"]["management_wad"]),
            performance_wad=int(cfg["fee_rates"]["performance_wad"]),
        ),
    )

    custody = AssetCustody(
        symbol=snap["asset"]["symbol"],
        decimals=int(snap["asset"]["decimals"]),
        on_transfer=on_transfer,
    )
    custody.restore((
        {a: int(v) for a, v in snap["custody"]["accounts"].items()},
        int(snap["custody"]["pool_balance"]),
    ))

    shares = ShareTable()
    shares.restore((
        {a: int(v) for a, v in snap["shares"]["balances"].items()},
        int(snap["shares"]["total_supply"]),
    ))

    tickets = TicketRegistry()
    tickets.restore((
        {int(t): o for t, o in snap["tickets"]["owners"].items()},
        int(snap["tickets"]["next_id"]),
    ))

    kwargs: dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock
    return NavPool(
        config,
        custody=custody,
        shares=shares,
        tickets=tickets,
        state=state_from_dict(snap["state"]),
        **kwargs,
    )


def save_snapshot(pool: NavPool, path: Path) -> str:
    """Write the canonical snapshot to `path`; returns its state root."""
    path.write_bytes(canonical_json_bytes(pool_snapshot(pool)))
    return state_root(pool)


def load_snapshot(path: Path, **kwargs: Any) -> NavPool:
    return pool_from_snapshot(json.loads(path.read_text(encoding="utf-8")), **kwargs)
