#!/usr/bin/env python3

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from navpool.integration.scenario import ScenarioError, load_scenario, run_scenario
from navpool.integration.snapshot import save_snapshot


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Replay a pool scenario (YAML or JSON) and report the outcome.")
    ap.add_argument("scenario", type=Path, help="Path to the scenario file")
    ap.add_argument("--json", action="store_true", help="Print the full report as JSON")
    ap.add_argument("--snapshot-out", type=Path, default=None, help="Write the final pool snapshot here")
    ap.add_argument("--no-strict", action="store_true", help="Do not fail on unmet step expectations")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        report = run_scenario(load_scenario(args.scenario), strict=not args.no_strict)
    except ScenarioError as exc:
        print(f"[replay] FAIL: {exc}")
        return 1

    if args.snapshot_out is not None:
        root = save_snapshot(report.pool, args.snapshot_out)
        print(f"[replay] snapshot written to {args.snapshot_out} (root={root})")

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
        return 0

    for outcome in report.outcomes:
        status = "ok" if outcome.result.accepted else f"REJECTED ({outcome.result.rejection})"
        events = ", ".join(e.event.value for e in outcome.result.events) or "-"
        print(f"[replay] #{outcome.index:<3} {outcome.command.action.value:<17} {outcome.command.caller:<10} {status}  {events}")
    pool = report.pool
    print(
        f"[replay] epoch={pool.current_epoch} price={pool.price_at(pool.current_epoch)} "
        f"hwm={pool.high_water_mark} pending_deposits={pool.pending_deposits} "
        f"pending_withdraw={pool.pending_withdraw} reserve={pool.withdraw_reserve}"
    )
    print(f"[replay] accepted={report.accepted} rejected={report.rejected} root={report.state_root()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
