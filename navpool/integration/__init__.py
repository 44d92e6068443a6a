"""
Integration layer: snapshot persistence and scenario replay around `NavPool`.
"""

from .scenario import ScenarioError, ScenarioReport, load_scenario, run_scenario
from .snapshot import load_snapshot, pool_from_snapshot, pool_snapshot, save_snapshot, state_root

__all__ = [
    "ScenarioError",
    "ScenarioReport",
    "load_scenario",
    "run_scenario",
    "load_snapshot",
    "pool_from_snapshot",
    "pool_snapshot",
    "save_snapshot",
    "state_root",
]
