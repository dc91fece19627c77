"""In-memory index of scenario runs."""

from __future__ import annotations

import threading
from typing import Optional

from .models import ScenarioRun


class RunHistory:
    """Runs indexed by run id and grouped by scenario id, oldest first internally."""

    def __init__(self) -> None:
        self._runs: dict[str, ScenarioRun] = {}
        self._lock = threading.Lock()

    def record(self, run: ScenarioRun) -> None:
        with self._lock:
            self._runs[run.run_id] = run

    def get(self, run_id: str) -> Optional[ScenarioRun]:
        return self._runs.get(run_id)

    def runs_for(self, scenario_id: str) -> list[ScenarioRun]:
        """All runs of a scenario, newest first."""
        with self._lock:
            runs = [run for run in self._runs.values() if run.scenario_id == scenario_id]
        return list(reversed(runs))

    def latest(self, scenario_id: str) -> Optional[ScenarioRun]:
        runs = self.runs_for(scenario_id)
        return runs[0] if runs else None

    def all_runs(self) -> list[ScenarioRun]:
        with self._lock:
            return list(self._runs.values())

    def remove(self, run_id: str) -> bool:
        with self._lock:
            return self._runs.pop(run_id, None) is not None

    def clear(self, scenario_id: Optional[str] = None) -> int:
        """Delete every run, or only the runs of one scenario; returns how many went."""
        with self._lock:
            if scenario_id is None:
                removed = len(self._runs)
                self._runs.clear()
                return removed
            doomed = [run_id for run_id, run in self._runs.items() if run.scenario_id == scenario_id]
            for run_id in doomed:
                del self._runs[run_id]
            return len(doomed)
