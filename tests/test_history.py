from __future__ import annotations

from datetime import datetime, timezone

from scenario_executor.history import RunHistory
from scenario_executor.models import ScenarioRun


def _run(run_id: str, scenario_id: str = "orders") -> ScenarioRun:
    return ScenarioRun(scenario_id=scenario_id, run_id=run_id, title="Orders", start_time=datetime.now(timezone.utc))


def test_runs_for_lists_newest_first() -> None:
    history = RunHistory()
    for run_id in ("r1", "r2", "r3"):
        history.record(_run(run_id))
    history.record(_run("other", scenario_id="users"))

    assert [run.run_id for run in history.runs_for("orders")] == ["r3", "r2", "r1"]
    assert history.latest("orders").run_id == "r3"
    assert history.latest("missing") is None
    assert len(history.all_runs()) == 4


def test_remove_single_run() -> None:
    history = RunHistory()
    history.record(_run("r1"))
    history.record(_run("r2"))

    assert history.remove("r1") is True
    assert history.remove("r1") is False
    assert history.get("r1") is None
    assert [run.run_id for run in history.runs_for("orders")] == ["r2"]


def test_clear_one_scenario_or_everything() -> None:
    history = RunHistory()
    history.record(_run("r1"))
    history.record(_run("r2"))
    history.record(_run("u1", scenario_id="users"))

    assert history.clear("orders") == 2
    assert history.runs_for("orders") == []
    assert history.get("u1") is not None

    assert history.clear() == 1
    assert history.all_runs() == []
