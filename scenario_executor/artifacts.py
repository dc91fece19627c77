"""Run artifacts: event log, JSON summary and JUnit report."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import ScenarioRun, StepStatus
from .runner import format_result_display


@dataclass
class RunArtifacts:
    run_dir: Path
    events_file: Path
    summary_file: Path
    junit_file: Path

    @classmethod
    def prepare(cls, output_root: Path, run_id: str) -> RunArtifacts:
        run_dir = output_root / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            run_dir=run_dir,
            events_file=run_dir / "events.jsonl",
            summary_file=run_dir / "summary.json",
            junit_file=run_dir / "results.junit.xml",
        )


def write_run_artifacts(run: ScenarioRun, events: list[dict[str, Any]], output_root: Path) -> RunArtifacts:
    artifacts = RunArtifacts.prepare(output_root, run.run_id)
    with artifacts.events_file.open("w", encoding="utf-8") as handle:
        for event in events:
            handle.write(json.dumps(event) + "\n")
    artifacts.summary_file.write_text(run.model_dump_json(indent=2), encoding="utf-8")
    write_junit(run, artifacts.junit_file)
    return artifacts


def write_junit(run: ScenarioRun, junit_file: Path) -> None:
    not_passed = [step for step in run.steps if step.status in (StepStatus.FAILED, StepStatus.UNIMPLEMENTED)]
    skipped = [step for step in run.steps if step.status == StepStatus.SKIPPED]
    suite = ET.Element(
        "testsuite",
        attrib={
            "name": run.title,
            "tests": str(len(run.steps)),
            "failures": str(len(not_passed)),
            "skipped": str(len(skipped)),
        },
    )
    for step in run.steps:
        case = ET.SubElement(suite, "testcase", attrib={"classname": run.scenario_id, "name": step.text})
        if step.status == StepStatus.SKIPPED:
            ET.SubElement(case, "skipped", attrib={"message": "Run cancelled"})
        elif step.status in (StepStatus.FAILED, StepStatus.UNIMPLEMENTED):
            first = step.results[0] if step.results else None
            message = "Step not implemented" if step.status == StepStatus.UNIMPLEMENTED else "Step failed"
            failure = ET.SubElement(
                case,
                "failure",
                attrib={"message": (first.error if first and first.error else message), "type": step.status.value},
            )
            failure.text = "\n".join(format_result_display(result) for result in step.results)
    ET.ElementTree(suite).write(junit_file, encoding="utf-8", xml_declaration=True)
