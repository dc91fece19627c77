"""Scenario execution engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog

from .context import CancellationToken, ExecutionContext
from .drivers import BehaviorResolver
from .errors import RunStateError
from .executor import StepExecutor, resolve_step_type
from .history import RunHistory
from .http_executor import HttpTransport
from .models import (
    EventSink,
    ParsedStep,
    RunStatus,
    ScenarioRun,
    ScenarioStep,
    SendRequest,
    StepResult,
    StepStatus,
    StepType,
    TestLogEvent,
)
from .parser import extract_title, parse_scenario_text, parse_step
from .registry import PatternRegistry

LOGGER = structlog.get_logger("scenario_executor")

STATUS_COLORS = {
    "passed": "#4caf50",
    "failed": "#f44336",
    "unimplemented": "#ff9800",
    "cancelled": "#9e9e9e",
    "skipped": "#9e9e9e",
}
STATUS_ICONS = {"passed": "✓", "failed": "✗", "unimplemented": "?", "skipped": "-"}


def step_status(results: Iterable[StepResult]) -> StepStatus:
    results = list(results)
    if any(result.is_unimplemented for result in results):
        return StepStatus.UNIMPLEMENTED
    if all(result.passed for result in results):
        return StepStatus.PASSED
    return StepStatus.FAILED


def run_status(steps: Iterable[ScenarioStep], cancelled: bool = False) -> RunStatus:
    """Final status: cancelled, else unimplemented > failed > passed."""
    statuses = {step.status for step in steps}
    if cancelled:
        return RunStatus.CANCELLED
    if StepStatus.UNIMPLEMENTED in statuses:
        return RunStatus.UNIMPLEMENTED
    if StepStatus.FAILED in statuses:
        return RunStatus.FAILED
    return RunStatus.PASSED


def format_result_display(result: StepResult) -> str:
    lines = [result.name]
    if not result.passed:
        if result.is_unimplemented:
            lines.append("   Status: Not Implemented")
        if result.error:
            lines.append(f"   Error: {result.error}")
    details = result.details
    if details is not None:
        expected = getattr(details, "expected", None)
        actual = getattr(details, "actual", None)
        if expected is not None or actual is not None:
            lines.append(f"   Expected: {expected!r}")
            lines.append(f"   Actual: {actual!r}")
        if result.suggestion:
            lines.append(f"   Suggestion: {result.suggestion}")
    return "\n".join(lines)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass
class ActiveRun:
    """A run in progress together with the context only it may touch."""

    run: ScenarioRun
    context: ExecutionContext
    previous_type: Optional[StepType] = None
    cancelled: bool = False

    @property
    def log(self) -> structlog.stdlib.BoundLogger:
        return LOGGER.bind(run_id=self.run.run_id, scenario_id=self.run.scenario_id)


class ScenarioRunner:
    """Drives scenario runs. Holds no per-run state; each run carries its own context."""

    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        *,
        send_request: Optional[SendRequest] = None,
        history: Optional[RunHistory] = None,
        resolver: Optional[BehaviorResolver] = None,
    ) -> None:
        self.registry = registry or PatternRegistry()
        self.history = history or RunHistory()
        self._executor = StepExecutor(self.registry, send_request or HttpTransport(), resolver)

    def start_run(
        self,
        title: str,
        *,
        auth_header: Optional[str] = None,
        scenario_id: Optional[str] = None,
        run_id: Optional[str] = None,
        use_proxy: bool = True,
        event_sink: Optional[EventSink] = None,
    ) -> ActiveRun:
        run = ScenarioRun(
            scenario_id=scenario_id or _new_id("scenario"),
            run_id=run_id or _new_id("run"),
            title=title,
            start_time=datetime.now(timezone.utc),
        )
        if self.history.get(run.run_id) is not None:
            raise RunStateError(f"Run id {run.run_id} is already in history")
        context = ExecutionContext.start(auth_header=auth_header, use_proxy=use_proxy, event_sink=event_sink)
        self.history.record(run)
        active = ActiveRun(run=run, context=context)
        active.log.info("run_started", title=title, use_proxy=use_proxy)
        return active

    async def run_step(self, active: ActiveRun, step: ParsedStep | str) -> list[StepResult]:
        if active.run.is_sealed:
            raise RunStateError(f"Run {active.run.run_id} is already sealed")
        parsed = parse_step(step) if isinstance(step, str) else step
        effective_type = resolve_step_type(parsed.step_type, active.previous_type)

        results, pattern_id = await self._executor.execute_with_pattern(parsed, active.context, active.previous_type)

        record = ScenarioStep(
            step_type=parsed.step_type,
            effective_type=effective_type,
            text=parsed.raw_text,
            status=step_status(results),
            pattern_id=pattern_id,
            results=results,
            response=active.context.response.model_copy(deep=True) if effective_type == StepType.WHEN else None,
        )
        active.run.steps.append(record)
        active.previous_type = effective_type
        active.log.info("step_finished", step=parsed.raw_text, status=record.status.value, pattern_id=pattern_id)

        first = results[0] if results else None
        self._emit(
            active,
            scope="step",
            content=f"{STATUS_ICONS[record.status.value]} {parsed.raw_text}",
            status=record.status.value,
            step=parsed.raw_text,
            error=next((result.error for result in results if not result.passed and result.error), None),
            details=first.details.model_dump(mode="json") if first and first.details else None,
        )
        return results

    def skip_step(self, active: ActiveRun, step: ParsedStep) -> None:
        active.run.steps.append(
            ScenarioStep(
                step_type=step.step_type,
                effective_type=resolve_step_type(step.step_type, active.previous_type),
                text=step.raw_text,
                status=StepStatus.SKIPPED,
            )
        )

    def cancel_run(self, active: ActiveRun, remaining: Iterable[ParsedStep] = ()) -> None:
        for step in remaining:
            self.skip_step(active, step)
        active.cancelled = True

    def end_run(self, active: ActiveRun) -> ScenarioRun:
        run = active.run
        if run.is_sealed:
            raise RunStateError(f"Run {run.run_id} is already sealed")
        executed = [step for step in run.steps if step.status != StepStatus.SKIPPED]
        run.status = run_status(executed, cancelled=active.cancelled)
        run.end_time = datetime.now(timezone.utc)
        active.log.info(
            "run_finished",
            status=run.status.value,
            steps=len(run.steps),
            failed=run.count(StepStatus.FAILED),
            unimplemented=run.count(StepStatus.UNIMPLEMENTED),
        )
        self._emit(
            active,
            scope="scenario",
            content=f"Scenario: {run.title} ({run.status.value})",
            status=run.status.value,
        )
        return run

    async def run_scenario(
        self,
        content: str,
        *,
        title: Optional[str] = None,
        auth_header: Optional[str] = None,
        scenario_id: Optional[str] = None,
        run_id: Optional[str] = None,
        use_proxy: bool = True,
        event_sink: Optional[EventSink] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ScenarioRun:
        """Run every step of ``content`` in order and return the sealed run."""
        steps = parse_scenario_text(content)
        active = self.start_run(
            title or extract_title(content),
            auth_header=auth_header,
            scenario_id=scenario_id,
            run_id=run_id,
            use_proxy=use_proxy,
            event_sink=event_sink,
        )
        for index, step in enumerate(steps):
            if cancel_token is not None and cancel_token.cancelled:
                active.log.info("run_cancelled", remaining=len(steps) - index)
                self.cancel_run(active, steps[index:])
                break
            await self.run_step(active, step)
        return self.end_run(active)

    @staticmethod
    def _emit(
        active: ActiveRun,
        *,
        scope: str,
        content: str,
        status: str,
        step: Optional[str] = None,
        error: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        event = TestLogEvent(
            scope=scope,
            step=step,
            error=error,
            scenario_id=active.run.scenario_id,
            run_id=active.run.run_id,
            content=content,
            status=status,
            color=STATUS_COLORS.get(status, "inherit"),
            timestamp=datetime.now(timezone.utc),
            details=details,
        )
        active.context.emit("TEST_LOG", "test-result", event.model_dump(mode="json"), None)
