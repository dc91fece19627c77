"""Matches a step to a pattern and runs its behavior against the run context."""

from __future__ import annotations

import inspect
from typing import Any, Optional

import structlog

from .behaviors import TestResult
from .context import ExecutionContext
from .drivers import BehaviorResolver
from .models import ParsedStep, SendRequest, StepResult, StepType, UnimplementedDetails
from .registry import PatternRegistry
from .similarity import suggest

LOGGER = structlog.get_logger("scenario_executor")


def resolve_step_type(step_type: StepType, previous_type: Optional[StepType]) -> StepType:
    """``And`` takes the type of the step before it; everything else keeps its own."""
    if step_type == StepType.AND and previous_type is not None:
        return previous_type
    return step_type


def _normalize_results(outcome: Any) -> list[StepResult]:
    if isinstance(outcome, StepResult):
        return [outcome]
    if isinstance(outcome, dict):
        return [StepResult.model_validate(outcome)]
    if not isinstance(outcome, (list, tuple)):
        raise TypeError(f"Step behavior must return a list of results, got {type(outcome).__name__}")
    return [item if isinstance(item, StepResult) else StepResult.model_validate(item) for item in outcome]


class StepExecutor:
    """Executes single steps; never lets a behavior error escape."""

    def __init__(
        self,
        registry: PatternRegistry,
        send_request: SendRequest,
        resolver: Optional[BehaviorResolver] = None,
    ) -> None:
        self._registry = registry
        self._send_request = send_request
        self._resolver = resolver or BehaviorResolver()

    async def execute(
        self,
        step: ParsedStep,
        context: ExecutionContext,
        previous_type: Optional[StepType] = None,
    ) -> list[StepResult]:
        results, _ = await self.execute_with_pattern(step, context, previous_type)
        return results

    async def execute_with_pattern(
        self,
        step: ParsedStep,
        context: ExecutionContext,
        previous_type: Optional[StepType] = None,
    ) -> tuple[list[StepResult], Optional[str]]:
        """Run ``step`` and also report the id of the pattern it matched."""
        effective_type = resolve_step_type(step.step_type, previous_type)
        pattern = self._registry.find_match(step.step_type, step.clean_text, previous_type)
        if pattern is None:
            LOGGER.info("step_unimplemented", step=step.raw_text, step_type=effective_type.value)
            return [self._unimplemented(step, previous_type)], None

        log = LOGGER.bind(pattern_id=pattern.id, step_type=effective_type.value)
        log.debug("step_executing", step=step.raw_text)
        try:
            behavior = self._resolver.resolve(pattern.behavior)
            outcome = behavior(
                context,
                context.response,
                context.variables,
                step.raw_text,
                step.clean_text,
                TestResult,
                self._send_request,
            )
            if inspect.isawaitable(outcome):
                outcome = await outcome
            results = _normalize_results(outcome)
        except Exception as exc:
            log.warning("step_behavior_failed", step=step.raw_text, error=str(exc), exc_info=True)
            results = [StepResult(name="Implementation Error", passed=False, error=str(exc) or type(exc).__name__)]
        return results, pattern.id

    def _unimplemented(
        self,
        step: ParsedStep,
        previous_type: Optional[StepType],
    ) -> StepResult:
        candidates = self._registry.candidates(step.step_type, previous_type)
        if not candidates:
            candidates = self._registry.list_patterns()
        return StepResult(
            name="Pattern Match",
            passed=False,
            error="No matching pattern found",
            details=UnimplementedDetails(suggestion=suggest(step.clean_text, candidates)),
        )
