"""Step pattern matching and execution engine for Given/When/Then API scenarios."""

from .context import CancellationToken, ExecutionContext
from .executor import StepExecutor
from .history import RunHistory
from .models import (
    ParsedStep,
    RunStatus,
    ScenarioRun,
    ScenarioStep,
    StepPattern,
    StepResult,
    StepStatus,
    StepType,
)
from .parser import parse_scenario_text
from .registry import PatternRegistry
from .runner import ScenarioRunner

__all__ = [
    "CancellationToken",
    "ExecutionContext",
    "ParsedStep",
    "PatternRegistry",
    "RunHistory",
    "RunStatus",
    "ScenarioRun",
    "ScenarioRunner",
    "ScenarioStep",
    "StepExecutor",
    "StepPattern",
    "StepResult",
    "StepStatus",
    "StepType",
    "parse_scenario_text",
]
