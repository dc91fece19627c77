"""Scenario, pattern and runtime models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StepType(str, Enum):
    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"
    AND = "And"


class StepStatus(str, Enum):
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    UNIMPLEMENTED = "unimplemented"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    UNIMPLEMENTED = "unimplemented"
    CANCELLED = "cancelled"


class StepPattern(BaseModel):
    """Regex-keyed behavior used to execute matching steps.

    ``behavior`` is either a callable or a ``"module:function"`` reference
    resolved at execution time.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    step_type: StepType
    pattern: str
    description: str
    behavior: Union[Callable[..., Any], str]
    is_builtin: bool = False

    @property
    def behavior_ref(self) -> str:
        if isinstance(self.behavior, str):
            return self.behavior
        return f"{self.behavior.__module__}:{self.behavior.__qualname__}"


class ParsedStep(BaseModel):
    """One scenario line classified by its leading keyword."""

    model_config = ConfigDict(frozen=True)

    step_type: StepType
    raw_text: str
    clean_text: str


class ResponseSnapshot(BaseModel):
    """Last HTTP response seen by a run; the hand-off between When and Then steps."""

    status: Optional[int] = None
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class AssertionDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    kind: Literal["assertion"] = "assertion"
    expected: Any = None
    actual: Any = None
    suggestion: Optional[str] = None


class UnimplementedDetails(BaseModel):
    kind: Literal["unimplemented"] = "unimplemented"
    suggestion: str
    is_unimplemented: Literal[True] = True


class ErrorDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    kind: Literal["error"] = "error"
    message: str
    suggestion: Optional[str] = None


class InfoDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    kind: Literal["info"] = "info"


StepDetails = Annotated[
    Union[AssertionDetails, UnimplementedDetails, ErrorDetails, InfoDetails],
    Field(discriminator="kind"),
]


def _infer_details_kind(details: dict[str, Any]) -> str:
    if details.get("is_unimplemented") or details.get("isUnimplemented"):
        return "unimplemented"
    if "expected" in details or "actual" in details:
        return "assertion"
    if "message" in details:
        return "error"
    return "info"


class StepResult(BaseModel):
    """Outcome of one check performed by a step behavior."""

    name: str
    passed: bool
    error: Optional[str] = None
    details: Optional[StepDetails] = None

    @model_validator(mode="before")
    @classmethod
    def _tag_plain_details(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("details"), dict) and "kind" not in data["details"]:
            details = dict(data["details"])
            details["kind"] = _infer_details_kind(details)
            details.pop("isUnimplemented", None)
            data = {**data, "details": details}
        return data

    @model_validator(mode="after")
    def _unimplemented_never_passes(self) -> StepResult:
        if self.is_unimplemented and self.passed:
            raise ValueError("An unimplemented step result cannot pass")
        return self

    @property
    def is_unimplemented(self) -> bool:
        return isinstance(self.details, UnimplementedDetails)

    @property
    def suggestion(self) -> Optional[str]:
        return getattr(self.details, "suggestion", None)


class ScenarioStep(BaseModel):
    """Record of one executed step kept in a run."""

    step_type: StepType
    effective_type: StepType
    text: str
    status: StepStatus = StepStatus.RUNNING
    pattern_id: Optional[str] = None
    results: list[StepResult] = Field(default_factory=list)
    response: Optional[ResponseSnapshot] = None


class ScenarioRun(BaseModel):
    """One execution of a scenario."""

    scenario_id: str
    run_id: str
    title: str
    status: RunStatus = RunStatus.RUNNING
    steps: list[ScenarioStep] = Field(default_factory=list)
    start_time: datetime
    end_time: Optional[datetime] = None

    @property
    def is_sealed(self) -> bool:
        return self.end_time is not None

    def count(self, status: StepStatus) -> int:
        return sum(1 for step in self.steps if step.status == status)


class TestLogEvent(BaseModel):
    """Live progress event delivered to the event sink."""

    __test__ = False

    type: Literal["test-log"] = "test-log"
    scope: Literal["step", "scenario"] = "step"
    scenario_id: str
    run_id: str
    content: str
    step: Optional[str] = None
    error: Optional[str] = None
    status: str
    color: str
    timestamp: datetime
    details: Optional[dict[str, Any]] = None


class ScenarioDefinition(BaseModel):
    """Scenario file loaded from YAML (or wrapped around a plain text file)."""

    scenario_id: str
    title: Optional[str] = None
    content: str
    auth_header: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PatternDefinition(BaseModel):
    """User-authored pattern entry in a patterns YAML file."""

    model_config = ConfigDict(populate_by_name=True)

    step_type: StepType = Field(alias="type")
    pattern: str
    description: str
    behavior: str


SendRequest = Callable[..., Awaitable[Union[ResponseSnapshot, Mapping[str, Any]]]]
EventSink = Callable[[str, str, Any, Any], None]
