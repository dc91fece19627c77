from __future__ import annotations

from pathlib import Path

import pytest

from scenario_executor.context import ExecutionContext
from scenario_executor.drivers import BehaviorResolver
from scenario_executor.errors import BehaviorResolutionError
from scenario_executor.executor import StepExecutor, resolve_step_type
from scenario_executor.models import StepType, UnimplementedDetails
from scenario_executor.parser import parse_step
from scenario_executor.registry import PatternRegistry
from scenario_executor.similarity import suggest

from conftest import FakeTransport


@pytest.fixture
def executor(registry: PatternRegistry, transport: FakeTransport) -> StepExecutor:
    return StepExecutor(registry, transport)


def test_resolve_step_type() -> None:
    assert resolve_step_type(StepType.AND, StepType.WHEN) == StepType.WHEN
    assert resolve_step_type(StepType.AND, None) == StepType.AND
    assert resolve_step_type(StepType.THEN, StepType.GIVEN) == StepType.THEN


@pytest.mark.asyncio
async def test_unmatched_step_is_unimplemented_with_suggestion(
    executor: StepExecutor, registry: PatternRegistry
) -> None:
    step = parse_step("Then the sky should be blue")
    results = await executor.execute(step, ExecutionContext.start())

    assert len(results) == 1
    result = results[0]
    assert result.passed is False
    assert result.is_unimplemented
    assert isinstance(result.details, UnimplementedDetails)
    assert result.details.suggestion == suggest(step.clean_text, registry.candidates(StepType.THEN))


@pytest.mark.asyncio
async def test_behavior_exception_becomes_implementation_error(
    executor: StepExecutor, registry: PatternRegistry
) -> None:
    def explode(context, response, variables, step, clean_text, TestResult, send_request):
        raise ValueError("boom")

    registry.add(step_type="Then", pattern="^it explodes$", description="Explode", behavior=explode)

    results = await executor.execute(parse_step("Then it explodes"), ExecutionContext.start())

    assert [(r.name, r.passed, r.error) for r in results] == [("Implementation Error", False, "boom")]


@pytest.mark.asyncio
async def test_async_behavior_and_plain_dict_results(executor: StepExecutor, registry: PatternRegistry) -> None:
    async def remember(context, response, variables, step, clean_text, TestResult, send_request):
        variables["seen"] = clean_text
        return [
            {"name": "Remembered", "passed": True, "details": {"value": clean_text}},
            TestResult("Compared", False, {"expected": 1, "actual": 2}),
        ]

    registry.add(step_type="Given", pattern="^remember (.+)$", description="Remember", behavior=remember)
    context = ExecutionContext.start()

    results = await executor.execute(parse_step("Given remember me"), context)

    assert context.variables["seen"] == "remember me"
    assert [r.name for r in results] == ["Remembered", "Compared"]
    assert results[0].details.kind == "info"
    assert results[1].details.kind == "assertion"


@pytest.mark.asyncio
async def test_behavior_returning_garbage_is_an_implementation_error(
    executor: StepExecutor, registry: PatternRegistry
) -> None:
    registry.add(step_type="Then", pattern="^garbage$", description="Garbage", behavior=lambda *args: 42)

    results = await executor.execute(parse_step("Then garbage"), ExecutionContext.start())

    assert results[0].name == "Implementation Error"
    assert "list of results" in results[0].error


@pytest.mark.asyncio
async def test_behavior_reference_is_resolved_by_import(executor: StepExecutor, registry: PatternRegistry) -> None:
    registry.add(
        step_type="Then",
        pattern="^it worked$",
        description="Worked",
        behavior="scenario_executor.behaviors:check_response_success",
    )
    context = ExecutionContext.start()
    context.response.status = 204

    results = await executor.execute(parse_step("Then it worked"), context)

    assert results[0].name == "Success Check"
    assert results[0].passed


@pytest.mark.asyncio
async def test_unimportable_behavior_reference_fails_the_step(
    executor: StepExecutor, registry: PatternRegistry
) -> None:
    registry.add(step_type="Then", pattern="^ghost$", description="Ghost", behavior="no_such_module_xyz:run")

    results = await executor.execute(parse_step("Then ghost"), ExecutionContext.start())

    assert results[0].name == "Implementation Error"
    assert "no_such_module_xyz" in results[0].error


@pytest.mark.asyncio
async def test_and_step_matches_previous_step_type(executor: StepExecutor) -> None:
    context = ExecutionContext.start()
    context.response.status = 201

    results = await executor.execute(parse_step("And status should be 201"), context, StepType.THEN)

    assert results[0].passed


def test_resolver_imports_from_search_root(tmp_path: Path) -> None:
    module = tmp_path / "resolver_search_root_steps.py"
    module.write_text(
        "def greet(context, response, variables, step, clean_text, TestResult, send_request):\n"
        "    return [TestResult('Greet', True)]\n",
        encoding="utf-8",
    )
    resolver = BehaviorResolver(tmp_path)

    func = resolver.resolve("resolver_search_root_steps:greet")

    assert callable(func)
    assert resolver.resolve("resolver_search_root_steps:greet") is func
    with pytest.raises(BehaviorResolutionError):
        resolver.resolve("resolver_search_root_steps:missing")
