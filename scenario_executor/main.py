"""CLI entrypoint for scenario-executor."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import structlog
import typer

from .artifacts import write_run_artifacts
from .console_reporter import ConsoleReporter
from .drivers import BehaviorResolver
from .errors import ScenarioExecutorError
from .logging_utils import configure_logging
from .models import RunStatus, ScenarioDefinition, ScenarioRun, StepType
from .output_config import OutputFormat, get_log_format, get_output_format
from .parser import load_patterns, load_scenario, parse_scenario_text
from .registry import PatternRegistry
from .runner import ScenarioRunner

app = typer.Typer(help="Run Given/When/Then API scenarios against live HTTP endpoints.")

DEFAULT_OUTPUT_DIR = Path("artifacts/runs")


def build_registry(patterns_file: Optional[Path]) -> PatternRegistry:
    registry = PatternRegistry()
    for definition in load_patterns(patterns_file):
        registry.add(
            step_type=definition.step_type,
            pattern=definition.pattern,
            description=definition.description,
            behavior=definition.behavior,
        )
    return registry


def _make_sink(reporter: ConsoleReporter, events: list[dict[str, Any]]):
    log = structlog.get_logger("scenario_executor")

    def _sink(method: str, url: str, request: Any, response: Any) -> None:
        if method != "TEST_LOG":
            log.debug("api_call", method=method, url=url, status=(response or {}).get("status"))
            return
        events.append(request)
        if request.get("scope") == "step":
            details = request.get("details") or {}
            if request["status"] == "unimplemented":
                detail = details.get("suggestion")
            else:
                detail = request.get("error") or details.get("suggestion")
            reporter.report_step(request["step"], request["status"], detail)

    return _sink


async def _run_all(
    runner: ScenarioRunner,
    scenarios: list[ScenarioDefinition],
    *,
    auth_header: Optional[str],
    use_proxy: bool,
    run_id: Optional[str],
    reporter: ConsoleReporter,
    output_dir: Path,
) -> list[ScenarioRun]:
    runs: list[ScenarioRun] = []
    for index, scenario in enumerate(scenarios):
        events: list[dict[str, Any]] = []
        reporter.start_scenario(len(parse_scenario_text(scenario.content)), scenario.title or scenario.scenario_id)
        run = await runner.run_scenario(
            scenario.content,
            title=scenario.title,
            auth_header=scenario.auth_header or auth_header,
            scenario_id=scenario.scenario_id,
            run_id=(f"{run_id}-{index + 1}" if len(scenarios) > 1 else run_id) if run_id else None,
            use_proxy=use_proxy,
            event_sink=_make_sink(reporter, events),
        )
        reporter.finish_scenario(run)
        write_run_artifacts(run, events, output_dir)
        runs.append(run)
    return runs


@app.command()
def run(
    scenario: list[Path] = typer.Option(
        ...,
        "--scenario",
        "-s",
        exists=True,
        readable=True,
        help="Scenario file(s): .feature/.txt step text or YAML with scenario_id/title/content.",
    ),
    auth_header: Optional[str] = typer.Option(
        None,
        envvar="SCENARIO_AUTH_HEADER",
        help="Authorization header seeded into every run; wins over inline header steps.",
    ),
    proxy: bool = typer.Option(True, "--proxy/--no-proxy", help="Route requests through the configured proxy."),
    patterns: Optional[Path] = typer.Option(
        None,
        exists=True,
        readable=True,
        help="YAML file with custom step patterns (behavior given as module:function).",
    ),
    behaviors_path: Optional[Path] = typer.Option(
        None,
        exists=True,
        file_okay=False,
        help="Directory added to the import path when resolving custom behaviors.",
    ),
    output_dir: Path = typer.Option(DEFAULT_OUTPUT_DIR, help="Directory receiving per-run artifacts."),
    run_id: Optional[str] = typer.Option(None, help="Run id to use instead of a generated one."),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="auto, rich, plain or json (env: CONSOLE_OUTPUT_FORMAT).",
    ),
    log_level: str = typer.Option("WARNING", help="Log level for structured logs."),
) -> None:
    """Execute scenarios and write events, summary and JUnit artifacts per run."""

    fmt = get_output_format(output_format)
    configure_logging(log_level, get_log_format(fmt))
    reporter = ConsoleReporter(output_format=fmt)

    try:
        registry = build_registry(patterns)
        definitions = [load_scenario(path) for path in scenario]
    except ScenarioExecutorError as exc:
        reporter.print_error(str(exc))
        raise typer.Exit(code=2) from exc

    runner = ScenarioRunner(registry, resolver=BehaviorResolver(behaviors_path))
    runs = asyncio.run(
        _run_all(
            runner,
            definitions,
            auth_header=auth_header,
            use_proxy=proxy,
            run_id=run_id,
            reporter=reporter,
            output_dir=output_dir,
        )
    )

    if fmt == OutputFormat.JSON:
        typer.echo(json.dumps([item.model_dump(mode="json") for item in runs], indent=2))
    if any(item.status != RunStatus.PASSED for item in runs):
        raise typer.Exit(code=1)


@app.command("patterns")
def list_patterns(
    patterns: Optional[Path] = typer.Option(None, exists=True, readable=True, help="Custom patterns YAML."),
    step_type: Optional[StepType] = typer.Option(None, "--type", help="Only show patterns of this step type."),
) -> None:
    """List the registered step patterns."""

    try:
        registry = build_registry(patterns)
    except ScenarioExecutorError as exc:
        raise typer.BadParameter(str(exc)) from exc
    for pattern in registry.list_patterns():
        if step_type is not None and pattern.step_type != step_type:
            continue
        origin = "builtin" if pattern.is_builtin else "custom"
        typer.echo(f"{pattern.step_type.value:<6} {pattern.pattern}  [{origin}] {pattern.description}")


def main() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
