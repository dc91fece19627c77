"""Console reporter for scenario runs, rich in terminals and plain elsewhere."""

import os
import sys
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from .models import ScenarioRun, StepStatus
from .output_config import OutputFormat

_STATUS_STYLES = {
    "passed": ("✓ PASS", "green"),
    "failed": ("✗ FAIL", "red"),
    "unimplemented": ("? TODO", "yellow"),
    "skipped": ("- SKIP", "dim"),
}


class ConsoleReporter:
    """
    Console reporter that adapts to the environment.

    Uses rich tables and a progress bar in an interactive terminal, plain text
    in CI, when piped, or when JSON output was requested.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self._detect_environment()
        self.console: Optional[Console] = Console() if self.use_rich else None
        self.progress: Optional[Progress] = None
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None
        self._step_num = 0

    def _detect_environment(self) -> None:
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:  # AUTO
            is_terminal = sys.stdout.isatty()
            is_ci = any(name in os.environ for name in ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS"))
            self.use_rich = is_terminal and not is_ci

    @property
    def quiet(self) -> bool:
        return self.output_format == OutputFormat.JSON

    def start_scenario(self, total_steps: int, title: str) -> None:
        self._step_num = 0
        if self.quiet:
            return
        if self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("Step", style="dim", width=8)
            self.results_table.add_column("Text", width=60)
            self.results_table.add_column("Status", width=10)
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                console=self.console,
            )
            self.progress_task = self.progress.add_task(f"[cyan]Running {title}", total=total_steps)
            self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
            self.live.start()
        else:
            print(f"Running scenario: {title}")
            print(f"Total steps: {total_steps}")
            print("-" * 80)

    def report_step(self, text: str, status: str, detail: Optional[str] = None) -> None:
        """Report one finished step; ``detail`` carries the error or suggestion."""
        self._step_num += 1
        if self.quiet:
            return
        label, color = _STATUS_STYLES.get(status, (status.upper(), "white"))
        if self.use_rich and self.results_table is not None:
            self.results_table.add_row(str(self._step_num), text, Text(label, style=color))
            if detail and status != StepStatus.PASSED.value:
                self.results_table.add_row("", Text(detail, style=color), "")
            if self.progress is not None and self.progress_task is not None:
                self.progress.update(self.progress_task, advance=1)
        else:
            print(f"[{self._step_num}] {text} ... {label}")
            if detail and status != StepStatus.PASSED.value:
                print(f"  {detail}")

    def finish_scenario(self, run: ScenarioRun) -> None:
        if self.quiet:
            return
        total = len(run.steps)
        passed = run.count(StepStatus.PASSED)
        failed = run.count(StepStatus.FAILED)
        unimplemented = run.count(StepStatus.UNIMPLEMENTED)
        duration_ms = ((run.end_time or run.start_time) - run.start_time).total_seconds() * 1000
        ok = run.status.value == "passed"

        if self.use_rich and self.console is not None:
            if self.live:
                self.live.stop()
            summary_text = Text()
            summary_text.append(f"Total: {total}  ", style="bold")
            summary_text.append(f"Passed: {passed}  ", style="bold green")
            summary_text.append(f"Failed: {failed}  ", style="bold red" if failed else "bold green")
            summary_text.append(f"Unimplemented: {unimplemented}  ", style="bold yellow" if unimplemented else "bold green")
            summary_text.append(f"Duration: {duration_ms:.0f}ms", style="bold cyan")
            self.console.print()
            self.console.print(
                Panel(
                    summary_text,
                    title=Text(f"{run.title}: {run.status.value.upper()}", style="bold green" if ok else "bold red"),
                    border_style="green" if ok else "red",
                )
            )
        else:
            print("-" * 80)
            print(
                f"Total: {total} | Passed: {passed} | Failed: {failed} | "
                f"Unimplemented: {unimplemented} | Duration: {duration_ms:.0f}ms"
            )
            print(f"Scenario {run.title}: {run.status.value.upper()}")

    def print_error(self, message: str) -> None:
        if self.use_rich and self.console is not None:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}", file=sys.stderr)
