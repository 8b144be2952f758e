"""Console reporter with environment detection for suite progress output."""

import os
import sys
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from .models import AggregateSummary, RunResult, ScenarioDescriptor
from .output_config import OutputFormat


class ConsoleReporter:
    """
    Smart console reporter that adapts to environment.

    Automatically detects:
    - Interactive terminals (use rich with progress bars)
    - CI/CD environments (use plain text)
    - Pipe/redirect scenarios (use plain text)
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self._detect_environment()

        if self.use_rich:
            self.console = Console()
            self._setup_rich_components()
        else:
            self.console = None

    def _detect_environment(self) -> None:
        """Detect if we should use rich output or plain text."""
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:  # AUTO
            # Rich only when stdout is a terminal and we are not in CI
            is_terminal = sys.stdout.isatty()
            is_ci = any([
                'CI' in os.environ,
                'JENKINS_HOME' in os.environ,
                'GITLAB_CI' in os.environ,
                'GITHUB_ACTIONS' in os.environ,
                'TRAVIS' in os.environ,
            ])
            self.use_rich = is_terminal and not is_ci

    def _setup_rich_components(self) -> None:
        """Setup rich progress bar and live components."""
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=self.console,
        )
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None

    def start_suite(self, total_scenarios: int, label: str) -> None:
        """Initialize suite execution display."""
        if self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("#", style="dim", width=4)
            self.results_table.add_column("Scenario", width=36)
            self.results_table.add_column("Status", width=10)
            self.results_table.add_column("Duration", justify="right", width=10)
            self.results_table.add_column("Requests", justify="right", width=10)
            self.results_table.add_column("Avg", justify="right", width=10)

            self.progress_task = self.progress.add_task(
                f"[cyan]Load suite {label}",
                total=total_scenarios,
            )
            self.live = Live(
                Group(self.progress, self.results_table),
                console=self.console,
                refresh_per_second=4,
            )
            self.live.start()
        else:
            print(f"Starting load suite: {label}")
            print(f"Total scenarios: {total_scenarios}")
            print("=" * 60)

    def report_scenario_start(self, index: int, total: int, scenario: ScenarioDescriptor) -> None:
        """Report that a scenario is starting."""
        if not self.use_rich:
            print(f"[{index}/{total}] {scenario.name} ({scenario.script_ref})", flush=True)

    def report_scenario_result(self, index: int, result: RunResult) -> None:
        """Report a finished scenario."""
        metrics = result.metrics
        requests = str(metrics.http_requests) if metrics else "-"
        avg = f"{metrics.request_duration.avg}ms" if metrics else "-"
        if self.use_rich:
            status_text = Text(
                f"{'✓' if result.passed else '✗'} {result.status.value}",
                style="green" if result.passed else "red",
            )
            self.results_table.add_row(
                str(index),
                result.scenario.name,
                status_text,
                f"{result.duration_seconds:.2f}s",
                requests,
                avg,
            )
            if result.error:
                self.results_table.add_row("", Text(f"Error: {result.error}", style="red"), "", "", "", "")
            self.progress.update(self.progress_task, advance=1)
        else:
            if result.passed:
                print(f"  ✓ PASSED ({result.duration_seconds:.2f}s) {requests} requests | {avg} avg")
            else:
                print(f"  ✗ FAILED ({result.duration_seconds:.2f}s)")
                if result.error:
                    print(f"    Error: {result.error}")

    def finish_suite(self, summary: AggregateSummary) -> None:
        """Display the final pass/fail tally."""
        all_passed = summary.failed == 0
        if self.use_rich:
            if self.live:
                self.live.stop()

            summary_text = Text()
            summary_text.append(f"Total: {summary.total}  ", style="bold")
            summary_text.append(f"Passed: {summary.passed}  ", style="bold green")
            summary_text.append(f"Failed: {summary.failed}  ", style="bold red" if not all_passed else "bold green")
            summary_text.append(f"Success Rate: {summary.success_rate_pct}%  ", style="bold")
            summary_text.append(f"Duration: {summary.total_duration_seconds:.2f}s", style="bold cyan")

            status = "✓ ALL SCENARIOS PASSED" if all_passed else "✗ SOME SCENARIOS FAILED"
            self.console.print()
            self.console.print(Panel(
                summary_text,
                title=Text(status, style="bold green" if all_passed else "bold red"),
                border_style="green" if all_passed else "red",
            ))
        else:
            print("=" * 60)
            print(
                f"Total: {summary.total} | Passed: {summary.passed} | Failed: {summary.failed} | "
                f"Success Rate: {summary.success_rate_pct}% | Duration: {summary.total_duration_seconds:.2f}s"
            )
            print("✓ ALL SCENARIOS PASSED" if all_passed else "✗ SOME SCENARIOS FAILED")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        if self.use_rich:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        if self.use_rich:
            self.console.print(f"[cyan]{message}[/]")
        else:
            print(message)
