"""Sequential scenario execution against the load engine."""

from __future__ import annotations

import subprocess
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import structlog

from .console_reporter import ConsoleReporter
from .engine import EngineCommand, EvidencePaths, evidence_paths
from .errors import ScenarioExecutionError
from .extractors import Evidence, EvidenceKind, extract_metrics
from .models import RunResult, RunStatus, ScenarioDescriptor
from .output_config import OutputFormat
from .session import SuiteSession

LOGGER = structlog.get_logger("load_suite")

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]

_STDERR_TAIL_LINES = 20


class RunExecutor:
    """Runs every scenario once, in order, and records one result each.

    A failing scenario never stops the suite; its result is recorded as
    FAILED with the captured error and the next scenario starts.
    """

    def __init__(
        self,
        *,
        session: SuiteSession,
        engine: Optional[EngineCommand] = None,
        strategy: EvidenceKind = EvidenceKind.SUMMARY_READ,
        reporter: Optional[ConsoleReporter] = None,
        command_runner: Optional[CommandRunner] = None,
    ) -> None:
        self.session = session
        self.engine = engine or EngineCommand()
        self.strategy = strategy
        self._reporter = reporter or ConsoleReporter(output_format=OutputFormat.PLAIN)
        self._run_command = command_runner or subprocess.run

    def run(self, scenarios: Sequence[ScenarioDescriptor]) -> list[RunResult]:
        self.session.prepare()
        LOGGER.info(
            "suite_started",
            scenarios=len(scenarios),
            strategy=self.strategy.value,
            evidence_dir=str(self.session.evidence_dir),
        )
        self._reporter.start_suite(total_scenarios=len(scenarios), label=self.session.timestamp_label)

        for index, scenario in enumerate(scenarios, start=1):
            self._reporter.report_scenario_start(index, len(scenarios), scenario)
            result = self.run_scenario(index, scenario)
            self.session.record(result)
            self._reporter.report_scenario_result(index, result)

        summary = self.session.summarize()
        self._reporter.finish_suite(summary)
        LOGGER.info(
            "suite_finished",
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
            success_rate_pct=summary.success_rate_pct,
        )
        return list(self.session.results)

    def run_scenario(self, index: int, scenario: ScenarioDescriptor) -> RunResult:
        log = LOGGER.bind(index=index, scenario=scenario.name)
        self.session.prepare()
        paths = evidence_paths(self.session.evidence_dir, index, scenario, self.strategy)
        command = self.engine.build(scenario, paths)
        log.info("scenario_started", command=" ".join(command))

        timer = time.perf_counter()
        try:
            console_text = self._invoke(command, paths)
        except ScenarioExecutionError as exc:
            duration = round(time.perf_counter() - timer, 2)
            log.error("scenario_failed", duration_seconds=duration, error=str(exc), returncode=exc.returncode)
            return RunResult(
                scenario=scenario,
                status=RunStatus.FAILED,
                duration_seconds=duration,
                timestamp=datetime.now(timezone.utc),
                metrics=None,
                error=str(exc),
            )
        duration = round(time.perf_counter() - timer, 2)

        evidence = Evidence(
            kind=self.strategy,
            console_text=console_text,
            summary_path=paths.summary_file,
            events_path=paths.events_file,
        )
        metrics = extract_metrics(evidence)
        log.info(
            "scenario_passed",
            duration_seconds=duration,
            http_requests=metrics.http_requests,
            avg_ms=metrics.request_duration.avg,
            check_rate=metrics.checks.rate,
        )
        return RunResult(
            scenario=scenario,
            status=RunStatus.PASSED,
            duration_seconds=duration,
            timestamp=datetime.now(timezone.utc),
            metrics=metrics,
            error=None,
        )

    def _invoke(self, command: list[str], paths: EvidencePaths) -> str:
        try:
            completed = self._run_command(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ScenarioExecutionError(f"Could not start {command[0]}: {exc}") from exc

        stdout = completed.stdout or ""
        stderr = completed.stderr or ""
        try:
            paths.console_log.write_text(stdout + stderr, encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("evidence_write_failed", path=str(paths.console_log), error=str(exc))

        if completed.returncode != 0:
            message = f"Command failed with exit code {completed.returncode}: {' '.join(command)}"
            tail = "\n".join(stderr.strip().splitlines()[-_STDERR_TAIL_LINES:])
            if tail:
                message = f"{message}\n{tail}"
            raise ScenarioExecutionError(message, returncode=completed.returncode)
        return stdout
