"""Suite session state: ordered results plus output configuration."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog

from .models import AggregateSummary, RunResult, RunStatus

LOGGER = structlog.get_logger("load_suite")


def make_timestamp_label(moment: datetime) -> str:
    """ISO-8601 timestamp with ``:`` and ``.`` made filesystem safe."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    iso = iso.replace("+00:00", "Z")
    return re.sub(r"[:.]", "-", iso)


class ResultAccumulator:
    """Append-only, execution-ordered list of run results."""

    def __init__(self, results: Iterable[RunResult] = ()) -> None:
        self._results: list[RunResult] = list(results)

    def append(self, result: RunResult) -> None:
        self._results.append(result)

    @property
    def results(self) -> tuple[RunResult, ...]:
        return tuple(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[RunResult]:
        return iter(tuple(self._results))

    def summarize(self) -> AggregateSummary:
        return summarize(self._results)


def summarize(results: Iterable[RunResult]) -> AggregateSummary:
    """Recompute the aggregate view from the results alone."""

    results = list(results)
    total = len(results)
    passed = sum(1 for result in results if result.status == RunStatus.PASSED)
    measured = [result.metrics for result in results if result.metrics is not None]
    avg_response = (
        round(sum(metrics.request_duration.avg for metrics in measured) / len(measured), 2)
        if measured
        else 0.0
    )
    return AggregateSummary(
        total=total,
        passed=passed,
        failed=total - passed,
        success_rate_pct=round(passed / total * 100, 1) if total else 0.0,
        total_duration_seconds=round(sum(result.duration_seconds for result in results), 2),
        total_requests=sum(metrics.http_requests for metrics in measured),
        total_iterations=sum(metrics.iterations for metrics in measured),
        avg_response_time_ms=avg_response,
    )


class SuiteSession:
    """Owns the results of one suite invocation and where its output goes.

    Results are flushed to ``results-<label>.jsonl`` as they are recorded so a
    crash during reporting does not lose completed measurements.
    """

    def __init__(
        self,
        *,
        report_dir: Path,
        started_at: Optional[datetime] = None,
        flush_results: bool = True,
    ) -> None:
        self.report_dir = report_dir
        self.started_at = started_at or datetime.now(timezone.utc)
        self.timestamp_label = make_timestamp_label(self.started_at)
        self.flush_results = flush_results
        self.accumulator = ResultAccumulator()

    @property
    def evidence_dir(self) -> Path:
        return self.report_dir / f"evidence-{self.timestamp_label}"

    @property
    def results_file(self) -> Path:
        return self.report_dir / f"results-{self.timestamp_label}.jsonl"

    @property
    def results(self) -> tuple[RunResult, ...]:
        return self.accumulator.results

    def prepare(self) -> None:
        try:
            self.evidence_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("evidence_write_failed", path=str(self.evidence_dir), error=str(exc))

    def record(self, result: RunResult) -> None:
        self.accumulator.append(result)
        if not self.flush_results:
            return
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
            with self.results_file.open("a", encoding="utf-8") as handle:
                handle.write(result.model_dump_json() + "\n")
        except OSError as exc:
            LOGGER.error("results_flush_failed", path=str(self.results_file), error=str(exc))

    def summarize(self) -> AggregateSummary:
        return self.accumulator.summarize()


def load_results(path: Path) -> list[RunResult]:
    """Read a flushed results file back into run results."""

    results: list[RunResult] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.strip():
            results.append(RunResult.model_validate(json.loads(line)))
    LOGGER.info("results_loaded", path=str(path), count=len(results))
    return results
