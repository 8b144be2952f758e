"""Metrics extraction strategies.

Every engine run leaves some evidence behind: the console summary it printed,
a ``--summary-export`` JSON document, or a ``--out json`` event stream. Each
strategy below turns one of those into a :class:`MetricsSnapshot`.

Extraction is best effort. Each field is derived by its own rule through
:func:`safe_field`; a rule that fails is logged and leaves only its field at
the default. No exception escapes :meth:`MetricsExtractor.extract`.
"""

from __future__ import annotations

import json
import math
import re
import statistics
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar

import structlog

from .byte_format import format_bytes
from .errors import ExtractionError
from .models import MetricsSnapshot

LOGGER = structlog.get_logger("load_suite")

T = TypeVar("T")


class EvidenceKind(str, Enum):
    """Which evidence format a run was asked to produce."""

    TEXT_SCAN = "text"
    SUMMARY_READ = "summary"
    EVENT_STREAM = "events"


@dataclass(frozen=True)
class Evidence:
    """Artifacts captured from a single engine run."""

    kind: EvidenceKind
    console_text: str = ""
    summary_path: Optional[Path] = None
    events_path: Optional[Path] = None


def safe_field(field: str, rule: Callable[[], Optional[T]], *, logger: Any = LOGGER) -> Optional[T]:
    """Apply one per-field rule, turning any failure into ``None``."""

    try:
        return rule()
    except Exception as exc:
        logger.warning("metric_extraction_failed", field=field, error=str(exc))
        return None


class _SnapshotBuilder:
    """Collects dotted field values and builds the nested snapshot."""

    def __init__(self, logger: Any) -> None:
        self._logger = logger
        self._values: dict[str, Any] = {}

    def set(self, field: str, rule: Callable[[], Any]) -> None:
        value = safe_field(field, rule, logger=self._logger)
        if value is not None:
            self._values[field] = value

    def build(self) -> MetricsSnapshot:
        payload: dict[str, Any] = {}
        for dotted, value in self._values.items():
            target = payload
            *parents, leaf = dotted.split(".")
            for parent in parents:
                target = target.setdefault(parent, {})
            target[leaf] = value
        try:
            return MetricsSnapshot.model_validate(payload)
        except ValueError as exc:
            self._logger.warning("metric_snapshot_invalid", error=str(exc))
            return MetricsSnapshot()


class MetricsExtractor(ABC):
    """Turns captured evidence into a canonical metrics snapshot."""

    kind: EvidenceKind

    def extract(self, evidence: Evidence) -> MetricsSnapshot:
        logger = LOGGER.bind(strategy=self.kind.value)
        builder = _SnapshotBuilder(logger)
        try:
            self._populate(builder, evidence)
        except Exception as exc:
            logger.warning("metric_extraction_failed", field="*", error=str(exc))
        return builder.build()

    @abstractmethod
    def _populate(self, builder: _SnapshotBuilder, evidence: Evidence) -> None:
        """Register one rule per metric field on ``builder``."""


def _percent(rate: float) -> str:
    return f"{rate * 100:.2f}"


def _count(text: str) -> int:
    return int(text.replace(",", ""))


# ---------------------------------------------------------------------------
# Text scan
# ---------------------------------------------------------------------------

_DURATION_UNITS_MS = {
    "ns": 1e-6,
    "us": 1e-3,
    "µs": 1e-3,
    "ms": 1.0,
    "s": 1000.0,
    "m": 60_000.0,
    "h": 3_600_000.0,
}

# k6 prints sizes with decimal prefixes.
_SIZE_UNITS_BYTES = {"B": 1, "kB": 1000, "KB": 1000, "MB": 1000**2, "GB": 1000**3, "TB": 1000**4}

# Metrics with a threshold are prefixed by the threshold outcome.
_THRESHOLD_MARK = r"(?:[✓✗]\s*)?"


def _metric_line(name: str) -> re.Pattern[str]:
    return re.compile(rf"^\s*{_THRESHOLD_MARK}{re.escape(name)}\b[^:\n]*:\s*(?P<rest>.*)$", re.MULTILINE)


_HTTP_REQS = _metric_line("http_reqs")
_ITERATIONS = _metric_line("iterations")
_CHECKS = re.compile(rf"^\s*{_THRESHOLD_MARK}checks(?:_succeeded)?\b[^:\n]*:\s*(?P<rest>.*)$", re.MULTILINE)
_DURATION = _metric_line("http_req_duration")
_FAILED = _metric_line("http_req_failed")
_VUS_MAX = _metric_line("vus_max")
_DATA_RECEIVED = _metric_line("data_received")
_DATA_SENT = _metric_line("data_sent")

_LEADING_COUNT = re.compile(r"^([\d,]+)\b")
_LEADING_PERCENT = re.compile(r"^([\d.]+)%")
_DATA_SIZE = re.compile(r"^([\d.]+)\s*([kKMGT]?B)\b")
_CHECK_MARKS = re.compile(r"✓\s*([\d,]+)\s*✗\s*([\d,]+)")
_OUT_OF = re.compile(r"([\d,]+)\s+out\s+of\s+([\d,]+)")
_DURATION_PART = re.compile(r"([\d.]+)(µs|us|ns|ms|h|m|s)")
_DURATION_TOKEN = re.compile(r"(?:[\d.]+(?:µs|us|ns|ms|h|m|s))+")


def _rest(pattern: re.Pattern[str], text: str) -> Optional[str]:
    match = pattern.search(text)
    if match is None:
        return None
    return match.group("rest").strip()


def _leading(pattern: re.Pattern[str], rest: Optional[str]) -> Optional[str]:
    if rest is None:
        return None
    match = pattern.search(rest)
    return match.group(1) if match else None


def _duration_stat(rest: Optional[str], key: str) -> Optional[float]:
    if rest is None:
        return None
    match = re.search(rf"(?:^|\s){re.escape(key)}=(?P<value>\S+)", rest)
    if match is None:
        return None
    return round(parse_duration_ms(match.group("value")), 2)


def parse_duration_ms(token: str) -> float:
    """Milliseconds in a Go-style duration such as ``210.33ms`` or ``1m30s``.

    A bare number is taken as milliseconds.
    """

    try:
        return float(token)
    except ValueError:
        pass
    if not _DURATION_TOKEN.fullmatch(token):
        raise ExtractionError(f"Unparseable duration {token!r}")
    return sum(float(value) * _DURATION_UNITS_MS[unit] for value, unit in _DURATION_PART.findall(token))


def _data_size(rest: Optional[str]) -> Optional[str]:
    if rest is None:
        return None
    match = _DATA_SIZE.search(rest)
    if match is None:
        return None
    value, unit = match.groups()
    try:
        factor = _SIZE_UNITS_BYTES[unit]
    except KeyError as exc:
        raise ExtractionError(f"Unknown size unit {unit!r}") from exc
    return format_bytes(float(value) * factor)


class TextScanExtractor(MetricsExtractor):
    """Pattern rules over the end-of-test summary the engine prints.

    Durations are converted to milliseconds and the engine's decimal data
    sizes are re-rendered through :func:`format_bytes`, so the snapshot has
    the same shape as the other strategies produce.
    """

    kind = EvidenceKind.TEXT_SCAN

    def _populate(self, builder: _SnapshotBuilder, evidence: Evidence) -> None:
        text = evidence.console_text or ""

        def count_rule(pattern: re.Pattern[str]) -> Callable[[], Optional[int]]:
            def rule() -> Optional[int]:
                value = _leading(_LEADING_COUNT, _rest(pattern, text))
                return _count(value) if value is not None else None

            return rule

        builder.set("http_requests", count_rule(_HTTP_REQS))
        builder.set("iterations", count_rule(_ITERATIONS))
        builder.set("max_virtual_users", count_rule(_VUS_MAX))

        duration = _rest(_DURATION, text)
        for key, field in (("avg", "avg"), ("min", "min"), ("max", "max"), ("med", "med"), ("p(95)", "p95")):
            builder.set(f"request_duration.{field}", lambda key=key: _duration_stat(duration, key))

        def failure_rate() -> Optional[float]:
            value = _leading(_LEADING_PERCENT, _rest(_FAILED, text))
            return float(value) if value is not None else None

        builder.set("request_failure_rate", failure_rate)

        checks = _rest(_CHECKS, text)

        def check_rate() -> Optional[str]:
            value = _leading(_LEADING_PERCENT, checks)
            return f"{float(value):.2f}" if value is not None else None

        builder.set("checks.rate", check_rate)
        tally = safe_field("checks", lambda: self._check_tally(checks))
        if tally is not None:
            passed, failed = tally
            builder.set("checks.passed", lambda: passed)
            builder.set("checks.failed", lambda: failed)
            builder.set("checks.total", lambda: passed + failed)

        for field, pattern in (("data_received", _DATA_RECEIVED), ("data_sent", _DATA_SENT)):
            builder.set(field, lambda pattern=pattern: _data_size(_rest(pattern, text)))

    @staticmethod
    def _check_tally(checks: Optional[str]) -> Optional[tuple[int, int]]:
        if checks is None:
            return None
        marks = _CHECK_MARKS.search(checks)
        if marks:
            return _count(marks.group(1)), _count(marks.group(2))
        out_of = _OUT_OF.search(checks)
        if out_of:
            passed, total = _count(out_of.group(1)), _count(out_of.group(2))
            if passed > total:
                raise ExtractionError(f"Check count {passed} exceeds total {total}")
            return passed, total - passed
        return None


# ---------------------------------------------------------------------------
# Summary document
# ---------------------------------------------------------------------------


class SummaryReadExtractor(MetricsExtractor):
    """Reads the JSON document written by ``--summary-export``."""

    kind = EvidenceKind.SUMMARY_READ

    def _populate(self, builder: _SnapshotBuilder, evidence: Evidence) -> None:
        if evidence.summary_path is None:
            raise ExtractionError("No summary document was captured")
        document = json.loads(evidence.summary_path.read_text(encoding="utf-8"))
        self.populate_from_document(builder, document)

    def populate_from_document(self, builder: _SnapshotBuilder, document: Any) -> None:
        if not isinstance(document, dict) or not isinstance(document.get("metrics"), dict):
            raise ExtractionError("Summary document has no metrics mapping")
        metrics: dict[str, Any] = document["metrics"]

        def lookup(metric: str, *keys: str) -> Optional[float]:
            entry = metrics.get(metric)
            if entry is None:
                return None
            if not isinstance(entry, dict):
                raise ExtractionError(f"Metric {metric} is not an object")
            values = entry.get("values", entry)
            for key in keys:
                if key in values and values[key] is not None:
                    return float(values[key])
            return None

        def rounded(metric: str, *keys: str) -> Callable[[], Optional[float]]:
            def rule() -> Optional[float]:
                value = lookup(metric, *keys)
                return round(value, 2) if value is not None else None

            return rule

        def counted(metric: str, *keys: str) -> Callable[[], Optional[int]]:
            def rule() -> Optional[int]:
                value = lookup(metric, *keys)
                return int(round(value)) if value is not None else None

            return rule

        def sized(metric: str) -> Callable[[], Optional[str]]:
            def rule() -> Optional[str]:
                value = lookup(metric, "count")
                return format_bytes(value) if value is not None else None

            return rule

        builder.set("http_requests", counted("http_reqs", "count"))
        builder.set("iterations", counted("iterations", "count"))
        builder.set("max_virtual_users", counted("vus_max", "max", "value"))
        for field, key in (("avg", "avg"), ("min", "min"), ("max", "max"), ("med", "med"), ("p95", "p(95)")):
            builder.set(f"request_duration.{field}", rounded("http_req_duration", key))

        def failure_rate() -> Optional[float]:
            value = lookup("http_req_failed", "rate", "value")
            return round(value * 100, 2) if value is not None else None

        builder.set("request_failure_rate", failure_rate)

        passes = safe_field("checks.passed", counted("checks", "passes"))
        fails = safe_field("checks.failed", counted("checks", "fails"))
        if passes is not None:
            builder.set("checks.passed", lambda: passes)
        if fails is not None:
            builder.set("checks.failed", lambda: fails)
        if passes is not None or fails is not None:
            builder.set("checks.total", lambda: (passes or 0) + (fails or 0))

        def check_rate() -> Optional[str]:
            value = lookup("checks", "rate", "value")
            return _percent(value) if value is not None else None

        builder.set("checks.rate", check_rate)
        builder.set("data_received", sized("data_received"))
        builder.set("data_sent", sized("data_sent"))


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------

_COUNTER_FIELDS = {"http_reqs": "http_requests", "iterations": "iterations"}
_BYTE_FIELDS = {"data_received", "data_sent"}
_VU_GAUGES = {"vus", "vus_max"}


@dataclass
class _StreamTally:
    counters: dict[str, int]
    byte_totals: dict[str, float]
    samples: dict[str, list[float]]
    passes: dict[str, int]
    fails: dict[str, int]
    max_vus: Optional[float] = None


class EventStreamExtractor(MetricsExtractor):
    """Reduces the newline-delimited JSON stream written by ``--out json``."""

    kind = EvidenceKind.EVENT_STREAM

    def _populate(self, builder: _SnapshotBuilder, evidence: Evidence) -> None:
        if evidence.events_path is None:
            raise ExtractionError("No event stream was captured")
        with evidence.events_path.open("r", encoding="utf-8") as handle:
            tally = self.tally(handle)
        self.populate_from_tally(builder, tally)

    def tally(self, lines: Iterable[str]) -> _StreamTally:
        logger = LOGGER.bind(strategy=self.kind.value)
        tally = _StreamTally(counters={}, byte_totals={}, samples={}, passes={}, fails={})
        kinds: dict[str, str] = {}
        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
                self._consume(record, kinds, tally)
            except (ValueError, TypeError, KeyError, AttributeError) as exc:
                logger.warning("event_record_skipped", line=line_number, error=str(exc))
        return tally

    @staticmethod
    def _consume(record: dict[str, Any], kinds: dict[str, str], tally: _StreamTally) -> None:
        metric = record.get("metric")
        data = record.get("data") or {}
        if not metric or not isinstance(data, dict):
            return
        if record.get("type") == "Metric" and data.get("type"):
            kinds[metric] = str(data["type"])
        if "value" not in data:
            return

        kind = kinds.get(metric)
        value = data["value"]
        if kind == "counter":
            if metric in _BYTE_FIELDS:
                tally.byte_totals[metric] = tally.byte_totals.get(metric, 0.0) + float(value)
            else:
                tally.counters[metric] = tally.counters.get(metric, 0) + 1
        elif kind == "trend":
            tally.samples.setdefault(metric, []).append(float(value))
        elif kind == "rate":
            bucket = tally.passes if value else tally.fails
            bucket[metric] = bucket.get(metric, 0) + 1
        elif kind == "gauge" and metric in _VU_GAUGES:
            current = float(value)
            if tally.max_vus is None or current > tally.max_vus:
                tally.max_vus = current

    def populate_from_tally(self, builder: _SnapshotBuilder, tally: _StreamTally) -> None:
        for metric, field in _COUNTER_FIELDS.items():
            if metric in tally.counters:
                builder.set(field, lambda metric=metric: tally.counters[metric])
        for metric in _BYTE_FIELDS:
            if metric in tally.byte_totals:
                builder.set(metric, lambda metric=metric: format_bytes(tally.byte_totals[metric]))
        if tally.max_vus is not None:
            builder.set("max_virtual_users", lambda: int(tally.max_vus))

        durations = sorted(tally.samples.get("http_req_duration", []))
        if durations:
            builder.set("request_duration.avg", lambda: round(statistics.fmean(durations), 2))
            builder.set("request_duration.min", lambda: round(durations[0], 2))
            builder.set("request_duration.max", lambda: round(durations[-1], 2))
            builder.set("request_duration.med", lambda: round(statistics.median(durations), 2))
            builder.set("request_duration.p95", lambda: round(percentile_95(durations), 2))

        passed = tally.passes.get("checks", 0)
        failed = tally.fails.get("checks", 0)
        if passed or failed:
            builder.set("checks.passed", lambda: passed)
            builder.set("checks.failed", lambda: failed)
            builder.set("checks.total", lambda: passed + failed)
            builder.set("checks.rate", lambda: _percent(passed / (passed + failed)))

        req_ok = tally.fails.get("http_req_failed", 0)
        req_failed = tally.passes.get("http_req_failed", 0)
        if req_ok or req_failed:
            builder.set("request_failure_rate", lambda: round(req_failed / (req_ok + req_failed) * 100, 2))


def percentile_95(sorted_values: list[float]) -> float:
    """Value at index ``floor(n * 0.95)`` of an ascending list."""

    if not sorted_values:
        raise ExtractionError("Cannot take a percentile of no samples")
    index = min(math.floor(len(sorted_values) * 0.95), len(sorted_values) - 1)
    return sorted_values[index]


EXTRACTORS: dict[EvidenceKind, MetricsExtractor] = {
    EvidenceKind.TEXT_SCAN: TextScanExtractor(),
    EvidenceKind.SUMMARY_READ: SummaryReadExtractor(),
    EvidenceKind.EVENT_STREAM: EventStreamExtractor(),
}


def select_extractor(evidence: Evidence) -> MetricsExtractor:
    """Pick the strategy matching the evidence that actually exists on disk."""

    if evidence.kind == EvidenceKind.SUMMARY_READ and evidence.summary_path and evidence.summary_path.exists():
        return EXTRACTORS[EvidenceKind.SUMMARY_READ]
    if evidence.kind == EvidenceKind.EVENT_STREAM and evidence.events_path and evidence.events_path.exists():
        return EXTRACTORS[EvidenceKind.EVENT_STREAM]
    return EXTRACTORS[EvidenceKind.TEXT_SCAN]


def extract_metrics(evidence: Evidence) -> MetricsSnapshot:
    extractor = select_extractor(evidence)
    if extractor.kind != evidence.kind:
        LOGGER.warning(
            "evidence_missing_falling_back",
            requested=evidence.kind.value,
            strategy=extractor.kind.value,
        )
    return extractor.extract(evidence)
