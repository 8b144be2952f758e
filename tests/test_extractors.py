from __future__ import annotations

import json
from pathlib import Path

import pytest

from load_suite.errors import ExtractionError
from load_suite.extractors import (
    EventStreamExtractor,
    Evidence,
    EvidenceKind,
    SummaryReadExtractor,
    TextScanExtractor,
    extract_metrics,
    parse_duration_ms,
    percentile_95,
    safe_field,
)
from load_suite.models import MetricsSnapshot

K6_CONSOLE = """
     scenarios: (100.00%) 1 scenario, 3 max VUs, 1m0s max duration (incl. graceful stop):

     checks.........................: 95.00% ✓ 95       ✗ 5
     data_received..................: 1.2 MB 40 kB/s
     data_sent......................: 24 kB  800 B/s
     http_req_blocked...............: avg=1.2ms    min=1µs     med=3µs     max=120ms    p(90)=5µs    p(95)=7µs
     http_req_duration..............: avg=120.5ms  min=80.1ms  med=110ms   max=1.2s     p(90)=180ms  p(95)=210.33ms
       { expected_response:true }...: avg=119.5ms  min=80.1ms  med=109ms   max=1.1s     p(90)=179ms  p(95)=209ms
     http_req_failed................: 2.50%  ✓ 3        ✗ 117
     http_reqs......................: 1,200  40/s
     iteration_duration.............: avg=1.12s    min=1.08s   med=1.11s   max=2.2s     p(90)=1.18s  p(95)=1.21s
     iterations.....................: 100    3.3/s
     vus............................: 3      min=1      max=3
     vus_max........................: 3      min=3      max=3
"""


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_text_scan_reads_request_count() -> None:
    snapshot = TextScanExtractor().extract(
        Evidence(kind=EvidenceKind.TEXT_SCAN, console_text="http_reqs......: 120 1.2/s")
    )

    assert snapshot.http_requests == 120
    assert snapshot.iterations == 0
    assert snapshot.data_sent == "0 B"


def test_text_scan_full_console_summary() -> None:
    snapshot = TextScanExtractor().extract(Evidence(kind=EvidenceKind.TEXT_SCAN, console_text=K6_CONSOLE))

    assert snapshot.http_requests == 1200
    assert snapshot.iterations == 100
    assert snapshot.max_virtual_users == 3
    assert snapshot.request_duration.avg == 120.5
    assert snapshot.request_duration.min == 80.1
    assert snapshot.request_duration.med == 110.0
    assert snapshot.request_duration.max == 1200.0
    assert snapshot.request_duration.p95 == 210.33
    assert snapshot.request_failure_rate == 2.5
    assert snapshot.checks.rate == "95.00"
    assert (snapshot.checks.passed, snapshot.checks.failed, snapshot.checks.total) == (95, 5, 100)
    assert snapshot.data_received == "1.14 MB"
    assert snapshot.data_sent == "23.44 KB"


def test_text_scan_reads_threshold_marked_lines() -> None:
    text = (
        "   ✓ checks.........................: 100.00% ✓ 120      ✗ 0\n"
        "     data_sent......................: 2.0 kB  66 B/s\n"
        "   ✓ http_req_duration..............: avg=120.5ms  min=80.1ms  med=110ms   max=1.2s  p(90)=180ms  p(95)=210ms\n"
        "   ✗ http_req_failed................: 5.00%  ✓ 6        ✗ 114\n"
        "     http_reqs......................: 120    4/s\n"
    )

    snapshot = TextScanExtractor().extract(Evidence(kind=EvidenceKind.TEXT_SCAN, console_text=text))

    assert snapshot.http_requests == 120
    assert snapshot.request_duration.avg == 120.5
    assert snapshot.request_duration.p95 == 210.0
    assert snapshot.request_failure_rate == 5.0
    assert snapshot.checks.rate == "100.00"
    assert (snapshot.checks.passed, snapshot.checks.failed, snapshot.checks.total) == (120, 0, 120)
    assert snapshot.data_sent == "1.95 KB"


def test_text_scan_compound_durations() -> None:
    text = "http_req_duration..: avg=1m2s min=950ms med=1m0.5s max=1m30s p(90)=1m15s p(95)=1m20s\n"

    snapshot = TextScanExtractor().extract(Evidence(kind=EvidenceKind.TEXT_SCAN, console_text=text))

    assert snapshot.request_duration.avg == 62000.0
    assert snapshot.request_duration.min == 950.0
    assert snapshot.request_duration.med == 60500.0
    assert snapshot.request_duration.max == 90000.0
    assert snapshot.request_duration.p95 == 80000.0


@pytest.mark.parametrize(
    ("token", "expected"),
    [("210.33ms", 210.33), ("7µs", 0.007), ("1.5s", 1500.0), ("1h1m", 3_660_000.0), ("42", 42.0)],
)
def test_parse_duration_ms(token: str, expected: float) -> None:
    assert parse_duration_ms(token) == pytest.approx(expected)


def test_parse_duration_rejects_unknown_units() -> None:
    with pytest.raises(ExtractionError):
        parse_duration_ms("3 fortnights")


def test_text_scan_newer_check_format() -> None:
    text = "    checks_succeeded...: 90.00% 9 out of 10\n    checks_failed......: 10.00% 1 out of 10\n"

    snapshot = TextScanExtractor().extract(Evidence(kind=EvidenceKind.TEXT_SCAN, console_text=text))

    assert snapshot.checks.rate == "90.00"
    assert (snapshot.checks.passed, snapshot.checks.failed, snapshot.checks.total) == (9, 1, 10)


def test_text_scan_bad_rule_leaves_other_fields() -> None:
    text = "checks.....: 50.00% 10 out of 5\nhttp_reqs......: 42 1/s\n"

    snapshot = TextScanExtractor().extract(Evidence(kind=EvidenceKind.TEXT_SCAN, console_text=text))

    assert snapshot.http_requests == 42
    assert snapshot.checks.rate == "50.00"
    assert snapshot.checks.total == 0


def test_summary_read_checks(tmp_path: Path) -> None:
    document = {"metrics": {"checks": {"values": {"passes": 95, "fails": 5, "rate": 0.95}}}}

    snapshot = _summary_snapshot(tmp_path, document)

    assert snapshot.checks.passed == 95
    assert snapshot.checks.failed == 5
    assert snapshot.checks.total == 100
    assert snapshot.checks.rate == "95.00"


def test_summary_read_rounding_and_sizes(tmp_path: Path) -> None:
    document = {
        "metrics": {
            "http_reqs": {"values": {"count": 120, "rate": 4.0}},
            "iterations": {"values": {"count": 40.6}},
            "http_req_duration": {
                "values": {"avg": 120.4567, "min": 80.1, "max": 300.999, "med": 110.0, "p(95)": 250.5549}
            },
            "http_req_failed": {"values": {"rate": 0.025}},
            "vus_max": {"values": {"value": 5, "min": 5, "max": 5}},
            "data_received": {"values": {"count": 1536}},
            "data_sent": {"values": {"count": 1048576}},
        }
    }

    snapshot = _summary_snapshot(tmp_path, document)

    assert snapshot.http_requests == 120
    assert snapshot.iterations == 41
    assert snapshot.request_duration.avg == 120.46
    assert snapshot.request_duration.max == 301.0
    assert snapshot.request_duration.p95 == 250.55
    assert snapshot.request_failure_rate == 2.5
    assert snapshot.max_virtual_users == 5
    assert snapshot.data_received == "1.5 KB"
    assert snapshot.data_sent == "1 MB"


def test_summary_read_accepts_flat_export_values(tmp_path: Path) -> None:
    document = {"metrics": {"http_reqs": {"count": 7, "rate": 1.0}, "checks": {"passes": 3, "fails": 1, "value": 0.75}}}

    snapshot = _summary_snapshot(tmp_path, document)

    assert snapshot.http_requests == 7
    assert snapshot.checks.rate == "75.00"
    assert snapshot.checks.total == 4


def test_summary_read_bad_metric_keeps_defaults(tmp_path: Path) -> None:
    document = {"metrics": {"http_reqs": "broken", "iterations": {"values": {"count": 3}}}}
    summary = _write(tmp_path / "summary.json", json.dumps(document))

    snapshot = SummaryReadExtractor().extract(Evidence(kind=EvidenceKind.SUMMARY_READ, summary_path=summary))

    assert snapshot.http_requests == 0
    assert snapshot.iterations == 3


def _summary_snapshot(tmp_path: Path, document: dict) -> MetricsSnapshot:
    summary = _write(tmp_path / "summary.json", json.dumps(document))
    return SummaryReadExtractor().extract(Evidence(kind=EvidenceKind.SUMMARY_READ, summary_path=summary))


class _NullLogger:
    def warning(self, *args: object, **kwargs: object) -> None:
        return None


def _events(records: list[dict]) -> str:
    return "\n".join(json.dumps(record) for record in records) + "\n"


def test_event_stream_duration_percentiles(tmp_path: Path) -> None:
    samples = [5, 3, 9, 1, 7, 2, 8, 4, 10, 6]
    records = [
        {"type": "Metric", "metric": "http_req_duration", "data": {"type": "trend", "value": value}}
        for value in samples
    ]
    events = _write(tmp_path / "events.jsonl", _events(records))

    snapshot = EventStreamExtractor().extract(Evidence(kind=EvidenceKind.EVENT_STREAM, events_path=events))

    assert snapshot.request_duration.p95 == 10.0
    assert snapshot.request_duration.min == 1.0
    assert snapshot.request_duration.max == 10.0
    assert snapshot.request_duration.avg == 5.5
    assert snapshot.request_duration.med == 5.5


def test_event_stream_counters_rates_and_k6_points(tmp_path: Path) -> None:
    records = [
        {"type": "Metric", "metric": "http_reqs", "data": {"name": "http_reqs", "type": "counter"}},
        {"type": "Metric", "metric": "checks", "data": {"name": "checks", "type": "rate"}},
        {"type": "Metric", "metric": "data_received", "data": {"name": "data_received", "type": "counter"}},
        {"type": "Metric", "metric": "vus", "data": {"name": "vus", "type": "gauge"}},
        {"type": "Metric", "metric": "http_req_failed", "data": {"name": "http_req_failed", "type": "rate"}},
        {"type": "Point", "metric": "http_reqs", "data": {"value": 1}},
        {"type": "Point", "metric": "http_reqs", "data": {"value": 1}},
        {"type": "Point", "metric": "http_reqs", "data": {"value": 1}},
        {"type": "Point", "metric": "http_req_failed", "data": {"value": 0}},
        {"type": "Point", "metric": "http_req_failed", "data": {"value": 1}},
        {"type": "Point", "metric": "checks", "data": {"value": 1}},
        {"type": "Point", "metric": "checks", "data": {"value": True}},
        {"type": "Point", "metric": "checks", "data": {"value": 0}},
        {"type": "Point", "metric": "data_received", "data": {"value": 1024}},
        {"type": "Point", "metric": "data_received", "data": {"value": 512}},
        {"type": "Point", "metric": "vus", "data": {"value": 2}},
        {"type": "Point", "metric": "vus", "data": {"value": 4}},
    ]
    content = _events(records) + "this is not json\n"
    events = _write(tmp_path / "events.jsonl", content)

    snapshot = EventStreamExtractor().extract(Evidence(kind=EvidenceKind.EVENT_STREAM, events_path=events))

    assert snapshot.http_requests == 3
    assert (snapshot.checks.passed, snapshot.checks.failed, snapshot.checks.total) == (2, 1, 3)
    assert snapshot.checks.rate == "66.67"
    assert snapshot.request_failure_rate == 50.0
    assert snapshot.data_received == "1.5 KB"
    assert snapshot.max_virtual_users == 4


def test_percentile_95_index() -> None:
    assert percentile_95([float(v) for v in range(1, 21)]) == 20.0
    assert percentile_95([1.0]) == 1.0


def test_missing_summary_falls_back_to_console_text(tmp_path: Path) -> None:
    evidence = Evidence(
        kind=EvidenceKind.SUMMARY_READ,
        console_text="http_reqs......: 120 1.2/s",
        summary_path=tmp_path / "never-written.json",
    )

    assert extract_metrics(evidence).http_requests == 120


def test_safe_field_swallows_rule_errors() -> None:
    def broken() -> int:
        raise KeyError("p(95)")

    assert safe_field("request_duration.p95", broken, logger=_NullLogger()) is None
    assert safe_field("http_requests", lambda: 5) == 5


@pytest.mark.parametrize("kind", list(EvidenceKind))
def test_every_strategy_is_total_on_garbage(tmp_path: Path, kind: EvidenceKind) -> None:
    garbage = "\x00 not a metric ::: {]"
    evidence = Evidence(
        kind=kind,
        console_text=garbage,
        summary_path=_write(tmp_path / "summary.json", garbage),
        events_path=_write(tmp_path / "events.jsonl", garbage + "\n{}\n[1, 2]\n"),
    )

    snapshot = extract_metrics(evidence)

    assert snapshot == MetricsSnapshot()


@pytest.mark.parametrize("kind", list(EvidenceKind))
def test_every_strategy_defaults_without_evidence(tmp_path: Path, kind: EvidenceKind) -> None:
    from load_suite.extractors import EXTRACTORS

    assert EXTRACTORS[kind].extract(Evidence(kind=kind)) == MetricsSnapshot()
