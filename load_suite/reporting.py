"""HTML and CSV report rendering."""

from __future__ import annotations

import csv
import io
from html import escape
from pathlib import Path
from typing import Sequence

import structlog

from .errors import ReportWriteError
from .models import AggregateSummary, ReportArtifact, RunResult, RunStatus
from .session import SuiteSession, summarize

LOGGER = structlog.get_logger("load_suite")

# Check pass rate, in percent, shown as healthy in the report.
CHECK_RATE_TARGET_PCT = 95.0

CSV_HEADER = (
    "name",
    "status",
    "duration",
    "iterations",
    "requests",
    "avgResponseTime",
    "p95ResponseTime",
    "successRate",
    "failRate",
    "timestamp",
)

_STYLES = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: #f5f6fa; padding: 20px; line-height: 1.6; }
        .container { max-width: 1200px; margin: 0 auto; background: white; border-radius: 10px; box-shadow: 0 10px 30px rgba(0,0,0,0.1); overflow: hidden; }
        .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 40px; text-align: center; }
        .header h1 { font-size: 2.2em; margin-bottom: 10px; }
        .summary { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; padding: 30px; background: #f8f9fa; }
        .summary-card { background: white; padding: 25px; border-radius: 8px; text-align: center; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
        .summary-card .value { font-size: 2em; font-weight: bold; margin: 10px 0; }
        .success { color: #10b981; }
        .failure { color: #ef4444; }
        .info { color: #3b82f6; }
        .overview { padding: 30px; border-bottom: 1px solid #e5e7eb; }
        .overview h2, .results h2 { margin-bottom: 20px; color: #1f2937; }
        .overview-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(250px, 1fr)); gap: 20px; }
        .overview-item { padding: 15px; background: #f8f9fa; border-radius: 8px; }
        .label { font-size: 0.9em; color: #6b7280; }
        .overview-item .value { font-size: 1.2em; font-weight: 600; color: #1f2937; }
        .results { padding: 30px; }
        .scenario-card { border: 1px solid #e5e7eb; border-radius: 8px; padding: 25px; margin-bottom: 20px; }
        .scenario-header { display: flex; justify-content: space-between; align-items: center; margin-bottom: 15px; padding-bottom: 15px; border-bottom: 2px solid #f3f4f6; }
        .scenario-title { font-size: 1.3em; font-weight: 600; color: #1f2937; }
        .status-badge { padding: 6px 12px; border-radius: 20px; font-weight: 600; font-size: 0.8em; }
        .status-passed { background: #d1fae5; color: #065f46; }
        .status-failed { background: #fee2e2; color: #991b1b; }
        .meta { color: #6b7280; font-size: 0.9em; }
        .metric-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr)); gap: 15px; margin-top: 15px; }
        .metric { text-align: center; padding: 10px; background: #f9fafb; border-radius: 6px; }
        .metric-value { font-size: 1.3em; font-weight: 700; color: #3b82f6; }
        .metric-label { font-size: 0.8em; color: #6b7280; margin-top: 5px; }
        .metric-value.success { color: #10b981; }
        .metric-value.failure { color: #ef4444; }
        .error-panel { background: #fee2e2; border-left: 4px solid #ef4444; padding: 15px; margin-top: 15px; border-radius: 5px; color: #991b1b; white-space: pre-wrap; }
        .footer { text-align: center; padding: 20px; background: #f8f9fa; color: #666; }
"""


def html_filename(timestamp_label: str) -> str:
    return f"load-report-{timestamp_label}.html"


def csv_filename(timestamp_label: str) -> str:
    return f"load-results-{timestamp_label}.csv"


def render_html(results: Sequence[RunResult], timestamp_label: str) -> str:
    """Render the full HTML report; identical inputs give identical output."""

    summary = summarize(results)
    label = escape(timestamp_label)
    rate_class = "success" if summary.success_rate_pct >= 90 else "failure"
    blocks = "".join(_render_result(result) for result in results)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Load Test Report - {label}</title>
    <style>{_STYLES}    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>Load Test Report</h1>
            <p>Generated on {label}</p>
        </div>
        <div class="summary">
            {_card("Total Scenarios", summary.total, "info")}
            {_card("Passed", summary.passed, "success")}
            {_card("Failed", summary.failed, "failure")}
            {_card("Success Rate", f"{summary.success_rate_pct}%", rate_class)}
        </div>
{_render_overview(summary)}
        <div class="results">
            <h2>Scenario Results</h2>
{blocks}        </div>
        <div class="footer">
            <p>Generated by load-suite | {label}</p>
        </div>
    </div>
</body>
</html>
"""


def _card(label: str, value: object, css_class: str) -> str:
    return (
        f'<div class="summary-card"><div class="label">{escape(label)}</div>'
        f'<div class="value {css_class}">{escape(str(value))}</div></div>'
    )


def _render_overview(summary: AggregateSummary) -> str:
    items = (
        ("Total HTTP Requests", summary.total_requests),
        ("Total Iterations", summary.total_iterations),
        ("Average Response Time", f"{summary.avg_response_time_ms}ms"),
        ("Total Duration", f"{summary.total_duration_seconds:.2f}s"),
    )
    rendered = "\n".join(
        f'                <div class="overview-item"><div class="label">{escape(label)}</div>'
        f'<div class="value">{escape(str(value))}</div></div>'
        for label, value in items
    )
    return f"""        <div class="overview">
            <h2>Overall Performance</h2>
            <div class="overview-grid">
{rendered}
            </div>
        </div>"""


def _render_result(result: RunResult) -> str:
    scenario = result.scenario
    status = result.status.value
    parts = [
        '            <div class="scenario-card">\n',
        '                <div class="scenario-header">'
        f'<div class="scenario-title">{escape(scenario.name)}</div>'
        f'<span class="status-badge status-{status.lower()}">{status}</span></div>\n',
        f'                <p class="meta">{escape(scenario.description)}</p>\n',
        f'                <p class="meta">File: {escape(scenario.script_ref)} | '
        f"Duration: {result.duration_seconds:.2f}s</p>\n",
    ]
    if result.status == RunStatus.PASSED and result.metrics is not None:
        parts.append(_render_metrics(result))
    if result.error is not None:
        parts.append(f'                <div class="error-panel"><strong>Error:</strong> {escape(result.error)}</div>\n')
    parts.append("            </div>\n")
    return "".join(parts)


def _render_metrics(result: RunResult) -> str:
    metrics = result.metrics
    duration = metrics.request_duration
    checks = metrics.checks
    check_class = "success" if float(checks.rate) >= CHECK_RATE_TARGET_PCT else "failure"
    cells = (
        ("HTTP Requests", metrics.http_requests, "metric-value"),
        ("Iterations", metrics.iterations, "metric-value"),
        ("Avg Response Time", f"{duration.avg}ms", "metric-value"),
        ("Min Response Time", f"{duration.min}ms", "metric-value"),
        ("Median Response Time", f"{duration.med}ms", "metric-value"),
        ("P95 Response Time", f"{duration.p95}ms", "metric-value"),
        ("Max Response Time", f"{duration.max}ms", "metric-value"),
        ("Check Pass Rate", f"{checks.rate}% ({checks.passed}/{checks.total})", f"metric-value {check_class}"),
        ("Fail Rate", f"{metrics.request_failure_rate}%", "metric-value"),
        ("Data Sent", metrics.data_sent, "metric-value"),
        ("Data Received", metrics.data_received, "metric-value"),
        ("Max VUs", metrics.max_virtual_users, "metric-value"),
    )
    rendered = "".join(
        f'<div class="metric"><div class="{css}">{escape(str(value))}</div>'
        f'<div class="metric-label">{escape(label)}</div></div>'
        for label, value, css in cells
    )
    return f'                <div class="metric-grid">{rendered}</div>\n'


def csv_row(result: RunResult) -> list[object]:
    metrics = result.metrics
    if metrics is None:
        iterations, requests, avg, p95, success, fail = 0, 0, 0.0, 0.0, 0.0, 0.0
    else:
        iterations = metrics.iterations
        requests = metrics.http_requests
        avg = metrics.request_duration.avg
        p95 = metrics.request_duration.p95
        success = float(metrics.checks.rate)
        fail = metrics.request_failure_rate
    return [
        result.scenario.name,
        result.status.value,
        result.duration_seconds,
        iterations,
        requests,
        avg,
        p95,
        success,
        fail,
        result.timestamp.isoformat(),
    ]


def render_csv(results: Sequence[RunResult]) -> str:
    """Render one header row plus one row per result; strings are quoted."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for result in results:
        writer.writerow(csv_row(result))
    return buffer.getvalue()


def write_reports(session: SuiteSession) -> list[ReportArtifact]:
    """Write the HTML and CSV reports for everything the session recorded."""

    return write_report_files(session.results, session.timestamp_label, session.report_dir)


def write_report_files(results: Sequence[RunResult], timestamp_label: str, report_dir: Path) -> list[ReportArtifact]:
    artifacts = [
        ReportArtifact(
            kind="html",
            path=str(report_dir / html_filename(timestamp_label)),
            content=render_html(results, timestamp_label),
        ),
        ReportArtifact(
            kind="csv",
            path=str(report_dir / csv_filename(timestamp_label)),
            content=render_csv(results),
        ),
    ]
    try:
        report_dir.mkdir(parents=True, exist_ok=True)
        for artifact in artifacts:
            Path(artifact.path).write_text(artifact.content, encoding="utf-8")
            LOGGER.info("report_written", kind=artifact.kind, path=artifact.path)
    except OSError as exc:
        raise ReportWriteError(f"Could not write reports to {report_dir}: {exc}") from exc
    return artifacts
