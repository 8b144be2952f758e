"""CLI entry point for the load suite."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "load_suite"

from .console_reporter import ConsoleReporter
from .engine import EngineCommand
from .errors import CatalogError, ReportWriteError
from .executor import RunExecutor
from .loader import DEFAULT_SCENARIOS, load_catalog
from .logging_utils import configure_logging
from .output_config import (
    get_engine_binary,
    get_log_format,
    get_output_format,
    get_report_dir,
    get_strategy,
)
from .reporting import write_report_files, write_reports
from .session import SuiteSession, load_results, make_timestamp_label

app = typer.Typer(help="Run k6 load-test scenarios in sequence and render HTML/CSV reports.")


def _parse_env(pairs: list[str]) -> dict[str, str]:
    result: dict[str, str] = {}
    for item in pairs:
        if "=" not in item:
            raise typer.BadParameter("Engine environment overrides must be in KEY=VALUE format")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter("Engine environment key cannot be empty")
        result[key] = value.strip()
    return result


@app.command()
def run(
    catalog: Optional[Path] = typer.Option(
        None,
        help="YAML scenario catalog. Defaults to the built-in scenario list.",
    ),
    report_dir: Optional[Path] = typer.Option(
        None,
        help="Directory for reports and evidence (env LOAD_SUITE_REPORT_DIR, default: reports).",
    ),
    strategy: Optional[str] = typer.Option(
        None,
        help="Evidence to capture and parse: text, summary or events (env LOAD_SUITE_STRATEGY).",
    ),
    engine: Optional[str] = typer.Option(
        None,
        help="Engine binary (env LOAD_SUITE_ENGINE_BIN, default: k6).",
    ),
    env: list[str] = typer.Option(
        [],
        "--env",
        "-e",
        help="KEY=VALUE pairs forwarded to the engine as --env flags.",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        help="Console output: auto, rich, plain or json (env CONSOLE_OUTPUT_FORMAT).",
    ),
    log_level: str = typer.Option("info", help="Log level."),
) -> None:
    """Execute every scenario once, then write the HTML and CSV reports."""

    console_format = get_output_format(output_format)
    logger = configure_logging(log_level, get_log_format(console_format))

    try:
        scenarios = load_catalog(catalog) if catalog else list(DEFAULT_SCENARIOS)
    except CatalogError as exc:
        raise typer.BadParameter(str(exc)) from exc
    try:
        evidence_kind = get_strategy(strategy)
    except ValueError as exc:
        raise typer.BadParameter(f"Unknown strategy: {strategy}") from exc

    session = SuiteSession(report_dir=get_report_dir(report_dir))
    reporter = ConsoleReporter(output_format=console_format)
    executor = RunExecutor(
        session=session,
        engine=EngineCommand(binary=get_engine_binary(engine), env=_parse_env(env)),
        strategy=evidence_kind,
        reporter=reporter,
    )
    executor.run(scenarios)

    try:
        artifacts = write_reports(session)
    except ReportWriteError as exc:
        logger.error("report_failed", error=str(exc), results_file=str(session.results_file))
        reporter.print_error(str(exc))
        raise typer.Exit(code=1) from exc

    for artifact in artifacts:
        reporter.print_info(f"{artifact.kind.upper()} report saved to {artifact.path}")

    if session.summarize().failed:
        raise typer.Exit(code=1)


@app.command()
def report(
    results: Path = typer.Option(..., exists=True, readable=True, help="Results JSONL flushed by a previous run."),
    report_dir: Optional[Path] = typer.Option(None, help="Directory for the rendered reports."),
    label: Optional[str] = typer.Option(
        None,
        help="Timestamp label for the report filenames. Defaults to the label in the results filename.",
    ),
) -> None:
    """Re-render HTML and CSV reports from a flushed results file."""

    loaded = load_results(results)
    timestamp_label = label or _label_from_results_file(results)
    try:
        artifacts = write_report_files(loaded, timestamp_label, get_report_dir(report_dir))
    except ReportWriteError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    for artifact in artifacts:
        typer.secho(f"{artifact.kind.upper()} report saved to {artifact.path}", fg=typer.colors.GREEN)


def _label_from_results_file(path: Path) -> str:
    stem = path.stem
    if stem.startswith("results-"):
        return stem[len("results-"):]
    return make_timestamp_label(datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc))


def main() -> None:
    """CLI entry point for console_scripts."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
