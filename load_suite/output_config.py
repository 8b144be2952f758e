"""Output format and runtime setting resolution.

Every setting follows the same priority: CLI parameter > environment
variable > default.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Literal

from .engine import DEFAULT_ENGINE_BIN
from .extractors import EvidenceKind


class OutputFormat(str, Enum):
    """Console output formats."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"
ENGINE_ENV_VAR = "LOAD_SUITE_ENGINE_BIN"
REPORT_DIR_ENV_VAR = "LOAD_SUITE_REPORT_DIR"
STRATEGY_ENV_VAR = "LOAD_SUITE_STRATEGY"

DEFAULT_REPORT_DIR = Path("reports")
DEFAULT_STRATEGY = EvidenceKind.SUMMARY_READ


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """
    Get the output format with priority: CLI parameter > Environment variable > Default (auto).

    Args:
        cli_override: Optional CLI parameter value that takes precedence

    Returns:
        OutputFormat enum value
    """
    if cli_override:
        try:
            return OutputFormat(cli_override.lower())
        except ValueError:
            pass

    env_value = os.environ.get(ENV_VAR_NAME)
    if env_value:
        try:
            return OutputFormat(env_value.lower())
        except ValueError:
            pass

    return OutputFormat.AUTO


def get_log_format(output_format: OutputFormat) -> LogFormat:
    """Map the console output format onto a structlog renderer."""
    if output_format == OutputFormat.JSON:
        return "json"
    if output_format == OutputFormat.PLAIN:
        return "plain"
    return "console"


def get_engine_binary(cli_override: str | None = None) -> str:
    return cli_override or os.environ.get(ENGINE_ENV_VAR) or DEFAULT_ENGINE_BIN


def get_report_dir(cli_override: Path | None = None) -> Path:
    if cli_override is not None:
        return cli_override
    env_value = os.environ.get(REPORT_DIR_ENV_VAR)
    return Path(env_value) if env_value else DEFAULT_REPORT_DIR


def get_strategy(cli_override: str | None = None) -> EvidenceKind:
    """
    Resolve the evidence strategy (text, summary or events).

    Raises:
        ValueError: If the CLI value is not a known strategy. Unknown
            environment values fall back to the default.
    """
    if cli_override:
        return EvidenceKind(cli_override.lower())
    env_value = os.environ.get(STRATEGY_ENV_VAR)
    if env_value:
        try:
            return EvidenceKind(env_value.lower())
        except ValueError:
            pass
    return DEFAULT_STRATEGY
