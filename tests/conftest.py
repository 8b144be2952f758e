"""Test bootstrap and shared builders for the load suite."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from load_suite.models import (  # noqa: E402
    DurationStats,
    MetricsSnapshot,
    RunResult,
    RunStatus,
    ScenarioDescriptor,
)

FIXED_TIME = datetime(2024, 5, 1, 12, 30, 15, 250000, tzinfo=timezone.utc)


def make_scenario(name: str = "Login Test", script_ref: str = "tests/login.js") -> ScenarioDescriptor:
    return ScenarioDescriptor(name=name, script_ref=script_ref, description=f"{name} description")


def passed_result(
    name: str = "Login Test",
    *,
    requests: int = 50,
    avg: float = 120.0,
    iterations: int = 10,
    duration: float = 12.5,
) -> RunResult:
    return RunResult(
        scenario=make_scenario(name, f"tests/{name.lower().replace(' ', '-')}.js"),
        status=RunStatus.PASSED,
        duration_seconds=duration,
        timestamp=FIXED_TIME,
        metrics=MetricsSnapshot(
            http_requests=requests,
            iterations=iterations,
            request_duration=DurationStats(avg=avg, min=10.0, max=400.0, med=100.0, p95=300.0),
        ),
    )


def failed_result(name: str = "Edit Users Test", *, error: Optional[str] = "connection refused") -> RunResult:
    return RunResult(
        scenario=make_scenario(name, f"tests/{name.lower().replace(' ', '-')}.js"),
        status=RunStatus.FAILED,
        duration_seconds=3.25,
        timestamp=FIXED_TIME,
        metrics=None,
        error=error,
    )
