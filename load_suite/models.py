"""Scenario, metrics and run result models."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ScenarioDescriptor(BaseModel):
    """One load-test scenario handed to the engine."""

    model_config = ConfigDict(frozen=True)

    name: str
    script_ref: str
    description: str = ""

    @property
    def slug(self) -> str:
        stem = PurePosixPath(self.script_ref.replace("\\", "/")).stem
        slug = re.sub(r"[^0-9a-z_-]+", "-", stem.lower()).strip("-")
        return slug or "scenario"


class DurationStats(BaseModel):
    """Request duration distribution in milliseconds."""

    model_config = ConfigDict(frozen=True)

    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    med: float = 0.0
    p95: float = 0.0


class CheckStats(BaseModel):
    """Check outcome tally; ``rate`` is a percentage with two decimals."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    passed: int = 0
    failed: int = 0
    rate: str = "0.00"


class MetricsSnapshot(BaseModel):
    """Canonical metrics shape every extraction strategy produces."""

    model_config = ConfigDict(frozen=True)

    http_requests: int = 0
    request_duration: DurationStats = Field(default_factory=DurationStats)
    request_failure_rate: float = 0.0
    iterations: int = 0
    checks: CheckStats = Field(default_factory=CheckStats)
    max_virtual_users: int = 0
    data_received: str = "0 B"
    data_sent: str = "0 B"


class RunStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"


class RunResult(BaseModel):
    """Outcome of a single scenario execution."""

    model_config = ConfigDict(frozen=True)

    scenario: ScenarioDescriptor
    status: RunStatus
    duration_seconds: float
    timestamp: datetime
    metrics: Optional[MetricsSnapshot] = None
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == RunStatus.PASSED


class AggregateSummary(BaseModel):
    """Derived view over a list of run results."""

    total: int
    passed: int
    failed: int
    success_rate_pct: float
    total_duration_seconds: float
    total_requests: int
    total_iterations: int
    avg_response_time_ms: float


class ReportArtifact(BaseModel):
    """Rendered report content and where it was written."""

    model_config = ConfigDict(frozen=True)

    kind: str
    path: str
    content: str
