"""Command lines for the external load-generation engine (k6)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .extractors import EvidenceKind
from .models import ScenarioDescriptor

DEFAULT_ENGINE_BIN = "k6"


@dataclass(frozen=True)
class EvidencePaths:
    """Per-scenario evidence files, named by index and slug."""

    console_log: Path
    summary_file: Optional[Path] = None
    events_file: Optional[Path] = None


def evidence_paths(evidence_dir: Path, index: int, scenario: ScenarioDescriptor, kind: EvidenceKind) -> EvidencePaths:
    stem = f"{index}-{scenario.slug}"
    return EvidencePaths(
        console_log=evidence_dir / f"console-{stem}.log",
        summary_file=evidence_dir / f"summary-{stem}.json" if kind == EvidenceKind.SUMMARY_READ else None,
        events_file=evidence_dir / f"events-{stem}.jsonl" if kind == EvidenceKind.EVENT_STREAM else None,
    )


@dataclass
class EngineCommand:
    """Builds ``k6 run`` invocations for a scenario."""

    binary: str = DEFAULT_ENGINE_BIN
    env: dict[str, str] = field(default_factory=dict)

    def build(self, scenario: ScenarioDescriptor, paths: EvidencePaths) -> list[str]:
        args = [self.binary, "run"]
        if paths.summary_file is not None:
            args.append(f"--summary-export={paths.summary_file}")
        if paths.events_file is not None:
            args.extend(["--out", f"json={paths.events_file}"])
        for key, value in sorted(self.env.items()):
            args.extend(["--env", f"{key}={value}"])
        args.append(scenario.script_ref)
        return args
