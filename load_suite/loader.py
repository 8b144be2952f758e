"""Scenario catalog loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .errors import CatalogError
from .models import ScenarioDescriptor

DEFAULT_SCENARIOS: tuple[ScenarioDescriptor, ...] = (
    ScenarioDescriptor(
        name="Login Test",
        script_ref="tests/login.js",
        description="Single user login authentication test",
    ),
    ScenarioDescriptor(
        name="Create User Test",
        script_ref="tests/admin/create-user.js",
        description="User creation endpoint load test",
    ),
    ScenarioDescriptor(
        name="List Users Test",
        script_ref="tests/list-users.js",
        description="Admin list users endpoint load test",
    ),
    ScenarioDescriptor(
        name="Ban and Unban Users Test",
        script_ref="tests/ban-unban-users.js",
        description="Ban and Unban users endpoint load test",
    ),
    ScenarioDescriptor(
        name="Set Role Test",
        script_ref="tests/admin/set-role.js",
        description="Set Role endpoint load test",
    ),
    ScenarioDescriptor(
        name="Edit Users Test",
        script_ref="tests/edit-user.js",
        description="Edit users endpoint load test",
    ),
)


def load_catalog(path: Path) -> list[ScenarioDescriptor]:
    """Load an ordered scenario list from YAML.

    Accepts either a top-level list or a mapping with a ``scenarios`` list.
    Each entry needs ``name`` and ``script`` (or ``script_ref``).
    """

    if not path.exists():
        raise CatalogError(f"Scenario catalog not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise CatalogError(f"Scenario catalog {path} is not valid YAML: {exc}") from exc

    entries = data.get("scenarios") if isinstance(data, dict) else data
    if not isinstance(entries, list) or not entries:
        raise CatalogError(f"Scenario catalog {path} must contain a non-empty list of scenarios")

    scenarios = [_parse_entry(entry, position) for position, entry in enumerate(entries, start=1)]
    seen: set[str] = set()
    for scenario in scenarios:
        if scenario.script_ref in seen:
            raise CatalogError(f"Duplicate scenario script in catalog: {scenario.script_ref}")
        seen.add(scenario.script_ref)
    return scenarios


def _parse_entry(entry: Any, position: int) -> ScenarioDescriptor:
    if not isinstance(entry, dict):
        raise CatalogError(f"Scenario #{position} must be a mapping")
    payload = dict(entry)
    if "script" in payload and "script_ref" not in payload:
        payload["script_ref"] = payload.pop("script")
    try:
        return ScenarioDescriptor.model_validate(payload)
    except ValidationError as exc:
        raise CatalogError(f"Scenario #{position} is invalid: {exc}") from exc
