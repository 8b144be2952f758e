"""Exceptions raised by the load suite."""

from __future__ import annotations


class LoadSuiteError(RuntimeError):
    """Base class for suite failures."""


class ScenarioExecutionError(LoadSuiteError):
    """The engine exited non-zero or could not be started."""

    def __init__(self, message: str, *, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class ExtractionError(LoadSuiteError):
    """A metric field could not be derived from the captured evidence."""


class ReportWriteError(LoadSuiteError):
    """An HTML or CSV report could not be written."""


class CatalogError(LoadSuiteError):
    """The scenario catalog file is missing or malformed."""
