"""Exception types raised by the ingestion pipeline."""
from __future__ import annotations

from pathlib import Path


class HistorianError(Exception):
    """Base class for pipeline errors."""


class InvalidPathError(HistorianError, ValueError):
    """A log or todo file path does not have the expected shape."""

    def __init__(self, path: str | Path, reason: str = "") -> None:
        self.path = str(path)
        message = f"Invalid log file path: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class SyncError(HistorianError):
    """A sync pass could not run at all (top-level traversal failed)."""
