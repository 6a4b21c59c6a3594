"""Parse Claude Code JSONL session logs into typed log entries.

Parsing is two-staged: the line must be valid JSON, and the decoded value
must validate as one of the `user` / `assistant` / `summary` entry shapes.
Lines failing either stage are reported as rejections, never raised.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from historian.models import LogEntry

logger = logging.getLogger("historian.parser")

_ENTRY_ADAPTER: TypeAdapter = TypeAdapter(LogEntry)


@dataclass
class LineResult:
    entry: Optional[LogEntry] = None
    error: Optional[str] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.entry is not None


@dataclass
class ParseResult:
    entries: list[LogEntry] = field(default_factory=list)
    rejected: int = 0
    errors: list[str] = field(default_factory=list)


def _describe_validation_error(exc: ValidationError) -> str:
    fields: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        fields.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "validation failed: " + "; ".join(fields)


def parse_line(line: str) -> LineResult:
    """Parse one raw log line. Blank lines come back as `skipped`."""
    stripped = line.strip()
    if not stripped:
        return LineResult(skipped=True)

    try:
        raw = json.loads(stripped)
    except (json.JSONDecodeError, RecursionError) as exc:
        return LineResult(error=f"invalid JSON: {exc}")

    try:
        entry = _ENTRY_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        return LineResult(error=_describe_validation_error(exc))
    return LineResult(entry=entry)


def parse_text(text: str) -> ParseResult:
    """Parse JSONL text, keeping valid entries in line order."""
    result = ParseResult()
    for line_no, line in enumerate(text.split("\n"), start=1):
        parsed = parse_line(line)
        if parsed.skipped:
            continue
        if parsed.ok:
            result.entries.append(parsed.entry)
            continue
        result.rejected += 1
        result.errors.append(f"line {line_no}: {parsed.error}")
        logger.debug("Rejected line %d: %s", line_no, parsed.error)
    return result


def parse_file(path: Path | str) -> ParseResult:
    """Parse a session log file. Raises OSError if the file cannot be read."""
    path = Path(path)
    text = path.read_text(encoding="utf-8", errors="replace")
    result = parse_text(text)
    if result.rejected:
        logger.warning(
            "Skipped %d invalid line(s) in %s (%d valid)",
            result.rejected, path, len(result.entries),
        )
    return result
