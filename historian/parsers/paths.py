"""Derive project and session identity from Claude Code file locations."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from historian.errors import InvalidPathError

# <root>/projects/<project-path-segment>/<sessionId>.jsonl
_PROJECT_LOG_PATTERN = re.compile(r"(?:^|/)projects/([^/]+)/[^/]+\.jsonl$")
_SESSION_FILE_PATTERN = re.compile(r"(?:^|/)([^/]+)\.jsonl$")
# <root>/todos/<sessionId>[-agent-<agentId>].json
_TODO_FILE_PATTERN = re.compile(
    r"(?:^|/)([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})"
    r"(?:-agent-[0-9a-f-]+)?\.json$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ProjectInfo:
    project_path: str
    project_name: str


def _normalize(path: Path | str) -> str:
    return str(path).replace("\\", "/")


def project_name_from_segment(segment: str) -> str:
    """Turn a project segment such as `-home-me-repo` into `home/me/repo`."""
    trimmed = segment[1:] if segment.startswith("-") else segment
    return trimmed.replace("-", "/")


def extract_project_info(path: Path | str) -> ProjectInfo:
    match = _PROJECT_LOG_PATTERN.search(_normalize(path))
    if not match:
        raise InvalidPathError(path, "expected projects/<project>/<session>.jsonl")
    segment = match.group(1)
    return ProjectInfo(project_path=segment, project_name=project_name_from_segment(segment))


def extract_session_id(path: Path | str) -> str:
    match = _SESSION_FILE_PATTERN.search(_normalize(path))
    if not match:
        raise InvalidPathError(path, "no session filename")
    return match.group(1)


def extract_todo_session_id(path: Path | str) -> str:
    match = _TODO_FILE_PATTERN.search(_normalize(path))
    if not match:
        raise InvalidPathError(path, "expected <session-uuid>[-agent-<id>].json")
    return match.group(1)
