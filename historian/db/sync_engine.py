"""Batch file → DB sync engine.

Walks a Claude Code data directory, parses each session log, groups tool
bursts into turns and writes projects, conversations, messages, tool uses
and todos. Every write is keyed on a unique column, so running the same
pass again over unchanged files leaves the store as it was.
"""
from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

import aiosqlite
from pydantic import ValidationError

from historian import config
from historian.errors import SyncError
from historian.models import AssistantEntry, LogEntry, MessageEntry, SummaryEntry, TodoItem, ToolUseBlock, UserEntry
from historian.parsers.entries import parse_file
from historian.parsers.paths import extract_project_info, extract_session_id, extract_todo_session_id
from historian.parsers.turns import (
    collect_tool_results,
    flatten_content,
    group_turns,
    is_thinking_only,
    is_tool_result_echo,
)
from historian.db.repositories import (
    SqliteConversationRepository,
    SqliteMessageRepository,
    SqliteProjectRepository,
    SqliteTodoRepository,
)

logger = logging.getLogger("historian.sync")


def _parse_timestamp(value: str) -> datetime | None:
    cleaned = (value or "").strip()
    if not cleaned:
        return None
    try:
        parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _time_bounds(entries: Sequence[LogEntry]) -> tuple[str, str]:
    """Earliest and latest timestamp among entries that carry one."""
    stamped: list[tuple[datetime, str]] = []
    for entry in entries:
        raw = getattr(entry, "timestamp", None)
        parsed = _parse_timestamp(raw) if raw else None
        if parsed is not None:
            stamped.append((parsed, raw))
    if not stamped:
        now = datetime.now(timezone.utc).isoformat()
        return now, now
    earliest = min(stamped, key=lambda item: item[0])[1]
    latest = max(stamped, key=lambda item: item[0])[1]
    return earliest, latest


def _first_summary(entries: Sequence[LogEntry]) -> Optional[str]:
    for entry in entries:
        if isinstance(entry, SummaryEntry):
            return entry.summary
    return None


def _message_row(entry: MessageEntry, conversation_id: int) -> dict[str, Any]:
    return {
        "uuid": entry.uuid,
        "conversation_id": conversation_id,
        "parent_uuid": entry.parentUuid,
        "type": entry.type,
        "role": entry.message.role,
        "content": flatten_content(entry),
        "model": entry.message.model if isinstance(entry, AssistantEntry) else None,
        "timestamp": entry.timestamp,
        "is_sidechain": entry.isSidechain,
        "is_meta": bool(getattr(entry, "isMeta", False)),
    }


def _tool_use_rows(entry: AssistantEntry, results: dict[str, str]) -> list[dict[str, Any]]:
    return [
        {
            "tool_id": block.id,
            "tool_name": block.name,
            "input": json.dumps(block.input, default=str),
            "result": results.get(block.id),
            "timestamp": entry.timestamp,
        }
        for block in entry.message.content
        if isinstance(block, ToolUseBlock)
    ]


def _empty_stats() -> dict[str, int]:
    return {
        "projects_scanned": 0,
        "projects_failed": 0,
        "conversations_synced": 0,
        "conversations_skipped": 0,
        "conversations_failed": 0,
        "messages_inserted": 0,
        "messages_existing": 0,
        "tool_uses_inserted": 0,
        "entries_rejected": 0,
        "todo_files_synced": 0,
        "todo_files_failed": 0,
        "todos_upserted": 0,
        "duration_ms": 0,
    }


def _accumulate(stats: dict[str, int], other: dict[str, int]) -> None:
    for key, value in other.items():
        if key in stats and key != "duration_ms":
            stats[key] += value


class SyncEngine:
    """Batch Claude Code log → DB synchronization.

    Single writer: files are processed one after another, each fully
    written before the next is read.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db
        self.project_repo = SqliteProjectRepository(db)
        self.conversation_repo = SqliteConversationRepository(db)
        self.message_repo = SqliteMessageRepository(db)
        self.todo_repo = SqliteTodoRepository(db)

    async def sync_all(self, claude_dir: Path | str | None = None) -> dict[str, int]:
        """Sync every project log and todo snapshot under `claude_dir`.

        Raises SyncError only when the projects directory cannot be listed;
        per-project and per-file failures are logged and counted.
        """
        root = Path(claude_dir) if claude_dir else config.CLAUDE_DIR
        projects_dir = root / "projects"
        logger.info(f"Starting sync from {root}")
        t0 = time.monotonic()
        stats = _empty_stats()

        try:
            project_dirs = sorted(p for p in projects_dir.iterdir() if p.is_dir())
        except OSError as exc:
            raise SyncError(f"Cannot list projects directory {projects_dir}: {exc}") from exc

        for project_dir in project_dirs:
            _accumulate(stats, await self.sync_project(project_dir))

        _accumulate(stats, await self.sync_todos(root / "todos"))

        stats["duration_ms"] = int((time.monotonic() - t0) * 1000)
        logger.info(
            "Sync completed: %d project(s), %d conversation(s) synced, %d skipped, %d failed, "
            "%d message(s) inserted, %d line(s) rejected, %d todo(s) upserted in %dms",
            stats["projects_scanned"],
            stats["conversations_synced"],
            stats["conversations_skipped"],
            stats["conversations_failed"],
            stats["messages_inserted"],
            stats["entries_rejected"],
            stats["todos_upserted"],
            stats["duration_ms"],
        )
        return stats

    # ── Conversation Sync ───────────────────────────────────────────

    async def sync_project(self, project_dir: Path | str) -> dict[str, int]:
        project_dir = Path(project_dir)
        stats = _empty_stats()
        try:
            log_files = sorted(p for p in project_dir.iterdir() if p.is_file() and p.suffix == ".jsonl")
        except OSError as exc:
            logger.error(f"Cannot list project directory {project_dir}: {exc}")
            stats["projects_failed"] += 1
            return stats

        stats["projects_scanned"] += 1
        for path in log_files:
            try:
                result = await self.sync_conversation(path)
            except Exception:
                logger.exception("Error syncing %s", path)
                stats["conversations_failed"] += 1
                continue

            stats["entries_rejected"] += result["rejected"]
            if not result["synced"]:
                stats["conversations_skipped"] += 1
                continue
            stats["conversations_synced"] += 1
            stats["messages_inserted"] += result["messages_inserted"]
            stats["messages_existing"] += result["messages_existing"]
            stats["tool_uses_inserted"] += result["tool_uses_inserted"]
        return stats

    async def sync_conversation(self, file_path: Path | str) -> dict[str, Any]:
        """Parse one session log and write it idempotently.

        Returns per-file counts; `synced` is False when the file held no
        valid entries. Path and I/O errors propagate to the caller.
        """
        path = Path(file_path)
        logger.debug(f"Syncing {path}")

        project_info = extract_project_info(path)
        session_id = extract_session_id(path)

        parsed = parse_file(path)
        result: dict[str, Any] = {
            "session_id": session_id,
            "synced": False,
            "entries": len(parsed.entries),
            "rejected": parsed.rejected,
            "turns": 0,
            "messages_inserted": 0,
            "messages_existing": 0,
            "tool_uses_inserted": 0,
        }
        if not parsed.entries:
            logger.warning(f"No valid entries found in {path}")
            return result

        project_id = await self.project_repo.get_or_create(
            project_info.project_path, project_info.project_name
        )

        started_at, ended_at = _time_bounds(parsed.entries)
        conversation_id = await self.conversation_repo.upsert(
            session_id,
            project_id,
            started_at,
            ended_at,
            _first_summary(parsed.entries),
        )

        tool_results = collect_tool_results(parsed.entries)
        turns = group_turns(parsed.entries)
        result["turns"] = len(turns)

        for turn in turns:
            if not isinstance(turn, (UserEntry, AssistantEntry)):
                continue
            if is_tool_result_echo(turn) or is_thinking_only(turn):
                continue

            tool_uses = _tool_use_rows(turn, tool_results) if isinstance(turn, AssistantEntry) else []
            message_id = await self.message_repo.insert(_message_row(turn, conversation_id), tool_uses)
            if message_id is None:
                result["messages_existing"] += 1
                continue
            result["messages_inserted"] += 1
            result["tool_uses_inserted"] += len(tool_uses)

        result["synced"] = True
        return result

    # ── Todo Sync ───────────────────────────────────────────────────

    async def sync_todos(self, todos_dir: Path | str) -> dict[str, int]:
        todos_dir = Path(todos_dir)
        stats = _empty_stats()
        if not todos_dir.exists():
            logger.warning(f"Todos directory not found: {todos_dir}")
            return stats
        try:
            todo_files = sorted(p for p in todos_dir.iterdir() if p.is_file() and p.suffix == ".json")
        except OSError as exc:
            logger.error(f"Error syncing todos from {todos_dir}: {exc}")
            return stats

        for path in todo_files:
            try:
                upserted = await self.sync_todo_file(path)
            except Exception:
                logger.exception("Error syncing todo file %s", path)
                stats["todo_files_failed"] += 1
                continue
            stats["todo_files_synced"] += 1
            stats["todos_upserted"] += upserted
        return stats

    async def sync_todo_file(self, file_path: Path | str) -> int:
        """Upsert every valid todo in a snapshot file. Returns the upsert count."""
        path = Path(file_path)
        session_id = extract_todo_session_id(path)
        todos = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(todos, list):
            logger.warning(f"Todo file {path} does not hold a list; skipping")
            return 0

        upserted = 0
        for raw in todos:
            try:
                todo = TodoItem.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping invalid todo in %s: %s", path, exc.errors())
                continue
            await self.todo_repo.upsert(session_id, todo.model_dump())
            upserted += 1
        return upserted
