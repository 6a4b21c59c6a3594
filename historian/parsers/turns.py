"""Collapse tool-use bursts in a session's entries into storable turns.

Claude Code writes one assistant entry per API round-trip, so a single
tool-using turn shows up as a run of assistant entries, each followed by a
user entry echoing the tool result. `group_turns` folds such runs into a
single assistant entry; echoes are dropped since their payload is kept on
the tool-use rows instead.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from historian.models import (
    AssistantEntry,
    LogEntry,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    UserEntry,
)

logger = logging.getLogger("historian.parser")


def _looks_like_tool_result(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("tool_use_id"))


def is_tool_result_echo(entry: Any) -> bool:
    """True for user entries that only carry tool output, not user input."""
    if not isinstance(entry, UserEntry):
        return False

    content = entry.message.content
    if isinstance(content, list):
        return bool(content) and all(
            block.tool_use_id and not block.text for block in content
        )

    try:
        parsed = json.loads(content.strip())
    except (json.JSONDecodeError, RecursionError):
        return False
    if _looks_like_tool_result(parsed):
        return True
    return isinstance(parsed, list) and bool(parsed) and all(
        _looks_like_tool_result(item) for item in parsed
    )


def has_tool_use(entry: Any) -> bool:
    if not isinstance(entry, AssistantEntry):
        return False
    return any(isinstance(block, ToolUseBlock) for block in entry.message.content)


def is_thinking_only(entry: Any) -> bool:
    if not isinstance(entry, AssistantEntry) or not entry.message.content:
        return False
    return all(isinstance(block, ThinkingBlock) for block in entry.message.content)


def _resumes_tool_burst(entries: Sequence[LogEntry], start: int) -> bool:
    """Whether a tool-bearing assistant entry follows, past echoes and thinking."""
    for entry in entries[start:]:
        if is_tool_result_echo(entry) or is_thinking_only(entry):
            continue
        return has_tool_use(entry)
    return False


def merge_assistant_entries(group: Sequence[AssistantEntry]) -> AssistantEntry:
    """Merge a run of assistant entries into one, keyed on the first entry."""
    if not group:
        raise ValueError("Cannot merge an empty group of assistant entries")
    if len(group) == 1:
        return group[0]

    first = group[0]
    blocks = [block for entry in group for block in entry.message.content]
    message = first.message.model_copy(update={"content": blocks})
    return first.model_copy(update={"message": message})


def group_turns(entries: Sequence[LogEntry]) -> list[LogEntry]:
    """Group consecutive tool-bearing assistant entries into single turns.

    Non-assistant entries and tool-free assistant entries pass through.
    A tool-bearing assistant entry opens a group that keeps extending over
    tool-result echoes (skipped), further tool-bearing assistant entries,
    and thinking-only entries sitting between two tool-bearing ones. Any
    other entry closes the group and is handled on the next iteration.
    """
    result: list[LogEntry] = []
    i = 0
    total = len(entries)

    while i < total:
        entry = entries[i]
        if not has_tool_use(entry):
            result.append(entry)
            i += 1
            continue

        group: list[AssistantEntry] = [entry]
        j = i + 1
        while j < total:
            nxt = entries[j]
            if is_tool_result_echo(nxt):
                j += 1
                continue
            if has_tool_use(nxt):
                group.append(nxt)
                j += 1
                continue
            if is_thinking_only(nxt) and _resumes_tool_burst(entries, j + 1):
                group.append(nxt)
                j += 1
                continue
            break

        if len(group) > 1:
            logger.debug("Merged %d consecutive assistant entries starting at %s", len(group), entry.uuid)
        result.append(merge_assistant_entries(group))
        i = j

    return result


# ── Content flattening ──────────────────────────────────────────────

def _payload_text(payload: Any) -> Optional[str]:
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    if isinstance(payload, list) and all(
        isinstance(item, dict) and item.get("type") == "text" for item in payload
    ):
        return "\n".join(str(item.get("text") or "") for item in payload)
    return json.dumps(payload, default=str)


def flatten_content(entry: UserEntry | AssistantEntry) -> str:
    """Flatten message content into the text stored and indexed for search."""
    if isinstance(entry, AssistantEntry):
        return "\n".join(
            block.text for block in entry.message.content if isinstance(block, TextBlock)
        )

    content = entry.message.content
    if isinstance(content, str):
        return content
    return "\n".join(
        block.text if block.text else json.dumps(block.model_dump(exclude_none=True), default=str)
        for block in content
    )


def collect_tool_results(entries: Sequence[LogEntry]) -> dict[str, str]:
    """Map tool_use_id -> result text from the session's tool-result echoes."""
    results: dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, UserEntry):
            continue
        content = entry.message.content
        if isinstance(content, list):
            items = [block.model_dump() for block in content if block.tool_use_id]
        else:
            try:
                parsed = json.loads(content.strip())
            except (json.JSONDecodeError, RecursionError):
                continue
            if _looks_like_tool_result(parsed):
                items = [parsed]
            elif isinstance(parsed, list):
                items = [item for item in parsed if _looks_like_tool_result(item)]
            else:
                continue

        for item in items:
            payload = item.get("content")
            if payload is None:
                payload = item.get("tool_result")
            text = _payload_text(payload)
            if text is not None:
                results[str(item["tool_use_id"])] = text
    return results
