"""Pydantic models for Claude Code log entries and todo snapshots."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

# ── Content blocks ──────────────────────────────────────────────────

class UserContentBlock(BaseModel):
    """One block of a user message; either free text or a tool result."""
    type: str
    text: Optional[str] = None
    tool_use_id: Optional[str] = None
    content: Any = None
    tool_result: Any = None
    is_error: Optional[bool] = None


class TextBlock(BaseModel):
    type: Literal["text"]
    text: str


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"]
    id: str
    name: str
    input: Any = None


class ThinkingBlock(BaseModel):
    type: Literal["thinking"]
    thinking: str
    signature: Optional[str] = None


AssistantContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ThinkingBlock],
    Field(discriminator="type"),
]


class UserMessageBody(BaseModel):
    role: Literal["user"]
    content: Union[str, list[UserContentBlock]]


class AssistantMessageBody(BaseModel):
    id: Optional[str] = None
    type: Optional[str] = None
    role: Literal["assistant"]
    model: str
    content: list[AssistantContentBlock]
    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None
    usage: Optional[dict[str, Any]] = None


# ── Log entries ─────────────────────────────────────────────────────

class BaseEntry(BaseModel):
    uuid: str
    parentUuid: Optional[str]
    sessionId: str
    timestamp: str
    isSidechain: bool
    userType: Optional[str] = None
    cwd: Optional[str] = None
    version: Optional[str] = None


class UserEntry(BaseEntry):
    type: Literal["user"]
    message: UserMessageBody
    isMeta: Optional[bool] = None
    toolUseResult: Any = None


class AssistantEntry(BaseEntry):
    type: Literal["assistant"]
    message: AssistantMessageBody
    requestId: Optional[str] = None


class SummaryEntry(BaseModel):
    type: Literal["summary"]
    summary: str
    leafUuid: str


LogEntry = Annotated[
    Union[UserEntry, AssistantEntry, SummaryEntry],
    Field(discriminator="type"),
]

# Entries that become persisted messages.
MessageEntry = Union[UserEntry, AssistantEntry]


# ── Todos ───────────────────────────────────────────────────────────

class TodoItem(BaseModel):
    id: str
    content: str
    status: Literal["pending", "in_progress", "completed"]
    priority: Literal["low", "medium", "high"] = "medium"

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # Older snapshots number their todos.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value
