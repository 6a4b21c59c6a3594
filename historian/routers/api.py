"""Read API over the conversation store, plus a manual sync trigger."""
from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from historian import config
from historian.db import connection
from historian.db.repositories import (
    SqliteConversationRepository,
    SqliteMessageRepository,
    SqliteProjectRepository,
    SqliteTodoRepository,
)
from historian.errors import SyncError

logger = logging.getLogger("historian.api")

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])
conversations_router = APIRouter(prefix="/api/conversations", tags=["conversations"])
search_router = APIRouter(prefix="/api", tags=["search"])


class SyncRequest(BaseModel):
    claudeDir: str | None = None


def _get_sync_engine(request: Request):
    sync_engine = getattr(request.app.state, "sync_engine", None)
    if not sync_engine:
        raise HTTPException(status_code=503, detail="Sync engine not initialized")
    return sync_engine


def _resolve_claude_dir(raw: str | None) -> Path:
    """Resolve a requested data directory, which must be CLAUDE_DIR or inside it."""
    base = Path(config.CLAUDE_DIR).expanduser().resolve()
    if not raw:
        return base
    candidate = Path(raw).expanduser().resolve()
    if candidate != base and base not in candidate.parents:
        raise HTTPException(status_code=400, detail=f"claudeDir must be within {base}")
    return candidate


async def _with_messages(conversation: dict) -> dict:
    db = await connection.get_connection()
    messages = await SqliteMessageRepository(db).list_for_conversation(conversation["id"])
    return {**conversation, "messages": messages}


# ── Projects ────────────────────────────────────────────────────────

@projects_router.get("")
async def list_projects():
    """List all projects with their conversation counts."""
    db = await connection.get_connection()
    return await SqliteProjectRepository(db).list_all()


@projects_router.get("/by-path")
async def get_project_by_path(path: str = Query("")):
    if not path:
        raise HTTPException(status_code=400, detail="Path parameter required")
    db = await connection.get_connection()
    project = await SqliteProjectRepository(db).get_by_path(path)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@projects_router.get("/by-path/conversations")
async def list_conversations_by_project_path(path: str = Query("")):
    if not path:
        raise HTTPException(status_code=400, detail="Path parameter required")
    db = await connection.get_connection()
    return await SqliteConversationRepository(db).list_for_project_path(path)


@projects_router.get("/{project_id}/conversations")
async def list_project_conversations(project_id: int):
    db = await connection.get_connection()
    return await SqliteConversationRepository(db).list_for_project(project_id)


# ── Conversations ───────────────────────────────────────────────────

@conversations_router.get("/by-date")
async def list_conversations_by_date(
    start: str | None = Query(None),
    end: str | None = Query(None),
    projectId: int | None = Query(None),
):
    db = await connection.get_connection()
    return await SqliteConversationRepository(db).list_by_date(start, end, projectId)


@conversations_router.get("/by-session/{session_id}")
async def get_conversation_by_session(session_id: str):
    db = await connection.get_connection()
    conversation = await SqliteConversationRepository(db).get_by_session_id(session_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return await _with_messages(conversation)


@conversations_router.get("/{conversation_id}")
async def get_conversation(conversation_id: int):
    """Conversation detail with project name/path and all messages."""
    db = await connection.get_connection()
    conversation = await SqliteConversationRepository(db).get_by_id(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return await _with_messages(conversation)


@conversations_router.get("/{conversation_id}/messages")
async def list_conversation_messages(conversation_id: int):
    db = await connection.get_connection()
    return await SqliteMessageRepository(db).list_for_conversation(conversation_id)


# ── Search, todos, sync ─────────────────────────────────────────────

@search_router.get("/search")
async def search_messages(q: str = Query(""), projectId: int | None = Query(None)):
    """Full-text search over message content."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter required")
    db = await connection.get_connection()
    try:
        return await SqliteMessageRepository(db).search(q, projectId, config.SEARCH_LIMIT)
    except aiosqlite.OperationalError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid search query: {exc}")


@search_router.get("/todos/{session_id}")
async def list_session_todos(session_id: str):
    db = await connection.get_connection()
    return await SqliteTodoRepository(db).list_for_session(session_id)


@search_router.post("/sync")
async def trigger_sync(request: Request, req: SyncRequest | None = None):
    """Run one full sync pass in the foreground and return its stats."""
    sync_engine = _get_sync_engine(request)
    claude_dir = _resolve_claude_dir(req.claudeDir if req else None)
    try:
        stats = await sync_engine.sync_all(claude_dir)
    except SyncError as exc:
        logger.error(f"Sync failed: {exc}")
        raise HTTPException(status_code=500, detail=str(exc))
    return {"status": "ok", "stats": stats}
