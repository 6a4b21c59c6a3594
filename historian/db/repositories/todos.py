"""SQLite implementation of TodoRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

_PRIORITY_RANK = "CASE priority WHEN 'high' THEN 3 WHEN 'medium' THEN 2 ELSE 1 END"


class SqliteTodoRepository:
    """SQLite-backed todo storage keyed on (session_id, todo_id)."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, session_id: str, todo: dict) -> None:
        """Insert a todo or replace every column of the existing row."""
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO todos (
                session_id, todo_id, content, status, priority, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id, todo_id) DO UPDATE SET
                content=excluded.content, status=excluded.status,
                priority=excluded.priority, updated_at=excluded.updated_at
            """,
            (
                session_id,
                todo["id"],
                todo.get("content", ""),
                todo.get("status", "pending"),
                todo.get("priority", "medium"),
                now, now,
            ),
        )
        await self.db.commit()

    async def list_for_session(self, session_id: str) -> list[dict]:
        async with self.db.execute(
            f"SELECT * FROM todos WHERE session_id = ? ORDER BY {_PRIORITY_RANK} DESC, created_at ASC, id ASC",
            (session_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count(self, session_id: str | None = None) -> int:
        if session_id:
            async with self.db.execute(
                "SELECT COUNT(*) FROM todos WHERE session_id = ?", (session_id,)
            ) as cur:
                row = await cur.fetchone()
        else:
            async with self.db.execute("SELECT COUNT(*) FROM todos") as cur:
                row = await cur.fetchone()
        return row[0] if row else 0
