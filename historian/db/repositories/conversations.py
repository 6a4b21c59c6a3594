"""SQLite implementation of ConversationRepository."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import aiosqlite

_MESSAGE_COUNT = "(SELECT COUNT(*) FROM messages WHERE conversation_id = c.id) AS message_count"


class SqliteConversationRepository:
    """SQLite-backed conversation storage, one row per session id."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(
        self,
        session_id: str,
        project_id: int,
        started_at: str,
        ended_at: str,
        summary: Optional[str],
    ) -> int:
        """Insert a conversation, or refresh `ended_at`/`summary` of an existing one.

        `started_at` and the owning project are fixed at creation.
        """
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO conversations (
                session_id, project_id, started_at, ended_at, summary, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                ended_at=excluded.ended_at, summary=excluded.summary,
                updated_at=excluded.updated_at
            """,
            (session_id, project_id, started_at, ended_at, summary, now, now),
        )
        await self.db.commit()
        async with self.db.execute(
            "SELECT id FROM conversations WHERE session_id = ?", (session_id,)
        ) as cur:
            row = await cur.fetchone()
        return int(row["id"])

    async def get_by_id(self, conversation_id: int) -> dict | None:
        async with self.db.execute(
            """SELECT c.*, p.name AS project_name, p.path AS project_path
               FROM conversations c
               JOIN projects p ON c.project_id = p.id
               WHERE c.id = ?""",
            (conversation_id,),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_by_session_id(self, session_id: str) -> dict | None:
        async with self.db.execute(
            """SELECT c.*, p.name AS project_name, p.path AS project_path
               FROM conversations c
               JOIN projects p ON c.project_id = p.id
               WHERE c.session_id = ?""",
            (session_id,),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_for_project(self, project_id: int) -> list[dict]:
        async with self.db.execute(
            f"""SELECT c.*, {_MESSAGE_COUNT}
                FROM conversations c
                WHERE c.project_id = ?
                ORDER BY c.started_at DESC""",
            (project_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_for_project_path(self, path: str) -> list[dict]:
        async with self.db.execute(
            f"""SELECT c.*, {_MESSAGE_COUNT}
                FROM conversations c
                JOIN projects p ON c.project_id = p.id
                WHERE p.path = ?
                ORDER BY c.started_at DESC""",
            (path,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_by_date(
        self,
        start: str | None = None,
        end: str | None = None,
        project_id: int | None = None,
    ) -> list[dict]:
        query = f"""SELECT c.*, p.name AS project_name, {_MESSAGE_COUNT}
                    FROM conversations c
                    JOIN projects p ON c.project_id = p.id
                    WHERE 1=1"""
        params: list = []
        if start:
            query += " AND c.started_at >= ?"
            params.append(start)
        if end:
            query += " AND c.started_at <= ?"
            params.append(end)
        if project_id is not None:
            query += " AND c.project_id = ?"
            params.append(project_id)
        query += " ORDER BY c.started_at DESC"

        async with self.db.execute(query, params) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM conversations") as cur:
            row = await cur.fetchone()
        return row[0] if row else 0
