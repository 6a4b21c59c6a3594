"""SQLite implementation of ProjectRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

_PROJECT_COLUMNS = """
    id, path, name, created_at, updated_at,
    (SELECT COUNT(*) FROM conversations WHERE project_id = projects.id) AS conversation_count
"""


class SqliteProjectRepository:
    """SQLite-backed project storage keyed on the on-disk project path."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get_or_create(self, path: str, name: str) -> int:
        """Return the project id for `path`; `name` only applies on creation."""
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO projects (path, name, created_at, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(path) DO NOTHING""",
            (path, name, now, now),
        )
        await self.db.commit()
        async with self.db.execute("SELECT id FROM projects WHERE path = ?", (path,)) as cur:
            row = await cur.fetchone()
        return int(row["id"])

    async def get_by_id(self, project_id: int) -> dict | None:
        async with self.db.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_by_path(self, path: str) -> dict | None:
        async with self.db.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE path = ?", (path,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        async with self.db.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY updated_at DESC, id DESC"
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM projects") as cur:
            row = await cur.fetchone()
        return row[0] if row else 0
