"""SQLite implementation of MessageRepository."""
from __future__ import annotations

import json

import aiosqlite

_TOOL_USES_JSON = """
    (SELECT json_group_array(json_object(
        'id', t.id,
        'tool_id', t.tool_id,
        'tool_name', t.tool_name,
        'input', t.input,
        'result', t.result,
        'timestamp', t.timestamp
     )) FROM (
        SELECT * FROM tool_uses WHERE message_id = m.id ORDER BY timestamp, id
     ) t) AS tool_uses
"""


class SqliteMessageRepository:
    """SQLite-backed message storage with tool uses and full-text search.

    The `messages_fts` index is maintained by triggers, so nothing here
    touches it on write.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert(self, message: dict, tool_uses: list[dict] | None = None) -> int | None:
        """Insert a message and its tool uses unless the uuid is already stored.

        Returns the new row id, or None when the message already existed.
        """
        cur = await self.db.execute(
            """INSERT INTO messages (
                uuid, conversation_id, parent_uuid, type, role, content,
                model, timestamp, is_sidechain, is_meta
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(uuid) DO NOTHING""",
            (
                message["uuid"],
                message["conversation_id"],
                message.get("parent_uuid"),
                message["type"],
                message.get("role"),
                message.get("content", ""),
                message.get("model"),
                message["timestamp"],
                1 if message.get("is_sidechain") else 0,
                1 if message.get("is_meta") else 0,
            ),
        )
        inserted = cur.rowcount
        message_id = cur.lastrowid
        await cur.close()
        if not inserted:
            return None

        try:
            for t in tool_uses or []:
                await self.db.execute(
                    """INSERT INTO tool_uses (message_id, tool_id, tool_name, input, result, timestamp)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        message_id,
                        t["tool_id"],
                        t["tool_name"],
                        t.get("input", "null"),
                        t.get("result"),
                        t.get("timestamp", message["timestamp"]),
                    ),
                )
        except Exception:
            # Keep the message and its tool uses all-or-nothing.
            await self.db.rollback()
            raise
        await self.db.commit()
        return message_id

    async def exists(self, uuid: str) -> bool:
        async with self.db.execute("SELECT 1 FROM messages WHERE uuid = ?", (uuid,)) as cur:
            return await cur.fetchone() is not None

    async def list_for_conversation(self, conversation_id: int) -> list[dict]:
        async with self.db.execute(
            f"""SELECT m.*, {_TOOL_USES_JSON}
                FROM messages m
                WHERE m.conversation_id = ?
                ORDER BY m.timestamp ASC, m.id ASC""",
            (conversation_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [self._row_to_dict(r) for r in rows]

    async def get_tool_uses(self, message_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM tool_uses WHERE message_id = ? ORDER BY timestamp, id",
            (message_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def search(self, query: str, project_id: int | None = None, limit: int = 100) -> list[dict]:
        """Full-text search over message content, best matches first."""
        sql = """
            SELECT m.*, c.session_id, p.name AS project_name, p.id AS project_id,
                   snippet(messages_fts, -1, '<mark>', '</mark>', '...', 32) AS snippet
            FROM messages_fts
            JOIN messages m ON messages_fts.rowid = m.id
            JOIN conversations c ON m.conversation_id = c.id
            JOIN projects p ON c.project_id = p.id
            WHERE messages_fts MATCH ?
        """
        params: list = [query]
        if project_id is not None:
            sql += " AND p.id = ?"
            params.append(project_id)
        sql += " ORDER BY rank LIMIT ?"
        params.append(limit)

        async with self.db.execute(sql, params) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count(self, conversation_id: int | None = None) -> int:
        if conversation_id is not None:
            async with self.db.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
            ) as cur:
                row = await cur.fetchone()
        else:
            async with self.db.execute("SELECT COUNT(*) FROM messages") as cur:
                row = await cur.fetchone()
        return row[0] if row else 0

    async def count_tool_uses(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM tool_uses") as cur:
            row = await cur.fetchone()
        return row[0] if row else 0

    def _row_to_dict(self, row) -> dict:
        data = dict(row)
        raw = data.get("tool_uses")
        try:
            data["tool_uses"] = json.loads(raw) if raw else []
        except json.JSONDecodeError:
            data["tool_uses"] = []
        return data
