#!/usr/bin/env python3
"""Run one sync pass over a Claude Code data directory.

Usage:
  historian-sync
  historian-sync --claude-dir ~/.claude --db-path ./claude-logs.db
  historian-sync --verbose
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from historian import config
from historian.db import connection, sqlite_migrations
from historian.db.sync_engine import SyncEngine
from historian.errors import SyncError

logger = logging.getLogger("historian")


async def _run(claude_dir: Path, db_path: Path) -> int:
    db = await connection.open_connection(db_path)
    try:
        await sqlite_migrations.run_migrations(db)
        engine = SyncEngine(db)
        try:
            stats = await engine.sync_all(claude_dir)
        except SyncError as exc:
            logger.error(f"Sync failed: {exc}")
            return 1
    finally:
        await db.close()

    print(
        f"Sync completed: conversations_synced={stats['conversations_synced']} "
        f"conversations_skipped={stats['conversations_skipped']} "
        f"conversations_failed={stats['conversations_failed']} "
        f"messages_inserted={stats['messages_inserted']} "
        f"entries_rejected={stats['entries_rejected']} "
        f"todos_upserted={stats['todos_upserted']}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync Claude Code logs into the conversation store")
    parser.add_argument("--claude-dir", default=str(config.CLAUDE_DIR), help="Claude data directory (default: %(default)s)")
    parser.add_argument("--db-path", default=str(config.DB_PATH), help="SQLite database file (default: %(default)s)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-file and per-line details")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else config.LOG_LEVEL)
    return asyncio.run(_run(Path(args.claude_dir).expanduser(), Path(args.db_path).expanduser()))


if __name__ == "__main__":
    raise SystemExit(main())
