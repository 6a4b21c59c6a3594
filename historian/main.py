"""Claude Log Historian FastAPI backend, main application entry point."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from historian import config
from historian.db import connection, sqlite_migrations, sync_engine
from historian.errors import SyncError
from historian.routers.api import conversations_router, projects_router, search_router

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("historian")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Claude Log Historian starting up")

    db = await connection.get_connection()
    await sqlite_migrations.run_migrations(db)

    sync = sync_engine.SyncEngine(db)
    app.state.sync_engine = sync

    if config.SYNC_ON_STARTUP:
        async def _run_startup_sync() -> None:
            try:
                await sync.sync_all(config.CLAUDE_DIR)
            except SyncError as exc:
                logger.error(f"Startup sync failed: {exc}")

        logger.info("Starting initial sync...")
        app.state.sync_task = asyncio.create_task(_run_startup_sync())

    yield

    logger.info("Claude Log Historian shutting down")

    if hasattr(app.state, "sync_task"):
        app.state.sync_task.cancel()
        try:
            await app.state.sync_task
        except asyncio.CancelledError:
            pass

    await connection.close_connection()


app = FastAPI(
    title="Claude Log Historian API",
    description="Browse and search synced Claude Code conversation logs",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(conversations_router)
app.include_router(search_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
    }


def serve() -> None:
    """Run the read API with uvicorn on HISTORIAN_HOST:HISTORIAN_PORT."""
    import uvicorn

    uvicorn.run("historian.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    serve()
