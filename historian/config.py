"""Claude Log Historian configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Project root (one level up from historian/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Claude Code data directory (contains projects/ and todos/)
CLAUDE_DIR = Path(os.getenv("HISTORIAN_CLAUDE_DIR", str(Path.home() / ".claude"))).expanduser()

# Database
DB_PATH = Path(os.getenv("HISTORIAN_DB_PATH", str(PROJECT_ROOT / "data" / "claude-logs.db"))).expanduser()

# Logging
LOG_LEVEL = os.getenv("HISTORIAN_LOG_LEVEL", "INFO").upper()

# Sync
SYNC_ON_STARTUP = _env_bool("HISTORIAN_SYNC_ON_STARTUP", False)

# Search
SEARCH_LIMIT = _env_int("HISTORIAN_SEARCH_LIMIT", 100)

# Server settings
HOST = os.getenv("HISTORIAN_HOST", "127.0.0.1")
PORT = _env_int("HISTORIAN_PORT", 3001)

# CORS
FRONTEND_ORIGIN = os.getenv("HISTORIAN_FRONTEND_ORIGIN", "http://localhost:5173")
