"""Repository package for database access."""

from .projects import SqliteProjectRepository
from .conversations import SqliteConversationRepository
from .messages import SqliteMessageRepository
from .todos import SqliteTodoRepository

__all__ = [
    "SqliteProjectRepository",
    "SqliteConversationRepository",
    "SqliteMessageRepository",
    "SqliteTodoRepository",
]
