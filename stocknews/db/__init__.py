"""Database utilities for the article store."""

from .models import ArticleRow, Base  # noqa: F401
from .session import get_engine, init_db, session_scope, upgrade_database  # noqa: F401

__all__ = [
    "ArticleRow",
    "Base",
    "get_engine",
    "init_db",
    "session_scope",
    "upgrade_database",
]
