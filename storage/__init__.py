"""Storage package backing the trend engine's collaborators with SQLite."""

from .sqlite_repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
