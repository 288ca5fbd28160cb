"""
Persistent storage backends.

Provides:
- SQLite-backed memory storage (memories, summaries, messages)
"""

from .sqlite_store import SQLiteMemoryStore

__all__ = ["SQLiteMemoryStore"]
