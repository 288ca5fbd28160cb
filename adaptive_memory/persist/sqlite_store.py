"""
SQLite-backed memory storage.

Uses three tables (names optionally prefixed):
- user_memories: one row per memory fact
- session_summaries: one row per (session_id, user_id)
- conversation_messages: append-only message log, parts stored as JSON

Thread-safe: one shared connection in WAL mode, serialized by a lock.
"""

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import List, Optional, Union

from adaptive_memory.config.settings import MemoryRetrieval
from adaptive_memory.errors import NotFoundError, PersistenceError, ValidationError
from adaptive_memory.memory.schemas import (
    ConversationMessage,
    SessionSummary,
    UserMemory,
    new_id,
)
from adaptive_memory.memory.store import MemoryStorage, require, validate_memory


class SQLiteMemoryStore(MemoryStorage):
    """
    File-backed SQLite implementation of MemoryStorage.

    Pass ``":memory:"`` as the path for a throwaway database.
    """

    def __init__(self, db_path: Union[str, Path], table_prefix: str = ""):
        """
        Initialize the store at the given path.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
            table_prefix: Prefix prepended to every table name
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.memories_table = f"{table_prefix}user_memories"
        self.summaries_table = f"{table_prefix}session_summaries"
        self.messages_table = f"{table_prefix}conversation_messages"

        self._lock = threading.RLock()
        self._closed = False

        try:
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,  # Shared across worker threads
                timeout=10.0,
            )
            self._conn.row_factory = sqlite3.Row

            # Enable WAL mode for better concurrency
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")

            self._init_tables()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to open sqlite store at {self.db_path}: {e}") from e

    def _init_tables(self) -> None:
        """Create tables and indexes if they don't exist."""
        self._conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.memories_table} (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                memory TEXT NOT NULL,
                input TEXT NOT NULL DEFAULT '',
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            )
        """)
        self._conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.memories_table}_user
            ON {self.memories_table}(user_id, updated_at)
        """)

        self._conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.summaries_table} (
                session_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                summary TEXT NOT NULL DEFAULT '',
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (session_id, user_id)
            )
        """)

        self._conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.messages_table} (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                session_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                parts TEXT NOT NULL DEFAULT '[]',
                created_at REAL NOT NULL
            )
        """)
        self._conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.messages_table}_session
            ON {self.messages_table}(session_id, user_id, created_at)
        """)

        self._conn.commit()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run one statement and commit, wrapping driver errors."""
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
                return cursor
            except sqlite3.Error as e:
                self._conn.rollback()
                raise PersistenceError(f"sqlite operation failed: {e}") from e

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"sqlite query failed: {e}") from e

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> UserMemory:
        return UserMemory(
            id=row["id"],
            user_id=row["user_id"],
            memory=row["memory"],
            input=row["input"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ConversationMessage:
        return ConversationMessage(
            id=row["id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            role=row["role"],
            content=row["content"],
            parts=json.loads(row["parts"] or "[]"),
            created_at=row["created_at"],
        )

    # User memories

    def save_user_memory(self, memory: UserMemory) -> UserMemory:
        validate_memory(memory)
        stored = memory.model_copy()
        if not stored.id:
            stored.id = new_id("mem")
        now = time.time()
        if not stored.created_at:
            stored.created_at = now
        stored.updated_at = now

        self._execute(
            f"INSERT INTO {self.memories_table} "
            "(id, user_id, memory, input, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
            (stored.id, stored.user_id, stored.memory, stored.input, stored.created_at, stored.updated_at)
        )
        return stored

    def get_user_memories(
        self,
        user_id: str,
        limit: int = 0,
        retrieval: MemoryRetrieval = MemoryRetrieval.LAST_N
    ) -> List[UserMemory]:
        require(user_id, "user_id")

        if retrieval == MemoryRetrieval.FIRST_N:
            order = "created_at ASC, rowid ASC"
        else:
            order = "updated_at DESC, rowid DESC"

        sql = f"SELECT * FROM {self.memories_table} WHERE user_id = ? ORDER BY {order}"
        params: tuple = (user_id,)
        if limit > 0:
            sql += " LIMIT ?"
            params += (limit,)

        return [self._row_to_memory(row) for row in self._query(sql, params)]

    def update_user_memory(self, memory: UserMemory) -> UserMemory:
        require(memory.id, "memory id")
        validate_memory(memory)

        with self._lock:
            rows = self._query(
                f"SELECT created_at FROM {self.memories_table} WHERE id = ? AND user_id = ?",
                (memory.id, memory.user_id)
            )
            if not rows:
                raise NotFoundError(f"memory {memory.id} not found")

            stored = memory.model_copy()
            if not stored.created_at:
                stored.created_at = rows[0]["created_at"]
            stored.updated_at = time.time()

            self._execute(
                f"UPDATE {self.memories_table} SET memory = ?, input = ?, created_at = ?, updated_at = ? "
                "WHERE id = ? AND user_id = ?",
                (stored.memory, stored.input, stored.created_at, stored.updated_at, stored.id, stored.user_id)
            )
        return stored

    def delete_user_memory(self, memory_id: str) -> None:
        require(memory_id, "memory_id")
        cursor = self._execute(f"DELETE FROM {self.memories_table} WHERE id = ?", (memory_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"memory {memory_id} not found")

    def delete_user_memories_by_ids(self, user_id: str, memory_ids: List[str]) -> int:
        require(user_id, "user_id")
        if not memory_ids:
            return 0

        placeholders = ", ".join("?" for _ in memory_ids)
        cursor = self._execute(
            f"DELETE FROM {self.memories_table} WHERE user_id = ? AND id IN ({placeholders})",
            (user_id, *memory_ids)
        )
        return cursor.rowcount

    def clear_user_memories(self, user_id: str) -> int:
        require(user_id, "user_id")
        cursor = self._execute(f"DELETE FROM {self.memories_table} WHERE user_id = ?", (user_id,))
        return cursor.rowcount

    def search_user_memories(self, user_id: str, query: str, limit: int = 0) -> List[UserMemory]:
        require(user_id, "user_id")
        if not query:
            return []

        # LIKE is case-insensitive for ASCII in SQLite; escape wildcards in the query
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        sql = (
            f"SELECT * FROM {self.memories_table} WHERE user_id = ? "
            "AND (memory LIKE ? ESCAPE '\\' OR input LIKE ? ESCAPE '\\') "
            "ORDER BY updated_at DESC, rowid DESC"
        )
        params: tuple = (user_id, pattern, pattern)
        if limit > 0:
            sql += " LIMIT ?"
            params += (limit,)

        return [self._row_to_memory(row) for row in self._query(sql, params)]

    # Session summaries

    def save_session_summary(self, summary: SessionSummary) -> SessionSummary:
        require(summary.session_id, "session_id")
        require(summary.user_id, "user_id")

        with self._lock:
            existing = self.get_session_summary(summary.session_id, summary.user_id)
            stored = summary.model_copy()
            now = time.time()
            if existing is not None:
                stored.created_at = existing.created_at
            elif not stored.created_at:
                stored.created_at = now
            stored.updated_at = now

            self._execute(
                f"INSERT OR REPLACE INTO {self.summaries_table} "
                "(session_id, user_id, summary, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (stored.session_id, stored.user_id, stored.summary, stored.created_at, stored.updated_at)
            )
        return stored

    def get_session_summary(self, session_id: str, user_id: str) -> Optional[SessionSummary]:
        require(session_id, "session_id")
        require(user_id, "user_id")

        rows = self._query(
            f"SELECT * FROM {self.summaries_table} WHERE session_id = ? AND user_id = ?",
            (session_id, user_id)
        )
        if not rows:
            return None

        row = rows[0]
        return SessionSummary(
            session_id=row["session_id"],
            user_id=row["user_id"],
            summary=row["summary"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def update_session_summary(self, summary: SessionSummary) -> SessionSummary:
        require(summary.session_id, "session_id")
        require(summary.user_id, "user_id")

        stored = summary.model_copy()
        stored.updated_at = time.time()
        cursor = self._execute(
            f"UPDATE {self.summaries_table} SET summary = ?, updated_at = ? "
            "WHERE session_id = ? AND user_id = ?",
            (stored.summary, stored.updated_at, stored.session_id, stored.user_id)
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"summary for session {summary.session_id} not found")
        return stored

    def delete_session_summary(self, session_id: str, user_id: str) -> None:
        require(session_id, "session_id")
        require(user_id, "user_id")
        self._execute(
            f"DELETE FROM {self.summaries_table} WHERE session_id = ? AND user_id = ?",
            (session_id, user_id)
        )

    # Conversation messages

    def save_message(self, message: ConversationMessage) -> ConversationMessage:
        require(message.session_id, "session_id")
        require(message.user_id, "user_id")
        stored = message.model_copy()
        if not stored.id:
            stored.id = new_id("msg")
        if not stored.created_at:
            stored.created_at = time.time()

        parts = json.dumps([p.model_dump() for p in stored.parts])
        self._execute(
            f"INSERT INTO {self.messages_table} "
            "(id, session_id, user_id, role, content, parts, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (stored.id, stored.session_id, stored.user_id, stored.role, stored.content, parts, stored.created_at)
        )
        return stored

    def get_messages(self, session_id: str, user_id: str, limit: int = 0) -> List[ConversationMessage]:
        require(session_id, "session_id")
        require(user_id, "user_id")

        # Newest first so LIMIT keeps the most recent, then reverse
        sql = (
            f"SELECT * FROM {self.messages_table} WHERE session_id = ? AND user_id = ? "
            "ORDER BY created_at DESC, seq DESC"
        )
        params: tuple = (session_id, user_id)
        if limit > 0:
            sql += " LIMIT ?"
            params += (limit,)

        rows = self._query(sql, params)
        return [self._row_to_message(row) for row in reversed(rows)]

    def get_message_count(self, session_id: str, user_id: str) -> int:
        require(session_id, "session_id")
        require(user_id, "user_id")
        rows = self._query(
            f"SELECT COUNT(*) AS n FROM {self.messages_table} WHERE session_id = ? AND user_id = ?",
            (session_id, user_id)
        )
        return rows[0]["n"]

    def delete_messages(self, session_id: str, user_id: str) -> int:
        require(session_id, "session_id")
        require(user_id, "user_id")
        cursor = self._execute(
            f"DELETE FROM {self.messages_table} WHERE session_id = ? AND user_id = ?",
            (session_id, user_id)
        )
        return cursor.rowcount

    def cleanup_old_messages(self, before: float, user_id: Optional[str] = None) -> int:
        if user_id:
            cursor = self._execute(
                f"DELETE FROM {self.messages_table} WHERE user_id = ? AND created_at < ?",
                (user_id, before)
            )
        else:
            cursor = self._execute(
                f"DELETE FROM {self.messages_table} WHERE created_at < ?",
                (before,)
            )
        return cursor.rowcount

    def cleanup_messages_by_limit(self, session_id: str, user_id: str, keep: int) -> int:
        require(session_id, "session_id")
        require(user_id, "user_id")
        if keep <= 0:
            raise ValidationError("keep must be positive")

        cursor = self._execute(
            f"DELETE FROM {self.messages_table} WHERE session_id = ? AND user_id = ? AND seq NOT IN ("
            f"SELECT seq FROM {self.messages_table} WHERE session_id = ? AND user_id = ? "
            "ORDER BY created_at DESC, seq DESC LIMIT ?)",
            (session_id, user_id, session_id, user_id, keep)
        )
        return cursor.rowcount

    # General

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if not self._closed:
                self._conn.close()
                self._closed = True

    def health(self) -> bool:
        """Run a trivial query to confirm the connection works."""
        if self._closed:
            raise PersistenceError("sqlite store is closed")
        self._query("SELECT 1")
        return True
