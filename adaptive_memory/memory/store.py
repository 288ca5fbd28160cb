"""
Storage interface for memories, summaries and conversation messages.

MemoryStorage is the capability the memory manager depends on; each backend
(in-process dicts here, SQLite in ``adaptive_memory.persist``) implements it.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from adaptive_memory.config.settings import MemoryRetrieval
from adaptive_memory.errors import NotFoundError, ValidationError
from .schemas import ConversationMessage, SessionSummary, UserMemory, new_id


def require(value: str, name: str) -> None:
    """Raise ValidationError when a required string is empty."""
    if not value:
        raise ValidationError(f"{name} must not be empty")


def validate_memory(memory: UserMemory) -> None:
    require(memory.user_id, "user_id")
    require(memory.memory, "memory")


class MemoryStorage(ABC):
    """
    Abstract storage backend.

    Retrieval conventions:
    - get_user_memories: LAST_N = most recently updated first,
      FIRST_N = earliest created first; limit 0 means unlimited
    - get_messages: oldest to newest; with a limit, the newest ``limit``
    - get_session_summary: None on a miss, never an error
    """

    # User memories

    @abstractmethod
    def save_user_memory(self, memory: UserMemory) -> UserMemory:
        """Insert a memory, assigning ID and timestamps when missing."""

    @abstractmethod
    def get_user_memories(
        self,
        user_id: str,
        limit: int = 0,
        retrieval: MemoryRetrieval = MemoryRetrieval.LAST_N
    ) -> List[UserMemory]:
        """List a user's memories in retrieval order."""

    @abstractmethod
    def update_user_memory(self, memory: UserMemory) -> UserMemory:
        """Replace an existing memory. Raises NotFoundError if absent."""

    @abstractmethod
    def delete_user_memory(self, memory_id: str) -> None:
        """Delete one memory by ID. Raises NotFoundError if absent."""

    @abstractmethod
    def delete_user_memories_by_ids(self, user_id: str, memory_ids: List[str]) -> int:
        """Bulk delete a user's memories. Returns the number deleted."""

    @abstractmethod
    def clear_user_memories(self, user_id: str) -> int:
        """Delete all of a user's memories. Returns the number deleted."""

    @abstractmethod
    def search_user_memories(self, user_id: str, query: str, limit: int = 0) -> List[UserMemory]:
        """Case-insensitive substring search over memory text and input."""

    # Session summaries

    @abstractmethod
    def save_session_summary(self, summary: SessionSummary) -> SessionSummary:
        """Create or replace the summary for (session_id, user_id)."""

    @abstractmethod
    def get_session_summary(self, session_id: str, user_id: str) -> Optional[SessionSummary]:
        """Fetch a summary, or None if there is none."""

    @abstractmethod
    def update_session_summary(self, summary: SessionSummary) -> SessionSummary:
        """Update an existing summary. Raises NotFoundError if absent."""

    @abstractmethod
    def delete_session_summary(self, session_id: str, user_id: str) -> None:
        """Delete a summary if present."""

    # Conversation messages

    @abstractmethod
    def save_message(self, message: ConversationMessage) -> ConversationMessage:
        """Append a message, assigning ID and timestamp when missing."""

    @abstractmethod
    def get_messages(self, session_id: str, user_id: str, limit: int = 0) -> List[ConversationMessage]:
        """List session messages oldest to newest."""

    @abstractmethod
    def get_message_count(self, session_id: str, user_id: str) -> int:
        """Number of stored messages in a session."""

    @abstractmethod
    def delete_messages(self, session_id: str, user_id: str) -> int:
        """Delete a session's messages. Returns the number deleted."""

    @abstractmethod
    def cleanup_old_messages(self, before: float, user_id: Optional[str] = None) -> int:
        """Delete messages created before a timestamp, optionally for one user."""

    @abstractmethod
    def cleanup_messages_by_limit(self, session_id: str, user_id: str, keep: int) -> int:
        """Keep only the newest ``keep`` messages of a session."""

    # General

    @abstractmethod
    def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    def health(self) -> bool:
        """Return True if the backend is usable; raise PersistenceError otherwise."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _order_memories(memories: Iterable[UserMemory], retrieval: MemoryRetrieval) -> List[UserMemory]:
    memories = list(memories)
    if retrieval == MemoryRetrieval.FIRST_N:
        return sorted(memories, key=lambda m: m.created_at)
    # Later insertions win ties
    return sorted(reversed(memories), key=lambda m: m.updated_at, reverse=True)


class InMemoryStore(MemoryStorage):
    """
    Dict-backed storage, suitable for tests and single-process deployments.

    Records are copied on the way in and out so callers never share an
    instance with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        # user_id -> memory_id -> UserMemory
        self._memories: Dict[str, Dict[str, UserMemory]] = {}
        # (session_id, user_id) -> SessionSummary
        self._summaries: Dict[Tuple[str, str], SessionSummary] = {}
        # (session_id, user_id) -> messages in insertion order
        self._messages: Dict[Tuple[str, str], List[ConversationMessage]] = {}
        self._closed = False

    # User memories

    def save_user_memory(self, memory: UserMemory) -> UserMemory:
        validate_memory(memory)
        stored = memory.model_copy(deep=True)
        if not stored.id:
            stored.id = new_id("mem")
        now = time.time()
        if not stored.created_at:
            stored.created_at = now
        stored.updated_at = now

        with self._lock:
            self._memories.setdefault(stored.user_id, {})[stored.id] = stored
        return stored.model_copy()

    def get_user_memories(
        self,
        user_id: str,
        limit: int = 0,
        retrieval: MemoryRetrieval = MemoryRetrieval.LAST_N
    ) -> List[UserMemory]:
        require(user_id, "user_id")
        with self._lock:
            memories = [m.model_copy() for m in self._memories.get(user_id, {}).values()]

        memories = _order_memories(memories, retrieval)
        if limit > 0:
            memories = memories[:limit]
        return memories

    def update_user_memory(self, memory: UserMemory) -> UserMemory:
        require(memory.id, "memory id")
        validate_memory(memory)

        with self._lock:
            existing = self._memories.get(memory.user_id, {}).get(memory.id)
            if existing is None:
                raise NotFoundError(f"memory {memory.id} not found")
            stored = memory.model_copy(deep=True)
            if not stored.created_at:
                stored.created_at = existing.created_at
            stored.updated_at = time.time()
            self._memories[memory.user_id][memory.id] = stored
        return stored.model_copy()

    def delete_user_memory(self, memory_id: str) -> None:
        require(memory_id, "memory_id")
        with self._lock:
            for user_id, memories in self._memories.items():
                if memory_id in memories:
                    del memories[memory_id]
                    if not memories:
                        del self._memories[user_id]
                    return
        raise NotFoundError(f"memory {memory_id} not found")

    def delete_user_memories_by_ids(self, user_id: str, memory_ids: List[str]) -> int:
        require(user_id, "user_id")
        if not memory_ids:
            return 0

        deleted = 0
        with self._lock:
            memories = self._memories.get(user_id)
            if not memories:
                return 0
            for memory_id in memory_ids:
                if memories.pop(memory_id, None) is not None:
                    deleted += 1
            if not memories:
                del self._memories[user_id]
        return deleted

    def clear_user_memories(self, user_id: str) -> int:
        require(user_id, "user_id")
        with self._lock:
            return len(self._memories.pop(user_id, {}))

    def search_user_memories(self, user_id: str, query: str, limit: int = 0) -> List[UserMemory]:
        require(user_id, "user_id")
        if not query:
            return []

        needle = query.lower()
        with self._lock:
            results = [
                m.model_copy() for m in self._memories.get(user_id, {}).values()
                if needle in m.memory.lower() or needle in m.input.lower()
            ]

        results = _order_memories(results, MemoryRetrieval.LAST_N)
        if limit > 0:
            results = results[:limit]
        return results

    # Session summaries

    def save_session_summary(self, summary: SessionSummary) -> SessionSummary:
        require(summary.session_id, "session_id")
        require(summary.user_id, "user_id")
        stored = summary.model_copy()
        now = time.time()

        key = (stored.session_id, stored.user_id)
        with self._lock:
            existing = self._summaries.get(key)
            if existing is not None:
                stored.created_at = existing.created_at
            elif not stored.created_at:
                stored.created_at = now
            stored.updated_at = now
            self._summaries[key] = stored
        return stored.model_copy()

    def get_session_summary(self, session_id: str, user_id: str) -> Optional[SessionSummary]:
        require(session_id, "session_id")
        require(user_id, "user_id")
        with self._lock:
            summary = self._summaries.get((session_id, user_id))
        return summary.model_copy() if summary else None

    def update_session_summary(self, summary: SessionSummary) -> SessionSummary:
        require(summary.session_id, "session_id")
        require(summary.user_id, "user_id")

        key = (summary.session_id, summary.user_id)
        with self._lock:
            existing = self._summaries.get(key)
            if existing is None:
                raise NotFoundError(f"summary for session {summary.session_id} not found")
            stored = summary.model_copy()
            stored.created_at = existing.created_at
            stored.updated_at = time.time()
            self._summaries[key] = stored
        return stored.model_copy()

    def delete_session_summary(self, session_id: str, user_id: str) -> None:
        require(session_id, "session_id")
        require(user_id, "user_id")
        with self._lock:
            self._summaries.pop((session_id, user_id), None)

    # Conversation messages

    def save_message(self, message: ConversationMessage) -> ConversationMessage:
        require(message.session_id, "session_id")
        require(message.user_id, "user_id")
        stored = message.model_copy(deep=True)
        if not stored.id:
            stored.id = new_id("msg")
        if not stored.created_at:
            stored.created_at = time.time()

        with self._lock:
            self._messages.setdefault((stored.session_id, stored.user_id), []).append(stored)
        return stored.model_copy()

    def get_messages(self, session_id: str, user_id: str, limit: int = 0) -> List[ConversationMessage]:
        require(session_id, "session_id")
        require(user_id, "user_id")
        with self._lock:
            messages = [m.model_copy() for m in self._messages.get((session_id, user_id), [])]

        # Stable sort keeps insertion order for equal timestamps
        messages.sort(key=lambda m: m.created_at)
        if limit > 0:
            messages = messages[-limit:]
        return messages

    def get_message_count(self, session_id: str, user_id: str) -> int:
        require(session_id, "session_id")
        require(user_id, "user_id")
        with self._lock:
            return len(self._messages.get((session_id, user_id), []))

    def delete_messages(self, session_id: str, user_id: str) -> int:
        require(session_id, "session_id")
        require(user_id, "user_id")
        with self._lock:
            return len(self._messages.pop((session_id, user_id), []))

    def cleanup_old_messages(self, before: float, user_id: Optional[str] = None) -> int:
        removed = 0
        with self._lock:
            for key in list(self._messages):
                if user_id and key[1] != user_id:
                    continue
                kept = [m for m in self._messages[key] if m.created_at >= before]
                removed += len(self._messages[key]) - len(kept)
                if kept:
                    self._messages[key] = kept
                else:
                    del self._messages[key]
        return removed

    def cleanup_messages_by_limit(self, session_id: str, user_id: str, keep: int) -> int:
        require(session_id, "session_id")
        require(user_id, "user_id")
        if keep <= 0:
            raise ValidationError("keep must be positive")

        with self._lock:
            messages = self._messages.get((session_id, user_id), [])
            if len(messages) <= keep:
                return 0
            messages.sort(key=lambda m: m.created_at)
            removed = len(messages) - keep
            self._messages[(session_id, user_id)] = messages[-keep:]
        return removed

    # General

    def close(self) -> None:
        self._closed = True

    def health(self) -> bool:
        return not self._closed
