"""
Memory manager.

Entry point of the pipeline: persists conversation messages, schedules memory
analysis for user messages and summary regeneration for assistant messages,
and exposes CRUD over the underlying storage.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from adaptive_memory.config.settings import MemoryConfig
from adaptive_memory.errors import NotFoundError, ValidationError
from adaptive_memory.generation.generator import MessagePart, TextGenerator
from adaptive_memory.ops.dispatcher import QueueStats, TaskDispatcher
from adaptive_memory.ops.locks import ReadWriteLock
from adaptive_memory.ops.tasks import AsyncTask, MemoryAnalysisTask, SummaryUpdateTask
from .analyzer import MemoryAnalyzer
from .schemas import (
    AnalyzerOperation,
    ConversationMessage,
    SessionSummary,
    UserMemory,
    render_input,
)
from .store import MemoryStorage, require
from .summarizer import FULL_WINDOW, INCREMENTAL_WINDOW, SummaryGenerator
from .trigger import SummaryTrigger, session_key

logger = logging.getLogger(__name__)

HOUR = 3600.0


class MemoryManager:
    """
    Coordinates storage, analysis, summarization and background work.

    With ``async_processing`` enabled, analysis and summary updates run on a
    bounded worker pool and callers return as soon as the message is stored.
    Otherwise the work runs inline, bounded by the caller's ``timeout``.
    Background failures are logged and never reach the caller.
    """

    def __init__(
        self,
        generator: TextGenerator,
        storage: MemoryStorage,
        config: Optional[MemoryConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize memory manager.

        Args:
            generator: Text generator shared by analyzer and summarizer
            storage: Storage backend
            config: Pipeline configuration
            clock: Time source, used by the trigger engine and cleanup
        """
        self.storage = storage
        self.config = (config or MemoryConfig()).model_copy(deep=True)
        self.clock = clock

        self.analyzer = MemoryAnalyzer(generator)
        self.summarizer = SummaryGenerator(generator)
        self.trigger = SummaryTrigger(self.config.summary_trigger, clock=clock)

        self._lock = ReadWriteLock()
        self._closed = False
        # session key -> (user_id, session_id, last activity)
        self._sessions: Dict[str, Tuple[str, str, float]] = {}

        self.dispatcher: Optional[TaskDispatcher] = None
        if self.config.async_processing:
            self.dispatcher = TaskDispatcher(
                self._handle_task,
                workers=self.config.async_worker_pool_size,
                capacity=self.config.queue_capacity,
                task_timeout=self.config.async_task_timeout,
            )

    def _snapshot(self) -> MemoryConfig:
        with self._lock.read_locked():
            return self.config

    def _track_session(self, user_id: str, session_id: str) -> MemoryConfig:
        """Record session activity and snapshot the config under the exclusive lock."""
        with self._lock.write_locked():
            self._sessions[session_key(user_id, session_id)] = (user_id, session_id, self.clock())
            return self.config

    # Message processing

    def process_user_message(
        self,
        user_id: str,
        session_id: str,
        text: str,
        parts: Optional[List[MessagePart]] = None,
        message_id: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> ConversationMessage:
        """
        Store a user message and schedule memory analysis.

        Args:
            user_id: Owning user
            session_id: Conversation session
            text: Message text (may be empty when parts are given)
            parts: Non-text parts such as image links
            message_id: Caller-assigned ID; generated when omitted
            timeout: Bound on inline analysis when async processing is off

        Returns:
            The stored message

        Raises:
            ValidationError: Missing user, session or content
            PersistenceError: The message could not be stored
        """
        require(user_id, "user_id")
        require(session_id, "session_id")
        parts = list(parts or [])
        if not text and not parts:
            raise ValidationError("user message must have text or parts")

        config = self._track_session(user_id, session_id)
        saved = self.storage.save_message(ConversationMessage(
            id=message_id or "",
            session_id=session_id,
            user_id=user_id,
            role="user",
            content=text or "",
            parts=parts,
        ))

        if config.enable_user_memories:
            task = MemoryAnalysisTask(user_id=user_id, message=text or "", parts=tuple(parts))
            if self.dispatcher is not None:
                if not self.dispatcher.submit(task):
                    logger.warning("Memory analysis skipped for user %s: queue full", user_id)
            else:
                self._analyze_and_apply(task, timeout)

        return saved

    def process_assistant_message(
        self,
        user_id: str,
        session_id: str,
        text: str,
        message_id: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> ConversationMessage:
        """
        Store an assistant message and regenerate the session summary when
        the trigger policy says so.

        Raises:
            ValidationError: Missing user, session or text
            PersistenceError: The message could not be stored
        """
        require(user_id, "user_id")
        require(session_id, "session_id")
        require(text, "assistant message")

        config = self._track_session(user_id, session_id)
        saved = self.storage.save_message(ConversationMessage(
            id=message_id or "",
            session_id=session_id,
            user_id=user_id,
            role="assistant",
            content=text,
        ))

        if config.enable_session_summary:
            self._maybe_update_summary(user_id, session_id, timeout)

        return saved

    def _maybe_update_summary(self, user_id: str, session_id: str, timeout: Optional[float]) -> None:
        key = session_key(user_id, session_id)
        try:
            count = self.storage.get_message_count(session_id, user_id)
        except Exception:
            logger.exception("Failed to count messages for session %s", session_id)
            return

        if not self.trigger.should_trigger(key, count):
            return

        task = SummaryUpdateTask(user_id=user_id, session_id=session_id)
        if self.dispatcher is not None:
            if not self.dispatcher.submit(task):
                logger.warning("Summary update skipped for session %s: queue full", session_id)
                self.trigger.release(key)
        else:
            self._run_summary_update(task, timeout)

    # Background work

    def _handle_task(self, task: AsyncTask, timeout: float) -> None:
        """Dispatcher handler. Never raises for expected failures."""
        if isinstance(task, MemoryAnalysisTask):
            self._analyze_and_apply(task, timeout)
        elif isinstance(task, SummaryUpdateTask):
            self._run_summary_update(task, timeout)
        else:
            logger.error("Unknown task type: %s", type(task).__name__)

    def _analyze_and_apply(self, task: MemoryAnalysisTask, timeout: Optional[float]) -> None:
        try:
            existing = self.storage.get_user_memories(task.user_id, 0, self._snapshot().retrieval)
            operations = self.analyzer.analyze(task.message, existing, list(task.parts), timeout=timeout)
        except Exception:
            logger.exception("Memory analysis failed for user %s", task.user_id)
            return

        if operations:
            self._apply_operations(task.user_id, render_input(task.message, list(task.parts)), operations)

    def _apply_operations(self, user_id: str, input_text: str, operations: List[AnalyzerOperation]) -> None:
        """Apply analyzer operations; one failing operation does not stop the rest."""
        delete_ids = []

        for op in operations:
            if op.op == "delete":
                delete_ids.append(op.id)
                continue

            try:
                if op.op == "create":
                    self.storage.save_user_memory(UserMemory(
                        user_id=user_id, memory=op.memory, input=input_text
                    ))
                else:
                    self._apply_update(user_id, input_text, op)
            except Exception:
                logger.exception("Failed to %s memory for user %s", op.op, user_id)

        if delete_ids:
            try:
                deleted = self.storage.delete_user_memories_by_ids(user_id, delete_ids)
                logger.debug("Deleted %d of %d memories for user %s", deleted, len(delete_ids), user_id)
            except Exception:
                logger.exception("Failed to delete memories for user %s", user_id)

    def _apply_update(self, user_id: str, input_text: str, op: AnalyzerOperation) -> None:
        updated = UserMemory(id=op.id, user_id=user_id, memory=op.memory, input=input_text)
        try:
            self.storage.update_user_memory(updated)
        except NotFoundError:
            # Analyzer referenced a memory that no longer exists; keep the fact
            logger.info("Memory %s not found for update, saving as new", op.id)
            self.storage.save_user_memory(updated)

    def _run_summary_update(self, task: SummaryUpdateTask, timeout: Optional[float]) -> None:
        key = session_key(task.user_id, task.session_id)
        try:
            self._update_session_summary(task.user_id, task.session_id, timeout)
        except Exception:
            logger.exception("Summary update failed for session %s", task.session_id)
            self.trigger.release(key)
        else:
            self.trigger.mark_summary_updated(key)

    def _update_session_summary(self, user_id: str, session_id: str, timeout: Optional[float] = None) -> None:
        recent = self.storage.get_messages(session_id, user_id, INCREMENTAL_WINDOW)
        if not recent:
            return

        existing = self.storage.get_session_summary(session_id, user_id)
        if existing is not None:
            existing.summary = self.summarizer.generate_incremental_summary(
                recent, existing.summary, timeout=timeout
            )
            self.storage.update_session_summary(existing)
            return

        window = self.storage.get_messages(session_id, user_id, FULL_WINDOW)
        summary = self.summarizer.generate_summary(window, "", timeout=timeout)
        self.storage.save_session_summary(SessionSummary(
            session_id=session_id, user_id=user_id, summary=summary
        ))

    # Memories

    def get_user_memories(self, user_id: str) -> List[UserMemory]:
        config = self._snapshot()
        return self.storage.get_user_memories(user_id, config.memory_limit, config.retrieval)

    def add_user_memory(self, user_id: str, memory: str, input: str = "") -> UserMemory:
        return self.storage.save_user_memory(UserMemory(user_id=user_id, memory=memory, input=input))

    def update_user_memory(self, memory: UserMemory) -> UserMemory:
        return self.storage.update_user_memory(memory)

    def delete_user_memory(self, memory_id: str) -> None:
        self.storage.delete_user_memory(memory_id)

    def clear_user_memories(self, user_id: str) -> int:
        return self.storage.clear_user_memories(user_id)

    def search_user_memories(self, user_id: str, query: str, limit: int = 10) -> List[UserMemory]:
        return self.storage.search_user_memories(user_id, query, limit)

    # Summaries and messages

    def get_session_summary(self, session_id: str, user_id: str) -> Optional[SessionSummary]:
        return self.storage.get_session_summary(session_id, user_id)

    def delete_session_summary(self, session_id: str, user_id: str) -> None:
        self.storage.delete_session_summary(session_id, user_id)

    def save_message(self, message: ConversationMessage) -> ConversationMessage:
        require(message.session_id, "session_id")
        require(message.user_id, "user_id")
        return self.storage.save_message(message)

    def get_messages(self, session_id: str, user_id: str, limit: int = 0) -> List[ConversationMessage]:
        return self.storage.get_messages(session_id, user_id, limit)

    def delete_messages(self, session_id: str, user_id: str) -> int:
        deleted = self.storage.delete_messages(session_id, user_id)
        self.trigger.resync(session_key(user_id, session_id), 0)
        return deleted

    # Configuration and stats

    def get_config(self) -> MemoryConfig:
        """Return a copy of the active configuration."""
        with self._lock.read_locked():
            return self.config.model_copy(deep=True)

    def update_config(self, config: MemoryConfig) -> None:
        """
        Replace the active configuration.

        Worker pool size and queue capacity are fixed when the manager is
        created; switching ``async_processing`` on later has no effect.
        """
        if config is None:
            return
        with self._lock.write_locked():
            self.config = config.model_copy(deep=True)
            self.trigger.config = self.config.summary_trigger
        logger.info("Memory configuration updated")

    def get_task_queue_stats(self) -> Optional[QueueStats]:
        if self.dispatcher is None:
            return None
        return self.dispatcher.stats()

    def get_memory_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "config": self.get_config().model_dump(mode="json"),
            "active_sessions": len(self.trigger),
        }
        queue_stats = self.get_task_queue_stats()
        if queue_stats is not None:
            stats["task_queue"] = queue_stats.to_dict()
        return stats

    def cleanup(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Run one housekeeping sweep.

        Evicts trigger state for idle sessions, deletes messages older than
        the retention window and trims active sessions down to
        ``message_history_limit``. Trigger totals are then realigned with
        the stored message counts so removed rows never stall the trigger.

        Returns:
            Counts of removed sessions and messages
        """
        config = self._snapshot()
        now = self.clock() if now is None else now
        result = {"sessions": 0, "messages": 0}

        if config.session_retention_hours > 0:
            cutoff = now - config.session_retention_hours * HOUR
            result["sessions"] = self.trigger.store.evict_older_than(cutoff)
            with self._lock.write_locked():
                for key in [k for k, s in self._sessions.items() if s[2] < cutoff]:
                    del self._sessions[key]

        if config.message_retention_hours > 0:
            cutoff = now - config.message_retention_hours * HOUR
            try:
                result["messages"] = self.storage.cleanup_old_messages(cutoff)
            except Exception:
                logger.exception("Failed to clean up messages older than %s", cutoff)

        with self._lock.read_locked():
            sessions = list(self._sessions.items())

        limit = config.message_history_limit
        for key, (user_id, session_id, _) in sessions:
            try:
                if limit > 0:
                    result["messages"] += self.storage.cleanup_messages_by_limit(session_id, user_id, limit)
                self.trigger.resync(key, self.storage.get_message_count(session_id, user_id))
            except Exception:
                logger.exception("Failed to trim message history for session %s", session_id)

        logger.info(
            "Cleanup removed %d sessions and %d messages",
            result["sessions"], result["messages"]
        )
        return result

    def health(self) -> bool:
        return self.storage.health()

    def close(self) -> None:
        """Drain background work, then close storage."""
        if self._closed:
            return
        self._closed = True
        if self.dispatcher is not None:
            self.dispatcher.shutdown(wait=True)
        self.storage.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
