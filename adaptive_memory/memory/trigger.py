"""
Summary trigger policy.

Decides when a session summary should be regenerated based on how many
messages arrived since the last summary and how long ago it was written.
State is kept per session in a thread-safe store.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from adaptive_memory.config.settings import SummaryTriggerConfig, TriggerStrategy

logger = logging.getLogger(__name__)


def session_key(user_id: str, session_id: str) -> str:
    """Build the trigger state key for a session."""
    return f"{user_id}:{session_id}"


@dataclass
class TriggerState:
    """Per-session trigger bookkeeping."""

    last_summary_time: float
    messages_since_last_summary: int = 0
    total_messages: int = 0
    summary_pending: bool = False  # Set on trigger, cleared on mark/release


class TriggerStateStore:
    """
    Thread-safe map from session key to TriggerState.

    Guarded by its own lock so trigger checks never contend with the
    manager's configuration lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._states: Dict[str, TriggerState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def get(self, key: str) -> Optional[TriggerState]:
        """Return a copy of the state for a key, or None."""
        with self._lock:
            state = self._states.get(key)
            return replace(state) if state else None

    def update(self, key: str, fn: Callable[[Optional[TriggerState]], Optional[TriggerState]]):
        """
        Atomically read-modify-write one entry.

        ``fn`` receives the live state (or None) and returns the state to
        store; returning None leaves the map unchanged.
        """
        with self._lock:
            state = fn(self._states.get(key))
            if state is not None:
                self._states[key] = state
            return replace(state) if state else None

    def evict_older_than(self, cutoff: float) -> int:
        """Drop states whose last summary predates ``cutoff``."""
        with self._lock:
            stale = [k for k, s in self._states.items() if s.last_summary_time < cutoff]
            for key in stale:
                del self._states[key]
        return len(stale)


class SummaryTrigger:
    """
    Trigger decision engine.

    Strategies:
    - always: every check fires
    - by_messages: fires when enough messages arrived since the last summary
    - by_time: fires when enough time passed since the last summary
    - smart: threshold plus min interval, with a burst branch for busy
      sessions and an idle branch for sessions that went quiet
    """

    def __init__(
        self,
        config: Optional[SummaryTriggerConfig] = None,
        clock: Callable[[], float] = time.time,
        store: Optional[TriggerStateStore] = None
    ):
        """
        Initialize trigger engine.

        Args:
            config: Trigger configuration (defaults to smart strategy)
            clock: Time source returning Unix seconds
            store: State store, created when not given
        """
        self.config = config or SummaryTriggerConfig()
        self.clock = clock
        self.store = store or TriggerStateStore()

    def should_trigger(self, key: str, current_count: int) -> bool:
        """
        Record the session's current message count and decide whether to
        regenerate its summary.

        Args:
            key: Session key from ``session_key``
            current_count: Number of messages stored for the session

        Returns:
            True if a summary update should run now
        """
        config = self.config
        now = self.clock()
        decision = {"fire": False}

        def observe(state: Optional[TriggerState]) -> TriggerState:
            if state is None:
                # All existing history counts as unsummarized
                state = TriggerState(
                    last_summary_time=now,
                    messages_since_last_summary=current_count,
                    total_messages=current_count,
                )
                fire = current_count >= config.message_threshold
            else:
                delta = current_count - state.total_messages
                if delta > 0:
                    state.messages_since_last_summary += delta
                    state.total_messages = current_count

                if config.strategy == TriggerStrategy.ALWAYS:
                    fire = True
                elif state.summary_pending:
                    fire = False
                else:
                    fire = self._evaluate(state, now - state.last_summary_time)

            if fire:
                state.summary_pending = True
            decision["fire"] = fire
            return state

        state = self.store.update(key, observe)
        if decision["fire"]:
            logger.debug(
                "Summary trigger fired for %s (strategy=%s, since=%d)",
                key, config.strategy.value, state.messages_since_last_summary
            )
        return decision["fire"]

    def _evaluate(self, state: TriggerState, elapsed: float) -> bool:
        config = self.config
        since = state.messages_since_last_summary
        threshold = config.message_threshold

        if config.strategy == TriggerStrategy.BY_MESSAGES:
            return since >= threshold

        if config.strategy == TriggerStrategy.BY_TIME:
            return elapsed >= config.min_interval

        # Smart
        if since >= threshold and elapsed >= config.min_interval:
            return True
        if since >= threshold * config.burst_multiplier and elapsed >= config.burst_min_gap:
            return True
        if elapsed >= config.idle_override and since >= config.idle_min_messages:
            return True
        return False

    def mark_summary_updated(self, key: str) -> None:
        """Reset counters after a successful summary update. Unknown keys are ignored."""
        now = self.clock()

        def reset(state: Optional[TriggerState]) -> Optional[TriggerState]:
            if state is None:
                return None
            state.messages_since_last_summary = 0
            state.last_summary_time = now
            state.summary_pending = False
            return state

        self.store.update(key, reset)

    def release(self, key: str) -> None:
        """Clear the pending flag after a failed or dropped summary update."""

        def clear(state: Optional[TriggerState]) -> Optional[TriggerState]:
            if state is None:
                return None
            state.summary_pending = False
            return state

        self.store.update(key, clear)

    def resync(self, key: str, current_count: int) -> None:
        """
        Set the recorded total to the session's stored message count after
        rows were removed, so later growth is counted again. The number of
        messages since the last summary is kept. Unknown keys are ignored.
        """

        def align(state: Optional[TriggerState]) -> Optional[TriggerState]:
            if state is None:
                return None
            state.total_messages = current_count
            return state

        self.store.update(key, align)

    def get_session_state(self, key: str) -> Optional[TriggerState]:
        """Snapshot of a session's trigger state."""
        return self.store.get(key)

    def cleanup_old_sessions(self, max_age: float) -> int:
        """
        Evict sessions whose last summary is older than ``max_age`` seconds.

        Returns:
            Number of sessions removed
        """
        removed = self.store.evict_older_than(self.clock() - max_age)
        if removed:
            logger.info("Evicted %d stale trigger sessions", removed)
        return removed

    def __len__(self) -> int:
        return len(self.store)
