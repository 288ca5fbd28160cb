"""Memory pipeline settings and configuration schema."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class MemoryRetrieval(str, Enum):
    """Ordering used when loading a user's memories."""
    LAST_N = "last_n"      # most recently updated first
    FIRST_N = "first_n"    # earliest created first
    SEMANTIC = "semantic"  # no vector index; served as LAST_N


class TriggerStrategy(str, Enum):
    """Summary trigger strategies."""
    ALWAYS = "always"
    BY_MESSAGES = "by_messages"
    BY_TIME = "by_time"
    SMART = "smart"


class SummaryTriggerConfig(BaseModel):
    """Configuration for when session summaries are regenerated."""
    strategy: TriggerStrategy = TriggerStrategy.SMART
    message_threshold: int = 10
    min_interval: float = 600.0

    # Smart strategy overrides
    burst_multiplier: int = 2
    burst_min_gap: float = 30.0
    idle_override: float = 3600.0
    idle_min_messages: int = 2

    @field_validator("message_threshold", mode="before")
    @classmethod
    def _default_threshold(cls, v):
        if v is None or v <= 0:
            return 10
        return v

    @field_validator("min_interval", mode="before")
    @classmethod
    def _default_interval(cls, v):
        if v is None or v <= 0:
            return 600.0
        return v


class MemoryConfig(BaseModel):
    """Main memory pipeline settings."""
    enable_user_memories: bool = True
    enable_session_summary: bool = False
    retrieval: MemoryRetrieval = MemoryRetrieval.LAST_N
    memory_limit: int = 30

    # Background processing
    async_processing: bool = True
    async_worker_pool_size: int = 5
    async_queue_capacity: Optional[int] = Field(
        default=None, description="Queue size; defaults to twice the pool size"
    )
    async_task_timeout: float = 30.0

    summary_trigger: SummaryTriggerConfig = Field(default_factory=SummaryTriggerConfig)

    # Housekeeping
    message_history_limit: int = 1000
    message_retention_hours: float = 720
    session_retention_hours: float = 168

    # SQL backends only
    table_prefix: str = ""

    @field_validator("memory_limit", mode="before")
    @classmethod
    def _default_memory_limit(cls, v):
        if v is None or v <= 0:
            return 30
        return v

    @field_validator("async_worker_pool_size", mode="before")
    @classmethod
    def _default_pool_size(cls, v):
        if v is None or v <= 0:
            return 5
        return v

    @property
    def queue_capacity(self) -> int:
        """Effective task queue capacity."""
        if self.async_queue_capacity and self.async_queue_capacity > 0:
            return self.async_queue_capacity
        return self.async_worker_pool_size * 2
