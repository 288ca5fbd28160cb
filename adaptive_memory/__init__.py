"""
Adaptive memory pipeline.

Keeps durable per-user memories and rolling per-session summaries derived
from an ongoing conversation, with analysis and summarization scheduled on a
bounded background worker pool.
"""

from .config import MemoryConfig, MemoryRetrieval, SummaryTriggerConfig, TriggerStrategy
from .errors import (
    ExternalGenerationError,
    MemoryPipelineError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .memory import MemoryManager, InMemoryStore, MemoryStorage
from .persist import SQLiteMemoryStore

__version__ = "0.1.0"

__all__ = [
    "MemoryConfig",
    "MemoryRetrieval",
    "SummaryTriggerConfig",
    "TriggerStrategy",
    "ExternalGenerationError",
    "MemoryPipelineError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "MemoryManager",
    "InMemoryStore",
    "MemoryStorage",
    "SQLiteMemoryStore",
]
