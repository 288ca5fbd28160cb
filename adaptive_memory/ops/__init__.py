"""
Background processing for the memory pipeline.

Provides the bounded task dispatcher, its task payloads and the
shared/exclusive lock used by the manager.
"""

from .tasks import AsyncTask, MemoryAnalysisTask, SummaryUpdateTask
from .dispatcher import QueueStats, TaskDispatcher
from .locks import ReadWriteLock

__all__ = [
    "AsyncTask",
    "MemoryAnalysisTask",
    "SummaryUpdateTask",
    "QueueStats",
    "TaskDispatcher",
    "ReadWriteLock",
]
