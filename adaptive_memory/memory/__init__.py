"""
Memory subsystem for long-lived user context.

Provides:
- User memory and session summary models
- Storage interface with an in-process backend
- Memory analysis and session summarization
- Summary trigger policies
- The memory manager tying them together
"""

from .schemas import (
    AnalyzerOperation,
    ConversationMessage,
    SessionSummary,
    UserMemory,
)
from .store import MemoryStorage, InMemoryStore
from .trigger import SummaryTrigger, TriggerState, TriggerStateStore, session_key
from .analyzer import MemoryAnalyzer
from .summarizer import SummaryGenerator
from .manager import MemoryManager

__all__ = [
    "AnalyzerOperation",
    "ConversationMessage",
    "SessionSummary",
    "UserMemory",
    "MemoryStorage",
    "InMemoryStore",
    "SummaryTrigger",
    "TriggerState",
    "TriggerStateStore",
    "session_key",
    "MemoryAnalyzer",
    "SummaryGenerator",
    "MemoryManager",
]
