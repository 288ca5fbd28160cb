"""Background task payloads handled by the dispatcher."""

from dataclasses import dataclass, field
from typing import Tuple, Union

from adaptive_memory.generation.generator import MessagePart


@dataclass(frozen=True)
class MemoryAnalysisTask:
    """Analyze one user message and apply the resulting memory operations."""
    user_id: str
    message: str
    parts: Tuple[MessagePart, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SummaryUpdateTask:
    """Regenerate the summary of one session."""
    user_id: str
    session_id: str


AsyncTask = Union[MemoryAnalysisTask, SummaryUpdateTask]
