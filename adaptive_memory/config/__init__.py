"""Configuration models."""

from .settings import MemoryConfig, MemoryRetrieval, SummaryTriggerConfig, TriggerStrategy

__all__ = [
    "MemoryConfig",
    "MemoryRetrieval",
    "SummaryTriggerConfig",
    "TriggerStrategy",
]
