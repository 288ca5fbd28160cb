"""
Exception hierarchy for the memory pipeline.

- ValidationError: a required field was empty or malformed (always surfaced)
- PersistenceError: a storage call failed
- NotFoundError: the record addressed by a storage call does not exist
- ExternalGenerationError: the text generation backend failed
"""


class MemoryPipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(MemoryPipelineError, ValueError):
    """Raised when caller input fails validation."""


class PersistenceError(MemoryPipelineError):
    """Raised when a storage backend operation fails."""


class NotFoundError(PersistenceError):
    """Raised when an update or delete targets a missing record."""


class ExternalGenerationError(MemoryPipelineError):
    """Raised when the text generation backend fails or returns garbage."""
