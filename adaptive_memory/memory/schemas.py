"""
Memory system data models.

Defines user memories, session summaries, conversation messages and the
operations produced by the memory analyzer.
"""

from typing import Literal, Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator
import time
import uuid

from adaptive_memory.generation.generator import MessagePart


# Type aliases
MessageRole = Literal["user", "assistant", "system"]
AnalyzerOp = Literal["create", "update", "delete"]


def new_id(prefix: str) -> str:
    """Generate a short unique identifier like ``mem_1f3a9c0b2d4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class UserMemory(BaseModel):
    """
    A durable fact about a user.

    The ID is assigned once by storage when the memory is first saved and is
    never changed afterwards.
    """

    id: str = Field("", description="Unique identifier, assigned by storage")
    user_id: str = Field(..., description="Owning user")
    memory: str = Field(..., description="Memory text, one atomic fact")
    input: str = Field("", description="User input that produced the memory")
    created_at: float = Field(0.0, description="Unix timestamp")
    updated_at: float = Field(0.0, description="Unix timestamp")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "mem_abc123def456",
                "user_id": "user_42",
                "memory": "User prefers green tea over coffee.",
                "input": "I don't drink coffee, green tea is my thing",
                "created_at": 1696723200.0,
                "updated_at": 1696723200.0,
            }
        }

    def to_storage_dict(self) -> Dict[str, Any]:
        """Convert to dict for storage."""
        return self.model_dump()

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "UserMemory":
        """Load from storage dict."""
        return cls(**data)


class SessionSummary(BaseModel):
    """Rolling summary of one conversation session, replaced in place."""

    session_id: str = Field(..., description="Conversation session")
    user_id: str = Field(..., description="Owning user")
    summary: str = Field("", description="Summary text")
    created_at: float = Field(0.0, description="Unix timestamp")
    updated_at: float = Field(0.0, description="Unix timestamp")


class ConversationMessage(BaseModel):
    """A single persisted conversation message. Append-only."""

    id: str = Field("", description="Message ID, assigned by storage when empty")
    session_id: str = Field(..., description="Conversation session")
    user_id: str = Field(..., description="Owning user")
    role: MessageRole = Field("user", description="user, assistant or system")
    content: str = Field("", description="Text content")
    parts: List[MessagePart] = Field(default_factory=list, description="Non-text parts")
    created_at: float = Field(0.0, description="Unix timestamp")

    def snippet(self, max_chars: int = 100) -> str:
        """Get truncated text for display."""
        if len(self.content) <= max_chars:
            return self.content
        return self.content[:max_chars-3] + "..."


class AnalyzerOperation(BaseModel):
    """
    One create/update/delete operation proposed by the memory analyzer.

    The analyzer replies with ``{"op": ..., "id": ..., "memory": ...}``
    objects; ``"del"`` is accepted as a synonym for ``"delete"``.
    """

    op: AnalyzerOp
    id: str = ""
    memory: str = ""

    @field_validator("op", mode="before")
    @classmethod
    def _normalize_op(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "del":
                return "delete"
        return v

    @classmethod
    def create(cls, memory: str) -> "AnalyzerOperation":
        return cls(op="create", memory=memory)

    @classmethod
    def update(cls, memory_id: str, memory: str) -> "AnalyzerOperation":
        return cls(op="update", id=memory_id, memory=memory)

    @classmethod
    def delete(cls, memory_id: str) -> "AnalyzerOperation":
        return cls(op="delete", id=memory_id)

    def is_valid(self) -> bool:
        """Whether the operation carries the fields its kind requires."""
        if self.op == "create":
            return bool(self.memory.strip())
        if self.op == "update":
            return bool(self.id) and bool(self.memory.strip())
        return bool(self.id)


def render_input(content: str, parts: Optional[List[MessagePart]] = None) -> str:
    """
    Flatten message content and media parts into the text kept as a
    memory's originating input.
    """
    rendered = content or ""
    for part in parts or []:
        if part.type == "text":
            if part.text:
                rendered += part.text
            continue
        label = part.type.replace("_url", "")
        rendered += f"[{label}]"
        if part.url:
            rendered += f",link:{part.url}"
    return rendered
