"""
Pydantic schemas for FastAPI endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from adaptive_memory.generation.generator import MessagePart
from adaptive_memory.memory.schemas import ConversationMessage, SessionSummary, UserMemory


class UserMessageRequest(BaseModel):
    """Request model for posting a user message."""

    user_id: str = Field(..., description="Owning user")
    session_id: str = Field(..., description="Conversation session")
    text: str = Field("", description="Message text; may be empty when parts are given")
    parts: List[MessagePart] = Field(default_factory=list, description="Non-text parts (image/audio/video/file links)")
    message_id: Optional[str] = Field(None, description="Caller-assigned message ID")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "user_42",
                "session_id": "sess_abc123",
                "text": "I switched from coffee to green tea last month.",
                "parts": [],
            }
        }


class AssistantMessageRequest(BaseModel):
    """Request model for posting an assistant reply."""

    user_id: str = Field(..., description="Owning user")
    session_id: str = Field(..., description="Conversation session")
    text: str = Field(..., description="Assistant reply text")
    message_id: Optional[str] = Field(None, description="Caller-assigned message ID")


class MessageResponse(BaseModel):
    """Response with the stored message."""

    message: ConversationMessage


class MessageListResponse(BaseModel):
    """Response with session messages, oldest first."""

    messages: List[ConversationMessage]
    count: int


class AddMemoryRequest(BaseModel):
    """Request to add a memory manually."""

    user_id: str = Field(..., description="Owning user")
    memory: str = Field(..., description="Memory text", min_length=1, max_length=2000)
    input: str = Field("", description="Originating input")


class UpdateMemoryRequest(BaseModel):
    """Request to replace a memory's text."""

    user_id: str = Field(..., description="Owning user")
    memory: str = Field(..., description="New memory text", min_length=1, max_length=2000)
    input: str = Field("", description="Originating input")


class MemoryListResponse(BaseModel):
    """Response with user memories."""

    memories: List[UserMemory]
    count: int


class DeleteResponse(BaseModel):
    """Response after a delete."""

    deleted: int = Field(..., description="Number of records removed")
    message: str


class SummaryResponse(BaseModel):
    """Response with a session summary, if one exists."""

    summary: Optional[SessionSummary] = None


class StatsResponse(BaseModel):
    """Memory manager statistics."""

    stats: Dict[str, Any]


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str = Field(..., description="Service status")
    components: Dict[str, bool] = Field(default_factory=dict, description="Component availability")
