"""
Memory API endpoints.

Message processing, memory CRUD and search, session summaries and
statistics over a shared MemoryManager.
"""

import logging
import os
from contextlib import contextmanager
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from adaptive_memory.errors import NotFoundError, PersistenceError, ValidationError
from adaptive_memory.generation import LLMFactory, MockGenerator, OllamaGenerator
from adaptive_memory.memory.manager import MemoryManager
from adaptive_memory.memory.schemas import UserMemory
from adaptive_memory.memory.store import InMemoryStore
from adaptive_memory.persist.sqlite_store import SQLiteMemoryStore
from .schemas import (
    AddMemoryRequest,
    AssistantMessageRequest,
    DeleteResponse,
    MemoryListResponse,
    MessageListResponse,
    MessageResponse,
    StatsResponse,
    SummaryResponse,
    UpdateMemoryRequest,
    UserMessageRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memory", tags=["memory"])


# Default manager instance (replaced via set_memory_manager or dependency overrides)
_manager: Optional[MemoryManager] = None


def build_default_manager() -> MemoryManager:
    """
    Build a manager from environment variables.

    ADAPTIVE_MEMORY_DB: SQLite path (in-process storage when unset)
    ADAPTIVE_MEMORY_PROVIDER: openai, azure, anthropic or ollama (mock when unset)
    ADAPTIVE_MEMORY_MODEL: model or deployment name for the provider
    """
    db_path = os.getenv("ADAPTIVE_MEMORY_DB")
    storage = SQLiteMemoryStore(db_path) if db_path else InMemoryStore()

    provider = os.getenv("ADAPTIVE_MEMORY_PROVIDER", "mock").lower()
    model = os.getenv("ADAPTIVE_MEMORY_MODEL")
    if provider == "openai":
        generator = LLMFactory.create_openai_generator(model_name=model or "gpt-4o-mini")
    elif provider == "azure":
        generator = LLMFactory.create_azure_generator(deployment_name=model or "gpt-4o-mini")
    elif provider == "anthropic":
        generator = LLMFactory.create_anthropic_generator(model_name=model or "claude-3-5-haiku-latest")
    elif provider == "ollama":
        generator = OllamaGenerator(model=model or "llama3")
    else:
        generator = MockGenerator(default="[]")

    logger.info("Memory manager using %s generator and %s storage",
                provider, "sqlite" if db_path else "in-memory")
    return MemoryManager(generator, storage)


def get_memory_manager() -> MemoryManager:
    """Get or create memory manager singleton."""
    global _manager
    if _manager is None:
        _manager = build_default_manager()
    return _manager


def set_memory_manager(manager: Optional[MemoryManager]) -> None:
    """Install the manager used by the endpoints."""
    global _manager
    _manager = manager


def close_memory_manager() -> None:
    """Close the installed manager, if one was ever created."""
    global _manager
    if _manager is not None:
        _manager.close()
        _manager = None


@contextmanager
def _http_errors(action: str):
    """Map pipeline errors to HTTP status codes."""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error("Failed to %s: %s", action, e)
        raise HTTPException(status_code=500, detail=f"Failed to {action}: {e}")


# ============================================================================
# Messages
# ============================================================================

@router.post("/messages/user", response_model=MessageResponse)
def post_user_message(request: UserMessageRequest, manager: MemoryManager = Depends(get_memory_manager)):
    """
    Store a user message and schedule memory analysis.

    Example:
        POST /api/memory/messages/user
        {"user_id": "user_42", "session_id": "sess_1", "text": "I like tea"}
    """
    with _http_errors("store user message"):
        message = manager.process_user_message(
            request.user_id,
            request.session_id,
            request.text,
            parts=request.parts,
            message_id=request.message_id,
        )
    return MessageResponse(message=message)


@router.post("/messages/assistant", response_model=MessageResponse)
def post_assistant_message(request: AssistantMessageRequest, manager: MemoryManager = Depends(get_memory_manager)):
    """Store an assistant reply and maybe refresh the session summary."""
    with _http_errors("store assistant message"):
        message = manager.process_assistant_message(
            request.user_id,
            request.session_id,
            request.text,
            message_id=request.message_id,
        )
    return MessageResponse(message=message)


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
def list_messages(
    session_id: str,
    user_id: str,
    limit: int = 0,
    manager: MemoryManager = Depends(get_memory_manager)
):
    """List session messages oldest first; ``limit`` keeps the newest N."""
    with _http_errors("list messages"):
        messages = manager.get_messages(session_id, user_id, limit)
    return MessageListResponse(messages=messages, count=len(messages))


@router.delete("/sessions/{session_id}/messages", response_model=DeleteResponse)
def delete_messages(session_id: str, user_id: str, manager: MemoryManager = Depends(get_memory_manager)):
    with _http_errors("delete messages"):
        deleted = manager.delete_messages(session_id, user_id)
    return DeleteResponse(deleted=deleted, message=f"Deleted {deleted} messages")


# ============================================================================
# Summaries
# ============================================================================

@router.get("/sessions/{session_id}/summary", response_model=SummaryResponse)
def get_summary(session_id: str, user_id: str, manager: MemoryManager = Depends(get_memory_manager)):
    """Return the session summary, or null when none was generated yet."""
    with _http_errors("get summary"):
        summary = manager.get_session_summary(session_id, user_id)
    return SummaryResponse(summary=summary)


@router.delete("/sessions/{session_id}/summary", response_model=DeleteResponse)
def delete_summary(session_id: str, user_id: str, manager: MemoryManager = Depends(get_memory_manager)):
    with _http_errors("delete summary"):
        manager.delete_session_summary(session_id, user_id)
    return DeleteResponse(deleted=1, message="Summary deleted")


# ============================================================================
# User memories
# ============================================================================

@router.get("/users/{user_id}/memories", response_model=MemoryListResponse)
def list_memories(user_id: str, manager: MemoryManager = Depends(get_memory_manager)):
    """List memories using the configured retrieval order and limit."""
    with _http_errors("list memories"):
        memories = manager.get_user_memories(user_id)
    return MemoryListResponse(memories=memories, count=len(memories))


@router.post("/memories", response_model=UserMemory)
def add_memory(request: AddMemoryRequest, manager: MemoryManager = Depends(get_memory_manager)):
    with _http_errors("add memory"):
        return manager.add_user_memory(request.user_id, request.memory, request.input)


@router.put("/memories/{memory_id}", response_model=UserMemory)
def update_memory(
    memory_id: str,
    request: UpdateMemoryRequest,
    manager: MemoryManager = Depends(get_memory_manager)
):
    with _http_errors("update memory"):
        return manager.update_user_memory(UserMemory(
            id=memory_id,
            user_id=request.user_id,
            memory=request.memory,
            input=request.input,
        ))


@router.delete("/memories/{memory_id}", response_model=DeleteResponse)
def delete_memory(memory_id: str, manager: MemoryManager = Depends(get_memory_manager)):
    with _http_errors("delete memory"):
        manager.delete_user_memory(memory_id)
    return DeleteResponse(deleted=1, message=f"Memory {memory_id} deleted")


@router.delete("/users/{user_id}/memories", response_model=DeleteResponse)
def clear_memories(user_id: str, manager: MemoryManager = Depends(get_memory_manager)):
    with _http_errors("clear memories"):
        deleted = manager.clear_user_memories(user_id)
    return DeleteResponse(deleted=deleted, message=f"Cleared {deleted} memories")


@router.get("/users/{user_id}/memories/search", response_model=MemoryListResponse)
def search_memories(
    user_id: str,
    q: str,
    limit: int = 10,
    manager: MemoryManager = Depends(get_memory_manager)
):
    """
    Case-insensitive substring search over memory text and input.

    Example:
        GET /api/memory/users/user_42/memories/search?q=tea&limit=5
    """
    with _http_errors("search memories"):
        memories = manager.search_user_memories(user_id, q, limit)
    return MemoryListResponse(memories=memories, count=len(memories))


# ============================================================================
# Stats
# ============================================================================

@router.get("/stats", response_model=StatsResponse)
def memory_stats(manager: MemoryManager = Depends(get_memory_manager)):
    """Configuration, active trigger sessions and task queue counters."""
    return StatsResponse(stats=manager.get_memory_stats())
