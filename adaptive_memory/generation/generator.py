"""Text generation interface used by the analyzer and summary generator."""
from __future__ import annotations
from typing import Callable, List, Literal, Optional, Union
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
import logging
import time

from pydantic import BaseModel

from adaptive_memory.errors import ExternalGenerationError

logger = logging.getLogger(__name__)


PartType = Literal["text", "image_url", "audio_url", "video_url", "file_url"]
PromptRole = Literal["system", "user", "assistant"]


class MessagePart(BaseModel):
    """One part of a multi-part message (text or a media link)."""
    type: PartType = "text"
    text: Optional[str] = None
    url: Optional[str] = None


@dataclass
class PromptMessage:
    """Role-tagged message sent to a text generator."""
    role: PromptRole
    content: str = ""
    parts: List[MessagePart] = field(default_factory=list)


@dataclass
class GenerationConfig:
    """Configuration for text generation."""
    temperature: float = 0.2
    max_new_tokens: int = 1024
    timeout: Optional[float] = None


@dataclass
class GeneratedResponse:
    """Container for generated text with metadata."""
    text: str
    model_used: str
    prompt_length: int = 0
    response_length: int = 0
    processing_time: float = 0.0


def prompt_length(messages: List[PromptMessage]) -> int:
    """Total characters of text content in a prompt."""
    return sum(len(m.content) for m in messages)


class TextGenerator(ABC):
    """Abstract base class for text generators."""

    @abstractmethod
    def generate(
        self,
        messages: List[PromptMessage],
        config: Optional[GenerationConfig] = None
    ) -> GeneratedResponse:
        """Generate text for an ordered list of role-tagged messages."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the generator is available and ready to use."""
        pass


Reply = Union[str, Exception, Callable[[List[PromptMessage]], str]]


class MockGenerator(TextGenerator):
    """
    Scripted generator for tests and offline use.

    Replies are consumed in order; once exhausted the default reply is
    returned. A reply may be a string, an exception instance (raised), or a
    callable receiving the prompt messages.
    """

    def __init__(self, replies: Optional[List[Reply]] = None, default: str = "", delay: float = 0.0):
        self.replies: List[Reply] = list(replies or [])
        self.default = default
        self.delay = delay
        self.calls: List[List[PromptMessage]] = []

    def generate(
        self,
        messages: List[PromptMessage],
        config: Optional[GenerationConfig] = None
    ) -> GeneratedResponse:
        start = time.time()
        self.calls.append(list(messages))

        if self.delay:
            time.sleep(self.delay)

        reply = self.replies.pop(0) if self.replies else self.default

        if isinstance(reply, Exception):
            if isinstance(reply, ExternalGenerationError):
                raise reply
            raise ExternalGenerationError(f"mock generation failed: {reply}") from reply
        if callable(reply):
            reply = reply(messages)

        return GeneratedResponse(
            text=reply,
            model_used="mock_generator",
            prompt_length=prompt_length(messages),
            response_length=len(reply),
            processing_time=time.time() - start,
        )

    def is_available(self) -> bool:
        """Mock generator is always available."""
        return True
