"""
Memory analyzer.

Asks the text generator which create/update/delete operations a new user
message implies for the user's existing memories.
"""

import json
import logging
import re
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from adaptive_memory.errors import ExternalGenerationError
from adaptive_memory.generation.generator import (
    GenerationConfig,
    MessagePart,
    PromptMessage,
    TextGenerator,
)
from .prompts import USER_MEMORY_PROMPT, format_existing_memories
from .schemas import AnalyzerOperation, UserMemory

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)


class MemoryAnalyzer:
    """
    Turns a user message plus existing memories into analyzer operations.
    """

    def __init__(self, generator: TextGenerator, system_prompt: Optional[str] = None):
        """
        Initialize analyzer.

        Args:
            generator: Text generator used for analysis
            system_prompt: Override for the default instructions
        """
        self.generator = generator
        self.system_prompt = system_prompt or USER_MEMORY_PROMPT

    def set_system_prompt(self, prompt: str) -> None:
        """Replace the analyzer instructions."""
        self.system_prompt = prompt

    def build_messages(
        self,
        content: str,
        existing: List[UserMemory],
        parts: Optional[List[MessagePart]] = None
    ) -> List[PromptMessage]:
        """Assemble the prompt: instructions, existing memories, user input."""
        messages = [PromptMessage(role="system", content=self.system_prompt)]
        if existing:
            messages.append(PromptMessage(role="system", content=format_existing_memories(existing)))
        messages.append(PromptMessage(role="user", content=content, parts=list(parts or [])))
        return messages

    def analyze(
        self,
        content: str,
        existing: List[UserMemory],
        parts: Optional[List[MessagePart]] = None,
        timeout: Optional[float] = None
    ) -> List[AnalyzerOperation]:
        """
        Decide memory operations for a new user message.

        Args:
            content: Text of the user message
            existing: The user's current memories
            parts: Non-text message parts
            timeout: Bound on the generator call in seconds

        Returns:
            Operations to apply; empty when nothing should change

        Raises:
            ExternalGenerationError: If generation fails or the reply is not JSON
        """
        messages = self.build_messages(content, existing, parts)
        config = GenerationConfig(temperature=0.0, timeout=timeout)

        response = self.generator.generate(messages, config)
        return self.parse_response(response.text)

    @staticmethod
    def parse_response(text: str) -> List[AnalyzerOperation]:
        """Parse the generator's JSON reply into operations."""
        text = (text or "").strip()

        # Strip markdown code fences if present.
        m = _FENCE.search(text)
        if m:
            text = m.group(1).strip()

        if not text:
            return []

        try:
            raw = json.loads(text)
        except (json.JSONDecodeError, ValueError) as e:
            raise ExternalGenerationError(f"analyzer reply is not valid JSON: {e}") from e

        if isinstance(raw, dict):
            raw = [raw]
        if not isinstance(raw, list):
            raise ExternalGenerationError(f"analyzer reply must be a JSON array, got {type(raw).__name__}")

        operations = []
        for entry in raw:
            if not isinstance(entry, dict):
                logger.warning("Skipping non-object analyzer entry: %r", entry)
                continue
            try:
                op = AnalyzerOperation(**entry)
            except (PydanticValidationError, TypeError) as e:
                logger.warning("Skipping invalid analyzer entry %r: %s", entry, e)
                continue
            if not op.is_valid():
                logger.warning("Skipping incomplete analyzer operation: %r", entry)
                continue
            operations.append(op)

        return operations
