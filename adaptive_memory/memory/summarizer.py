"""
Session summary generation using an LLM or mock generator.

Produces a full summary from a window of recent messages, or folds the
latest messages into an existing summary.
"""

import logging
from typing import List, Optional

from adaptive_memory.generation.generator import GenerationConfig, PromptMessage, TextGenerator
from .prompts import INCREMENTAL_SUMMARY_PROMPT, SUMMARY_PROMPT, format_transcript
from .schemas import ConversationMessage

logger = logging.getLogger(__name__)

# Message windows used by the manager
FULL_WINDOW = 20
INCREMENTAL_WINDOW = 10


class SummaryGenerator:
    """
    Writes session summaries.

    An empty generator reply never erases a summary: the existing text is
    returned instead.
    """

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def generate_summary(
        self,
        messages: List[ConversationMessage],
        existing: str = "",
        timeout: Optional[float] = None
    ) -> str:
        """
        Summarize a conversation window.

        Args:
            messages: Messages oldest to newest
            existing: Current summary, used as context when present
            timeout: Bound on the generator call in seconds

        Returns:
            New summary text, or ``existing`` when there is nothing to summarize

        Raises:
            ExternalGenerationError: If generation fails
        """
        if not messages:
            return existing

        prompt = [PromptMessage(role="system", content=SUMMARY_PROMPT)]
        if existing:
            prompt.append(PromptMessage(
                role="system",
                content=f"## Existing summary\n{existing}\n\n"
                        "Produce an updated summary from the existing summary and the new conversation."
            ))
        prompt.append(PromptMessage(
            role="user",
            content=f"## Conversation\n{format_transcript(messages)}\n\nSummarize the conversation above."
        ))

        return self._generate(prompt, existing, timeout)

    def generate_incremental_summary(
        self,
        recent: List[ConversationMessage],
        existing: str,
        timeout: Optional[float] = None
    ) -> str:
        """
        Fold recent messages into an existing summary.

        Falls back to full generation when there is no existing summary.
        """
        if not recent:
            return existing
        if not existing:
            return self.generate_summary(recent, "", timeout=timeout)

        prompt = [
            PromptMessage(role="system", content=INCREMENTAL_SUMMARY_PROMPT),
            PromptMessage(role="system", content=f"## Existing summary\n{existing}"),
            PromptMessage(
                role="user",
                content=f"## Latest messages\n{format_transcript(recent)}\n\n"
                        "Update the summary to include the latest messages."
            ),
        ]

        return self._generate(prompt, existing, timeout)

    def _generate(self, prompt: List[PromptMessage], existing: str, timeout: Optional[float]) -> str:
        config = GenerationConfig(temperature=0.1, max_new_tokens=600, timeout=timeout)
        response = self.generator.generate(prompt, config)

        summary = response.text.strip()
        if not summary:
            logger.warning("Summary generator returned empty text, keeping existing summary")
            return existing
        return summary
