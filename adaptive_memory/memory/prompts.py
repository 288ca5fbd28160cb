"""Prompt text for the memory analyzer and session summary generator."""
from __future__ import annotations
from typing import List

from .schemas import ConversationMessage, UserMemory


USER_MEMORY_PROMPT = """You maintain a list of durable facts about the user.

Read the user's latest message and decide whether the memory list should change.
Only record information that will still be useful in future conversations:
preferences, personal details the user chose to share, goals, ongoing projects,
and standing instructions. Ignore small talk, one-off questions and anything the
assistant said.

Each memory must be one short, self-contained sentence about the user.

Reply with a JSON array and nothing else. Each element is one operation:
- {"op": "create", "memory": "<new fact>"}
- {"op": "update", "id": "<existing id>", "memory": "<revised fact>"}
- {"op": "del", "id": "<existing id>"}

Use update when the new message refines or changes an existing fact, and del
when it contradicts or retracts one. Reply with [] when nothing should change."""


EXISTING_MEMORIES_HEADER = "## Existing memories"
EXISTING_MEMORIES_FOOTER = "Decide the operations based on the existing memories above and the user's new input."


SUMMARY_PROMPT = """# Session summary

Summarize the conversation below so the assistant can pick it up later.

Cover:
- Main topics discussed
- What the user asked for or needs
- Answers, suggestions and decisions reached
- Key facts, figures and conclusions
- Open questions or follow-ups

Write plain prose in a neutral tone, between 150 and 300 words. Output only the
summary. If an existing summary is provided, produce one coherent summary that
continues it, focusing on the newest messages."""


INCREMENTAL_SUMMARY_PROMPT = """# Summary update

Update the existing session summary with the latest messages.

- Keep the summary coherent with what it already says
- Fold the key information from the new messages into it
- Do not restate what the summary already covers
- Emphasize new progress or changes

Output the complete updated summary only, between 150 and 400 words."""


def format_existing_memories(memories: List[UserMemory]) -> str:
    """Render existing memories as a bullet list keyed by ID."""
    lines = [EXISTING_MEMORIES_HEADER]
    for memory in memories:
        lines.append(f"- id: {memory.id}\n  memory: {memory.memory}")
    lines.append("")
    lines.append(EXISTING_MEMORIES_FOOTER)
    return "\n".join(lines)


def format_transcript(messages: List[ConversationMessage]) -> str:
    """Render messages as ``Role: content`` lines."""
    lines = []
    for msg in messages:
        role = "Assistant" if msg.role == "assistant" else "User"
        lines.append(f"{role}: {msg.content}")
    return "\n".join(lines)
