"""Compose chat messages from an assembled memory context."""

from typing import Dict, List

from ..models.memory import MemoryContext

HISTORY_PREAMBLE = (
    "The following messages show your recent conversation with this user. "
    "Use this context to understand the ongoing discussion and provide continuity "
    "in your responses."
)


def compose_messages(
    context: MemoryContext,
    user_text: str,
    system_prompt: str = "",
    domain_context: str = "",
) -> List[Dict[str, str]]:
    """Build the message list for one model call.

    Order: system prompt and domain records, summaries, pins, recent turns,
    then the inbound user text.
    """
    messages: List[Dict[str, str]] = []

    system_parts = [part for part in (system_prompt.strip(), domain_context.strip()) if part]
    if system_parts:
        messages.append({"role": "system", "content": "\n\n".join(system_parts)})

    if not context.is_empty():
        messages.append({"role": "system", "content": HISTORY_PREAMBLE})

    if context.summaries:
        summaries_text = "\n\n".join(s.text for s in context.summaries)
        messages.append(
            {"role": "system", "content": f"Previous conversation context: {summaries_text}"}
        )

    if context.pins:
        pins_text = "; ".join(p.content for p in context.pins)
        messages.append({"role": "system", "content": f"Key information to remember: {pins_text}"})

    for turn in context.recent_turns:
        messages.append({"role": turn.role, "content": turn.text})

    messages.append({"role": "user", "content": user_text})
    return messages
