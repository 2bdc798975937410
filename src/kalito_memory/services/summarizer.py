"""Threshold-triggered conversation summarization.

Once enough turns have accumulated past the last summary, the oldest block
is compressed by a language model. Model output is checked against a set of
heuristics that catch content generation instead of compression; rejected
output and any invocation failure fall back to a deterministic topic-based
summary. Every pass that crosses the threshold persists a summary.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Pattern, Tuple

from ..manager import ModelManager
from ..models.memory import DEFAULT_SUMMARY_IMPORTANCE, Summary, Turn
from ..providers import GenerationSettings, LLMProviderError, ProviderNetworkError
from .store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 8
MAX_TOPICS = 4
GENERAL_TOPIC = "general conversation"

LOCAL_SYSTEM_PROMPT = """TASK: Create a brief summary of the conversation below. \
Focus ONLY on what was discussed, not generating new content.

FORMAT: 1-2 sentences describing the key topics and outcomes.
CONTEXT: This is a therapy/care discussion. Include emotional states, treatment topics, \
and family concerns when relevant.

DO NOT: Create new content. Only summarize what was already discussed."""

CLOUD_SYSTEM_PROMPT = """You are a conversation summarizer for a care and therapy practice. \
Create a concise summary that preserves:
1. Key mental health topics discussed (mood, anxiety, depression, etc.)
2. Treatment-related information (medications, therapy, appointments)
3. Family and caregiving concerns
4. Important therapeutic insights
5. Current emotional state and coping strategies

Keep under 300 words."""

# Ordered (topic, keywords); earlier topics win when more than MAX_TOPICS match
TOPIC_VOCABULARY: List[Tuple[str, Tuple[str, ...]]] = [
    ("crisis support", ("crisis", "emergency", "urgent")),
    ("depression", ("depression", "depressed", "sad", "hopeless")),
    ("anxiety", ("anxiety", "anxious", "worried", "panic")),
    ("stress management", ("stress", "overwhelmed", "pressure")),
    ("mood discussion", ("mood", "feeling", "emotion")),
    ("therapy", ("therapy", "counseling", "therapist")),
    ("medication management", ("medication", "prescription", "dosage", "side effect")),
    ("treatment planning", ("treatment", "plan", "goal")),
    ("mother care", ("mom", "mother")),
    ("father care", ("dad", "father")),
    ("family caregiving", ("family", "caregiver", "caring for")),
    ("healthcare appointments", ("appointment", "doctor", "visit")),
    ("symptom tracking", ("symptom", "reaction")),
    ("coping strategies", ("coping", "strategy", "technique")),
    ("sleep issues", ("sleep", "insomnia", "tired")),
    ("wellness activities", ("exercise", "activity", "routine")),
    ("narrative therapy", ("story", "narrative", "journal")),
    ("creative expression", ("poetry", "poem", "verse")),
    ("music therapy", ("song", "lyrics", "music")),
    ("seeking help", ("help", "how to", "explain")),
]


def _compile_patterns(patterns: Tuple[str, ...]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in patterns]


@dataclass
class SummaryValidationConfig:
    """Thresholds for rejecting model output as a summary.

    Tuned for therapeutic conversations; retune before reusing elsewhere.
    """

    max_chars: int = 500
    max_length_ratio: float = 0.5
    min_word_overlap: float = 0.05
    min_overlap_word_length: int = 4
    invalid_patterns: Tuple[str, ...] = (
        r"\A\s*(Here's|Here is|Certainly|Let me|I'll create|I can)",
        r"```",
        r"\A\s*(Chapter|Scene|Act [IVX]+)\b",
    )
    compiled: List[Pattern[str]] = field(init=False, repr=False)

    def __post_init__(self):
        self.compiled = _compile_patterns(self.invalid_patterns)


def rejection_reason(
    summary: str, turns: List[Turn], config: Optional[SummaryValidationConfig] = None
) -> Optional[str]:
    """Explain why a candidate summary is rejected, or None if it is acceptable."""
    config = config or SummaryValidationConfig()
    text = summary.strip()
    if not text:
        return "empty summary"

    if len(text) > config.max_chars:
        return f"too long ({len(text)} chars)"

    source_length = sum(len(t.text) for t in turns)
    ratio = len(text) / source_length if source_length else float("inf")
    if ratio > config.max_length_ratio:
        return f"length ratio too high ({ratio * 100:.1f}%)"

    for pattern in config.compiled:
        if pattern.search(text):
            return f"invalid pattern {pattern.pattern}"

    summary_words = text.lower().split()
    source_text = " ".join(t.text for t in turns).lower()
    matching = sum(
        1
        for word in summary_words
        if len(word) >= config.min_overlap_word_length and word in source_text
    )
    overlap = matching / len(summary_words)
    if overlap < config.min_word_overlap:
        return f"low word overlap ({overlap * 100:.1f}%)"

    return None


def extract_topics(turns: List[Turn], max_topics: int = MAX_TOPICS) -> List[str]:
    """Tag user turns with topics from the vocabulary table, in table order."""
    user_text = " ".join(t.text.lower() for t in turns if t.role == "user")
    topics = [
        topic for topic, keywords in TOPIC_VOCABULARY if any(k in user_text for k in keywords)
    ]
    return topics[:max_topics]


def fallback_summary(turns: List[Turn]) -> str:
    """Deterministic templated summary used when the model can't be trusted."""
    topics = extract_topics(turns) or [GENERAL_TOPIC]
    return f"Conversation with {len(turns)} turns about: {', '.join(topics)}."


class Summarizer:
    """Compresses blocks of turns into summary records."""

    def __init__(
        self,
        store: RecordStore,
        model_manager: Optional[ModelManager],
        threshold: int = DEFAULT_THRESHOLD,
        validation: Optional[SummaryValidationConfig] = None,
    ):
        if threshold < 1:
            raise ValueError(f"Summary threshold must be positive, got {threshold}")
        self.store = store
        self.model_manager = model_manager
        self.threshold = threshold
        self.validation = validation or SummaryValidationConfig()

        self.model_summaries = 0
        self.fallback_summaries = 0

    def unsummarized_turns(self, conversation_id: str) -> List[Turn]:
        """Turns recorded after the last summary's covered range."""
        last = self.store.last_summary(conversation_id)
        return self.store.turns_after(conversation_id, last.last_turn_id if last else None)

    def needs_summarization(self, conversation_id: str) -> bool:
        return len(self.unsummarized_turns(conversation_id)) >= self.threshold

    async def maybe_summarize(self, conversation_id: str) -> Optional[Summary]:
        """Summarize the oldest unsummarized block if the threshold is reached.

        Returns:
            The persisted summary, or None if fewer than ``threshold`` turns
            are unsummarized.
        """
        pending = self.unsummarized_turns(conversation_id)
        if len(pending) < self.threshold:
            logger.debug(
                f"{conversation_id}: {len(pending)}/{self.threshold} unsummarized turns, skipping"
            )
            return None

        return await self.create_summary(conversation_id, pending[: self.threshold])

    async def create_summary(self, conversation_id: str, turns: List[Turn]) -> Summary:
        """Compress an explicit block of turns and persist the result.

        Raises:
            ValueError: If ``turns`` is empty.
        """
        if not turns:
            raise ValueError("Cannot summarize an empty block of turns")

        text = await self._generate(conversation_id, turns)
        summary = Summary(
            id=f"summary_{uuid.uuid4().hex[:12]}",
            conversation_id=conversation_id,
            text=text,
            turn_count=len(turns),
            first_turn_id=turns[0].id,
            last_turn_id=turns[-1].id,
            importance=DEFAULT_SUMMARY_IMPORTANCE,
            created_at=datetime.now(),
        )
        self.store.add_summary(summary)
        logger.info(
            f"Stored summary {summary.id} for {conversation_id} "
            f"(turns {summary.first_turn_id}-{summary.last_turn_id})"
        )
        return summary

    async def _generate(self, conversation_id: str, turns: List[Turn]) -> str:
        if self.model_manager is None:
            self.fallback_summaries += 1
            return fallback_summary(turns)

        meta = self.store.get_conversation(conversation_id)
        model = self.model_manager.summarization_model(meta.preferred_model if meta else None)
        is_local = self.model_manager.is_local(model)
        conversation_text = "\n".join(f"{t.role}: {t.text}" for t in turns)

        if is_local:
            messages = [
                {"role": "system", "content": LOCAL_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Conversation to summarize:\n{conversation_text}\n\n"
                    "Provide only the summary:",
                },
            ]
        else:
            messages = [
                {"role": "system", "content": CLOUD_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Please summarize this conversation:\n\n{conversation_text}",
                },
            ]

        try:
            response = await self.model_manager.invoke(
                messages,
                GenerationSettings(model=model, temperature=0.1, max_tokens=100 if is_local else 300),
            )
        except ProviderNetworkError as e:
            logger.warning(f"Summarization offline for {conversation_id} ({e}), using fallback")
            self.fallback_summaries += 1
            return fallback_summary(turns)
        except LLMProviderError as e:
            logger.error(f"Summarization failed for {conversation_id}: {e}, using fallback")
            self.fallback_summaries += 1
            return fallback_summary(turns)
        except Exception as e:
            logger.error(
                f"Unexpected summarization error for {conversation_id}: {e}, using fallback",
                exc_info=True,
            )
            self.fallback_summaries += 1
            return fallback_summary(turns)

        candidate = response.content.strip()
        reason = rejection_reason(candidate, turns, self.validation)
        if reason:
            logger.warning(
                f"Rejected summary from {model} ({reason}): {candidate[:100]!r}, using fallback"
            )
            self.fallback_summaries += 1
            return fallback_summary(turns)

        self.model_summaries += 1
        return candidate

    def get_stats(self) -> dict:
        return {
            "threshold": self.threshold,
            "model_summaries": self.model_summaries,
            "fallback_summaries": self.fallback_summaries,
        }
