"""Semantic pins: creation, ranking and rule-based extraction."""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Pattern, Tuple

from ..models.memory import DEFAULT_PIN_IMPORTANCE, Pin, Turn, Urgency
from .store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_PIN_LIMIT = 5


def rank_key(pin: Pin) -> Tuple[float, int, datetime, str]:
    """Sort key for pins: importance, then urgency, then recency."""
    return (pin.importance, pin.urgency.rank, pin.created_at, pin.id)


class PinStore:
    """Creates and ranks pins. Pins are immutable once stored."""

    def __init__(self, store: RecordStore):
        self.store = store

    def create_pin(
        self,
        conversation_id: str,
        content: str,
        source_turn_id: Optional[int] = None,
        importance: float = DEFAULT_PIN_IMPORTANCE,
        category: str = "manual",
        urgency: Urgency = Urgency.NORMAL,
        subject_id: Optional[str] = None,
    ) -> Pin:
        """Create and persist a pin.

        Args:
            conversation_id: Conversation the pin belongs to
            content: The fact to retain
            source_turn_id: Turn the fact was taken from, if any
            importance: Salience in [0, 1]
            category: Free-form tag such as "medication-change"
            urgency: Urgency level
            subject_id: External subject the fact is about

        Returns:
            The stored pin

        Raises:
            ValueError: If the content is empty or importance is out of range
        """
        content = (content or "").strip()
        if not content:
            raise ValueError("Pin content must not be empty")
        if not 0.0 <= importance <= 1.0:
            raise ValueError(f"Pin importance must be within [0, 1], got {importance}")

        pin = Pin(
            id=f"pin_{uuid.uuid4().hex[:12]}",
            conversation_id=conversation_id,
            content=content,
            importance=importance,
            category=category,
            urgency=Urgency(urgency),
            source_turn_id=source_turn_id,
            subject_id=subject_id,
            created_at=datetime.now(),
        )
        self.store.add_pin(pin)
        logger.info(
            f"Created {pin.urgency.value} pin {pin.id} ({category}) for {conversation_id}"
        )
        return pin

    def list_top_pins(self, conversation_id: str, limit: int = DEFAULT_PIN_LIMIT) -> List[Pin]:
        """Return the highest-ranked pins for a conversation."""
        if limit <= 0:
            return []
        pins = sorted(self.store.list_pins(conversation_id), key=rank_key, reverse=True)
        return pins[:limit]


@dataclass(frozen=True)
class PinRule:
    """A pattern that turns a matching sentence into a pin."""

    category: str
    pattern: Pattern[str]
    urgency: Urgency
    importance: float


# Narrower than the scoring crisis vocabulary: everyday requests such as
# "help me" or "urgent" must not become critical pins.
WARNING_SIGN_TERMS = (
    "crisis",
    "emergency",
    "can't cope",
    "cannot cope",
    "suicidal",
    "self-harm",
    "hurt myself",
    "kill myself",
    "want to die",
    "overdose",
)

_MEDICATION_WORDS = r"(medication|medicine|meds|prescription|dose|dosage|mg|pill)"

PIN_RULES: List[PinRule] = [
    PinRule(
        category="warning-sign",
        pattern=re.compile(
            r"\b(" + "|".join(re.escape(term) for term in WARNING_SIGN_TERMS) + r")\b",
            re.IGNORECASE,
        ),
        urgency=Urgency.CRITICAL,
        importance=0.95,
    ),
    PinRule(
        category="medication-change",
        pattern=re.compile(
            r"\b(started|stopped|increased|decreased|switched|reduced|changed)\b.*\b"
            + _MEDICATION_WORDS
            + r"\b|\b"
            + _MEDICATION_WORDS
            + r"\b.*\b(started|stopped|increased|decreased|switched|reduced|changed)\b",
            re.IGNORECASE,
        ),
        urgency=Urgency.HIGH,
        importance=0.85,
    ),
    PinRule(
        category="appointment",
        pattern=re.compile(
            r"\b(scheduled|booked|rescheduled|cancelled|canceled)\b.*\b(appointment|visit|checkup)\b"
            r"|\b(appointment|visit|checkup)\b.*\b(scheduled|booked|rescheduled|cancelled|canceled)\b",
            re.IGNORECASE,
        ),
        urgency=Urgency.NORMAL,
        importance=0.8,
    ),
]

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class PinCandidate:
    content: str
    category: str
    urgency: Urgency
    importance: float


class PinExtractor:
    """Extracts pin candidates from user turns with a fixed rule table."""

    def __init__(self, rules: Optional[List[PinRule]] = None, max_chars: int = 280):
        self.rules = rules if rules is not None else PIN_RULES
        self.max_chars = max_chars

    def extract(self, turn: Turn) -> List[PinCandidate]:
        """At most one candidate per rule; the content is the first matching sentence."""
        if turn.role != "user" or not turn.text.strip():
            return []

        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(turn.text.strip()) if s.strip()]
        candidates = []
        for rule in self.rules:
            for sentence in sentences:
                if rule.pattern.search(sentence):
                    candidates.append(
                        PinCandidate(
                            content=sentence[: self.max_chars],
                            category=rule.category,
                            urgency=rule.urgency,
                            importance=rule.importance,
                        )
                    )
                    break
        return candidates

    def extract_and_store(
        self, pin_store: PinStore, turn: Turn, subject_id: Optional[str] = None
    ) -> List[Pin]:
        """Extract candidates from a turn and persist them as pins."""
        pins = [
            pin_store.create_pin(
                turn.conversation_id,
                candidate.content,
                source_turn_id=turn.id,
                importance=candidate.importance,
                category=candidate.category,
                urgency=candidate.urgency,
                subject_id=subject_id,
            )
            for candidate in self.extract(turn)
        ]
        if pins:
            logger.info(f"Extracted {len(pins)} pins from turn {turn.id}")
        return pins
