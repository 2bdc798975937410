"""Memory-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

ROLES = ("user", "assistant")

DEFAULT_SUMMARY_IMPORTANCE = 0.7
DEFAULT_PIN_IMPORTANCE = 0.8


class Urgency(str, Enum):
    """Urgency tag for pins, ordered normal < high < critical."""

    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


_URGENCY_RANK = {Urgency.NORMAL: 0, Urgency.HIGH: 1, Urgency.CRITICAL: 2}


class QueryCategory(str, Enum):
    """What an operator query is asking for."""

    MEDICATIONS = "medications"
    APPOINTMENTS = "appointments"
    GENERAL = "general"

    @property
    def is_fact_lookup(self) -> bool:
        return self is not QueryCategory.GENERAL


@dataclass(frozen=True)
class Turn:
    """Represents a single persisted turn in a conversation."""

    id: int
    conversation_id: str
    role: str  # "user" or "assistant"
    text: str
    importance: float
    created_at: datetime = field(default_factory=datetime.now)
    model_id: Optional[str] = None
    token_cost: Optional[int] = None


@dataclass(frozen=True)
class Summary:
    """Compressed replacement for a contiguous block of turns."""

    id: str
    conversation_id: str
    text: str
    turn_count: int
    first_turn_id: int
    last_turn_id: int
    importance: float = DEFAULT_SUMMARY_IMPORTANCE
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Pin:
    """A short fact retained independently of turn-count decay."""

    id: str
    conversation_id: str
    content: str
    importance: float = DEFAULT_PIN_IMPORTANCE
    category: str = "manual"
    urgency: Urgency = Urgency.NORMAL
    source_turn_id: Optional[int] = None
    subject_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class ConversationMeta:
    """Per-conversation metadata kept alongside the turn log."""

    conversation_id: str
    default_subject_id: Optional[str] = None
    preferred_model: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class MemoryContext:
    """The bounded aggregate handed to one model call."""

    recent_turns: List[Turn] = field(default_factory=list)
    pins: List[Pin] = field(default_factory=list)
    summaries: List[Summary] = field(default_factory=list)
    total_tokens: int = 0

    def is_empty(self) -> bool:
        return not (self.recent_turns or self.pins or self.summaries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recent_turns": [
                {"id": t.id, "role": t.role, "text": t.text, "importance": t.importance}
                for t in self.recent_turns
            ],
            "pins": [
                {
                    "id": p.id,
                    "content": p.content,
                    "importance": p.importance,
                    "urgency": p.urgency.value,
                    "category": p.category,
                }
                for p in self.pins
            ],
            "summaries": [
                {"id": s.id, "text": s.text, "turn_count": s.turn_count} for s in self.summaries
            ],
            "total_tokens": self.total_tokens,
        }


@dataclass
class MemoryStats:
    """Aggregate statistics for one conversation."""

    total_turns: int
    total_summaries: int
    total_pins: int
    oldest_turn: Optional[datetime] = None
    newest_turn: Optional[datetime] = None
    average_importance: float = 0.0
