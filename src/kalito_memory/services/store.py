"""Record store contract and in-memory implementation.

The store persists turns, summaries, pins and per-conversation metadata.
Writes are append-only; reads come back ordered by creation. Deleting a
conversation cascades to everything recorded for it.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from ..models.memory import ROLES, ConversationMeta, MemoryStats, Pin, Summary, Turn

logger = logging.getLogger(__name__)


def validate_role(role: str) -> None:
    if role not in ROLES:
        raise ValueError(f"Unknown role '{role}', expected one of {ROLES}")


class RecordStore(ABC):
    """Abstract persisted storage for conversation memory."""

    @abstractmethod
    def ensure_conversation(
        self, conversation_id: str, preferred_model: Optional[str] = None
    ) -> ConversationMeta:
        """Return the conversation's metadata, creating it if needed."""
        ...

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Optional[ConversationMeta]:
        ...

    @abstractmethod
    def set_default_subject(self, conversation_id: str, subject_id: Optional[str]) -> None:
        ...

    @abstractmethod
    def set_preferred_model(self, conversation_id: str, model_id: Optional[str]) -> None:
        ...

    @abstractmethod
    def add_turn(
        self,
        conversation_id: str,
        role: str,
        text: str,
        importance: float,
        model_id: Optional[str] = None,
        token_cost: Optional[int] = None,
    ) -> Turn:
        """Append a turn and return it with its assigned id."""
        ...

    @abstractmethod
    def recent_turns(self, conversation_id: str, limit: int) -> List[Turn]:
        """Return up to ``limit`` most recent turns, oldest first."""
        ...

    @abstractmethod
    def turns_after(self, conversation_id: str, after_turn_id: Optional[int]) -> List[Turn]:
        """Return every turn with an id greater than ``after_turn_id``, oldest first."""
        ...

    @abstractmethod
    def count_turns(self, conversation_id: str) -> int:
        ...

    @abstractmethod
    def add_summary(self, summary: Summary) -> None:
        ...

    @abstractmethod
    def recent_summaries(self, conversation_id: str, limit: int) -> List[Summary]:
        """Return up to ``limit`` most recent summaries, oldest first."""
        ...

    @abstractmethod
    def last_summary(self, conversation_id: str) -> Optional[Summary]:
        ...

    @abstractmethod
    def add_pin(self, pin: Pin) -> None:
        ...

    @abstractmethod
    def list_pins(self, conversation_id: str) -> List[Pin]:
        ...

    @abstractmethod
    def stats(self, conversation_id: str) -> MemoryStats:
        ...

    @abstractmethod
    def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation together with its turns, summaries and pins."""
        ...


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed store for tests and ephemeral sessions."""

    def __init__(self):
        self.conversations: Dict[str, ConversationMeta] = {}
        self.turns: Dict[str, List[Turn]] = {}
        self.summaries: Dict[str, List[Summary]] = {}
        self.pins: Dict[str, List[Pin]] = {}
        self._turn_ids = itertools.count(1)

    def ensure_conversation(
        self, conversation_id: str, preferred_model: Optional[str] = None
    ) -> ConversationMeta:
        meta = self.conversations.get(conversation_id)
        if meta is None:
            meta = ConversationMeta(conversation_id=conversation_id, preferred_model=preferred_model)
            self.conversations[conversation_id] = meta
            logger.info(f"Created conversation {conversation_id}")
        elif preferred_model and not meta.preferred_model:
            meta.preferred_model = preferred_model
        return meta

    def get_conversation(self, conversation_id: str) -> Optional[ConversationMeta]:
        return self.conversations.get(conversation_id)

    def set_default_subject(self, conversation_id: str, subject_id: Optional[str]) -> None:
        self.ensure_conversation(conversation_id).default_subject_id = subject_id

    def set_preferred_model(self, conversation_id: str, model_id: Optional[str]) -> None:
        self.ensure_conversation(conversation_id).preferred_model = model_id

    def add_turn(
        self,
        conversation_id: str,
        role: str,
        text: str,
        importance: float,
        model_id: Optional[str] = None,
        token_cost: Optional[int] = None,
    ) -> Turn:
        validate_role(role)
        self.ensure_conversation(conversation_id)
        turn = Turn(
            id=next(self._turn_ids),
            conversation_id=conversation_id,
            role=role,
            text=text,
            importance=importance,
            created_at=datetime.now(),
            model_id=model_id,
            token_cost=token_cost,
        )
        self.turns.setdefault(conversation_id, []).append(turn)
        return turn

    def recent_turns(self, conversation_id: str, limit: int) -> List[Turn]:
        if limit <= 0:
            return []
        return list(self.turns.get(conversation_id, [])[-limit:])

    def turns_after(self, conversation_id: str, after_turn_id: Optional[int]) -> List[Turn]:
        turns = self.turns.get(conversation_id, [])
        if after_turn_id is None:
            return list(turns)
        return [t for t in turns if t.id > after_turn_id]

    def count_turns(self, conversation_id: str) -> int:
        return len(self.turns.get(conversation_id, []))

    def add_summary(self, summary: Summary) -> None:
        self.summaries.setdefault(summary.conversation_id, []).append(summary)

    def recent_summaries(self, conversation_id: str, limit: int) -> List[Summary]:
        if limit <= 0:
            return []
        return list(self.summaries.get(conversation_id, [])[-limit:])

    def last_summary(self, conversation_id: str) -> Optional[Summary]:
        summaries = self.summaries.get(conversation_id)
        if not summaries:
            return None
        return max(summaries, key=lambda s: s.last_turn_id)

    def add_pin(self, pin: Pin) -> None:
        self.pins.setdefault(pin.conversation_id, []).append(pin)

    def list_pins(self, conversation_id: str) -> List[Pin]:
        return list(self.pins.get(conversation_id, []))

    def stats(self, conversation_id: str) -> MemoryStats:
        turns = self.turns.get(conversation_id, [])
        return MemoryStats(
            total_turns=len(turns),
            total_summaries=len(self.summaries.get(conversation_id, [])),
            total_pins=len(self.pins.get(conversation_id, [])),
            oldest_turn=turns[0].created_at if turns else None,
            newest_turn=turns[-1].created_at if turns else None,
            average_importance=(sum(t.importance for t in turns) / len(turns)) if turns else 0.0,
        )

    def delete_conversation(self, conversation_id: str) -> None:
        self.conversations.pop(conversation_id, None)
        self.turns.pop(conversation_id, None)
        self.summaries.pop(conversation_id, None)
        self.pins.pop(conversation_id, None)
        logger.info(f"Deleted conversation {conversation_id}")
