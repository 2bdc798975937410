"""Rolling buffer of recent turns, served through the conversation cache."""

import logging
from typing import List, Optional

from ..models.memory import Turn
from . import scoring
from .cache import ConversationCache
from .store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 8


class RollingBuffer:
    """Most recent N turns of a conversation.

    All turn writes go through :meth:`append`, which scores the turn, persists
    it and invalidates the conversation's cache entries before returning, so
    the next read always sees the write.
    """

    def __init__(
        self,
        store: RecordStore,
        cache: ConversationCache,
        size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.store = store
        self.cache = cache
        self.size = size

    def recent(self, conversation_id: str, limit: Optional[int] = None) -> List[Turn]:
        """Get the most recent turns, oldest first."""
        limit = self.size if limit is None else limit
        sub_key = f"recent:{limit}"
        cached = self.cache.get(conversation_id, sub_key)
        if cached is not None:
            return list(cached)

        turns = self.store.recent_turns(conversation_id, limit)
        self.cache.put(conversation_id, sub_key, tuple(turns))
        return turns

    def append(
        self,
        conversation_id: str,
        role: str,
        text: str,
        model_id: Optional[str] = None,
        token_cost: Optional[int] = None,
    ) -> Turn:
        """Persist a turn and invalidate the conversation's cached reads."""
        importance = scoring.score(role, text)
        turn = self.store.add_turn(
            conversation_id,
            role,
            text,
            importance,
            model_id=model_id,
            token_cost=token_cost,
        )
        self.cache.invalidate(conversation_id)
        logger.debug(
            f"Stored {role} turn {turn.id} for {conversation_id} (importance {importance:.2f})"
        )
        return turn
