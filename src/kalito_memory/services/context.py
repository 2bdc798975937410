"""Token-budgeted context assembly."""

import logging
import math
from typing import Iterable, List

from ..models.memory import MemoryContext, Pin, Summary, Turn
from .buffer import RollingBuffer
from .pins import PinStore
from .store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_BUDGET = 3000
TOKENS_PER_CHAR = 0.75
MIN_RECENT_TURNS = 3


def estimate_tokens(text: str) -> int:
    """Rough token cost of a piece of text."""
    return math.ceil(len(text) * TOKENS_PER_CHAR)


def _total(turns: Iterable[Turn], pins: Iterable[Pin], summaries: Iterable[Summary]) -> int:
    """One estimate over the combined text of every item."""
    texts = [t.text for t in turns] + [p.content for p in pins] + [s.text for s in summaries]
    return estimate_tokens("".join(texts))


class ContextAssembler:
    """Builds the MemoryContext for a model call.

    ``build_context`` only reads history that is already persisted. Call it
    before storing the inbound user turn, otherwise that turn shows up as
    its own history.
    """

    def __init__(
        self,
        store: RecordStore,
        buffer: RollingBuffer,
        pin_store: PinStore,
        recent_limit: int = 8,
        pin_limit: int = 5,
        summary_limit: int = 3,
        min_recent_turns: int = MIN_RECENT_TURNS,
    ):
        self.store = store
        self.buffer = buffer
        self.pin_store = pin_store
        self.recent_limit = recent_limit
        self.pin_limit = pin_limit
        self.summary_limit = summary_limit
        self.min_recent_turns = min_recent_turns

    def build_context(
        self, conversation_id: str, token_budget: int = DEFAULT_TOKEN_BUDGET
    ) -> MemoryContext:
        """Assemble recent turns, top pins and recent summaries within a budget.

        Never raises on an over-budget conversation; truncation always
        resolves it, keeping at least ``min_recent_turns`` turns.
        """
        turns = self.buffer.recent(conversation_id, self.recent_limit)
        pins = self.pin_store.list_top_pins(conversation_id, self.pin_limit)
        summaries = self.store.recent_summaries(conversation_id, self.summary_limit)

        total = _total(turns, pins, summaries)
        if total <= token_budget:
            return MemoryContext(
                recent_turns=turns, pins=pins, summaries=summaries, total_tokens=total
            )

        context = self.truncate(turns, pins, summaries, token_budget)
        logger.info(
            f"Context for {conversation_id} truncated from {total} to {context.total_tokens} "
            f"tokens (budget {token_budget})"
        )
        return context

    def truncate(
        self,
        turns: List[Turn],
        pins: List[Pin],
        summaries: List[Summary],
        token_budget: int,
    ) -> MemoryContext:
        """Drop content until the estimate fits the budget.

        Order: lowest-ranked pins, then oldest summaries, then turns older
        than the protected floor. The floor of most recent turns is never
        dropped.
        """
        turns = list(turns)
        pins = list(pins)  # ranked best first
        summaries = list(summaries)  # oldest first
        total = _total(turns, pins, summaries)

        while total > token_budget and pins:
            pins.pop()
            total = _total(turns, pins, summaries)

        while total > token_budget and summaries:
            summaries.pop(0)
            total = _total(turns, pins, summaries)

        floor = min(self.min_recent_turns, len(turns))
        while total > token_budget and len(turns) > floor:
            turns.pop(0)
            total = _total(turns, pins, summaries)

        return MemoryContext(recent_turns=turns, pins=pins, summaries=summaries, total_tokens=total)
