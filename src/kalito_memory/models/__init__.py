"""Data models for the Kalito memory engine."""

from .memory import (
    ConversationMeta,
    MemoryContext,
    MemoryStats,
    Pin,
    QueryCategory,
    Summary,
    Turn,
    Urgency,
)

__all__ = [
    "ConversationMeta",
    "MemoryContext",
    "MemoryStats",
    "Pin",
    "QueryCategory",
    "Summary",
    "Turn",
    "Urgency",
]
