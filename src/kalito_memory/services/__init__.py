"""Service components for the Kalito memory engine."""

from .buffer import RollingBuffer
from .cache import ConversationCache
from .context import ContextAssembler, estimate_tokens
from .pins import PinExtractor, PinStore
from .sqlite_store import SQLiteRecordStore
from .store import InMemoryRecordStore, RecordStore
from .summarizer import Summarizer, SummaryValidationConfig

__all__ = [
    "ContextAssembler",
    "ConversationCache",
    "InMemoryRecordStore",
    "PinExtractor",
    "PinStore",
    "RecordStore",
    "RollingBuffer",
    "SQLiteRecordStore",
    "Summarizer",
    "SummaryValidationConfig",
    "estimate_tokens",
]
