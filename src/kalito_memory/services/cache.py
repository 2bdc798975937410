"""Short-lived per-conversation cache for turn reads."""

import logging
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0


class ConversationCache:
    """TTL cache keyed by (conversation_id, sub_key).

    Entries older than ``ttl_seconds`` are treated as absent. Expired entries
    are swept on access at most once per TTL interval, and ``invalidate``
    drops every entry belonging to a conversation.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, max_size: int = 256):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.cache: OrderedDict[Tuple[str, str], Dict[str, Any]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.invalidations = 0
        self._last_sweep = time.time()

    def get(self, conversation_id: str, sub_key: str) -> Optional[Any]:
        """Get a value if it exists and isn't expired."""
        self._maybe_sweep()
        key = (conversation_id, sub_key)
        entry = self.cache.get(key)
        if entry is None:
            self.misses += 1
            return None

        if time.time() - entry["timestamp"] >= self.ttl_seconds:
            del self.cache[key]
            self.misses += 1
            return None

        self.cache.move_to_end(key)
        self.hits += 1
        return entry["value"]

    def put(self, conversation_id: str, sub_key: str, value: Any) -> None:
        """Store a value, replacing any previous entry for the key."""
        key = (conversation_id, sub_key)
        if key in self.cache:
            del self.cache[key]
        elif len(self.cache) >= self.max_size:
            self.cache.popitem(last=False)

        self.cache[key] = {"value": value, "timestamp": time.time()}

    def invalidate(self, conversation_id: str) -> int:
        """Remove all entries for a conversation. Returns the number removed."""
        stale = [key for key in self.cache if key[0] == conversation_id]
        for key in stale:
            del self.cache[key]
        self.invalidations += 1
        if stale:
            logger.debug(f"Invalidated {len(stale)} cache entries for {conversation_id}")
        return len(stale)

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = time.time()
        expired = [
            key for key, entry in self.cache.items() if now - entry["timestamp"] >= self.ttl_seconds
        ]
        for key in expired:
            del self.cache[key]
        self._last_sweep = now
        return len(expired)

    def _maybe_sweep(self) -> None:
        if time.time() - self._last_sweep >= self.ttl_seconds:
            removed = self.sweep()
            if removed:
                logger.debug(f"Swept {removed} expired cache entries")

    def clear(self) -> None:
        """Clear all cache entries."""
        self.cache.clear()
        self.hits = 0
        self.misses = 0
        self.invalidations = 0

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self.hits + self.misses
        return {
            "size": len(self.cache),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
            "hit_rate": self.hits / total_requests if total_requests > 0 else 0,
            "ttl_seconds": self.ttl_seconds,
        }
