"""Unit tests for the rolling buffer."""

from unittest.mock import patch

from kalito_memory.services import scoring


class TestRollingBuffer:
    """Test reads through the cache and write-path invalidation."""

    def test_append_scores_and_persists(self, buffer, store):
        turn = buffer.append("conv-1", "user", "What medications am I on?")

        assert turn.importance == scoring.score("user", "What medications am I on?")
        assert store.count_turns("conv-1") == 1

    def test_recent_is_served_from_cache(self, buffer, store):
        buffer.append("conv-1", "user", "hello")
        first = buffer.recent("conv-1")

        with patch.object(store, "recent_turns", wraps=store.recent_turns) as spy:
            second = buffer.recent("conv-1")
            spy.assert_not_called()

        assert first == second

    def test_write_invalidates_cached_reads(self, buffer):
        buffer.append("conv-1", "user", "one")
        assert [t.text for t in buffer.recent("conv-1")] == ["one"]

        buffer.append("conv-1", "assistant", "two")

        assert [t.text for t in buffer.recent("conv-1")] == ["one", "two"]

    def test_recent_respects_size(self, buffer):
        for i in range(12):
            buffer.append("conv-1", "user", f"turn {i}")

        recent = buffer.recent("conv-1")

        assert len(recent) == 8
        assert recent[0].text == "turn 4"
        assert recent[-1].text == "turn 11"

    def test_explicit_limit(self, buffer):
        for i in range(5):
            buffer.append("conv-1", "user", f"turn {i}")

        assert [t.text for t in buffer.recent("conv-1", 2)] == ["turn 3", "turn 4"]

    def test_cached_list_is_not_shared(self, buffer):
        buffer.append("conv-1", "user", "hello")
        recent = buffer.recent("conv-1")
        recent.clear()

        assert len(buffer.recent("conv-1")) == 1
