"""Unit tests for message composition."""

from datetime import datetime

from kalito_memory.core.prompt import HISTORY_PREAMBLE, compose_messages
from kalito_memory.models.memory import MemoryContext, Pin, Summary
from tests.fixtures import make_turns


class TestComposeMessages:
    """Test compose_messages."""

    def test_empty_context(self):
        messages = compose_messages(MemoryContext(), "Hello")
        assert messages == [{"role": "user", "content": "Hello"}]

    def test_full_context_order(self):
        context = MemoryContext(
            recent_turns=make_turns(["How was the visit?", "It went well."]),
            pins=[Pin(id="p1", conversation_id="conv-1", content="Mom is allergic to penicillin")],
            summaries=[
                Summary(
                    id="s1",
                    conversation_id="conv-1",
                    text="Talked about sleep.",
                    turn_count=8,
                    first_turn_id=1,
                    last_turn_id=8,
                    created_at=datetime(2025, 1, 1),
                )
            ],
        )

        messages = compose_messages(
            context, "Anything else?", system_prompt="You are kind.", domain_context="## Records"
        )

        assert messages[0] == {"role": "system", "content": "You are kind.\n\n## Records"}
        assert messages[1] == {"role": "system", "content": HISTORY_PREAMBLE}
        assert messages[2]["content"] == "Previous conversation context: Talked about sleep."
        assert messages[3]["content"] == "Key information to remember: Mom is allergic to penicillin"
        assert messages[4] == {"role": "user", "content": "How was the visit?"}
        assert messages[5] == {"role": "assistant", "content": "It went well."}
        assert messages[-1] == {"role": "user", "content": "Anything else?"}

    def test_blank_system_parts_are_skipped(self):
        messages = compose_messages(MemoryContext(), "Hi", system_prompt="  ", domain_context="")
        assert all(m["role"] != "system" for m in messages)
