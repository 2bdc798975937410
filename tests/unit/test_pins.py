"""Unit tests for pin creation, ranking and extraction."""

from datetime import datetime, timedelta

import pytest

from kalito_memory.models.memory import Pin, Turn, Urgency
from kalito_memory.services.pins import PinExtractor, rank_key


def _user_turn(text, turn_id=1):
    return Turn(id=turn_id, conversation_id="conv-1", role="user", text=text, importance=0.5)


class TestPinStore:
    """Test PinStore."""

    def test_create_pin_defaults(self, pin_store, store):
        pin = pin_store.create_pin("conv-1", "  Mom prefers morning visits  ")

        assert pin.id.startswith("pin_")
        assert pin.content == "Mom prefers morning visits"
        assert pin.importance == 0.8
        assert pin.urgency is Urgency.NORMAL
        assert store.list_pins("conv-1") == [pin]

    def test_empty_content_rejected(self, pin_store):
        with pytest.raises(ValueError, match="must not be empty"):
            pin_store.create_pin("conv-1", "   ")

    @pytest.mark.parametrize("importance", [-0.1, 1.5])
    def test_importance_out_of_range(self, pin_store, importance):
        with pytest.raises(ValueError, match="within"):
            pin_store.create_pin("conv-1", "fact", importance=importance)

    def test_list_top_pins_orders_by_importance_then_urgency(self, pin_store):
        low = pin_store.create_pin("conv-1", "low", importance=0.5)
        high_normal = pin_store.create_pin("conv-1", "high normal", importance=0.9)
        high_critical = pin_store.create_pin(
            "conv-1", "high critical", importance=0.9, urgency=Urgency.CRITICAL
        )

        top = pin_store.list_top_pins("conv-1", limit=3)

        assert top == [high_critical, high_normal, low]

    def test_list_top_pins_limit(self, pin_store):
        for i in range(7):
            pin_store.create_pin("conv-1", f"fact {i}")

        assert len(pin_store.list_top_pins("conv-1", limit=5)) == 5
        assert pin_store.list_top_pins("conv-1", limit=0) == []

    def test_rank_key_prefers_recent_on_tie(self):
        now = datetime.now()
        older = Pin(id="a", conversation_id="c", content="x", created_at=now - timedelta(hours=1))
        newer = Pin(id="b", conversation_id="c", content="y", created_at=now)

        assert rank_key(newer) > rank_key(older)


class TestPinExtractor:
    """Test rule-based extraction."""

    def test_crisis_sentence_becomes_critical_pin(self):
        candidates = PinExtractor().extract(
            _user_turn("Work was fine. I feel like this is an emergency and I can't cope.")
        )

        assert len(candidates) == 1
        assert candidates[0].category == "warning-sign"
        assert candidates[0].urgency is Urgency.CRITICAL
        assert candidates[0].content == "I feel like this is an emergency and I can't cope."

    def test_medication_change(self):
        candidates = PinExtractor().extract(
            _user_turn("The doctor increased her dose of sertraline last week.")
        )

        assert [c.category for c in candidates] == ["medication-change"]
        assert candidates[0].urgency is Urgency.HIGH
        assert candidates[0].importance == 0.85

    def test_appointment_scheduled(self):
        candidates = PinExtractor().extract(
            _user_turn("We booked a cardiology appointment for Tuesday.")
        )

        assert [c.category for c in candidates] == ["appointment"]

    def test_assistant_turns_are_ignored(self):
        turn = Turn(
            id=2, conversation_id="conv-1", role="assistant", text="This is an emergency.",
            importance=0.5,
        )
        assert PinExtractor().extract(turn) == []

    def test_plain_text_has_no_candidates(self):
        assert PinExtractor().extract(_user_turn("We had a nice walk today.")) == []

    def test_routine_requests_are_not_warning_signs(self):
        extractor = PinExtractor()

        assert extractor.extract(_user_turn("Can you help me book an appointment?")) == []
        assert extractor.extract(_user_turn("It's urgent that I call the pharmacy.")) == []
        assert extractor.extract(_user_turn("The emergencyroom sign was broken.")) == []

    def test_content_is_truncated(self):
        candidates = PinExtractor(max_chars=20).extract(_user_turn("Emergency " + "x" * 100))
        assert len(candidates[0].content) == 20

    def test_extract_and_store(self, pin_store, store):
        pins = PinExtractor().extract_and_store(
            pin_store, _user_turn("They stopped the medication yesterday.", turn_id=7), "aurora"
        )

        assert len(pins) == 1
        assert pins[0].source_turn_id == 7
        assert pins[0].subject_id == "aurora"
        assert store.list_pins("conv-1") == pins
