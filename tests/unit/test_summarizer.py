"""Unit tests for threshold-triggered summarization."""

import re
from unittest.mock import AsyncMock, Mock, patch

import pytest

from kalito_memory.manager import ModelManager
from kalito_memory.providers import (
    LLMProviderError,
    OpenAICompatibleProvider,
    ProviderNetworkError,
)
from kalito_memory.services.summarizer import (
    GENERAL_TOPIC,
    Summarizer,
    SummaryValidationConfig,
    extract_topics,
    fallback_summary,
    rejection_reason,
)
from tests.fixtures import create_mock_model_manager, make_response, make_turns

FALLBACK_PATTERN = re.compile(r"^Conversation with \d+ turns about: [a-z ,]+\.$")

THERAPY_TEXTS = [
    "I've been feeling anxious about my mother's medication schedule.",
    "That sounds stressful. What part of the schedule worries you most?",
    "She keeps missing the evening dose and I feel guilty when I'm not there.",
    "Missing doses is common. Have you talked with her doctor about reminders?",
    "Not yet, but I have an appointment with the doctor next week.",
    "That appointment is a good chance to ask about a pill organizer.",
    "I also haven't been sleeping well because of the worry.",
    "Sleep problems often follow stress. Let's talk about a wind-down routine.",
    "Thanks, I think a routine would help me cope.",
]


def _fill(store, conversation_id, texts):
    turns = []
    for i, text in enumerate(texts):
        role = "user" if i % 2 == 0 else "assistant"
        turns.append(store.add_turn(conversation_id, role, text, 0.5))
    return turns


class TestValidation:
    """Test summary rejection heuristics."""

    def test_accepts_grounded_summary(self):
        turns = make_turns(THERAPY_TEXTS[:8])
        summary = "User is anxious about their mother's medication schedule and missed doses."
        assert rejection_reason(summary, turns) is None

    def test_rejects_empty(self):
        assert rejection_reason("   ", make_turns(THERAPY_TEXTS)) == "empty summary"

    def test_rejects_preamble(self):
        turns = make_turns(THERAPY_TEXTS)
        reason = rejection_reason("Here's a summary: medication schedule worries.", turns)
        assert reason.startswith("invalid pattern")

    def test_rejects_code_fence(self):
        turns = make_turns(THERAPY_TEXTS)
        assert rejection_reason("```medication schedule```", turns).startswith("invalid pattern")

    def test_rejects_too_long_relative_to_source(self):
        turns = make_turns(["short chat", "ok"])
        reason = rejection_reason("short chat about many many other unrelated things", turns)
        assert reason.startswith("length ratio too high")

    def test_rejects_over_max_chars(self):
        turns = make_turns(["word " * 400])
        assert rejection_reason("word " * 120, turns).startswith("too long")

    def test_rejects_unrelated_content(self):
        turns = make_turns(THERAPY_TEXTS)
        reason = rejection_reason("Dragons circled above castles while knights slumbered.", turns)
        assert reason.startswith("low word overlap")

    def test_thresholds_are_configurable(self):
        turns = make_turns(["short chat", "ok"])
        lenient = SummaryValidationConfig(max_length_ratio=10.0)
        assert rejection_reason("short chat happened", turns, lenient) is None


class TestFallback:
    """Test the deterministic fallback summary."""

    def test_topics_follow_vocabulary_order(self):
        turns = make_turns(["My mom needs help with her medication and I'm anxious."])
        assert extract_topics(turns) == [
            "anxiety",
            "medication management",
            "mother care",
            "seeking help",
        ]

    def test_only_user_turns_are_tagged(self):
        turns = make_turns(["hello", "Let's talk about your medication."])
        assert extract_topics(turns) == []

    def test_general_topic_when_nothing_matches(self):
        text = fallback_summary(make_turns(["hello", "hi", "bye"]))
        assert text == f"Conversation with 3 turns about: {GENERAL_TOPIC}."

    def test_template(self):
        text = fallback_summary(make_turns(THERAPY_TEXTS[:8]))
        assert FALLBACK_PATTERN.match(text)
        assert text.startswith("Conversation with 8 turns about: ")


class TestSummarizer:
    """Test Summarizer."""

    def test_threshold_must_be_positive(self, store):
        with pytest.raises(ValueError):
            Summarizer(store, None, threshold=0)

    @pytest.mark.asyncio
    async def test_below_threshold_does_nothing(self, store):
        manager = create_mock_model_manager()
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:7])

        assert await summarizer.maybe_summarize("conv-1") is None
        manager.invoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_nine_turns_produce_one_summary_of_first_eight(self, store):
        summary_text = "User is anxious about their mother's medication schedule and sleep."
        manager = create_mock_model_manager(content=summary_text)
        summarizer = Summarizer(store, manager, threshold=8)
        turns = _fill(store, "conv-1", THERAPY_TEXTS)

        summary = await summarizer.maybe_summarize("conv-1")

        assert summary.text == summary_text
        assert summary.turn_count == 8
        assert summary.first_turn_id == turns[0].id
        assert summary.last_turn_id == turns[7].id
        assert store.recent_summaries("conv-1", 5) == [summary]
        assert summarizer.unsummarized_turns("conv-1") == [turns[8]]
        assert await summarizer.maybe_summarize("conv-1") is None

    @pytest.mark.asyncio
    async def test_network_timeout_uses_fallback(self, store):
        manager = create_mock_model_manager()
        manager.invoke = AsyncMock(side_effect=ProviderNetworkError("timed out"))
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        summary = await summarizer.maybe_summarize("conv-1")

        assert FALLBACK_PATTERN.match(summary.text)
        assert summary.text == fallback_summary(store.recent_turns("conv-1", 8))
        assert summarizer.fallback_summaries == 1

    @pytest.mark.asyncio
    async def test_provider_error_uses_fallback(self, store):
        manager = create_mock_model_manager()
        manager.invoke = AsyncMock(side_effect=LLMProviderError("bad request"))
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        summary = await summarizer.maybe_summarize("conv-1")

        assert FALLBACK_PATTERN.match(summary.text)

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_fallback(self, store):
        manager = create_mock_model_manager()
        manager.invoke = AsyncMock(side_effect=IndexError("list index out of range"))
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        summary = await summarizer.maybe_summarize("conv-1")

        assert FALLBACK_PATTERN.match(summary.text)
        assert store.recent_summaries("conv-1", 5) == [summary]
        assert summarizer.fallback_summaries == 1

    @pytest.mark.asyncio
    @patch("kalito_memory.providers.openai_compat.AsyncOpenAI")
    async def test_empty_completion_from_provider_uses_fallback(self, mock_openai_class, store):
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=Mock(choices=[], usage=None))
        mock_openai_class.return_value = client
        manager = ModelManager(OpenAICompatibleProvider(api_key="test-key"))
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        summary = await summarizer.maybe_summarize("conv-1")

        assert FALLBACK_PATTERN.match(summary.text)
        assert len(store.recent_summaries("conv-1", 5)) == 1
        assert manager.failed_calls == 1

    @pytest.mark.asyncio
    async def test_rejected_output_uses_fallback(self, store):
        manager = create_mock_model_manager(content="Here's a story about a brave knight.")
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        summary = await summarizer.maybe_summarize("conv-1")

        assert FALLBACK_PATTERN.match(summary.text)
        assert summarizer.get_stats()["fallback_summaries"] == 1
        assert summarizer.get_stats()["model_summaries"] == 0

    @pytest.mark.asyncio
    async def test_local_model_gets_terse_prompt(self, store):
        manager = create_mock_model_manager(
            content="User discussed medication schedule worries.", local_models=["llama3.2"]
        )
        store.ensure_conversation("conv-1", preferred_model="llama3.2")
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        await summarizer.maybe_summarize("conv-1")

        messages, settings = manager.invoke.call_args.args
        assert settings.model == "llama3.2"
        assert settings.max_tokens == 100
        assert settings.temperature == 0.1
        assert messages[0]["content"].startswith("TASK:")

    @pytest.mark.asyncio
    async def test_cloud_model_prompt(self, store):
        manager = create_mock_model_manager(content="User discussed medication schedule worries.")
        summarizer = Summarizer(store, manager, threshold=8)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        await summarizer.maybe_summarize("conv-1")

        messages, settings = manager.invoke.call_args.args
        assert settings.model == "test-summary-model"
        assert settings.max_tokens == 300

    @pytest.mark.asyncio
    async def test_ranges_do_not_overlap(self, store):
        manager = create_mock_model_manager(content="unused")
        manager.invoke = AsyncMock(return_value=make_response("Here's nothing useful"))
        summarizer = Summarizer(store, manager, threshold=4)
        _fill(store, "conv-1", THERAPY_TEXTS[:8])

        first = await summarizer.maybe_summarize("conv-1")
        second = await summarizer.maybe_summarize("conv-1")

        assert second.first_turn_id == first.last_turn_id + 1
        assert await summarizer.maybe_summarize("conv-1") is None

    @pytest.mark.asyncio
    async def test_without_model_manager(self, store):
        summarizer = Summarizer(store, None, threshold=2)
        _fill(store, "conv-1", ["hello", "hi"])

        summary = await summarizer.maybe_summarize("conv-1")

        assert summary.text == f"Conversation with 2 turns about: {GENERAL_TOPIC}."

    @pytest.mark.asyncio
    async def test_create_summary_rejects_empty_block(self, store):
        with pytest.raises(ValueError):
            await Summarizer(store, None).create_summary("conv-1", [])
