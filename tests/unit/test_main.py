"""Unit tests for the interactive chat session."""

import io
from unittest.mock import AsyncMock, Mock

import pytest

from kalito_memory.core.engine import TurnOutcome, TurnStatus
from kalito_memory.main import ChatSession
from kalito_memory.models.memory import MemoryContext, QueryCategory


@pytest.fixture
def engine():
    engine = Mock()
    engine.handle_turn = AsyncMock(
        return_value=TurnOutcome(
            status=TurnStatus.ANSWERED, reply="Hello back", category=QueryCategory.GENERAL
        )
    )
    engine.wait_for_background = AsyncMock()
    engine.build_context = Mock(return_value=MemoryContext())
    engine.get_stats = Mock(return_value={"cache": {"hits": 0}})
    engine.create_pin = Mock(return_value=Mock(id="pin_abc"))
    return engine


class TestChatSession:
    """Test ChatSession command handling."""

    @pytest.mark.asyncio
    async def test_message_goes_to_engine(self, engine):
        output = io.StringIO()
        session = ChatSession(engine, "conv-1", model="llama3.2", output=output)

        assert await session.handle_line("Hello\n") is True

        engine.handle_turn.assert_awaited_once_with("conv-1", "Hello", model="llama3.2")
        assert "Hello back" in output.getvalue()

    @pytest.mark.asyncio
    async def test_retryable_failure_is_flagged(self, engine):
        engine.handle_turn.return_value = TurnOutcome(
            status=TurnStatus.FAILED,
            reply="Sorry",
            category=QueryCategory.GENERAL,
            retryable=True,
        )
        output = io.StringIO()

        await ChatSession(engine, "conv-1", output=output).handle_line("Hello")

        assert "you can retry" in output.getvalue()

    @pytest.mark.asyncio
    async def test_pin_command(self, engine):
        output = io.StringIO()
        await ChatSession(engine, "conv-1", output=output).handle_line("/pin Mom hates mornings")

        engine.create_pin.assert_called_once_with("conv-1", "Mom hates mornings", source_turn_id=None)
        assert "Pinned pin_abc" in output.getvalue()

    @pytest.mark.asyncio
    async def test_pin_without_text(self, engine):
        output = io.StringIO()
        await ChatSession(engine, "conv-1", output=output).handle_line("/pin")

        engine.create_pin.assert_not_called()
        assert "Usage" in output.getvalue()

    @pytest.mark.asyncio
    async def test_stats_and_context_commands(self, engine):
        output = io.StringIO()
        session = ChatSession(engine, "conv-1", output=output)

        await session.handle_line("/stats")
        await session.handle_line("/context")

        engine.get_stats.assert_called_once_with("conv-1")
        engine.build_context.assert_called_once_with("conv-1")
        assert '"total_tokens": 0' in output.getvalue()

    @pytest.mark.asyncio
    async def test_quit_and_unknown(self, engine):
        output = io.StringIO()
        session = ChatSession(engine, "conv-1", output=output)

        assert await session.handle_line("/nope") is True
        assert "Unknown command /nope" in output.getvalue()
        assert await session.handle_line("/quit") is False
        engine.handle_turn.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_until_eof(self, engine):
        output = io.StringIO()
        session = ChatSession(engine, "conv-1", output=output)

        await session.run(io.StringIO("Hello\n/quit\nignored\n"))

        engine.handle_turn.assert_awaited_once()
        engine.wait_for_background.assert_awaited_once()
