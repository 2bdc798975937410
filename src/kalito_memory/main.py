"""
Interactive entry point: a terminal chat over the memory engine.
"""

import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import IO, Optional

from .config import Settings
from .core.engine import MemoryEngine, TurnStatus

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /pin <text>   pin a fact to this conversation
  /stats        show engine statistics
  /context      show the context the next reply would see
  /quit         exit"""


class ChatSession:
    """Line-oriented chat loop for one conversation."""

    def __init__(
        self,
        engine: MemoryEngine,
        conversation_id: str,
        model: Optional[str] = None,
        output: IO[str] = sys.stdout,
    ):
        self.engine = engine
        self.conversation_id = conversation_id
        self.model = model
        self.output = output
        self.last_user_turn_id: Optional[int] = None

    def _print(self, text: str) -> None:
        self.output.write(text + "\n")
        self.output.flush()

    async def handle_line(self, line: str) -> bool:
        """Handle one line of input. Returns False when the session should end."""
        line = line.strip()
        if not line:
            return True

        if line in ("/quit", "/exit"):
            return False
        if line == "/help":
            self._print(HELP_TEXT)
        elif line.startswith("/pin"):
            content = line[len("/pin") :].strip()
            if not content:
                self._print("Usage: /pin <text>")
            else:
                pin = self.engine.create_pin(
                    self.conversation_id, content, source_turn_id=self.last_user_turn_id
                )
                self._print(f"Pinned {pin.id}")
        elif line == "/stats":
            self._print(json.dumps(self.engine.get_stats(self.conversation_id), indent=2, default=str))
        elif line == "/context":
            context = self.engine.build_context(self.conversation_id)
            self._print(json.dumps(context.to_dict(), indent=2))
        elif line.startswith("/"):
            self._print(f"Unknown command {line.split()[0]}. Type /help for commands.")
        else:
            outcome = await self.engine.handle_turn(self.conversation_id, line, model=self.model)
            if outcome.user_turn_id is not None:
                self.last_user_turn_id = outcome.user_turn_id
            if outcome.status is TurnStatus.FAILED and outcome.retryable:
                self._print(f"{outcome.reply} (temporary failure, you can retry)")
            else:
                self._print(outcome.reply)
        return True

    async def run(self, input_stream: IO[str] = sys.stdin) -> None:
        loop = asyncio.get_running_loop()
        self._print(f"Conversation {self.conversation_id}. Type /help for commands.")
        while True:
            self.output.write("> ")
            self.output.flush()
            line = await loop.run_in_executor(None, input_stream.readline)
            if not line:
                break
            if not await self.handle_line(line):
                break
        await self.engine.wait_for_background()


def setup_logging(debug: bool = False) -> str:
    """Log to stderr and a rotating file. Returns the log file path."""
    log_dir = os.path.expanduser("~/.kalito-memory/logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "kalito-memory.log")

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        RotatingFileHandler(
            log_file,
            mode="a",
            encoding="utf-8",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        ),
    ]

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )
    return log_file


async def run_chat(settings: Settings, conversation_id: str) -> None:
    engine = MemoryEngine.from_settings(settings)
    try:
        await ChatSession(engine, conversation_id).run()
    finally:
        close = getattr(engine.store, "close", None)
        if close is not None:
            close()


def main():
    """Main entry point."""
    settings = Settings.from_env()
    log_file = setup_logging(settings.debug)
    logger.info(f"Logging to file: {log_file}")

    conversation_id = sys.argv[1] if len(sys.argv) > 1 else "default"

    try:
        asyncio.run(run_chat(settings, conversation_id))
    except KeyboardInterrupt:
        logger.info("Chat stopped by user")
    except Exception as e:
        logger.error(f"Chat error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
