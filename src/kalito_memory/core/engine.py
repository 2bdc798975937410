"""Per-turn orchestration of the hybrid memory engine."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..domain.ground_truth import GroundTruthResponder
from ..domain.records import DomainRecordProvider, InMemoryDomainRecords
from ..manager import ModelManager
from ..models.memory import MemoryContext, Pin, QueryCategory, Summary, Turn, Urgency
from ..providers import GenerationSettings, LLMProviderError
from ..services.buffer import RollingBuffer
from ..services.cache import ConversationCache
from ..services.context import DEFAULT_TOKEN_BUDGET, ContextAssembler
from ..services.pins import PinExtractor, PinStore
from ..services.sqlite_store import SQLiteRecordStore
from ..services.store import RecordStore
from ..services.summarizer import DEFAULT_THRESHOLD, Summarizer, SummaryValidationConfig
from .prompt import compose_messages
from .router import QueryClassifier, SubjectResolver

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I couldn't generate a response right now. Please try again in a moment."


class TurnStatus(str, Enum):
    ANSWERED = "answered"
    GROUND_TRUTH = "ground_truth"
    NEEDS_CLARIFICATION = "needs_clarification"
    FAILED = "failed"


@dataclass
class TurnOutcome:
    """Result of handling one inbound user message."""

    status: TurnStatus
    reply: str
    category: QueryCategory
    subject_id: Optional[str] = None
    model_id: Optional[str] = None
    retryable: bool = False
    user_turn_id: Optional[int] = None
    assistant_turn_id: Optional[int] = None
    pins: List[Pin] = field(default_factory=list)
    summary_task: Optional["asyncio.Task[Optional[Summary]]"] = None

    @property
    def ok(self) -> bool:
        return self.status is not TurnStatus.FAILED


class MemoryEngine:
    """Answers user turns with bounded, persisted conversation memory.

    Turns within one conversation are strictly sequenced. Summarization
    runs in the background after a reply has been persisted.
    """

    def __init__(
        self,
        store: RecordStore,
        model_manager: ModelManager,
        domain: Optional[DomainRecordProvider] = None,
        cache: Optional[ConversationCache] = None,
        summary_threshold: int = DEFAULT_THRESHOLD,
        token_budget: int = DEFAULT_TOKEN_BUDGET,
        recent_turns: int = 8,
        pin_limit: int = 5,
        summary_limit: int = 3,
        auto_pins: bool = True,
        validation: Optional[SummaryValidationConfig] = None,
    ):
        self.store = store
        self.model_manager = model_manager
        self.domain = domain
        self.cache = cache or ConversationCache()
        self.token_budget = token_budget

        self.buffer = RollingBuffer(store, self.cache, size=recent_turns)
        self.pin_store = PinStore(store)
        self.pin_extractor = PinExtractor() if auto_pins else None
        self.summarizer = Summarizer(
            store, model_manager, threshold=summary_threshold, validation=validation
        )
        self.assembler = ContextAssembler(
            store,
            self.buffer,
            self.pin_store,
            recent_limit=recent_turns,
            pin_limit=pin_limit,
            summary_limit=summary_limit,
        )
        self.classifier = QueryClassifier()
        self.resolver = SubjectResolver(store, domain)
        self.responder = GroundTruthResponder(domain) if domain is not None else None

        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "MemoryEngine":
        """Build an engine backed by SQLite and the configured providers."""
        domain = None
        if settings.domain_file:
            domain = InMemoryDomainRecords.from_json_file(settings.domain_file)
        return cls(
            store=SQLiteRecordStore(settings.resolved_db_path),
            model_manager=ModelManager.from_settings(settings),
            domain=domain,
            cache=ConversationCache(ttl_seconds=settings.cache_ttl),
            summary_threshold=settings.summary_threshold,
            token_budget=settings.token_budget,
            recent_turns=settings.recent_turns,
            pin_limit=settings.pin_limit,
            summary_limit=settings.summary_limit,
            auto_pins=settings.auto_pins,
        )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def handle_turn(
        self,
        conversation_id: str,
        text: str,
        model: Optional[str] = None,
        system_prompt: str = "",
    ) -> TurnOutcome:
        """Answer one user message.

        Fact-lookup queries are answered from the domain records without a
        model call, or get a clarifying question when the subject cannot be
        matched to a record. Everything else goes to the model with the
        assembled memory context. A failed model call persists nothing.

        Raises:
            ValueError: If ``text`` is empty.
        """
        if not text or not text.strip():
            raise ValueError("Cannot handle an empty user message")

        async with self._lock_for(conversation_id):
            meta = self.store.ensure_conversation(conversation_id, preferred_model=model)
            category = self.classifier.classify(text)
            subject_id = self.resolver.resolve_subject(text, conversation_id)

            explicit = self.resolver.explicit_subject(text)
            if explicit and explicit != meta.default_subject_id:
                self.store.set_default_subject(conversation_id, explicit)
                logger.info(f"{conversation_id}: focus moved to subject {explicit}")

            if self.responder is not None and self.responder.supports(category):
                answer = None
                if subject_id is not None:
                    answer = self.responder.answer(category, subject_id)
                if answer is None:
                    # Record facts are never phrased by the model
                    logger.info(f"{conversation_id}: no records for subject {subject_id}, asking")
                    reply = self._clarification(category)
                    return self._persist(
                        conversation_id, text, reply, TurnStatus.NEEDS_CLARIFICATION, category
                    )
                logger.info(
                    f"{conversation_id}: answered {category.value} lookup for "
                    f"{subject_id} from records"
                )
                return self._persist(
                    conversation_id,
                    text,
                    answer,
                    TurnStatus.GROUND_TRUTH,
                    category,
                    subject_id=subject_id,
                )

            # Context is built from persisted history before this turn is stored
            context = self.assembler.build_context(conversation_id, self.token_budget)
            domain_text = self.domain.context_text(subject_id) if self.domain else ""
            messages = compose_messages(context, text, system_prompt, domain_text)
            model_id = model or meta.preferred_model

            try:
                response = await self.model_manager.invoke(
                    messages, GenerationSettings(model=model_id)
                )
            except LLMProviderError as e:
                logger.error(f"{conversation_id}: generation failed, nothing persisted: {e}")
                return TurnOutcome(
                    status=TurnStatus.FAILED,
                    reply=FALLBACK_REPLY,
                    category=category,
                    subject_id=subject_id,
                    model_id=model_id,
                    retryable=e.is_retryable,
                )

            return self._persist(
                conversation_id,
                text,
                response.content,
                TurnStatus.ANSWERED,
                category,
                subject_id=subject_id,
                model_id=response.model,
                token_cost=response.total_tokens or None,
            )

    def _persist(
        self,
        conversation_id: str,
        user_text: str,
        reply: str,
        status: TurnStatus,
        category: QueryCategory,
        subject_id: Optional[str] = None,
        model_id: Optional[str] = None,
        token_cost: Optional[int] = None,
    ) -> TurnOutcome:
        user_turn = self.buffer.append(conversation_id, "user", user_text)
        pins: List[Pin] = []
        if self.pin_extractor is not None:
            pins = self.pin_extractor.extract_and_store(self.pin_store, user_turn, subject_id)
        assistant_turn = self.buffer.append(
            conversation_id, "assistant", reply, model_id=model_id, token_cost=token_cost
        )
        return TurnOutcome(
            status=status,
            reply=reply,
            category=category,
            subject_id=subject_id,
            model_id=model_id,
            user_turn_id=user_turn.id,
            assistant_turn_id=assistant_turn.id,
            pins=pins,
            summary_task=self.schedule_summarization(conversation_id),
        )

    def _clarification(self, category: QueryCategory) -> str:
        names = [s.name for s in self.domain.list_subjects()] if self.domain else []
        question = f"Who would you like me to check {category.value} for?"
        if names:
            question += f" I have records for {', '.join(names)}."
        return question

    def schedule_summarization(self, conversation_id: str) -> Optional[asyncio.Task]:
        """Start background summarization if the threshold has been reached.

        A new task first waits for the conversation's pending one, so at most
        one summary is produced at a time and ranges never overlap.
        """
        previous = self._pending.get(conversation_id)
        if previous is not None and previous.done():
            previous = None
        if previous is None and not self.summarizer.needs_summarization(conversation_id):
            return None

        task = asyncio.create_task(self._summarize_after(conversation_id, previous))
        self._pending[conversation_id] = task
        task.add_done_callback(lambda t: self._forget_task(conversation_id, t))
        return task

    async def _summarize_after(
        self, conversation_id: str, previous: Optional[asyncio.Task]
    ) -> Optional[Summary]:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            summary = await self.summarizer.maybe_summarize(conversation_id)
        except Exception as e:
            logger.error(f"Background summarization failed for {conversation_id}: {e}", exc_info=True)
            return None
        if summary is not None:
            self.cache.invalidate(conversation_id)
        return summary

    def _forget_task(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._pending.get(conversation_id) is task:
            del self._pending[conversation_id]

    async def wait_for_background(self, conversation_id: Optional[str] = None) -> None:
        """Wait for pending summarization for one conversation, or all of them."""
        if conversation_id is not None:
            tasks = [self._pending[conversation_id]] if conversation_id in self._pending else []
        else:
            tasks = list(self._pending.values())
        if tasks:
            await asyncio.wait(tasks)

    def build_context(self, conversation_id: str, token_budget: Optional[int] = None) -> MemoryContext:
        return self.assembler.build_context(conversation_id, token_budget or self.token_budget)

    async def maybe_summarize(self, conversation_id: str) -> Optional[Summary]:
        """Summarize now, after any pending background summary has finished."""
        await self.wait_for_background(conversation_id)
        async with self._lock_for(conversation_id):
            summary = await self.summarizer.maybe_summarize(conversation_id)
        if summary is not None:
            self.cache.invalidate(conversation_id)
        return summary

    def create_pin(
        self,
        conversation_id: str,
        content: str,
        source_turn_id: Optional[int] = None,
        importance: float = 0.8,
        category: str = "manual",
        urgency: Urgency = Urgency.NORMAL,
        subject_id: Optional[str] = None,
    ) -> Pin:
        self.store.ensure_conversation(conversation_id)
        return self.pin_store.create_pin(
            conversation_id,
            content,
            source_turn_id=source_turn_id,
            importance=importance,
            category=category,
            urgency=urgency,
            subject_id=subject_id,
        )

    def list_top_pins(self, conversation_id: str, limit: int = 5) -> List[Pin]:
        return self.pin_store.list_top_pins(conversation_id, limit)

    def classify(self, text: str) -> QueryCategory:
        return self.classifier.classify(text)

    def resolve_subject(self, text: str, conversation_id: str) -> Optional[str]:
        return self.resolver.resolve_subject(text, conversation_id)

    def invalidate(self, conversation_id: str) -> int:
        return self.cache.invalidate(conversation_id)

    def recent_turns(self, conversation_id: str, limit: Optional[int] = None) -> List[Turn]:
        return self.buffer.recent(conversation_id, limit)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and everything recorded for it."""
        await self.wait_for_background(conversation_id)
        async with self._lock_for(conversation_id):
            self.store.delete_conversation(conversation_id)
            self.cache.invalidate(conversation_id)
        self._locks.pop(conversation_id, None)
        logger.info(f"Deleted conversation {conversation_id}")

    def get_stats(self, conversation_id: Optional[str] = None) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "cache": self.cache.get_stats(),
            "summarizer": self.summarizer.get_stats(),
            "models": self.model_manager.get_stats(),
            "pending_summaries": len(self._pending),
        }
        if conversation_id is not None:
            memory = self.store.stats(conversation_id)
            stats["conversation"] = {
                "conversation_id": conversation_id,
                "total_turns": memory.total_turns,
                "total_summaries": memory.total_summaries,
                "total_pins": memory.total_pins,
                "average_importance": memory.average_importance,
            }
        return stats
