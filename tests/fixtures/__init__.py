"""Test fixtures for the memory engine tests."""

from datetime import date, datetime, timedelta
from typing import List, Optional
from unittest.mock import AsyncMock, Mock

from kalito_memory.domain.records import (
    Appointment,
    InMemoryDomainRecords,
    JournalEntry,
    Medication,
    Subject,
)
from kalito_memory.models.memory import Turn
from kalito_memory.providers import LLMResponse


def make_response(content: str = "Test response", model: str = "test-model") -> LLMResponse:
    return LLMResponse(
        content=content,
        model=model,
        usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    )


def create_mock_model_manager(
    content: str = "Test response",
    model: str = "test-model",
    local_models: Optional[List[str]] = None,
):
    """Create a mock model manager whose ``invoke`` returns a fixed reply."""
    local = set(local_models or [])
    mock_manager = Mock()
    mock_manager.default_model = model
    mock_manager.summary_model = "test-summary-model"
    mock_manager.invoke = AsyncMock(return_value=make_response(content, model))
    mock_manager.is_local = Mock(side_effect=lambda model_id: model_id in local)
    mock_manager.summarization_model = Mock(
        side_effect=lambda preferred: preferred if preferred in local else "test-summary-model"
    )
    mock_manager.get_stats = Mock(
        return_value={
            "default_model": model,
            "total_calls": 0,
            "successful_calls": 0,
            "failed_calls": 0,
            "timeouts": 0,
        }
    )
    return mock_manager


def make_turns(
    texts: List[str], conversation_id: str = "conv-1", start_id: int = 1
) -> List[Turn]:
    """Alternating user/assistant turns, starting with the user."""
    base = datetime(2025, 1, 1, 9, 0, 0)
    return [
        Turn(
            id=start_id + i,
            conversation_id=conversation_id,
            role="user" if i % 2 == 0 else "assistant",
            text=text,
            importance=0.5,
            created_at=base + timedelta(minutes=i),
        )
        for i, text in enumerate(texts)
    ]


def create_domain_records(today: Optional[date] = None) -> InMemoryDomainRecords:
    """Two subjects: Aurora (mother) with records, Basilio (father) with none."""
    today = today or date.today()
    records = InMemoryDomainRecords()
    records.add_subject(
        Subject(id="aurora", name="Aurora Vega", aliases=["Aury"], relationship="mother")
    )
    records.add_subject(Subject(id="basilio", name="Basilio Vega", relationship="father"))

    records.add_medication(
        "aurora",
        Medication(
            name="Lisinopril",
            dosage="10mg",
            frequency="once daily",
            prescribing_doctor="Dr. Reyes",
            pharmacy="Main Street Pharmacy",
            rx_number="RX-1001",
        ),
    )
    records.add_medication(
        "aurora", Medication(name="Metformin", dosage="500mg", frequency="twice daily")
    )
    records.add_medication(
        "aurora",
        Medication(name="Atorvastatin", dosage="20mg", frequency="nightly", active=False),
    )

    records.add_appointment(
        "aurora",
        Appointment(
            appointment_date=today + timedelta(days=7),
            appointment_time="10:30",
            appointment_type="Cardiology follow-up",
            location="City Clinic",
        ),
    )
    records.add_appointment(
        "aurora",
        Appointment(appointment_date=today - timedelta(days=7), appointment_type="Lab work"),
    )
    records.add_journal_entry(
        "aurora", JournalEntry(entry_date=today, text="Slept well, good appetite.", mood="calm")
    )
    return records
