"""Authoritative domain records and deterministic answers drawn from them."""

from .ground_truth import GroundTruthResponder
from .records import (
    Appointment,
    DomainRecordProvider,
    InMemoryDomainRecords,
    JournalEntry,
    Medication,
    Subject,
)

__all__ = [
    "Appointment",
    "DomainRecordProvider",
    "GroundTruthResponder",
    "InMemoryDomainRecords",
    "JournalEntry",
    "Medication",
    "Subject",
]
