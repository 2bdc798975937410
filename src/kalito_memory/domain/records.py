"""Domain record provider contract (subjects, medications, appointments, journal)."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class Subject:
    """A person the operator asks about (patient, family member)."""

    id: str
    name: str
    aliases: List[str] = field(default_factory=list)
    relationship: Optional[str] = None  # e.g. "mother", "father"

    @property
    def first_name(self) -> str:
        return self.name.split()[0] if self.name else ""


@dataclass
class Medication:
    name: str
    dosage: str
    frequency: str
    generic_name: Optional[str] = None
    prescribing_doctor: Optional[str] = None
    pharmacy: Optional[str] = None
    rx_number: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True


@dataclass
class Appointment:
    appointment_date: date
    appointment_time: Optional[str] = None
    appointment_type: Optional[str] = None
    location: Optional[str] = None
    status: str = "scheduled"


@dataclass
class JournalEntry:
    entry_date: date
    text: str
    mood: Optional[str] = None


class DomainRecordProvider(ABC):
    """Read-only access to authoritative structured records."""

    @abstractmethod
    def list_subjects(self) -> List[Subject]:
        ...

    @abstractmethod
    def get_subject(self, subject_id: str) -> Optional[Subject]:
        ...

    @abstractmethod
    def medications(self, subject_id: str) -> List[Medication]:
        """Active medications for a subject."""
        ...

    @abstractmethod
    def appointments(self, subject_id: str) -> List[Appointment]:
        """All appointments for a subject."""
        ...

    @abstractmethod
    def journal_entries(self, subject_id: str, limit: int = 3) -> List[JournalEntry]:
        """Most recent journal entries, newest first."""
        ...

    def context_text(self, subject_id: Optional[str]) -> str:
        """Render a subject's records as plain text for the model prompt."""
        if not subject_id:
            return ""
        subject = self.get_subject(subject_id)
        if subject is None:
            return ""

        lines = [f"## Records for {subject.name}"]
        meds = self.medications(subject_id)
        if meds:
            lines.append("Medications:")
            lines.extend(f"- {m.name} {m.dosage}, {m.frequency}" for m in meds)
        today = date.today()
        upcoming = [a for a in self.appointments(subject_id) if a.appointment_date >= today]
        if upcoming:
            lines.append("Upcoming appointments:")
            lines.extend(
                f"- {a.appointment_date.isoformat()} {a.appointment_type or 'appointment'}"
                for a in sorted(upcoming, key=lambda a: a.appointment_date)
            )
        journal = self.journal_entries(subject_id)
        if journal:
            lines.append("Recent journal entries:")
            lines.extend(f"- {j.entry_date.isoformat()}: {j.text[:200]}" for j in journal)
        lines.append(
            "Use only these records for facts about this person; do not invent details."
        )
        return "\n".join(lines)


class InMemoryDomainRecords(DomainRecordProvider):
    """Domain records held in memory, optionally loaded from a JSON file."""

    def __init__(self):
        self.subjects: Dict[str, Subject] = {}
        self._medications: Dict[str, List[Medication]] = {}
        self._appointments: Dict[str, List[Appointment]] = {}
        self._journal: Dict[str, List[JournalEntry]] = {}

    def add_subject(self, subject: Subject) -> Subject:
        self.subjects[subject.id] = subject
        return subject

    def add_medication(self, subject_id: str, medication: Medication) -> None:
        self._medications.setdefault(subject_id, []).append(medication)

    def add_appointment(self, subject_id: str, appointment: Appointment) -> None:
        self._appointments.setdefault(subject_id, []).append(appointment)

    def add_journal_entry(self, subject_id: str, entry: JournalEntry) -> None:
        self._journal.setdefault(subject_id, []).append(entry)

    def list_subjects(self) -> List[Subject]:
        return list(self.subjects.values())

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        return self.subjects.get(subject_id)

    def medications(self, subject_id: str) -> List[Medication]:
        return [m for m in self._medications.get(subject_id, []) if m.active]

    def appointments(self, subject_id: str) -> List[Appointment]:
        return list(self._appointments.get(subject_id, []))

    def journal_entries(self, subject_id: str, limit: int = 3) -> List[JournalEntry]:
        entries = sorted(
            self._journal.get(subject_id, []), key=lambda e: e.entry_date, reverse=True
        )
        return entries[:limit]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryDomainRecords":
        """Build records from ``{"subjects": [{..., "medications": [...], ...}]}``."""
        records = cls()
        for raw in data.get("subjects", []):
            subject = records.add_subject(
                Subject(
                    id=raw["id"],
                    name=raw["name"],
                    aliases=list(raw.get("aliases", [])),
                    relationship=raw.get("relationship"),
                )
            )
            for med in raw.get("medications", []):
                records.add_medication(subject.id, Medication(**med))
            for appt in raw.get("appointments", []):
                appt = dict(appt)
                appt["appointment_date"] = date.fromisoformat(appt["appointment_date"])
                records.add_appointment(subject.id, Appointment(**appt))
            for entry in raw.get("journal", []):
                entry = dict(entry)
                entry["entry_date"] = date.fromisoformat(entry["entry_date"])
                records.add_journal_entry(subject.id, JournalEntry(**entry))
        return records

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryDomainRecords":
        with open(Path(path).expanduser(), "r", encoding="utf-8") as f:
            data = json.load(f)
        records = cls.from_dict(data)
        logger.info(f"Loaded {len(records.subjects)} subjects from {path}")
        return records
