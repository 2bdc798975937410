"""Deterministic answers to fact-lookup queries, straight from the records.

Medication and appointment facts never pass through a generative model.
"""

import logging
from datetime import date
from typing import Callable, List, Optional

from ..models.memory import QueryCategory
from .records import Appointment, DomainRecordProvider, Medication, Subject

logger = logging.getLogger(__name__)


def format_medications(subject: Subject, medications: List[Medication]) -> str:
    if not medications:
        return f"{subject.name} has no active medications on record."

    noun = "medication" if len(medications) == 1 else "medications"
    lines = [f"{subject.name} has {len(medications)} active {noun} on record:"]
    for med in sorted(medications, key=lambda m: m.name.lower()):
        name = med.name
        if med.generic_name and med.generic_name.lower() != med.name.lower():
            name = f"{med.name} ({med.generic_name})"
        line = (
            f"- {name}: {med.dosage}, {med.frequency}. "
            f"Prescribed by {med.prescribing_doctor or 'Unknown'}; "
            f"pharmacy {med.pharmacy or 'Unknown'}; Rx {med.rx_number or 'N/A'}."
        )
        if med.notes:
            line += f" Notes: {med.notes}"
        lines.append(line)
    return "\n".join(lines)


def format_appointments(
    subject: Subject, appointments: List[Appointment], today: Optional[date] = None
) -> str:
    today = today or date.today()
    upcoming = sorted(
        (a for a in appointments if a.appointment_date >= today),
        key=lambda a: (a.appointment_date, a.appointment_time or ""),
    )
    if not upcoming:
        return f"{subject.name} has no upcoming appointments on record."

    noun = "appointment" if len(upcoming) == 1 else "appointments"
    lines = [f"{subject.name} has {len(upcoming)} upcoming {noun}:"]
    for appt in upcoming:
        when = appt.appointment_date.isoformat()
        if appt.appointment_time:
            when += f" at {appt.appointment_time}"
        line = f"- {when}: {appt.appointment_type or 'Appointment'}"
        if appt.location:
            line += f" ({appt.location})"
        line += f", status: {appt.status}."
        lines.append(line)
    return "\n".join(lines)


class GroundTruthResponder:
    """Answers fact-lookup categories from the domain record provider."""

    def __init__(self, records: DomainRecordProvider, today: Optional[Callable[[], date]] = None):
        self.records = records
        self._today = today or date.today

    def supports(self, category: QueryCategory) -> bool:
        return category in (QueryCategory.MEDICATIONS, QueryCategory.APPOINTMENTS)

    def answer(self, category: QueryCategory, subject_id: str) -> Optional[str]:
        """Format the ground-truth answer, or None if the subject is unknown."""
        subject = self.records.get_subject(subject_id)
        if subject is None:
            logger.warning(f"Fact lookup for unknown subject {subject_id}")
            return None

        if category == QueryCategory.MEDICATIONS:
            return format_medications(subject, self.records.medications(subject_id))
        if category == QueryCategory.APPOINTMENTS:
            return format_appointments(
                subject, self.records.appointments(subject_id), today=self._today()
            )
        raise ValueError(f"{category.value} is not a fact-lookup category")
