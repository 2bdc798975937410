"""Query classification and subject resolution.

Fact-lookup questions (medications, appointments) about a resolvable subject
are answered from structured records instead of a generative model.
"""

import logging
import re
from typing import Dict, List, Optional, Pattern, Tuple

from ..domain.records import DomainRecordProvider, Subject
from ..models.memory import QueryCategory
from ..services.store import RecordStore

logger = logging.getLogger(__name__)


# Ordered rule groups; the first group with a matching pattern wins
CATEGORY_RULES: List[Tuple[QueryCategory, Tuple[str, ...]]] = [
    (
        QueryCategory.MEDICATIONS,
        (
            r"\b(medications?|medicines?|drugs?|prescriptions?|rx|pills?|tablets?|dose|dosage)\b",
            r"\b(taking|prescribed|pharmacy)\b",
            r"\brx\s*number",
            r"\bwhat.*take",
        ),
    ),
    (
        QueryCategory.APPOINTMENTS,
        (
            r"\b(appointments?|doctor visit|checkup|schedule|upcoming)\b",
            r"\b(see.*doctor|visit.*doctor)\b",
        ),
    ),
]

PRONOUN_PATTERN = re.compile(r"\b(she|her|hers|he|him|his|they|them|their)\b", re.IGNORECASE)

# Relationship words mapped to the relationship recorded on a subject
RELATIONSHIP_WORDS: Dict[str, str] = {
    "mom": "mother",
    "mother": "mother",
    "mama": "mother",
    "dad": "father",
    "father": "father",
    "papa": "father",
}


def contains_pronoun(text: str) -> bool:
    """True if the text refers back to someone by pronoun."""
    return bool(PRONOUN_PATTERN.search(text))


def _word_pattern(word: str) -> Pattern[str]:
    return re.compile(rf"\b{re.escape(word.lower())}\b")


class QueryClassifier:
    """Assigns a QueryCategory to operator text."""

    def __init__(self, rules: Optional[List[Tuple[QueryCategory, Tuple[str, ...]]]] = None):
        self.rules = [
            (category, [re.compile(p, re.IGNORECASE) for p in patterns])
            for category, patterns in (rules or CATEGORY_RULES)
        ]

    def classify(self, text: str) -> QueryCategory:
        lowered = text.lower()
        for category, patterns in self.rules:
            if any(p.search(lowered) for p in patterns):
                return category
        return QueryCategory.GENERAL


class SubjectResolver:
    """Works out which subject a query is about."""

    def __init__(self, store: RecordStore, domain: Optional[DomainRecordProvider]):
        self.store = store
        self.domain = domain

    def explicit_subject(self, text: str) -> Optional[str]:
        """Subject named in the text by name, alias or relationship word."""
        if self.domain is None:
            return None

        lowered = text.lower()
        subjects = self.domain.list_subjects()
        for subject in subjects:
            if any(_word_pattern(term).search(lowered) for term in self._terms(subject)):
                return subject.id

        for word, relationship in RELATIONSHIP_WORDS.items():
            if not _word_pattern(word).search(lowered):
                continue
            for subject in subjects:
                if subject.relationship and subject.relationship.lower() == relationship:
                    return subject.id
        return None

    def resolve_subject(self, text: str, conversation_id: str) -> Optional[str]:
        """Resolve the subject of a query.

        Priority: a pronoun continues the recorded default subject; otherwise
        an explicitly named subject; otherwise the default; otherwise None.
        """
        meta = self.store.get_conversation(conversation_id)
        default = meta.default_subject_id if meta else None

        if default and contains_pronoun(text):
            return default

        explicit = self.explicit_subject(text)
        if explicit:
            return explicit

        return default

    @staticmethod
    def _terms(subject: Subject) -> List[str]:
        terms = [subject.name]
        if subject.first_name and subject.first_name != subject.name:
            terms.append(subject.first_name)
        terms.extend(subject.aliases)
        return [t for t in terms if t]
