"""Importance scoring for conversation turns.

Scores are a baseline plus the weights of every keyword group that matches.
Groups are independent, so adding a matching group never lowers the score.
"""

from typing import Callable, List, Tuple

from ..models.memory import Turn

BASELINE_SCORE = 0.5
LONG_TEXT_CHARS = 200

CRISIS_TERMS = (
    "crisis",
    "emergency",
    "urgent",
    "help me",
    "can't cope",
    "suicidal",
    "self-harm",
)
EMOTIONAL_TERMS = (
    "feeling",
    "mood",
    "depression",
    "anxiety",
    "stress",
    "worried",
    "overwhelmed",
    "therapy",
    "counseling",
)
TREATMENT_TERMS = (
    "medication",
    "prescription",
    "dosage",
    "side effect",
    "treatment",
    "doctor",
    "appointment",
)
FAMILY_TERMS = (
    "mom",
    "mother",
    "dad",
    "father",
    "caregiver",
    "family",
)
TECHNICAL_TERMS = ("```", "function", "class")
PROBLEM_TERMS = ("error", "problem", "issue")


def _contains_any(terms: Tuple[str, ...]) -> Callable[[str, str], bool]:
    return lambda text, role: any(term in text for term in terms)


def _is_question(text: str, role: str) -> bool:
    return "?" in text or text.startswith(("what", "how", "why"))


# (name, predicate, weight); predicates receive lowercased text and the role
SCORING_RULES: List[Tuple[str, Callable[[str, str], bool], float]] = [
    ("question", _is_question, 0.20),
    ("emotional", _contains_any(EMOTIONAL_TERMS), 0.25),
    ("treatment", _contains_any(TREATMENT_TERMS), 0.20),
    ("family", _contains_any(FAMILY_TERMS), 0.15),
    ("crisis", _contains_any(CRISIS_TERMS), 0.30),
    ("technical", _contains_any(TECHNICAL_TERMS), 0.10),
    ("problem", _contains_any(PROBLEM_TERMS), 0.10),
    ("long_text", lambda text, role: len(text) > LONG_TEXT_CHARS, 0.10),
    ("assistant", lambda text, role: role == "assistant", 0.05),
]


def matched_groups(role: str, text: str) -> List[str]:
    """Return the names of the scoring groups that match a turn."""
    lowered = (text or "").lower()
    return [name for name, predicate, _ in SCORING_RULES if predicate(lowered, role)]


def score(role: str, text: str) -> float:
    """Score a turn's salience in [0, 1]."""
    if not text or not text.strip():
        return BASELINE_SCORE
    lowered = text.lower()
    total = BASELINE_SCORE
    for _, predicate, weight in SCORING_RULES:
        if predicate(lowered, role):
            total += weight
    return min(round(total, 4), 1.0)


def score_turn(turn: Turn) -> float:
    """Score an existing turn."""
    return score(turn.role, turn.text)
