"""Core orchestration: query routing, prompt composition and the turn engine."""

from .prompt import compose_messages
from .router import QueryClassifier, SubjectResolver, contains_pronoun

__all__ = ["QueryClassifier", "SubjectResolver", "compose_messages", "contains_pronoun"]
