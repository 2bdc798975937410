"""LLM providers for the Kalito memory engine."""

from .base import (
    AuthenticationError,
    GenerationSettings,
    LLMProvider,
    LLMProviderError,
    LLMResponse,
    ModelNotFoundError,
    ProviderNetworkError,
    RateLimitError,
)
from .openai_compat import OpenAICompatibleProvider

__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "LLMResponse",
    "GenerationSettings",
    "AuthenticationError",
    "ModelNotFoundError",
    "ProviderNetworkError",
    "RateLimitError",
    "OpenAICompatibleProvider",
]
