"""OpenAI-compatible chat provider (hosted API or a local Ollama-style server)."""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from .base import (
    AuthenticationError,
    LLMProvider,
    LLMProviderError,
    LLMResponse,
    ModelNotFoundError,
    ProviderNetworkError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
LOCAL_BASE_URL = "http://localhost:11434/v1"
LOCAL_PLACEHOLDER_KEY = "local"

NETWORK_ERROR_MARKERS = ("econnrefused", "enotfound", "etimedout", "timed out", "connection")


class OpenAICompatibleProvider(LLMProvider):
    """LLM provider for any endpoint that speaks the OpenAI chat API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = OPENAI_BASE_URL,
        default_model: str = "gpt-4.1-nano",
        timeout: float = 60.0,
        local: bool = False,
        provider_name: Optional[str] = None,
    ):
        """Initialize the provider.

        Args:
            api_key: API key. If None, reads from OPENAI_API_KEY for hosted
                endpoints; local endpoints use a placeholder key.
            base_url: Base URL of the OpenAI-compatible API.
            default_model: Default model to use for generation.
            timeout: Request timeout in seconds.
            local: Whether the endpoint is hosted on this machine.
            provider_name: Name used in logs and errors.
        """
        if local:
            self.api_key = api_key or LOCAL_PLACEHOLDER_KEY
        else:
            self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self.local = local
        self._name = provider_name or ("local" if local else "cloud")
        self._client: Optional[AsyncOpenAI] = None

    @property
    def name(self) -> str:
        """Return the provider name."""
        return self._name

    @property
    def is_local(self) -> bool:
        return self.local

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client for this endpoint."""
        if self._client is None:
            if not self.api_key:
                raise AuthenticationError(
                    "API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def generate(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a chat completion.

        Raises:
            ProviderNetworkError: If the endpoint is unreachable or times out.
            LLMProviderError: For any other failure.
        """
        model_id = model or self.default_model
        logger.info(f"Generating with {self.name} model: {model_id}")

        try:
            response = await self.client.chat.completions.create(
                model=model_id,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
            if not response.choices:
                raise LLMProviderError(
                    f"{model_id} returned no choices", provider=self.name, model=model_id
                )
            content = response.choices[0].message.content or ""
            usage = {}
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }
        except LLMProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, model_id) from e

        logger.info(f"{self.name} response received from {model_id}")
        return LLMResponse(
            content=content,
            model=model_id,
            usage=usage,
            metadata={"id": response.id, "created": response.created, "provider": self.name},
        )

    def _translate_error(self, error: Exception, model_id: str) -> LLMProviderError:
        """Map client exceptions onto the provider error taxonomy."""
        error_msg = str(error) or type(error).__name__
        logger.error(f"{self.name} error: {error_msg}")

        if isinstance(error, (openai.APIConnectionError, httpx.TransportError)):
            return ProviderNetworkError(error_msg, provider=self.name, model=model_id)
        if isinstance(error, openai.RateLimitError):
            return RateLimitError(error_msg, provider=self.name, model=model_id)
        if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return AuthenticationError(error_msg, provider=self.name, model=model_id)
        if isinstance(error, openai.NotFoundError):
            return ModelNotFoundError(error_msg, provider=self.name, model=model_id)
        if isinstance(error, openai.InternalServerError):
            return LLMProviderError(error_msg, provider=self.name, model=model_id, is_retryable=True)

        lowered = error_msg.lower()
        if isinstance(error, TimeoutError) or any(m in lowered for m in NETWORK_ERROR_MARKERS):
            return ProviderNetworkError(error_msg, provider=self.name, model=model_id)
        return LLMProviderError(error_msg, provider=self.name, model=model_id)
