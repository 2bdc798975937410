"""Model manager: the engine's model-invocation boundary."""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import Settings
from .providers import (
    GenerationSettings,
    LLMProvider,
    LLMProviderError,
    LLMResponse,
    OpenAICompatibleProvider,
    ProviderNetworkError,
)

logger = logging.getLogger(__name__)


class ModelManager:
    """Routes model calls to a cloud or local provider.

    This class provides a unified interface for:
    - Invoking chat models with a hard timeout
    - Deciding whether a model runs locally (offline capable)
    - Picking the model used for summarization
    - Tracking usage statistics
    """

    def __init__(
        self,
        cloud_provider: Optional[LLMProvider] = None,
        local_provider: Optional[LLMProvider] = None,
        local_models: Optional[Iterable[str]] = None,
        default_model: str = "gpt-4.1-nano",
        summary_model: str = "gpt-4.1-nano",
        timeout: float = 60.0,
    ):
        """Initialize the model manager.

        Args:
            cloud_provider: Provider for hosted models.
            local_provider: Provider for models served on this machine.
            local_models: Model ids that are served by the local provider.
            default_model: Model used when a request names none.
            summary_model: Hosted model used for summarization when the
                conversation's preferred model is not local.
            timeout: Seconds before an invocation counts as a network timeout.
        """
        self.cloud_provider = cloud_provider
        self.local_provider = local_provider
        self.local_models = set(local_models or [])
        self.default_model = default_model
        self.summary_model = summary_model
        self.timeout = timeout

        # Statistics
        self.total_calls = 0
        self.successful_calls = 0
        self.failed_calls = 0
        self.timeouts = 0

        logger.info(f"ModelManager initialized with default model: {self.default_model}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelManager":
        """Build a manager with OpenAI-compatible cloud and local providers."""
        cloud = OpenAICompatibleProvider(
            api_key=settings.openai_api_key,
            base_url=settings.cloud_base_url,
            default_model=settings.default_model,
            timeout=settings.timeout,
        )
        local = None
        if settings.local_models:
            local = OpenAICompatibleProvider(
                base_url=settings.local_base_url,
                default_model=settings.local_models[0],
                timeout=settings.timeout,
                local=True,
            )
        return cls(
            cloud_provider=cloud,
            local_provider=local,
            local_models=settings.local_models,
            default_model=settings.default_model,
            summary_model=settings.summary_model,
            timeout=settings.timeout,
        )

    def is_local(self, model_id: Optional[str]) -> bool:
        """Check whether a model is served by the local provider."""
        return bool(model_id) and self.local_provider is not None and model_id in self.local_models

    def provider_for(self, model_id: str) -> LLMProvider:
        """Get the provider that serves a model.

        Raises:
            LLMProviderError: If no provider is configured for the model.
        """
        provider = self.local_provider if self.is_local(model_id) else self.cloud_provider
        if provider is None:
            raise LLMProviderError(f"No provider configured for model {model_id}", model=model_id)
        return provider

    def summarization_model(self, preferred_model: Optional[str]) -> str:
        """Prefer the conversation's model when it is local, else the hosted summary model."""
        if preferred_model and self.is_local(preferred_model):
            return preferred_model
        return self.summary_model

    async def invoke(
        self,
        messages: List[Dict[str, str]],
        settings: Optional[GenerationSettings] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Invoke a chat model.

        Args:
            messages: Chat messages in OpenAI format.
            settings: Model and sampling settings. Defaults apply when None.
            **kwargs: Additional parameters passed to the provider.

        Returns:
            LLMResponse with content and token usage.

        Raises:
            ProviderNetworkError: On timeout or connectivity failure.
            LLMProviderError: If generation fails for any other reason.
        """
        settings = settings or GenerationSettings()
        model_to_use = settings.model or self.default_model
        self.total_calls += 1

        try:
            provider = self.provider_for(model_to_use)
            response = await asyncio.wait_for(
                provider.generate(
                    messages,
                    model=model_to_use,
                    temperature=settings.temperature,
                    max_tokens=settings.max_tokens,
                    **kwargs,
                ),
                timeout=self.timeout,
            )
            self.successful_calls += 1
            return response

        except asyncio.TimeoutError:
            self.failed_calls += 1
            self.timeouts += 1
            logger.error(f"Generation with {model_to_use} timed out after {self.timeout}s")
            raise ProviderNetworkError(
                f"{model_to_use} generation timed out after {self.timeout}s", model=model_to_use
            )
        except LLMProviderError as e:
            self.failed_calls += 1
            logger.error(f"Generation failed: {e}")
            raise
        except Exception as e:
            self.failed_calls += 1
            logger.error(f"Unexpected error from {model_to_use}: {e}", exc_info=True)
            raise LLMProviderError(
                f"{model_to_use} generation failed: {e}", model=model_to_use
            ) from e

    def get_stats(self) -> dict[str, Any]:
        """Get usage statistics."""
        success_rate = (
            (self.successful_calls / self.total_calls * 100) if self.total_calls > 0 else 0
        )
        return {
            "default_model": self.default_model,
            "summary_model": self.summary_model,
            "local_models": sorted(self.local_models),
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "timeouts": self.timeouts,
            "success_rate": f"{success_rate:.1f}%",
        }
