"""
Completion providers and model-based provider selection.
"""

from typing import List, Optional

from ...exceptions import ConfigurationError
from .base import CompletionProvider, CompletionRequest, CompletionResponse
from .openai_provider import OpenAIProvider, OpenAIHttpClient
from .anthropic_provider import AnthropicProvider


class ProviderRegistry:
    """Chooses the provider that serves a model."""

    def __init__(self, providers: Optional[List[CompletionProvider]] = None):
        self._providers: List[CompletionProvider] = list(providers or [])

    def register(self, provider: CompletionProvider) -> None:
        self._providers.append(provider)

    def resolve(self, model: str) -> CompletionProvider:
        for provider in self._providers:
            if provider.can_handle_model(model):
                return provider
        raise ConfigurationError(
            f"No completion provider is configured for model '{model}'",
            config_key="summarization.model",
            user_message="Configure an API key for the selected model's provider.",
        )

    async def close(self) -> None:
        for provider in self._providers:
            await provider.close()


__all__ = [
    'CompletionProvider',
    'CompletionRequest',
    'CompletionResponse',
    'OpenAIProvider',
    'OpenAIHttpClient',
    'AnthropicProvider',
    'ProviderRegistry',
]
