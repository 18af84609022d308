"""
Completion provider boundary.

A provider sends one prompt and reports whether the answer was cut off by
the output-token limit. Providers raise only DevChronicle exceptions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class CompletionRequest:
    """A single completion call."""
    model: str
    system_prompt: str
    user_prompt: str
    max_output_tokens: int
    temperature: float = 0.2


@dataclass
class CompletionResponse:
    """Text returned by a provider plus the truncation flag."""
    text: str
    truncated: bool
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: Optional[str] = None

    @property
    def input_tokens(self) -> int:
        return self.usage.get("input_tokens", 0)

    @property
    def output_tokens(self) -> int:
        return self.usage.get("output_tokens", 0)


class CompletionProvider(ABC):
    """A chat-completion backend."""

    provider_id: str = ""

    @abstractmethod
    def can_handle_model(self, model: str) -> bool:
        """Whether this provider serves the given model name."""
        pass

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """
        Send one prompt.

        Args:
            request: Model, prompts and output limit

        Returns:
            Response text and whether it was truncated by length

        Raises:
            AuthenticationError, NetworkError, RateLimitError,
            ProviderTimeoutError, ProviderAPIError
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass
