"""
Anthropic Messages API provider using the official async SDK.
"""

import logging
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic

from ...exceptions import (
    AuthenticationError,
    NetworkError,
    ProviderAPIError,
    ProviderTimeoutError,
    RateLimitError,
)
from .base import CompletionProvider, CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(CompletionProvider):
    """Completion provider for claude-* models."""

    provider_id = "anthropic"

    def __init__(self, api_key: str, base_url: Optional[str] = None,
                 default_timeout: float = 120.0, client: Optional[AsyncAnthropic] = None):
        """Initialize the provider.

        Args:
            api_key: Anthropic API key
            base_url: Optional custom base URL
            default_timeout: Request timeout in seconds
            client: Pre-built SDK client, mainly for tests
        """
        self.default_timeout = default_timeout

        if client is None:
            client_kwargs = {
                "api_key": api_key,
                "timeout": default_timeout,
                # Retries are owned by the day-level retry policy
                "max_retries": 0,
                "default_headers": {"anthropic-version": ANTHROPIC_VERSION},
            }
            if base_url:
                client_kwargs["base_url"] = base_url
            client = AsyncAnthropic(**client_kwargs)

        self._client = client

    def can_handle_model(self, model: str) -> bool:
        return (model or "").strip().lower().startswith("claude-")

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        params = {
            "model": request.model,
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }

        try:
            response = await self._client.messages.create(**params)
        except anthropic.RateLimitError as e:
            raise RateLimitError("Anthropic", details=str(e), cause=e)
        except anthropic.AuthenticationError as e:
            raise AuthenticationError("Anthropic", str(e), status_code=401, cause=e)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError("Anthropic", self.default_timeout, cause=e)
        except anthropic.APIConnectionError as e:
            raise NetworkError("Anthropic", str(e), cause=e)
        except anthropic.APIStatusError as e:
            raise ProviderAPIError(
                "Anthropic",
                f"Anthropic returned HTTP {e.status_code}: {e.message}",
                status_code=e.status_code,
                cause=e,
            )

        return self._process_response(response, request.model)

    async def close(self) -> None:
        await self._client.close()

    def _process_response(self, response: Any, model: str) -> CompletionResponse:
        """Join the text blocks of a Messages API response."""
        parts = []
        for block in getattr(response, "content", None) or []:
            if getattr(block, "type", "text") == "text":
                text = getattr(block, "text", None)
                if text:
                    parts.append(text)

        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "input_tokens": getattr(response.usage, "input_tokens", 0) or 0,
                "output_tokens": getattr(response.usage, "output_tokens", 0) or 0,
            }

        stop_reason = getattr(response, "stop_reason", None)
        return CompletionResponse(
            text="\n".join(parts).strip(),
            truncated=stop_reason == "max_tokens",
            model=getattr(response, "model", None) or model,
            usage=usage,
            finish_reason=stop_reason,
        )
