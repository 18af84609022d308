"""
OpenAI provider using httpx against the REST API.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ...exceptions import (
    AuthenticationError,
    NetworkError,
    ProviderAPIError,
    ProviderTimeoutError,
    RateLimitError,
)
from .base import CompletionProvider, CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIHttpClient:
    """Thin authenticated httpx wrapper shared by the chat and batch clients."""

    provider_name = "OpenAI"

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 120.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a request and translate transport failures.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            **kwargs: Passed through to httpx

        Returns:
            The successful response

        Raises:
            NetworkError, ProviderTimeoutError, AuthenticationError,
            RateLimitError, ProviderAPIError
        """
        try:
            response = await self._client.request(method, path.lstrip("/"), **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.provider_name, self.timeout, cause=e)
        except httpx.TransportError as e:
            raise NetworkError(self.provider_name, str(e) or type(e).__name__, cause=e)

        if response.status_code < 400:
            return response

        body = response.text
        if response.status_code == 401:
            raise AuthenticationError(self.provider_name, body, status_code=401, response_body=body)
        if response.status_code == 429:
            raise RateLimitError(
                self.provider_name,
                retry_after=_retry_after(response),
                details=body,
                response_body=body,
            )
        raise ProviderAPIError(
            self.provider_name,
            f"{self.provider_name} returned HTTP {response.status_code}: {body}",
            status_code=response.status_code,
            response_body=body,
        )

    async def close(self) -> None:
        await self._client.aclose()


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class OpenAIProvider(CompletionProvider):
    """Completion provider for every model that is not a claude-* model."""

    provider_id = "openai"

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 120.0,
                 http: Optional[OpenAIHttpClient] = None):
        self.http = http or OpenAIHttpClient(api_key, base_url, timeout)

    def can_handle_model(self, model: str) -> bool:
        return not (model or "").strip().lower().startswith("claude-")

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        payload = {
            "model": request.model,
            "messages": [
                {"role": "developer", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_completion_tokens": request.max_output_tokens,
        }
        response = await self.http.request("POST", "chat/completions", json=payload)
        return self._process_response(response.json(), request.model)

    async def close(self) -> None:
        await self.http.close()

    def _process_response(self, data: Dict[str, Any], model: str) -> CompletionResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderAPIError("OpenAI", "No choices in response body.")

        first = choices[0]
        message = first.get("message") or {}
        content = message.get("content")
        if content is None:
            raise ProviderAPIError("OpenAI", "No content in first choice message.")

        usage = data.get("usage") or {}
        finish_reason = first.get("finish_reason")
        return CompletionResponse(
            text=str(content).strip(),
            truncated=finish_reason == "length",
            model=data.get("model") or model,
            usage={
                "input_tokens": usage.get("prompt_tokens", 0) or 0,
                "output_tokens": usage.get("completion_tokens", 0) or 0,
            },
            finish_reason=finish_reason,
        )
