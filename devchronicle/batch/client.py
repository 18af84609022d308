"""
Provider batch API boundary.

The wire types are immutable pydantic models; ``OpenAIBatchClient`` talks to
the OpenAI Files and Batches endpoints over httpx.
"""

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ProviderAPIError
from ..summarization.providers.openai_provider import OpenAIHttpClient

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"
COMPLETION_WINDOW = "24h"
BATCH_TEMPERATURE = 0.2
ALREADY_TERMINAL_MARKER = "cannot cancel a batch with status"


class CancelResult(Enum):
    """Outcome of a provider-side cancel request."""
    CANCELED = "canceled"
    ALREADY_TERMINAL = "already_terminal"


class BatchSnapshot(BaseModel):
    """Provider view of a batch job at one point in time."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    status: str = ""
    input_file_id: Optional[str] = None
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    errors: Optional[Any] = None

    @property
    def last_error(self) -> Optional[str]:
        """Readable text of the batch-level errors object, if any."""
        if not self.errors:
            return None
        if isinstance(self.errors, dict):
            data = self.errors.get("data")
            if isinstance(data, list):
                messages = [
                    str(entry.get("message") or entry.get("code"))
                    for entry in data
                    if isinstance(entry, dict) and (entry.get("message") or entry.get("code"))
                ]
                if messages:
                    return "; ".join(messages)
        return json.dumps(self.errors)


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class ChatCompletionBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    messages: List[ChatMessage]
    temperature: float = BATCH_TEMPERATURE
    max_completion_tokens: int
    store: bool = False


class BatchRequestLine(BaseModel):
    """One line of the newline-delimited batch input file."""

    model_config = ConfigDict(frozen=True)

    custom_id: str
    method: str = "POST"
    url: str = CHAT_COMPLETIONS_ENDPOINT
    body: ChatCompletionBody

    @classmethod
    def for_prompt(cls, custom_id: str, model: str, master_prompt: str,
                   prompt: str, max_completion_tokens: int) -> "BatchRequestLine":
        return cls(
            custom_id=custom_id,
            body=ChatCompletionBody(
                model=model,
                messages=[
                    ChatMessage(role="developer", content=master_prompt),
                    ChatMessage(role="user", content=prompt),
                ],
                max_completion_tokens=max_completion_tokens,
            ),
        )


class CreateBatchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_file_id: str
    endpoint: str = CHAT_COMPLETIONS_ENDPOINT
    completion_window: str = COMPLETION_WINDOW
    metadata: Optional[dict] = Field(default=None)


class BatchProvider(ABC):
    """Provider operations needed by the batch lifecycle."""

    provider_id: str = ""

    @abstractmethod
    async def upload_batch_input_file(self, jsonl: str) -> str:
        """Upload a JSONL request file and return its file id."""
        pass

    @abstractmethod
    async def create_batch(self, input_file_id: str) -> BatchSnapshot:
        """Create a batch job over an uploaded file."""
        pass

    @abstractmethod
    async def get_batch(self, provider_batch_id: str) -> BatchSnapshot:
        """Fetch the current state of a batch job."""
        pass

    @abstractmethod
    async def download_file_content(self, file_id: str) -> str:
        """Download a result or error file as text."""
        pass

    @abstractmethod
    async def cancel_batch(self, provider_batch_id: str) -> CancelResult:
        """
        Ask the provider to cancel a batch.

        Returns:
            CANCELED, or ALREADY_TERMINAL when the provider reports the batch
            finished before the cancel arrived
        """
        pass

    async def close(self) -> None:
        pass


class OpenAIBatchClient(BatchProvider):
    """OpenAI Batch API client."""

    provider_id = "openai"

    def __init__(self, http: OpenAIHttpClient):
        self.http = http

    async def upload_batch_input_file(self, jsonl: str) -> str:
        response = await self.http.request(
            "POST",
            "files",
            data={"purpose": "batch"},
            files={"file": ("batch_input.jsonl", jsonl.encode("utf-8"), "application/jsonl")},
        )
        file_id = _json_body(response).get("id")
        if not file_id:
            raise ProviderAPIError("OpenAI", "File upload response did not include an id.")
        logger.info(f"Uploaded batch input file {file_id} ({len(jsonl)} bytes)")
        return file_id

    async def create_batch(self, input_file_id: str) -> BatchSnapshot:
        request = CreateBatchRequest(input_file_id=input_file_id)
        response = await self.http.request(
            "POST", "batches", json=request.model_dump(exclude_none=True)
        )
        return _parse_snapshot(response)

    async def get_batch(self, provider_batch_id: str) -> BatchSnapshot:
        response = await self.http.request("GET", f"batches/{provider_batch_id}")
        return _parse_snapshot(response)

    async def download_file_content(self, file_id: str) -> str:
        response = await self.http.request("GET", f"files/{file_id}/content")
        return response.text

    async def cancel_batch(self, provider_batch_id: str) -> CancelResult:
        try:
            await self.http.request("POST", f"batches/{provider_batch_id}/cancel")
        except ProviderAPIError as e:
            body = (e.response_body or e.message).lower()
            if e.status_code == 409 and ALREADY_TERMINAL_MARKER in body:
                logger.info(f"Batch {provider_batch_id} was already terminal at cancel time")
                return CancelResult.ALREADY_TERMINAL
            raise
        return CancelResult.CANCELED

    async def close(self) -> None:
        await self.http.close()


def _json_body(response) -> dict:
    """Decode a JSON object body, raising ProviderAPIError on anything else."""
    try:
        body = response.json()
    except ValueError as e:
        raise ProviderAPIError(
            "OpenAI",
            "Batch API returned a response that is not JSON.",
            status_code=response.status_code,
            response_body=response.text,
            cause=e,
        )
    if not isinstance(body, dict):
        raise ProviderAPIError(
            "OpenAI",
            "Batch API returned an unexpected JSON payload.",
            status_code=response.status_code,
            response_body=response.text,
        )
    return body


def _parse_snapshot(response) -> BatchSnapshot:
    try:
        return BatchSnapshot.model_validate(_json_body(response))
    except ValidationError as e:
        raise ProviderAPIError(
            "OpenAI",
            f"Batch API returned a malformed batch object: {e.error_count()} invalid field(s).",
            status_code=response.status_code,
            response_body=response.text,
            cause=e,
        )
