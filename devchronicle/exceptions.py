"""
Exception hierarchy for DevChronicle.

Low-level transport and parsing failures are re-expressed as one of these
types at the boundary closest to the network call, so callers above the
retry wrapper only ever see this taxonomy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    """Identifiers describing where an error happened."""
    session_id: Optional[str] = None
    day: Optional[str] = None
    batch_id: Optional[str] = None
    operation: Optional[str] = None
    additional_context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "session_id": self.session_id,
            "day": self.day,
            "batch_id": self.batch_id,
            "operation": self.operation,
        }
        data.update(self.additional_context)
        return {k: v for k, v in data.items() if v is not None}


def create_error_context(session_id: Optional[str] = None,
                         day: Optional[str] = None,
                         batch_id: Optional[str] = None,
                         operation: Optional[str] = None,
                         **kwargs) -> ErrorContext:
    """Build an ErrorContext from keyword arguments."""
    return ErrorContext(
        session_id=session_id,
        day=day,
        batch_id=batch_id,
        operation=operation,
        additional_context=kwargs
    )


class DevChronicleException(Exception):
    """Base exception for all DevChronicle errors."""

    def __init__(self,
                 message: str,
                 error_code: str = "UNKNOWN_ERROR",
                 context: Optional[ErrorContext] = None,
                 user_message: Optional[str] = None,
                 retryable: bool = False,
                 cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or ErrorContext()
        self.user_message = user_message or message
        self.retryable = retryable
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }

    def get_user_response(self) -> str:
        """Short message suitable for a status line."""
        return self.user_message


class ConfigurationError(DevChronicleException):
    """Missing or invalid configuration."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "CONFIGURATION_ERROR")
        super().__init__(message, **kwargs)
        self.config_key = config_key


class StorageError(DevChronicleException):
    """A persistence operation failed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "STORAGE_ERROR")
        super().__init__(message, **kwargs)


class EvidenceError(DevChronicleException):
    """Evidence for a day is missing or malformed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "EVIDENCE_ERROR")
        super().__init__(message, **kwargs)


class ProviderError(DevChronicleException):
    """Base for failures at the completion provider boundary."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None,
                 response_body: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "PROVIDER_ERROR")
        super().__init__(message, **kwargs)
        self.provider = provider
        self.status_code = status_code
        self.response_body = response_body


class AuthenticationError(ProviderError):
    """Provider rejected the credentials."""

    def __init__(self, provider: str, details: str = "", **kwargs):
        kwargs.setdefault("error_code", "AUTHENTICATION_ERROR")
        kwargs.setdefault("user_message", f"{provider} rejected the API key. Check your settings.")
        super().__init__(provider, f"Authentication failed for {provider}: {details}".rstrip(": "), **kwargs)


class NetworkError(ProviderError):
    """The provider could not be reached."""

    def __init__(self, provider: str, details: str, **kwargs):
        kwargs.setdefault("error_code", "NETWORK_ERROR")
        kwargs.setdefault("retryable", True)
        kwargs.setdefault("user_message", "Network issue while contacting the provider.")
        super().__init__(provider, f"Network error contacting {provider}: {details}", **kwargs)


class RateLimitError(ProviderError):
    """The provider throttled the request (HTTP 429)."""

    def __init__(self, provider: str, retry_after: Optional[float] = None,
                 details: str = "", **kwargs):
        kwargs.setdefault("error_code", "RATE_LIMIT_ERROR")
        kwargs.setdefault("retryable", True)
        kwargs.setdefault("status_code", 429)
        kwargs.setdefault("user_message", f"Rate-limited by {provider}.")
        message = f"Rate limit exceeded for {provider} (429)"
        if details:
            message = f"{message}: {details}"
        super().__init__(provider, message, **kwargs)
        self.retry_after = retry_after


class ProviderTimeoutError(ProviderError):
    """The provider did not answer in time."""

    def __init__(self, provider: str, timeout_seconds: Optional[float] = None, **kwargs):
        kwargs.setdefault("error_code", "TIMEOUT_ERROR")
        kwargs.setdefault("retryable", True)
        suffix = f" after {timeout_seconds}s" if timeout_seconds else ""
        super().__init__(provider, f"Request to {provider} hit a timeout{suffix}", **kwargs)
        self.timeout_seconds = timeout_seconds


class ProviderAPIError(ProviderError):
    """Any other non-success response from the provider."""

    def __init__(self, provider: str, message: str, **kwargs):
        kwargs.setdefault("error_code", "PROVIDER_API_ERROR")
        super().__init__(provider, message, **kwargs)


class BatchError(DevChronicleException):
    """A batch lifecycle operation failed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "BATCH_ERROR")
        super().__init__(message, **kwargs)


class BatchNotFoundError(BatchError):
    """No local batch row exists for the given id."""

    def __init__(self, batch_id: str, **kwargs):
        kwargs.setdefault("error_code", "BATCH_NOT_FOUND")
        super().__init__(f"Batch not found: {batch_id}", **kwargs)
        self.batch_id = batch_id


class FailureKind(Enum):
    """Retry classification of a failed attempt."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    NON_RETRYABLE = "non_retryable"


NETWORK_ERROR_MARKERS = (
    "no such host is known",
    "name or service not known",
    "temporary failure in name resolution",
    "connection reset",
    "connection refused",
    "actively refused",
    "network is unreachable",
    "an error occurred while sending the request",
    "httpclient",
    "unable to read data from the transport connection",
)

RATE_LIMIT_ERROR_MARKERS = (
    "429",
    "rate limit",
    "rate_limit",
    "too many requests",
    "temporarily unavailable",
    "timeout",
)


def classify_failure(message: Optional[str], error: Optional[BaseException] = None) -> FailureKind:
    """Classify a failure as network, rate-limit or non-retryable.

    Typed provider errors are classified by type. Anything else falls back to
    substring matching on the lowercased error text, network markers first.

    Args:
        message: Error text of the failed attempt
        error: The exception, when one is available

    Returns:
        The failure kind driving the retry decision
    """
    if isinstance(error, NetworkError):
        return FailureKind.NETWORK
    if isinstance(error, (RateLimitError, ProviderTimeoutError)):
        return FailureKind.RATE_LIMIT
    if isinstance(error, (AuthenticationError, ConfigurationError, EvidenceError)):
        return FailureKind.NON_RETRYABLE

    text = (message or "").lower()
    if not text:
        return FailureKind.NON_RETRYABLE
    if any(marker in text for marker in NETWORK_ERROR_MARKERS):
        return FailureKind.NETWORK
    if any(marker in text for marker in RATE_LIMIT_ERROR_MARKERS):
        return FailureKind.RATE_LIMIT
    return FailureKind.NON_RETRYABLE
