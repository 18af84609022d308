"""
Persisted key/value settings with typed, clamped accessors.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from ..data.base import SettingsRepository
from .constants import (
    PENDING_MODE_KEY, MODEL_KEY, MAX_BULLETS_KEY, MAX_COMPLETION_TOKENS_KEY,
    MASTER_PROMPT_KEY, BATCH_MAX_DAYS_KEY, BATCH_POLL_INTERVAL_KEY,
    NETWORK_RETRY_WINDOW_KEY, RATE_LIMIT_RETRY_WINDOW_KEY,
    OPENAI_API_KEY_KEY, ANTHROPIC_API_KEY_KEY,
    PENDING_MODE_BATCH, PENDING_MODE_LIVE,
    DEFAULT_MODEL, DEFAULT_MAX_BULLETS, DEFAULT_MAX_COMPLETION_TOKENS,
    DEFAULT_MASTER_PROMPT, DEFAULT_BATCH_MAX_DAYS, DEFAULT_BATCH_POLL_INTERVAL_SECONDS,
    DEFAULT_NETWORK_RETRY_WINDOW_MINUTES, DEFAULT_RATE_LIMIT_RETRY_WINDOW_MINUTES,
    MAX_BULLETS_RANGE, MAX_COMPLETION_TOKENS_RANGE, BATCH_MAX_DAYS_RANGE,
    BATCH_POLL_INTERVAL_RANGE, RETRY_WINDOW_RANGE,
)
from .environment import AppConfig

logger = logging.getLogger(__name__)


def clamp(value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


@dataclass(frozen=True)
class SummarizationSettings:
    """Resolved summarization settings for one operation."""
    pending_mode: str = PENDING_MODE_BATCH
    model: str = DEFAULT_MODEL
    max_bullets: int = DEFAULT_MAX_BULLETS
    max_completion_tokens: int = DEFAULT_MAX_COMPLETION_TOKENS
    master_prompt: str = DEFAULT_MASTER_PROMPT
    batch_max_days: int = DEFAULT_BATCH_MAX_DAYS
    batch_poll_interval_seconds: int = DEFAULT_BATCH_POLL_INTERVAL_SECONDS
    network_retry_window_minutes: int = DEFAULT_NETWORK_RETRY_WINDOW_MINUTES
    rate_limit_retry_window_minutes: int = DEFAULT_RATE_LIMIT_RETRY_WINDOW_MINUTES

    @property
    def is_batch_mode(self) -> bool:
        return self.pending_mode == PENDING_MODE_BATCH


class SettingsService:
    """Reads and writes JSON-encoded settings through a repository."""

    def __init__(self, repository: SettingsRepository, app_config: Optional[AppConfig] = None):
        self.repository = repository
        self.app_config = app_config or AppConfig()

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for key, or default when unset or unreadable."""
        raw = await self.repository.get_value(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Setting {key} is not valid JSON; using default")
            return default

    async def set(self, key: str, value: Any) -> None:
        await self.repository.set_value(key, json.dumps(value))

    async def get_str(self, key: str, default: str = "") -> str:
        value = await self.get(key, default)
        if value is None:
            return default
        text = str(value).strip()
        return text or default

    async def get_int(self, key: str, default: int,
                      bounds: Optional[Tuple[int, int]] = None) -> int:
        """Return an integer setting, clamped into bounds when given."""
        value = await self.get(key, default)
        try:
            number = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Setting {key}={value!r} is not an integer; using {default}")
            number = default
        return clamp(number, bounds) if bounds else number

    async def get_pending_mode(self) -> str:
        mode = await self.get_str(PENDING_MODE_KEY, PENDING_MODE_BATCH)
        if mode.lower() == PENDING_MODE_LIVE.lower():
            return PENDING_MODE_LIVE
        return PENDING_MODE_BATCH

    async def get_openai_api_key(self) -> Optional[str]:
        return await self.get_str(OPENAI_API_KEY_KEY) or self.app_config.openai_api_key

    async def get_anthropic_api_key(self) -> Optional[str]:
        return await self.get_str(ANTHROPIC_API_KEY_KEY) or self.app_config.anthropic_api_key

    async def load_summarization_settings(self) -> SummarizationSettings:
        """Resolve every summarization setting with its default and clamp."""
        return SummarizationSettings(
            pending_mode=await self.get_pending_mode(),
            model=await self.get_str(MODEL_KEY, DEFAULT_MODEL),
            max_bullets=await self.get_int(MAX_BULLETS_KEY, DEFAULT_MAX_BULLETS, MAX_BULLETS_RANGE),
            max_completion_tokens=await self.get_int(
                MAX_COMPLETION_TOKENS_KEY, DEFAULT_MAX_COMPLETION_TOKENS, MAX_COMPLETION_TOKENS_RANGE
            ),
            master_prompt=await self.get_str(MASTER_PROMPT_KEY, DEFAULT_MASTER_PROMPT),
            batch_max_days=await self.get_int(BATCH_MAX_DAYS_KEY, DEFAULT_BATCH_MAX_DAYS, BATCH_MAX_DAYS_RANGE),
            batch_poll_interval_seconds=await self.get_int(
                BATCH_POLL_INTERVAL_KEY, DEFAULT_BATCH_POLL_INTERVAL_SECONDS, BATCH_POLL_INTERVAL_RANGE
            ),
            network_retry_window_minutes=await self.get_int(
                NETWORK_RETRY_WINDOW_KEY, DEFAULT_NETWORK_RETRY_WINDOW_MINUTES, RETRY_WINDOW_RANGE
            ),
            rate_limit_retry_window_minutes=await self.get_int(
                RATE_LIMIT_RETRY_WINDOW_KEY, DEFAULT_RATE_LIMIT_RETRY_WINDOW_MINUTES, RETRY_WINDOW_RANGE
            ),
        )
