"""
Configuration validation for DevChronicle.
"""

from typing import List

from ..exceptions import ConfigurationError
from .constants import VALID_PENDING_MODES
from .environment import AppConfig
from .settings import SummarizationSettings


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: AppConfig) -> List[str]:
        """Validate process-level configuration."""
        errors = []

        if not config.db_path:
            errors.append("Database path must not be empty")

        if config.http_timeout_seconds <= 0:
            errors.append("HTTP timeout must be positive")

        if config.openai_base_url and not config.openai_base_url.startswith(("http://", "https://")):
            errors.append("OPENAI_BASE_URL must be an http(s) URL")

        return errors

    @staticmethod
    def validate_summarization_settings(settings: SummarizationSettings) -> List[str]:
        """Validate summarization settings after defaults and clamps are applied."""
        errors = []

        if settings.pending_mode not in VALID_PENDING_MODES:
            errors.append(
                f"Pending mode must be one of {', '.join(VALID_PENDING_MODES)}, got '{settings.pending_mode}'"
            )

        if not settings.model.strip():
            errors.append("Summarization model must not be empty")

        if not settings.master_prompt.strip():
            errors.append("Master prompt must not be empty")

        return errors

    @staticmethod
    def validate_or_raise(config: AppConfig) -> None:
        errors = ConfigValidator.validate_config(config)
        if errors:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(errors),
                user_message=errors[0]
            )
