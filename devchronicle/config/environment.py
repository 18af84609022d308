"""
Environment variable handling for DevChronicle configuration.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .constants import DEFAULT_DB_PATH, DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_OPENAI_BASE_URL


@dataclass
class AppConfig:
    """Process-level configuration read from the environment."""
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "INFO"
    openai_api_key: Optional[str] = None
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    anthropic_api_key: Optional[str] = None
    anthropic_base_url: Optional[str] = None
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

    @staticmethod
    def load_config(env_file: Optional[str] = None) -> AppConfig:
        """Load configuration from environment variables.

        Args:
            env_file: Optional path to a .env file; defaults to ./.env

        Returns:
            Populated AppConfig
        """
        # .env values win over the shell environment
        load_dotenv(dotenv_path=env_file, override=True)

        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        if log_level not in EnvironmentLoader.VALID_LOG_LEVELS:
            log_level = 'INFO'

        return AppConfig(
            db_path=os.getenv('DEVCHRONICLE_DB_PATH', DEFAULT_DB_PATH),
            log_level=log_level,
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            openai_base_url=os.getenv('OPENAI_BASE_URL', DEFAULT_OPENAI_BASE_URL).rstrip('/'),
            anthropic_api_key=os.getenv('ANTHROPIC_API_KEY') or None,
            anthropic_base_url=os.getenv('ANTHROPIC_BASE_URL') or None,
            http_timeout_seconds=EnvironmentLoader._parse_float(
                os.getenv('DEVCHRONICLE_HTTP_TIMEOUT'), DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
        )

    @staticmethod
    def _parse_float(value: Optional[str], default: float) -> float:
        if not value:
            return default
        try:
            return float(value)
        except ValueError:
            return default
