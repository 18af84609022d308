"""
Configuration management for DevChronicle.
"""

from .environment import AppConfig, EnvironmentLoader
from .settings import SettingsService, SummarizationSettings, clamp
from .validation import ConfigValidator

__all__ = [
    'AppConfig',
    'EnvironmentLoader',
    'SettingsService',
    'SummarizationSettings',
    'ConfigValidator',
    'clamp',
]
