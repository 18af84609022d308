"""
Summarization engine for DevChronicle.

Live summarization of days through completion providers, with a shared
rate budget, continuation of truncated responses and bounded retries.
"""

from .bullets import (
    BULLET_MARKER,
    validate_bullets,
    normalize_to_dash_bullets,
    extract_last_bullet_line,
    dedupe_bullets,
)
from .continuation import ContinuationCompiler, ContinuationState, MAX_ROUNDS
from .engine import DaySummarizer, provider_display_name, provider_id_for_model, NO_BULLETS_MESSAGE
from .prompt_builder import PromptBuilder, compute_input_hash
from .rate_budget import RateBudget, RateLimits, CallBudget, default_limits, estimate_tokens
from .retry import RetryPolicy, network_delay, rate_limit_delay
from .providers import (
    CompletionProvider,
    CompletionRequest,
    CompletionResponse,
    OpenAIProvider,
    AnthropicProvider,
    ProviderRegistry,
)

__all__ = [
    'BULLET_MARKER',
    'validate_bullets',
    'normalize_to_dash_bullets',
    'extract_last_bullet_line',
    'dedupe_bullets',
    'ContinuationCompiler',
    'ContinuationState',
    'MAX_ROUNDS',
    'DaySummarizer',
    'provider_display_name',
    'provider_id_for_model',
    'NO_BULLETS_MESSAGE',
    'PromptBuilder',
    'compute_input_hash',
    'RateBudget',
    'RateLimits',
    'CallBudget',
    'default_limits',
    'estimate_tokens',
    'RetryPolicy',
    'network_delay',
    'rate_limit_delay',
    'CompletionProvider',
    'CompletionRequest',
    'CompletionResponse',
    'OpenAIProvider',
    'AnthropicProvider',
    'ProviderRegistry',
]
