"""
Setting keys and defaults for DevChronicle.
"""

# Persisted setting keys
PENDING_MODE_KEY = "summarization.pending_mode"
MODEL_KEY = "summarization.model"
MAX_BULLETS_KEY = "summarization.max_bullets_per_day"
MAX_COMPLETION_TOKENS_KEY = "summarization.max_completion_tokens"
MASTER_PROMPT_KEY = "summarization.master_prompt"
BATCH_MAX_DAYS_KEY = "summarization.batch_max_days_per_submit"
BATCH_POLL_INTERVAL_KEY = "summarization.batch_poll_interval_seconds"
NETWORK_RETRY_WINDOW_KEY = "summarization.network_retry_window_minutes"
RATE_LIMIT_RETRY_WINDOW_KEY = "summarization.rate_limit_retry_window_minutes"
OPENAI_API_KEY_KEY = "openai.api_key"
ANTHROPIC_API_KEY_KEY = "anthropic.api_key"

PENDING_MODE_BATCH = "Batch"
PENDING_MODE_LIVE = "Live"
VALID_PENDING_MODES = (PENDING_MODE_BATCH, PENDING_MODE_LIVE)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_BULLETS = 6
DEFAULT_MAX_COMPLETION_TOKENS = 800
DEFAULT_BATCH_MAX_DAYS = 15
DEFAULT_BATCH_POLL_INTERVAL_SECONDS = 30
DEFAULT_NETWORK_RETRY_WINDOW_MINUTES = 5
DEFAULT_RATE_LIMIT_RETRY_WINDOW_MINUTES = 10
DEFAULT_INTER_DAY_DELAY_SECONDS = 2.0

MAX_BULLETS_RANGE = (1, 20)
MAX_COMPLETION_TOKENS_RANGE = (64, 16000)
BATCH_MAX_DAYS_RANGE = (1, 60)
BATCH_POLL_INTERVAL_RANGE = (5, 300)
RETRY_WINDOW_RANGE = (1, 60)

PROMPT_VERSION = "v2"

DEFAULT_MASTER_PROMPT = """You write a developer's work diary from git evidence.
Summarize what was accomplished on the given day as short factual bullets.

Rules:
- Every bullet starts with "- " and fits on one line.
- Describe outcomes, not individual commits.
- Mention branch or merge context only when it matters.
- Do not invent work that the evidence does not show.
- Output bullets only, with no headings or closing remarks."""

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_DB_PATH = "data/devchronicle.db"
DEFAULT_HTTP_TIMEOUT_SECONDS = 120.0
