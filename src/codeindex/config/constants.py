"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are provider constraints, retry tuning and implementation details.

For configurable values, see models.py (CacheConfig, IndexingConfig, etc.).
"""

# =============================================================================
# Token Estimation
# =============================================================================
# A cheap heuristic: the ceilings below exist to avoid provider-side request
# size rejections, not to count tokens exactly.

CHARS_PER_TOKEN = 4
"""Characters per estimated token."""

# =============================================================================
# OpenAI / OpenAI-compatible Limits
# =============================================================================

MAX_BATCH_TOKENS = 100_000
"""Estimated token ceiling for one embedding request."""

MAX_ITEM_TOKENS = 8191
"""Estimated token ceiling for a single block; larger blocks are dropped."""

MAX_BATCH_RETRIES = 3
"""Attempts per batch before giving up."""

INITIAL_RETRY_DELAY_SEC = 0.5
"""Base backoff delay for the first retry."""

RATE_LIMIT_BACKOFF_MULTIPLIER = 2
"""Exponential base for rate-limit backoff."""

TRANSIENT_BACKOFF_MULTIPLIER = 2
"""Exponential base for transient (network, 5xx) backoff."""

MAX_JITTER_SEC = 1.0
"""Upper bound of random jitter added to rate-limit delays."""

STRICT_MODELS = frozenset({"text-embedding-3-large"})
"""Models with tighter rate limits than their provider default."""

STRICT_MODEL_DELAY_FACTOR = 4
"""Base delay multiplier for strict models."""

STRICT_MODEL_BACKOFF_MULTIPLIER = 3
"""Rate-limit exponential base for strict models."""

# =============================================================================
# Gemini Limits
# =============================================================================

GEMINI_MAX_ITEM_TOKENS = 2048
"""Gemini embedding input ceiling."""

GEMINI_HIGH_DIM_MAX_BATCH_TOKENS = 20_000
"""Batch ceiling for high-dimension Gemini models."""

GEMINI_HIGH_DIM_INITIAL_RETRY_DELAY_SEC = 2.0
"""Base backoff delay for high-dimension Gemini models."""

GEMINI_HIGH_DIM_MAX_BATCH_RETRIES = 5
"""Attempts per batch for high-dimension Gemini models."""

HIGH_DIMENSION_THRESHOLD = 3000
"""Models at or above this embedding dimension are treated as high-dimension."""

# =============================================================================
# Provider Endpoints and Models
# =============================================================================

OPENAI_BASE_URL = "https://api.openai.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

DEFAULT_MODELS = {
    "openai": "text-embedding-3-small",
    "openai-compatible": "text-embedding-3-small",
    "gemini": "gemini-embedding-001",
}
"""Model used when the embedder config names none."""

MODEL_DIMENSIONS: dict[str, dict[str, int]] = {
    "openai": {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    },
    "openai-compatible": {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
        "nomic-embed-code": 3584,
    },
    "gemini": {
        "text-embedding-004": 768,
        "gemini-embedding-001": 3072,
    },
}
"""Known embedding dimensions by provider and model."""

MODEL_QUERY_PREFIXES = {
    "nomic-embed-code": "Represent this query for searching relevant code: ",
}
"""Prefix some models expect in front of every input."""

# =============================================================================
# Cache Artifacts
# =============================================================================

CACHE_FILE_PREFIX = "index-cache-"
PROGRESS_FILE_PREFIX = "index-progress-"
