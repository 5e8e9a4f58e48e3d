"""Per-provider batch ceilings and backoff tuning.

Providers share one batching and retry routine; what differs is captured
in a ProviderProfile. Stricter configurations (large OpenAI models,
high-dimension Gemini models) get smaller batches and slower backoff.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from codeindex.config.constants import (
    GEMINI_HIGH_DIM_INITIAL_RETRY_DELAY_SEC,
    GEMINI_HIGH_DIM_MAX_BATCH_RETRIES,
    GEMINI_HIGH_DIM_MAX_BATCH_TOKENS,
    GEMINI_MAX_ITEM_TOKENS,
    HIGH_DIMENSION_THRESHOLD,
    INITIAL_RETRY_DELAY_SEC,
    MAX_BATCH_RETRIES,
    MAX_BATCH_TOKENS,
    MAX_ITEM_TOKENS,
    MAX_JITTER_SEC,
    MODEL_DIMENSIONS,
    MODEL_QUERY_PREFIXES,
    RATE_LIMIT_BACKOFF_MULTIPLIER,
    STRICT_MODEL_BACKOFF_MULTIPLIER,
    STRICT_MODEL_DELAY_FACTOR,
    STRICT_MODELS,
    TRANSIENT_BACKOFF_MULTIPLIER,
)
from codeindex.core.errors import ConfigError
from codeindex.index.embedding.retry import RetryKind, classify_error

PROVIDER_NAMES = {
    "openai": "OpenAI",
    "openai-compatible": "OpenAI Compatible",
    "gemini": "Gemini",
}


@dataclass(frozen=True)
class ProviderProfile:
    """Batching and retry parameters for one provider/model pair."""

    name: str
    max_item_tokens: int = MAX_ITEM_TOKENS
    max_batch_tokens: int = MAX_BATCH_TOKENS
    max_retries: int = MAX_BATCH_RETRIES
    transient_delay_sec: float = INITIAL_RETRY_DELAY_SEC
    rate_limit_delay_sec: float = INITIAL_RETRY_DELAY_SEC
    rate_limit_multiplier: float = RATE_LIMIT_BACKOFF_MULTIPLIER
    transient_multiplier: float = TRANSIENT_BACKOFF_MULTIPLIER
    max_jitter_sec: float = MAX_JITTER_SEC
    classify: Callable[[BaseException], RetryKind] = classify_error
    rate_limit_hint: str | None = None
    query_prefix: str | None = None

    def __post_init__(self) -> None:
        if self.max_item_tokens > self.max_batch_tokens:
            raise ConfigError.invalid_value(
                "max_item_tokens",
                self.max_item_tokens,
                f"must not exceed max_batch_tokens ({self.max_batch_tokens})",
            )
        if self.max_retries < 1:
            raise ConfigError.invalid_value("max_retries", self.max_retries, "must be >= 1")


def model_dimension(provider: str, model_id: str) -> int | None:
    return MODEL_DIMENSIONS.get(provider, {}).get(model_id)


def profile_for(provider: str, model_id: str) -> ProviderProfile:
    """Build the profile for a configured provider and model."""
    if provider not in PROVIDER_NAMES:
        raise ConfigError.invalid_value("embedder.provider", provider, "unknown provider")

    name = PROVIDER_NAMES[provider]
    query_prefix = MODEL_QUERY_PREFIXES.get(model_id)

    if provider == "gemini":
        dimension = model_dimension(provider, model_id) or 0
        if dimension >= HIGH_DIMENSION_THRESHOLD:
            return ProviderProfile(
                name=name,
                max_item_tokens=GEMINI_MAX_ITEM_TOKENS,
                max_batch_tokens=GEMINI_HIGH_DIM_MAX_BATCH_TOKENS,
                max_retries=GEMINI_HIGH_DIM_MAX_BATCH_RETRIES,
                transient_delay_sec=GEMINI_HIGH_DIM_INITIAL_RETRY_DELAY_SEC,
                rate_limit_delay_sec=GEMINI_HIGH_DIM_INITIAL_RETRY_DELAY_SEC,
                query_prefix=query_prefix,
            )
        return ProviderProfile(
            name=name,
            max_item_tokens=GEMINI_MAX_ITEM_TOKENS,
            query_prefix=query_prefix,
        )

    if model_id in STRICT_MODELS:
        return ProviderProfile(
            name=name,
            rate_limit_delay_sec=INITIAL_RETRY_DELAY_SEC * STRICT_MODEL_DELAY_FACTOR,
            rate_limit_multiplier=STRICT_MODEL_BACKOFF_MULTIPLIER,
            rate_limit_hint=(
                f"{model_id} has stricter rate limits; "
                "consider text-embedding-3-small or a higher usage tier."
            ),
            query_prefix=query_prefix,
        )
    return ProviderProfile(name=name, query_prefix=query_prefix)
