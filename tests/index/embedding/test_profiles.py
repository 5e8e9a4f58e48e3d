"""Tests for per-provider profiles."""

from __future__ import annotations

import pytest

from codeindex.core.errors import ConfigError
from codeindex.index.embedding.profiles import ProviderProfile, model_dimension, profile_for


class TestProfileFor:
    def test_openai_defaults(self) -> None:
        profile = profile_for("openai", "text-embedding-3-small")

        assert profile.name == "OpenAI"
        assert profile.max_item_tokens == 8191
        assert profile.max_batch_tokens == 100_000
        assert profile.max_retries == 3
        assert profile.rate_limit_delay_sec == 0.5
        assert profile.rate_limit_hint is None

    def test_strict_model_gets_slower_rate_limit_backoff(self) -> None:
        profile = profile_for("openai", "text-embedding-3-large")

        assert profile.rate_limit_delay_sec == 2.0
        assert profile.rate_limit_multiplier == 3
        assert profile.transient_delay_sec == 0.5
        assert profile.rate_limit_hint is not None
        assert "text-embedding-3-large" in profile.rate_limit_hint

    def test_gemini_item_ceiling(self) -> None:
        profile = profile_for("gemini", "text-embedding-004")

        assert profile.name == "Gemini"
        assert profile.max_item_tokens == 2048
        assert profile.max_batch_tokens == 100_000

    def test_high_dimension_gemini_gets_small_batches_and_more_retries(self) -> None:
        profile = profile_for("gemini", "gemini-embedding-001")

        assert profile.max_batch_tokens == 20_000
        assert profile.max_retries == 5
        assert profile.transient_delay_sec == 2.0
        assert profile.rate_limit_delay_sec == 2.0

    def test_query_prefix_model(self) -> None:
        profile = profile_for("openai-compatible", "nomic-embed-code")

        assert profile.query_prefix is not None
        assert profile.name == "OpenAI Compatible"

    def test_unknown_provider_rejected(self) -> None:
        with pytest.raises(ConfigError):
            profile_for("cohere", "embed-v3")


class TestProviderProfile:
    def test_item_ceiling_above_batch_ceiling_rejected(self) -> None:
        with pytest.raises(ConfigError):
            ProviderProfile(name="Bad", max_item_tokens=200, max_batch_tokens=100)

    def test_zero_retries_rejected(self) -> None:
        with pytest.raises(ConfigError):
            ProviderProfile(name="Bad", max_retries=0)


def test_model_dimension_lookup() -> None:
    assert model_dimension("openai", "text-embedding-3-small") == 1536
    assert model_dimension("openai", "unknown") is None
