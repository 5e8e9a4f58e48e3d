"""Tests for config/models.py module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from codeindex.config.models import (
    CacheConfig,
    CodeIndexConfig,
    EmbedderConfig,
    IndexingConfig,
    LogOutputConfig,
    VectorStoreConfig,
)


class TestLogOutputConfig:
    """Tests for LogOutputConfig."""

    def test_relative_file_destination_rejected(self) -> None:
        """File destinations must be absolute."""
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/index.log")

    def test_console_destinations_accepted(self) -> None:
        """stderr/stdout pass through unchanged."""
        assert LogOutputConfig(destination="stdout").destination == "stdout"


class TestEmbedderConfig:
    """Tests for EmbedderConfig credential checks."""

    @pytest.mark.parametrize(
        ("kwargs", "expected"),
        [
            ({"provider": "openai"}, False),
            ({"provider": "openai", "api_key": "sk-test"}, True),
            ({"provider": "gemini", "api_key": "g-key"}, True),
            ({"provider": "openai-compatible"}, False),
            ({"provider": "openai-compatible", "base_url": "http://localhost:8080/v1"}, True),
        ],
    )
    def test_has_credentials(self, kwargs: dict[str, str], expected: bool) -> None:
        """Each provider needs its own credential."""
        assert EmbedderConfig(**kwargs).has_credentials is expected

    def test_unknown_provider_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EmbedderConfig(provider="bedrock")  # type: ignore[arg-type]

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EmbedderConfig(timeout_sec=0)


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_defaults(self) -> None:
        config = CacheConfig()
        assert config.hash_debounce_sec == 1.5
        assert config.progress_debounce_sec == 1.0

    def test_negative_debounce_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CacheConfig(hash_debounce_sec=-1)

    def test_storage_dir_resolution(self, tmp_path: Path) -> None:
        """Explicit storage_dir wins over the user cache default."""
        assert CacheConfig(storage_dir=str(tmp_path)).resolve_storage_dir() == tmp_path
        assert CacheConfig().resolve_storage_dir().name == "codeindex"


class TestIndexingConfig:
    """Tests for IndexingConfig thresholds."""

    def test_defaults(self) -> None:
        config = IndexingConfig()
        assert config.warn_failure_rate == 0.1
        assert config.fatal_failure_rate == 0.5
        assert config.batch_segment_size == 60

    def test_rate_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IndexingConfig(fatal_failure_rate=1.5)

    def test_warn_above_fatal_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IndexingConfig(warn_failure_rate=0.6, fatal_failure_rate=0.5)

    def test_zero_segment_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IndexingConfig(batch_segment_size=0)


class TestCodeIndexConfig:
    """Tests for the feature gate."""

    def test_default_config_not_configured(self) -> None:
        """Nothing is configured out of the box."""
        assert CodeIndexConfig().is_feature_configured is False

    def test_configured_with_key_and_vector_store(self) -> None:
        config = CodeIndexConfig(
            embedder=EmbedderConfig(api_key="sk-test"),
            vector_store=VectorStoreConfig(url="http://localhost:6333"),
        )
        assert config.is_feature_configured is True

    def test_disabled_indexing_not_configured(self) -> None:
        """The master switch overrides credentials."""
        config = CodeIndexConfig(
            embedder=EmbedderConfig(api_key="sk-test"),
            vector_store=VectorStoreConfig(url="http://localhost:6333"),
            indexing=IndexingConfig(enabled=False),
        )
        assert config.is_feature_configured is False
