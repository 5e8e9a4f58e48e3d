"""Config module exports."""

from codeindex.config.loader import load_config
from codeindex.config.models import (
    CacheConfig,
    CodeIndexConfig,
    EmbedderConfig,
    IndexingConfig,
    LoggingConfig,
    VectorStoreConfig,
)

__all__ = [
    "load_config",
    "CodeIndexConfig",
    "CacheConfig",
    "EmbedderConfig",
    "IndexingConfig",
    "LoggingConfig",
    "VectorStoreConfig",
]
