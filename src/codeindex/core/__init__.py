"""Core module exports."""

from codeindex.core.errors import (
    CodeIndexError,
    ConfigError,
    EmbeddingError,
    ErrorCode,
    IndexingError,
)
from codeindex.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "CodeIndexError",
    "ConfigError",
    "EmbeddingError",
    "ErrorCode",
    "IndexingError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
