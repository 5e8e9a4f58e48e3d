"""codeindex error types with typed error codes.

Error code ranges:
- 1xxx: Embedder auth / billing
- 2xxx: Config
- 3xxx: Indexing
- 4xxx: Embedding transport
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Embedder auth / billing (1xxx)
    EMBED_AUTH_FAILED = 1001
    EMBED_QUOTA_EXCEEDED = 1002

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003

    # Indexing (3xxx)
    INDEX_NO_BLOCKS_INDEXED = 3001
    INDEX_MOSTLY_FAILED = 3002
    INDEX_SCAN_FAILED = 3003
    INDEX_BATCH_FAILED = 3004
    INDEX_INVALID_TRANSITION = 3005

    # Embedding transport (4xxx)
    EMBED_RATE_LIMITED = 4001
    EMBED_TRANSIENT = 4002
    EMBED_REQUEST_REJECTED = 4003
    EMBED_INVALID_RESPONSE = 4004
    EMBED_RETRIES_EXHAUSTED = 4005


@dataclass(eq=False)
class CodeIndexError(Exception):
    """Base error with structured context for status messages and logs."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'EMBED_RATE_LIMITED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CodeIndexError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )


class EmbeddingError(CodeIndexError):
    """Failures talking to a remote embedding provider."""

    @property
    def status_code(self) -> int | None:
        return self.details.get("status_code")

    @classmethod
    def rate_limited(
        cls, provider: str, reason: str, status_code: int | None = 429
    ) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBED_RATE_LIMITED,
            message=f"{provider} rate limit exceeded: {reason}",
            retryable=True,
            details={"provider": provider, "status_code": status_code},
        )

    @classmethod
    def transient(
        cls, provider: str, reason: str, status_code: int | None = None
    ) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBED_TRANSIENT,
            message=f"{provider} request failed transiently: {reason}",
            retryable=True,
            details={"provider": provider, "status_code": status_code},
        )

    @classmethod
    def auth_failed(
        cls, provider: str, reason: str, status_code: int | None = 401
    ) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBED_AUTH_FAILED,
            message=f"{provider} authentication failed: {reason}",
            details={"provider": provider, "status_code": status_code},
        )

    @classmethod
    def quota_exceeded(
        cls, provider: str, reason: str, status_code: int | None = 402
    ) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBED_QUOTA_EXCEEDED,
            message=f"{provider} quota or billing limit reached: {reason}",
            details={"provider": provider, "status_code": status_code},
        )

    @classmethod
    def request_rejected(
        cls, provider: str, reason: str, status_code: int | None = None
    ) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBED_REQUEST_REJECTED,
            message=f"{provider} rejected the embedding request: {reason}",
            details={"provider": provider, "status_code": status_code},
        )

    @classmethod
    def invalid_response(cls, provider: str, reason: str) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBED_INVALID_RESPONSE,
            message=f"{provider} returned an invalid embedding response: {reason}",
            details={"provider": provider},
        )

    @classmethod
    def retries_exhausted(
        cls,
        provider: str,
        attempts: int,
        last_error: str,
        *,
        rate_limited: bool = False,
        hint: str | None = None,
    ) -> "EmbeddingError":
        message = f"Failed to create embeddings after {attempts} attempts: {last_error}"
        if rate_limited:
            message += " Rate limit still exceeded; wait a few minutes before retrying."
        if hint:
            message += f" {hint}"
        return cls(
            code=ErrorCode.EMBED_RETRIES_EXHAUSTED,
            message=message,
            details={
                "provider": provider,
                "attempts": attempts,
                "rate_limited": rate_limited,
            },
        )


class IndexingError(CodeIndexError):
    """Indexing run failures surfaced through the state machine."""

    @classmethod
    def no_blocks_indexed(cls, reason: str, suggestion: str | None = None) -> "IndexingError":
        message = f"Indexing failed: {reason}"
        if suggestion:
            message += f"\n\nSuggestion: {suggestion}"
        return cls(
            code=ErrorCode.INDEX_NO_BLOCKS_INDEXED,
            message=message,
            details={"reason": reason},
        )

    @classmethod
    def mostly_failed(cls, indexed: int, found: int, first_error: str) -> "IndexingError":
        rate = round((found - indexed) / found * 100) if found else 0
        return cls(
            code=ErrorCode.INDEX_MOSTLY_FAILED,
            message=(
                f"Indexing mostly failed: Only {indexed} of {found} blocks were indexed "
                f"({rate}% failure rate). {first_error}\n\n"
                "Suggestion: Check your network connection and API configuration, then try again."
            ),
            details={"indexed": indexed, "found": found, "failure_rate": rate},
        )

    @classmethod
    def scan_failed(cls, reason: str) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEX_SCAN_FAILED,
            message=f"Scan failed: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def batch_failed(cls, batch_id: str, reason: str, files: list[str]) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEX_BATCH_FAILED,
            message=f"Batch {batch_id} failed: {reason}",
            details={"batch_id": batch_id, "files": files},
        )

    @classmethod
    def invalid_transition(cls, current: str, target: str) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEX_INVALID_TRANSITION,
            message=f"Illegal indexing state transition: {current} -> {target}",
            details={"from": current, "to": target},
        )
