"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODEINDEX__SECTION__KEY)
3. Workspace YAML (.codeindex/config.yaml)
4. Global YAML (~/.config/codeindex/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    CODEINDEX__<SECTION>__<KEY>=<VALUE>

Examples:
    CODEINDEX__LOGGING__LEVEL=DEBUG
    CODEINDEX__EMBEDDER__PROVIDER=gemini
    CODEINDEX__EMBEDDER__API_KEY=...
    CODEINDEX__VECTOR_STORE__URL=http://localhost:6333
    CODEINDEX__INDEXING__FATAL_FAILURE_RATE=0.5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
EmbedderProvider = Literal["openai", "openai-compatible", "gemini"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODEINDEX__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every batch and retry.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class EmbedderConfig(BaseModel):
    """Remote embedding provider configuration.

    Env vars:
        CODEINDEX__EMBEDDER__PROVIDER: openai, openai-compatible or gemini
        CODEINDEX__EMBEDDER__MODEL_ID: Embedding model (provider default if unset)
        CODEINDEX__EMBEDDER__API_KEY: Provider credential
        CODEINDEX__EMBEDDER__BASE_URL: Endpoint for openai-compatible servers
    """

    provider: EmbedderProvider = Field(
        default="openai",
        description="Embedding provider. Batch ceilings and backoff are tuned per provider.",
    )
    model_id: str | None = Field(
        default=None,
        description="Embedding model. Defaults to the provider's recommended model.",
    )
    api_key: str | None = Field(
        default=None,
        description="API key. Required for openai and gemini.",
    )
    base_url: str | None = Field(
        default=None,
        description="Base URL of an OpenAI-compatible server. Required for openai-compatible.",
    )
    timeout_sec: float = Field(
        default=60.0,
        description="Per-request timeout. A timeout is retried as a transient error.",
    )

    @field_validator("timeout_sec")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v

    @property
    def has_credentials(self) -> bool:
        """Whether this provider has what it needs to make requests."""
        if self.provider == "openai-compatible":
            return bool(self.base_url)
        return bool(self.api_key)


class VectorStoreConfig(BaseModel):
    """Vector store connection configuration.

    Env vars:
        CODEINDEX__VECTOR_STORE__URL: Vector store endpoint
        CODEINDEX__VECTOR_STORE__API_KEY: Optional credential
    """

    url: str | None = Field(
        default=None,
        description="Vector store endpoint. Indexing is disabled until set.",
    )
    api_key: str | None = Field(default=None, description="Optional vector store credential.")


class CacheConfig(BaseModel):
    """Content cache configuration.

    Env vars:
        CODEINDEX__CACHE__STORAGE_DIR: Where cache artifacts are written
        CODEINDEX__CACHE__HASH_DEBOUNCE_SEC: Hash map write coalescing window
        CODEINDEX__CACHE__PROGRESS_DEBOUNCE_SEC: Progress write coalescing window
    """

    storage_dir: str | None = Field(
        default=None,
        description="Directory for cache artifacts. Default: ~/.cache/codeindex.",
    )
    hash_debounce_sec: float = Field(
        default=1.5,
        description="Updates within this window produce one hash map write. "
        "TRADEOFF: Longer = fewer writes during bulk scans, larger loss window on crash.",
    )
    progress_debounce_sec: float = Field(
        default=1.0,
        description="Updates within this window produce one progress write.",
    )

    @field_validator("hash_debounce_sec", "progress_debounce_sec")
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Debounce window must be >= 0, got {v}")
        return v

    def resolve_storage_dir(self) -> Path:
        if self.storage_dir:
            return Path(self.storage_dir).expanduser()
        return Path("~/.cache/codeindex").expanduser()


class IndexingConfig(BaseModel):
    """Indexing run configuration.

    Env vars:
        CODEINDEX__INDEXING__ENABLED: Master switch
        CODEINDEX__INDEXING__WARN_FAILURE_RATE: Degraded-success threshold
        CODEINDEX__INDEXING__FATAL_FAILURE_RATE: Fatal threshold
        CODEINDEX__INDEXING__BATCH_SEGMENT_SIZE: Blocks per embed/store segment
    """

    enabled: bool = Field(default=True, description="Master switch for code indexing.")
    warn_failure_rate: float = Field(
        default=0.1,
        description="Above this block failure rate a run completes with warnings.",
    )
    fatal_failure_rate: float = Field(
        default=0.5,
        description="Above this block failure rate a run fails. "
        "RISK: Raising it keeps mostly-empty indexes around.",
    )
    batch_segment_size: int = Field(
        default=60,
        description="Blocks accumulated before an embed/store segment is flushed.",
    )

    @field_validator("warn_failure_rate", "fatal_failure_rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"Failure rate must be 0.0-1.0, got {v}")
        return v

    @field_validator("batch_segment_size")
    @classmethod
    def validate_segment_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Segment size must be >= 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_thresholds(self) -> "IndexingConfig":
        if self.warn_failure_rate > self.fatal_failure_rate:
            raise ValueError("warn_failure_rate must not exceed fatal_failure_rate")
        return self


class CodeIndexConfig(BaseModel):
    """Root configuration for codeindex.

    All settings can be configured via:
    1. Environment variables: CODEINDEX__SECTION__KEY
    2. YAML config files (workspace or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)

    @property
    def is_feature_configured(self) -> bool:
        """Indexing enabled, embedder credentials present and a vector store set."""
        return (
            self.indexing.enabled
            and self.embedder.has_credentials
            and bool(self.vector_store.url)
        )
