"""Embedding batcher, provider profiles and the OpenAI-compatible client."""

from codeindex.index.embedding.batcher import (
    BatcherStats,
    BatchPlan,
    EmbeddingBatcher,
    EmbeddingResponse,
    estimate_tokens,
    plan_batches,
)
from codeindex.index.embedding.client import (
    OpenAICompatibleProvider,
    create_batcher,
    create_provider,
    resolve_model_id,
)
from codeindex.index.embedding.profiles import ProviderProfile, model_dimension, profile_for
from codeindex.index.embedding.retry import BackoffWait, RetryKind, classify_error

__all__ = [
    "BackoffWait",
    "BatchPlan",
    "BatcherStats",
    "EmbeddingBatcher",
    "EmbeddingResponse",
    "OpenAICompatibleProvider",
    "ProviderProfile",
    "RetryKind",
    "classify_error",
    "create_batcher",
    "create_provider",
    "estimate_tokens",
    "model_dimension",
    "plan_batches",
    "profile_for",
    "resolve_model_id",
]
