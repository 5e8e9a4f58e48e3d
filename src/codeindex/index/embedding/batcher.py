"""Token-bounded batching with retry for embedding requests.

Texts are packed greedily, in order, into batches whose estimated token
total stays under the profile's batch ceiling. A text whose own estimate
exceeds the item ceiling can never fit and is dropped with a warning.
Each batch goes through a bounded tenacity retry loop. The returned
embeddings line up 1:1 with the non-dropped inputs, in input order.
"""

from __future__ import annotations

import asyncio
import math
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import structlog
import tenacity

from codeindex.config.constants import CHARS_PER_TOKEN
from codeindex.core.errors import EmbeddingError
from codeindex.index.embedding.profiles import ProviderProfile
from codeindex.index.embedding.retry import BackoffWait, RetryKind, log_embedding_retry
from codeindex.index.interfaces import EmbeddingBatchResult, EmbeddingProvider, EmbeddingUsage

logger = structlog.get_logger()


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class BatchPlan:
    """Index batches into the input list, plus inputs that can never fit."""

    batches: list[list[int]]
    dropped: list[int]


def plan_batches(texts: Sequence[str], max_item_tokens: int, max_batch_tokens: int) -> BatchPlan:
    batches: list[list[int]] = []
    dropped: list[int] = []
    current: list[int] = []
    current_tokens = 0

    for i, text in enumerate(texts):
        tokens = estimate_tokens(text)
        if tokens > max_item_tokens:
            logger.warning(
                "embedding.item_dropped",
                index=i,
                estimated_tokens=tokens,
                max_item_tokens=max_item_tokens,
            )
            dropped.append(i)
            continue
        if current and current_tokens + tokens > max_batch_tokens:
            batches.append(current)
            current, current_tokens = [], 0
        current.append(i)
        current_tokens += tokens

    if current:
        batches.append(current)
    return BatchPlan(batches=batches, dropped=dropped)


@dataclass
class BatcherStats:
    """Cumulative counters for one batcher."""

    batches_submitted: int = 0
    batches_failed: int = 0
    retries: int = 0
    rate_limit_hits: int = 0
    dropped_items: int = 0
    prompt_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class EmbeddingResponse:
    """Embeddings for every non-dropped input, in input order."""

    embeddings: list[list[float]]
    usage: EmbeddingUsage = field(default_factory=EmbeddingUsage)
    dropped: list[int] = field(default_factory=list)

    def aligned(self, count: int) -> list[list[float] | None]:
        """Spread embeddings back over `count` inputs; dropped inputs get None."""
        dropped = set(self.dropped)
        vectors = iter(self.embeddings)
        return [None if i in dropped else next(vectors) for i in range(count)]


class EmbeddingBatcher:
    """Embed arbitrary text lists through one provider using one profile."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        profile: ProviderProfile,
        model_id: str,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.provider = provider
        self.profile = profile
        self.model_id = model_id
        self._sleep = sleep
        self._jitter = jitter
        self._stats = BatcherStats()

    @property
    def stats(self) -> BatcherStats:
        return self._stats

    def _apply_query_prefix(self, texts: Sequence[str]) -> list[str]:
        prefix = self.profile.query_prefix
        if not prefix:
            return list(texts)
        prepared: list[str] = []
        for i, text in enumerate(texts):
            if text.startswith(prefix):
                prepared.append(text)
                continue
            prefixed = f"{prefix}{text}"
            if estimate_tokens(prefixed) > self.profile.max_item_tokens:
                # Prefix would push it over; send unprefixed
                logger.warning("embedding.prefix_skipped", index=i, model=self.model_id)
                prepared.append(text)
            else:
                prepared.append(prefixed)
        return prepared

    async def embed(self, texts: Sequence[str]) -> EmbeddingResponse:
        """Embed texts batch by batch.

        Raises:
            EmbeddingError: A batch failed fatally or exhausted its retries.
        """
        if not texts:
            return EmbeddingResponse(embeddings=[])

        prepared = self._apply_query_prefix(texts)
        plan = plan_batches(prepared, self.profile.max_item_tokens, self.profile.max_batch_tokens)
        self._stats.dropped_items += len(plan.dropped)

        embeddings: list[list[float]] = []
        prompt_tokens = 0
        total_tokens = 0
        for batch in plan.batches:
            result = await self._embed_batch([prepared[i] for i in batch])
            if len(result.embeddings) != len(batch):
                self._stats.batches_failed += 1
                raise EmbeddingError.invalid_response(
                    self.profile.name,
                    f"expected {len(batch)} embeddings, got {len(result.embeddings)}",
                )
            embeddings.extend(result.embeddings)
            prompt_tokens += result.usage.prompt_tokens
            total_tokens += result.usage.total_tokens

        self._stats.prompt_tokens += prompt_tokens
        self._stats.total_tokens += total_tokens
        logger.debug(
            "embedding.complete",
            texts=len(texts),
            batches=len(plan.batches),
            dropped=len(plan.dropped),
            total_tokens=total_tokens,
        )
        return EmbeddingResponse(
            embeddings=embeddings,
            usage=EmbeddingUsage(prompt_tokens=prompt_tokens, total_tokens=total_tokens),
            dropped=plan.dropped,
        )

    def _is_retryable(self, exc: BaseException) -> bool:
        return self.profile.classify(exc) is not RetryKind.FATAL

    def _before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        self._stats.retries += 1
        log_embedding_retry(retry_state)

    async def _embed_batch(self, batch: list[str]) -> EmbeddingBatchResult:
        self._stats.batches_submitted += 1
        retrying = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(self._is_retryable),
            stop=tenacity.stop_after_attempt(self.profile.max_retries),
            wait=BackoffWait(self.profile, jitter=self._jitter),
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )
        last_kind: RetryKind | None = None
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        result = await self.provider.embed(batch, self.model_id)
                    except Exception as e:
                        last_kind = self.profile.classify(e)
                        if last_kind is RetryKind.RATE_LIMIT:
                            self._stats.rate_limit_hits += 1
                        raise
        except Exception as e:
            self._stats.batches_failed += 1
            if last_kind is None or last_kind is RetryKind.FATAL:
                raise
            rate_limited = last_kind is RetryKind.RATE_LIMIT
            logger.error(
                "embedding.retries_exhausted",
                provider=self.profile.name,
                attempts=self.profile.max_retries,
                rate_limited=rate_limited,
                error=str(e),
            )
            raise EmbeddingError.retries_exhausted(
                self.profile.name,
                self.profile.max_retries,
                str(e),
                rate_limited=rate_limited,
                hint=self.profile.rate_limit_hint if rate_limited else None,
            ) from e
        return result
