"""Error classification and backoff for embedding requests.

HTTPX errors are split the usual way: timeouts, network errors and a
server sending invalid HTTP are transient; anything else on the request
side is our bug or our config and propagates.

    RATE_LIMIT  429, or a "rate limit" / "too many requests" / "quota exceeded" message
    TRANSIENT   timeouts, connection resets, DNS failures, 5xx
    FATAL       auth, billing, malformed requests, other 4xx
"""

from __future__ import annotations

import random
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

import httpx
import structlog
import tenacity
from tenacity.wait import wait_base

from codeindex.core.errors import EmbeddingError, ErrorCode

if TYPE_CHECKING:
    from codeindex.index.embedding.profiles import ProviderProfile

logger = structlog.get_logger()

RATE_LIMIT_PATTERNS = ("rate limit", "too many requests", "quota exceeded", "429")
TRANSIENT_PATTERNS = ("econnreset", "etimedout", "enotfound", "connection reset", "timed out")


class RetryKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    FATAL = "fatal"


def is_retryable_httpx_error(exc: BaseException) -> bool:
    """Timeouts, network errors and RemoteProtocolError are worth retrying."""
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return isinstance(exc, httpx.RemoteProtocolError)


def _status_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: BaseException) -> RetryKind:
    """Map an exception from a provider call to a RetryKind."""
    if isinstance(exc, EmbeddingError):
        if exc.code is ErrorCode.EMBED_RATE_LIMITED:
            return RetryKind.RATE_LIMIT
        if exc.code is ErrorCode.EMBED_TRANSIENT:
            return RetryKind.TRANSIENT
        return RetryKind.FATAL

    if is_retryable_httpx_error(exc) or isinstance(exc, (TimeoutError, ConnectionError)):
        return RetryKind.TRANSIENT

    status = _status_of(exc)
    if status == 429:
        return RetryKind.RATE_LIMIT
    if status is not None and status >= 500:
        return RetryKind.TRANSIENT
    if status is not None:
        return RetryKind.FATAL

    message = str(exc).lower()
    if any(pattern in message for pattern in RATE_LIMIT_PATTERNS):
        return RetryKind.RATE_LIMIT
    if any(pattern in message for pattern in TRANSIENT_PATTERNS):
        return RetryKind.TRANSIENT
    return RetryKind.FATAL


class BackoffWait(wait_base):
    """Exponential backoff whose curve depends on the failure kind.

    Rate limit: rate_limit_delay * rate_limit_multiplier**(n-1) + uniform(0, jitter)
    Transient:  transient_delay * transient_multiplier**(n-1)

    n is the number of the attempt that just failed (1-based).
    """

    def __init__(
        self,
        profile: ProviderProfile,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.profile = profile
        self.jitter = jitter

    def __call__(self, retry_state: tenacity.RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        n = retry_state.attempt_number
        profile = self.profile
        if exc is not None and profile.classify(exc) is RetryKind.RATE_LIMIT:
            delay = profile.rate_limit_delay_sec * profile.rate_limit_multiplier ** (n - 1)
            return delay + self.jitter(0.0, profile.max_jitter_sec)
        return profile.transient_delay_sec * profile.transient_multiplier ** (n - 1)


def log_embedding_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log a failed attempt and the upcoming sleep."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "embedding.retry",
        attempt=retry_state.attempt_number,
        error_type=type(exc).__name__,
        error=str(exc),
        sleep_sec=round(sleep, 3),
    )
