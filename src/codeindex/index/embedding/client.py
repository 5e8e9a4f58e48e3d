"""OpenAI-compatible embedding client.

Thin wrapper around POST /embeddings. Handles API calls and error mapping
only; batching and retry live in EmbeddingBatcher. Gemini is reached
through its OpenAI-compatible endpoint, so one client covers every
configured provider.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx
import structlog

from codeindex.config.constants import DEFAULT_MODELS, GEMINI_BASE_URL, OPENAI_BASE_URL
from codeindex.config.models import EmbedderConfig
from codeindex.core.errors import ConfigError, EmbeddingError
from codeindex.index.embedding.batcher import EmbeddingBatcher
from codeindex.index.embedding.profiles import PROVIDER_NAMES, profile_for
from codeindex.index.embedding.retry import is_retryable_httpx_error
from codeindex.index.interfaces import EmbeddingBatchResult, EmbeddingUsage

logger = structlog.get_logger()

QUOTA_MARKERS = ("insufficient_quota", "billing", "quota")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    if isinstance(data, list) and data and isinstance(data[0], dict):
        # Gemini wraps errors in a list
        nested = data[0].get("error")
        if isinstance(nested, dict) and nested.get("message"):
            return str(nested["message"])
    return response.text[:200]


class OpenAICompatibleProvider:
    """Low-level embedding client for OpenAI-style APIs.

    Raises typed EmbeddingErrors so the batcher can tell rate limits,
    transient failures and fatal rejections apart.
    """

    def __init__(
        self,
        *,
        name: str,
        base_url: str,
        api_key: str | None = None,
        timeout_sec: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_sec,
            transport=transport,
        )

    async def embed(self, texts: Sequence[str], model: str) -> EmbeddingBatchResult:
        """Embed texts with one request.

        Raises:
            EmbeddingError: rate_limited / transient (retryable) or
                auth_failed / quota_exceeded / request_rejected / invalid_response.
        """
        body: dict[str, object] = {
            "model": model,
            "input": list(texts),
            "encoding_format": "float",
        }
        try:
            response = await self._client.post("/embeddings", json=body)
        except httpx.HTTPError as e:
            reason = str(e) or type(e).__name__
            if is_retryable_httpx_error(e):
                raise EmbeddingError.transient(self.name, reason) from e
            raise EmbeddingError.request_rejected(self.name, reason) from e

        if response.is_error:
            raise self._status_error(response)

        try:
            data: dict[str, Any] = response.json()
            # Sort by index to ensure order matches input
            items = sorted(data["data"], key=lambda x: x["index"])
            embeddings = [list(item["embedding"]) for item in items]
            usage = data.get("usage") or {}
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingError.invalid_response(self.name, f"{type(e).__name__}: {e}") from e

        return EmbeddingBatchResult(
            embeddings=embeddings,
            usage=EmbeddingUsage(
                prompt_tokens=int(usage.get("prompt_tokens", 0)),
                total_tokens=int(usage.get("total_tokens", 0)),
            ),
        )

    def _status_error(self, response: httpx.Response) -> EmbeddingError:
        status = response.status_code
        detail = _error_detail(response)
        lowered = f"{detail} {response.text[:500]}".lower()

        if status == 429:
            # OpenAI reports exhausted credit as a 429
            if "insufficient_quota" in lowered:
                return EmbeddingError.quota_exceeded(self.name, detail, status)
            return EmbeddingError.rate_limited(self.name, detail, status)
        if status in (401, 403):
            return EmbeddingError.auth_failed(self.name, detail, status)
        if status == 402 or any(marker in lowered for marker in QUOTA_MARKERS):
            return EmbeddingError.quota_exceeded(self.name, detail, status)
        if status >= 500:
            return EmbeddingError.transient(self.name, f"HTTP {status}: {detail}", status)
        return EmbeddingError.request_rejected(self.name, f"HTTP {status}: {detail}", status)

    async def validate_configuration(self, model: str) -> tuple[bool, str | None]:
        """Send a one-item request. Returns (valid, error message)."""
        try:
            await self.embed(["test"], model)
        except EmbeddingError as e:
            logger.warning("embedding.validation_failed", provider=self.name, error=e.message)
            return False, e.message
        return True, None

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> OpenAICompatibleProvider:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()


def resolve_model_id(config: EmbedderConfig) -> str:
    return config.model_id or DEFAULT_MODELS[config.provider]


def create_provider(
    config: EmbedderConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OpenAICompatibleProvider:
    """Build the HTTP client for the configured provider."""
    if config.provider == "openai-compatible":
        if not config.base_url:
            raise ConfigError.missing_required("embedder.base_url")
        base_url = config.base_url
    else:
        if not config.api_key:
            raise ConfigError.missing_required("embedder.api_key")
        base_url = config.base_url or (
            GEMINI_BASE_URL if config.provider == "gemini" else OPENAI_BASE_URL
        )

    return OpenAICompatibleProvider(
        name=PROVIDER_NAMES[config.provider],
        base_url=base_url,
        api_key=config.api_key,
        timeout_sec=config.timeout_sec,
        transport=transport,
    )


def create_batcher(
    config: EmbedderConfig,
    provider: OpenAICompatibleProvider,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    jitter: Callable[[float, float], float] = random.uniform,
) -> EmbeddingBatcher:
    model_id = resolve_model_id(config)
    return EmbeddingBatcher(
        provider,
        profile_for(config.provider, model_id),
        model_id,
        sleep=sleep,
        jitter=jitter,
    )
