"""Tests for error classification and backoff."""

from __future__ import annotations

import httpx
import pytest

from codeindex.core.errors import EmbeddingError
from codeindex.index.embedding.retry import RetryKind, classify_error, is_retryable_httpx_error


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.example.com/embeddings")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class _StatusError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"status {status}")
        self.status = status


class TestClassifyError:
    """Every failure lands in exactly one kind."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (EmbeddingError.rate_limited("P", "x"), RetryKind.RATE_LIMIT),
            (EmbeddingError.transient("P", "x"), RetryKind.TRANSIENT),
            (EmbeddingError.auth_failed("P", "x"), RetryKind.FATAL),
            (EmbeddingError.quota_exceeded("P", "x"), RetryKind.FATAL),
            (EmbeddingError.request_rejected("P", "x", 400), RetryKind.FATAL),
        ],
    )
    def test_typed_errors(self, error: EmbeddingError, expected: RetryKind) -> None:
        assert classify_error(error) is expected

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (429, RetryKind.RATE_LIMIT),
            (500, RetryKind.TRANSIENT),
            (503, RetryKind.TRANSIENT),
            (400, RetryKind.FATAL),
            (401, RetryKind.FATAL),
        ],
    )
    def test_status_codes(self, status: int, expected: RetryKind) -> None:
        assert classify_error(_status_error(status)) is expected
        assert classify_error(_StatusError(status)) is expected

    @pytest.mark.parametrize(
        "message",
        ["Rate limit reached for requests", "Too Many Requests", "You hit quota exceeded"],
    )
    def test_rate_limit_messages(self, message: str) -> None:
        assert classify_error(RuntimeError(message)) is RetryKind.RATE_LIMIT

    @pytest.mark.parametrize("message", ["read ECONNRESET", "getaddrinfo ENOTFOUND host"])
    def test_transient_messages(self, message: str) -> None:
        assert classify_error(RuntimeError(message)) is RetryKind.TRANSIENT

    def test_builtin_network_errors_are_transient(self) -> None:
        assert classify_error(TimeoutError()) is RetryKind.TRANSIENT
        assert classify_error(ConnectionResetError()) is RetryKind.TRANSIENT

    def test_unknown_error_is_fatal(self) -> None:
        assert classify_error(ValueError("invalid input")) is RetryKind.FATAL


class TestIsRetryableHttpxError:
    def test_timeouts_and_network_errors_retryable(self) -> None:
        request = httpx.Request("POST", "https://api.example.com")

        assert is_retryable_httpx_error(httpx.ReadTimeout("slow", request=request))
        assert is_retryable_httpx_error(httpx.ConnectError("refused", request=request))
        assert is_retryable_httpx_error(httpx.RemoteProtocolError("bad", request=request))

    def test_other_errors_not_retryable(self) -> None:
        assert not is_retryable_httpx_error(httpx.UnsupportedProtocol("ftp"))
        assert not is_retryable_httpx_error(ValueError("x"))
