"""Contracts for the collaborators the indexing engine drives.

The scanner, file watcher and vector store are supplied by the host; the
embedding provider is usually OpenAICompatibleProvider. Everything here is
structural (typing.Protocol) so test fakes need no base class.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from codeindex.core.errors import IndexingError
from codeindex.index.events import BatchProcessingSummary, BatchProgressUpdate, Disposable


@dataclass(frozen=True)
class EmbeddingUsage:
    prompt_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class EmbeddingBatchResult:
    """One provider call: vectors in input order plus token usage."""

    embeddings: list[list[float]]
    usage: EmbeddingUsage = field(default_factory=EmbeddingUsage)


@dataclass(frozen=True)
class ScanResult:
    """What a full scan saw."""

    blocks_found: int = 0
    blocks_indexed: int = 0
    files_processed: int = 0
    files_skipped: int = 0
    files_removed: int = 0


@dataclass(frozen=True)
class VectorPoint:
    """One stored embedding with its source payload."""

    id: str
    vector: list[float]
    payload: dict[str, Any]


class EmbeddingProvider(Protocol):
    """Remote embedding service. Raises EmbeddingError subclasses on failure."""

    async def embed(self, texts: Sequence[str], model: str) -> EmbeddingBatchResult: ...


class Scanner(Protocol):
    """Walks a workspace and indexes its blocks, reporting through callbacks.

    Per-batch failures go to on_batch_error and the scan keeps going.
    on_file_parsed fires before a file's blocks are embedded;
    on_blocks_indexed fires after each embedded and stored batch.
    """

    async def scan(
        self,
        workspace_path: str,
        on_batch_error: Callable[[IndexingError], None],
        on_blocks_indexed: Callable[[int], None],
        on_file_parsed: Callable[[int], None],
    ) -> ScanResult | None: ...


class FileWatcher(Protocol):
    """Watches the workspace and re-indexes changed files."""

    async def initialize(self) -> None: ...

    def on_did_start_batch_processing(
        self, listener: Callable[[list[str]], None]
    ) -> Disposable: ...

    def on_batch_progress_update(
        self, listener: Callable[[BatchProgressUpdate], None]
    ) -> Disposable: ...

    def on_did_finish_batch_processing(
        self, listener: Callable[[BatchProcessingSummary], None]
    ) -> Disposable: ...

    def dispose(self) -> None: ...


class VectorStore(Protocol):
    """Embedding storage for one workspace collection."""

    async def initialize(self) -> bool:
        """Prepare the collection. Returns True if it was freshly created."""
        ...

    async def upsert_points(self, points: Sequence[VectorPoint]) -> None: ...

    async def delete_points_by_file_paths(self, paths: Sequence[str]) -> None: ...

    async def clear_collection(self) -> None: ...

    async def delete_collection(self) -> None: ...
