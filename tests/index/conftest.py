"""Shared fixtures and fakes for index tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

import pytest

from codeindex.index.cache import ContentCache
from codeindex.index.embedding.batcher import EmbeddingBatcher
from codeindex.index.embedding.profiles import ProviderProfile
from codeindex.index.events import (
    BatchProcessingSummary,
    BatchProgressUpdate,
    Disposable,
    EventEmitter,
)
from codeindex.index.interfaces import EmbeddingBatchResult, EmbeddingUsage, VectorPoint
from codeindex.index.orchestrator import CodeIndexOrchestrator
from codeindex.index.pipeline import CodeBlock, IndexingPipeline, PipelineScanner, SourceFile
from codeindex.index.state import IndexingStateManager


class FakeEmbeddingProvider:
    """Records every call; fails from a scripted queue or always."""

    def __init__(
        self,
        failures: list[BaseException] | None = None,
        fail_always: BaseException | None = None,
    ) -> None:
        self.failures = list(failures or [])
        self.fail_always = fail_always
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str], model: str) -> EmbeddingBatchResult:
        self.calls.append(list(texts))
        if self.fail_always is not None:
            raise self.fail_always
        if self.failures:
            raise self.failures.pop(0)
        return EmbeddingBatchResult(
            embeddings=[[float(len(text)), float(i), 1.0] for i, text in enumerate(texts)],
            usage=EmbeddingUsage(prompt_tokens=2 * len(texts), total_tokens=2 * len(texts)),
        )

    @property
    def texts_embedded(self) -> int:
        return sum(len(call) for call in self.calls)


class FakeVectorStore:
    """In-memory collection keyed by point id."""

    def __init__(self, *, fail_initialize: int = 0) -> None:
        self.points: dict[str, VectorPoint] = {}
        self.collection_exists = False
        self.fail_initialize = fail_initialize
        self.fail_clear = False
        self.fail_delete_collection = False
        self.initialize_calls = 0
        self.clear_calls = 0
        self.delete_collection_calls = 0
        self.deleted_paths: list[str] = []

    async def initialize(self) -> bool:
        self.initialize_calls += 1
        if self.fail_initialize > 0:
            self.fail_initialize -= 1
            raise ConnectionError("vector store unreachable")
        created = not self.collection_exists
        self.collection_exists = True
        return created

    async def upsert_points(self, points: Sequence[VectorPoint]) -> None:
        for point in points:
            self.points[point.id] = point

    async def delete_points_by_file_paths(self, paths: Sequence[str]) -> None:
        self.deleted_paths.extend(paths)
        doomed = {pid for pid, p in self.points.items() if p.payload["file_path"] in paths}
        for pid in doomed:
            del self.points[pid]

    async def clear_collection(self) -> None:
        self.clear_calls += 1
        if self.fail_clear:
            raise ConnectionError("clear failed")
        self.points.clear()

    async def delete_collection(self) -> None:
        self.delete_collection_calls += 1
        if self.fail_delete_collection:
            raise ConnectionError("delete failed")
        self.points.clear()
        self.collection_exists = False

    def paths(self) -> set[str]:
        return {p.payload["file_path"] for p in self.points.values()}


class FakeFileWatcher:
    """Watcher whose events are fired by the test."""

    def __init__(self, *, fail_initialize: bool = False) -> None:
        self.fail_initialize = fail_initialize
        self.initialize_calls = 0
        self.dispose_calls = 0
        self.started: EventEmitter[list[str]] = EventEmitter("watcher_start")
        self.progress: EventEmitter[BatchProgressUpdate] = EventEmitter("watcher_progress")
        self.finished: EventEmitter[BatchProcessingSummary] = EventEmitter("watcher_finished")

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.fail_initialize:
            raise RuntimeError("watcher failed to start")

    def on_did_start_batch_processing(self, listener: Callable[[list[str]], None]) -> Disposable:
        return self.started.subscribe(listener)

    def on_batch_progress_update(
        self, listener: Callable[[BatchProgressUpdate], None]
    ) -> Disposable:
        return self.progress.subscribe(listener)

    def on_did_finish_batch_processing(
        self, listener: Callable[[BatchProcessingSummary], None]
    ) -> Disposable:
        return self.finished.subscribe(listener)

    def dispose(self) -> None:
        self.dispose_calls += 1

    @property
    def subscriber_count(self) -> int:
        return (
            self.started.listener_count
            + self.progress.listener_count
            + self.finished.listener_count
        )


def make_source_file(path: str, content: str, lines_per_block: int = 2) -> SourceFile:
    """Slice content into fixed-size line blocks."""
    lines = content.splitlines()
    blocks = [
        CodeBlock(
            file_path=path,
            start_line=start + 1,
            end_line=min(start + lines_per_block, len(lines)),
            content="\n".join(lines[start : start + lines_per_block]),
        )
        for start in range(0, len(lines), lines_per_block)
    ]
    return SourceFile(path=path, content=content, blocks=blocks)


def make_workspace_files(count: int = 5) -> list[SourceFile]:
    return [
        make_source_file(f"src/module_{i}.py", f"def f{i}():\n    return {i}\n\nx{i} = {i}\n")
        for i in range(count)
    ]


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], Awaitable[None]]:
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def profile() -> ProviderProfile:
    return ProviderProfile(name="Fake", max_item_tokens=100, max_batch_tokens=1000)


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def watcher() -> FakeFileWatcher:
    return FakeFileWatcher()


@pytest.fixture
def cache(tmp_path: Path) -> ContentCache:
    return ContentCache(
        tmp_path / "workspace",
        tmp_path / "cache",
        hash_debounce_sec=0.01,
        progress_debounce_sec=0.01,
    )


@pytest.fixture
def batcher(
    provider: FakeEmbeddingProvider,
    profile: ProviderProfile,
    fake_sleep: Callable[[float], Awaitable[None]],
) -> EmbeddingBatcher:
    return EmbeddingBatcher(
        provider, profile, "fake-model", sleep=fake_sleep, jitter=lambda _a, _b: 0.0
    )


@pytest.fixture
def pipeline(
    cache: ContentCache, batcher: EmbeddingBatcher, vector_store: FakeVectorStore
) -> IndexingPipeline:
    return IndexingPipeline(cache, batcher, vector_store, batch_segment_size=4)


@pytest.fixture
def workspace_files() -> list[SourceFile]:
    return make_workspace_files(5)


@pytest.fixture
def scanner(pipeline: IndexingPipeline, workspace_files: list[SourceFile]) -> PipelineScanner:
    return PipelineScanner(pipeline, lambda _workspace: list(workspace_files))


@pytest.fixture
def state_manager() -> IndexingStateManager:
    return IndexingStateManager()


@pytest.fixture
def configured() -> dict[str, bool]:
    """Mutable feature gate."""
    return {"value": True}


@pytest.fixture
def orchestrator(
    configured: dict[str, bool],
    state_manager: IndexingStateManager,
    tmp_path: Path,
    cache: ContentCache,
    vector_store: FakeVectorStore,
    scanner: PipelineScanner,
    watcher: FakeFileWatcher,
) -> CodeIndexOrchestrator:
    return CodeIndexOrchestrator(
        lambda: configured["value"],
        state_manager,
        tmp_path / "workspace",
        cache,
        vector_store,
        scanner,
        watcher,
    )
