"""Tests for CodeIndexManager and ManagerRegistry."""

from __future__ import annotations

from pathlib import Path

import pytest

from codeindex.config.models import CodeIndexConfig
from codeindex.index.cache import ContentCache
from codeindex.index.embedding.batcher import EmbeddingBatcher
from codeindex.index.embedding.profiles import ProviderProfile
from codeindex.index.manager import CodeIndexManager, CodeIndexServices, ManagerRegistry
from codeindex.index.pipeline import IndexingPipeline, PipelineScanner
from codeindex.index.state import IndexingState, IndexingStatus
from tests.index.conftest import (
    FakeEmbeddingProvider,
    FakeFileWatcher,
    FakeVectorStore,
    make_workspace_files,
)


def _config(tmp_path: Path, *, configured: bool = True) -> CodeIndexConfig:
    return CodeIndexConfig(
        embedder={"provider": "openai", "api_key": "sk-test" if configured else None},
        vector_store={"url": "http://localhost:6333"},
        cache={
            "storage_dir": str(tmp_path / "cache"),
            "hash_debounce_sec": 0.01,
            "progress_debounce_sec": 0.01,
        },
        indexing={"warn_failure_rate": 0.2, "fatal_failure_rate": 0.6},
    )


class _Services:
    """Services factory building a real pipeline over fake collaborators."""

    def __init__(self) -> None:
        self.provider = FakeEmbeddingProvider()
        self.vector_store = FakeVectorStore()
        self.watcher = FakeFileWatcher()
        self.calls = 0

    async def _no_sleep(self, _delay: float) -> None:
        return None

    def __call__(self, cache: ContentCache) -> CodeIndexServices:
        self.calls += 1
        profile = ProviderProfile(name="Fake", max_item_tokens=100, max_batch_tokens=1000)
        batcher = EmbeddingBatcher(self.provider, profile, "fake-model", sleep=self._no_sleep)
        pipeline = IndexingPipeline(cache, batcher, self.vector_store, batch_segment_size=4)
        files = make_workspace_files(3)
        return CodeIndexServices(
            vector_store=self.vector_store,
            scanner=PipelineScanner(pipeline, lambda _ws: files),
            file_watcher=self.watcher,
        )


class TestCodeIndexManager:
    """Lifecycle of one workspace's components."""

    @pytest.mark.asyncio
    async def test_given_uninitialized_when_start_then_raises(self, tmp_path: Path) -> None:
        manager = CodeIndexManager(tmp_path / "ws", _config(tmp_path), _Services())

        with pytest.raises(RuntimeError, match="not initialized"):
            await manager.start_indexing()

    @pytest.mark.asyncio
    async def test_given_configured_when_initialized_and_started_then_indexed(
        self, tmp_path: Path
    ) -> None:
        # Given
        services = _Services()
        manager = CodeIndexManager(tmp_path / "ws", _config(tmp_path), services)
        statuses: list[IndexingStatus] = []
        manager.on_progress_update(statuses.append)

        # When
        ready = await manager.initialize()
        await manager.start_indexing()

        # Then
        assert ready is True
        assert manager.is_initialized
        assert manager.state is IndexingState.INDEXED
        assert manager.status.message == "File watcher started."
        assert statuses[-1].state is IndexingState.INDEXED
        assert len(services.vector_store.points) == 6

        await manager.dispose()
        assert manager.cache.cache_path.exists()

    @pytest.mark.asyncio
    async def test_given_initialized_twice_then_services_built_once(
        self, tmp_path: Path
    ) -> None:
        services = _Services()
        manager = CodeIndexManager(tmp_path / "ws", _config(tmp_path), services)

        await manager.initialize()
        await manager.initialize()

        assert services.calls == 1

    @pytest.mark.asyncio
    async def test_given_missing_credentials_when_started_then_standby(
        self, tmp_path: Path
    ) -> None:
        # Given
        services = _Services()
        manager = CodeIndexManager(
            tmp_path / "ws", _config(tmp_path, configured=False), services
        )

        # When
        ready = await manager.initialize()
        await manager.start_indexing()

        # Then
        assert ready is False
        assert manager.state is IndexingState.STANDBY
        assert services.vector_store.initialize_calls == 0

    @pytest.mark.asyncio
    async def test_given_config_updated_when_started_then_gate_reads_new_config(
        self, tmp_path: Path
    ) -> None:
        """The feature gate is evaluated live, not captured at initialize."""
        # Given
        manager = CodeIndexManager(
            tmp_path / "ws", _config(tmp_path, configured=False), _Services()
        )
        await manager.initialize()

        # When
        manager.update_config(_config(tmp_path))
        await manager.start_indexing()

        # Then
        assert manager.is_feature_configured is True
        assert manager.state is IndexingState.INDEXED

    @pytest.mark.asyncio
    async def test_given_indexed_when_cleared_then_progress_reset(self, tmp_path: Path) -> None:
        manager = CodeIndexManager(tmp_path / "ws", _config(tmp_path), _Services())
        await manager.initialize()
        await manager.start_indexing()

        await manager.clear_index_data()

        assert manager.state is IndexingState.STANDBY
        assert manager.get_progress().last_indexed_block == 0
        assert manager.cache.get_all_hashes() == {}


class TestManagerRegistry:
    """Explicit workspace -> manager map."""

    def test_given_same_workspace_twice_then_same_manager(self, tmp_path: Path) -> None:
        # Given
        registry = ManagerRegistry()
        created: list[Path] = []

        def factory(path: Path) -> CodeIndexManager:
            created.append(path)
            return CodeIndexManager(path, _config(tmp_path), _Services())

        # When
        first = registry.get_or_create(tmp_path / "ws", factory)
        second = registry.get_or_create(tmp_path / "ws" / ".." / "ws", factory)

        # Then
        assert first is second
        assert len(created) == 1
        assert len(registry) == 1
        assert tmp_path / "ws" in registry
        assert 42 not in registry

    @pytest.mark.asyncio
    async def test_given_managers_when_dispose_all_then_empty(self, tmp_path: Path) -> None:
        registry = ManagerRegistry()
        for name in ("a", "b"):
            registry.get_or_create(
                tmp_path / name, lambda p: CodeIndexManager(p, _config(tmp_path), _Services())
            )

        await registry.dispose_all()

        assert len(registry) == 0
        assert registry.get(tmp_path / "a") is None

    @pytest.mark.asyncio
    async def test_given_manager_when_removed_then_disposed_and_forgotten(
        self, tmp_path: Path
    ) -> None:
        registry = ManagerRegistry()
        manager = registry.get_or_create(
            tmp_path / "ws", lambda p: CodeIndexManager(p, _config(tmp_path), _Services())
        )
        listener_calls: list[IndexingStatus] = []
        manager.on_progress_update(listener_calls.append)

        await registry.remove(tmp_path / "ws")
        manager.state_manager.set_system_state(IndexingState.INDEXING, "after dispose")

        assert tmp_path / "ws" not in registry
        assert listener_calls == []
