"""Per-workspace wiring of cache, state machine and orchestrator.

There is no process-wide singleton: hosts that serve several workspaces
hold a ManagerRegistry and pass it where it is needed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from codeindex.config.models import CodeIndexConfig
from codeindex.index.cache import ContentCache, IndexingProgress
from codeindex.index.events import Disposable
from codeindex.index.interfaces import FileWatcher, Scanner, VectorStore
from codeindex.index.orchestrator import CodeIndexOrchestrator, FailurePolicy
from codeindex.index.state import IndexingState, IndexingStateManager, IndexingStatus

logger = structlog.get_logger()


@dataclass
class CodeIndexServices:
    """External collaborators for one workspace."""

    vector_store: VectorStore
    scanner: Scanner
    file_watcher: FileWatcher


ServicesFactory = Callable[[ContentCache], CodeIndexServices]


class CodeIndexManager:
    """Owns the indexing components of a single workspace."""

    def __init__(
        self,
        workspace_path: str | Path,
        config: CodeIndexConfig,
        services_factory: ServicesFactory,
    ) -> None:
        self.workspace_path = Path(workspace_path)
        self.config = config
        self.state_manager = IndexingStateManager()
        self.cache = ContentCache(
            self.workspace_path,
            config.cache.resolve_storage_dir(),
            hash_debounce_sec=config.cache.hash_debounce_sec,
            progress_debounce_sec=config.cache.progress_debounce_sec,
        )
        self._services_factory = services_factory
        self._orchestrator: CodeIndexOrchestrator | None = None

    @property
    def is_initialized(self) -> bool:
        return self._orchestrator is not None

    @property
    def is_feature_configured(self) -> bool:
        return self.config.is_feature_configured

    @property
    def state(self) -> IndexingState:
        return self.state_manager.state

    @property
    def status(self) -> IndexingStatus:
        return self.state_manager.status

    def get_progress(self) -> IndexingProgress:
        return self.cache.get_progress()

    def on_progress_update(self, listener: Callable[[IndexingStatus], None]) -> Disposable:
        return self.state_manager.on_progress_update(listener)

    def update_config(self, config: CodeIndexConfig) -> None:
        """Swap in new settings; the orchestrator's gate reads them live."""
        self.config = config
        if self._orchestrator is not None:
            self._orchestrator.policy = self._policy()

    def _policy(self) -> FailurePolicy:
        return FailurePolicy(
            warn_failure_rate=self.config.indexing.warn_failure_rate,
            fatal_failure_rate=self.config.indexing.fatal_failure_rate,
        )

    async def initialize(self) -> bool:
        """Load the cache and build the orchestrator.

        Returns:
            True if the feature is configured and indexing can be started.
        """
        if self._orchestrator is None:
            await self.cache.initialize()
            services = self._services_factory(self.cache)
            self._orchestrator = CodeIndexOrchestrator(
                lambda: self.config.is_feature_configured,
                self.state_manager,
                self.workspace_path,
                self.cache,
                services.vector_store,
                services.scanner,
                services.file_watcher,
                policy=self._policy(),
            )
            logger.info("manager.initialized", workspace=str(self.workspace_path))
        return self.config.is_feature_configured

    def _require_orchestrator(self) -> CodeIndexOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("CodeIndexManager not initialized. Call initialize() first.")
        return self._orchestrator

    async def start_indexing(self) -> None:
        await self._require_orchestrator().start_indexing()

    def stop_watcher(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.stop_watcher()

    async def clear_index_data(self) -> None:
        await self._require_orchestrator().clear_index_data()

    async def dispose(self) -> None:
        """Stop the watcher and flush pending cache writes."""
        self.stop_watcher()
        await self.cache.close()
        self.state_manager.dispose()
        logger.info("manager.disposed", workspace=str(self.workspace_path))


class ManagerRegistry:
    """Explicit workspace -> manager map."""

    def __init__(self) -> None:
        self._managers: dict[str, CodeIndexManager] = {}

    @staticmethod
    def _key(workspace_path: str | Path) -> str:
        return str(Path(workspace_path).expanduser().resolve())

    def get(self, workspace_path: str | Path) -> CodeIndexManager | None:
        return self._managers.get(self._key(workspace_path))

    def get_or_create(
        self,
        workspace_path: str | Path,
        factory: Callable[[Path], CodeIndexManager],
    ) -> CodeIndexManager:
        key = self._key(workspace_path)
        manager = self._managers.get(key)
        if manager is None:
            manager = factory(Path(key))
            self._managers[key] = manager
        return manager

    async def remove(self, workspace_path: str | Path) -> None:
        manager = self._managers.pop(self._key(workspace_path), None)
        if manager is not None:
            await manager.dispose()

    async def dispose_all(self) -> None:
        managers = list(self._managers.values())
        self._managers.clear()
        for manager in managers:
            await manager.dispose()

    def __len__(self) -> int:
        return len(self._managers)

    def __contains__(self, workspace_path: object) -> bool:
        if not isinstance(workspace_path, (str, Path)):
            return False
        return self._key(workspace_path) in self._managers
