"""Index orchestrator: initial scan, failure-rate policy, watcher lifecycle.

Flow of start_indexing():
    vector_store.initialize() -> (fresh collection) cache.clear_cache_file()
    -> scanner.scan() with progress callbacks -> evaluate_scan()
    -> file watcher started -> Indexed

Any exception in that flow ends in the Error state after best-effort
cleanup; start_indexing() itself never raises under normal operation.
Per-batch failures are collected as BatchFailure records, not raised,
and judged once the scan is over.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from codeindex.core.errors import CodeIndexError, EmbeddingError, ErrorCode, IndexingError
from codeindex.core.logging import clear_run_id, set_run_id
from codeindex.index.cache import ContentCache
from codeindex.index.events import BatchProcessingSummary, BatchProgressUpdate, Disposable
from codeindex.index.interfaces import FileWatcher, Scanner, VectorStore
from codeindex.index.state import IndexingState, IndexingStateManager

logger = structlog.get_logger()


# =============================================================================
# Failure policy
# =============================================================================


class FailureKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    QUOTA = "quota"
    TRANSIENT = "transient"
    OTHER = "other"


GUIDANCE: dict[FailureKind, str] = {
    FailureKind.RATE_LIMIT: (
        "The API rate limit was exceeded. Try again in a few minutes, or consider using "
        "a smaller embedding model like text-embedding-3-small for large codebases."
    ),
    FailureKind.AUTH: "Check your API key configuration in the settings.",
    FailureKind.QUOTA: "Check your embedding provider account billing and usage limits.",
}


@dataclass(frozen=True)
class BatchFailure:
    kind: FailureKind
    message: str
    batch_id: str | None = None


@dataclass(frozen=True)
class FailurePolicy:
    """Block failure-rate thresholds applied after a scan."""

    warn_failure_rate: float = 0.1
    fatal_failure_rate: float = 0.5


class ScanOutcome(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass(frozen=True)
class ScanVerdict:
    outcome: ScanOutcome
    message: str
    failure_rate: float = 0.0
    error: IndexingError | None = None


def _error_chain(error: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = error
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__
    return chain


def classify_failure(error: BaseException) -> FailureKind:
    """Classify a batch failure by its typed cause, falling back to its text."""
    for exc in _error_chain(error):
        if not isinstance(exc, EmbeddingError):
            continue
        if exc.code is ErrorCode.EMBED_RATE_LIMITED:
            return FailureKind.RATE_LIMIT
        if exc.code is ErrorCode.EMBED_AUTH_FAILED:
            return FailureKind.AUTH
        if exc.code is ErrorCode.EMBED_QUOTA_EXCEEDED:
            return FailureKind.QUOTA
        if exc.code is ErrorCode.EMBED_RETRIES_EXHAUSTED:
            if exc.details.get("rate_limited"):
                return FailureKind.RATE_LIMIT
            return FailureKind.TRANSIENT
        if exc.code is ErrorCode.EMBED_TRANSIENT:
            return FailureKind.TRANSIENT

    text = " ".join(str(exc) for exc in _error_chain(error)).lower()
    if "rate limit" in text or "429" in text:
        return FailureKind.RATE_LIMIT
    if "authentication" in text or "401" in text:
        return FailureKind.AUTH
    if "quota" in text or "billing" in text:
        return FailureKind.QUOTA
    return FailureKind.OTHER


def _failure_message(error: BaseException) -> str:
    if isinstance(error, CodeIndexError):
        return error.message
    return str(error) or type(error).__name__


def evaluate_scan(
    found: int,
    indexed: int,
    failures: list[BatchFailure],
    policy: FailurePolicy,
) -> ScanVerdict:
    """Judge a finished scan from its block counters and collected failures."""
    if found <= 0:
        return ScanVerdict(ScanOutcome.OK, "Scan complete. No code blocks found.")

    failure_rate = (found - indexed) / found

    if indexed == 0:
        if failures:
            first = failures[0]
            error = IndexingError.no_blocks_indexed(first.message, GUIDANCE.get(first.kind))
        else:
            error = IndexingError.no_blocks_indexed(
                "No code blocks were successfully indexed. "
                "This usually indicates an embedder configuration issue.",
                "Verify your API settings and try again.",
            )
        return ScanVerdict(ScanOutcome.FATAL, error.message, failure_rate, error)

    if failures:
        if failure_rate > policy.fatal_failure_rate:
            error = IndexingError.mostly_failed(indexed, found, failures[0].message)
            return ScanVerdict(ScanOutcome.FATAL, error.message, failure_rate, error)
        if failure_rate > policy.warn_failure_rate:
            return ScanVerdict(
                ScanOutcome.DEGRADED,
                f"Indexing completed with warnings: {indexed}/{found} blocks indexed. "
                "Some files may have been skipped due to API issues.",
                failure_rate,
            )

    return ScanVerdict(
        ScanOutcome.OK, f"Scan complete. {indexed}/{found} blocks indexed.", failure_rate
    )


@dataclass
class ScanProgress:
    """Block counters and failures for one scan, updated under a lock."""

    blocks_found: int = 0
    blocks_indexed: int = 0
    failures: list[BatchFailure] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_found(self, count: int) -> tuple[int, int]:
        with self._lock:
            self.blocks_found += count
            return self.blocks_indexed, self.blocks_found

    def add_indexed(self, count: int) -> tuple[int, int]:
        with self._lock:
            self.blocks_indexed += count
            return self.blocks_indexed, self.blocks_found

    def add_failure(self, failure: BatchFailure) -> int:
        with self._lock:
            self.failures.append(failure)
            return len(self.failures)

    def snapshot(self) -> tuple[int, int, list[BatchFailure]]:
        with self._lock:
            return self.blocks_found, self.blocks_indexed, list(self.failures)


# =============================================================================
# Orchestrator
# =============================================================================


class CodeIndexOrchestrator:
    """Drives one workspace's scan and watcher through the state machine."""

    def __init__(
        self,
        is_feature_configured: Callable[[], bool],
        state_manager: IndexingStateManager,
        workspace_path: str | Path,
        cache: ContentCache,
        vector_store: VectorStore,
        scanner: Scanner,
        file_watcher: FileWatcher,
        *,
        policy: FailurePolicy | None = None,
    ) -> None:
        self._is_feature_configured = is_feature_configured
        self.state_manager = state_manager
        self.workspace_path = Path(workspace_path)
        self.cache = cache
        self.vector_store = vector_store
        self.scanner = scanner
        self.file_watcher = file_watcher
        self.policy = policy or FailurePolicy()
        self._subscriptions: list[Disposable] = []
        self._is_processing = False

    @property
    def state(self) -> IndexingState:
        return self.state_manager.state

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def _set_standby(self, message: str) -> None:
        if self.state_manager.state is IndexingState.ERROR:
            self.state_manager.reset_from_error()
        self.state_manager.set_system_state(IndexingState.STANDBY, message)

    async def start_indexing(self) -> None:
        """Run the initial scan and start the watcher. Never raises."""
        if self._is_processing:
            logger.warning(
                "orchestrator.start_rejected",
                reason="busy",
                state=self.state_manager.state.value,
            )
            return

        if not self._is_feature_configured():
            self._set_standby("Missing configuration. Save your settings to start indexing.")
            logger.warning("orchestrator.start_rejected", reason="not_configured")
            return

        if not self.state_manager.can_start_indexing():
            logger.warning(
                "orchestrator.start_rejected",
                reason="state",
                state=self.state_manager.state.value,
            )
            return

        if self.state_manager.state is IndexingState.ERROR:
            logger.info("orchestrator.restart_from_error")
            self._set_standby("Restarting indexing...")

        self._is_processing = True
        run_id = set_run_id()
        logger.info("orchestrator.start", workspace=str(self.workspace_path), run_id=run_id)
        try:
            self.state_manager.set_system_state(IndexingState.INDEXING, "Initializing services...")
            await self._run_initial_scan()
        except Exception as e:
            await self._handle_failure(e)
        finally:
            self._is_processing = False
            clear_run_id()

    async def _run_initial_scan(self) -> None:
        collection_created = await self.vector_store.initialize()
        if collection_created:
            await self.cache.clear_cache_file()
        self.cache.clear_progress()

        self.state_manager.set_system_state(
            IndexingState.INDEXING, "Services ready. Starting workspace scan..."
        )

        progress = ScanProgress()

        def on_file_parsed(block_count: int) -> None:
            indexed, found = progress.add_found(block_count)
            self.state_manager.report_block_indexing_progress(indexed, found)
            self.cache.update_progress(indexed, found)

        def on_blocks_indexed(count: int) -> None:
            indexed, found = progress.add_indexed(count)
            self.state_manager.report_block_indexing_progress(indexed, found)
            self.cache.update_progress(indexed, found)

        def on_batch_error(error: IndexingError) -> None:
            failure = BatchFailure(
                kind=classify_failure(error),
                message=_failure_message(error.__cause__ or error),
                batch_id=error.details.get("batch_id"),
            )
            seq = progress.add_failure(failure)
            logger.error(
                "orchestrator.batch_failed",
                batch_id=failure.batch_id,
                kind=failure.kind.value,
                error=failure.message,
            )
            self.cache.record_failed_batch(failure.batch_id or f"batch-{seq}", failure.message)

        result = await self.scanner.scan(
            str(self.workspace_path), on_batch_error, on_blocks_indexed, on_file_parsed
        )
        if result is None:
            raise IndexingError.scan_failed("scanner returned no result, is it initialized?")

        found, indexed, failures = progress.snapshot()
        verdict = evaluate_scan(found, indexed, failures, self.policy)
        if verdict.outcome is ScanOutcome.FATAL and verdict.error is not None:
            raise verdict.error
        if verdict.outcome is ScanOutcome.DEGRADED:
            logger.warning(
                "orchestrator.partial_failure",
                blocks_found=found,
                blocks_indexed=indexed,
                failure_rate=round(verdict.failure_rate, 3),
                first_error=failures[0].message,
            )

        await self._start_watcher()

        final_message = (
            verdict.message if verdict.outcome is ScanOutcome.DEGRADED else "File watcher started."
        )
        self.state_manager.set_system_state(IndexingState.INDEXED, final_message)
        logger.info(
            "orchestrator.indexing_complete",
            blocks_found=found,
            blocks_indexed=indexed,
            failed_batches=len(failures),
            outcome=verdict.outcome.value,
        )

    async def _handle_failure(self, error: Exception) -> None:
        logger.error("orchestrator.indexing_failed", error=str(error), exc_info=error)
        try:
            await self.vector_store.clear_collection()
        except Exception as cleanup_error:
            logger.error(
                "orchestrator.cleanup_failed", target="vector_store", error=str(cleanup_error)
            )
        try:
            await self.cache.clear_cache_file()
        except Exception as cleanup_error:
            logger.error("orchestrator.cleanup_failed", target="cache", error=str(cleanup_error))

        message = _failure_message(error) if str(error) else "Unknown error"
        self.state_manager.set_system_state(
            IndexingState.ERROR, f"Failed during initial scan: {message}"
        )
        self.stop_watcher()

    # -- watcher ----------------------------------------------------------

    async def _start_watcher(self) -> None:
        self.state_manager.set_system_state(IndexingState.INDEXING, "Initializing file watcher...")
        await self.file_watcher.initialize()
        # A restart from Indexed re-enters here with live subscriptions
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = [
            self.file_watcher.on_did_start_batch_processing(self._on_batch_start),
            self.file_watcher.on_batch_progress_update(self._on_batch_progress),
            self.file_watcher.on_did_finish_batch_processing(self._on_batch_finished),
        ]
        logger.info("orchestrator.watcher_started", workspace=str(self.workspace_path))

    def _on_batch_start(self, paths: list[str]) -> None:
        logger.debug("orchestrator.watcher_batch_started", files=len(paths))

    def _on_batch_progress(self, update: BatchProgressUpdate) -> None:
        sm = self.state_manager
        if update.total_in_batch > 0 and sm.state is not IndexingState.INDEXING:
            sm.set_system_state(IndexingState.INDEXING, "Processing file changes...")

        current = Path(update.current_file).name if update.current_file else None
        sm.report_file_queue_progress(update.processed_in_batch, update.total_in_batch, current)

        if update.processed_in_batch == update.total_in_batch:
            if update.total_in_batch > 0:
                sm.set_system_state(
                    IndexingState.INDEXED, "File changes processed. Index up-to-date."
                )
            elif sm.state is IndexingState.INDEXING:
                sm.set_system_state(IndexingState.INDEXED, "Index up-to-date. File queue empty.")

    def _on_batch_finished(self, summary: BatchProcessingSummary) -> None:
        if summary.error:
            logger.error("orchestrator.watcher_batch_failed", error=summary.error)
            return
        logger.info(
            "orchestrator.watcher_batch_finished",
            success_count=summary.success_count,
            error_count=summary.error_count,
        )

    def stop_watcher(self) -> None:
        """Dispose the watcher and its subscriptions. Error state is kept."""
        self.file_watcher.dispose()
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []

        if self.state_manager.state is not IndexingState.ERROR:
            self.state_manager.set_system_state(IndexingState.STANDBY, "File watcher stopped.")

    async def clear_index_data(self) -> None:
        """Stop watching, drop the collection and empty the cache.

        Refused while a scan or another clear is running; the active run
        owns the processing flag and would write into the cleared stores.
        """
        if self._is_processing:
            logger.warning(
                "orchestrator.clear_rejected",
                reason="busy",
                state=self.state_manager.state.value,
            )
            return

        self._is_processing = True
        try:
            self.stop_watcher()

            if self._is_feature_configured():
                try:
                    await self.vector_store.delete_collection()
                except Exception as e:
                    logger.error("orchestrator.clear_collection_failed", error=str(e))
                    self.state_manager.set_system_state(
                        IndexingState.ERROR,
                        f"Failed to clear vector collection: {_failure_message(e)}",
                    )
            else:
                logger.warning("orchestrator.clear_skipped", reason="not_configured")

            await self.cache.clear_all()

            if self.state_manager.state is not IndexingState.ERROR:
                self.state_manager.set_system_state(
                    IndexingState.STANDBY, "Index data cleared successfully."
                )
        finally:
            self._is_processing = False
