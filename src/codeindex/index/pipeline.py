"""Embed, store and record: the path every indexed file goes through.

Both the initial scan and watcher-driven updates feed SourceFiles through
IndexingPipeline.index_files(). Unchanged files (content hash already in
the cache) are skipped before any provider call. Changed files are
collected into segments; each segment is embedded, its files' old points
are deleted, the new points are upserted and only then are the cache
hashes updated. A failing segment is reported and the run continues.
"""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

import httpx
import structlog

from codeindex.config.models import CodeIndexConfig
from codeindex.core.errors import IndexingError
from codeindex.index.cache import ContentCache
from codeindex.index.embedding.batcher import EmbeddingBatcher
from codeindex.index.embedding.client import create_batcher, create_provider
from codeindex.index.interfaces import ScanResult, VectorPoint, VectorStore

logger = structlog.get_logger()

# Fixed namespace so point ids are stable across runs and processes
POINT_NAMESPACE = uuid.UUID("5f1f7d0e-2b8a-4c1e-9a55-6c0de1d3e4a7")


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CodeBlock:
    """A slice of a source file; the unit of embedding."""

    file_path: str
    start_line: int
    end_line: int
    content: str
    kind: str | None = None

    @property
    def segment_hash(self) -> str:
        return content_hash(f"{self.file_path}:{self.start_line}:{self.end_line}:{self.content}")

    @property
    def point_id(self) -> str:
        key = f"{self.file_path}:{self.start_line}:{self.segment_hash}"
        return str(uuid.uuid5(POINT_NAMESPACE, key))


@dataclass(frozen=True)
class SourceFile:
    """A file's full text and the blocks the scanner cut from it."""

    path: str
    content: str
    blocks: list[CodeBlock] = field(default_factory=list)

    @property
    def file_hash(self) -> str:
        return content_hash(self.content)


@dataclass
class PipelineStats:
    files_seen: int = 0
    files_skipped: int = 0
    files_indexed: int = 0
    blocks_found: int = 0
    blocks_indexed: int = 0
    blocks_dropped: int = 0
    blocks_failed: int = 0
    segments_failed: int = 0


class IndexingPipeline:
    """Turns changed SourceFiles into stored vectors and cache hashes."""

    def __init__(
        self,
        cache: ContentCache,
        batcher: EmbeddingBatcher,
        vector_store: VectorStore,
        *,
        batch_segment_size: int = 60,
    ) -> None:
        self.cache = cache
        self.batcher = batcher
        self.vector_store = vector_store
        self.batch_segment_size = batch_segment_size
        self._segment_seq = 0

    async def index_files(
        self,
        files: Iterable[SourceFile],
        on_batch_error: Callable[[IndexingError], None] | None = None,
        on_blocks_indexed: Callable[[int], None] | None = None,
        on_file_parsed: Callable[[int], None] | None = None,
    ) -> PipelineStats:
        stats = PipelineStats()
        pending: list[tuple[SourceFile, str]] = []
        pending_blocks = 0

        for source in files:
            stats.files_seen += 1
            file_hash = source.file_hash
            if self.cache.get_hash(source.path) == file_hash:
                stats.files_skipped += 1
                continue

            if on_file_parsed is not None:
                on_file_parsed(len(source.blocks))
            stats.blocks_found += len(source.blocks)
            pending.append((source, file_hash))
            pending_blocks += len(source.blocks)

            # A file never spans two segments
            if pending_blocks >= self.batch_segment_size:
                await self._process_segment(pending, stats, on_batch_error, on_blocks_indexed)
                pending, pending_blocks = [], 0

        if pending:
            await self._process_segment(pending, stats, on_batch_error, on_blocks_indexed)

        logger.info(
            "pipeline.complete",
            files_seen=stats.files_seen,
            files_skipped=stats.files_skipped,
            blocks_indexed=stats.blocks_indexed,
            blocks_failed=stats.blocks_failed,
        )
        return stats

    async def _process_segment(
        self,
        pending: list[tuple[SourceFile, str]],
        stats: PipelineStats,
        on_batch_error: Callable[[IndexingError], None] | None,
        on_blocks_indexed: Callable[[int], None] | None,
    ) -> None:
        self._segment_seq += 1
        segment_id = f"segment-{self._segment_seq}"
        blocks = [block for source, _ in pending for block in source.blocks]
        paths = [source.path for source, _ in pending]

        try:
            points: list[VectorPoint] = []
            if blocks:
                response = await self.batcher.embed([block.content for block in blocks])
                stats.blocks_dropped += len(response.dropped)
                for block, vector in zip(blocks, response.aligned(len(blocks)), strict=True):
                    if vector is None:
                        continue
                    points.append(
                        VectorPoint(
                            id=block.point_id,
                            vector=vector,
                            payload={
                                "file_path": block.file_path,
                                "start_line": block.start_line,
                                "end_line": block.end_line,
                                "code_chunk": block.content,
                                "segment_hash": block.segment_hash,
                            },
                        )
                    )

            stale = [path for path in paths if self.cache.get_hash(path) is not None]
            if stale:
                await self.vector_store.delete_points_by_file_paths(stale)
            if points:
                await self.vector_store.upsert_points(points)
        except Exception as e:
            stats.segments_failed += 1
            stats.blocks_failed += len(blocks)
            error = IndexingError.batch_failed(segment_id, str(e), paths)
            error.__cause__ = e
            logger.warning(
                "pipeline.segment_failed",
                segment_id=segment_id,
                files=len(paths),
                blocks=len(blocks),
                error=str(e),
            )
            if on_batch_error is not None:
                on_batch_error(error)
            return

        for source, file_hash in pending:
            self.cache.update_hash(source.path, file_hash)
        stats.files_indexed += len(pending)
        stats.blocks_indexed += len(points)
        if on_blocks_indexed is not None and points:
            on_blocks_indexed(len(points))

    async def remove_files(self, paths: Sequence[str]) -> None:
        """Drop points and cache entries for deleted files."""
        if not paths:
            return
        await self.vector_store.delete_points_by_file_paths(paths)
        for path in paths:
            self.cache.delete_hash(path)
        logger.info("pipeline.files_removed", count=len(paths))


def create_pipeline(
    config: CodeIndexConfig,
    cache: ContentCache,
    vector_store: VectorStore,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> IndexingPipeline:
    """Wire the configured provider and batcher into a pipeline."""
    provider = create_provider(config.embedder, transport=transport)
    return IndexingPipeline(
        cache,
        create_batcher(config.embedder, provider),
        vector_store,
        batch_segment_size=config.indexing.batch_segment_size,
    )


class PipelineScanner:
    """Scanner that feeds files from a listing callable through a pipeline.

    The listing callable owns directory walking and block slicing; this
    adapter only connects it to the embed/store/cache path.
    """

    def __init__(
        self,
        pipeline: IndexingPipeline,
        list_files: Callable[[str], Iterable[SourceFile]],
    ) -> None:
        self.pipeline = pipeline
        self.list_files = list_files

    async def scan(
        self,
        workspace_path: str,
        on_batch_error: Callable[[IndexingError], None],
        on_blocks_indexed: Callable[[int], None],
        on_file_parsed: Callable[[int], None],
    ) -> ScanResult:
        files = list(self.list_files(workspace_path))
        stats = await self.pipeline.index_files(
            files,
            on_batch_error=on_batch_error,
            on_blocks_indexed=on_blocks_indexed,
            on_file_parsed=on_file_parsed,
        )

        # Files deleted while nothing was watching are only noticed here
        listed = {source.path for source in files}
        removed = sorted(set(self.pipeline.cache.get_all_hashes()) - listed)
        await self.pipeline.remove_files(removed)

        return ScanResult(
            blocks_found=stats.blocks_found,
            blocks_indexed=stats.blocks_indexed,
            files_processed=stats.files_indexed,
            files_skipped=stats.files_skipped,
            files_removed=len(removed),
        )
