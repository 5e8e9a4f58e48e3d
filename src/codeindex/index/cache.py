"""Content cache: which files are embedded, and how far a scan got.

Two artifacts per workspace, keyed by a sha256 of the workspace path:

- index-cache-<hash>.json     path -> content hash
- index-progress-<hash>.json  IndexingProgress record

Each artifact has its own debounced writer so progress churn never forces
a hash map rewrite. Writes go to a temp file in the target directory and
are renamed into place, so a crash mid-write leaves the previous version.
Missing or corrupt artifacts load as empty state.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from codeindex.config.constants import CACHE_FILE_PREFIX, PROGRESS_FILE_PREFIX
from codeindex.index.debounce import DebouncedWriter

logger = structlog.get_logger()

_HASH_MAP = TypeAdapter(dict[str, str])


class IndexingProgress(BaseModel):
    """Advisory scan progress. Correctness comes from hashes + vector store."""

    last_indexed_block: int = 0
    total_blocks: int = 0
    failed_batches: list[str] = Field(default_factory=list)
    last_error: str | None = None
    timestamp: float = Field(default_factory=time.time)


def workspace_key(workspace_path: str | Path) -> str:
    """Stable artifact key for a workspace."""
    return hashlib.sha256(str(workspace_path).encode("utf-8")).hexdigest()


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON via temp file + fsync + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class ContentCache:
    """Path -> hash map plus scan progress, persisted with debounced atomic writes.

    Only this class writes the artifacts; everyone else reads through
    get_hash() / get_all_hashes() / get_progress().
    """

    def __init__(
        self,
        workspace_path: str | Path,
        storage_dir: str | Path,
        *,
        hash_debounce_sec: float = 1.5,
        progress_debounce_sec: float = 1.0,
    ) -> None:
        self.workspace_path = Path(workspace_path)
        storage_dir = Path(storage_dir)
        key = workspace_key(self.workspace_path)
        self.cache_path = storage_dir / f"{CACHE_FILE_PREFIX}{key}.json"
        self.progress_path = storage_dir / f"{PROGRESS_FILE_PREFIX}{key}.json"

        self._hashes: dict[str, str] = {}
        self._progress = IndexingProgress()
        self._hash_writer = DebouncedWriter(self._save_hashes, hash_debounce_sec, name="hashes")
        self._progress_writer = DebouncedWriter(
            self._save_progress, progress_debounce_sec, name="progress"
        )

    async def initialize(self) -> None:
        """Load both artifacts. Never raises for missing or corrupt data."""
        self._hashes = await asyncio.to_thread(self._load_hashes)
        self._progress = await asyncio.to_thread(self._load_progress)
        logger.debug(
            "cache.loaded",
            workspace=str(self.workspace_path),
            files=len(self._hashes),
            last_indexed_block=self._progress.last_indexed_block,
        )

    def _load_hashes(self) -> dict[str, str]:
        if not self.cache_path.exists():
            return {}
        try:
            return _HASH_MAP.validate_python(_read_json(self.cache_path))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("cache.load_failed", path=str(self.cache_path), error=str(e))
            return {}

    def _load_progress(self) -> IndexingProgress:
        if not self.progress_path.exists():
            return IndexingProgress()
        try:
            progress = IndexingProgress.model_validate(_read_json(self.progress_path))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("cache.progress_load_failed", path=str(self.progress_path), error=str(e))
            return IndexingProgress()
        # Stored lists may carry duplicates from hand edits
        progress.failed_batches = list(dict.fromkeys(progress.failed_batches))
        return progress

    async def _save_hashes(self) -> None:
        await asyncio.to_thread(_atomic_write_json, self.cache_path, dict(self._hashes))

    async def _save_progress(self) -> None:
        await asyncio.to_thread(
            _atomic_write_json, self.progress_path, self._progress.model_dump(mode="json")
        )

    # -- hash map ---------------------------------------------------------

    def get_hash(self, path: str) -> str | None:
        return self._hashes.get(path)

    def update_hash(self, path: str, content_hash: str) -> None:
        self._hashes[path] = content_hash
        self._hash_writer.schedule()

    def delete_hash(self, path: str) -> None:
        if self._hashes.pop(path, None) is not None:
            self._hash_writer.schedule()

    def get_all_hashes(self) -> dict[str, str]:
        """Return a copy; later cache mutations are not visible through it."""
        return dict(self._hashes)

    async def clear_cache_file(self) -> None:
        """Empty the hash map and persist the empty map immediately."""
        self._hashes = {}
        self._hash_writer.schedule()
        await self._hash_writer.flush()
        logger.info("cache.cleared", path=str(self.cache_path))

    # -- progress ---------------------------------------------------------

    def update_progress(self, indexed: int, total: int) -> None:
        progress = self._progress
        # Only moves forward within one scan
        progress.last_indexed_block = max(progress.last_indexed_block, indexed)
        progress.total_blocks = total
        progress.timestamp = time.time()
        self._progress_writer.schedule()

    def record_failed_batch(self, batch_id: str, error: str) -> None:
        progress = self._progress
        if batch_id not in progress.failed_batches:
            progress.failed_batches.append(batch_id)
        progress.last_error = error
        progress.timestamp = time.time()
        self._progress_writer.schedule()

    def get_progress(self) -> IndexingProgress:
        return self._progress.model_copy(deep=True)

    def clear_progress(self) -> None:
        self._progress = IndexingProgress()
        self._progress_writer.schedule()

    # -- lifecycle --------------------------------------------------------

    async def clear_all(self) -> None:
        """Clear the hash map and progress, and remove the progress artifact."""
        await self.clear_cache_file()
        self._progress = IndexingProgress()
        await self._progress_writer.discard()
        await asyncio.to_thread(self.progress_path.unlink, missing_ok=True)
        logger.info("cache.progress_removed", path=str(self.progress_path))

    async def flush(self) -> None:
        """Persist anything still waiting on a debounce timer."""
        await self._hash_writer.flush()
        await self._progress_writer.flush()

    async def close(self) -> None:
        await self.flush()
