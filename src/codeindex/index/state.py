"""Indexing state machine: Standby, Indexing, Indexed, Error.

Only this module mutates the state. Every transition carries a status
message and is validated against _TRANSITIONS; an illegal transition
raises rather than being dropped. Error -> Standby is reachable only
through reset_from_error().
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Literal

import structlog

from codeindex.core.errors import IndexingError
from codeindex.index.events import Disposable, EventEmitter

logger = structlog.get_logger()

ProgressUnit = Literal["blocks", "files"]


class IndexingState(str, Enum):
    """Per-workspace indexing state."""

    STANDBY = "Standby"
    INDEXING = "Indexing"
    INDEXED = "Indexed"
    ERROR = "Error"


_TRANSITIONS: dict[IndexingState, frozenset[IndexingState]] = {
    IndexingState.STANDBY: frozenset(
        {IndexingState.STANDBY, IndexingState.INDEXING, IndexingState.ERROR}
    ),
    IndexingState.INDEXING: frozenset(
        {
            IndexingState.INDEXING,
            IndexingState.INDEXED,
            IndexingState.ERROR,
            IndexingState.STANDBY,
        }
    ),
    IndexingState.INDEXED: frozenset(
        {
            IndexingState.INDEXED,
            IndexingState.INDEXING,
            IndexingState.STANDBY,
            IndexingState.ERROR,
        }
    ),
    IndexingState.ERROR: frozenset({IndexingState.ERROR, IndexingState.INDEXING}),
}

_CAN_START = frozenset({IndexingState.STANDBY, IndexingState.ERROR, IndexingState.INDEXED})


@dataclass(frozen=True)
class IndexingStatus:
    """Snapshot handed to progress listeners."""

    state: IndexingState
    message: str
    processed_items: int = 0
    total_items: int = 0
    unit: ProgressUnit = "blocks"
    current_file: str | None = None


class IndexingStateManager:
    """Owns the IndexingState of one workspace."""

    def __init__(self) -> None:
        self._status = IndexingStatus(state=IndexingState.STANDBY, message="")
        self._emitter: EventEmitter[IndexingStatus] = EventEmitter("indexing_state")

    @property
    def state(self) -> IndexingState:
        return self._status.state

    @property
    def message(self) -> str:
        return self._status.message

    @property
    def status(self) -> IndexingStatus:
        return self._status

    def on_progress_update(self, listener: Callable[[IndexingStatus], None]) -> Disposable:
        return self._emitter.subscribe(listener)

    def can_start_indexing(self) -> bool:
        return self._status.state in _CAN_START

    def set_system_state(self, new_state: IndexingState, message: str = "") -> None:
        """Move to new_state. Raises IndexingError on an illegal transition."""
        current = self._status.state
        if new_state not in _TRANSITIONS[current]:
            raise IndexingError.invalid_transition(current.value, new_state.value)

        if new_state is IndexingState.INDEXING and current is IndexingState.INDEXING:
            # Counters carry over only while staying in Indexing
            status = replace(self._status, message=message)
        else:
            status = IndexingStatus(state=new_state, message=message)

        self._commit(status, previous=current)

    def reset_from_error(self) -> None:
        """Error -> Standby. A no-op from any other state."""
        if self._status.state is not IndexingState.ERROR:
            return
        self._commit(
            IndexingStatus(state=IndexingState.STANDBY, message=""),
            previous=IndexingState.ERROR,
        )

    def report_block_indexing_progress(self, processed: int, total: int) -> None:
        """Update block counters; moves to Indexing if not already there."""
        current = self._status.state
        if current is not IndexingState.INDEXING:
            self.set_system_state(IndexingState.INDEXING, self._status.message)

        message = f"Indexed {processed} / {total} blocks found"
        self._commit(
            IndexingStatus(
                state=IndexingState.INDEXING,
                message=message,
                processed_items=processed,
                total_items=total,
                unit="blocks",
            ),
            previous=IndexingState.INDEXING,
        )

    def report_file_queue_progress(
        self, processed: int, total: int, current_file: str | None = None
    ) -> None:
        """Update watcher queue counters.

        Unfinished work (processed < total) moves the state to Indexing. A
        drained or empty queue only updates counters while Indexing, leaving
        any other state and its message untouched.
        """
        if total > 0 and processed < total:
            if self._status.state is not IndexingState.INDEXING:
                self.set_system_state(IndexingState.INDEXING, self._status.message)
            message = f"Processing {processed} / {total} files from queue..."
            if current_file:
                message = f"{message} Current: {current_file}"
        elif self._status.state is not IndexingState.INDEXING:
            return
        elif total > 0:
            message = f"Finished processing {total} files from queue."
        else:
            message = "File queue processed."

        state = self._status.state
        self._commit(
            IndexingStatus(
                state=state,
                message=message,
                processed_items=processed,
                total_items=total,
                unit="files",
                current_file=current_file,
            ),
            previous=state,
        )

    def _commit(self, status: IndexingStatus, *, previous: IndexingState) -> None:
        self._status = status
        if previous is not status.state:
            logger.info(
                "indexing_state.transition",
                previous=previous.value,
                state=status.state.value,
                message=status.message,
            )
        self._emitter.fire(status)

    def dispose(self) -> None:
        self._emitter.clear()
