"""Event payloads and a minimal listener registry."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class BatchProgressUpdate:
    """Watcher progress within the current batch of changed files."""

    processed_in_batch: int
    total_in_batch: int
    current_file: str | None = None


@dataclass(frozen=True)
class BatchProcessingSummary:
    """Outcome of one watcher batch."""

    processed_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def success_count(self) -> int:
        return len(self.processed_files)

    @property
    def error_count(self) -> int:
        return len(self.failed_files)


class Disposable:
    """Handle that unregisters something exactly once."""

    def __init__(self, dispose: Callable[[], None]) -> None:
        self._dispose: Callable[[], None] | None = dispose

    def dispose(self) -> None:
        if self._dispose is not None:
            fn, self._dispose = self._dispose, None
            fn()

    @property
    def disposed(self) -> bool:
        return self._dispose is None


class EventEmitter(Generic[T]):
    """Ordered listeners; a failing listener is logged and skipped."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Disposable:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Disposable(_remove)

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.warning("events.listener_failed", emitter=self._name, error=str(e))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        self._listeners.clear()
