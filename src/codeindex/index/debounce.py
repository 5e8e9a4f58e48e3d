"""Dirty-flag scheduler that coalesces bursts of updates into one write."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()


class DebouncedWriter:
    """
    Coalesce save requests into a single deferred write.

    Design:
    - schedule() marks state dirty and (re)arms a timer on the running loop
    - Rearming cancels only the timer, never a write already in progress
    - Writes are serialized by a lock; a write persists whatever is current
    - flush() can be awaited at shutdown or in tests instead of racing timers
    - Without a running loop, schedule() only marks dirty; flush() persists

    Failed writes are logged and leave the writer dirty so the next
    schedule() or flush() retries.
    """

    def __init__(
        self,
        save: Callable[[], Awaitable[None]],
        delay_sec: float,
        *,
        name: str = "writer",
    ) -> None:
        self._save = save
        self._delay_sec = delay_sec
        self._name = name
        self._dirty = False
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        """True if state is dirty, a timer is armed or a write is running."""
        return self._dirty or self._handle is not None or bool(self._tasks)

    def schedule(self) -> None:
        """Mark dirty and arm the debounce timer."""
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay_sec, self._fire)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._write())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self) -> None:
        async with self._lock:
            if not self._dirty:
                return
            self._dirty = False
            try:
                await self._save()
            except Exception as e:
                self._dirty = True
                logger.warning("debounce.write_failed", writer=self._name, error=str(e))

    async def flush(self) -> None:
        """Cancel the timer, wait for in-flight writes, then write if dirty."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        await self._write()

    async def discard(self) -> None:
        """Drop unsaved state and wait for in-flight writes to settle."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._dirty = False
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
