"""SnapshotSaver — immediate and debounced writes of the full snapshot."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from leo.config import settings
from leo.errors import PersistenceError

if TYPE_CHECKING:
    from collections.abc import Callable

    from leo.conversations.backend import StorageBackend
    from leo.conversations.models import Snapshot

logger = logging.getLogger(__name__)


class SnapshotSaver:
    """Writes snapshots to a backend, coalescing deferred requests.

    A deferred ``save()`` cancels any pending timer and starts a new one;
    only the last request within *delay* seconds writes, and the snapshot
    is taken when the timer fires. An immediate save replaces any pending
    timer and is awaited by the caller.

    Storage failures are logged and swallowed so chat keeps working from
    memory alone.

    Args:
        backend: Where snapshots go.
        snapshot: Callable producing the current snapshot.
        delay: Debounce window in seconds (default from settings).
    """

    def __init__(
        self,
        backend: StorageBackend,
        snapshot: Callable[[], Snapshot],
        delay: float | None = None,
    ) -> None:
        self.backend = backend
        self._snapshot = snapshot
        self.delay = settings.save_debounce_seconds if delay is None else delay
        self._pending: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def save(self, *, immediate: bool = False) -> None:
        """Request a save; wait for it only when *immediate*."""
        self.cancel()
        if immediate:
            await self._write()
            return
        self._pending = asyncio.create_task(self._write_later())

    async def flush(self) -> None:
        """Drop any pending timer and write now (shutdown path)."""
        await self.save(immediate=True)

    def cancel(self) -> None:
        """Drop the pending deferred save, if any."""
        if self.pending:
            self._pending.cancel()
        self._pending = None

    async def close(self) -> None:
        """Cancel the pending save and wait for the task to unwind."""
        task = self._pending
        self.cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _write_later(self) -> None:
        await asyncio.sleep(self.delay)
        # Past the debounce window the write must not be cancelled by a
        # newer request; that request schedules its own write.
        if self._pending is asyncio.current_task():
            self._pending = None
        await self._write()

    async def _write(self) -> None:
        async with self._write_lock:
            snapshot = self._snapshot()
            try:
                await self.backend.save_all(snapshot)
            except PersistenceError:
                logger.exception(
                    "Snapshot save failed (%s) — continuing in memory", self.backend.name
                )
