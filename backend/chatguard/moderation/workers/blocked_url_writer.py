"""Background writer that persists block decisions off the message path."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from chatguard.moderation.domain.blocked_urls import BlockedUrlRepository, BlockedUrlUpsert
from chatguard.obs import metrics

logger = logging.getLogger(__name__)

ErrorSink = Callable[[BlockedUrlUpsert, Exception], None]


def log_write_failure(payload: BlockedUrlUpsert, exc: Exception) -> None:
    logger.warning(
        "blocked url write failed",
        extra={"normalized_url": payload.normalized_url, "error": exc.__class__.__name__},
    )


@dataclass
class BlockedUrlWriter:
    """Drains a bounded queue of upserts into the repository.

    ``submit`` never blocks and never raises: when the queue is full the
    write is dropped and counted. A failed write is reported to
    ``on_error`` and the loop keeps going.
    """

    repository: BlockedUrlRepository
    max_queue_size: int = 1000
    on_error: ErrorSink = log_write_failure
    _queue: asyncio.Queue[BlockedUrlUpsert] = field(init=False, repr=False)
    _task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)
    _in_flight: bool = field(default=False, init=False, repr=False)
    _retiring: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, payload: BlockedUrlUpsert) -> bool:
        self.ensure_started()
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            metrics.inc_blocked_url_write("dropped")
            logger.warning("blocked url queue full; dropping write", extra={"normalized_url": payload.normalized_url})
            return False
        metrics.set_blocked_url_queue_depth(self._queue.qsize())
        return True

    def ensure_started(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run_forever(), name="blocked-url-writer")

    async def run_once(self) -> None:
        payload = await self._queue.get()
        self._in_flight = True
        try:
            await self.repository.upsert(payload)
        except Exception as exc:
            metrics.inc_blocked_url_write("error")
            self.on_error(payload, exc)
        else:
            metrics.inc_blocked_url_write("ok")
        finally:
            self._in_flight = False
            self._queue.task_done()
            metrics.set_blocked_url_queue_depth(self._queue.qsize())

    async def run_forever(self) -> None:
        while not (self._retiring and self._queue.empty()):
            await self.run_once()

    async def drain(self) -> None:
        """Wait until every submitted write has been attempted."""

        if not self._queue.empty():
            self.ensure_started()
        await self._queue.join()

    def retire(self) -> None:
        """Let the worker exit once writes already queued have been attempted.

        Synchronous so a replacing writer can be installed outside a running
        loop. A task whose loop has already closed is dropped.
        """

        self._retiring = True
        task = self._task
        if task is None or task.done() or task.get_loop().is_closed():
            self._task = None
            return
        if self._queue.empty() and not self._in_flight:
            task.cancel()
            self._task = None

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
