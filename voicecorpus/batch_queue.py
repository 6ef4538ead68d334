"""
Bounded-concurrency batch queue.

Items are pushed one at a time and grouped into batches of at most
``batch_size``.  Each full batch is handed to an async worker as a list; a
semaphore keeps no more than ``concurrency`` batches running at once, which
caps the number of outstanding bucket requests while still pipelining work
behind a long listing.

Completion and failure are reported on separate channels:

* :meth:`BatchQueue.join` resolves once every pushed item has been processed
  (the drain signal).
* A worker that raises has its exception logged, recorded in
  :attr:`BatchQueue.errors` and passed to ``on_error``.  Other batches keep
  running; there is no global abort.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set

from .config import BATCH_SIZE
from .errors import QueueClosedError

logger = logging.getLogger(__name__)

Worker = Callable[[List[Any]], Awaitable[None]]
ErrorHandler = Callable[[BaseException, List[Any]], None]


@dataclass
class QueueStats:
    processed: int = 0
    failed_batches: int = 0
    errors: List[BaseException] = field(default_factory=list)


class BatchQueue:
    """Group pushed items into batches and run a worker over them."""

    def __init__(
        self,
        worker: Worker,
        *,
        batch_size: int = BATCH_SIZE,
        concurrency: int = 1,
        name: str = "batch",
        on_error: Optional[ErrorHandler] = None,
    ) -> None:
        if batch_size < 1 or concurrency < 1:
            raise ValueError("batch_size and concurrency must be positive")
        self.name = name
        self.batch_size = batch_size
        self._worker = worker
        self._on_error = on_error
        self._semaphore = asyncio.Semaphore(concurrency)
        self._pending: List[Any] = []
        self._tasks: Set[asyncio.Task] = set()
        self._outstanding = 0
        self._drained = asyncio.Event()
        self._drained.set()
        self._closed = False
        self.processed = 0
        self.errors: List[BaseException] = []

    def push(self, item: Any) -> None:
        """Queue ``item``; dispatch a batch once ``batch_size`` items are buffered.

        Must be called from inside a running event loop.
        """
        if self._closed:
            raise QueueClosedError(f"{self.name} queue no longer accepts items")
        self._pending.append(item)
        self._outstanding += 1
        self._drained.clear()
        if len(self._pending) >= self.batch_size:
            self._dispatch()

    def _dispatch(self) -> None:
        batch, self._pending = self._pending, []
        task = asyncio.get_running_loop().create_task(self._run(batch))
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._finish, len(batch)))

    def _finish(self, size: int, task: asyncio.Task) -> None:
        # Runs for cancelled batches too, including ones that never started.
        self._tasks.discard(task)
        if not task.cancelled():
            self.processed += size
        self._outstanding -= size
        if self._outstanding == 0:
            self._drained.set()

    async def _run(self, batch: List[Any]) -> None:
        async with self._semaphore:
            try:
                await self._worker(batch)
            except Exception as exc:
                logger.error("Error processing %s batch of %d item(s): %s", self.name, len(batch), exc)
                self.errors.append(exc)
                if self._on_error is not None:
                    self._on_error(exc, batch)

    async def join(self) -> QueueStats:
        """Stop accepting items, flush the partial batch and wait for drain."""
        self._closed = True
        if self._pending:
            self._dispatch()
        await self._drained.wait()
        logger.info("%s queue drained: %d item(s), %d failed batch(es)", self.name, self.processed, len(self.errors))
        return QueueStats(processed=self.processed, failed_batches=len(self.errors), errors=list(self.errors))

    def cancel(self) -> None:
        """Cancel every running batch and discard buffered items."""
        self._closed = True
        self._outstanding -= len(self._pending)
        self._pending = []
        if self._outstanding == 0:
            self._drained.set()
        for task in list(self._tasks):
            task.cancel()
