"""Batched loading of transcript text into the catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import List, NamedTuple

from .batch_queue import BatchQueue, QueueStats
from .catalog import Catalog
from .config import BATCH_SIZE
from .errors import BatchError

logger = logging.getLogger(__name__)


class TranscriptItem(NamedTuple):
    path: str
    glob: str


class TranscriptLoader:
    """Fetch ``.txt`` objects in batches and store their text on each recording."""

    def __init__(self, store, catalog: Catalog, *, batch_size: int = BATCH_SIZE, concurrency: int = 1) -> None:
        self.store = store
        self.catalog = catalog
        self.queue = BatchQueue(self.load_batch, batch_size=batch_size, concurrency=concurrency, name="transcript")

    def push(self, path: str, glob: str) -> None:
        self.queue.push(TranscriptItem(path=path, glob=glob))

    async def load(self, item: TranscriptItem) -> None:
        body = await asyncio.to_thread(self.store.read_bytes, item.path)
        self.catalog[item.glob].transcript = body.decode("utf-8")

    async def load_batch(self, items: List[TranscriptItem]) -> None:
        results = await asyncio.gather(*(self.load(item) for item in items), return_exceptions=True)
        failures = []
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                logger.error("Could not read transcript %s: %s", item.path, result)
                failures.append((item, result))
        if failures:
            raise BatchError(failures)

    async def join(self) -> QueueStats:
        return await self.queue.join()
