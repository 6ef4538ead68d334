"""
MP3 normalization.

Every recording should have an ``.mp3`` rendition.  Recordings that lack one
but carry a convertible source (``.ogg`` or ``.m4a``) are converted by
streaming the source out of the bucket, through the transcoder, and back
into the bucket under the same glob.  Recordings with no convertible source
are skipped and stay out of random selection.

If a conversion fails midway, the upload is cancelled before anything is
committed; if finalising the upload itself fails, the target is deleted.
Either way the next run sees the recording as missing and tries again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from .batch_queue import BatchQueue, QueueStats
from .catalog import Catalog, Recording
from .config import BATCH_SIZE, CANONICAL_EXTENSION, CONVERTIBLE_EXTENSIONS
from .errors import BatchError

logger = logging.getLogger(__name__)

MP3_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class ConversionJob:
    glob: str
    source_extension: str

    @property
    def source_key(self) -> str:
        return self.glob + self.source_extension

    @property
    def target_key(self) -> str:
        return self.glob + CANONICAL_EXTENSION


@dataclass
class NormalizationReport:
    missing: int = 0
    queued: int = 0
    skipped: int = 0
    converted: int = 0
    failed: int = 0


def find_missing_canonical(catalog: Catalog) -> List[str]:
    return catalog.missing_canonical()


def pick_source_extension(recording: Recording) -> Optional[str]:
    """Return the preferred convertible encoding of ``recording``, if any."""
    for ext in CONVERTIBLE_EXTENSIONS:
        if ext in recording.encodings:
            return ext
    return None


class Normalizer:
    """Convert every recording without an MP3 that has a convertible source."""

    def __init__(self, store, catalog: Catalog, transcoder, *, batch_size: int = BATCH_SIZE, concurrency: int = 1) -> None:
        self.store = store
        self.catalog = catalog
        self.transcoder = transcoder
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.report = NormalizationReport()

    def plan(self) -> List[ConversionJob]:
        """Build conversion jobs for recordings missing the canonical encoding."""
        missing = find_missing_canonical(self.catalog)
        self.report.missing = len(missing)
        jobs = []
        for glob in missing:
            ext = pick_source_extension(self.catalog[glob])
            if ext is None:
                logger.debug("No convertible source for %s", glob)
                self.report.skipped += 1
                continue
            jobs.append(ConversionJob(glob=glob, source_extension=ext))
        return jobs

    async def run(self) -> NormalizationReport:
        jobs = self.plan()
        if jobs:
            queue = BatchQueue(self.convert_batch, batch_size=self.batch_size, concurrency=self.concurrency, name="mp3 conversion")
            for job in jobs:
                queue.push(job)
            self.report.queued = len(jobs)
            stats: QueueStats = await queue.join()
            logger.info("Converted %d of %d file(s) to mp3 (%d failed batch(es))", self.report.converted, len(jobs), stats.failed_batches)
        self.catalog.generate_canonical_list()
        return self.report

    async def convert_batch(self, jobs: List[ConversionJob]) -> None:
        results = await asyncio.gather(*(self.convert(job) for job in jobs), return_exceptions=True)
        failures = []
        for job, result in zip(jobs, results):
            if isinstance(result, Exception):
                logger.error("Could not convert %s to mp3: %s", job.source_key, result)
                self.report.failed += 1
                failures.append((job, result))
            else:
                self.report.converted += 1
        if failures:
            raise BatchError(failures)

    async def convert(self, job: ConversionJob) -> None:
        """Stream ``job.source_key`` through the transcoder into ``job.target_key``."""
        reader = await asyncio.to_thread(self.store.open_reader, job.source_key)
        try:
            writer = await asyncio.to_thread(self.store.open_writer, job.target_key, content_type=MP3_CONTENT_TYPE)
            try:
                written = await self.transcoder.transcode(reader, writer, source_extension=job.source_extension)
            except Exception:
                await self._abandon_upload(writer, job.target_key)
                raise
            try:
                await asyncio.to_thread(writer.close)
            except Exception:
                # Finalisation may or may not have committed the object.
                await self._delete_target(job.target_key)
                raise
        finally:
            await asyncio.to_thread(reader.close)

        self.catalog[job.glob].encodings.add(CANONICAL_EXTENSION)
        logger.info("Wrote %s (%d bytes)", job.target_key, written)

    async def _abandon_upload(self, writer, key: str) -> None:
        # terminate() cancels the upload session; close() would commit the partial object.
        try:
            await asyncio.to_thread(writer.terminate)
        except Exception as exc:
            logger.warning("Could not cancel upload of %s: %s", key, exc)

    async def _delete_target(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.store.delete, key)
        except Exception as exc:
            logger.warning("Could not delete partial output %s: %s", key, exc)
