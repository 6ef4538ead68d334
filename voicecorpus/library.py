"""
Catalog lifecycle and random clip selection.

:class:`ClipLibrary` owns the catalog and drives it through its stages::

    PENDING -> SCANNING -> LOADING_TRANSCRIPTS -> NORMALIZING -> READY

Stages run strictly in order.  ``READY`` is terminal; a listing failure moves
the library to ``FAILED`` instead.  Clips can only be drawn once the library
is ready.
"""

from __future__ import annotations

import enum
import logging
import random
from typing import NamedTuple, Optional

from .catalog import Catalog, scan
from .config import BATCH_SIZE, CANONICAL_EXTENSION, Settings
from .errors import NoFilesError, NotInitializedError
from .normalizer import Normalizer
from .transcripts import TranscriptLoader

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    LOADING_TRANSCRIPTS = "loading_transcripts"
    NORMALIZING = "normalizing"
    READY = "ready"
    FAILED = "failed"


class Clip(NamedTuple):
    key: str
    transcript: Optional[str]


class ClipLibrary:
    """Build the catalog from the bucket and serve random clips from it.

    Args:
        store: Object store gateway, normally a
            :class:`voicecorpus.store.GCSObjectStore`.
        transcoder: Converter used for missing MP3s, normally a
            :class:`voicecorpus.transcoder.FfmpegTranscoder`.
        settings: Runtime settings; only ``batch_concurrency`` is used here.
        rng: Random source for clip selection.
    """

    def __init__(self, store, transcoder, settings: Optional[Settings] = None, *, rng: Optional[random.Random] = None) -> None:
        self.store = store
        self.transcoder = transcoder
        self.settings = settings or Settings()
        self.catalog = Catalog()
        self.stage = Stage.PENDING
        self._rng = rng or random.Random()

    @property
    def initialized(self) -> bool:
        return self.stage is Stage.READY

    async def init(self) -> None:
        """Scan the bucket, load transcripts and convert missing MP3s.

        Raises:
            StoreListingError: If the bucket could not be listed.
            RuntimeError: If called more than once.
        """
        if self.stage is not Stage.PENDING:
            raise RuntimeError(f"Clip library already started (stage: {self.stage.value})")

        concurrency = self.settings.batch_concurrency
        loader = TranscriptLoader(self.store, self.catalog, batch_size=BATCH_SIZE, concurrency=concurrency)

        self.stage = Stage.SCANNING
        try:
            await scan(self.store, self.catalog, loader.push)
        except Exception:
            loader.queue.cancel()
            self.stage = Stage.FAILED
            raise

        if not self.catalog.globs:
            logger.warning("No sound files found in bucket %s", getattr(self.store, "bucket_name", "?"))
            self.stage = Stage.READY
            return

        self.stage = Stage.LOADING_TRANSCRIPTS
        stats = await loader.join()
        if stats.failed_batches:
            logger.warning("%d transcript batch(es) had failures", stats.failed_batches)

        self.stage = Stage.NORMALIZING
        normalizer = Normalizer(self.store, self.catalog, self.transcoder, batch_size=BATCH_SIZE, concurrency=concurrency)
        report = await normalizer.run()

        self.stage = Stage.READY
        logger.info(
            "Clip library ready: %d recording(s), %d with mp3, %d converted, %d without a convertible source",
            len(self.catalog.globs),
            len(self.catalog.canonical_globs),
            report.converted,
            report.skipped,
        )

    def get_random_clip(self) -> Clip:
        """Pick a random MP3 recording and return its key and transcript.

        The transcript is ``None`` when the recording has no ``.txt`` object.

        Raises:
            NotInitializedError: If :meth:`init` has not completed.
            NoFilesError: If no recording has an MP3.
        """
        if not self.initialized:
            logger.error("Cannot get random clip before the library is initialized")
            raise NotInitializedError("Clip library not initialized")
        if not self.catalog.canonical_globs:
            raise NoFilesError("No mp3 clips available")

        glob = self._rng.choice(self.catalog.canonical_globs)
        return Clip(key=glob + CANONICAL_EXTENSION, transcript=self.catalog[glob].transcript)
