"""
In-memory catalog of recordings and the bucket scan that fills it.

Every object in the bucket is a variant of a *recording*, identified by its
glob: the object key without its extension.  ``clips/abc.ogg``,
``clips/abc.mp3`` and ``clips/abc.txt`` all belong to the recording
``clips/abc``; the ``.txt`` object holds its transcript and the others are
audio encodings.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .config import CANONICAL_EXTENSION, TRANSCRIPT_EXTENSION
from .errors import StoreListingError

logger = logging.getLogger(__name__)


@dataclass
class Recording:
    transcript: Optional[str] = None
    encodings: Set[str] = field(default_factory=set)


class Catalog:
    """Mapping of glob to :class:`Recording`.

    ``globs`` is fixed once the scan completes; ``canonical_globs`` is rebuilt
    after normalization by :meth:`generate_canonical_list`.
    """

    def __init__(self) -> None:
        self.recordings: Dict[str, Recording] = {}
        self.globs: List[str] = []
        self.canonical_globs: List[str] = []

    def __contains__(self, glob: object) -> bool:
        return glob in self.recordings

    def __getitem__(self, glob: str) -> Recording:
        return self.recordings[glob]

    def __len__(self) -> int:
        return len(self.recordings)

    def __iter__(self) -> Iterator[str]:
        return iter(self.recordings)

    def ensure(self, glob: str) -> Recording:
        """Return the recording for ``glob``, creating an empty one on first sight."""
        recording = self.recordings.get(glob)
        if recording is None:
            recording = self.recordings[glob] = Recording()
        return recording

    def freeze_globs(self) -> List[str]:
        self.globs = list(self.recordings)
        return self.globs

    def missing_canonical(self) -> List[str]:
        """Globs whose recording has no canonical encoding yet."""
        return [glob for glob in self.globs if CANONICAL_EXTENSION not in self.recordings[glob].encodings]

    def generate_canonical_list(self) -> List[str]:
        self.canonical_globs = [glob for glob in self.globs if CANONICAL_EXTENSION in self.recordings[glob].encodings]
        return self.canonical_globs


def split_key(key: str) -> Optional[Tuple[str, str]]:
    """Split an object key into ``(glob, extension)``.

    Only the final extension of the key's last path segment is stripped, and
    the extension is lower-cased.  Keys without an extension, such as the
    ``clips/`` directory markers some tools create, return ``None``.
    """
    glob, ext = posixpath.splitext(key)
    if not ext or not glob:
        return None
    return glob, ext.lower()


async def scan(store, catalog: Catalog, on_transcript: Callable[[str, str], None]) -> int:
    """List the whole bucket and record every object in ``catalog``.

    The listing is followed page by page until the store stops returning a
    continuation token.  Transcript objects are not read here; they are
    handed to ``on_transcript(key, glob)`` so they can be fetched in batches
    while the listing continues.

    Args:
        store: Object store gateway exposing ``list_page``.
        catalog: Catalog to populate.
        on_transcript: Called once per transcript object.

    Returns:
        Number of keys seen, directory markers included.

    Raises:
        StoreListingError: If any listing request fails.
    """
    seen = 0
    page_token: Optional[str] = None
    while True:
        try:
            keys, page_token = await asyncio.to_thread(store.list_page, page_token)
        except Exception as exc:
            logger.error("Could not list bucket objects after %d key(s): %s", seen, exc)
            raise StoreListingError(f"Listing failed: {exc}") from exc

        for key in keys:
            seen += 1
            parts = split_key(key)
            if parts is None:
                logger.debug("Skipping key without extension: %s", key)
                continue
            glob, ext = parts
            recording = catalog.ensure(glob)
            if ext == TRANSCRIPT_EXTENSION:
                on_transcript(key, glob)
            else:
                recording.encodings.add(ext)

        if not page_token:
            break

    catalog.freeze_globs()
    logger.info("Scanned %d key(s) into %d recording(s)", seen, len(catalog.globs))
    return seen
