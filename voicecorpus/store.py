"""
Cloud Storage gateway.

Thin wrapper around :mod:`google.cloud.storage` exposing the handful of
bucket operations the catalog needs: paginated listing, buffered reads for
small text objects, streaming reads and writes for audio, and deletes.

All methods block.  The asynchronous pipeline runs them through
:func:`asyncio.to_thread` so several requests can be outstanding at once.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, List, Optional, Tuple

from google.api_core.exceptions import NotFound
from google.cloud import storage

logger = logging.getLogger(__name__)

# Resumable upload chunks must be a multiple of 256 KiB.
UPLOAD_CHUNK_SIZE = 4 * 256 * 1024
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class GCSObjectStore:
    """Bucket operations used by the catalog, backed by Cloud Storage."""

    def __init__(self, bucket_name: str, *, client: Optional[storage.Client] = None, page_size: int = 1000) -> None:
        self.bucket_name = bucket_name
        self.page_size = page_size
        self._client = client or storage.Client()
        self._bucket = self._client.bucket(bucket_name)

    def list_page(self, page_token: Optional[str] = None) -> Tuple[List[str], Optional[str]]:
        """Fetch one page of object keys.

        Args:
            page_token: Continuation token returned by the previous call, or
                ``None`` for the first page.

        Returns:
            The keys on this page and the token for the next one.  The token
            is ``None`` once the listing is exhausted.
        """
        iterator = self._client.list_blobs(self.bucket_name, page_size=self.page_size, page_token=page_token)
        page = next(iterator.pages, None)
        keys = [blob.name for blob in page] if page is not None else []
        return keys, iterator.next_page_token

    def read_bytes(self, key: str) -> bytes:
        """Download a whole object into memory."""
        return self._bucket.blob(key).download_as_bytes()

    def open_reader(self, key: str) -> BinaryIO:
        """Open a chunked, file-like reader over ``key``."""
        return self._bucket.blob(key).open("rb", chunk_size=DOWNLOAD_CHUNK_SIZE)

    def open_writer(self, key: str, *, content_type: Optional[str] = None) -> BinaryIO:
        """Open a chunked, file-like writer for ``key``.

        The object only becomes visible once the writer is closed.
        """
        blob = self._bucket.blob(key)
        return blob.open("wb", chunk_size=UPLOAD_CHUNK_SIZE, content_type=content_type)

    def delete(self, key: str) -> None:
        """Delete ``key``.  Deleting a missing object is not an error."""
        try:
            self._bucket.blob(key).delete()
        except NotFound:
            logger.info("Object %s already absent; nothing to delete", key)
