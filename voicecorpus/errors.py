"""Exception types raised by the voice clip catalog."""

from __future__ import annotations

from typing import Any, List, Tuple


class VoiceCorpusError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(VoiceCorpusError):
    """A configuration value could not be parsed."""


class StoreListingError(VoiceCorpusError):
    """Listing the bucket failed; the catalog cannot be built."""


class NotInitializedError(VoiceCorpusError):
    """A clip was requested before the catalog finished initialising."""


class NoFilesError(VoiceCorpusError):
    """The catalog is ready but holds no MP3 recordings."""


class TranscodeError(VoiceCorpusError):
    """The audio converter exited unsuccessfully."""

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class QueueClosedError(VoiceCorpusError):
    """An item was pushed to a batch queue that is already draining."""


class BatchError(VoiceCorpusError):
    """One or more items of a batch failed.

    ``failures`` holds ``(item, exception)`` pairs for every item that did
    not complete.  The other items of the batch completed normally.
    """

    def __init__(self, failures: List[Tuple[Any, BaseException]]) -> None:
        super().__init__(f"{len(failures)} item(s) failed in batch")
        self.failures = failures
