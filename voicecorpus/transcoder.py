"""
Streaming audio conversion.

Conversions are delegated to ``ffmpeg``, the same converter pydub drives.
Unlike :meth:`pydub.AudioSegment.from_file`, which decodes the whole file
into memory, the converter here runs as a subprocess fed through pipes: the
source reader is pumped into its stdin while its stdout is pumped into the
destination writer.  Only a few chunks are held in memory at any time, so
file size does not matter.

MP4-family sources (``.m4a``) often keep their ``moov`` index at the end of
the file, which ffmpeg cannot reach on a pipe.  Those are copied to a
temporary file on disk first, one chunk at a time, and read from there.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from typing import BinaryIO, List, Optional

from pydub import AudioSegment

from .errors import TranscodeError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
SEEKABLE_INPUT_EXTENSIONS = {".m4a"}


def cleanup_temp_file(path: Optional[str]) -> None:
    """Remove a temporary file if it exists."""
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Could not remove temporary file %s: %s", path, exc)


class FfmpegTranscoder:
    """Convert a byte stream to ``output_format`` through ``ffmpeg``.

    Args:
        output_format: ffmpeg muxer name for the output, ``mp3`` by default.
        binary: Converter executable.  Defaults to the one pydub discovered
            (``AudioSegment.converter``).
        chunk_size: Bytes moved per read on either side of the pipe.
    """

    def __init__(self, output_format: str = "mp3", *, binary: Optional[str] = None, chunk_size: int = CHUNK_SIZE) -> None:
        self.output_format = output_format
        self.binary = binary or AudioSegment.converter
        self.chunk_size = chunk_size

    def command(self, input_path: str = "pipe:0") -> List[str]:
        return [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-i", input_path,
            "-vn",
            "-f", self.output_format,
            "pipe:1",
        ]

    async def transcode(self, reader: BinaryIO, writer: BinaryIO, *, source_extension: Optional[str] = None) -> int:
        """Pump ``reader`` through the converter into ``writer``.

        Blocking reads and writes on the store side run in worker threads;
        the pipe side awaits ``drain()`` so a slow sink slows the source.

        Sources listed in :data:`SEEKABLE_INPUT_EXTENSIONS` are first copied
        chunk by chunk into a temporary file, because ffmpeg has to seek to
        find their index.  The output side is streamed either way.

        Returns:
            Number of bytes written to ``writer``.

        Raises:
            TranscodeError: If the converter exits with a non-zero status.
        """
        if source_extension and source_extension.lower() in SEEKABLE_INPUT_EXTENSIONS:
            local_path = await asyncio.to_thread(self._spool_to_file, reader, source_extension)
            try:
                return await self._run(self.command(local_path), None, writer)
            finally:
                cleanup_temp_file(local_path)
        return await self._run(self.command(), reader, writer)

    def _spool_to_file(self, reader: BinaryIO, suffix: str) -> str:
        fd, tmp_path = tempfile.mkstemp(suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(reader, f, self.chunk_size)
        except BaseException:
            cleanup_temp_file(tmp_path)
            raise
        return tmp_path

    async def _run(self, cmd: List[str], reader: Optional[BinaryIO], writer: BinaryIO) -> int:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if reader is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        async def feed() -> None:
            if reader is None:
                return
            try:
                while True:
                    chunk = await asyncio.to_thread(reader.read, self.chunk_size)
                    if not chunk:
                        break
                    proc.stdin.write(chunk)
                    await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                # Converter stopped reading; its exit status tells us why.
                logger.debug("Converter closed its input early")
            finally:
                proc.stdin.close()

        async def drain_output() -> int:
            written = 0
            while True:
                chunk = await proc.stdout.read(self.chunk_size)
                if not chunk:
                    return written
                await asyncio.to_thread(writer.write, chunk)
                written += len(chunk)

        pumps = [
            asyncio.ensure_future(feed()),
            asyncio.ensure_future(drain_output()),
            asyncio.ensure_future(proc.stderr.read()),
        ]
        try:
            _, written, stderr = await asyncio.gather(*pumps)
        except BaseException:
            for pump in pumps:
                pump.cancel()
            if proc.returncode is None:
                proc.kill()
            await proc.wait()
            raise

        returncode = await proc.wait()
        if returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise TranscodeError(
                f"{self.binary} exited with status {returncode}: {message}",
                returncode=returncode,
                stderr=message,
            )
        return written
