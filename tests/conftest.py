import io

import pytest

from voicecorpus.errors import TranscodeError


class FakeWriter:
    """Buffers writes; the object appears in the store only on ``close()``."""

    def __init__(self, store, key):
        self.store = store
        self.key = key
        self.chunks = []
        self.closed = False
        self.terminated = False

    def write(self, data):
        if self.key in self.store.fail_writes:
            raise RuntimeError(f"write failed for {self.key}")
        self.chunks.append(bytes(data))
        return len(data)

    def close(self):
        if self.closed:
            return
        if self.key in self.store.fail_close:
            raise RuntimeError(f"finalize failed for {self.key}")
        self.closed = True
        self.store.objects[self.key] = b"".join(self.chunks)

    def terminate(self):
        self.terminated = True
        self.closed = True
        self.chunks = []


class FakeStore:
    """In-memory bucket with the same surface as GCSObjectStore."""

    bucket_name = "test-bucket"

    def __init__(self, objects=None, page_size=1000):
        self.objects = dict(objects or {})
        self.page_size = page_size
        self.list_calls = []
        self.fail_listing = False
        self.fail_reads = set()
        self.fail_open_writer = set()
        self.fail_writes = set()
        self.fail_close = set()
        self.fail_delete = False
        self.deleted = []
        self.writers = {}
        self.content_types = {}

    def list_page(self, page_token=None):
        self.list_calls.append(page_token)
        if self.fail_listing:
            raise RuntimeError("listing unavailable")
        keys = sorted(self.objects)
        start = int(page_token or 0)
        end = start + self.page_size
        return keys[start:end], (str(end) if end < len(keys) else None)

    def read_bytes(self, key):
        if key in self.fail_reads:
            raise RuntimeError(f"read failed for {key}")
        return self.objects[key]

    def open_reader(self, key):
        if key in self.fail_reads:
            raise RuntimeError(f"read failed for {key}")
        return io.BytesIO(self.objects[key])

    def open_writer(self, key, content_type=None):
        if key in self.fail_open_writer:
            raise RuntimeError(f"cannot open {key} for writing")
        self.content_types[key] = content_type
        writer = self.writers[key] = FakeWriter(self, key)
        return writer

    def delete(self, key):
        if self.fail_delete:
            raise RuntimeError(f"delete failed for {key}")
        self.deleted.append(key)
        self.objects.pop(key, None)


class FakeTranscoder:
    """Prefixes the input with ``MP3:``; fails on inputs listed in ``fail_on``."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.source_extensions = []

    async def transcode(self, reader, writer, *, source_extension=None):
        data = reader.read()
        self.calls.append(data)
        self.source_extensions.append(source_extension)
        if data in self.fail_on:
            writer.write(b"partial")
            raise TranscodeError("corrupt input", returncode=1)
        out = b"MP3:" + data
        writer.write(out)
        return len(out)


@pytest.fixture
def scenario_store():
    return FakeStore({
        "a.ogg": b"ogg-a",
        "a.txt": "the quick brown fox".encode("utf-8"),
        "b.m4a": b"m4a-b",
        "b.mp3": b"mp3-b",
        "c.wav": b"wav-c",
    })


@pytest.fixture
def transcoder():
    return FakeTranscoder()
