import asyncio

import pytest

from voicecorpus.catalog import Catalog, scan, split_key
from voicecorpus.errors import StoreListingError

from conftest import FakeStore


def _scan(store):
    catalog = Catalog()
    transcripts = []
    asyncio.run(scan(store, catalog, lambda key, glob: transcripts.append((key, glob))))
    return catalog, transcripts


def test_split_key():
    assert split_key("clips/abc.ogg") == ("clips/abc", ".ogg")
    assert split_key("clips/abc.OGG") == ("clips/abc", ".ogg")
    assert split_key("clips/v1.2/abc.mp3") == ("clips/v1.2/abc", ".mp3")
    assert split_key("clips/abc.tar.gz") == ("clips/abc.tar", ".gz")


def test_split_key_directory_markers():
    assert split_key("clips/") is None
    assert split_key("clips.v1/") is None
    assert split_key("README") is None
    assert split_key("clips/.hidden") is None


def test_scan_groups_variants(scenario_store):
    catalog, transcripts = _scan(scenario_store)
    assert catalog.globs == ["a", "b", "c"]
    assert catalog["a"].encodings == {".ogg"}
    assert catalog["b"].encodings == {".m4a", ".mp3"}
    assert catalog["c"].encodings == {".wav"}
    assert transcripts == [("a.txt", "a")]
    assert catalog["a"].transcript is None


def test_scan_skips_directory_markers():
    catalog, _ = _scan(FakeStore({"clips/": b"", "clips/x.ogg": b"x"}))
    assert list(catalog) == ["clips/x"]


def test_scan_tolerates_duplicate_extensions():
    catalog, _ = _scan(FakeStore({"x.ogg": b"1", "x.OGG": b"2"}))
    assert catalog["x"].encodings == {".ogg"}


def test_scan_transcript_only_recording_has_no_encodings():
    catalog, transcripts = _scan(FakeStore({"t.txt": b"hello"}))
    assert "t" in catalog
    assert catalog["t"].encodings == set()
    assert transcripts == [("t.txt", "t")]


def test_scan_follows_pagination():
    objects = {f"clip{i}.ogg": b"x" for i in range(5)}
    store = FakeStore(objects, page_size=2)
    catalog, _ = _scan(store)
    assert store.list_calls == [None, "2", "4"]
    assert len(catalog) == 5


def test_scan_listing_failure():
    store = FakeStore({"a.ogg": b"x"})
    store.fail_listing = True
    with pytest.raises(StoreListingError):
        _scan(store)


def test_canonical_lists():
    catalog, _ = _scan(FakeStore({"a.mp3": b"", "b.ogg": b""}))
    assert catalog.missing_canonical() == ["b"]
    assert catalog.generate_canonical_list() == ["a"]
    assert catalog.canonical_globs == ["a"]
