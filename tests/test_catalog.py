import threading
import time

import pytest

from shared.constants import UNKNOWN_ARTIST
from media.catalog import CatalogBuilder, CatalogCache, stream_url, is_audio_key
from storage.storage_provider import StoreUnavailable

from conftest import MemoryStorage


ORIGIN = "http://music.example"


def test_extension_allow_list_is_case_insensitive():
    assert is_audio_key("Song.MP3")
    assert is_audio_key("a/b/track.Flac")
    assert not is_audio_key("Song.txt")
    assert not is_audio_key("cover.jpg")
    assert not is_audio_key("mp3")


def test_catalog_filters_and_derives_metadata(storage):
    storage.put("music/Daft Punk - One More Time - Discovery.flac", b"x" * 10)
    storage.put("Song.MP3", b"y" * 5)
    storage.put("Song.txt", b"z")
    storage.put("music/cover.jpg", b"img")

    records = CatalogBuilder(storage).build_catalog(ORIGIN)

    assert [r.id for r in records] == ["music/Daft Punk - One More Time - Discovery.flac", "Song.MP3"]
    first = records[0]
    assert first.filename == "Daft Punk - One More Time - Discovery.flac"
    assert (first.artist, first.title, first.album) == ("Daft Punk", "One More Time", "Discovery")
    assert first.size == 10
    assert records[1].title == "Song"
    assert records[1].artist == UNKNOWN_ARTIST


def test_stream_url_escapes_like_encode_uri_component():
    url = stream_url(ORIGIN + "/", "music/AC/DC - It's (Live) & Loud!.mp3")
    assert url == ORIGIN + "/api/stream/music%2FAC%2FDC%20-%20It's%20(Live)%20%26%20Loud!.mp3"


def test_to_dict_uses_client_field_names(storage):
    storage.put("a/B - C.mp3", b"123")
    record = CatalogBuilder(storage).build_catalog(ORIGIN)[0]
    data = record.to_dict()
    assert data["id"] == data["key"] == "a/B - C.mp3"
    assert data["url"] == ORIGIN + "/api/stream/a%2FB%20-%20C.mp3"
    assert data["uploaded"] == "2024-05-01T12:30:00+00:00"
    assert set(data) == {"id", "filename", "key", "title", "artist", "album", "size", "uploaded", "url"}


def test_prefix_fetch_is_bounded(storage):
    storage.put("big.mp3", b"\x00" * 60000)
    storage.put("small.mp3", b"\x00" * 100)

    CatalogBuilder(storage).build_catalog(ORIGIN)

    ranges = sorted(call[1:] for call in storage.calls if call[0] == "get_range")
    assert ranges == [("big.mp3", 0, 49999), ("small.mp3", 0, 99)]


def test_empty_objects_are_listed_without_a_fetch(storage):
    storage.put("silence.wav", b"")
    records = CatalogBuilder(storage).build_catalog(ORIGIN)
    assert [r.id for r in records] == ["silence.wav"]
    assert not [c for c in storage.calls if c[0] == "get_range"]


def test_failed_prefix_fetch_skips_only_that_object(storage):
    storage.put("a.mp3", b"a")
    storage.put("b.mp3", b"b")
    storage.put("c.mp3", b"c")
    storage.fail_keys.add("b.mp3")

    records = CatalogBuilder(storage).build_catalog(ORIGIN)
    assert [r.id for r in records] == ["a.mp3", "c.mp3"]


def test_listing_failure_fails_the_whole_catalog(storage):
    storage.put("a.mp3", b"a")
    storage.fail_listing = True
    with pytest.raises(StoreUnavailable):
        CatalogBuilder(storage).build_catalog(ORIGIN)


class SlowFirstStorage(MemoryStorage):
    """Earlier keys take longer, so fetches complete in reverse order."""

    def get_range(self, key, start, end):
        delay = {"1.mp3": 0.15, "2.mp3": 0.1, "3.mp3": 0.05}.get(key, 0)
        time.sleep(delay)
        return super().get_range(key, start, end)


def test_output_follows_listing_order_not_completion_order():
    storage = SlowFirstStorage()
    for name in ["1.mp3", "2.mp3", "3.mp3", "4.mp3"]:
        storage.put(name, name.encode())

    records = CatalogBuilder(storage, workers=4).build_catalog(ORIGIN)
    assert [r.id for r in records] == ["1.mp3", "2.mp3", "3.mp3", "4.mp3"]


class StalledStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def get_range(self, key, start, end):
        if key == "stalled.mp3":
            self.release.wait(5)
        return super().get_range(key, start, end)


def test_stalled_object_is_skipped_after_timeout():
    storage = StalledStorage()
    storage.put("ok.mp3", b"ok")
    storage.put("stalled.mp3", b"zzz")
    try:
        started = time.monotonic()
        records = CatalogBuilder(storage, workers=2, catalog_timeout=0.2).build_catalog(ORIGIN)
        elapsed = time.monotonic() - started
    finally:
        storage.release.set()

    assert [r.id for r in records] == ["ok.mp3"]
    assert elapsed < 2


def test_tag_reader_overrides_filename_metadata(storage):
    storage.put("Interstellar Theme.mp3", b"ID3data")
    seen = {}

    def tag_reader(key, prefix):
        seen[key] = prefix
        return {"artist": "Hans Zimmer"}

    record = CatalogBuilder(storage, tag_reader=tag_reader).build_catalog(ORIGIN)[0]
    assert seen == {"Interstellar Theme.mp3": b"ID3data"}
    assert record.artist == "Hans Zimmer"
    assert record.title == "Interstellar Theme"


def test_broken_tag_reader_falls_back_to_filename(storage):
    storage.put("A - B.mp3", b"data")

    def tag_reader(key, prefix):
        raise RuntimeError("bad frame")

    record = CatalogBuilder(storage, tag_reader=tag_reader).build_catalog(ORIGIN)[0]
    assert (record.artist, record.title) == ("A", "B")


def test_catalog_cache_reuses_listing_within_ttl(storage):
    storage.put("a.mp3", b"a")
    builder = CatalogBuilder(storage, cache_ttl=60)

    builder.build_catalog(ORIGIN)
    storage.put("b.mp3", b"b")
    cached = builder.build_catalog(ORIGIN)

    assert [r.id for r in cached] == ["a.mp3"]
    assert [c for c in storage.calls if c[0] == "list"] == [("list",)]


def test_catalog_is_rebuilt_without_cache(storage):
    storage.put("a.mp3", b"a")
    builder = CatalogBuilder(storage)
    builder.build_catalog(ORIGIN)
    storage.put("b.mp3", b"b")
    assert [r.id for r in builder.build_catalog(ORIGIN)] == ["a.mp3", "b.mp3"]


def test_cache_entries_expire():
    now = [100.0]
    cache = CatalogCache(ttl=10, clock=lambda: now[0])
    cache.put(ORIGIN, ["record"])

    now[0] = 109.0
    assert cache.get(ORIGIN) == ["record"]
    assert cache.get("http://other.example") is None

    now[0] = 110.0
    assert cache.get(ORIGIN) is None
