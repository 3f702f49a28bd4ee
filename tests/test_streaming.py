import threading

import pytest

from shared.models import ByteRange
from media.streaming import MalformedRange, RangeStreamer, parse_range, resolve_content_type
from storage.storage_provider import ObjectNotFound

OBJECT = bytes(range(256)) * 40  # 10240 bytes


def body_of(response):
    return b"".join(response.body)


@pytest.fixture
def streamer(storage):
    storage.put("music/track.mp3", OBJECT, "audio/mpeg")
    return RangeStreamer(storage, chunk_size=1000)


@pytest.mark.parametrize("header,expected", [
    (None, None),
    ("", None),
    ("bytes=0-99", ByteRange(0, 99)),
    ("bytes=0-", ByteRange(0, 1023)),
    ("bytes=1000-", ByteRange(1000, 1023)),
    ("bytes=1023-1023", ByteRange(1023, 1023)),
    ("bytes=-24", ByteRange(1000, 1023)),
    ("bytes=-5000", ByteRange(0, 1023)),
    ("Bytes = 10 - 20", ByteRange(10, 20)),
])
def test_parse_range_accepts_single_ranges(header, expected):
    assert parse_range(header, 1024) == expected


@pytest.mark.parametrize("header", [
    "bytes=abc-def",
    "bytes=5-2",
    "bytes=1024-",
    "bytes=0-1024",
    "bytes=-0",
    "bytes=-",
    "bytes=0-10,20-30",
    "items=0-10",
    "0-10",
])
def test_parse_range_rejects_invalid_ranges(header):
    with pytest.raises(MalformedRange) as excinfo:
        parse_range(header, 1024)
    assert excinfo.value.size == 1024


def test_any_range_on_empty_object_is_unsatisfiable():
    with pytest.raises(MalformedRange):
        parse_range("bytes=0-", 0)
    assert parse_range(None, 0) is None


def test_no_range_streams_whole_object(streamer):
    response = streamer.stream("music/track.mp3")
    assert response.status == 200
    assert response.headers["Content-Length"] == str(len(OBJECT))
    assert "Content-Range" not in response.headers
    assert response.headers["Accept-Ranges"] == "bytes"
    assert response.headers["Cache-Control"] == "public, max-age=31536000"
    assert body_of(response) == OBJECT


def test_valid_range_returns_exact_window(streamer):
    response = streamer.stream("music/track.mp3", "bytes=100-2099")
    assert response.status == 206
    assert response.headers["Content-Length"] == "2000"
    assert response.headers["Content-Range"] == f"bytes 100-2099/{len(OBJECT)}"
    assert body_of(response) == OBJECT[100:2100]


def test_open_ended_range_runs_to_last_byte(streamer):
    response = streamer.stream("music/track.mp3", "bytes=0-")
    assert response.status == 206
    assert response.headers["Content-Range"] == f"bytes 0-{len(OBJECT) - 1}/{len(OBJECT)}"
    assert body_of(response) == OBJECT


def test_malformed_range_is_416(streamer, storage):
    response = streamer.stream("music/track.mp3", f"bytes={len(OBJECT)}-")
    assert response.status == 416
    assert response.headers["Content-Range"] == f"bytes */{len(OBJECT)}"
    assert body_of(response) == b""
    assert not [c for c in storage.calls if c[0] in ("get_range", "get_object")]


def test_missing_object_raises_not_found(streamer, storage):
    with pytest.raises(ObjectNotFound):
        streamer.stream("nope.mp3", "bytes=0-1")
    assert storage.calls == [("head", "nope.mp3")]


def test_object_headers(streamer):
    headers = streamer.stream("music/track.mp3").headers
    assert headers["Content-Type"] == "audio/mpeg"
    assert headers["ETag"] == '"abc"'
    assert headers["Last-Modified"] == "Wed, 01 May 2024 12:30:00 GMT"


def test_content_type_defaults_to_audio_mpeg(storage):
    storage.put("blob", b"1234")
    assert RangeStreamer(storage).stream("blob").headers["Content-Type"] == "audio/mpeg"


def test_resolve_content_type():
    assert resolve_content_type("audio/flac", "x.mp3", "audio/mpeg") == "audio/flac"
    assert resolve_content_type("binary/octet-stream", "x.ogg", "audio/mpeg") == "audio/ogg"
    assert resolve_content_type(None, "x.M4A", "audio/mpeg") == "audio/mp4"
    assert resolve_content_type(None, "x.unknown", "audio/mpeg") == "audio/mpeg"


def test_body_is_chunked(storage):
    storage.put("t.mp3", OBJECT)
    response = RangeStreamer(storage, chunk_size=4096).stream("t.mp3")
    chunks = list(response.body)
    assert [len(c) for c in chunks] == [4096, 4096, 2048]


def test_concurrent_disjoint_ranges_do_not_interfere(local_storage):
    key = "music/Daft Punk - One More Time - Discovery.flac"
    expected = bytes(range(256)) * 4
    streamer = RangeStreamer(local_storage, chunk_size=7)
    windows = [(i * 64, i * 64 + 63) for i in range(16)]
    results = {}
    errors = []

    def fetch(start, end):
        try:
            response = streamer.stream(key, f"bytes={start}-{end}")
            results[(start, end)] = (response.status, body_of(response))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=fetch, args=w) for w in windows]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    for start, end in windows:
        status, data = results[(start, end)]
        assert status == 206
        assert data == expected[start:end + 1]
