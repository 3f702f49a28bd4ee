import io
import threading
from datetime import datetime, timezone

import pytest

from shared.api import create_app
from shared.models import ObjectDescriptor
from storage.local_provider import LocalStorageProvider
from storage.storage_provider import S3StorageProvider, ObjectNotFound, StoreUnavailable


UPLOADED = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


class MemoryStorage(S3StorageProvider):
    """In-memory gateway that records calls and can be told to fail."""

    def __init__(self):
        self.bucket_name = "memory"
        self.objects = {}
        self.calls = []
        self.fail_listing = False
        self.fail_keys = set()
        self.unavailable = False
        self._lock = threading.Lock()

    def put(self, key, data, content_type=None):
        self.objects[key] = (data, content_type)

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def _check(self, key):
        if self.unavailable or key in self.fail_keys:
            raise StoreUnavailable(f"store down for {key}")
        if key not in self.objects:
            raise ObjectNotFound(key)

    def authenticate(self, credentials):
        return True

    def list_objects(self):
        self._record("list")
        if self.fail_listing or self.unavailable:
            raise StoreUnavailable("listing refused")
        return [
            ObjectDescriptor(key=key, size=len(data), uploaded_at=UPLOADED, content_type=ctype, etag="abc")
            for key, (data, ctype) in self.objects.items()
        ]

    def head_object(self, key):
        self._record("head", key)
        if self.unavailable:
            raise StoreUnavailable("head refused")
        if key not in self.objects:
            raise ObjectNotFound(key)
        data, ctype = self.objects[key]
        return ObjectDescriptor(key=key, size=len(data), uploaded_at=UPLOADED, content_type=ctype, etag="abc")

    def get_range(self, key, start, end):
        self._record("get_range", key, start, end)
        self._check(key)
        return io.BytesIO(self.objects[key][0][start:end + 1])

    def get_object(self, key):
        self._record("get_object", key)
        self._check(key)
        return io.BytesIO(self.objects[key][0])


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def app(storage):
    app = create_app(storage=storage)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def music_dir(tmp_path):
    """A small library on disk."""
    root = tmp_path / "bucket"
    (root / "music").mkdir(parents=True)
    (root / "music" / "Daft Punk - One More Time - Discovery.flac").write_bytes(bytes(range(256)) * 4)
    (root / "music" / "Daft Punk - One More Time - Discovery.jpg").write_bytes(b"\xff\xd8jpeg")
    (root / "music" / "cover.png").write_bytes(b"\x89PNGfolder")
    (root / "Interstellar Theme.MP3").write_bytes(b"ID3" + b"\x00" * 97)
    (root / "notes.txt").write_text("not audio")
    return root


@pytest.fixture
def local_storage(music_dir):
    provider = LocalStorageProvider()
    assert provider.authenticate({"base_path": str(music_dir)})
    return provider
