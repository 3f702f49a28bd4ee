"""
Local filesystem storage provider.
Implements the gateway interface on top of a directory tree, where each
file's path relative to the root is its object key.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, List

from shared.constants import CONTENT_TYPES_BY_EXTENSION
from shared.models import ObjectDescriptor
from .storage_provider import S3StorageProvider, ObjectBody, ObjectNotFound, StoreUnavailable

logger = logging.getLogger(__name__)


class _FileWindow:
    """File handle limited to a fixed number of bytes from its position."""

    def __init__(self, handle, length: int):
        self._handle = handle
        self._remaining = length

    def read(self, amt: Optional[int] = None) -> bytes:
        if self._remaining <= 0:
            return b""
        if amt is None or amt < 0 or amt > self._remaining:
            amt = self._remaining
        data = self._handle.read(amt)
        self._remaining -= len(data)
        return data

    def close(self) -> None:
        self._handle.close()


class LocalStorageProvider(S3StorageProvider):
    """
    Storage provider that uses the local filesystem.
    Useful for self-hosting on a NAS or local drive, and for development.
    """

    def __init__(self):
        self.base_path: Optional[Path] = None
        self.bucket_name: Optional[str] = None

    def authenticate(self, credentials: Dict[str, str]) -> bool:
        """
        'Authenticate' by setting the root directory.
        The root comes from base_path, or endpoint as a fallback.
        """
        path = credentials.get('base_path') or credentials.get('endpoint')
        if not path:
            logger.error("Local provider needs a base_path")
            return False

        self.base_path = Path(path).expanduser().absolute()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.bucket_name = credentials.get('bucket') or self.base_path.name
        return True

    def _root(self) -> Path:
        if self.base_path is None:
            raise StoreUnavailable("Local provider is not initialised")
        return self.base_path

    def _get_path(self, key: str) -> Path:
        """Absolute path for a key; keys escaping the root don't exist."""
        root = self._root()
        parts = key.split('/')
        if not key or key.startswith('/') or '..' in parts:
            raise ObjectNotFound(key)
        path = root.joinpath(*parts)
        if not path.is_file():
            raise ObjectNotFound(key)
        return path

    def _describe(self, key: str, path: Path) -> ObjectDescriptor:
        stat = path.stat()
        ext = path.suffix.lower().lstrip('.')
        return ObjectDescriptor(
            key=key,
            size=stat.st_size,
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            content_type=CONTENT_TYPES_BY_EXTENSION.get(ext),
            etag=f"{stat.st_mtime_ns:x}-{stat.st_size:x}",
        )

    def list_objects(self) -> List[ObjectDescriptor]:
        root = self._root()
        if not root.is_dir():
            raise StoreUnavailable(f"Local root {root} is not a directory")

        objects = []
        try:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                for filename in sorted(filenames):
                    full_path = Path(dirpath) / filename
                    key = full_path.relative_to(root).as_posix()
                    objects.append(self._describe(key, full_path))
        except OSError as e:
            raise StoreUnavailable(f"Local listing failed: {e}") from e
        return objects

    def head_object(self, key: str) -> ObjectDescriptor:
        path = self._get_path(key)
        try:
            return self._describe(key, path)
        except FileNotFoundError:
            raise ObjectNotFound(key)

    def get_range(self, key: str, start: int, end: int) -> ObjectBody:
        path = self._get_path(key)
        try:
            size = path.stat().st_size
            if start < 0 or end < start or end >= size:
                raise ObjectNotFound(key)
            handle = open(path, 'rb')
        except FileNotFoundError:
            raise ObjectNotFound(key)
        handle.seek(start)
        return _FileWindow(handle, end - start + 1)

    def get_object(self, key: str) -> ObjectBody:
        path = self._get_path(key)
        try:
            return open(path, 'rb')
        except FileNotFoundError:
            raise ObjectNotFound(key)
