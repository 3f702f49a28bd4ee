"""
Abstract base class for object store gateways.

This module defines the interface every backend must implement so the
media components can list, inspect and read objects from Cloudflare R2,
any other S3-compatible service, or a local directory.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Iterator, Protocol

from shared.models import ObjectDescriptor


class StorageError(Exception):
    """Base class for object store failures."""


class StoreUnavailable(StorageError):
    """The store could not be reached or refused the request."""


class ObjectNotFound(StorageError):
    """The requested key does not exist (or vanished mid-request)."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class ObjectBody(Protocol):
    """Readable byte stream returned by get_range/get_object."""

    def read(self, amt: int = ...) -> bytes: ...

    def close(self) -> None: ...


def iter_body(body: ObjectBody, chunk_size: int) -> Iterator[bytes]:
    """Yield chunks from a body, closing it when exhausted or abandoned."""
    try:
        while True:
            chunk = body.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        body.close()


def read_all(body: ObjectBody) -> bytes:
    """Read a whole body and release it."""
    try:
        return body.read()
    finally:
        body.close()


class S3StorageProvider(ABC):
    """
    Abstract base class for object store gateways.

    Implementations are shared across request threads, so they must not
    keep per-request state. Every read method raises ObjectNotFound for a
    missing key and StoreUnavailable for transport or permission failures.
    """

    bucket_name = None

    @abstractmethod
    def authenticate(self, credentials: Dict[str, str]) -> bool:
        """
        Connect to the store.

        Args:
            credentials: Provider specific keys (access_key_id,
                        secret_access_key, endpoint, bucket, base_path, ...)

        Returns:
            True if the store and bucket are reachable, False otherwise
        """

    @abstractmethod
    def list_objects(self) -> List[ObjectDescriptor]:
        """
        Snapshot listing of the bucket, following pagination internally.

        Raises:
            StoreUnavailable: If the listing fails
        """

    @abstractmethod
    def head_object(self, key: str) -> ObjectDescriptor:
        """
        Fetch an object's metadata without its content.

        Raises:
            ObjectNotFound: If the key does not exist
            StoreUnavailable: On transport failure
        """

    @abstractmethod
    def get_range(self, key: str, start: int, end: int) -> ObjectBody:
        """
        Open the inclusive byte window [start, end] of an object.

        The returned body yields exactly end - start + 1 bytes. Callers
        must close it.

        Raises:
            ObjectNotFound: If the key vanished or the window no longer fits
            StoreUnavailable: On transport failure
        """

    @abstractmethod
    def get_object(self, key: str) -> ObjectBody:
        """
        Open the full content of an object. Callers must close it.

        Raises:
            ObjectNotFound: If the key does not exist
            StoreUnavailable: On transport failure
        """
