"""
Catalog builder.

Lists the bucket, keeps audio objects, reads a bounded prefix of each one
in parallel and turns every object that could be read into a TrackRecord.
Output order always matches the store's listing order.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Mapping, Optional
from urllib.parse import quote

from shared.constants import (
    SUPPORTED_AUDIO_FORMATS, DEFAULT_CATALOG_WORKERS, DEFAULT_PREFIX_BYTES,
    DEFAULT_CATALOG_TIMEOUT, DEFAULT_CATALOG_CACHE_TTL,
)
from shared.models import ObjectDescriptor, TrackRecord
from storage.storage_provider import S3StorageProvider, read_all
from .metadata import derive_metadata, merge_tag_metadata, filename_from_key, key_extension

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves alone besides alphanumerics and -_.~
STREAM_KEY_SAFE = "!*'()"

TagReader = Callable[[str, bytes], Optional[Mapping[str, str]]]


def is_audio_key(key: str) -> bool:
    return key_extension(key) in SUPPORTED_AUDIO_FORMATS


def stream_url(origin: str, key: str) -> str:
    """Canonical stream endpoint for a key, e.g. https://host/api/stream/a%2Fb.mp3"""
    return f"{origin.rstrip('/')}/api/stream/{quote(key, safe=STREAM_KEY_SAFE)}"


class CatalogCache:
    """Per-origin catalog snapshots that expire after ttl seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def get(self, origin: str) -> Optional[List[TrackRecord]]:
        with self._lock:
            entry = self._entries.get(origin)
            if entry is None:
                return None
            stored_at, records = entry
            if self._clock() - stored_at >= self.ttl:
                del self._entries[origin]
                return None
            return list(records)

    def put(self, origin: str, records: List[TrackRecord]) -> None:
        with self._lock:
            self._entries[origin] = (self._clock(), list(records))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class CatalogBuilder:
    """Builds the track catalog from the object store."""

    def __init__(self, storage: S3StorageProvider,
                 workers: int = DEFAULT_CATALOG_WORKERS,
                 prefix_bytes: int = DEFAULT_PREFIX_BYTES,
                 catalog_timeout: float = DEFAULT_CATALOG_TIMEOUT,
                 cache_ttl: float = DEFAULT_CATALOG_CACHE_TTL,
                 tag_reader: Optional[TagReader] = None):
        self.storage = storage
        self.workers = max(1, workers)
        self.prefix_bytes = prefix_bytes
        self.catalog_timeout = catalog_timeout
        self.tag_reader = tag_reader
        self.cache = CatalogCache(cache_ttl) if cache_ttl > 0 else None

    def build_catalog(self, origin: str) -> List[TrackRecord]:
        """
        Build the catalog for clients reaching the server at origin.

        Raises:
            StoreUnavailable: If the bucket listing fails
        """
        if self.cache:
            cached = self.cache.get(origin)
            if cached is not None:
                return cached

        descriptors = self.storage.list_objects()
        admitted = [d for d in descriptors if is_audio_key(d.key)]
        logger.debug("Catalog: %d objects listed, %d audio", len(descriptors), len(admitted))

        prefixes = self._fetch_prefixes(admitted)

        records = []
        for descriptor, prefix in zip(admitted, prefixes):
            if prefix is None:
                continue
            records.append(self._to_record(descriptor, prefix, origin))

        if self.cache:
            self.cache.put(origin, records)
        return records

    def _fetch_prefix(self, descriptor: ObjectDescriptor) -> bytes:
        length = min(descriptor.size, self.prefix_bytes)
        if length <= 0:
            return b""
        return read_all(self.storage.get_range(descriptor.key, 0, length - 1))

    def _fetch_prefixes(self, descriptors: List[ObjectDescriptor]) -> List[Optional[bytes]]:
        """Fetch prefixes concurrently; results[i] is None when object i was skipped."""
        results: List[Optional[bytes]] = [None] * len(descriptors)
        if not descriptors:
            return results

        executor = ThreadPoolExecutor(
            max_workers=min(self.workers, len(descriptors)),
            thread_name_prefix="CatalogFetch",
        )
        try:
            future_to_index = {
                executor.submit(self._fetch_prefix, d): i
                for i, d in enumerate(descriptors)
            }
            done, not_done = wait(future_to_index, timeout=self.catalog_timeout)

            for future in done:
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.warning("Catalog: skipping %s: %s", descriptors[index].key, e)

            if not_done:
                for future in not_done:
                    future.cancel()
                logger.warning("Catalog: %d objects timed out after %.1fs, skipping",
                               len(not_done), self.catalog_timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _to_record(self, descriptor: ObjectDescriptor, prefix: bytes, origin: str) -> TrackRecord:
        fields = derive_metadata(descriptor.key)
        if self.tag_reader and prefix:
            try:
                fields = merge_tag_metadata(fields, self.tag_reader(descriptor.key, prefix))
            except Exception as e:
                logger.warning("Catalog: tag reader failed for %s: %s", descriptor.key, e)

        return TrackRecord(
            id=descriptor.key,
            filename=filename_from_key(descriptor.key),
            title=fields["title"],
            artist=fields["artist"],
            album=fields["album"],
            size=descriptor.size,
            uploaded_at=descriptor.uploaded_at,
            stream_url=stream_url(origin, descriptor.key),
        )
