"""
HTTP byte-range streaming of store objects.

Range headers are validated strictly: anything that isn't a single
satisfiable "bytes=" range is answered with 416 and "bytes */<size>".
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import timezone
from email.utils import format_datetime
from typing import Dict, Iterable, Optional

from shared.constants import (
    DEFAULT_STREAM_CHUNK_SIZE, DEFAULT_AUDIO_CONTENT_TYPE, GENERIC_CONTENT_TYPES,
    CONTENT_TYPES_BY_EXTENSION, IMMUTABLE_CACHE_CONTROL,
)
from shared.models import ByteRange, ObjectDescriptor
from storage.storage_provider import S3StorageProvider, iter_body
from .metadata import key_extension

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^bytes\s*=\s*(\d*)\s*-\s*(\d*)$", re.IGNORECASE)


class MalformedRange(ValueError):
    """Range header that can't be parsed or doesn't fit the object."""

    def __init__(self, header: str, size: int):
        super().__init__(f"Unsatisfiable range {header!r} for object of {size} bytes")
        self.header = header
        self.size = size


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """
    Resolve a Range header against an object size.

    Accepts "bytes=a-b", "bytes=a-" and the suffix form "bytes=-n".

    Returns:
        The inclusive window, or None when no range was requested

    Raises:
        MalformedRange: For syntax errors, multiple ranges, start > end,
                        end beyond the last byte, or any range on an empty object
    """
    if header is None or not header.strip():
        return None

    match = _RANGE_RE.match(header.strip())
    if not match:
        raise MalformedRange(header, size)

    first, last = match.groups()
    if not first:
        if not last:
            raise MalformedRange(header, size)
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise MalformedRange(header, size)
        start, end = max(0, size - suffix), size - 1
    else:
        start = int(first)
        end = int(last) if last else size - 1

    if start > end or end > size - 1:
        raise MalformedRange(header, size)
    return ByteRange(start, end)


def resolve_content_type(reported: Optional[str], key: str, default: str) -> str:
    """Store-reported type unless it's a generic one, then extension, then default."""
    if reported and reported.lower() not in GENERIC_CONTENT_TYPES:
        return reported
    return CONTENT_TYPES_BY_EXTENSION.get(key_extension(key), default)


@dataclass
class StreamResponse:
    status: int
    headers: Dict[str, str]
    body: Iterable[bytes] = field(default_factory=list)


class RangeStreamer:
    """Serves whole objects (200) or byte windows of them (206)."""

    def __init__(self, storage: S3StorageProvider, chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE):
        self.storage = storage
        self.chunk_size = chunk_size

    def stream(self, key: str, range_header: Optional[str] = None) -> StreamResponse:
        """
        Build the response for a stream request.

        Raises:
            ObjectNotFound: If the key doesn't exist (or vanishes before the read)
            StoreUnavailable: On transport failure
        """
        descriptor = self.storage.head_object(key)

        try:
            window = parse_range(range_header, descriptor.size)
        except MalformedRange as e:
            logger.info("Rejecting range for %s: %s", key, e)
            return StreamResponse(416, {
                "Content-Range": f"bytes */{descriptor.size}",
                "Content-Length": "0",
                "Accept-Ranges": "bytes",
            })

        if window is None:
            body = self.storage.get_object(key)
            status, length = 200, descriptor.size
        else:
            body = self.storage.get_range(key, window.start, window.end)
            status, length = 206, window.length

        headers = self._object_headers(descriptor)
        headers["Content-Length"] = str(length)
        if window is not None:
            headers["Content-Range"] = window.content_range(descriptor.size)

        return StreamResponse(status, headers, iter_body(body, self.chunk_size))

    def _object_headers(self, descriptor: ObjectDescriptor) -> Dict[str, str]:
        headers = {
            "Content-Type": resolve_content_type(
                descriptor.content_type, descriptor.key, DEFAULT_AUDIO_CONTENT_TYPE),
            "Accept-Ranges": "bytes",
            "Cache-Control": IMMUTABLE_CACHE_CONTROL,
        }
        if descriptor.etag:
            headers["ETag"] = f'"{descriptor.etag}"'
        if descriptor.uploaded_at:
            headers["Last-Modified"] = format_datetime(
                descriptor.uploaded_at.astimezone(timezone.utc), usegmt=True)
        return headers
