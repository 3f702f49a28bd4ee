"""
Cover art resolution.

For a track key the resolver looks for, in order: a sibling image with the
same basename (.jpg, then .png), then the folder's cover.jpg / cover.png.
If none exists the built-in placeholder SVG is returned, so a cover request
always yields something renderable.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from shared.constants import (
    COVER_EXTENSIONS, FOLDER_COVER_BASENAME, DEFAULT_IMAGE_CONTENT_TYPE,
    PLACEHOLDER_CONTENT_TYPE, IMMUTABLE_CACHE_CONTROL, PLACEHOLDER_CACHE_CONTROL,
)
from storage.storage_provider import S3StorageProvider, ObjectNotFound, read_all
from .metadata import strip_extension
from .streaming import resolve_content_type

logger = logging.getLogger(__name__)

PLACEHOLDER_COVER_SVG = """<svg width="400" height="400" xmlns="http://www.w3.org/2000/svg">
    <defs>
        <linearGradient id="grad" x1="0%" y1="0%" x2="100%" y2="100%">
            <stop offset="0%" style="stop-color:#ff375f;stop-opacity:1" />
            <stop offset="100%" style="stop-color:#00c2ff;stop-opacity:1" />
        </linearGradient>
    </defs>
    <rect width="400" height="400" fill="url(#grad)" rx="10"/>
    <text x="200" y="200" font-family="Arial" font-size="60" fill="white"
          text-anchor="middle" dominant-baseline="middle">♪</text>
</svg>"""


@dataclass
class CoverImage:
    data: bytes
    content_type: str
    cache_control: str
    source_key: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.source_key is None


def placeholder_cover() -> CoverImage:
    return CoverImage(
        data=PLACEHOLDER_COVER_SVG.encode('utf-8'),
        content_type=PLACEHOLDER_CONTENT_TYPE,
        cache_control=PLACEHOLDER_CACHE_CONTROL,
    )


def cover_candidates(track_key: str) -> List[str]:
    """Ordered candidate keys for a track's artwork, without duplicates."""
    candidates = []
    if track_key:
        stem = strip_extension(track_key)
        candidates.extend(stem + ext for ext in COVER_EXTENSIONS)

    folder = track_key.rsplit('/', 1)[0] if '/' in track_key else ''
    prefix = f"{folder}/" if folder else ''
    candidates.extend(f"{prefix}{FOLDER_COVER_BASENAME}{ext}" for ext in COVER_EXTENSIONS)

    unique = []
    for key in candidates:
        if key not in unique and key != track_key:
            unique.append(key)
    return unique


class CoverResolver:
    """Finds artwork for a track, falling back to the placeholder."""

    def __init__(self, storage: S3StorageProvider):
        self.storage = storage

    def resolve_cover(self, track_key: str) -> CoverImage:
        for candidate in cover_candidates(track_key):
            try:
                descriptor = self.storage.head_object(candidate)
                data = read_all(self.storage.get_object(candidate))
            except ObjectNotFound:
                continue
            except Exception as e:
                logger.warning("Cover lookup for %s failed, using placeholder: %s", track_key, e)
                return placeholder_cover()

            return CoverImage(
                data=data,
                content_type=resolve_content_type(
                    descriptor.content_type, candidate, DEFAULT_IMAGE_CONTENT_TYPE),
                cache_control=IMMUTABLE_CACHE_CONTROL,
                source_key=candidate,
            )

        logger.debug("No cover for %s, using placeholder", track_key)
        return placeholder_cover()
