"""
Filename-convention metadata.

Object keys are expected to end in "Artist - Title - Album.ext". Anything
else still produces a usable record, falling back to sentinel values.
"""

import re
from typing import Dict, Optional, Mapping

from shared.constants import UNKNOWN_ARTIST, UNKNOWN_ALBUM, FILENAME_FIELD_SEPARATOR

_EXTENSION_RE = re.compile(r"\.[^/.]+$")


def filename_from_key(key: str) -> str:
    """Final path segment of an object key."""
    return key.rsplit('/', 1)[-1]


def strip_extension(name: str) -> str:
    return _EXTENSION_RE.sub("", name)


def key_extension(key: str) -> str:
    """Lower-cased text after the last '.' of the filename, or ''."""
    filename = filename_from_key(key)
    if '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[-1].lower()


def derive_metadata(key: str) -> Dict[str, str]:
    """
    Split a key's filename into title, artist and album.

    1 segment  -> title only
    2 segments -> artist, title
    3+         -> artist, title, album (extra segments ignored)
    """
    filename = filename_from_key(key)
    stem = strip_extension(filename) or filename
    parts = stem.split(FILENAME_FIELD_SEPARATOR)

    if len(parts) == 1:
        return {"title": stem, "artist": UNKNOWN_ARTIST, "album": UNKNOWN_ALBUM}

    artist = parts[0] or UNKNOWN_ARTIST
    title = parts[1] or stem
    album = parts[2] if len(parts) >= 3 and parts[2] else UNKNOWN_ALBUM
    return {"title": title, "artist": artist, "album": album}


def merge_tag_metadata(derived: Dict[str, str], tags: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Overlay non-empty tag values on filename-derived fields."""
    if not tags:
        return derived
    merged = dict(derived)
    for field_name in ("title", "artist", "album"):
        value = tags.get(field_name)
        if isinstance(value, str) and value.strip():
            merged[field_name] = value.strip()
    return merged
