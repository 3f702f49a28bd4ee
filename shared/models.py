"""
Data models for store objects, catalog tracks, and server configuration.

This module defines the core data structures passed between the storage
gateways, the media components and the HTTP layer.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Optional, Any
from enum import Enum
from datetime import datetime
import json

from shared.constants import (
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_CATALOG_WORKERS, DEFAULT_PREFIX_BYTES,
    DEFAULT_FETCH_TIMEOUT, DEFAULT_CATALOG_TIMEOUT, DEFAULT_CATALOG_CACHE_TTL,
    DEFAULT_STREAM_CHUNK_SIZE,
)


class StorageProvider(Enum):
    """Supported object store backends."""
    CLOUDFLARE_R2 = "r2"
    GENERIC_S3 = "s3"
    LOCAL = "local"


@dataclass(frozen=True)
class ObjectDescriptor:
    """
    Snapshot of a single object as reported by the store.

    Attributes:
        key: Object key (path) in the bucket
        size: Size in bytes
        uploaded_at: Last-modified / upload time
        content_type: Store-reported content type, if any
        etag: Entity tag without surrounding quotes, if any
    """
    key: str
    size: int
    uploaded_at: Optional[datetime] = None
    content_type: Optional[str] = None
    etag: Optional[str] = None


@dataclass
class TrackRecord:
    """
    Display-ready catalog entry derived from an ObjectDescriptor.

    Built per catalog request and never persisted.
    """
    id: str
    filename: str
    title: str
    artist: str
    album: str
    size: int
    uploaded_at: Optional[datetime]
    stream_url: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape consumed by the web pages."""
        return {
            "id": self.id,
            "filename": self.filename,
            "key": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "size": self.size,
            "uploaded": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "url": self.stream_url,
        }


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte window [start, end] of an object."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


@dataclass
class ServerConfig:
    """
    Server configuration stored locally on the host.

    Contains credentials for the object store plus serving and catalog tuning.
    """
    provider: StorageProvider
    bucket: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    region: Optional[str] = None
    base_path: Optional[str] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    public_origin: Optional[str] = None
    catalog_workers: int = DEFAULT_CATALOG_WORKERS
    prefix_bytes: int = DEFAULT_PREFIX_BYTES
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    catalog_timeout: float = DEFAULT_CATALOG_TIMEOUT
    catalog_cache_ttl: float = DEFAULT_CATALOG_CACHE_TTL
    stream_chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE
    is_encrypted: bool = False

    def to_dict(self, encrypt: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary, optionally encrypting credentials."""
        from shared.crypto import encrypt_secret

        data = asdict(self)
        data['provider'] = self.provider.value

        if encrypt and not self.is_encrypted and self.access_key_id:
            data['access_key_id'] = encrypt_secret(self.access_key_id)
            data['secret_access_key'] = encrypt_secret(self.secret_access_key)
            data['is_encrypted'] = True

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerConfig':
        """Create ServerConfig from dictionary, decrypting if necessary."""
        from shared.crypto import decrypt_secret

        import dataclasses
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}

        filtered_data['provider'] = StorageProvider(filtered_data['provider'])

        if filtered_data.get('is_encrypted', False):
            dec_id = decrypt_secret(filtered_data.get('access_key_id', ''))
            dec_key = decrypt_secret(filtered_data.get('secret_access_key', ''))

            # Wrong machine: keep the encrypted strings, auth will fail later
            if dec_id is not None and dec_key is not None:
                filtered_data['access_key_id'] = dec_id
                filtered_data['secret_access_key'] = dec_key
                filtered_data['is_encrypted'] = False

        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'ServerConfig':
        """Deserialize from JSON."""
        return cls.from_dict(json.loads(json_str))

    def credentials(self) -> Dict[str, str]:
        """Credentials dictionary understood by the storage providers."""
        creds = {
            'access_key_id': self.access_key_id,
            'secret_access_key': self.secret_access_key,
            'endpoint': self.endpoint,
            'region': self.region or '',
            'bucket': self.bucket,
            'base_path': self.base_path or '',
        }
        if self.provider == StorageProvider.CLOUDFLARE_R2:
            creds['account_id'] = _account_id_from_endpoint(self.endpoint)
        return creds


def _account_id_from_endpoint(endpoint: str) -> str:
    """Endpoint format: https://<account_id>.r2.cloudflarestorage.com"""
    try:
        return endpoint.split('//')[1].split('.')[0]
    except IndexError:
        return ''
