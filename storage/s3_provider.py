"""
Generic S3-compatible object store gateway.

Works against AWS S3, MinIO, DigitalOcean Spaces and anything else that
speaks the S3 API. Cloudflare R2 specifics live in cloudflare_r2.py.
"""

import logging
from typing import Optional, Dict, List

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.constants import DEFAULT_FETCH_TIMEOUT, DEFAULT_CATALOG_WORKERS
from shared.models import ObjectDescriptor
from .storage_provider import S3StorageProvider, ObjectBody, ObjectNotFound, StoreUnavailable

logger = logging.getLogger(__name__)

# Error codes meaning "this key (or this window of it) is not there"
NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "InvalidRange", "416"}


def _strip_etag(etag: Optional[str]) -> Optional[str]:
    return etag.strip('"') if etag else None


class S3CompatibleProvider(S3StorageProvider):
    """
    Object store gateway using the boto3 S3 client.

    The client is created once in authenticate() and shared by all request
    threads (boto3 clients are thread safe).
    """

    display_name = "S3"

    def __init__(self, fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
                 max_connections: int = DEFAULT_CATALOG_WORKERS):
        self.s3_client = None
        self.bucket_name = None
        self.endpoint_url = None
        self.fetch_timeout = fetch_timeout
        self.max_connections = max_connections

    def _endpoint(self, credentials: Dict[str, str]) -> Optional[str]:
        return credentials.get('endpoint') or None

    def _region(self, credentials: Dict[str, str]) -> Optional[str]:
        return credentials.get('region') or None

    def _client_config(self) -> Config:
        return Config(
            connect_timeout=self.fetch_timeout,
            read_timeout=self.fetch_timeout,
            max_pool_connections=max(10, self.max_connections),
        )

    def authenticate(self, credentials: Dict[str, str]) -> bool:
        """
        Create the S3 client and check the bucket is reachable.

        Args:
            credentials: Must contain access_key_id and secret_access_key;
                        endpoint, region and bucket are optional
        """
        try:
            self.endpoint_url = self._endpoint(credentials)
            self.bucket_name = credentials.get('bucket') or None

            self.s3_client = boto3.client(
                's3',
                endpoint_url=self.endpoint_url,
                aws_access_key_id=credentials['access_key_id'],
                aws_secret_access_key=credentials['secret_access_key'],
                region_name=self._region(credentials),
                config=self._client_config(),
            )

            if self.bucket_name:
                self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True

        except (ClientError, BotoCoreError, KeyError, ValueError) as e:
            logger.error("%s authentication failed: %s", self.display_name, e)
            return False

    def _translate(self, error: Exception, key: str) -> Exception:
        """Map a botocore failure onto the gateway error taxonomy."""
        if isinstance(error, ClientError):
            code = str(error.response.get('Error', {}).get('Code', ''))
            if code in NOT_FOUND_CODES:
                return ObjectNotFound(key)
        return StoreUnavailable(f"{self.display_name} request for {key!r} failed: {error}")

    def list_objects(self) -> List[ObjectDescriptor]:
        """List every object in the bucket, following continuation tokens."""
        objects = []
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket_name):
                for obj in page.get('Contents', []):
                    objects.append(ObjectDescriptor(
                        key=obj['Key'],
                        size=obj['Size'],
                        uploaded_at=obj.get('LastModified'),
                        etag=_strip_etag(obj.get('ETag')),
                    ))
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"{self.display_name} listing failed: {e}") from e
        return objects

    def head_object(self, key: str) -> ObjectDescriptor:
        try:
            response = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key) from e
        return ObjectDescriptor(
            key=key,
            size=response['ContentLength'],
            uploaded_at=response.get('LastModified'),
            content_type=response.get('ContentType'),
            etag=_strip_etag(response.get('ETag')),
        )

    def get_range(self, key: str, start: int, end: int) -> ObjectBody:
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name, Key=key, Range=f"bytes={start}-{end}"
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key) from e
        return response['Body']

    def get_object(self, key: str) -> ObjectBody:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key) from e
        return response['Body']
