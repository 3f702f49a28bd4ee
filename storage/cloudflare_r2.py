"""
Cloudflare R2 storage provider implementation.

Cloudflare R2 is S3-compatible and offers zero egress fees, making it ideal
for music streaming use cases.
"""

from typing import Optional, Dict

from shared.constants import CLOUDFLARE_R2_ENDPOINT_TEMPLATE
from .s3_provider import S3CompatibleProvider


class CloudflareR2Provider(S3CompatibleProvider):
    """
    Cloudflare R2 gateway using the boto3 S3 client.

    Credentials must contain account_id (or a full endpoint),
    access_key_id and secret_access_key.
    """

    display_name = "Cloudflare R2"

    def _endpoint(self, credentials: Dict[str, str]) -> Optional[str]:
        account_id = credentials.get('account_id')
        if account_id:
            return CLOUDFLARE_R2_ENDPOINT_TEMPLATE.format(account_id=account_id)
        return credentials['endpoint']

    def _region(self, credentials: Dict[str, str]) -> Optional[str]:
        # R2 doesn't use regions, always 'auto'
        return 'auto'
