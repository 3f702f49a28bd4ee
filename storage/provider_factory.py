"""
Factory for creating storage provider instances.

Simplifies provider selection and initialization.
"""

from shared.models import ServerConfig, StorageProvider
from .storage_provider import S3StorageProvider, StoreUnavailable
from .s3_provider import S3CompatibleProvider
from .cloudflare_r2 import CloudflareR2Provider
from .local_provider import LocalStorageProvider


class StorageProviderFactory:
    """Factory for creating storage provider instances."""

    @staticmethod
    def create(provider_type: StorageProvider, config: ServerConfig = None) -> S3StorageProvider:
        """
        Create an unauthenticated storage provider instance.

        Raises:
            ValueError: If provider type is not supported
        """
        if provider_type == StorageProvider.CLOUDFLARE_R2:
            if config:
                return CloudflareR2Provider(config.fetch_timeout, config.catalog_workers)
            return CloudflareR2Provider()

        elif provider_type == StorageProvider.GENERIC_S3:
            if config:
                return S3CompatibleProvider(config.fetch_timeout, config.catalog_workers)
            return S3CompatibleProvider()

        elif provider_type == StorageProvider.LOCAL:
            return LocalStorageProvider()

        else:
            raise ValueError(f"Unknown provider type: {provider_type}")

    @staticmethod
    def connect(config: ServerConfig) -> S3StorageProvider:
        """
        Create and authenticate the provider described by a config.

        Raises:
            StoreUnavailable: If authentication or bucket access fails
        """
        provider = StorageProviderFactory.create(config.provider, config)
        if not provider.authenticate(config.credentials()):
            name = StorageProviderFactory.get_provider_name(config.provider)
            raise StoreUnavailable(f"Could not connect to {name} bucket {config.bucket or config.base_path!r}")
        return provider

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
            StorageProvider.GENERIC_S3: "Generic S3-Compatible",
            StorageProvider.LOCAL: "Local Directory",
        }
        return names.get(provider_type, "Unknown")
