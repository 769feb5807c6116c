"""
Factory for creating object store instances.

Simplifies backend selection and initialization.
"""

import logging
from typing import Optional

from shared.config import ScanConfig
from shared.exceptions import StoreUnavailable
from shared.models import StorageProvider
from .storage_provider import ObjectStore
from .cloudflare_r2 import CloudflareR2Store
from .local_provider import LocalDirectoryStore


class StoreFactory:
    """Factory for creating object store instances."""

    @staticmethod
    def create(config: ScanConfig, logger: Optional[logging.Logger] = None) -> ObjectStore:
        """
        Create the store selected by the configuration.

        Raises:
            StoreUnavailable: If the selected store is not configured
            ValueError: If the provider type is not supported
        """
        if config.provider == StorageProvider.CLOUDFLARE_R2:
            return CloudflareR2Store.from_config(config, logger=logger)

        elif config.provider == StorageProvider.LOCAL:
            if not config.music_dir:
                raise StoreUnavailable("Local store requires MUSIC_DIR")
            return LocalDirectoryStore(config.music_dir, logger=logger)

        else:
            raise ValueError(f"Unknown provider type: {config.provider}")

    @staticmethod
    def get_provider_name(provider_type: StorageProvider) -> str:
        """Get human-readable provider name."""
        names = {
            StorageProvider.CLOUDFLARE_R2: "Cloudflare R2",
            StorageProvider.LOCAL: "Local directory",
        }
        return names.get(provider_type, "Unknown")
