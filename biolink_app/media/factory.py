"""
Factory for creating media storage instances.
Simple, clean factory with singleton caching.
"""

import logging
from enum import Enum

from .strategies import CloudinaryMediaStorage, InMemoryMediaStorage, MediaStorageStrategy
from biolink_app.config import settings

logger = logging.getLogger(__name__)


class MediaBackend(Enum):
    """Available media storage backends"""
    CLOUDINARY = "cloudinary"
    MEMORY = "memory"


class MediaStorageFactory:
    """
    Simple factory for creating media storage instances.

    Gets configuration from settings (not passed as parameters).
    """

    _instance: MediaStorageStrategy = None  # Single cached instance

    @classmethod
    def create(cls, backend: MediaBackend) -> MediaStorageStrategy:
        """
        Create or return cached media storage instance.

        Args:
            backend: Type of media backend (from enum)

        Returns:
            Singleton media storage instance
        """
        if cls._instance is not None:
            return cls._instance

        if backend == MediaBackend.CLOUDINARY:
            if settings.cloudinary_configured:
                cls._instance = CloudinaryMediaStorage(
                    cloud_name=settings.cloudinary_cloud_name,
                    api_key=settings.cloudinary_api_key,
                    api_secret=settings.cloudinary_api_secret,
                    timeout=settings.media_upload_timeout,
                )
                logger.info("✅ Cloudinary media storage initialized")
            else:
                logger.warning("⚠️  Cloudinary credentials missing, falling back to in-memory media storage")
                cls._instance = InMemoryMediaStorage()

        elif backend == MediaBackend.MEMORY:
            cls._instance = InMemoryMediaStorage()
            logger.info("✅ In-memory media storage initialized")

        else:
            raise ValueError(f"Unknown media backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
