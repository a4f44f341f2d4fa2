"""
FastAPI dependencies for dependency injection.

This module provides singleton instances of the store connection manager
and the media storage backend, and builds the services on top of them.

Pattern: Dependency Injection
- Loose coupling between components
- Easy to test (override the singletons with fakes)
- Flexible (swap implementations via config)
"""

from functools import lru_cache

from fastapi import Depends

from biolink_app.config import settings
from biolink_app.database.connection import StoreConnectionManager
from biolink_app.media.factory import MediaBackend, MediaStorageFactory
from biolink_app.media.strategies import MediaStorageStrategy
from biolink_app.services.counter_service import CounterService
from biolink_app.services.profile_service import ProfileService
from biolink_app.services.upload_service import UploadService


@lru_cache()
def get_connection_manager() -> StoreConnectionManager:
    """
    Get the store connection manager (singleton).

    The manager connects lazily on first acquire().
    """
    return StoreConnectionManager(
        uri=settings.mongo_uri,
        database_name=settings.mongo_database,
        server_selection_timeout_ms=settings.mongo_server_selection_timeout_ms,
        connect_timeout_ms=settings.mongo_connect_timeout_ms,
    )


@lru_cache()
def get_media_storage() -> MediaStorageStrategy:
    """
    Get media storage instance (singleton).

    Factory gets config from settings internally.
    """
    backend = MediaBackend(settings.media_backend)
    return MediaStorageFactory.create(backend)


def get_counter_service(
    connections: StoreConnectionManager = Depends(get_connection_manager)
) -> CounterService:
    return CounterService(connections)


def get_profile_service(
    connections: StoreConnectionManager = Depends(get_connection_manager),
    counters: CounterService = Depends(get_counter_service),
) -> ProfileService:
    return ProfileService(connections, counters)


def get_upload_service(
    storage: MediaStorageStrategy = Depends(get_media_storage)
) -> UploadService:
    return UploadService(storage)
