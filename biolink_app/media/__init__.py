"""
Media storage module for uploaded avatars, backgrounds and music.
Implements Strategy Pattern for pluggable object storage backends.
"""

from .strategies import (
    CloudinaryMediaStorage,
    InMemoryMediaStorage,
    MediaStorageError,
    MediaStorageStrategy,
    MediaTarget,
    StoredMedia,
)
from .factory import MediaBackend, MediaStorageFactory

__all__ = [
    "MediaStorageStrategy",
    "CloudinaryMediaStorage",
    "InMemoryMediaStorage",
    "MediaStorageError",
    "MediaTarget",
    "StoredMedia",
    "MediaBackend",
    "MediaStorageFactory",
]
