"""
Document store access.

A single ``StoreConnectionManager`` per process hands out the MongoDB
database handle to the profile and counter services.
"""

from .connection import (
    COUNTERS_COLLECTION,
    PROFILES_COLLECTION,
    ConnectionState,
    StoreConnectionManager,
)

__all__ = [
    "StoreConnectionManager",
    "ConnectionState",
    "PROFILES_COLLECTION",
    "COUNTERS_COLLECTION",
]
