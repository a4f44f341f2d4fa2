"""
Connection lifecycle for the MongoDB document store.

One Motor client is shared by the whole process. ``acquire()`` hands out the
database handle, probing it with a ``ping`` first and reconnecting when the
probe fails. Concurrent callers never start more than one connection
attempt: they all await the same in-flight establishment.

States:
    DISCONNECTED -> CONNECTING(shared future) -> CONNECTED(client)
    CONNECTED -> DISCONNECTED on a failed probe or close()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from biolink_app.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

PROFILES_COLLECTION = "profiles"
COUNTERS_COLLECTION = "views"


class ConnectionState(Enum):
    """Lifecycle states of the store connection"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class StoreConnectionManager:
    """
    Owns the single store connection of the process.

    No locks are taken around reads and writes: the database handle is
    shared by all requests and consistency comes from MongoDB's atomic
    single-document operations.
    """

    def __init__(
        self,
        uri: str,
        database_name: str,
        server_selection_timeout_ms: int = 8000,
        connect_timeout_ms: int = 10000,
        client_factory: Callable[..., Any] = AsyncIOMotorClient,
    ):
        """
        Args:
            uri: MongoDB connection string
            database_name: Database holding the profile and counter collections
            server_selection_timeout_ms: Max wait for a usable server
            connect_timeout_ms: Max wait for the TCP/TLS handshake
            client_factory: Builds the driver client (swapped out in tests)
        """
        self.uri = uri
        self.database_name = database_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.connect_timeout_ms = connect_timeout_ms
        self._client_factory = client_factory

        self._client = None
        self._database: Optional[AsyncIOMotorDatabase] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def state(self) -> ConnectionState:
        if self._pending is not None and not self._pending.done():
            return ConnectionState.CONNECTING
        if self._client is not None:
            return ConnectionState.CONNECTED
        return ConnectionState.DISCONNECTED

    async def acquire(self) -> AsyncIOMotorDatabase:
        """
        Return a live database handle.

        Raises:
            StoreUnavailableError: connection could not be (re-)established
        """
        client = self._client
        if client is not None:
            if await self._probe(client):
                if self._client is client:
                    return self._database
            else:
                self._discard(client)

        return await self._connect_once()

    async def close(self) -> None:
        """Close the client (application shutdown)."""
        client = self._client
        if client is None:
            return
        self._client = None
        self._database = None
        client.close()
        logger.info("MongoDB disconnected")

    async def _connect_once(self) -> AsyncIOMotorDatabase:
        """Join the in-flight establishment or start one."""
        if self._pending is None:
            if self._client is not None:
                # Re-established by a concurrent caller
                return self._database
            self._pending = asyncio.ensure_future(self._establish())
            self._pending.add_done_callback(self._clear_pending)

        # Shield so one cancelled caller doesn't abort the attempt for everyone
        return await asyncio.shield(self._pending)

    def _clear_pending(self, future: asyncio.Future) -> None:
        if self._pending is future:
            self._pending = None
        if not future.cancelled():
            # Mark retrieved; the waiters already got it
            future.exception()

    async def _establish(self) -> AsyncIOMotorDatabase:
        logger.info("Connecting to MongoDB database '%s'", self.database_name)
        client = self._client_factory(
            self.uri,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            connectTimeoutMS=self.connect_timeout_ms,
        )

        try:
            await client.admin.command("ping")
            database = client[self.database_name]
            await self._ensure_indexes(database)
        except PyMongoError as e:
            client.close()
            logger.error("❌ MongoDB connect failed: %s", e)
            raise StoreUnavailableError(diagnostic=str(e)) from e

        self._client = client
        self._database = database
        logger.info("✅ MongoDB connected")
        return database

    async def _ensure_indexes(self, database: AsyncIOMotorDatabase) -> None:
        """One record per handle in each collection."""
        await database[PROFILES_COLLECTION].create_index("handle", unique=True)
        await database[COUNTERS_COLLECTION].create_index("handle", unique=True)

    async def _probe(self, client) -> bool:
        try:
            await client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("⚠️  MongoDB connection lost (%s), reconnecting", e)
            return False

    def _discard(self, client) -> None:
        # Only drop the client we probed; a concurrent caller may have replaced it
        if self._client is not client:
            return
        self._client = None
        self._database = None
        client.close()
        logger.info("MongoDB disconnected")
