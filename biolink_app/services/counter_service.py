import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from biolink_app.database import COUNTERS_COLLECTION, StoreConnectionManager
from biolink_app.exceptions import StoreError
from biolink_app.services.handles import normalize_handle

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("views", "clicks", "followers")


class CounterService:
    """
    Per-handle view and click counters.

    Every increment is a single ``find_one_and_update`` with ``$inc`` and
    upsert, so concurrent increments never get lost. Two first-ever
    increments for the same handle can both try to insert; the unique index
    on ``handle`` lets one win and the other gets a duplicate-key error,
    which is retried once as a plain increment of the record that now exists.
    """

    def __init__(self, connections: StoreConnectionManager):
        """
        Args:
            connections: Store connection manager (acquired before every call)
        """
        self.connections = connections

    async def record_view(self, handle: str) -> int:
        """Add one view and return the new total."""
        return await self._increment(handle, "views")

    async def record_click(self, handle: str) -> int:
        """Add one link click and return the new total."""
        return await self._increment(handle, "clicks")

    async def get_views(self, handle: str) -> int:
        """Current view count; 0 for a handle never viewed."""
        key = normalize_handle(handle)
        database = await self.connections.acquire()

        try:
            doc = await database[COUNTERS_COLLECTION].find_one({"handle": key})
        except PyMongoError as e:
            logger.error("Get views error for %s: %s", key, e)
            raise StoreError(diagnostic=str(e)) from e

        if not doc:
            return 0
        return doc.get("views", 0)

    async def ensure(self, handle: str) -> None:
        """Create the counter record with zeros unless it already exists."""
        key = normalize_handle(handle)
        database = await self.connections.acquire()

        try:
            await database[COUNTERS_COLLECTION].update_one(
                {"handle": key},
                {"$setOnInsert": {field: 0 for field in COUNTER_FIELDS}},
                upsert=True,
            )
        except DuplicateKeyError:
            # Created by a concurrent first write; existing counters are kept
            logger.debug("Counter record for %s already created", key)
        except PyMongoError as e:
            logger.error("Counter init error for %s: %s", key, e)
            raise StoreError(diagnostic=str(e)) from e

    async def _increment(self, handle: str, field: str) -> int:
        key = normalize_handle(handle)
        database = await self.connections.acquire()
        counters = database[COUNTERS_COLLECTION]
        others = {name: 0 for name in COUNTER_FIELDS if name != field}

        # Step 1: upsert-increment (creates the record on first use)
        try:
            doc = await counters.find_one_and_update(
                {"handle": key},
                {"$inc": {field: 1}, "$setOnInsert": others},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            return doc[field]
        except DuplicateKeyError:
            logger.info("Concurrent first %s for %s, retrying as increment", field, key)
        except PyMongoError as e:
            logger.error("Increment %s error for %s: %s", field, key, e)
            raise StoreError(diagnostic=str(e)) from e

        # Step 2: the record exists now, increment it without upsert
        try:
            doc = await counters.find_one_and_update(
                {"handle": key},
                {"$inc": {field: 1}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("Increment %s retry failed for %s: %s", field, key, e)
            raise StoreError(diagnostic=str(e)) from e

        if doc is None:
            raise StoreError(diagnostic=f"counter record for {key} missing after duplicate key")
        return doc[field]
