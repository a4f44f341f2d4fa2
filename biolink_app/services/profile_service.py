import logging
import time
from typing import Any, Dict, Mapping

from bson.errors import InvalidDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from biolink_app.database import PROFILES_COLLECTION, StoreConnectionManager
from biolink_app.exceptions import InvalidPayloadError, ProfileNotFoundError, StoreError
from biolink_app.services.counter_service import CounterService
from biolink_app.services.handles import normalize_handle, validate_handle

logger = logging.getLogger(__name__)

# Owned by the service; caller data can never set these
PROTECTED_FIELDS = frozenset({"_id", "handle", "updatedAt"})


class _MonotonicClock:
    """Epoch milliseconds that never repeat or go backwards within the process."""

    def __init__(self):
        self._last = 0

    def now_ms(self) -> int:
        now = int(time.time() * 1000)
        self._last = max(now, self._last + 1)
        return self._last


_clock = _MonotonicClock()


def _check_field_names(value: Any, top_level: bool = True) -> None:
    """Reject names MongoDB can't store: top-level $operators, NUL anywhere."""
    if isinstance(value, Mapping):
        for name, item in value.items():
            if not isinstance(name, str) or "\x00" in name:
                raise InvalidPayloadError("Invalid field name")
            if top_level and name.startswith("$"):
                raise InvalidPayloadError("Field names can't start with $")
            _check_field_names(item, top_level=False)
    elif isinstance(value, list):
        for item in value:
            _check_field_names(item, top_level=False)


class ProfileService:
    """
    Profile records keyed by handle.

    A save replaces every caller-owned field of the record (upsert on the
    unique handle) and stamps ``updatedAt``. Two concurrent saves of the
    same handle race freely; the one that completes last wins.
    """

    def __init__(self, connections: StoreConnectionManager, counters: CounterService):
        """
        Args:
            connections: Store connection manager
            counters: Counter service, used to create the counter record on save
        """
        self.connections = connections
        self.counters = counters

    async def save(self, handle: Any, data: Any) -> str:
        """
        Create or replace the profile for ``handle``.

        Validation runs before any store call.

        Args:
            handle: Caller-supplied handle (any case)
            data: Profile fields, must be a JSON object

        Returns:
            Canonical (lowercase) handle

        Raises:
            InvalidHandleError, InvalidPayloadError, StoreError, StoreUnavailableError
        """
        key = validate_handle(handle)
        if not isinstance(data, Mapping):
            raise InvalidPayloadError()
        _check_field_names(data)

        record: Dict[str, Any] = {
            name: value for name, value in data.items()
            if name not in PROTECTED_FIELDS
        }
        record["handle"] = key
        record["updatedAt"] = _clock.now_ms()

        database = await self.connections.acquire()
        profiles = database[PROFILES_COLLECTION]

        try:
            try:
                await profiles.replace_one({"handle": key}, record, upsert=True)
            except DuplicateKeyError:
                # Lost a first-save race; the record exists now, overwrite it
                logger.info("Concurrent first save for %s, retrying as replace", key)
                await profiles.replace_one({"handle": key}, record)
        except InvalidDocument as e:
            raise InvalidPayloadError("Invalid field name", diagnostic=str(e)) from e
        except PyMongoError as e:
            logger.error("Save profile error for %s: %s", key, e)
            raise StoreError(diagnostic=str(e)) from e

        await self.counters.ensure(key)
        return key

    async def get(self, handle: str) -> Dict[str, Any]:
        """
        Fetch the full profile record.

        Raises:
            ProfileNotFoundError: no profile under this handle
        """
        key = normalize_handle(handle)
        database = await self.connections.acquire()

        try:
            profile = await database[PROFILES_COLLECTION].find_one({"handle": key})
        except PyMongoError as e:
            logger.error("Get profile error for %s: %s", key, e)
            raise StoreError(diagnostic=str(e)) from e

        if not profile:
            raise ProfileNotFoundError(key)

        profile["_id"] = str(profile["_id"])
        return profile
