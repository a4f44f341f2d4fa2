"""
Test configuration and fixtures for the bio-link API.
This centralizes all test setup, making individual tests clean.

MongoDB is replaced by a small in-process fake of the Motor client. It
keeps unique indexes and yields to the event loop between "look for the
document" and "insert it", so concurrent upserts race the way they do
against a real server.
"""

import asyncio
import copy

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import AutoReconnect, DuplicateKeyError, ServerSelectionTimeoutError

from biolink_app.config import settings
from biolink_app.database.connection import StoreConnectionManager
from biolink_app.dependencies import get_connection_manager, get_media_storage
from biolink_app.media.strategies import InMemoryMediaStorage

# Tests never reach for a real MongoDB at startup
settings.store_eager_connect = False

from main import app  # noqa: E402


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.unique_keys = set()
        self.duplicate_errors = 0      # inject: next N writes raise DuplicateKeyError
        self.fail_with = None          # inject: every call raises this
        self.duplicate_key_errors = 0  # observed duplicate-key errors

    async def create_index(self, key, unique=False):
        if unique:
            self.unique_keys.add(key)
        return f"{key}_1"

    async def find_one(self, filter):
        self._check_failure()
        doc = self._match(filter)
        return copy.deepcopy(doc) if doc else None

    async def replace_one(self, filter, replacement, upsert=False):
        # Same client-side check as pymongo.common.validate_ok_for_replace
        if replacement and next(iter(replacement)).startswith("$"):
            raise ValueError("replacement can not include $ operators")
        self._check_failure()
        self._check_injected_duplicate()
        doc = self._match(filter)
        await asyncio.sleep(0)
        if doc is None:
            if upsert:
                self._insert(copy.deepcopy(replacement))
            return
        _id = doc["_id"]
        doc.clear()
        doc.update(copy.deepcopy(replacement))
        doc["_id"] = _id

    async def update_one(self, filter, update, upsert=False):
        await self.find_one_and_update(filter, update, upsert=upsert)

    async def find_one_and_update(self, filter, update, upsert=False, return_document=False):
        self._check_failure()
        self._check_injected_duplicate()
        doc = self._match(filter)
        await asyncio.sleep(0)
        if doc is None:
            if not upsert:
                return None
            before = None
            doc = dict(filter)
            self._apply(doc, update, inserting=True)
            self._insert(doc)
        else:
            before = copy.deepcopy(doc)
            self._apply(doc, update, inserting=False)
        return copy.deepcopy(doc) if return_document else before

    def count(self, **filter):
        return sum(1 for doc in self.docs if all(doc.get(k) == v for k, v in filter.items()))

    def _match(self, filter):
        for doc in self.docs:
            if all(doc.get(k) == v for k, v in filter.items()):
                return doc
        return None

    def _insert(self, doc):
        for key in self.unique_keys:
            if any(existing.get(key) == doc.get(key) for existing in self.docs):
                self.duplicate_key_errors += 1
                raise DuplicateKeyError(f"E11000 duplicate key error dup key: {{ {key}: {doc.get(key)!r} }}", 11000)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)

    @staticmethod
    def _apply(doc, update, inserting):
        for name, value in update.get("$set", {}).items():
            doc[name] = value
        for name, value in update.get("$inc", {}).items():
            doc[name] = doc.get(name, 0) + value
        if inserting:
            for name, value in update.get("$setOnInsert", {}).items():
                doc[name] = value

    def _check_failure(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _check_injected_duplicate(self):
        if self.duplicate_errors:
            self.duplicate_errors -= 1
            self.duplicate_key_errors += 1
            raise DuplicateKeyError("E11000 duplicate key error (injected)", 11000)


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())


class FakeServer:
    """State shared by every client "connected" to the fake."""

    def __init__(self):
        self.databases = {}
        self.clients = []
        self.down = False
        self.fail_pings = 0

    def database(self, name="biolink_test"):
        return self.databases.setdefault(name, FakeDatabase())


class FakeAdmin:
    def __init__(self, server):
        self.server = server

    async def command(self, name):
        await asyncio.sleep(0)
        if self.server.down:
            raise ServerSelectionTimeoutError("fake: no servers available")
        if self.server.fail_pings:
            self.server.fail_pings -= 1
            raise AutoReconnect("fake: connection reset")
        return {"ok": 1.0}


class FakeMotorClient:
    def __init__(self, server, uri, **options):
        self.server = server
        self.uri = uri
        self.options = options
        self.closed = False
        self.admin = FakeAdmin(server)
        server.clients.append(self)

    def __getitem__(self, name):
        return self.server.database(name)

    def close(self):
        self.closed = True


@pytest.fixture(scope="function")
def mongo_server():
    """Fresh fake MongoDB for each test."""
    return FakeServer()


@pytest.fixture(scope="function")
def connection_manager(mongo_server):
    return StoreConnectionManager(
        uri="mongodb://fake:27017",
        database_name="biolink_test",
        server_selection_timeout_ms=100,
        connect_timeout_ms=100,
        client_factory=lambda uri, **options: FakeMotorClient(mongo_server, uri, **options),
    )


@pytest.fixture(scope="function")
def media_storage():
    return InMemoryMediaStorage()


@pytest.fixture(scope="function")
def client(connection_manager, media_storage):
    """
    Create a test client with the store and media storage overridden.
    This is the main fixture that tests will use.
    """
    app.dependency_overrides[get_connection_manager] = lambda: connection_manager
    app.dependency_overrides[get_media_storage] = lambda: media_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
