"""
Tests for the store connection manager.
"""
import asyncio
import logging

import pytest

from biolink_app.database.connection import ConnectionState
from biolink_app.exceptions import StoreUnavailableError


class TestAcquire:
    """Connection establishment and reuse"""

    def test_first_acquire_connects(self, connection_manager, mongo_server):
        """Test that the first acquire establishes a connection"""
        assert connection_manager.state == ConnectionState.DISCONNECTED

        database = asyncio.run(connection_manager.acquire())

        assert database is mongo_server.database()
        assert connection_manager.state == ConnectionState.CONNECTED
        assert len(mongo_server.clients) == 1

    def test_timeouts_passed_to_driver(self, connection_manager, mongo_server):
        """Test that establishment carries the configured timeouts"""
        asyncio.run(connection_manager.acquire())

        options = mongo_server.clients[0].options
        assert options["serverSelectionTimeoutMS"] == 100
        assert options["connectTimeoutMS"] == 100

    def test_unique_indexes_created(self, connection_manager, mongo_server):
        """Test that both collections get a unique index on handle"""
        asyncio.run(connection_manager.acquire())

        database = mongo_server.database()
        assert "handle" in database["profiles"].unique_keys
        assert "handle" in database["views"].unique_keys

    def test_connection_reused(self, connection_manager, mongo_server):
        """Test that later acquires reuse the cached client"""
        async def acquire_twice():
            first = await connection_manager.acquire()
            second = await connection_manager.acquire()
            return first, second

        first, second = asyncio.run(acquire_twice())

        assert first is second
        assert len(mongo_server.clients) == 1

    def test_concurrent_acquire_single_flight(self, connection_manager, mongo_server):
        """Test that concurrent callers share one connection attempt"""
        async def acquire_many():
            return await asyncio.gather(*[connection_manager.acquire() for _ in range(10)])

        databases = asyncio.run(acquire_many())

        assert len(mongo_server.clients) == 1
        assert all(database is databases[0] for database in databases)

    def test_concurrent_failure_shared(self, connection_manager, mongo_server):
        """Test that concurrent callers all get the one failure"""
        mongo_server.down = True

        async def acquire_many():
            return await asyncio.gather(
                *[connection_manager.acquire() for _ in range(5)],
                return_exceptions=True,
            )

        results = asyncio.run(acquire_many())

        assert all(isinstance(result, StoreUnavailableError) for result in results)
        assert len(mongo_server.clients) == 1
        assert mongo_server.clients[0].closed is True
        assert connection_manager.state == ConnectionState.DISCONNECTED

    def test_unreachable_store_raises(self, connection_manager, mongo_server):
        """Test that an unreachable store surfaces as StoreUnavailable"""
        mongo_server.down = True

        with pytest.raises(StoreUnavailableError) as exc_info:
            asyncio.run(connection_manager.acquire())

        assert exc_info.value.status_code == 503
        assert "no servers" in exc_info.value.diagnostic

    def test_recovers_after_failed_connect(self, connection_manager, mongo_server):
        """Test that a failed attempt doesn't stick"""
        mongo_server.down = True
        with pytest.raises(StoreUnavailableError):
            asyncio.run(connection_manager.acquire())

        mongo_server.down = False
        database = asyncio.run(connection_manager.acquire())

        assert database is mongo_server.database()
        assert connection_manager.state == ConnectionState.CONNECTED


class TestReconnect:
    """Liveness probe and reconnection"""

    def test_failed_probe_reconnects(self, connection_manager, mongo_server):
        """Test that a dropped connection is replaced transparently"""
        asyncio.run(connection_manager.acquire())
        old_client = mongo_server.clients[0]

        mongo_server.fail_pings = 1
        database = asyncio.run(connection_manager.acquire())

        assert database is mongo_server.database()
        assert len(mongo_server.clients) == 2
        assert old_client.closed is True
        assert mongo_server.clients[1].closed is False

    def test_reconnect_failure_raises(self, connection_manager, mongo_server):
        """Test that a failed re-establishment is terminal for the call"""
        asyncio.run(connection_manager.acquire())

        mongo_server.down = True
        with pytest.raises(StoreUnavailableError):
            asyncio.run(connection_manager.acquire())

        assert connection_manager.state == ConnectionState.DISCONNECTED

    def test_concurrent_probe_failures_reconnect_once(self, connection_manager, mongo_server):
        """Test that callers seeing the same dead client share one reconnect"""
        asyncio.run(connection_manager.acquire())
        mongo_server.fail_pings = 3

        async def acquire_many():
            return await asyncio.gather(*[connection_manager.acquire() for _ in range(3)])

        asyncio.run(acquire_many())

        assert len(mongo_server.clients) == 2
        assert connection_manager.state == ConnectionState.CONNECTED


class TestClose:
    """Shutdown and logging"""

    def test_close(self, connection_manager, mongo_server):
        """Test that close releases the client"""
        asyncio.run(connection_manager.acquire())
        asyncio.run(connection_manager.close())

        assert mongo_server.clients[0].closed is True
        assert connection_manager.state == ConnectionState.DISCONNECTED

    def test_close_when_never_connected(self, connection_manager, mongo_server):
        """Test that closing an unused manager is a no-op"""
        asyncio.run(connection_manager.close())
        assert mongo_server.clients == []

    def test_transitions_logged(self, connection_manager, mongo_server, caplog):
        """Test that connect / lost / disconnect are logged"""
        caplog.set_level(logging.INFO, logger="biolink_app.database.connection")

        asyncio.run(connection_manager.acquire())
        mongo_server.fail_pings = 1
        asyncio.run(connection_manager.acquire())
        asyncio.run(connection_manager.close())

        messages = [record.getMessage() for record in caplog.records]
        assert any("MongoDB connected" in message for message in messages)
        assert any("connection lost" in message for message in messages)
        assert any("MongoDB disconnected" in message for message in messages)
