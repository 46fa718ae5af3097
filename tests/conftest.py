"""
Pytest configuration and fixtures for tarantool-do tests.

This module provides fixtures for:
- Starting the scripted IPROTO server
- Building clients and handlers pointed at it
- Fake handlers for middleware unit tests
"""

import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from tests.mock_server import MockServer


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
async def server() -> AsyncGenerator[MockServer, None]:
    """Start a mock server with an admin user and a 'users' space."""
    mock = MockServer(
        users={"admin": "secret"},
        spaces={
            281: [[512, 1, "users", "memtx", 0, {}, []]],
            289: [[512, 0, "primary", "tree", {}, []], [512, 1, "name", "tree", {}, []]],
            512: [[1, "alice"], [2, "bob"]],
        },
    )
    await mock.start()
    yield mock
    await mock.stop()


@pytest.fixture
async def client(server):
    """Create an unauthenticated Client connected to the mock server."""
    from tarantool_do import Client

    client = Client.from_options({"uri": server.uri, "socket_timeout": 1.0})
    yield client
    await client.close()


@pytest.fixture
async def handler(server):
    """Create a DefaultHandler connected to the mock server."""
    from tarantool_do import DefaultHandler, StreamConnection

    handler = DefaultHandler(StreamConnection.create(server.uri, socket_timeout=1.0))
    yield handler
    await handler.close()


# ============================================================================
# Unit Test Fixtures
# ============================================================================

@pytest.fixture
def fake_handler():
    """Create a stand-in for the next link of a middleware chain."""
    from tarantool_do import ConnectionState, Response

    handler = MagicMock()
    handler.state = ConnectionState()
    handler.handle = AsyncMock(return_value=Response(sync=1))
    handler.open = AsyncMock()
    handler.close = AsyncMock()
    return handler


