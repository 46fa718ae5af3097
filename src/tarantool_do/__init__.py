"""
tarantool-do - Asynchronous client for the Tarantool binary protocol.

This package provides a Python client for Tarantool with support for:
- Many concurrent requests multiplexed over one connection
- Composable middleware (retry, authentication, logging, firewall)
- Transparent chap-sha1 authentication on every new connection
- Space and index name resolution with a local schema cache
- SQL execution with typed results

Example usage:
    from tarantool_do import Client

    async def main():
        client = Client.from_options({
            "uri": "tcp://127.0.0.1:3301",
            "username": "app",
            "password": "secret",
            "max_retries": 2,
        })

        await client.ping()
        print(await client.evaluate("return ...", 1, 2))  # [1, 2]

        users = await client.get_space("users")
        await users.insert([1, "alice"])
        print(await users.select([1]))  # [[1, 'alice']]

        result = await client.execute_query("SELECT * FROM users")
        print(result.first())  # {'ID': 1, 'NAME': 'alice'}

        await client.close()

    import asyncio
    asyncio.run(main())
"""

from __future__ import annotations

__version__ = "0.1.0"

from .auth import AuthenticationMiddleware, scramble
from .client import Client, connect, create_handler
from .codec import decode, encode
from .config import ClientConfig, ClientOptions, config_from_env, parse_options
from .connection import StreamConnection
from .errors import (
    AuthenticationError,
    CommunicationTimeout,
    ConfigurationError,
    ConnectionClosed,
    ConnectionFailed,
    DecodeError,
    ErrorCode,
    NotFound,
    RequestDenied,
    RequestFailed,
    TarantoolError,
    TransportError,
    is_error_code,
    is_transient,
)
from .greeting import Greeting, parse_greeting
from .handler import AuthState, ConnectionState, DefaultHandler, Handler, Middleware, MiddlewareHandler
from .keys import IteratorType, Keys, RequestType
from .middleware import FirewallMiddleware, LoggingMiddleware, RetryMiddleware
from .request import (
    AuthenticateRequest,
    CallRequest,
    DeleteRequest,
    EvaluateRequest,
    ExecuteRequest,
    InsertRequest,
    PingRequest,
    PrepareRequest,
    ReplaceRequest,
    Request,
    SelectRequest,
    UpdateRequest,
    UpsertRequest,
)
from .response import Response, ServerError
from .schema import SchemaResolver, SpaceMetadata
from .space import Space
from .sql import SqlQueryResult, SqlUpdateResult

__all__ = [
    # Main API
    "Client",
    "connect",
    "create_handler",
    "Space",
    "SqlQueryResult",
    "SqlUpdateResult",
    # Configuration
    "ClientConfig",
    "ClientOptions",
    "parse_options",
    "config_from_env",
    # Pipeline
    "StreamConnection",
    "Greeting",
    "parse_greeting",
    "encode",
    "decode",
    "Handler",
    "Middleware",
    "DefaultHandler",
    "MiddlewareHandler",
    "AuthState",
    "ConnectionState",
    "AuthenticationMiddleware",
    "RetryMiddleware",
    "LoggingMiddleware",
    "FirewallMiddleware",
    "scramble",
    "SchemaResolver",
    "SpaceMetadata",
    # Requests and responses
    "Request",
    "PingRequest",
    "CallRequest",
    "EvaluateRequest",
    "ExecuteRequest",
    "PrepareRequest",
    "SelectRequest",
    "InsertRequest",
    "ReplaceRequest",
    "UpdateRequest",
    "UpsertRequest",
    "DeleteRequest",
    "AuthenticateRequest",
    "Response",
    "ServerError",
    "Keys",
    "RequestType",
    "IteratorType",
    # Errors
    "ErrorCode",
    "TarantoolError",
    "TransportError",
    "ConnectionFailed",
    "ConnectionClosed",
    "CommunicationTimeout",
    "DecodeError",
    "RequestFailed",
    "NotFound",
    "RequestDenied",
    "AuthenticationError",
    "ConfigurationError",
    "is_error_code",
    "is_transient",
    # Version
    "__version__",
]
