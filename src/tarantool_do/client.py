"""
Client - consumer-facing entry point.

The client builds requests and passes them into the handler pipeline. It
holds no connection state of its own apart from the schema cache.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any, Mapping

from .config import ClientConfig, config_from_env, parse_options
from .connection import StreamConnection
from .handler import DefaultHandler, Handler, MiddlewareHandler, MiddlewareLike
from .keys import Keys
from .middleware import AuthenticationMiddleware, RetryMiddleware
from .request import CallRequest, EvaluateRequest, ExecuteRequest, PingRequest, PrepareRequest
from .response import Response
from .schema import SchemaResolver
from .space import Space
from .sql import SqlQueryResult, SqlUpdateResult

__all__ = ["Client", "connect", "create_handler"]


def create_handler(config: ClientConfig) -> DefaultHandler | MiddlewareHandler:
    """
    Build the pipeline described by a configuration.

    Retry (when max_retries > 0) is the outer middleware and
    authentication (when a username is set) the inner one, so a reconnect
    caused by a retry is authenticated again.
    """
    connection = StreamConnection.create(config.uri, **config.connection_options())
    handler = DefaultHandler(connection)

    middlewares: list[MiddlewareLike] = []
    if config.max_retries:
        middlewares.append(RetryMiddleware.linear(config.max_retries))
    if config.username:
        middlewares.append(AuthenticationMiddleware(config.username, config.password))

    if not middlewares:
        return handler
    return MiddlewareHandler.create(handler, *middlewares)


class Client:
    """
    Asynchronous Tarantool client.

    Example:
        async with Client.from_options({"uri": "tcp://127.0.0.1:3301"}) as client:
            await client.ping()
            result = await client.call("box.info")
            users = await client.get_space("users")
            rows = await users.select([42])
    """

    __slots__ = ("_handler", "_schema", "_spaces")

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self._schema = SchemaResolver(handler)
        self._spaces: dict[int, Space] = {}

    @classmethod
    def from_defaults(cls) -> Client:
        return cls(DefaultHandler(StreamConnection.create_tcp()))

    @classmethod
    def from_config(cls, config: ClientConfig) -> Client:
        return cls(create_handler(config))

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> Client:
        """
        Create a client from an option mapping.

        Options: uri, connect_timeout, socket_timeout, write_timeout,
        tcp_nodelay, persistent, max_retries, username, password.

        Raises:
            ConfigurationError: If the options are invalid
        """
        return cls.from_config(parse_options(options))

    @classmethod
    def from_env(cls) -> Client:
        return cls.from_config(config_from_env())

    @property
    def handler(self) -> Handler:
        return self._handler

    @property
    def schema(self) -> SchemaResolver:
        return self._schema

    def with_middleware(self, middleware: MiddlewareLike, *middlewares: MiddlewareLike) -> Client:
        """
        Return a new client whose pipeline is wrapped in more middleware.

        The new client shares the connection but starts with an empty
        schema cache.
        """
        handler: Any = self._handler
        return Client(MiddlewareHandler.create(handler, middleware, *middlewares))

    async def ping(self) -> None:
        await self._handler.handle(PingRequest())

    async def call(self, function_name: str, *args: Any) -> list[Any]:
        """Call a stored function and return its results."""
        return (await self._handler.handle(CallRequest(function_name, args))).data

    async def evaluate(self, expr: str, *args: Any) -> list[Any]:
        """Evaluate a Lua expression and return its results."""
        return (await self._handler.handle(EvaluateRequest(expr, args))).data

    async def execute(self, sql: str | int, *params: Any) -> Response:
        """Execute an SQL statement (text or prepared id) and return the raw response."""
        return await self._handler.handle(ExecuteRequest(sql, params))

    async def execute_query(self, sql: str, *params: Any) -> SqlQueryResult:
        response = await self.execute(sql, *params)
        return SqlQueryResult(response.data, response.metadata)

    async def execute_update(self, sql: str, *params: Any) -> SqlUpdateResult:
        response = await self.execute(sql, *params)
        return SqlUpdateResult(response.sql_info)

    async def prepare(self, sql: str) -> int:
        """Prepare an SQL statement and return its id for execute()."""
        return (await self._handler.handle(PrepareRequest(sql))).get(Keys.STMT_ID)

    async def get_space(self, space_name: str) -> Space:
        """
        Get a space by name.

        Raises:
            NotFound: If the space does not exist
        """
        space_id = await self._schema.resolve_space_id(space_name)
        return self.get_space_by_id(space_id)

    def get_space_by_id(self, space_id: int) -> Space:
        space = self._spaces.get(space_id)
        if space is None:
            space = self._spaces[space_id] = Space(self._handler, space_id, self._schema)
        return space

    def flush_spaces(self) -> None:
        """Forget every resolved space and index name."""
        self._schema.flush()
        self._spaces.clear()

    async def close(self) -> None:
        """Close the connection."""
        await self._handler.close()

    async def __aenter__(self) -> Client:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()


async def connect(uri: str = StreamConnection.DEFAULT_URI, **options: Any) -> Client:
    """
    Connect to a Tarantool server.

    Args:
        uri: Server address (``tcp://host:port`` or ``unix:///path``)
        **options: Client options, see Client.from_options

    Returns:
        A Client whose connection is already open (and authenticated,
        if a username was given)

    Example:
        client = await connect("tcp://127.0.0.1:3301", username="app", password="secret")
        await client.ping()
        await client.close()
    """
    client = Client.from_options({"uri": uri, **options})
    await client.ping()
    return client
