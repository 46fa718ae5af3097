"""
Request handlers.

``DefaultHandler`` is the innermost link of every pipeline: it owns the
connection state, assigns correlation ids, writes frames and demultiplexes
replies from a single background reader task. ``MiddlewareHandler``
composes an ordered list of middlewares around it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, Sequence, Union

from . import codec
from .connection import StreamConnection
from .errors import (
    AuthenticationError,
    CommunicationTimeout,
    ConnectionClosed,
    RequestFailed,
    TransportError,
)
from .greeting import Greeting
from .request import Request
from .response import Response

__all__ = [
    "AuthState",
    "ConnectionState",
    "Handler",
    "Middleware",
    "DefaultHandler",
    "MiddlewareHandler",
]

logger = logging.getLogger(__name__)


class AuthState(Enum):
    """Authentication state of the current connection session."""

    UNAUTHENTICATED = "unauthenticated"
    HANDSHAKING = "handshaking"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class ConnectionState:
    """
    Mutable state shared by the executor and the middlewares of one pipeline.

    Only ever touched from the event loop that runs the pipeline.
    """

    def __init__(self) -> None:
        self._syncs = itertools.count(1)
        self.pending: dict[int, asyncio.Future[Response]] = {}
        self.reader_task: asyncio.Task[None] | None = None
        self.open_lock = asyncio.Lock()
        self.write_lock = asyncio.Lock()

        # Authentication
        self.auth = AuthState.UNAUTHENTICATED
        self.auth_error: AuthenticationError | None = None
        self.handshakes = 0
        self.handshake_gate = asyncio.Lock()

        # Bumped on every successful open; identifies the current session
        self.session = 0

    def next_sync(self) -> int:
        """Return the next correlation id. Ids are never reused."""
        return next(self._syncs)

    def reset_session(self) -> None:
        """Forget per-session state after the connection is (re)opened or closed."""
        self.auth = AuthState.UNAUTHENTICATED
        self.auth_error = None


class Handler(Protocol):
    """A link of the pipeline."""

    @property
    def connection(self) -> StreamConnection:
        ...

    @property
    def state(self) -> ConnectionState:
        ...

    async def open(self) -> Greeting:
        ...

    async def close(self) -> None:
        ...

    async def handle(self, request: Request) -> Response:
        ...


class Middleware(Protocol):
    """Intercepts a request before and after delegating to the next link."""

    async def process(self, request: Request, handler: Handler) -> Response:
        ...


MiddlewareLike = Union[Middleware, Callable[[Request, Handler], Awaitable[Response]]]


class DefaultHandler:
    """
    Base request executor.

    Multiple coroutines may call handle() concurrently; each one waits
    only for the reply carrying its own correlation id.

    Example:
        handler = DefaultHandler(StreamConnection.create("tcp://127.0.0.1:3301"))
        response = await handler.handle(PingRequest())
        await handler.close()
    """

    __slots__ = ("_connection", "_state")

    def __init__(self, connection: StreamConnection) -> None:
        self._connection = connection
        self._state = ConnectionState()

    @property
    def connection(self) -> StreamConnection:
        return self._connection

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def open(self) -> Greeting:
        """
        Open the connection if needed and start the reader task.

        Returns:
            The greeting of the current connection session
        """
        state = self._state
        greeting = self._current_greeting()
        if greeting is not None:
            return greeting

        async with state.open_lock:
            greeting = self._current_greeting()
            if greeting is not None:
                return greeting

            greeting = await self._connection.open()
            state.reset_session()
            state.session += 1
            state.reader_task = asyncio.create_task(self._receive_loop())
            return greeting

    def _current_greeting(self) -> Greeting | None:
        if self._connection.is_closed() or self._state.reader_task is None:
            return None
        return self._connection.greeting

    async def close(self) -> None:
        """Close the connection and fail every in-flight request."""
        state = self._state
        task = state.reader_task
        state.reader_task = None

        self._fail_pending(ConnectionClosed("Connection closed"))
        state.reset_session()
        await self._connection.close()

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def handle(self, request: Request) -> Response:
        """
        Send a request and wait for its reply.

        Raises:
            RequestFailed: If the server answered with an error status
            TransportError: If the exchange failed on the wire
            DecodeError: If the reply could not be decoded
        """
        await self.open()

        state = self._state
        sync = state.next_sync()
        frame = codec.encode(request, sync)
        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()
        state.pending[sync] = future

        try:
            try:
                async with state.write_lock:
                    await self._connection.send(frame)
            except TransportError:
                state.pending.pop(sync, None)
                await self.close()
                raise

            timeout = self._connection.socket_timeout
            try:
                response = await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                raise CommunicationTimeout(
                    f"No response to {type(request).__name__} #{sync} in {timeout:.2f} sec",
                    timeout=timeout,
                ) from None
        finally:
            state.pending.pop(sync, None)

        if response.is_error:
            raise RequestFailed.from_response(response)

        return response

    async def _receive_loop(self) -> None:
        """Background task to receive frames and hand them to their waiters."""
        state = self._state
        connection = self._connection

        try:
            while True:
                payload = await connection.receive(timeout=None)
                response = codec.decode(payload)

                future = state.pending.pop(response.sync, None)
                if future is None or future.done():
                    # The waiter gave up (timeout or cancellation).
                    logger.debug("Dropping late response #%d", response.sync)
                    continue

                future.set_result(response)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Reader for %s stopped: %s", connection.uri, e)
            # A reader replaced by a newer session must not touch its requests.
            if state.reader_task is asyncio.current_task():
                self._fail_pending(e)
                await self.close()

    def _fail_pending(self, error: BaseException) -> None:
        pending = self._state.pending
        self._state.pending = {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)


class _Link:
    """One middleware bound to the rest of the chain."""

    __slots__ = ("_process", "_next", "_base")

    def __init__(self, middleware: MiddlewareLike, next_link: Handler, base: DefaultHandler) -> None:
        self._process = getattr(middleware, "process", middleware)
        self._next = next_link
        self._base = base

    @property
    def connection(self) -> StreamConnection:
        return self._base.connection

    @property
    def state(self) -> ConnectionState:
        return self._base.state

    async def open(self) -> Greeting:
        return await self._base.open()

    async def close(self) -> None:
        await self._base.close()

    async def handle(self, request: Request) -> Response:
        return await self._process(request, self._next)


class MiddlewareHandler:
    """
    An ordered middleware chain ending at a DefaultHandler.

    The first middleware is the outermost one. Wrapping an existing chain
    puts the new middlewares outside the existing ones, so they see every
    retry and handshake the inner ones perform.

    Example:
        handler = MiddlewareHandler.create(
            DefaultHandler(connection),
            RetryMiddleware.linear(3),
            AuthenticationMiddleware("user", "secret"),
        )
    """

    __slots__ = ("_handler", "_middlewares", "_chain")

    def __init__(self, handler: DefaultHandler, middlewares: Sequence[MiddlewareLike]) -> None:
        self._handler = handler
        self._middlewares = tuple(middlewares)
        self._chain = self._compose()

    @classmethod
    def create(
        cls,
        handler: DefaultHandler | MiddlewareHandler,
        middleware: MiddlewareLike,
        *middlewares: MiddlewareLike,
    ) -> MiddlewareHandler:
        if isinstance(handler, MiddlewareHandler):
            return cls(handler._handler, (middleware, *middlewares) + handler._middlewares)
        return cls(handler, (middleware, *middlewares))

    def _compose(self) -> Handler:
        link: Any = self._handler
        for middleware in reversed(self._middlewares):
            link = _Link(middleware, link, self._handler)
        return link

    @property
    def middlewares(self) -> tuple[MiddlewareLike, ...]:
        return self._middlewares

    @property
    def connection(self) -> StreamConnection:
        return self._handler.connection

    @property
    def state(self) -> ConnectionState:
        return self._handler.state

    async def open(self) -> Greeting:
        return await self._handler.open()

    async def close(self) -> None:
        await self._handler.close()

    async def handle(self, request: Request) -> Response:
        return await self._chain.handle(request)
