"""
Middlewares for the request pipeline.

A middleware receives the request and the next link of the chain and
decides what to do before and after delegating to it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, Union

from .auth import AuthenticationMiddleware
from .errors import CommunicationTimeout, RequestDenied, TransportError
from .handler import Handler
from .keys import RequestType
from .request import READ_ONLY_TYPES, Request
from .response import Response

__all__ = [
    "AuthenticationMiddleware",
    "FirewallMiddleware",
    "LoggingMiddleware",
    "RetryMiddleware",
]

logger = logging.getLogger(__name__)

# (retries so far, last error) -> seconds to wait, or None to give up
DelayFunc = Callable[[int, TransportError], Union[float, None]]


class RetryMiddleware:
    """
    Re-issue a request after a transient transport failure.

    Only TransportError subclasses (connection failed or closed, timeouts)
    are retried. Errors reported by the server, authentication failures
    and decode errors propagate immediately. After a connection failure the
    next attempt reconnects (and, with an AuthenticationMiddleware further
    in, authenticates again). A session is only closed by the attempt that
    ran on it, so a late failure never tears down a session another caller
    has already reopened. A reply timeout does not close the connection:
    the request is re-sent with a new sync and the late reply is dropped.

    Retrying a write is only safe if the caller tolerates it being applied
    twice: the server may have executed the request before the connection
    dropped. Pass ``only_idempotent=True`` to retry read-only requests only.

    Example:
        RetryMiddleware.linear(3)            # 0.1s, 0.2s, 0.3s
        RetryMiddleware.exponential(5)       # 0.01s, 0.02s, 0.04s, ...
        RetryMiddleware.constant(2, 0.5)     # 0.5s, 0.5s
    """

    __slots__ = ("_get_delay", "_only_idempotent")

    def __init__(self, get_delay: DelayFunc, *, only_idempotent: bool = False) -> None:
        self._get_delay = get_delay
        self._only_idempotent = only_idempotent

    @classmethod
    def constant(
        cls, max_retries: int = 2, interval: float = 0.1, *, only_idempotent: bool = False
    ) -> RetryMiddleware:
        def get_delay(retries: int, error: TransportError) -> float | None:
            return interval if retries <= max_retries else None

        return cls(get_delay, only_idempotent=only_idempotent)

    @classmethod
    def linear(
        cls, max_retries: int = 2, step: float = 0.1, *, only_idempotent: bool = False
    ) -> RetryMiddleware:
        def get_delay(retries: int, error: TransportError) -> float | None:
            return step * retries if retries <= max_retries else None

        return cls(get_delay, only_idempotent=only_idempotent)

    @classmethod
    def exponential(
        cls,
        max_retries: int = 2,
        initial_delay: float = 0.01,
        exponential_base: float = 2.0,
        max_delay: float = 10.0,
        *,
        only_idempotent: bool = False,
    ) -> RetryMiddleware:
        def get_delay(retries: int, error: TransportError) -> float | None:
            if retries > max_retries:
                return None
            return min(initial_delay * exponential_base ** (retries - 1), max_delay)

        return cls(get_delay, only_idempotent=only_idempotent)

    @classmethod
    def custom(cls, get_delay: DelayFunc, *, only_idempotent: bool = False) -> RetryMiddleware:
        return cls(get_delay, only_idempotent=only_idempotent)

    async def process(self, request: Request, handler: Handler) -> Response:
        retries = 0

        while True:
            session = handler.state.session
            try:
                return await handler.handle(request)
            except TransportError as e:
                if self._only_idempotent and request.request_type not in READ_ONLY_TYPES:
                    raise

                retries += 1
                delay = self._get_delay(retries, e)
                if delay is None:
                    raise

                logger.warning(
                    "%s failed (%s), retry %d in %.3fs",
                    type(request).__name__, e, retries, delay,
                )
                # A reply timeout leaves the socket and other callers' requests
                # intact; the retry is sent on the same session with a new sync.
                if not isinstance(e, CommunicationTimeout) and handler.state.session == session:
                    await handler.close()
                if delay > 0:
                    await asyncio.sleep(delay)


class LoggingMiddleware:
    """Log every request passing through the chain, with its duration."""

    __slots__ = ("_logger",)

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    async def process(self, request: Request, handler: Handler) -> Response:
        name = type(request).__name__
        start = time.monotonic()
        self._logger.debug("Starting handling request %s", name)

        try:
            response = await handler.handle(request)
        except Exception as e:
            self._logger.warning(
                "Request %s failed after %.3fs: %s", name, time.monotonic() - start, e
            )
            raise

        self._logger.debug(
            "Finished handling request %s #%d in %.3fs",
            name, response.sync, time.monotonic() - start,
        )
        return response


RequestKind = Union[RequestType, type]


def _request_types(kinds: Iterable[RequestKind]) -> frozenset[RequestType]:
    return frozenset(RequestType(getattr(kind, "request_type", kind)) for kind in kinds)


class FirewallMiddleware:
    """
    Reject request kinds before they reach the wire.

    Kinds are given as request classes or RequestType codes.

    Example:
        FirewallMiddleware.allow_only(SelectRequest, PingRequest)
        FirewallMiddleware.deny(RequestType.EVALUATE).and_deny(ExecuteRequest)
    """

    __slots__ = ("_allowed", "_denied")

    def __init__(
        self,
        allowed: Iterable[RequestKind] | None = None,
        denied: Iterable[RequestKind] = (),
    ) -> None:
        self._allowed = None if allowed is None else _request_types(allowed)
        self._denied = _request_types(denied)

    @classmethod
    def allow_only(cls, *kinds: RequestKind) -> FirewallMiddleware:
        return cls(allowed=kinds)

    @classmethod
    def deny(cls, *kinds: RequestKind) -> FirewallMiddleware:
        return cls(denied=kinds)

    def and_deny(self, *kinds: RequestKind) -> FirewallMiddleware:
        new = FirewallMiddleware()
        new._allowed = self._allowed
        new._denied = self._denied | _request_types(kinds)
        return new

    def is_allowed(self, request: Request) -> bool:
        request_type = request.request_type
        if request_type in self._denied:
            return False
        return self._allowed is None or request_type in self._allowed

    async def process(self, request: Request, handler: Handler) -> Response:
        if not self.is_allowed(request):
            raise RequestDenied.for_request(request)

        return await handler.handle(request)
