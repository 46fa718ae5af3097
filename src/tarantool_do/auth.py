"""
Authentication handshake.

The challenge is the random salt the server sends in its greeting when a
connection is opened. The client answers with a ``chap-sha1`` scramble of
the password, so the password itself never goes over the wire.
"""

from __future__ import annotations

import hashlib
import logging

from .errors import AuthenticationError, RequestFailed
from .handler import AuthState, Handler
from .request import AuthenticateRequest, Request
from .response import Response

__all__ = ["scramble", "AuthenticationMiddleware"]

logger = logging.getLogger(__name__)

_SCRAMBLE_SIZE = 20


def scramble(password: str, salt: bytes) -> bytes:
    """
    Compute the chap-sha1 scramble for a password and a greeting salt.

        hash1 = sha1(password)
        hash2 = sha1(hash1)
        scramble = hash1 XOR sha1(salt[:20] + hash2)
    """
    hash1 = hashlib.sha1(password.encode("utf-8")).digest()
    hash2 = hashlib.sha1(hash1).digest()
    step3 = hashlib.sha1(salt[:_SCRAMBLE_SIZE] + hash2).digest()

    return bytes(a ^ b for a, b in zip(hash1, step3))


class AuthenticationMiddleware:
    """
    Authenticate every new connection session before its first request.

    Place it inside RetryMiddleware so a reconnect performed by a retry
    authenticates the replacement connection again.

    Example:
        handler = MiddlewareHandler.create(
            DefaultHandler(connection),
            AuthenticationMiddleware("admin", "secret"),
        )
    """

    __slots__ = ("_username", "_password")

    def __init__(self, username: str, password: str = "") -> None:
        self._username = username
        self._password = password

    @property
    def username(self) -> str:
        return self._username

    async def process(self, request: Request, handler: Handler) -> Response:
        if handler.state.auth is not AuthState.AUTHENTICATED:
            await self._authenticate(handler)

        return await handler.handle(request)

    async def _authenticate(self, handler: Handler) -> None:
        """
        Run the handshake, at most once at a time per connection.

        Callers that queued up behind a handshake which then failed get the
        same AuthenticationError instead of starting a new one.
        """
        state = handler.state
        seen = state.handshakes

        async with state.handshake_gate:
            if state.auth is AuthState.AUTHENTICATED:
                return
            failure = state.auth_error
            if state.auth is AuthState.FAILED and state.handshakes != seen and failure is not None:
                raise failure

            greeting = await handler.open()
            state.auth = AuthState.HANDSHAKING
            state.handshakes += 1
            logger.debug("Authenticating as %r", self._username)

            request = AuthenticateRequest(self._username, scramble(self._password, greeting.salt))
            try:
                await handler.handle(request)
            except RequestFailed as e:
                error = AuthenticationError.from_failure(e)
                state.auth = AuthState.FAILED
                state.auth_error = error
                raise error from e
            except BaseException:
                # The session is gone or the caller was cancelled; the
                # next request starts over.
                if state.auth is AuthState.HANDSHAKING:
                    state.auth = AuthState.UNAUTHENTICATED
                raise

            state.auth = AuthState.AUTHENTICATED
