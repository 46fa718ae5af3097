"""
Error types for the Tarantool client.

Client-side failures carry one of the codes below. Errors reported by the
server (``RequestFailed`` and its subclasses) carry the server's own error
code instead.

Error Code Ranges:
- 1xxx: Connection errors
- 3xxx: Timeout errors
- 5xxx: Serialization errors
- 6xxx: Authentication errors
- 7xxx: Configuration errors
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


# ============================================================================
# Client Error Codes
# ============================================================================


class ErrorCode(IntEnum):
    """Client-side error codes."""

    # Cannot establish the physical connection
    CONNECTION_FAILED = 1001

    # Peer closed the connection or the stream broke mid-exchange
    CONNECTION_CLOSED = 1002

    # Connect, read or write deadline exceeded
    TIMEOUT_ERROR = 3001

    # Malformed bytes on the wire
    DECODE_ERROR = 5001

    # Handshake rejected by the server
    AUTHENTICATION_ERROR = 6001

    # Invalid client options
    CONFIGURATION_ERROR = 7001


ERROR_CODE_NAMES: dict[int, str] = {code: code.name for code in ErrorCode}

# Tarantool server error codes used by the client itself
ER_NO_SUCH_INDEX_NAME = 35
ER_NO_SUCH_SPACE = 36
ER_ACCESS_DENIED = 42


# ============================================================================
# Base Error Class
# ============================================================================


class TarantoolError(Exception):
    """
    Base error class for everything raised by the client.

    Catch this to handle every client failure in one place.

    Error Hierarchy:
    - TarantoolError (base)
      - TransportError: transient, eligible for retry
        - ConnectionFailed: the connection could not be opened
        - ConnectionClosed: the peer closed the connection
        - CommunicationTimeout: a deadline was exceeded
      - DecodeError: protocol corruption
      - RequestFailed: the server answered with an error status
        - NotFound: a space or index name does not exist
        - RequestDenied: rejected locally by FirewallMiddleware
      - AuthenticationError: the handshake failed
      - ConfigurationError: invalid options

    Attributes:
        message: Human-readable error message.
        code: Numeric error code.
        code_name: String name of the error code.
    """

    def __init__(
        self,
        message: str,
        code: int,
        code_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.code_name = code_name or ERROR_CODE_NAMES.get(code, "UNKNOWN_ERROR")

    def __str__(self) -> str:
        return f"{self.code_name}({self.code}): {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.code})"

    def to_dict(self) -> dict[str, Any]:
        """Return a dictionary representation of the error."""
        return {
            "name": self.__class__.__name__,
            "message": self.message,
            "code": int(self.code),
            "code_name": self.code_name,
        }


# ============================================================================
# Transport Errors
# ============================================================================


class TransportError(TarantoolError):
    """
    Base class for transient transport failures.

    RetryMiddleware re-issues requests that fail with one of these.
    """


class ConnectionFailed(TransportError):
    """
    Error raised when a connection cannot be established.

    Error Code: 1001 (CONNECTION_FAILED)

    Common causes:
    - Server down or unreachable
    - Connection refused
    - Unix socket path does not exist
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.CONNECTION_FAILED)

    @classmethod
    def from_uri(cls, uri: str, reason: str) -> ConnectionFailed:
        return cls(f"Failed to connect to {uri}: {reason}")


class ConnectionClosed(TransportError):
    """
    Error raised when the peer closes the connection or the stream breaks.

    Error Code: 1002 (CONNECTION_CLOSED)

    Distinct from a timeout: the socket is dead and must be reopened
    before anything else is sent.
    """

    def __init__(self, message: str = "Connection closed by peer") -> None:
        super().__init__(message, ErrorCode.CONNECTION_CLOSED)


class CommunicationTimeout(TransportError):
    """
    Error raised when connect, read or write exceeds its timeout.

    Error Code: 3001 (TIMEOUT_ERROR)

    Attributes:
        timeout: The timeout that was exceeded, in seconds.
    """

    def __init__(self, message: str = "Request timed out", timeout: float | None = None) -> None:
        super().__init__(message, ErrorCode.TIMEOUT_ERROR)
        self.timeout = timeout


# ============================================================================
# Protocol Errors
# ============================================================================


class DecodeError(TarantoolError):
    """
    Error raised when received bytes are not a valid IPROTO frame.

    Error Code: 5001 (DECODE_ERROR)

    Never retried: this indicates protocol corruption, not transience.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.DECODE_ERROR)


class RequestFailed(TarantoolError):
    """
    Error raised when the server answers a request with an error status.

    The code is the server's error code (e.g. 36 for an unknown space),
    not one of :class:`ErrorCode`.

    Example:
        ```python
        try:
            await client.call("no_such_function")
        except RequestFailed as error:
            print(f"[{error.code}] {error.message}")
        ```
    """

    def __init__(self, message: str, code: int) -> None:
        super().__init__(message, code, "REQUEST_FAILED")

    @classmethod
    def from_response(cls, response: Any) -> RequestFailed:
        error = response.error
        return cls(error.message, error.code)


class NotFound(RequestFailed):
    """Error raised when a space or index name does not resolve to an id."""

    @classmethod
    def unknown_space(cls, name: str | int) -> NotFound:
        return cls(f"Space '{name}' does not exist", ER_NO_SUCH_SPACE)

    @classmethod
    def unknown_index(cls, name: str, space_id: int) -> NotFound:
        return cls(f"No index '{name}' is defined in space #{space_id}", ER_NO_SUCH_INDEX_NAME)


class RequestDenied(RequestFailed):
    """Error raised when FirewallMiddleware rejects a request kind."""

    @classmethod
    def for_request(cls, request: Any) -> RequestDenied:
        name = type(request).__name__
        return cls(f"Request '{name}' is denied", ER_ACCESS_DENIED)


class AuthenticationError(TarantoolError):
    """
    Error raised when the authentication handshake fails.

    Error Code: 6001 (AUTHENTICATION_ERROR) unless the server supplied
    its own code (e.g. 47 for a wrong password).
    """

    def __init__(self, message: str, code: int = ErrorCode.AUTHENTICATION_ERROR) -> None:
        super().__init__(message, code, "AUTHENTICATION_ERROR")

    @classmethod
    def from_failure(cls, error: RequestFailed) -> AuthenticationError:
        exc = cls(error.message, error.code)
        exc.__cause__ = error
        return exc


class ConfigurationError(TarantoolError):
    """Error raised when client options are invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR)


# ============================================================================
# Error Utilities
# ============================================================================


def is_error_code(error: BaseException, code: int) -> bool:
    """
    Check if an error is a TarantoolError with a specific error code.

    Example:
        ```python
        try:
            await client.ping()
        except Exception as error:
            if is_error_code(error, ErrorCode.TIMEOUT_ERROR):
                ...
        ```
    """
    return isinstance(error, TarantoolError) and error.code == code


def is_transient(error: BaseException) -> bool:
    """Return True if the error is likely to succeed when retried."""
    return isinstance(error, TransportError)
