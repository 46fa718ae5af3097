"""
StreamConnection - framed asyncio transport for one Tarantool connection.

The connection owns a single TCP or Unix-domain stream. It reads the server
greeting on open, writes whole frames and reads whole frames, and enforces
connect, read and write timeouts. It never retries anything itself.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any

from . import codec
from .errors import CommunicationTimeout, ConnectionClosed, ConnectionFailed, DecodeError
from .greeting import GREETING_SIZE, Greeting, parse_greeting

__all__ = ["StreamConnection", "parse_uri"]

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT: Any = object()


def parse_uri(uri: str) -> tuple[str, str, int | None]:
    """
    Split a connection URI into its parts.

    Args:
        uri: ``tcp://host:port``, ``host:port`` or ``unix:///path/to.sock``

    Returns:
        (scheme, host or socket path, port or None)
    """
    if uri.startswith("unix://"):
        path = uri[len("unix://"):]
        if not path:
            raise ValueError(f"Missing socket path in URI: {uri!r}")
        return "unix", path, None

    address = uri[len("tcp://"):] if uri.startswith("tcp://") else uri
    if "://" in address:
        raise ValueError(f"Unsupported URI scheme: {uri!r}")

    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Invalid TCP URI, expected host:port: {uri!r}")

    return "tcp", host.strip("[]"), int(port)


class StreamConnection:
    """
    A single physical connection to a Tarantool server.

    Example:
        conn = StreamConnection.create("tcp://127.0.0.1:3301", socket_timeout=2.0)
        greeting = await conn.open()
        await conn.send(frame)
        payload = await conn.receive()
        await conn.close()
    """

    DEFAULT_URI = "tcp://127.0.0.1:3301"

    __slots__ = (
        "_uri",
        "_scheme",
        "_host",
        "_port",
        "connect_timeout",
        "socket_timeout",
        "write_timeout",
        "tcp_nodelay",
        "persistent",
        "_reader",
        "_writer",
        "_greeting",
    )

    def __init__(
        self,
        uri: str = DEFAULT_URI,
        *,
        connect_timeout: float = 5.0,
        socket_timeout: float = 5.0,
        write_timeout: float | None = None,
        tcp_nodelay: bool = True,
        persistent: bool = False,
    ) -> None:
        """
        Initialize the connection (no I/O happens until open()).

        Args:
            uri: Server address
            connect_timeout: Seconds allowed for connect and greeting
            socket_timeout: Seconds allowed to read a response
            write_timeout: Seconds allowed to write a request
                (defaults to socket_timeout)
            tcp_nodelay: Disable Nagle's algorithm on TCP sockets
            persistent: Enable TCP keepalive on the socket
        """
        self._uri = uri
        self._scheme, self._host, self._port = parse_uri(uri)
        self.connect_timeout = connect_timeout
        self.socket_timeout = socket_timeout
        self.write_timeout = socket_timeout if write_timeout is None else write_timeout
        self.tcp_nodelay = tcp_nodelay
        self.persistent = persistent
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._greeting: Greeting | None = None

    @classmethod
    def create(cls, uri: str = DEFAULT_URI, **options: Any) -> StreamConnection:
        return cls(uri, **options)

    @classmethod
    def create_tcp(cls, uri: str = DEFAULT_URI, **options: Any) -> StreamConnection:
        if uri.startswith("unix://"):
            raise ValueError(f"Expected a TCP URI, got {uri!r}")
        return cls(uri, **options)

    @classmethod
    def create_uds(cls, uri: str, **options: Any) -> StreamConnection:
        if not uri.startswith("unix://"):
            raise ValueError(f"Expected a unix:// URI, got {uri!r}")
        return cls(uri, **options)

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def greeting(self) -> Greeting | None:
        return self._greeting

    def is_closed(self) -> bool:
        return self._writer is None

    async def open(self) -> Greeting:
        """
        Connect and read the server greeting.

        A no-op returning the current greeting if the connection is open.

        Raises:
            ConnectionFailed: If the socket cannot be connected
            CommunicationTimeout: If connect or greeting exceeds connect_timeout
            ConnectionClosed: If the server hangs up before the greeting
            DecodeError: If the greeting is not a Tarantool greeting
        """
        if self._writer is not None and self._greeting is not None:
            return self._greeting

        if self._scheme == "unix":
            connecting = asyncio.open_unix_connection(self._host)
        else:
            connecting = asyncio.open_connection(self._host, self._port)

        try:
            reader, writer = await asyncio.wait_for(connecting, timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            raise CommunicationTimeout(
                f"Connection to {self._uri} timed out", timeout=self.connect_timeout
            ) from None
        except OSError as e:
            raise ConnectionFailed.from_uri(self._uri, e.strerror or str(e)) from e

        self._reader = reader
        self._writer = writer
        self._configure_socket(writer)

        try:
            raw = await asyncio.wait_for(
                reader.readexactly(GREETING_SIZE), timeout=self.connect_timeout
            )
            self._greeting = parse_greeting(raw)
        except asyncio.IncompleteReadError:
            await self.close()
            raise ConnectionClosed("Unable to read greeting: connection closed by peer") from None
        except asyncio.TimeoutError:
            await self.close()
            raise CommunicationTimeout(
                "Unable to read greeting: timed out", timeout=self.connect_timeout
            ) from None
        except OSError as e:
            await self.close()
            raise ConnectionClosed(f"Unable to read greeting: {e}") from e
        except DecodeError:
            await self.close()
            raise

        logger.debug("Connected to %s (%s)", self._uri, self._greeting.server)
        return self._greeting

    def _configure_socket(self, writer: asyncio.StreamWriter) -> None:
        sock = writer.get_extra_info("socket")
        if sock is None or self._scheme != "tcp":
            return
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(self.tcp_nodelay))
        if self.persistent:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    async def send(self, data: bytes) -> None:
        """
        Write one complete frame.

        Callers must serialize sends; two frames are never interleaved
        because each call writes its frame in a single write().
        """
        writer = self._writer
        if writer is None:
            raise ConnectionClosed("Connection is not open")

        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout=self.write_timeout)
        except asyncio.TimeoutError:
            # A partial frame is on the wire and the buffer may never drain.
            writer.transport.abort()
            await self.close()
            raise CommunicationTimeout(
                f"Write to {self._uri} timed out", timeout=self.write_timeout
            ) from None
        except (ConnectionError, OSError) as e:
            raise ConnectionClosed(f"Unable to write request: {e}") from e

    async def receive(self, timeout: float | None = _DEFAULT_TIMEOUT) -> bytes:
        """
        Read one complete frame and return its payload (without prefix).

        Args:
            timeout: Seconds to wait; defaults to socket_timeout,
                None waits forever

        Raises:
            CommunicationTimeout: If no frame arrived in time
            ConnectionClosed: If the peer closed the connection
            DecodeError: If the length prefix is malformed
        """
        reader = self._reader
        if reader is None:
            raise ConnectionClosed("Connection is not open")
        if timeout is _DEFAULT_TIMEOUT:
            timeout = self.socket_timeout

        try:
            return await asyncio.wait_for(self._read_frame(reader), timeout=timeout)
        except asyncio.TimeoutError:
            raise CommunicationTimeout(
                f"Read from {self._uri} timed out", timeout=timeout
            ) from None
        except asyncio.IncompleteReadError:
            raise ConnectionClosed() from None
        except (ConnectionError, OSError) as e:
            raise ConnectionClosed(f"Unable to read response: {e}") from e

    async def _read_frame(self, reader: asyncio.StreamReader) -> bytes:
        prefix = await reader.readexactly(codec.LENGTH_PREFIX_SIZE)
        length = codec.read_length(prefix)
        return await reader.readexactly(length)

    async def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        writer = self._writer
        self._reader = None
        self._writer = None
        self._greeting = None

        if writer is None:
            return

        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Error while closing connection to %s: %s", self._uri, e)

        logger.debug("Closed connection to %s", self._uri)

    def __repr__(self) -> str:
        state = "closed" if self.is_closed() else "open"
        return f"StreamConnection({self._uri!r}, {state})"
