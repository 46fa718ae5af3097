"""
Scripted IPROTO server for tests.

This module provides a MockServer that speaks enough of the Tarantool
binary protocol to exercise the client without a real server: it sends a
greeting, decodes request frames, records them, and answers through
per-request-type handlers that tests can replace.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import struct
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

import msgpack

from tarantool_do.keys import ERROR_TYPE_MASK, Keys, RequestType, VINDEX_ID, VSPACE_ID

# Server error codes
ER_NO_SUCH_USER = 45
ER_PASSWORD_MISMATCH = 47
ER_NO_SUCH_SPACE = 36

DEFAULT_SALT = bytes(range(32))


def make_greeting(salt: bytes = DEFAULT_SALT, server: str = "Tarantool 2.11.1 (Binary)") -> bytes:
    """Build a 128-byte greeting carrying the given salt."""
    line1 = f"{server} 3b5e8c6a-1c2d-4e5f-8a9b-0c1d2e3f4a5b".ljust(63).encode() + b"\n"
    line2 = base64.b64encode(salt).ljust(63) + b"\n"
    return line1 + line2


def pack_frame(header: dict[int, Any], body: dict[int, Any] | None = None) -> bytes:
    payload = msgpack.packb(header, use_bin_type=True)
    if body is not None:
        payload += msgpack.packb(body, use_bin_type=True)
    return struct.pack(">BI", 0xCE, len(payload)) + payload


def check_scramble(password: str, salt: bytes, scramble: bytes) -> bool:
    """Verify a chap-sha1 scramble the way the server does."""
    hash2 = hashlib.sha1(hashlib.sha1(password.encode()).digest()).digest()
    step3 = hashlib.sha1(salt[:20] + hash2).digest()
    candidate = bytes(a ^ b for a, b in zip(scramble, step3))
    return hashlib.sha1(candidate).digest() == hash2


@dataclass
class ReceivedRequest:
    """A request frame as seen by the server."""

    connection: int
    request_type: int
    sync: int
    body: dict[int, Any]


@dataclass
class Error:
    """Reply with an error status."""

    code: int
    message: str


@dataclass
class Raw:
    """Write these bytes instead of an encoded reply."""

    data: bytes


class Drop:
    """Close the connection without replying."""


class NoReply:
    """Never reply to this request."""


Reply = Union[dict, Error, Raw, Drop, NoReply]
RequestHandler = Callable[[ReceivedRequest], Union[Reply, Awaitable[Reply]]]


@dataclass
class MockServer:
    """
    In-process IPROTO server.

    Example:
        server = MockServer(users={"admin": "secret"})
        await server.start()
        client = Client.from_options({"uri": server.uri})
        ...
        await server.stop()
    """

    users: dict[str, str] = field(default_factory=dict)
    spaces: dict[int, list[list[Any]]] = field(default_factory=dict)
    salt: bytes = DEFAULT_SALT
    close_immediately: bool = False
    drop_requests: int = 0
    schema_id: int = 80

    received: list[ReceivedRequest] = field(default_factory=list)
    replied: list[int] = field(default_factory=list)
    connections: int = 0

    def __post_init__(self) -> None:
        self._server: asyncio.base_events.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self.handlers: dict[int, RequestHandler] = {
            RequestType.PING: lambda req: {},
            RequestType.AUTHENTICATE: self._authenticate,
            RequestType.SELECT: self._select,
            RequestType.CALL: lambda req: {Keys.DATA: list(req.body[Keys.TUPLE])},
            RequestType.EVALUATE: lambda req: {Keys.DATA: list(req.body[Keys.TUPLE])},
            RequestType.INSERT: self._insert,
            RequestType.REPLACE: self._insert,
        }

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    @property
    def uri(self) -> str:
        return f"tcp://127.0.0.1:{self.port}"

    def on(self, request_type: int, handler: RequestHandler) -> None:
        self.handlers[request_type] = handler

    def received_types(self) -> list[int]:
        return [req.request_type for req in self.received]

    async def start(self) -> MockServer:
        self._server = await asyncio.start_server(self._serve, "127.0.0.1", 0)
        return self

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    # --- connection handling ---

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        connection = self.connections
        self._writers.append(writer)

        if self.close_immediately:
            writer.close()
            return

        writer.write(make_greeting(self.salt))
        await writer.drain()

        try:
            while True:
                prefix = await reader.readexactly(5)
                _, length = struct.unpack(">BI", prefix)
                unpacker = msgpack.Unpacker(raw=False, strict_map_key=False)
                unpacker.feed(await reader.readexactly(length))
                header = unpacker.unpack()
                body = unpacker.unpack()

                request = ReceivedRequest(
                    connection=connection,
                    request_type=header[Keys.REQUEST_TYPE],
                    sync=header[Keys.SYNC],
                    body=body,
                )
                self.received.append(request)

                if self.drop_requests > 0:
                    self.drop_requests -= 1
                    writer.close()
                    return

                task = asyncio.create_task(self._reply(request, writer))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except (asyncio.IncompleteReadError, ConnectionError):
            writer.close()

    async def _reply(self, request: ReceivedRequest, writer: asyncio.StreamWriter) -> None:
        handler = self.handlers.get(request.request_type)
        if handler is None:
            reply: Any = Error(0x30, f"Unknown request type {request.request_type}")
        else:
            reply = handler(request)
            if asyncio.iscoroutine(reply):
                reply = await reply

        if isinstance(reply, NoReply) or writer.is_closing():
            return
        if isinstance(reply, Drop):
            writer.close()
            return

        if isinstance(reply, Raw):
            writer.write(reply.data)
        elif isinstance(reply, Error):
            header = {
                Keys.CODE: ERROR_TYPE_MASK | reply.code,
                Keys.SYNC: request.sync,
                Keys.SCHEMA_ID: self.schema_id,
            }
            writer.write(pack_frame(header, {Keys.ERROR_24: reply.message}))
        else:
            header = {Keys.CODE: 0, Keys.SYNC: request.sync, Keys.SCHEMA_ID: self.schema_id}
            writer.write(pack_frame(header, reply))

        self.replied.append(request.sync)
        try:
            await writer.drain()
        except ConnectionError:
            pass

    # --- default request handlers ---

    def _authenticate(self, request: ReceivedRequest) -> Reply:
        username = request.body[Keys.USER_NAME]
        mechanism, scramble = request.body[Keys.TUPLE]

        if username not in self.users:
            return Error(ER_NO_SUCH_USER, f"User '{username}' is not found")
        if mechanism != "chap-sha1" or not check_scramble(self.users[username], self.salt, scramble):
            return Error(ER_PASSWORD_MISMATCH, f"Incorrect password supplied for user '{username}'")
        return {}

    def _select(self, request: ReceivedRequest) -> Reply:
        space_id = request.body[Keys.SPACE_ID]
        key = request.body[Keys.KEY]

        if space_id not in self.spaces:
            return Error(ER_NO_SUCH_SPACE, f"Space '{space_id}' does not exist")

        rows = self.spaces[space_id]
        if space_id == VSPACE_ID and request.body[Keys.INDEX_ID] == 2:
            rows = [row for row in rows if row[2] == key[0]]
        elif space_id == VINDEX_ID and request.body[Keys.INDEX_ID] == 2:
            rows = [row for row in rows if row[0] == key[0] and row[2] == key[1]]
        elif key:
            rows = [row for row in rows if row[: len(key)] == key]

        return {Keys.DATA: rows}

    def _insert(self, request: ReceivedRequest) -> Reply:
        space_id = request.body[Keys.SPACE_ID]
        if space_id not in self.spaces:
            return Error(ER_NO_SUCH_SPACE, f"Space '{space_id}' does not exist")

        row = list(request.body[Keys.TUPLE])
        self.spaces[space_id].append(row)
        return {Keys.DATA: [row]}
