"""
IPROTO frame codec.

Frame format:
    ┌──────────────────┬──────────────────┬──────────────────┐
    │ len (5B)         │ header map       │ body map         │
    │ msgpack uint32   │ msgpack          │ msgpack          │
    └──────────────────┴──────────────────┴──────────────────┘

The length is the size of (header + body), NOT including the 5-byte prefix.
The codec is pure: no I/O, no state.
"""

from __future__ import annotations

import struct
from typing import Any, Mapping

import msgpack

from .errors import DecodeError
from .keys import Keys
from .request import Request
from .response import Response

__all__ = [
    "LENGTH_PREFIX_SIZE",
    "MAX_FRAME_SIZE",
    "encode",
    "decode",
    "pack",
    "read_length",
]

LENGTH_PREFIX_SIZE: int = 5
_UINT32_MARKER: int = 0xCE

# Max frame size accepted from the server (uint32 range)
MAX_FRAME_SIZE: int = 0xFFFFFFFF

# Body fields kept on an error response. Everything else is dropped.
_ERROR_FIELDS = (Keys.ERROR_24, Keys.ERROR)


def pack(value: Any) -> bytes:
    """
    Serialize a value to MessagePack.

    ``str`` is packed as MessagePack str and ``bytes`` as bin, so binary
    strings (including embedded NUL bytes) survive unchanged. Floats are
    always packed as 64-bit doubles.
    """
    return msgpack.packb(value, use_bin_type=True, use_single_float=False)


def _unpacker() -> msgpack.Unpacker:
    return msgpack.Unpacker(raw=False, strict_map_key=False, max_buffer_size=0)


def encode(request: Request, sync: int, schema_id: int | None = None) -> bytes:
    """
    Encode a request into a complete wire frame.

    Args:
        request: The request to encode
        sync: Correlation id for this send attempt
        schema_id: Optional schema version to pin the request to

    Returns:
        Frame bytes (length prefix + header map + body map)
    """
    header: dict[int, Any] = {
        int(Keys.REQUEST_TYPE): int(request.request_type),
        int(Keys.SYNC): sync,
    }
    if schema_id is not None:
        header[int(Keys.SCHEMA_ID)] = schema_id

    body = {int(key): value for key, value in request.body().items()}
    payload = pack(header) + pack(body)

    return struct.pack(">BI", _UINT32_MARKER, len(payload)) + payload


def read_length(prefix: bytes) -> int:
    """
    Parse the 5-byte length prefix of a frame.

    Raises:
        DecodeError: If the prefix is not a MessagePack uint32
    """
    if len(prefix) != LENGTH_PREFIX_SIZE:
        raise DecodeError(f"Length prefix must be {LENGTH_PREFIX_SIZE} bytes, got {len(prefix)}")

    marker, length = struct.unpack(">BI", prefix)
    if marker != _UINT32_MARKER:
        raise DecodeError(f"Unexpected length prefix marker 0x{marker:02x}")

    return length


def decode(payload: bytes) -> Response:
    """
    Decode a frame payload (header + body, without length prefix).

    Raises:
        DecodeError: If the payload is not a valid IPROTO response
    """
    unpacker = _unpacker()
    unpacker.feed(payload)

    try:
        header = unpacker.unpack()
        body: Any = unpacker.unpack() if unpacker.tell() < len(payload) else {}
    except msgpack.OutOfData:
        raise DecodeError("Truncated frame") from None
    except (ValueError, TypeError) as e:
        raise DecodeError(f"Invalid MessagePack data: {e}") from e

    if unpacker.tell() != len(payload):
        raise DecodeError(f"Unexpected {len(payload) - unpacker.tell()} trailing bytes in frame")

    if not isinstance(header, dict):
        raise DecodeError(f"Header must be a map, got {type(header).__name__}")
    if not isinstance(body, dict):
        raise DecodeError(f"Body must be a map, got {type(body).__name__}")

    try:
        code = header[Keys.CODE]
        sync = header[Keys.SYNC]
    except KeyError as e:
        raise DecodeError(f"Header is missing key 0x{e.args[0]:02x}") from None

    if not isinstance(code, int) or not isinstance(sync, int):
        raise DecodeError("Header code and sync must be integers")

    response = Response(
        sync=sync,
        code=code,
        schema_id=header.get(Keys.SCHEMA_ID),
        body=body,
    )
    if response.is_error:
        return Response(
            sync=sync,
            code=code,
            schema_id=response.schema_id,
            body=_error_body(body),
        )

    return response


def _error_body(body: Mapping[int, Any]) -> dict[int, Any]:
    return {key: body[key] for key in _ERROR_FIELDS if key in body}
