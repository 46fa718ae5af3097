"""
Server greeting.

On every new connection the server sends a fixed 128-byte greeting before
anything else:

    line 1 (64 bytes): "Tarantool <version> (<protocol>) <instance uuid>"
    line 2 (64 bytes): base64-encoded random salt, space padded

The salt is the challenge for the authentication handshake.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field

from .errors import DecodeError

__all__ = ["GREETING_SIZE", "Greeting", "parse_greeting"]

GREETING_SIZE: int = 128
_LINE_SIZE: int = 64
_SALT_SIZE: int = 44


@dataclass(frozen=True)
class Greeting:
    """Parsed server greeting."""

    server: str
    salt: bytes = field(repr=False)

    @property
    def version(self) -> str:
        parts = self.server.split()
        return parts[1] if len(parts) > 1 else ""


def parse_greeting(data: bytes) -> Greeting:
    """
    Parse a raw greeting.

    Raises:
        DecodeError: If the bytes are not a Tarantool greeting
    """
    if len(data) != GREETING_SIZE or not data.startswith(b"Tarantool"):
        raise DecodeError("Unable to recognize Tarantool server")

    server = data[:_LINE_SIZE].decode("ascii", errors="replace").strip()
    encoded_salt = data[_LINE_SIZE:_LINE_SIZE + _SALT_SIZE]

    try:
        salt = base64.b64decode(encoded_salt, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Unable to decode greeting salt: {e}") from e

    return Greeting(server=server, salt=salt)
