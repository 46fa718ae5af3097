"""
Client configuration.

``ClientConfig`` holds everything needed to build a pipeline. Option
mappings supplied by users are validated with a pydantic model before they
become a ``ClientConfig``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from .connection import StreamConnection, parse_uri
from .errors import ConfigurationError

__all__ = ["ClientConfig", "ClientOptions", "parse_options", "config_from_env"]


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for a Client and its pipeline."""

    uri: str = StreamConnection.DEFAULT_URI
    connect_timeout: float = 5.0
    socket_timeout: float = 5.0
    write_timeout: float | None = None
    tcp_nodelay: bool = True
    persistent: bool = False
    max_retries: int = 0
    username: str | None = None
    password: str = ""

    def connection_options(self) -> dict[str, Any]:
        return {
            "connect_timeout": self.connect_timeout,
            "socket_timeout": self.socket_timeout,
            "write_timeout": self.write_timeout,
            "tcp_nodelay": self.tcp_nodelay,
            "persistent": self.persistent,
        }


class ClientOptions(BaseModel):
    """Pydantic model for validating user-supplied client options.

    Unknown option names are rejected so typos do not go unnoticed.
    """

    uri: str = StreamConnection.DEFAULT_URI
    connect_timeout: float = Field(default=5.0, gt=0)
    socket_timeout: float = Field(default=5.0, gt=0)
    write_timeout: float | None = Field(default=None, gt=0)
    tcp_nodelay: bool = True
    persistent: bool = False
    max_retries: int = Field(default=0, ge=0)
    username: str | None = None
    password: str = ""

    model_config = {"extra": "forbid"}

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        """Validate that the URI names a TCP address or a Unix socket."""
        parse_uri(v)
        return v

    @field_validator("username")
    @classmethod
    def validate_username_not_empty(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("username cannot be empty or whitespace-only")
        return v


def parse_options(options: Mapping[str, Any]) -> ClientConfig:
    """
    Validate an option mapping and turn it into a ClientConfig.

    Args:
        options: Option names and values, e.g.
            ``{"uri": "tcp://db:3301", "max_retries": 3, "username": "app"}``

    Raises:
        ConfigurationError: If an option is unknown or has an invalid value
    """
    try:
        validated = ClientOptions.model_validate(dict(options))
    except ValidationError as e:
        errors = e.errors()
        if errors:
            first_error = errors[0]
            name = ".".join(str(loc) for loc in first_error.get("loc", []))
            msg = first_error.get("msg", "validation error")
            raise ConfigurationError(f"Invalid option {name}: {msg}") from e
        raise ConfigurationError(f"Invalid options: {e}") from e

    return ClientConfig(**validated.model_dump())


def _get_env(key: str) -> str | None:
    """Get environment variable value."""
    return os.environ.get(key)


def config_from_env() -> ClientConfig:
    """
    Build a configuration from environment variables.

    Reads from:
        - TARANTOOL_URI
        - TARANTOOL_USERNAME
        - TARANTOOL_PASSWORD
        - TARANTOOL_MAX_RETRIES
        - TARANTOOL_CONNECT_TIMEOUT
        - TARANTOOL_SOCKET_TIMEOUT
    """
    env = {
        "uri": _get_env("TARANTOOL_URI"),
        "username": _get_env("TARANTOOL_USERNAME"),
        "password": _get_env("TARANTOOL_PASSWORD"),
        "max_retries": _get_env("TARANTOOL_MAX_RETRIES"),
        "connect_timeout": _get_env("TARANTOOL_CONNECT_TIMEOUT"),
        "socket_timeout": _get_env("TARANTOOL_SOCKET_TIMEOUT"),
    }
    return parse_options({key: value for key, value in env.items() if value is not None})
