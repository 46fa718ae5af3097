"""Response types produced by the codec."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .keys import ERROR_TYPE_MASK, OK, Keys

__all__ = ["Response", "ServerError"]


@dataclass(frozen=True)
class ServerError:
    """Error payload of a failed response."""

    code: int
    message: str
    stack: Any = None


@dataclass(frozen=True)
class Response:
    """
    A decoded IPROTO response.

    Attributes:
        sync: Correlation id of the request this answers
        code: Raw status code from the header (0 on success)
        schema_id: Server schema version, if sent
        body: Body fields keyed by :class:`~tarantool_do.keys.Keys`

    Which body fields are present depends on the request kind and the
    status. An error response never has data fields.
    """

    sync: int
    code: int = OK
    schema_id: int | None = None
    body: Mapping[int, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.code & ERROR_TYPE_MASK)

    def has(self, key: int) -> bool:
        return key in self.body

    def get(self, key: int) -> Any:
        """Return a body field, raising KeyError if the response lacks it."""
        try:
            return self.body[key]
        except KeyError:
            raise KeyError(f"Response #{self.sync} has no body field 0x{int(key):02x}") from None

    @property
    def data(self) -> list[Any]:
        return self.get(Keys.DATA)

    @property
    def metadata(self) -> list[Any]:
        return self.get(Keys.METADATA)

    @property
    def sql_info(self) -> Mapping[int, Any]:
        return self.get(Keys.SQL_INFO)

    @property
    def error(self) -> ServerError | None:
        if not self.is_error:
            return None
        return ServerError(
            code=self.code & ~ERROR_TYPE_MASK,
            message=self.body.get(Keys.ERROR_24, ""),
            stack=self.body.get(Keys.ERROR),
        )
