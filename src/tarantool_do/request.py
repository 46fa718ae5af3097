"""
Request types.

Each request kind is an immutable dataclass that knows its IPROTO type code
and how to lay out its body map. The correlation id is not part of a
request: the executor assigns a fresh one on every send.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Sequence

from .keys import CHAP_SHA1, DEFAULT_LIMIT, IteratorType, Keys, RequestType

__all__ = [
    "Request",
    "PingRequest",
    "CallRequest",
    "EvaluateRequest",
    "ExecuteRequest",
    "PrepareRequest",
    "SelectRequest",
    "InsertRequest",
    "ReplaceRequest",
    "UpdateRequest",
    "UpsertRequest",
    "DeleteRequest",
    "AuthenticateRequest",
    "READ_ONLY_TYPES",
]


class Request:
    """Base class for all request kinds."""

    request_type: ClassVar[RequestType]

    def body(self) -> dict[int, Any]:
        return {}


@dataclass(frozen=True)
class PingRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.PING


@dataclass(frozen=True)
class CallRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.CALL

    function_name: str
    args: Sequence[Any] = ()

    def body(self) -> dict[int, Any]:
        return {
            Keys.FUNCTION_NAME: self.function_name,
            Keys.TUPLE: list(self.args),
        }


@dataclass(frozen=True)
class EvaluateRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.EVALUATE

    expr: str
    args: Sequence[Any] = ()

    def body(self) -> dict[int, Any]:
        return {
            Keys.EXPR: self.expr,
            Keys.TUPLE: list(self.args),
        }


@dataclass(frozen=True)
class ExecuteRequest(Request):
    """Execute an SQL statement, either by text or by prepared statement id."""

    request_type: ClassVar[RequestType] = RequestType.EXECUTE

    sql: str | int
    params: Sequence[Any] = ()

    def body(self) -> dict[int, Any]:
        key = Keys.STMT_ID if isinstance(self.sql, int) else Keys.SQL_TEXT
        return {
            key: self.sql,
            Keys.SQL_BIND: list(self.params),
        }


@dataclass(frozen=True)
class PrepareRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.PREPARE

    sql: str

    def body(self) -> dict[int, Any]:
        return {Keys.SQL_TEXT: self.sql}


@dataclass(frozen=True)
class SelectRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.SELECT

    space_id: int
    index_id: int = 0
    key: Sequence[Any] = ()
    offset: int = 0
    limit: int = DEFAULT_LIMIT
    iterator: IteratorType = IteratorType.EQ

    def body(self) -> dict[int, Any]:
        return {
            Keys.SPACE_ID: self.space_id,
            Keys.INDEX_ID: self.index_id,
            Keys.KEY: list(self.key),
            Keys.OFFSET: self.offset,
            Keys.LIMIT: self.limit,
            Keys.ITERATOR: int(self.iterator),
        }


@dataclass(frozen=True)
class InsertRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.INSERT

    space_id: int
    tuple: Sequence[Any]

    def body(self) -> dict[int, Any]:
        return {
            Keys.SPACE_ID: self.space_id,
            Keys.TUPLE: list(self.tuple),
        }


@dataclass(frozen=True)
class ReplaceRequest(InsertRequest):
    request_type: ClassVar[RequestType] = RequestType.REPLACE


@dataclass(frozen=True)
class UpdateRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.UPDATE

    space_id: int
    index_id: int
    key: Sequence[Any]
    operations: Sequence[Sequence[Any]]

    def body(self) -> dict[int, Any]:
        return {
            Keys.SPACE_ID: self.space_id,
            Keys.INDEX_ID: self.index_id,
            Keys.KEY: list(self.key),
            Keys.TUPLE: [list(op) for op in self.operations],
        }


@dataclass(frozen=True)
class UpsertRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.UPSERT

    space_id: int
    tuple: Sequence[Any]
    operations: Sequence[Sequence[Any]]

    def body(self) -> dict[int, Any]:
        return {
            Keys.SPACE_ID: self.space_id,
            Keys.TUPLE: list(self.tuple),
            Keys.OPERATIONS: [list(op) for op in self.operations],
        }


@dataclass(frozen=True)
class DeleteRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.DELETE

    space_id: int
    index_id: int
    key: Sequence[Any]

    def body(self) -> dict[int, Any]:
        return {
            Keys.SPACE_ID: self.space_id,
            Keys.INDEX_ID: self.index_id,
            Keys.KEY: list(self.key),
        }


@dataclass(frozen=True)
class AuthenticateRequest(Request):
    request_type: ClassVar[RequestType] = RequestType.AUTHENTICATE

    username: str
    scramble: bytes = field(repr=False)

    def body(self) -> dict[int, Any]:
        return {
            Keys.USER_NAME: self.username,
            Keys.TUPLE: [CHAP_SHA1, self.scramble],
        }


# Request kinds without server-side write effects; safe to re-issue.
READ_ONLY_TYPES = frozenset({
    RequestType.PING,
    RequestType.SELECT,
    RequestType.AUTHENTICATE,
    RequestType.PREPARE,
})
