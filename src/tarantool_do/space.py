"""Tuple operations on a single space."""

from __future__ import annotations

from typing import Any, Sequence

from .handler import Handler
from .keys import DEFAULT_LIMIT, IteratorType
from .request import (
    DeleteRequest,
    InsertRequest,
    ReplaceRequest,
    SelectRequest,
    UpdateRequest,
    UpsertRequest,
)
from .schema import SchemaResolver

__all__ = ["Space"]


class Space:
    """
    A space addressed by id.

    Index arguments accept an id or a name; names are resolved through the
    client's schema cache.

    Example:
        users = await client.get_space("users")
        await users.insert([1, "alice"])
        rows = await users.select([1])
        rows = await users.select(["alice"], index="name")
        await users.update([1], [["=", 1, "bob"]])
        await users.delete([1])
    """

    __slots__ = ("_handler", "_id", "_schema")

    def __init__(self, handler: Handler, space_id: int, schema: SchemaResolver) -> None:
        self._handler = handler
        self._id = space_id
        self._schema = schema

    @property
    def id(self) -> int:
        return self._id

    async def select(
        self,
        key: Sequence[Any] = (),
        *,
        index: int | str = 0,
        offset: int = 0,
        limit: int = DEFAULT_LIMIT,
        iterator: IteratorType | None = None,
    ) -> list[Any]:
        """
        Select tuples.

        Args:
            key: Index key; an empty key selects everything
            index: Index id or name
            offset: Number of tuples to skip
            limit: Maximum number of tuples to return
            iterator: Iterator type; EQ for a non-empty key, ALL otherwise
        """
        if iterator is None:
            iterator = IteratorType.EQ if key else IteratorType.ALL

        request = SelectRequest(
            space_id=self._id,
            index_id=await self._index_id(index),
            key=key,
            offset=offset,
            limit=limit,
            iterator=iterator,
        )
        return (await self._handler.handle(request)).data

    async def insert(self, values: Sequence[Any]) -> list[Any]:
        return (await self._handler.handle(InsertRequest(self._id, values))).data

    async def replace(self, values: Sequence[Any]) -> list[Any]:
        return (await self._handler.handle(ReplaceRequest(self._id, values))).data

    async def update(
        self,
        key: Sequence[Any],
        operations: Sequence[Sequence[Any]],
        *,
        index: int | str = 0,
    ) -> list[Any]:
        """
        Update the tuple matching key.

        Operations use the server's format, e.g. ``["+", 2, 1]`` or
        ``["=", "name", "bob"]``.
        """
        request = UpdateRequest(self._id, await self._index_id(index), key, operations)
        return (await self._handler.handle(request)).data

    async def upsert(self, values: Sequence[Any], operations: Sequence[Sequence[Any]]) -> None:
        await self._handler.handle(UpsertRequest(self._id, values, operations))

    async def delete(self, key: Sequence[Any], *, index: int | str = 0) -> list[Any]:
        request = DeleteRequest(self._id, await self._index_id(index), key)
        return (await self._handler.handle(request)).data

    async def _index_id(self, index: int | str) -> int:
        if isinstance(index, int):
            return index
        return await self._schema.resolve_index_id(self._id, index)

    def __repr__(self) -> str:
        return f"Space({self._id})"
