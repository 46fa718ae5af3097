"""
Schema name resolution.

Spaces and indexes are addressed by numeric id on the wire. The resolver
looks names up in the server's system catalog (``_vspace`` and ``_vindex``)
through the regular pipeline and remembers the answers for the lifetime of
the resolver. Nothing is evicted automatically: after a schema change,
call flush().
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from .errors import NotFound
from .handler import Handler
from .keys import INDEX_NAME_INDEX, SPACE_NAME_INDEX, VINDEX_ID, VSPACE_ID
from .request import SelectRequest

__all__ = ["SpaceMetadata", "SchemaResolver"]

logger = logging.getLogger(__name__)

# Tuple field positions in the system spaces
_VSPACE_ID_FIELD = 0
_VSPACE_NAME_FIELD = 2
_VINDEX_IID_FIELD = 1


@dataclass
class SpaceMetadata:
    """What the client knows about one space."""

    id: int
    name: str | None = None
    indexes: dict[str, int] = field(default_factory=dict)


class SchemaResolver:
    """
    Bidirectional name/id cache for spaces and their indexes.

    Example:
        schema = SchemaResolver(handler)
        space_id = await schema.resolve_space_id("users")
        index_id = await schema.resolve_index_id(space_id, "email")
    """

    __slots__ = ("_handler", "_by_name", "_by_id", "_lock")

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self._by_name: dict[str, SpaceMetadata] = {}
        self._by_id: dict[int, SpaceMetadata] = {}
        self._lock = asyncio.Lock()

    def get(self, key: str | int) -> SpaceMetadata | None:
        """Return cached metadata by space name or id without any I/O."""
        if isinstance(key, str):
            return self._by_name.get(key)
        return self._by_id.get(key)

    def flush(self) -> None:
        """Drop every cached entry."""
        self._by_name.clear()
        self._by_id.clear()

    async def resolve_space_id(self, name: str) -> int:
        """
        Resolve a space name to its id.

        Raises:
            NotFound: If no space has this name
        """
        cached = self._by_name.get(name)
        if cached is not None:
            return cached.id

        async with self._lock:
            cached = self._by_name.get(name)
            if cached is not None:
                return cached.id

            rows = await self._select(VSPACE_ID, SPACE_NAME_INDEX, [name])
            if not rows:
                raise NotFound.unknown_space(name)

            row = rows[0]
            metadata = self._remember(row[_VSPACE_ID_FIELD], row[_VSPACE_NAME_FIELD])
            logger.debug("Resolved space %r to #%d", name, metadata.id)
            return metadata.id

    async def resolve_index_id(self, space_id: int, name: str) -> int:
        """
        Resolve an index name within a space to its id.

        Raises:
            NotFound: If the space has no index with this name
        """
        cached = self._by_id.get(space_id)
        if cached is not None and name in cached.indexes:
            return cached.indexes[name]

        async with self._lock:
            cached = self._by_id.get(space_id)
            if cached is not None and name in cached.indexes:
                return cached.indexes[name]

            rows = await self._select(VINDEX_ID, INDEX_NAME_INDEX, [space_id, name])
            if not rows:
                raise NotFound.unknown_index(name, space_id)

            index_id = rows[0][_VINDEX_IID_FIELD]
            metadata = cached or self._remember(space_id, None)
            metadata.indexes[name] = index_id
            logger.debug("Resolved index %r of space #%d to #%d", name, space_id, index_id)
            return index_id

    def _remember(self, space_id: int, name: str | None) -> SpaceMetadata:
        metadata = self._by_id.get(space_id)
        if metadata is None:
            metadata = SpaceMetadata(id=space_id)
            self._by_id[space_id] = metadata
        if name is not None:
            metadata.name = name
            self._by_name[name] = metadata
        return metadata

    async def _select(self, space_id: int, index_id: int, key: Sequence[Any]) -> list[Any]:
        response = await self._handler.handle(
            SelectRequest(space_id=space_id, index_id=index_id, key=key)
        )
        return response.data
