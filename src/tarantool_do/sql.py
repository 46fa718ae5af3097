"""Result wrappers for SQL statements."""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence

from .keys import FIELD_NAME, SQL_INFO_AUTOINCREMENT_IDS, SQL_INFO_ROW_COUNT

__all__ = ["SqlQueryResult", "SqlUpdateResult"]


class SqlQueryResult:
    """
    Rows returned by a SELECT-like statement.

    Iterating yields one dict per row, keyed by column name.

    Example:
        result = await client.execute_query("SELECT id, name FROM users")
        for row in result:
            print(row["ID"], row["NAME"])
    """

    __slots__ = ("_data", "_metadata", "_keys")

    def __init__(self, data: Sequence[Sequence[Any]], metadata: Sequence[Mapping[int, Any]]) -> None:
        self._data = data
        self._metadata = metadata
        self._keys = [column[FIELD_NAME] for column in metadata]

    @property
    def data(self) -> Sequence[Sequence[Any]]:
        return self._data

    @property
    def metadata(self) -> Sequence[Mapping[int, Any]]:
        return self._metadata

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    def is_empty(self) -> bool:
        return not self._data

    def first(self) -> dict[str, Any] | None:
        return self._row(self._data[0]) if self._data else None

    def last(self) -> dict[str, Any] | None:
        return self._row(self._data[-1]) if self._data else None

    def _row(self, values: Sequence[Any]) -> dict[str, Any]:
        return dict(zip(self._keys, values))

    def __iter__(self) -> Iterator[dict[str, Any]]:
        for values in self._data:
            yield self._row(values)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"SqlQueryResult(columns={self._keys!r}, rows={len(self._data)})"


class SqlUpdateResult:
    """Outcome of an INSERT/UPDATE/DELETE or DDL statement."""

    __slots__ = ("_info",)

    def __init__(self, info: Mapping[int, Any]) -> None:
        self._info = info

    @property
    def count(self) -> int:
        """Number of affected rows."""
        return self._info[SQL_INFO_ROW_COUNT]

    @property
    def autoincrement_ids(self) -> list[int] | None:
        return self._info.get(SQL_INFO_AUTOINCREMENT_IDS)

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"SqlUpdateResult(count={self.count}, autoincrement_ids={self.autoincrement_ids!r})"
