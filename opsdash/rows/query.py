"""RowQuery: a small builder for filtered, ordered, paged table reads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

FILTER_OPS = ("eq", "gte", "lte")


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if value is None:
        return "null"
    return str(value)


class RowQuery:
    """Describes one table read. Methods return ``self`` so calls chain::

        RowQuery("interactions").select("*", count="exact") \\
            .eq("org_id", org).order_by("created_at", desc=True).range(0, 49)
    """

    def __init__(self, table: str) -> None:
        self.table = table
        self.columns = "*"
        self.filters: list[tuple[str, str, Any]] = []
        self.order: tuple[str, bool] | None = None
        self.limit_value: int | None = None
        self.range_value: tuple[int, int] | None = None
        self.count: str | None = None
        self.head = False

    def __repr__(self) -> str:
        return f"RowQuery({self.table!r}, filters={self.filters!r})"

    def select(self, columns: str = "*", *, count: str | None = None, head: bool = False) -> RowQuery:
        self.columns = columns
        self.count = count
        self.head = head
        return self

    def _filter(self, column: str, op: str, value: Any) -> RowQuery:
        self.filters.append((column, op, value))
        return self

    def eq(self, column: str, value: Any) -> RowQuery:
        return self._filter(column, "eq", value)

    def gte(self, column: str, value: Any) -> RowQuery:
        return self._filter(column, "gte", value)

    def lte(self, column: str, value: Any) -> RowQuery:
        return self._filter(column, "lte", value)

    def order_by(self, column: str, *, desc: bool = False) -> RowQuery:
        self.order = (column, desc)
        return self

    def limit(self, n: int) -> RowQuery:
        self.limit_value = n
        return self

    def range(self, start: int, end: int) -> RowQuery:
        """Inclusive row offsets, ``range(0, 49)`` is the first fifty rows."""
        self.range_value = (start, end)
        return self

    # -- PostgREST encoding --

    def to_params(self) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = [("select", self.columns)]
        for column, op, value in self.filters:
            params.append((column, f"{op}.{_format_value(value)}"))
        if self.order is not None:
            column, desc = self.order
            params.append(("order", f"{column}.{'desc' if desc else 'asc'}"))
        if self.limit_value is not None:
            params.append(("limit", str(self.limit_value)))
        return params

    def to_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.count:
            headers["Prefer"] = f"count={self.count}"
        if self.range_value is not None:
            start, end = self.range_value
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{start}-{end}"
        return headers
