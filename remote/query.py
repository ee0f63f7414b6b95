from __future__ import annotations

"""
Query primitives shared by the HTTP client and the in-memory client.

A Filter renders itself as a PostgREST query parameter (``status=ilike.published``)
and can also be evaluated against a plain dict row, so both backends agree on
what a query means.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


def _quote(term: str) -> str:
    # PostgREST reserves , . : ( ) inside or=() unless the value is quoted
    return '"' + term.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _fold(value: Any) -> str:
    return "" if value is None else str(value).lower()


@dataclass(frozen=True)
class Filter:
    op: str  # eq | ilike | search
    columns: Tuple[str, ...]
    value: Any

    @classmethod
    def eq(cls, column: str, value: Any) -> "Filter":
        return cls("eq", (column,), value)

    @classmethod
    def ilike(cls, column: str, value: str) -> "Filter":
        return cls("ilike", (column,), value)

    @classmethod
    def search(cls, columns: Tuple[str, ...], term: str) -> "Filter":
        return cls("search", tuple(columns), term)

    def to_param(self) -> Tuple[str, str]:
        if self.op == "eq":
            return self.columns[0], f"eq.{self.value}"
        if self.op == "ilike":
            return self.columns[0], f"ilike.{self.value}"
        pattern = _quote(f"*{self.value}*")
        parts = ",".join(f"{c}.ilike.{pattern}" for c in self.columns)
        return "or", f"({parts})"

    def matches(self, row: Dict[str, Any]) -> bool:
        if self.op == "eq":
            return str(row.get(self.columns[0])) == str(self.value)
        if self.op == "ilike":
            return _fold(row.get(self.columns[0])) == _fold(self.value)
        needle = _fold(self.value)
        return any(needle in _fold(row.get(c)) for c in self.columns)


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = True

    def to_param(self) -> Tuple[str, str]:
        return "order", f"{self.column}.{'desc' if self.descending else 'asc'}"


@dataclass(frozen=True)
class RowFilter:
    """``column=eq.value`` restriction on a change-notification stream."""
    column: str
    value: Any

    def matches(self, row: Optional[Dict[str, Any]]) -> bool:
        if not row:
            return False
        return str(row.get(self.column)) == str(self.value)

    def __str__(self) -> str:
        return f"{self.column}=eq.{self.value}"
