"""Pipeline stages applied to a document map.

Every stage takes an ordered mapping of identifier to record and returns a
new one. Identifiers stay attached to their records through all stages, so
the key of a row in a stage's output is always the identifier the row was
loaded under.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Callable

from pipestore.errors import InvalidFilterError, InvalidSortDirectionError

Record = dict[str, Any]
Rows = dict[str, Record]

Predicate = Callable[[Record], Any]
Mapper = Callable[[Record], Record | None]
SortValue = Callable[[Record], Any]

AND = "and"
OR = "or"
COMBINATORS = (AND, OR)

ASC = "asc"
DESC = "desc"
DIRECTIONS = (ASC, DESC)


class Pipe(ABC):
    """A single stage of a query pipeline."""

    @abstractmethod
    def process(self, rows: Rows) -> Rows:
        """Transform rows into a new ordered mapping."""

    @abstractmethod
    def copy(self) -> Pipe:
        """Return an independent copy of this stage."""


class FilterPipe(Pipe):
    """Keeps rows for which the folded predicates hold.

    Predicates are folded left to right starting from True: each one is
    combined with the running result using its own combinator. There is no
    operator precedence, so ``[p1 AND, p2 AND, p3 OR]`` evaluates as
    ``((True and p1) and p2) or p3``.
    """

    def __init__(self) -> None:
        self.filters: list[tuple[Predicate, str]] = []

    def add(self, predicate: Predicate, combinator: str = AND) -> None:
        """Register a predicate with its combinator ('AND' or 'OR')."""
        combinator = combinator.lower()
        if combinator not in COMBINATORS:
            raise InvalidFilterError(f"Filter combinator must be 'AND' or 'OR', got {combinator!r}")
        self.filters.append((predicate, combinator))

    def matches(self, row: Record) -> bool:
        result = True
        for predicate, combinator in self.filters:
            if combinator == AND:
                result = result and bool(predicate(row))
            else:
                result = result or bool(predicate(row))
        return result

    def process(self, rows: Rows) -> Rows:
        return {key: row for key, row in rows.items() if self.matches(row)}

    def copy(self) -> FilterPipe:
        pipe = FilterPipe()
        pipe.filters = list(self.filters)
        return pipe


class MapperPipe(Pipe):
    """Applies mapper functions in registration order.

    Each mapper receives the output of the previous one. A mapper that
    returns None drops the row.
    """

    def __init__(self) -> None:
        self.mappers: list[Mapper] = []

    def add(self, mapper: Mapper) -> None:
        self.mappers.append(mapper)

    def process(self, rows: Rows) -> Rows:
        for mapper in self.mappers:
            mapped: Rows = {}
            for key, row in rows.items():
                result = mapper(row)
                if result is not None:
                    mapped[key] = result
            rows = mapped
        return rows

    def copy(self) -> MapperPipe:
        pipe = MapperPipe()
        pipe.mappers = list(self.mappers)
        return pipe


def sort_key(value: Any) -> tuple[int, Any]:
    """Total order over JSON values.

    Values are grouped by kind first (None, booleans, numbers, strings,
    then lists and mappings), so fields holding mixed types still sort.
    """
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, (list, tuple)):
        return (4, tuple(sort_key(item) for item in value))
    return (5, json.dumps(value, sort_keys=True, default=str))


class SorterPipe(Pipe):
    """Stable sort of rows by a computed value."""

    def __init__(self, value: SortValue, direction: str = ASC) -> None:
        direction = direction.lower()
        if direction not in DIRECTIONS:
            raise InvalidSortDirectionError(f"Sorting must be 'asc' or 'desc', got {direction!r}")
        self.value = value
        self.direction = direction

    def process(self, rows: Rows) -> Rows:
        keyed = [(sort_key(self.value(row)), key) for key, row in rows.items()]
        # sorted() is stable in both directions, so ties keep their prior order
        keyed = sorted(keyed, key=lambda item: item[0], reverse=self.direction == DESC)
        return {key: rows[key] for _, key in keyed}

    def copy(self) -> SorterPipe:
        return SorterPipe(self.value, self.direction)


class LimiterPipe(Pipe):
    """Keeps a contiguous window of rows.

    A limit of None (or 0) means every row from the offset onwards.
    """

    def __init__(self, limit: int | None = None, offset: int = 0) -> None:
        self.limit: int | None = None
        self.offset = 0
        self.set_limit(limit)
        self.set_offset(offset)

    def set_limit(self, limit: int | None) -> LimiterPipe:
        if limit is not None and limit < 0:
            raise ValueError(f"Limit must not be negative, got {limit}")
        self.limit = limit
        return self

    def set_offset(self, offset: int = 0) -> LimiterPipe:
        if offset < 0:
            raise ValueError(f"Offset must not be negative, got {offset}")
        self.offset = offset
        return self

    def process(self, rows: Rows) -> Rows:
        items = list(rows.items())
        limit = self.limit or len(items)
        return dict(items[self.offset:self.offset + limit])

    def copy(self) -> LimiterPipe:
        return LimiterPipe(self.limit, self.offset)
