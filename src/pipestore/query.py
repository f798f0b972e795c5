"""Lazily built query pipelines."""

from __future__ import annotations

import re
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence

from pipestore.errors import InvalidFilterError, InvalidRelationError, UndefinedMacroError
from pipestore.path_access import PathAccessor
from pipestore.pipes import AND, OR, FilterPipe, LimiterPipe, MapperPipe, Pipe, Record, SorterPipe, sort_key

if TYPE_CHECKING:
    from pipestore.collection import Collection


class QueryType(Enum):
    """Terminal operations a collection can execute for a query."""

    GET = "get"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SAVE = "save"


OPERATORS = ("=", "!=", ">", ">=", "<", "<=", "in", "not in", "match", "between")

RowPredicate = Callable[[PathAccessor], Any]
RowMapper = Callable[[PathAccessor], Any]


def _as_list(value: Any) -> list[Any]:
    """Treat scalars (and strings) as one-element lists."""
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


def _equal(left: Any, right: Any) -> bool:
    """Equality where booleans never equal numbers (True != 1)."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _compare(field_value: Any, operator: str, value: Any) -> bool:
    """Compare a field value against a condition value."""
    try:
        if operator == "=":
            return _equal(field_value, value)
        elif operator == "!=":
            return not _equal(field_value, value)
        elif operator == ">":
            return field_value > value
        elif operator == ">=":
            return field_value >= value
        elif operator == "<":
            return field_value < value
        elif operator == "<=":
            return field_value <= value
        elif operator == "in":
            return field_value in value
        elif operator == "not in":
            return field_value not in value
        elif operator == "match":
            if isinstance(field_value, (int, float)) and not isinstance(field_value, bool):
                field_value = str(field_value)
            return isinstance(field_value, str) and value.search(field_value) is not None
        elif operator == "between":
            return value[0] <= field_value <= value[1]
    except TypeError:
        # None or mismatched types never satisfy an ordering comparison
        return False
    return False


def normalize_operator(operator: str) -> str:
    """Lower-case an operator and collapse inner whitespace ('NOT  IN' -> 'not in')."""
    return " ".join(str(operator).lower().split())


def compile_condition(key: str, operator: str, value: Any) -> RowPredicate:
    """Compile a key/operator/value triple into a row predicate.

    Supported operators: =, !=, >, >=, <, <=, in, not in, match, between.
    Validation happens here, so a bad operator fails when the filter is
    built rather than when the query runs.

    Raises:
        InvalidFilterError: For an unsupported operator, a 'between' bound
            list that is not exactly two values, or an invalid pattern.
    """
    operator = normalize_operator(operator)
    if operator not in OPERATORS:
        raise InvalidFilterError(f"Operator {operator!r} is not available")

    if operator in ("in", "not in"):
        value = _as_list(value)
    elif operator == "between":
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence) or len(value) != 2:
            raise InvalidFilterError("Operator 'between' needs exactly 2 bound values")
        value = (value[0], value[1])
    elif operator == "match":
        if not isinstance(value, re.Pattern):
            try:
                value = re.compile(value)
            except (re.error, TypeError) as e:
                raise InvalidFilterError(f"Invalid pattern for 'match': {value!r}") from e

    def predicate(row: PathAccessor) -> bool:
        return _compare(row.get(key), operator, value)

    return predicate


def _column_aliases(columns: Iterable[str]) -> list[tuple[str, str]]:
    """Resolve 'column' and 'column:alias' entries into (column, alias) pairs."""
    resolved = []
    for column in columns:
        name, sep, alias = column.partition(":")
        resolved.append((name, alias if sep else name))
    return resolved


class Query:
    """Accumulates pipes against one collection.

    Composition methods append (or merge into) pipes and return the query
    itself. Terminal methods hand the pipes to the collection, which loads
    fresh data and runs them.
    """

    def __init__(self, collection: Collection) -> None:
        self._collection = collection
        self._pipes: list[Pipe] = []

    @property
    def collection(self) -> Collection:
        return self._collection

    @collection.setter
    def collection(self, collection: Collection) -> None:
        self._collection = collection

    @property
    def pipes(self) -> list[Pipe]:
        """The pipes in execution order."""
        return list(self._pipes)

    def clone(self) -> Query:
        """Return a query with independent copies of this query's pipes."""
        query = Query(self._collection)
        query._pipes = [pipe.copy() for pipe in self._pipes]
        return query

    # --- Composition ---

    def where(self, key: str | RowPredicate, *args: Any) -> Query:
        """Add an AND filter.

        Accepts a predicate receiving a PathAccessor, ``where(key, value)``
        for equality, or ``where(key, operator, value)``.
        """
        self._add_where(AND, key, args)
        return self

    def or_where(self, key: str | RowPredicate, *args: Any) -> Query:
        """Add an OR filter. Takes the same arguments as where()."""
        self._add_where(OR, key, args)
        return self

    def filter(self, predicate: RowPredicate) -> Query:
        return self.where(predicate)

    def map(self, mapper: RowMapper) -> Query:
        """Add a mapper receiving a PathAccessor and returning the new record.

        The mapper may return a dict, a PathAccessor, or None to drop the row.
        """
        self._add_mapper(mapper)
        return self

    def select(self, columns: Sequence[str] | str) -> Query:
        """Project each row onto the named fields.

        Columns may be dotted paths and may carry an alias as
        ``"column:alias"``. Every other field is dropped.
        """
        if isinstance(columns, str):
            columns = [columns]
        resolved = _column_aliases(columns)

        def project(row: PathAccessor) -> Record:
            return {alias: row.get(column) for column, alias in resolved}

        return self.map(project)

    def with_one(
        self,
        relation: Collection | Query,
        alias: str,
        other_key: str,
        operator: str = "=",
        this_key: str = "_id",
    ) -> Query:
        """Attach the first related row under alias (1:1 relation)."""
        return self._add_relation(relation, alias, other_key, operator, this_key, many=False)

    def with_many(
        self,
        relation: Collection | Query,
        alias: str,
        other_key: str,
        operator: str = "=",
        this_key: str = "_id",
    ) -> Query:
        """Attach every related row under alias (1:n relation)."""
        return self._add_relation(relation, alias, other_key, operator, this_key, many=True)

    def sort_by(self, key: str | RowMapper, direction: str = "asc") -> Query:
        """Sort by a field path or by a function of the row."""
        if callable(key):
            value_of = key

            def value(row: Record) -> Any:
                return value_of(PathAccessor(row))
        else:
            def value(row: Record) -> Any:
                return PathAccessor(row).get(key)

        self._pipes.append(SorterPipe(value, direction))
        return self

    def skip(self, offset: int) -> Query:
        self._limiter().set_offset(offset)
        return self

    def take(self, limit: int, offset: int = 0) -> Query:
        self._limiter().set_limit(limit).set_offset(offset)
        return self

    # --- Terminal operations ---

    def get(self, select: Sequence[str] | None = None) -> list[Record]:
        """Fetch matching records in pipeline order.

        Args:
            select: Optional columns to project, applied after every other pipe.
        """
        if select:
            return self.clone().select(select)._execute(QueryType.GET)
        return self._execute(QueryType.GET)

    def first(self, select: Sequence[str] | None = None) -> Record | None:
        """Fetch the first matching record, or None.

        The current offset is kept; only the limit is set to 1.
        """
        query = self.clone()
        query._limiter().set_limit(1)
        rows = query.get(select)
        return rows[0] if rows else None

    def update(self, new_fields: Mapping[str, Any]) -> int:
        """Merge new_fields into every matching record. Returns the row count."""
        return self._execute(QueryType.UPDATE, dict(new_fields))

    def delete(self) -> int:
        """Delete every matching record. Returns the row count."""
        return self._execute(QueryType.DELETE)

    def save(self) -> int:
        """Write the pipeline's output rows back to the collection."""
        return self._execute(QueryType.SAVE)

    def count(self) -> int:
        return len(self.get())

    def sum(self, key: str) -> Any:
        total = 0
        for row in self.get():
            value = PathAccessor(row).get(key)
            if value is not None:
                total += value
        return total

    def avg(self, key: str) -> float | None:
        """Average of key over matching rows; missing values count as zero."""
        rows = self.get()
        if not rows:
            return None
        total = 0
        for row in rows:
            value = PathAccessor(row).get(key)
            if value is not None:
                total += value
        return total / len(rows)

    def lists(self, key: str, result_key: str | None = None) -> list[Any] | dict[Any, Any]:
        """Collect one field from every row.

        Returns a list in row order, or a dict keyed by result_key.
        """
        rows = [PathAccessor(row) for row in self.get()]
        if result_key is not None:
            return {row.get(result_key): row.get(key) for row in rows}
        return [row.get(key) for row in rows]

    def pluck(self, key: str, result_key: str | None = None) -> list[Any] | dict[Any, Any]:
        return self.lists(key, result_key)

    def min(self, key: str) -> Any:
        values = [v for v in self.lists(key) if v is not None]
        return min(values, key=sort_key) if values else None

    def max(self, key: str) -> Any:
        values = [v for v in self.lists(key) if v is not None]
        return max(values, key=sort_key) if values else None

    # --- Macros ---

    def call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Invoke the collection's macro `name` with this query as first argument."""
        macro = self._collection.get_macro(name)
        if macro is None:
            raise UndefinedMacroError(f"Undefined method or macro {name!r}")
        return macro(self, *args, **kwargs)

    # --- Internals ---

    def _execute(self, query_type: QueryType, arg: Mapping[str, Any] | None = None) -> Any:
        return self._collection.execute(self, query_type, arg)

    def _last_pipe(self) -> Pipe | None:
        return self._pipes[-1] if self._pipes else None

    def _add_where(self, combinator: str, key: str | RowPredicate, args: tuple[Any, ...]) -> None:
        if callable(key) and not args:
            predicate = key
        elif not isinstance(key, str):
            raise InvalidFilterError(f"Filter key must be a string or a callable, got {type(key).__name__}")
        elif len(args) == 1:
            predicate = compile_condition(key, "=", args[0])
        elif len(args) == 2:
            predicate = compile_condition(key, args[0], args[1])
        else:
            raise InvalidFilterError("where() takes a predicate, (key, value) or (key, operator, value)")
        self._add_filter(predicate, combinator)

    def _add_filter(self, predicate: RowPredicate, combinator: str = AND) -> None:
        pipe = self._last_pipe()
        if not isinstance(pipe, FilterPipe):
            pipe = FilterPipe()
            self._pipes.append(pipe)

        def row_filter(row: Record) -> Any:
            return predicate(PathAccessor(row))

        pipe.add(row_filter, combinator)

    def _add_mapper(self, mapper: RowMapper) -> None:
        pipe = self._last_pipe()
        if not isinstance(pipe, MapperPipe):
            pipe = MapperPipe()
            self._pipes.append(pipe)

        def row_mapper(row: Record) -> Record | None:
            result = mapper(PathAccessor(row))
            if isinstance(result, PathAccessor):
                return result.record
            if isinstance(result, Mapping):
                return dict(result)
            return None

        pipe.add(row_mapper)

    def _limiter(self) -> LimiterPipe:
        pipe = self._last_pipe()
        if not isinstance(pipe, LimiterPipe):
            pipe = LimiterPipe()
            self._pipes.append(pipe)
        return pipe

    def _add_relation(
        self,
        relation: Collection | Query,
        alias: str,
        other_key: str,
        operator: str,
        this_key: str,
        many: bool,
    ) -> Query:
        from pipestore.collection import Collection

        if not isinstance(relation, (Collection, Query)):
            raise InvalidRelationError("Relation must be a Collection or a Query")
        if normalize_operator(operator) not in OPERATORS:
            raise InvalidFilterError(f"Operator {operator!r} is not available")

        def join(row: PathAccessor) -> PathAccessor:
            if isinstance(relation, Collection):
                related = relation.query()
            else:
                related = relation.clone()
            related.where(other_key, operator, row.get(this_key))
            row[alias] = related.get() if many else related.first()
            return row

        return self.map(join)
