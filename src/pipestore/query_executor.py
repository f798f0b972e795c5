"""Query executor for PSQ statements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pipestore.collection import Collection
from pipestore.database import Database
from pipestore.parsing.query_parser import (
    CompoundCondition,
    Condition,
    DeleteQuery,
    DropQuery,
    InsertQuery,
    NotCondition,
    Query,
    SelectQuery,
    ShowCollectionsQuery,
    TruncateQuery,
    UpdateQuery,
    UseQuery,
)
from pipestore.path_access import PathAccessor
from pipestore.query import Query as CollectionQuery
from pipestore.query import compile_condition

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Result of a query execution."""

    columns: list[str]
    rows: list[dict[str, Any]]
    message: str | None = None


@dataclass
class UseResult(QueryResult):
    """Result of a USE query - signals REPL to switch data directories."""

    path: str = ""


@dataclass
class InsertResult(QueryResult):
    """Result of an INSERT query."""

    ids: list[str] = field(default_factory=list)


@dataclass
class UpdateResult(QueryResult):
    """Result of an UPDATE query."""

    updated_count: int = 0


@dataclass
class DeleteResult(QueryResult):
    """Result of a DELETE query."""

    deleted_count: int = 0


@dataclass
class DropResult(QueryResult):
    """Result of a DROP query."""

    collection: str = ""
    existed: bool = False


def compile_where(condition: Condition | NotCondition | CompoundCondition) -> Callable[[PathAccessor], bool]:
    """Compile a WHERE tree into a single row predicate.

    The tree keeps its own precedence: it becomes one filter, so the
    left-to-right folding of separately registered filters never applies
    inside it.
    """
    if isinstance(condition, Condition):
        return compile_condition(condition.field, condition.operator, condition.value)

    if isinstance(condition, NotCondition):
        operand = compile_where(condition.operand)
        return lambda row: not operand(row)

    left = compile_where(condition.left)
    right = compile_where(condition.right)
    if condition.operator == "and":
        return lambda row: bool(left(row)) and bool(right(row))
    return lambda row: bool(left(row)) or bool(right(row))


def _columns_of(rows: list[dict[str, Any]]) -> list[str]:
    """Column names in first-seen order, with the identifier first."""
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    if Collection.KEY_ID in columns:
        columns.remove(Collection.KEY_ID)
        columns.insert(0, Collection.KEY_ID)
    return columns


class QueryExecutor:
    """Executes parsed PSQ queries against a Database."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def execute(self, query: Query) -> QueryResult:
        """Execute a query and return results."""
        if isinstance(query, SelectQuery):
            return self._execute_select(query)
        elif isinstance(query, InsertQuery):
            return self._execute_insert(query)
        elif isinstance(query, UpdateQuery):
            return self._execute_update(query)
        elif isinstance(query, DeleteQuery):
            return self._execute_delete(query)
        elif isinstance(query, ShowCollectionsQuery):
            return self._execute_show_collections(query)
        elif isinstance(query, TruncateQuery):
            return self._execute_truncate(query)
        elif isinstance(query, DropQuery):
            return self._execute_drop(query)
        elif isinstance(query, UseQuery):
            return UseResult(columns=[], rows=[], path=query.path)
        else:
            raise ValueError(f"Unknown query type: {type(query).__name__}")

    def _query(self, name: str, where: Condition | NotCondition | CompoundCondition | None) -> CollectionQuery:
        builder = self.database.collection(name).query()
        if where is not None:
            builder.where(compile_where(where))
        return builder

    def _execute_select(self, query: SelectQuery) -> QueryResult:
        builder = self._query(query.collection, query.where)

        # Sorts are stable, so applying the last key first gives lexicographic order
        for key in reversed(query.sort_by):
            builder.sort_by(key.path, key.direction)

        if query.is_aggregate:
            if not all(f.aggregate for f in query.fields):
                raise ValueError("Cannot mix aggregate functions and plain fields in one select")
            return self._execute_aggregate(query, builder)

        if query.offset:
            builder.skip(query.offset)
        if query.limit is not None:
            if query.limit == 0:
                return QueryResult(columns=[f.label for f in query.fields], rows=[])
            builder.take(query.limit, query.offset)

        if query.fields:
            columns = [f.label for f in query.fields]
            rows = builder.get([f"{f.path}:{f.label}" for f in query.fields])
        else:
            rows = builder.get()
            columns = _columns_of(rows)
        return QueryResult(columns=columns, rows=rows)

    def _execute_aggregate(self, query: SelectQuery, builder: CollectionQuery) -> QueryResult:
        row: dict[str, Any] = {}
        for f in query.fields:
            if f.aggregate == "count":
                row[f.label] = builder.count()
            elif f.aggregate == "sum":
                row[f.label] = builder.sum(f.path)
            elif f.aggregate == "avg":
                row[f.label] = builder.avg(f.path)
            elif f.aggregate == "min":
                row[f.label] = builder.min(f.path)
            elif f.aggregate == "max":
                row[f.label] = builder.max(f.path)
        return QueryResult(columns=[f.label for f in query.fields], rows=[row])

    def _execute_insert(self, query: InsertQuery) -> InsertResult:
        collection = self.database.collection(query.collection)
        if len(query.records) == 1:
            inserted = [collection.insert(query.records[0])]
        else:
            inserted = collection.insert_many(query.records)

        records = [record for record in inserted if record is not None]
        ids = [record[Collection.KEY_ID] for record in records]
        noun = "record" if len(ids) == 1 else "records"
        return InsertResult(
            columns=_columns_of(records),
            rows=records,
            message=f"Inserted {len(ids)} {noun} into {query.collection}",
            ids=ids,
        )

    def _execute_update(self, query: UpdateQuery) -> UpdateResult:
        count = self._query(query.collection, query.where).update(query.assignments)
        return UpdateResult(
            columns=[],
            rows=[],
            message=f"Updated {count} record{'s' if count != 1 else ''} in {query.collection}",
            updated_count=count,
        )

    def _execute_delete(self, query: DeleteQuery) -> DeleteResult:
        count = self._query(query.collection, query.where).delete()
        return DeleteResult(
            columns=[],
            rows=[],
            message=f"Deleted {count} record{'s' if count != 1 else ''} from {query.collection}",
            deleted_count=count,
        )

    def _execute_show_collections(self, query: ShowCollectionsQuery) -> QueryResult:
        rows = []
        for name in self.database.list_collections():
            rows.append({"collection": name, "count": self.database.collection(name).count()})
        return QueryResult(columns=["collection", "count"], rows=rows)

    def _execute_truncate(self, query: TruncateQuery) -> QueryResult:
        collection = self.database.collection(query.collection)
        if not collection.truncate():
            return QueryResult(columns=[], rows=[], message=f"Failed to truncate {query.collection}")
        return QueryResult(columns=[], rows=[], message=f"Truncated {query.collection}")

    def _execute_drop(self, query: DropQuery) -> DropResult:
        existed = self.database.drop(query.collection)
        message = f"Dropped {query.collection}" if existed else f"Collection {query.collection} does not exist"
        return DropResult(columns=[], rows=[], message=message, collection=query.collection, existed=existed)
