"""A JSON-file backed collection of records."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from pipestore.errors import CrossCollectionError, TransactionError, UndefinedMacroError
from pipestore.keys import generate_key
from pipestore.options import StoreOptions
from pipestore.path_access import PathAccessor
from pipestore.pipes import Record, Rows
from pipestore.query import Query, QueryType, RowMapper, RowPredicate
from pipestore.storage import JsonFileStorage

logger = logging.getLogger(__name__)

EVENTS = ("inserting", "inserted", "updating", "updated", "deleting", "deleted", "changed")

Macro = Callable[..., Any]
Resolver = Callable[[Record], Record]


class Collection:
    """A mapping of identifier to record persisted as one JSON file.

    Every terminal operation loads the whole map, runs the query's pipes
    over a copy of it, applies the change and writes the map back. While a
    transaction is active, writes go to an in-memory buffer and reads come
    from that buffer.
    """

    KEY_ID = "_id"

    def __init__(self, path: Path | str, options: StoreOptions | Mapping[str, Any] | None = None, **overrides: Any) -> None:
        """Open a collection.

        Args:
            path: Base path of the collection; the configured file extension
                is appended unless the path already ends with it.
            options: StoreOptions or a plain mapping of option values.
            **overrides: Individual option values overriding `options`.
        """
        if not isinstance(options, StoreOptions):
            options = StoreOptions.from_mapping(options)
        self.options = options.with_overrides(**overrides)

        path = str(path)
        if not path.endswith(self.options.file_extension):
            path += self.options.file_extension
        self.path = Path(path)
        self.storage = JsonFileStorage(self.path, pretty=self.options.pretty)

        self._resolver: Resolver | None = None
        self._events: dict[str, list[Callable[..., Any]]] = {event: [] for event in EVENTS}
        self._macros: dict[str, Macro] = {}
        self._in_transaction = False
        self._buffer: Rows | None = None
        self._last_insert_id: str | None = None

    def __repr__(self) -> str:
        return f"Collection({str(self.path)!r})"

    # --- Configuration ---

    def set_resolver(self, resolver: Resolver | None) -> Collection:
        """Set a function applied to every record right before it is written."""
        self._resolver = resolver
        return self

    def on(self, event: str, callback: Callable[..., Any]) -> Collection:
        """Register a callback for a lifecycle event.

        Events and their arguments:
            inserting(pending: PathAccessor), inserted(record),
            updating(query, new_fields), updated(rows),
            deleting(query), deleted(rows), changed(data).
        """
        if event not in self._events:
            raise ValueError(f"Unknown event {event!r}; expected one of {', '.join(EVENTS)}")
        self._events[event].append(callback)
        return self

    def _fire(self, event: str, *args: Any) -> None:
        for callback in self._events[event]:
            callback(*args)

    # --- Macros ---

    def register_macro(self, name: str, macro: Macro) -> Collection:
        self._macros[name] = macro
        return self

    def has_macro(self, name: str) -> bool:
        return name in self._macros

    def get_macro(self, name: str) -> Macro | None:
        return self._macros.get(name)

    def call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Invoke macro `name` with a fresh query as its first argument."""
        if name not in self._macros:
            raise UndefinedMacroError(f"Undefined method or macro {name!r}")
        return self.query().call(name, *args, **kwargs)

    # --- Keys ---

    def generate_key(self) -> str:
        return generate_key(self.options.key_prefix, self.options.more_entropy)

    @property
    def last_insert_id(self) -> str | None:
        """Identifier of the most recently inserted record."""
        return self._last_insert_id

    # --- Transactions ---

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def begin(self) -> None:
        """Start buffering writes in memory."""
        logger.debug("Begin transaction on %s", self.path)
        self._in_transaction = True
        self._buffer = None

    def commit(self) -> bool:
        """Write the transaction buffer to disk and end the transaction.

        Returns:
            False if the write failed, True otherwise.
        """
        if not self._in_transaction:
            raise TransactionError("No active transaction to commit")
        buffer = self._buffer
        self._in_transaction = False
        self._buffer = None
        if buffer is None:
            logger.debug("Commit on %s with nothing to write", self.path)
            return True
        logger.debug("Commit on %s", self.path)
        return self.storage.save(buffer)

    def rollback(self) -> None:
        """Discard the transaction buffer and end the transaction."""
        if not self._in_transaction:
            raise TransactionError("No active transaction to roll back")
        logger.debug("Rollback on %s", self.path)
        self._in_transaction = False
        self._buffer = None

    def transaction(self, fn: Callable[[Collection], Any]) -> Any:
        """Run fn(self) inside a transaction and return its result.

        Commits when fn returns and rolls back when it raises. A call made
        while a transaction is already active just runs fn inside the outer
        transaction.
        """
        if self._in_transaction:
            return fn(self)

        self.begin()
        try:
            result = fn(self)
        except BaseException:
            self.rollback()
            raise
        self.commit()
        return result

    # --- Loading and persisting ---

    def load(self) -> Rows:
        """Return the current document map.

        Inside a transaction that has written, this is a copy of the buffer.
        """
        if self._in_transaction and self._buffer is not None:
            logger.debug("Loading %s from transaction buffer", self.path)
            return copy.deepcopy(self._buffer)
        return self.storage.load()

    def persist(self, data: Rows) -> bool:
        """Apply the resolver to every record and write the map.

        Returns:
            False if the filesystem rejected the write, True otherwise.

        Raises:
            MissingDirectoryError: If the collection's directory is missing.
        """
        if self._resolver is not None:
            data = {key: self._resolver(row) for key, row in data.items()}
        return self._save(data)

    def _save(self, data: Rows) -> bool:
        if self._in_transaction:
            self._buffer = data
            return True
        return self.storage.save(data)

    # --- Execution ---

    def execute(self, query: Query, query_type: QueryType, arg: Mapping[str, Any] | None = None) -> Any:
        """Run a terminal operation for query.

        Raises:
            CrossCollectionError: If query was built for another collection.
        """
        if query.collection is not self:
            raise CrossCollectionError("Query was built for a different collection")

        if query_type is QueryType.INSERT:
            return self._execute_insert(dict(arg or {}))
        if query_type is QueryType.UPDATE:
            return self._execute_update(query, dict(arg or {}))
        if query_type is QueryType.DELETE:
            return self._execute_delete(query)
        if query_type is QueryType.SAVE:
            return self._execute_save(query)
        return self._execute_get(query)

    def _execute_pipes(self, query: Query, data: Rows) -> Rows:
        rows = copy.deepcopy(data)
        for pipe in query.pipes:
            rows = pipe.process(rows)
        return rows

    def _execute_get(self, query: Query) -> list[Record]:
        return list(self._execute_pipes(query, self.load()).values())

    def _execute_insert(self, new_fields: Record) -> Record | None:
        data = self.load()
        key = new_fields.get(self.KEY_ID)
        if key is None:
            key = self.generate_key()
        key = str(key)
        self._last_insert_id = key

        pending = PathAccessor({}).merge(new_fields)
        self._fire("inserting", pending)

        record = {self.KEY_ID: key}
        record.update(pending.record)
        record[self.KEY_ID] = key
        data[key] = record
        if not self.persist(data):
            return None

        self._fire("inserted", copy.deepcopy(record))
        self._fire("changed", data)
        return copy.deepcopy(record)

    def _execute_update(self, query: Query, new_fields: Record) -> int:
        self._fire("updating", query, new_fields)
        data = self.load()
        rows = self._execute_pipes(query, data)
        if not rows:
            return 0

        updated = []
        for key in rows:
            record = PathAccessor(data[key]).merge(new_fields).record
            new_id = str(record.get(self.KEY_ID, key))
            if self.KEY_ID in record:
                record[self.KEY_ID] = new_id
            if new_id != key:
                del data[key]
            data[new_id] = record
            updated.append(record)

        if not self.persist(data):
            return 0
        self._fire("updated", copy.deepcopy(updated))
        self._fire("changed", data)
        return len(updated)

    def _execute_delete(self, query: Query) -> int:
        self._fire("deleting", query)
        data = self.load()
        rows = self._execute_pipes(query, data)
        if not rows:
            return 0

        for key in rows:
            del data[key]
        if not self.persist(data):
            return 0
        self._fire("deleted", list(rows.values()))
        self._fire("changed", data)
        return len(rows)

    def _execute_save(self, query: Query) -> int:
        data = self.load()
        rows = self._execute_pipes(query, data)

        for key, row in rows.items():
            # Pipeline keys are the identifiers rows were loaded under, so a
            # produced identifier that differs from the key is a rename.
            row.setdefault(self.KEY_ID, key)
            new_id = row[self.KEY_ID] = str(row[self.KEY_ID])
            if new_id != key:
                data.pop(key, None)
            data[new_id] = row

        if not self.persist(data):
            return 0
        return len(rows)

    # --- Direct operations ---

    def query(self) -> Query:
        return Query(self)

    def all(self) -> list[Record]:
        """Every record in insertion order."""
        return list(self.load().values())

    def find(self, key: str) -> Record | None:
        return self.load().get(str(key))

    def insert(self, new_fields: Mapping[str, Any]) -> Record | None:
        """Insert a record. Returns the stored record, or None if the write failed."""
        return self.query()._execute(QueryType.INSERT, dict(new_fields))

    def insert_many(self, records: Sequence[Mapping[str, Any]]) -> list[Record | None]:
        """Insert several records within a single transaction."""

        def insert_all(collection: Collection) -> list[Record | None]:
            return [collection.insert(fields) for fields in records]

        return self.transaction(insert_all)

    def truncate(self) -> bool:
        """Remove every record."""
        return self.persist({})

    # --- Query shortcuts ---

    def where(self, key: str | RowPredicate, *args: Any) -> Query:
        return self.query().where(key, *args)

    def or_where(self, key: str | RowPredicate, *args: Any) -> Query:
        return self.query().or_where(key, *args)

    def filter(self, predicate: RowPredicate) -> Query:
        return self.query().filter(predicate)

    def map(self, mapper: RowMapper) -> Query:
        return self.query().map(mapper)

    def select(self, columns: Sequence[str] | str) -> Query:
        return self.query().select(columns)

    def sort_by(self, key: str | RowMapper, direction: str = "asc") -> Query:
        return self.query().sort_by(key, direction)

    def skip(self, offset: int) -> Query:
        return self.query().skip(offset)

    def take(self, limit: int, offset: int = 0) -> Query:
        return self.query().take(limit, offset)

    def with_one(self, relation: Collection | Query, alias: str, other_key: str, operator: str = "=", this_key: str = KEY_ID) -> Query:
        return self.query().with_one(relation, alias, other_key, operator, this_key)

    def with_many(self, relation: Collection | Query, alias: str, other_key: str, operator: str = "=", this_key: str = KEY_ID) -> Query:
        return self.query().with_many(relation, alias, other_key, operator, this_key)

    def get(self, select: Sequence[str] | None = None) -> list[Record]:
        return self.query().get(select)

    def first(self, select: Sequence[str] | None = None) -> Record | None:
        return self.query().first(select)

    def update(self, new_fields: Mapping[str, Any]) -> int:
        """Merge new_fields into every record."""
        return self.query().update(new_fields)

    def delete(self) -> int:
        """Delete every record."""
        return self.query().delete()

    def count(self) -> int:
        return self.query().count()

    def sum(self, key: str) -> Any:
        return self.query().sum(key)

    def avg(self, key: str) -> float | None:
        return self.query().avg(key)

    def min(self, key: str) -> Any:
        return self.query().min(key)

    def max(self, key: str) -> Any:
        return self.query().max(key)

    def lists(self, key: str, result_key: str | None = None) -> list[Any] | dict[Any, Any]:
        return self.query().lists(key, result_key)

    def pluck(self, key: str, result_key: str | None = None) -> list[Any] | dict[Any, Any]:
        return self.query().pluck(key, result_key)
