"""Tests for executing PSQ statements."""

import pytest

from pipestore.database import Database
from pipestore.errors import InvalidFilterError
from pipestore.parsing.query_parser import QueryParser
from pipestore.query_executor import (
    DeleteResult,
    DropResult,
    InsertResult,
    QueryExecutor,
    QueryResult,
    UpdateResult,
    UseResult,
    compile_where,
)
from pipestore.path_access import PathAccessor


@pytest.fixture
def run(tmp_path, users_path):
    """Parse and execute one statement against the seeded data directory."""
    parser = QueryParser()
    executor = QueryExecutor(Database(tmp_path))

    def _run(text: str) -> QueryResult:
        return executor.execute(parser.parse(text))

    return _run


class TestSelect:
    """Tests for FROM queries."""

    def test_all_columns(self, run):
        result = run("from users")
        assert result.columns == ["_id", "email", "name", "score"]
        assert [r["name"] for r in result.rows] == ["A", "B", "C"]

    def test_fields_with_alias(self, run):
        result = run("from users select name as who, score where score > 79")
        assert result.columns == ["who", "score"]
        assert result.rows == [{"who": "A", "score": 80}, {"who": "C", "score": 95}]

    def test_where_precedence_is_kept(self, run):
        """The text condition is one filter, so AND binds tighter than OR."""
        result = run('from users select name where name = "C" or name = "A" and score = 76')
        assert result.rows == [{"name": "C"}]

    def test_not_and_parentheses(self, run):
        result = run('from users select name where not (name = "A" or name = "B")')
        assert result.rows == [{"name": "C"}]

    def test_operators(self, run):
        assert len(run("from users where score in [76, 95]").rows) == 2
        assert len(run("from users where score not in [76, 95]").rows) == 1
        assert len(run("from users where score between 76 and 80").rows) == 2
        assert len(run("from users where email matches /^B@/i").rows) == 1

    def test_sort_by_multiple_keys(self, run):
        run('insert into users {_id: "d", name: "D", score: 80}')
        result = run("from users select name sort by score desc, name desc")
        assert [r["name"] for r in result.rows] == ["C", "D", "A", "B"]

    def test_offset_and_limit(self, run):
        result = run("from users select name sort by name offset 1 limit 1")
        assert result.rows == [{"name": "B"}]
        assert run("from users offset 2").rows[0]["name"] == "C"
        assert run("from users limit 0").rows == []

    def test_aggregates(self, run):
        result = run("from users select count(), sum(score), avg(score) as mean, min(score), max(score) where score > 76")
        assert result.columns == ["count()", "sum(score)", "mean", "min(score)", "max(score)"]
        assert result.rows == [{"count()": 2, "sum(score)": 175, "mean": 87.5, "min(score)": 80, "max(score)": 95}]

    def test_mixed_aggregate_rejected(self, run):
        with pytest.raises(ValueError):
            run("from users select name, count()")

    def test_unknown_collection_is_empty(self, run):
        result = run("from nothing")
        assert result.rows == []


class TestChanges:
    """Tests for INSERT, UPDATE, DELETE, TRUNCATE and DROP."""

    def test_insert(self, run):
        result = run('insert into users {_id: "d", name: "D", address: {city: "Oslo"}}')
        assert isinstance(result, InsertResult)
        assert result.ids == ["d"]
        assert result.message == "Inserted 1 record into users"
        assert run("from users select address.city where name = 'D'").rows == [{"address.city": "Oslo"}]

    def test_insert_many(self, run):
        result = run("insert into users [{name: 'D'}, {name: 'E'}]")
        assert len(result.ids) == 2
        assert result.message == "Inserted 2 records into users"
        assert len(run("from users").rows) == 5

    def test_update(self, run):
        result = run("update users set score = 90, level.name = 'gold' where score >= 80")
        assert isinstance(result, UpdateResult)
        assert result.updated_count == 2
        rows = run("from users select name, score, level.name as level").rows
        assert rows == [
            {"name": "A", "score": 90, "level": "gold"},
            {"name": "B", "score": 76, "level": None},
            {"name": "C", "score": 90, "level": "gold"},
        ]

    def test_delete(self, run):
        result = run("delete from users where score >= 80")
        assert isinstance(result, DeleteResult)
        assert result.deleted_count == 2
        assert [r["name"] for r in run("from users").rows] == ["B"]

    def test_truncate(self, run):
        assert run("truncate users").message == "Truncated users"
        assert run("from users").rows == []

    def test_show_and_drop(self, run):
        run("insert into orders {n: 1}")
        assert run("show collections").rows == [
            {"collection": "orders", "count": 1},
            {"collection": "users", "count": 3},
        ]
        result = run("drop orders")
        assert isinstance(result, DropResult)
        assert result.existed
        assert [r["collection"] for r in run("show collections").rows] == ["users"]

    def test_use(self, run):
        result = run('use "/tmp/elsewhere"')
        assert isinstance(result, UseResult)
        assert result.path == "/tmp/elsewhere"


class TestCompileWhere:
    """Tests for turning condition trees into predicates."""

    def test_invalid_regex(self):
        parser = QueryParser()
        query = parser.parse("from u where name matches /(/")
        with pytest.raises(InvalidFilterError):
            compile_where(query.where)

    def test_predicate(self):
        parser = QueryParser()
        predicate = compile_where(parser.parse("from u where a.b > 1 and not c = 2").where)
        assert predicate(PathAccessor({"a": {"b": 2}, "c": 3}))
        assert not predicate(PathAccessor({"a": {"b": 2}, "c": 2}))
        assert not predicate(PathAccessor({"a": {"b": 0}}))
