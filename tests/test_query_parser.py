"""Tests for the PSQ query parser."""

import pytest

from pipestore.parsing.query_lexer import QueryLexer
from pipestore.parsing.query_parser import (
    CompoundCondition,
    Condition,
    DeleteQuery,
    DropQuery,
    InsertQuery,
    NotCondition,
    QueryParser,
    SelectField,
    SelectQuery,
    ShowCollectionsQuery,
    SortKey,
    TruncateQuery,
    UpdateQuery,
    UseQuery,
)


@pytest.fixture(scope="module")
def parser():
    return QueryParser()


class TestQueryLexer:
    """Tests for the query lexer."""

    def setup_method(self):
        self.lexer = QueryLexer()
        self.lexer.build()

    def test_tokenize_select(self):
        """Test tokenizing a select query."""
        tokens = self.lexer.tokenize("from users select name, age")
        token_types = [t.type for t in tokens]

        assert token_types == ["FROM", "IDENTIFIER", "SELECT", "IDENTIFIER", "COMMA", "IDENTIFIER"]

    def test_tokenize_where(self):
        """Test tokenizing a where clause."""
        tokens = self.lexer.tokenize("from users where age >= 18")
        token_types = [t.type for t in tokens]

        assert token_types == ["FROM", "IDENTIFIER", "WHERE", "IDENTIFIER", "GTE", "INTEGER"]

    def test_keywords_case_insensitive(self):
        tokens = self.lexer.tokenize("FROM users WHERE x NOT IN []")
        assert [t.type for t in tokens] == ["FROM", "IDENTIFIER", "WHERE", "IDENTIFIER", "NOT", "IN", "LBRACKET", "RBRACKET"]

    def test_regex_after_matches(self):
        tokens = self.lexer.tokenize("name matches /^a\\/b/i and x = 1")
        assert tokens[2].type == "REGEX"
        assert tokens[2].value == "(?i)^a/b"
        assert tokens[3].type == "AND"

    def test_strings(self):
        tokens = self.lexer.tokenize("\"a\\\"b\" 'c;d' \"line\\nbreak\"")
        assert [t.value for t in tokens] == ['a"b', "c;d", "line\nbreak"]

    def test_numbers(self):
        tokens = self.lexer.tokenize("1 2.5 1e3 -4")
        assert [t.type for t in tokens] == ["INTEGER", "FLOAT", "FLOAT", "MINUS", "INTEGER"]
        assert tokens[2].value == 1000.0

    def test_comments_are_skipped(self):
        tokens = self.lexer.tokenize("from users -- everything\n")
        assert [t.type for t in tokens] == ["FROM", "IDENTIFIER"]

    def test_backtick_identifier(self):
        tokens = self.lexer.tokenize("`set`")
        assert tokens[0].type == "IDENTIFIER"
        assert tokens[0].value == "set"

    def test_illegal_character(self):
        with pytest.raises(SyntaxError):
            self.lexer.tokenize("from users where a # 1")


class TestSelect:
    """Tests for FROM queries."""

    def test_from_only(self, parser):
        query = parser.parse("from users;")
        assert query == SelectQuery(collection="users")

    def test_select_star(self, parser):
        assert parser.parse("from users select *").fields == []

    def test_select_fields_and_aliases(self, parser):
        query = parser.parse("from users select name, address.city as city, tags.0")
        assert query.fields == [
            SelectField(path="name"),
            SelectField(path="address.city", alias="city"),
            SelectField(path="tags.0"),
        ]

    def test_aggregates(self, parser):
        query = parser.parse("from users select count(), avg(score) as mean, max(score)")
        assert query.fields == [
            SelectField(path="*", aggregate="count"),
            SelectField(path="score", alias="mean", aggregate="avg"),
            SelectField(path="score", aggregate="max"),
        ]
        assert query.is_aggregate
        assert [f.label for f in query.fields] == ["count()", "mean", "max(score)"]

    def test_unknown_aggregate(self, parser):
        with pytest.raises(ValueError):
            parser.parse("from users select median(score)")

    def test_sort_offset_limit(self, parser):
        query = parser.parse("from users sort by score desc, name offset 5 limit 10")
        assert query.sort_by == [SortKey("score", "desc"), SortKey("name", "asc")]
        assert query.offset == 5
        assert query.limit == 10

    def test_quoted_collection_name(self, parser):
        assert parser.parse('from "my users"').collection == "my users"


class TestConditions:
    """Tests for WHERE conditions."""

    def test_comparison(self, parser):
        query = parser.parse('from users where name != "Ann"')
        assert query.where == Condition(field="name", operator="!=", value="Ann")

    def test_and_binds_tighter_than_or(self, parser):
        query = parser.parse("from users where a = 1 or b = 2 and c = 3")
        assert query.where == CompoundCondition(
            left=Condition("a", "=", 1),
            operator="or",
            right=CompoundCondition(Condition("b", "=", 2), "and", Condition("c", "=", 3)),
        )

    def test_parentheses(self, parser):
        query = parser.parse("from users where (a = 1 or b = 2) and c = 3")
        assert query.where.operator == "and"
        assert query.where.left.operator == "or"

    def test_not(self, parser):
        query = parser.parse("from users where not a = 1 and b = 2")
        assert query.where == CompoundCondition(NotCondition(Condition("a", "=", 1)), "and", Condition("b", "=", 2))

    def test_in_and_not_in(self, parser):
        assert parser.parse("from u where x in [1, 2]").where == Condition("x", "in", [1, 2])
        assert parser.parse('from u where x not in ["a"]').where == Condition("x", "not in", ["a"])

    def test_between(self, parser):
        query = parser.parse("from u where score between 10 and 20 and name = 'x'")
        assert query.where == CompoundCondition(
            Condition("score", "between", [10, 20]), "and", Condition("name", "=", "x")
        )

    def test_matches(self, parser):
        assert parser.parse("from u where email matches /@example\\.com$/").where == Condition(
            "email", "match", "@example\\.com$"
        )

    def test_literals(self, parser):
        assert parser.parse("from u where x = -2.5").where.value == -2.5
        assert parser.parse("from u where x = true").where.value is True
        assert parser.parse("from u where x = null").where.value is None

    def test_nested_path(self, parser):
        assert parser.parse("from u where address.city = 'Oslo'").where.field == "address.city"


class TestChanges:
    """Tests for INSERT, UPDATE and DELETE."""

    def test_insert(self, parser):
        query = parser.parse('insert into users {name: "Ann", "age": 30, tags: ["a"], address: {city: "Oslo"}, x: null}')
        assert query == InsertQuery(
            collection="users",
            records=[{"name": "Ann", "age": 30, "tags": ["a"], "address": {"city": "Oslo"}, "x": None}],
        )

    def test_insert_many(self, parser):
        query = parser.parse("insert into users [{n: 1}, {n: 2}]")
        assert query.records == [{"n": 1}, {"n": 2}]

    def test_insert_empty_object(self, parser):
        assert parser.parse("insert into users {}").records == [{}]

    def test_update(self, parser):
        query = parser.parse("update users set score = 90, address.city = 'Rome' where score >= 80")
        assert query == UpdateQuery(
            collection="users",
            assignments={"score": 90, "address.city": "Rome"},
            where=Condition("score", ">=", 80),
        )

    def test_delete(self, parser):
        assert parser.parse("delete from users") == DeleteQuery(collection="users")
        assert parser.parse("delete from users where x = 1").where == Condition("x", "=", 1)


class TestCommands:
    """Tests for the remaining statements."""

    def test_show_collections(self, parser):
        assert isinstance(parser.parse("show collections"), ShowCollectionsQuery)

    def test_truncate_and_drop(self, parser):
        assert parser.parse("truncate users") == TruncateQuery("users")
        assert parser.parse("drop users;") == DropQuery("users")

    def test_use(self, parser):
        assert parser.parse('use "/tmp/data"') == UseQuery("/tmp/data")
        assert parser.parse("use data") == UseQuery("data")

    def test_syntax_error(self, parser):
        with pytest.raises(SyntaxError):
            parser.parse("from users where")
        with pytest.raises(SyntaxError):
            parser.parse("select name from users")

    def test_parser_recovers_after_error(self, parser):
        with pytest.raises(SyntaxError):
            parser.parse("from users where name matches")
        assert parser.parse("from users where a = 1").where == Condition("a", "=", 1)
