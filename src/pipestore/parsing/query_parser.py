"""Parser for the PSQ (Pipestore Query) language."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from pipestore.parsing.query_lexer import QueryLexer

AGGREGATES = ("count", "sum", "avg", "min", "max")


@dataclass
class SelectField:
    """A field in a SELECT clause."""

    path: str  # Dotted path like "address.city", or "*" for count()
    alias: str | None = None
    aggregate: str | None = None  # count, sum, avg, min, max

    @property
    def label(self) -> str:
        """Column name shown for this field."""
        if self.alias:
            return self.alias
        if self.aggregate:
            return f"{self.aggregate}({'' if self.path == '*' else self.path})"
        return self.path


@dataclass
class Condition:
    """A comparison in a WHERE clause."""

    field: str
    operator: str  # =, !=, <, <=, >, >=, in, not in, match, between
    value: Any


@dataclass
class NotCondition:
    """A negated condition."""

    operand: Condition | NotCondition | CompoundCondition


@dataclass
class CompoundCondition:
    """A compound condition (AND/OR)."""

    left: Condition | NotCondition | CompoundCondition
    operator: str  # and, or
    right: Condition | NotCondition | CompoundCondition


AnyCondition = Condition | NotCondition | CompoundCondition


@dataclass
class SortKey:
    """One key of a SORT BY clause."""

    path: str
    direction: str = "asc"


@dataclass
class SelectQuery:
    """A FROM ... query."""

    collection: str
    fields: list[SelectField] = field(default_factory=list)
    where: AnyCondition | None = None
    sort_by: list[SortKey] = field(default_factory=list)
    offset: int = 0
    limit: int | None = None

    @property
    def is_aggregate(self) -> bool:
        return any(f.aggregate for f in self.fields)


@dataclass
class InsertQuery:
    """An INSERT INTO query with one or more records."""

    collection: str
    records: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class UpdateQuery:
    """An UPDATE ... SET query."""

    collection: str
    assignments: dict[str, Any] = field(default_factory=dict)
    where: AnyCondition | None = None


@dataclass
class DeleteQuery:
    """A DELETE FROM query."""

    collection: str
    where: AnyCondition | None = None


@dataclass
class ShowCollectionsQuery:
    """A SHOW COLLECTIONS query."""

    pass


@dataclass
class TruncateQuery:
    """A TRUNCATE query."""

    collection: str


@dataclass
class DropQuery:
    """A DROP query removing a collection file."""

    collection: str


@dataclass
class UseQuery:
    """A USE query to select a data directory."""

    path: str


Query = (
    SelectQuery
    | InsertQuery
    | UpdateQuery
    | DeleteQuery
    | ShowCollectionsQuery
    | TruncateQuery
    | DropQuery
    | UseQuery
)


class QueryParser:
    """Parser for PSQ statements."""

    tokens = QueryLexer.tokens

    # Operator precedence
    precedence = (
        ("left", "OR"),
        ("left", "AND"),
        ("right", "NOT"),
    )

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : query SEMICOLON
                     | query"""
        p[0] = p[1]

    def p_query_select(self, p: yacc.YaccProduction) -> None:
        """query : FROM name select_clause where_clause sort_clause offset_clause limit_clause"""
        p[0] = SelectQuery(
            collection=p[2],
            fields=p[3],
            where=p[4],
            sort_by=p[5],
            offset=p[6],
            limit=p[7],
        )

    def p_query_insert(self, p: yacc.YaccProduction) -> None:
        """query : INSERT INTO name object_literal"""
        p[0] = InsertQuery(collection=p[3], records=[p[4]])

    def p_query_insert_many(self, p: yacc.YaccProduction) -> None:
        """query : INSERT INTO name LBRACKET object_list RBRACKET"""
        p[0] = InsertQuery(collection=p[3], records=p[5])

    def p_query_update(self, p: yacc.YaccProduction) -> None:
        """query : UPDATE name SET assignment_list where_clause"""
        p[0] = UpdateQuery(collection=p[2], assignments=dict(p[4]), where=p[5])

    def p_query_delete(self, p: yacc.YaccProduction) -> None:
        """query : DELETE FROM name where_clause"""
        p[0] = DeleteQuery(collection=p[3], where=p[4])

    def p_query_show_collections(self, p: yacc.YaccProduction) -> None:
        """query : SHOW COLLECTIONS"""
        p[0] = ShowCollectionsQuery()

    def p_query_truncate(self, p: yacc.YaccProduction) -> None:
        """query : TRUNCATE name"""
        p[0] = TruncateQuery(collection=p[2])

    def p_query_drop(self, p: yacc.YaccProduction) -> None:
        """query : DROP name"""
        p[0] = DropQuery(collection=p[2])

    def p_query_use(self, p: yacc.YaccProduction) -> None:
        """query : USE STRING
                 | USE IDENTIFIER"""
        p[0] = UseQuery(path=p[2])

    def p_name(self, p: yacc.YaccProduction) -> None:
        """name : IDENTIFIER
                | STRING"""
        p[0] = p[1]

    # --- SELECT clause ---

    def p_select_clause_empty(self, p: yacc.YaccProduction) -> None:
        """select_clause : """
        p[0] = []

    def p_select_clause_star(self, p: yacc.YaccProduction) -> None:
        """select_clause : SELECT STAR"""
        p[0] = []

    def p_select_clause(self, p: yacc.YaccProduction) -> None:
        """select_clause : SELECT select_field_list"""
        p[0] = p[2]

    def p_select_field_list_single(self, p: yacc.YaccProduction) -> None:
        """select_field_list : select_field"""
        p[0] = [p[1]]

    def p_select_field_list_multiple(self, p: yacc.YaccProduction) -> None:
        """select_field_list : select_field_list COMMA select_field"""
        p[0] = p[1] + [p[3]]

    def p_select_field_aliased(self, p: yacc.YaccProduction) -> None:
        """select_field : select_expr AS IDENTIFIER"""
        p[1].alias = p[3]
        p[0] = p[1]

    def p_select_field(self, p: yacc.YaccProduction) -> None:
        """select_field : select_expr"""
        p[0] = p[1]

    def p_select_expr_path(self, p: yacc.YaccProduction) -> None:
        """select_expr : field_path"""
        p[0] = SelectField(path=p[1])

    def p_select_expr_aggregate_empty(self, p: yacc.YaccProduction) -> None:
        """select_expr : IDENTIFIER LPAREN RPAREN
                       | IDENTIFIER LPAREN STAR RPAREN"""
        name = p[1].lower()
        if name != "count":
            raise ValueError(f"{p[1]}() needs a field argument")
        p[0] = SelectField(path="*", aggregate="count")

    def p_select_expr_aggregate(self, p: yacc.YaccProduction) -> None:
        """select_expr : IDENTIFIER LPAREN field_path RPAREN"""
        name = p[1].lower()
        if name not in AGGREGATES:
            raise ValueError(f"Unknown aggregate function '{p[1]}'")
        p[0] = SelectField(path=p[3], aggregate=name)

    def p_field_path_single(self, p: yacc.YaccProduction) -> None:
        """field_path : IDENTIFIER"""
        p[0] = p[1]

    def p_field_path_dotted(self, p: yacc.YaccProduction) -> None:
        """field_path : field_path DOT IDENTIFIER
                      | field_path DOT INTEGER"""
        p[0] = f"{p[1]}.{p[3]}"

    # --- WHERE clause ---

    def p_where_clause_empty(self, p: yacc.YaccProduction) -> None:
        """where_clause : """
        p[0] = None

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE condition"""
        p[0] = p[2]

    def p_condition_comparison(self, p: yacc.YaccProduction) -> None:
        """condition : field_path EQ value
                     | field_path NEQ value
                     | field_path LT value
                     | field_path LTE value
                     | field_path GT value
                     | field_path GTE value"""
        p[0] = Condition(field=p[1], operator=p[2], value=p[3])

    def p_condition_in(self, p: yacc.YaccProduction) -> None:
        """condition : field_path IN array_literal"""
        p[0] = Condition(field=p[1], operator="in", value=p[3])

    def p_condition_not_in(self, p: yacc.YaccProduction) -> None:
        """condition : field_path NOT IN array_literal"""
        p[0] = Condition(field=p[1], operator="not in", value=p[4])

    def p_condition_matches(self, p: yacc.YaccProduction) -> None:
        """condition : field_path MATCHES REGEX"""
        p[0] = Condition(field=p[1], operator="match", value=p[3])

    def p_condition_between(self, p: yacc.YaccProduction) -> None:
        """condition : field_path BETWEEN value AND value"""
        p[0] = Condition(field=p[1], operator="between", value=[p[3], p[5]])

    def p_condition_not(self, p: yacc.YaccProduction) -> None:
        """condition : NOT condition"""
        p[0] = NotCondition(operand=p[2])

    def p_condition_and(self, p: yacc.YaccProduction) -> None:
        """condition : condition AND condition"""
        p[0] = CompoundCondition(left=p[1], operator="and", right=p[3])

    def p_condition_or(self, p: yacc.YaccProduction) -> None:
        """condition : condition OR condition"""
        p[0] = CompoundCondition(left=p[1], operator="or", right=p[3])

    def p_condition_paren(self, p: yacc.YaccProduction) -> None:
        """condition : LPAREN condition RPAREN"""
        p[0] = p[2]

    # --- SORT / OFFSET / LIMIT ---

    def p_sort_clause_empty(self, p: yacc.YaccProduction) -> None:
        """sort_clause : """
        p[0] = []

    def p_sort_clause(self, p: yacc.YaccProduction) -> None:
        """sort_clause : SORT BY sort_list"""
        p[0] = p[3]

    def p_sort_list_single(self, p: yacc.YaccProduction) -> None:
        """sort_list : sort_key"""
        p[0] = [p[1]]

    def p_sort_list_multiple(self, p: yacc.YaccProduction) -> None:
        """sort_list : sort_list COMMA sort_key"""
        p[0] = p[1] + [p[3]]

    def p_sort_key(self, p: yacc.YaccProduction) -> None:
        """sort_key : field_path
                    | field_path ASC
                    | field_path DESC"""
        direction = p[2].lower() if len(p) > 2 else "asc"
        p[0] = SortKey(path=p[1], direction=direction)

    def p_offset_clause_empty(self, p: yacc.YaccProduction) -> None:
        """offset_clause : """
        p[0] = 0

    def p_offset_clause(self, p: yacc.YaccProduction) -> None:
        """offset_clause : OFFSET INTEGER"""
        p[0] = p[2]

    def p_limit_clause_empty(self, p: yacc.YaccProduction) -> None:
        """limit_clause : """
        p[0] = None

    def p_limit_clause(self, p: yacc.YaccProduction) -> None:
        """limit_clause : LIMIT INTEGER"""
        p[0] = p[2]

    # --- UPDATE assignments ---

    def p_assignment_list_single(self, p: yacc.YaccProduction) -> None:
        """assignment_list : assignment"""
        p[0] = [p[1]]

    def p_assignment_list_multiple(self, p: yacc.YaccProduction) -> None:
        """assignment_list : assignment_list COMMA assignment"""
        p[0] = p[1] + [p[3]]

    def p_assignment(self, p: yacc.YaccProduction) -> None:
        """assignment : field_path EQ value"""
        p[0] = (p[1], p[3])

    # --- Literals ---

    def p_value_number(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER
                 | FLOAT
                 | STRING"""
        p[0] = p[1]

    def p_value_negative(self, p: yacc.YaccProduction) -> None:
        """value : MINUS INTEGER
                 | MINUS FLOAT"""
        p[0] = -p[2]

    def p_value_true(self, p: yacc.YaccProduction) -> None:
        """value : TRUE"""
        p[0] = True

    def p_value_false(self, p: yacc.YaccProduction) -> None:
        """value : FALSE"""
        p[0] = False

    def p_value_null(self, p: yacc.YaccProduction) -> None:
        """value : NULL"""
        p[0] = None

    def p_value_compound(self, p: yacc.YaccProduction) -> None:
        """value : array_literal
                 | object_literal"""
        p[0] = p[1]

    def p_array_literal_empty(self, p: yacc.YaccProduction) -> None:
        """array_literal : LBRACKET RBRACKET"""
        p[0] = []

    def p_array_literal(self, p: yacc.YaccProduction) -> None:
        """array_literal : LBRACKET value_list RBRACKET"""
        p[0] = p[2]

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_object_literal_empty(self, p: yacc.YaccProduction) -> None:
        """object_literal : LBRACE RBRACE"""
        p[0] = {}

    def p_object_literal(self, p: yacc.YaccProduction) -> None:
        """object_literal : LBRACE member_list RBRACE"""
        p[0] = dict(p[2])

    def p_object_list_single(self, p: yacc.YaccProduction) -> None:
        """object_list : object_literal"""
        p[0] = [p[1]]

    def p_object_list_multiple(self, p: yacc.YaccProduction) -> None:
        """object_list : object_list COMMA object_literal"""
        p[0] = p[1] + [p[3]]

    def p_member_list_single(self, p: yacc.YaccProduction) -> None:
        """member_list : member"""
        p[0] = [p[1]]

    def p_member_list_multiple(self, p: yacc.YaccProduction) -> None:
        """member_list : member_list COMMA member"""
        p[0] = p[1] + [p[3]]

    def p_member(self, p: yacc.YaccProduction) -> None:
        """member : IDENTIFIER COLON value
                  | STRING COLON value"""
        p[0] = (p[1], p[3])

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="statement", **kwargs)

    def parse(self, data: str) -> Query:
        """Parse a statement."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.lexer.lexer.begin("INITIAL")
        return self.parser.parse(data, lexer=self.lexer.lexer)
