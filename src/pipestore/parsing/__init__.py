"""Parsing module for the PSQ query language."""

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

__all__ = [
    "CompoundCondition",
    "Condition",
    "DeleteQuery",
    "DropQuery",
    "InsertQuery",
    "NotCondition",
    "QueryLexer",
    "QueryParser",
    "SelectField",
    "SelectQuery",
    "ShowCollectionsQuery",
    "SortKey",
    "TruncateQuery",
    "UpdateQuery",
    "UseQuery",
]
