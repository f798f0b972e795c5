"""Pipestore - a JSON file document store with lazily built query pipelines."""

import logging

from pipestore.collection import Collection
from pipestore.database import Database
from pipestore.errors import (
    CrossCollectionError,
    InvalidFilterError,
    InvalidFormatError,
    InvalidRelationError,
    InvalidSortDirectionError,
    MissingDirectoryError,
    PipeStoreError,
    TransactionError,
    UndefinedMacroError,
)
from pipestore.keys import generate_key
from pipestore.options import StoreOptions
from pipestore.path_access import PathAccessor
from pipestore.pipes import FilterPipe, LimiterPipe, MapperPipe, Pipe, SorterPipe
from pipestore.query import Query
from pipestore.registry import open_collection, register_macro

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Collection",
    "CrossCollectionError",
    "Database",
    "FilterPipe",
    "InvalidFilterError",
    "InvalidFormatError",
    "InvalidRelationError",
    "InvalidSortDirectionError",
    "LimiterPipe",
    "MapperPipe",
    "MissingDirectoryError",
    "PathAccessor",
    "Pipe",
    "PipeStoreError",
    "Query",
    "SorterPipe",
    "StoreOptions",
    "TransactionError",
    "UndefinedMacroError",
    "generate_key",
    "open_collection",
    "register_macro",
]

__version__ = "0.1.0"
