"""Exceptions raised by pipestore."""

from __future__ import annotations


class PipeStoreError(Exception):
    """Base class for all pipestore errors."""


class InvalidFormatError(PipeStoreError, ValueError):
    """A collection file could not be decoded as a document map."""


class MissingDirectoryError(PipeStoreError, FileNotFoundError):
    """The directory holding a collection file does not exist."""


class CrossCollectionError(PipeStoreError, TypeError):
    """A query was executed against a collection other than its own."""


class InvalidFilterError(PipeStoreError, ValueError):
    """Unsupported operator or combinator, or malformed operator arguments."""


class InvalidSortDirectionError(PipeStoreError, ValueError):
    """Sort direction is neither 'asc' nor 'desc'."""


class InvalidRelationError(PipeStoreError, TypeError):
    """A join target is neither a Collection nor a Query."""


class UndefinedMacroError(PipeStoreError, AttributeError):
    """No macro is registered under the requested name."""


class TransactionError(PipeStoreError, RuntimeError):
    """Commit or rollback was requested while no transaction is active."""
