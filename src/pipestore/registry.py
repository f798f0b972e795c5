"""Process-wide registry of open collections and global macros."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pipestore.collection import Collection, Macro
from pipestore.options import StoreOptions

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """Hands out one Collection per path.

    Macros registered here are copied into every collection the registry
    opens, including collections that were opened before the macro was
    registered.
    """

    def __init__(self) -> None:
        self._collections: dict[str, Collection] = {}
        self._macros: dict[str, Macro] = {}

    @staticmethod
    def _key(path: Path | str, options: StoreOptions) -> str:
        path = str(path)
        if not path.endswith(options.file_extension):
            path += options.file_extension
        return os.path.abspath(path)

    def open(self, path: Path | str, options: StoreOptions | None = None, **overrides: Any) -> Collection:
        """Return the collection for path, creating it on first use.

        Options only take effect when the collection is first opened.
        """
        if options is None:
            options = StoreOptions()
        options = options.with_overrides(**overrides)
        key = self._key(path, options)

        collection = self._collections.get(key)
        if collection is None:
            logger.debug("Opening collection %s", key)
            collection = Collection(path, options)
            for name, macro in self._macros.items():
                collection.register_macro(name, macro)
            self._collections[key] = collection
        return collection

    def register_macro(self, name: str, macro: Macro) -> None:
        self._macros[name] = macro
        for collection in self._collections.values():
            collection.register_macro(name, macro)

    def has_macro(self, name: str) -> bool:
        return name in self._macros

    def forget(self, path: Path | str, options: StoreOptions | None = None) -> None:
        """Drop the cached collection for path, if any."""
        self._collections.pop(self._key(path, options or StoreOptions()), None)

    def clear(self) -> None:
        """Drop every cached collection and global macro."""
        self._collections.clear()
        self._macros.clear()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self._key(path, StoreOptions()) in self._collections

    def __len__(self) -> int:
        return len(self._collections)


_registry = CollectionRegistry()


def get_registry() -> CollectionRegistry:
    return _registry


def open_collection(path: Path | str, options: StoreOptions | None = None, **overrides: Any) -> Collection:
    """Open a collection through the process-wide registry."""
    return _registry.open(path, options, **overrides)


def register_macro(name: str, macro: Macro) -> None:
    """Register a macro available on every collection opened through the registry."""
    _registry.register_macro(name, macro)


def forget(path: Path | str, options: StoreOptions | None = None) -> None:
    _registry.forget(path, options)


def clear() -> None:
    _registry.clear()
