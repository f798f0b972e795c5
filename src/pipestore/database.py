"""A directory of collections."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from pipestore.collection import Collection
from pipestore.options import StoreOptions
from pipestore.registry import CollectionRegistry, get_registry

logger = logging.getLogger(__name__)


class Database:
    """Maps collection names to files inside one data directory."""

    def __init__(
        self,
        data_dir: Path | str,
        options: StoreOptions | Mapping[str, Any] | None = None,
        registry: CollectionRegistry | None = None,
    ) -> None:
        """Initialize the database.

        Args:
            data_dir: Directory holding the collection files. Created if missing.
            options: Store options applied to every collection.
            registry: Registry used to open collections; the process-wide
                one by default.
        """
        if not isinstance(options, StoreOptions):
            options = StoreOptions.from_mapping(options)
        self.data_dir = Path(data_dir)
        self.options = options
        self.registry = registry if registry is not None else get_registry()
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"Database({str(self.data_dir)!r})"

    def _base_path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid collection name: {name!r}")
        return self.data_dir / name

    def collection(self, name: str) -> Collection:
        """Return the collection called name, opening it if needed."""
        return self.registry.open(self._base_path(name), self.options)

    def list_collections(self) -> list[str]:
        """Names of the collections stored in the data directory."""
        extension = self.options.file_extension
        return sorted(
            path.name[: -len(extension)]
            for path in self.data_dir.iterdir()
            if path.is_file() and path.name.endswith(extension) and not path.name.startswith(".")
        )

    def has_collection(self, name: str) -> bool:
        return name in self.list_collections()

    def drop(self, name: str) -> bool:
        """Delete a collection's file. Returns whether it existed."""
        base = self._base_path(name)
        collection = self.registry.open(base, self.options)
        existed = collection.storage.delete()
        self.registry.forget(base, self.options)
        logger.debug("Dropped collection %s", name)
        return existed
