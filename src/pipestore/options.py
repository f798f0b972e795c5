"""Collection configuration."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping


@dataclass(frozen=True)
class StoreOptions:
    """Options controlling how a collection is stored on disk.

    Attributes:
        file_extension: Suffix appended to the collection's base path.
        pretty: Write indented JSON when True, compact JSON otherwise.
        key_prefix: Prefix for generated record identifiers.
        more_entropy: Append a random suffix to generated identifiers.
    """

    file_extension: str = ".json"
    pretty: bool = True
    key_prefix: str = ""
    more_entropy: bool = False

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None = None) -> StoreOptions:
        """Build options from a plain mapping, rejecting unknown keys."""
        if not mapping:
            return cls()
        known = {f.name for f in fields(cls)}
        for key in mapping:
            if key not in known:
                raise ValueError(f"Unknown store option: {key!r}")
        return cls(**dict(mapping))

    def with_overrides(self, **overrides: Any) -> StoreOptions:
        """Return a copy with the given options replaced."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        for key in overrides:
            if key not in known:
                raise ValueError(f"Unknown store option: {key!r}")
        return replace(self, **overrides)
