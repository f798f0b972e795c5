"""Dotted-path access to nested records."""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence

WILDCARD = "*"

FieldPath = str | Sequence[str]


def split_path(path: FieldPath) -> list[str]:
    """Split a dotted path into its segments."""
    if isinstance(path, str):
        return path.split(".")
    return [str(segment) for segment in path]


def _list_index(node: list[Any], segment: str) -> int | None:
    """Return segment as an index into node, or None if it is not one."""
    if not segment.isdigit():
        return None
    index = int(segment)
    if index < len(node):
        return index
    return None


def _child(node: Any, segment: str) -> tuple[bool, Any]:
    """Look up one segment below node. Returns (found, value)."""
    if isinstance(node, dict):
        if segment in node:
            return True, node[segment]
        return False, None
    if isinstance(node, list):
        index = _list_index(node, segment)
        if index is not None:
            return True, node[index]
    return False, None


def path_has(record: Mapping[str, Any], path: FieldPath) -> bool:
    """Check whether a (possibly dotted) path exists in record.

    A literal key containing dots takes precedence over the dotted walk.
    """
    if isinstance(path, str) and path in record:
        return True

    node: Any = record
    for segment in split_path(path):
        found, node = _child(node, segment)
        if not found:
            return False
    return True


def path_get(record: Mapping[str, Any], path: FieldPath | None = None, default: Any = None) -> Any:
    """Get the value at a (possibly dotted) path.

    Args:
        record: The record to read from.
        path: Plain key or dotted path. None returns the whole record.
        default: Returned when any segment is missing.
    """
    if path is None:
        return record
    if isinstance(path, str) and path in record:
        return record[path]

    node: Any = record
    for segment in split_path(path):
        found, node = _child(node, segment)
        if not found:
            return default
    return node


def _set(target: Any, segments: list[str], value: Any, overwrite: bool) -> Any:
    """Set value below target and return the (possibly replaced) target."""
    segment, rest = segments[0], segments[1:]

    if segment == WILDCARD:
        if not isinstance(target, (dict, list)):
            target = {}
        keys = list(range(len(target))) if isinstance(target, list) else list(target)
        if rest:
            for key in keys:
                target[key] = _set(target[key], rest, value, overwrite)
        elif overwrite:
            for key in keys:
                target[key] = value
        return target

    if isinstance(target, dict):
        if rest:
            target[segment] = _set(target.get(segment), rest, value, overwrite)
        elif overwrite or segment not in target:
            target[segment] = value
        return target

    if isinstance(target, list) and not segment.isdigit():
        # A named key turns the list into a mapping keyed by index
        target = {str(i): item for i, item in enumerate(target)}
        return _set(target, segments, value, overwrite)

    if isinstance(target, list):
        index = int(segment)
        if index == len(target):
            target.append(_set({}, rest, value, overwrite) if rest else value)
        elif index > len(target):
            raise IndexError(f"Index {index} out of range [0, {len(target)}]")
        elif rest:
            target[index] = _set(target[index], rest, value, overwrite)
        elif overwrite:
            target[index] = value
        return target

    # Scalars and None are replaced by a fresh mapping
    target = {}
    if rest:
        target[segment] = _set(None, rest, value, overwrite)
    else:
        target[segment] = value
    return target


def path_set(record: dict[str, Any], path: FieldPath, value: Any, overwrite: bool = True) -> dict[str, Any]:
    """Set a value at a (possibly dotted) path, creating intermediate mappings.

    A '*' segment applies the write to every element of the list or mapping
    at that level.

    Args:
        record: The record to modify in place.
        path: Plain key or dotted path.
        value: Value to store.
        overwrite: If False, existing leaf values are left untouched.

    Returns:
        The modified record.
    """
    return _set(record, split_path(path), value, overwrite)


def path_remove(record: dict[str, Any], path: FieldPath) -> None:
    """Remove the value at a (possibly dotted) path.

    Missing intermediate mappings are created on the way down, the same way
    path_set creates them.
    """
    segments = split_path(path)
    node: Any = record
    for segment in segments[:-1]:
        if isinstance(node, list):
            index = _list_index(node, segment)
            if index is None:
                return
            node = node[index]
            continue
        child = node.get(segment)
        if not isinstance(child, (dict, list)):
            child = {}
            node[segment] = child
        node = child

    last = segments[-1]
    if isinstance(node, dict):
        node.pop(last, None)
    elif isinstance(node, list):
        index = _list_index(node, last)
        if index is not None:
            del node[index]


class PathAccessor:
    """Wraps a record and gives dotted-path access to its fields.

    Subscription uses the same semantics as get/set/has/remove, so
    ``row["address.city"]`` reads a nested field and returns None when the
    field is missing. The wrapped dict is shared, not copied.
    """

    __slots__ = ("_record",)

    def __init__(self, record: Mapping[str, Any] | PathAccessor | None = None) -> None:
        if isinstance(record, PathAccessor):
            record = record.record
        if record is None:
            record = {}
        if not isinstance(record, dict):
            if not isinstance(record, Mapping):
                raise TypeError(f"Record must be a mapping, got {type(record).__name__}")
            record = dict(record)
        self._record: dict[str, Any] = record

    @property
    def record(self) -> dict[str, Any]:
        """The wrapped record."""
        return self._record

    def to_dict(self) -> dict[str, Any]:
        return self._record

    def has(self, path: FieldPath) -> bool:
        return path_has(self._record, path)

    def get(self, path: FieldPath | None = None, default: Any = None) -> Any:
        return path_get(self._record, path, default)

    def set(self, path: FieldPath, value: Any, overwrite: bool = True) -> PathAccessor:
        path_set(self._record, path, value, overwrite)
        return self

    def remove(self, path: FieldPath) -> PathAccessor:
        path_remove(self._record, path)
        return self

    def merge(self, values: Mapping[str, Any] | PathAccessor) -> PathAccessor:
        """Set every (path, value) pair of values, overwriting existing fields."""
        if isinstance(values, PathAccessor):
            values = values.record
        if not isinstance(values, Mapping):
            raise TypeError(f"Cannot merge {type(values).__name__} into a record")
        for path, value in values.items():
            path_set(self._record, path, value, True)
        return self

    def __getitem__(self, path: FieldPath) -> Any:
        return self.get(path)

    def __setitem__(self, path: FieldPath, value: Any) -> None:
        self.set(path, value)

    def __delitem__(self, path: FieldPath) -> None:
        self.remove(path)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, list, tuple)):
            return False
        return self.has(path)

    def __iter__(self) -> Iterator[str]:
        return iter(self._record)

    def __len__(self) -> int:
        return len(self._record)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PathAccessor):
            return self._record == other._record
        if isinstance(other, Mapping):
            return self._record == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"PathAccessor({self._record!r})"
