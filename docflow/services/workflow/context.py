"""Execution context threaded through a workflow run."""

import copy
from typing import Any, Optional, Union

JsonValue = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]

_MISSING = object()


def lookup_path(data: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path through nested dicts and lists (numeric segments index lists)."""
    current = data
    for part in path.split("."):
        part = part.strip()
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


class ExecutionContext:
    """Mutable JSON-compatible record owned by a single execution.

    Keys are only added or overwritten, never removed.
    """

    def __init__(self, data: Optional[dict[str, JsonValue]] = None):
        self._data: dict[str, JsonValue] = dict(data or {})

    @classmethod
    def initial(cls, attachment_id: Optional[str], message_id: Optional[str]) -> "ExecutionContext":
        return cls({
            "attachment_id": attachment_id,
            "message_id": message_id,
            "parsed_data": {},
            "document_type": None,
        })

    def get(self, path: str, default: Any = None) -> Any:
        return lookup_path(self._data, path, default)

    def resolve_field(self, name: str) -> Any:
        """Look up a field reference.

        A path whose first segment is a top-level key resolves from the root;
        anything else is looked up inside ``parsed_data``.
        """
        head = name.split(".", 1)[0]
        if head in self._data:
            return self.get(name)
        return lookup_path(self._data.get("parsed_data") or {}, name)

    def set(self, path: str, value: JsonValue) -> None:
        """Set a dotted path, creating intermediate objects as needed."""
        parts = path.split(".")
        target = self._data
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = value

    def update(self, values: dict[str, JsonValue]) -> None:
        for key, value in values.items():
            self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def snapshot(self) -> dict[str, JsonValue]:
        """Deep copy suitable for persisting."""
        return copy.deepcopy(self._data)
