"""Per-operation view over a resource's configuration and state.

A ResourceData is built for every lifecycle call. Handlers read desired
values with ``get``/``get_ok``, detect partial updates with ``has_change``,
and write what the API returned with ``set``/``set_id``. The resulting
``state`` is what the engine persists.

Reads during create and update come from configuration (with defaults and
computed fallbacks); reads during refresh, import and delete come from state.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from .schema import (
    UNKNOWN,
    Attribute,
    Schema,
    Timeouts,
    is_zero,
    lookup_attribute,
    normalize_state_value,
    resolve,
    values_differ,
    zero_value,
)

logger = logging.getLogger(__name__)

ID_KEY = "id"


class ResourceData:
    """Configuration and state for a single resource operation."""

    def __init__(
        self,
        schema: Schema,
        config: Optional[Dict[str, Any]] = None,
        state: Optional[Dict[str, Any]] = None,
        timeouts: Optional[Timeouts] = None,
    ) -> None:
        self.schema = schema
        self.timeouts = timeouts or Timeouts()
        self._config = copy.deepcopy(config) if config is not None else None
        self._prior: Dict[str, Any] = copy.deepcopy(state) if state else {}
        self._id: str = self._prior.get(ID_KEY, "") or ""

        # The working state starts as the planned state: configuration
        # resolved against prior state, or the prior state itself.
        self._state: Dict[str, Any] = {}
        for key, attr in schema.items():
            if self._config is not None:
                self._state[key] = resolve(attr, self._config.get(key), self._prior.get(key))
            else:
                self._state[key] = normalize_state_value(attr, self._prior.get(key))

    @property
    def id(self) -> str:
        return self._id

    def set_id(self, resource_id: Optional[str]) -> None:
        """Set the resource ID; an empty ID removes the resource from state."""
        self._id = resource_id or ""

    def is_new_resource(self) -> bool:
        return not self._prior.get(ID_KEY)

    @property
    def has_config(self) -> bool:
        return self._config is not None

    def _split(self, key: str) -> Tuple[str, List[str]]:
        parts = key.split(".")
        if parts[0] not in self.schema:
            raise KeyError(f"{parts[0]!r} is not an attribute of this resource")
        return parts[0], parts[1:]

    def _walk(self, value: Any, path: List[str], leaf: Optional[Attribute]) -> Any:
        for part in path:
            if isinstance(value, list) and part.isdigit():
                index = int(part)
                if index >= len(value):
                    return zero_value(leaf) if leaf else None
                value = value[index]
            elif isinstance(value, dict):
                value = value.get(part)
            else:
                return zero_value(leaf) if leaf else None
        if value is None and leaf is not None:
            return zero_value(leaf)
        return value

    def _current(self, top: str) -> Any:
        attr = self.schema[top]
        if self._config is not None:
            return resolve(attr, self._config.get(top), self._state.get(top))
        return self._state.get(top)

    def get(self, key: str) -> Any:
        """Return the value at ``key`` (dotted paths such as ``os_disk.0.caching``)."""
        top, rest = self._split(key)
        leaf = lookup_attribute(self.schema, key.split("."))
        return copy.deepcopy(self._walk(self._current(top), rest, leaf))

    def get_ok(self, key: str) -> Tuple[Any, bool]:
        """Return the value and whether it is set to a non-zero value."""
        value = self.get(key)
        return value, not is_zero(value)

    def get_raw_config(self, key: str) -> Any:
        """The value exactly as configured (None when unset)."""
        if self._config is None:
            return None
        return copy.deepcopy(self._config.get(key))

    def get_change(self, key: str) -> Tuple[Any, Any]:
        top, rest = self._split(key)
        leaf = lookup_attribute(self.schema, key.split("."))
        old = self._walk(self._prior.get(top), rest, leaf)
        new = self._walk(self._current(top), rest, leaf)
        return copy.deepcopy(old), copy.deepcopy(new)

    def has_change(self, key: str) -> bool:
        """Whether the configured value differs from prior state."""
        if self._config is None:
            return False
        leaf = lookup_attribute(self.schema, key.split("."))
        if leaf is None:
            raise KeyError(f"{key!r} is not an attribute of this resource")
        old, new = self.get_change(key)
        if self.is_new_resource() and old is None:
            old = zero_value(leaf)
        return values_differ(leaf, old, new)

    def has_changes(self, *keys: str) -> bool:
        return any(self.has_change(key) for key in keys)

    def set(self, key: str, value: Any) -> None:
        """Write a top-level attribute into state."""
        attr = self.schema.get(key)
        if attr is None:
            raise KeyError(f"{key!r} is not an attribute of this resource")
        if value is UNKNOWN:
            raise ValueError(f"cannot set {key!r} to an unknown value")
        self._state[key] = normalize_state_value(attr, value)

    def state(self) -> Optional[Dict[str, Any]]:
        """The resulting state, or None when the resource has been removed."""
        if not self._id:
            return None
        result = {ID_KEY: self._id}
        result.update(copy.deepcopy(self._state))
        return result
