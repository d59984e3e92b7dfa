"""Attribute schemas for resource and data source handlers.

A schema is a plain ``Dict[str, Attribute]``. Each Attribute declares its
type, whether it is required, optional and/or computed, whether changing it
forces the resource to be replaced, and optional validation and diff
suppression hooks. Nested blocks are list (or set) attributes whose ``elem``
is itself a schema.

The helpers here resolve configuration against prior state (defaults,
computed fallbacks, zero values), validate configuration blocks and compare
old and new values the way the plan needs.
"""

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .utils.location import location_diff_suppress
from .utils.tags import validate_tags
from .validate import resource_group_name

logger = logging.getLogger(__name__)

TYPE_STRING = "string"
TYPE_INT = "int"
TYPE_BOOL = "bool"
TYPE_FLOAT = "float"
TYPE_LIST = "list"
TYPE_SET = "set"
TYPE_MAP = "map"

Validator = Callable[[Any, str], List[str]]
DiffSuppressFunc = Callable[[Any, Any], bool]


class _Unknown:
    """Marker for values that are only known after apply."""

    _instance: Optional["_Unknown"] = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_Unknown":
        return self


UNKNOWN = _Unknown()


@dataclass
class Attribute:
    """Metadata for a single attribute of a resource schema."""

    type: str
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False
    default: Any = None
    validate: Optional[Validator] = None
    diff_suppress: Optional[DiffSuppressFunc] = None
    elem: Union[Dict[str, "Attribute"], "Attribute", None] = None
    max_items: int = 0
    min_items: int = 0
    conflicts_with: Tuple[str, ...] = ()
    exactly_one_of: Tuple[str, ...] = ()
    description: str = ""

    @property
    def is_block(self) -> bool:
        return self.type in (TYPE_LIST, TYPE_SET) and isinstance(self.elem, dict)

    @property
    def settable(self) -> bool:
        """Whether configuration may provide a value."""
        return self.required or self.optional


Schema = Dict[str, Attribute]


@dataclass
class Timeouts:
    """Per-operation timeouts in seconds."""

    create: float = 30 * 60
    read: float = 5 * 60
    update: float = 30 * 60
    delete: float = 30 * 60

    def merged(self, overrides: Optional[Dict[str, Any]]) -> "Timeouts":
        """Return a copy with ``timeouts`` block overrides such as ``"45m"``."""
        result = copy.copy(self)
        for key, value in (overrides or {}).items():
            if key not in ("create", "read", "update", "delete"):
                raise ValueError(f"unsupported timeout {key!r}")
            setattr(result, key, parse_duration(value))
        return result


_DURATION_UNITS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: Any) -> float:
    """Parse a Go-style duration such as ``90m`` or ``1h30m`` into seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    number = ""
    for ch in value.strip():
        if ch.isdigit() or ch == ".":
            number += ch
        elif ch in _DURATION_UNITS and number:
            total += float(number) * _DURATION_UNITS[ch]
            number = ""
        else:
            raise ValueError(f"invalid duration {value!r}")
    if number:
        raise ValueError(f"invalid duration {value!r}: missing unit")
    return total


def zero_value(attr: Attribute) -> Any:
    if attr.type == TYPE_STRING:
        return ""
    if attr.type == TYPE_INT:
        return 0
    if attr.type == TYPE_FLOAT:
        return 0.0
    if attr.type == TYPE_BOOL:
        return False
    if attr.type == TYPE_MAP:
        return {}
    return []


def is_zero(value: Any) -> bool:
    if value is None:
        return True
    if value is UNKNOWN:
        return False
    if isinstance(value, bool):
        return value is False
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return False


def resolve(attr: Attribute, config_value: Any, state_value: Any) -> Any:
    """Resolve a configured value against prior state.

    Unset values take the default, then (for computed attributes) the prior
    state, then the zero value. Nested blocks are resolved element by element.
    """
    if config_value is None:
        if attr.default is not None:
            return copy.deepcopy(attr.default)
        if attr.computed and state_value is not None:
            return copy.deepcopy(state_value)
        return zero_value(attr)

    if config_value is UNKNOWN:
        return UNKNOWN

    if attr.is_block and isinstance(config_value, list):
        resolved = []
        for i, item in enumerate(config_value):
            state_item = None
            if isinstance(state_value, list) and i < len(state_value):
                state_item = state_value[i]
            resolved.append(resolve_block(attr.elem, item, state_item))
        return resolved

    return copy.deepcopy(config_value)


def resolve_block(schema: Schema, config: Any, state: Any) -> Dict[str, Any]:
    config = config if isinstance(config, dict) else {}
    state = state if isinstance(state, dict) else {}
    return {
        key: resolve(attr, config.get(key), state.get(key))
        for key, attr in schema.items()
    }


def normalize_state_value(attr: Attribute, value: Any) -> Any:
    """Normalise a value written by a handler into state."""
    if value is None:
        return zero_value(attr)
    if attr.is_block:
        return [resolve_block(attr.elem, item, None) for item in value]
    if attr.type == TYPE_SET or attr.type == TYPE_LIST:
        return list(value)
    if attr.type == TYPE_MAP:
        return dict(value)
    if attr.type == TYPE_INT and isinstance(value, float) and value.is_integer():
        return int(value)
    return copy.deepcopy(value)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def values_differ(attr: Attribute, old: Any, new: Any) -> bool:
    """Compare two values of ``attr``, honouring diff suppression."""
    if new is UNKNOWN or old is UNKNOWN:
        return True
    if old is None:
        old = zero_value(attr)
    if new is None:
        new = zero_value(attr)

    if attr.diff_suppress is not None and attr.diff_suppress(old, new):
        return False

    if attr.is_block:
        old_items = old if isinstance(old, list) else []
        new_items = new if isinstance(new, list) else []
        if len(old_items) != len(new_items):
            return True
        if attr.type == TYPE_SET:
            return sorted(map(_canonical, old_items)) != sorted(
                map(_canonical, new_items)
            )
        for old_item, new_item in zip(old_items, new_items):
            for key, nested in attr.elem.items():
                if values_differ(nested, old_item.get(key), new_item.get(key)):
                    return True
        return False

    if attr.type == TYPE_SET:
        return sorted(map(_canonical, old)) != sorted(map(_canonical, new))

    if attr.type == TYPE_FLOAT:
        return float(old) != float(new)

    return old != new


def force_new_changed(attr: Attribute, old: Any, new: Any) -> bool:
    """Whether a change to ``attr`` (or a ForceNew child of it) forces replacement."""
    if attr.force_new:
        return values_differ(attr, old, new)
    if not attr.is_block:
        return False

    old_items = old if isinstance(old, list) else []
    new_items = new if isinstance(new, list) else []
    for i in range(max(len(old_items), len(new_items))):
        old_item = old_items[i] if i < len(old_items) else {}
        new_item = new_items[i] if i < len(new_items) else {}
        for key, nested in attr.elem.items():
            if force_new_changed(nested, old_item.get(key), new_item.get(key)):
                return True
    return False


def _type_error(attr: Attribute, value: Any, key: str) -> Optional[str]:
    if value is UNKNOWN:
        return None
    if attr.type == TYPE_STRING and not isinstance(value, str):
        return f"{key}: expected a string, got {type(value).__name__}"
    if attr.type == TYPE_INT and (isinstance(value, bool) or not isinstance(value, int)):
        return f"{key}: expected an integer, got {type(value).__name__}"
    if attr.type == TYPE_BOOL and not isinstance(value, bool):
        return f"{key}: expected a boolean, got {type(value).__name__}"
    if attr.type == TYPE_FLOAT and (
        isinstance(value, bool) or not isinstance(value, (int, float))
    ):
        return f"{key}: expected a number, got {type(value).__name__}"
    if attr.type in (TYPE_LIST, TYPE_SET) and not isinstance(value, list):
        return f"{key}: expected a list, got {type(value).__name__}"
    if attr.type == TYPE_MAP and not isinstance(value, dict):
        return f"{key}: expected a map, got {type(value).__name__}"
    return None


def validate_config(schema: Schema, config: Dict[str, Any], path: str = "") -> List[str]:
    """Validate a configuration block against ``schema``.

    Returns:
        A list of human-readable diagnostics; empty when the block is valid
    """
    diagnostics: List[str] = []
    prefix = f"{path}." if path else ""

    for key in config:
        if key not in schema:
            diagnostics.append(f"{prefix}{key}: unsupported argument")

    checked_groups = set()
    for key, attr in schema.items():
        full_key = f"{prefix}{key}"
        value = config.get(key)

        if value is None:
            if attr.required:
                diagnostics.append(f"{full_key}: the argument is required")
        elif not attr.settable:
            diagnostics.append(f"{full_key}: the attribute is computed and cannot be set")
            continue

        if attr.exactly_one_of and attr.exactly_one_of not in checked_groups:
            checked_groups.add(attr.exactly_one_of)
            present = [k for k in attr.exactly_one_of if config.get(k) is not None]
            if len(present) != 1:
                names = ", ".join(f"`{k}`" for k in attr.exactly_one_of)
                diagnostics.append(
                    f"{full_key}: exactly one of {names} must be specified"
                )

        if value is None or value is UNKNOWN:
            continue

        for other in attr.conflicts_with:
            if config.get(other) is not None:
                diagnostics.append(f"{full_key}: conflicts with {prefix}{other}")

        type_error = _type_error(attr, value, full_key)
        if type_error:
            diagnostics.append(type_error)
            continue

        if attr.type in (TYPE_LIST, TYPE_SET):
            if attr.max_items and len(value) > attr.max_items:
                diagnostics.append(
                    f"{full_key}: at most {attr.max_items} item(s) allowed, got {len(value)}"
                )
            if attr.min_items and len(value) < attr.min_items:
                diagnostics.append(
                    f"{full_key}: at least {attr.min_items} item(s) required, got {len(value)}"
                )
            for i, item in enumerate(value):
                item_key = f"{full_key}.{i}"
                if attr.is_block:
                    if not isinstance(item, dict):
                        diagnostics.append(f"{item_key}: expected a block")
                        continue
                    diagnostics.extend(validate_config(attr.elem, item, item_key))
                elif isinstance(attr.elem, Attribute):
                    elem_error = _type_error(attr.elem, item, item_key)
                    if elem_error:
                        diagnostics.append(elem_error)
                    elif attr.elem.validate is not None and item is not UNKNOWN:
                        diagnostics.extend(attr.elem.validate(item, item_key))

        if attr.type == TYPE_MAP:
            for map_key, map_value in value.items():
                if map_value is not UNKNOWN and not isinstance(
                    map_value, (str, int, float, bool)
                ):
                    diagnostics.append(f"{full_key}.{map_key}: expected a scalar value")

        if attr.validate is not None:
            diagnostics.extend(attr.validate(value, full_key))

    return diagnostics


def contains_unknown(value: Any) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknown(v) for v in value.values())
    if isinstance(value, list):
        return any(contains_unknown(v) for v in value)
    return False


def lookup_attribute(schema: Schema, path: Sequence[str]) -> Optional[Attribute]:
    """Find the attribute addressed by a dotted path such as ``os_disk.0.caching``."""
    current: Union[Schema, Attribute, None] = schema
    attr: Optional[Attribute] = None
    for part in path:
        if isinstance(current, dict):
            attr = current.get(part)
            if attr is None:
                return None
            current = attr
        elif isinstance(current, Attribute):
            if part.isdigit() and current.type in (TYPE_LIST, TYPE_SET):
                if isinstance(current.elem, dict):
                    current = current.elem
                    continue
                if isinstance(current.elem, Attribute):
                    attr = current.elem
                    current = attr
                    continue
            return None
    return attr


def sensitive_paths(schema: Schema) -> List[str]:
    """Top-level attribute names whose values must be hidden in output."""
    return [key for key, attr in schema.items() if attr.sensitive]


def base_schema_copy(schema: Schema, **overrides: Attribute) -> Schema:
    """Copy a schema, replacing or adding the given attributes."""
    result = {key: copy.copy(attr) for key, attr in schema.items()}
    result.update(overrides)
    return result


# Common attributes shared by most resources


def location_attribute(force_new: bool = True) -> Attribute:
    return Attribute(
        TYPE_STRING,
        required=True,
        force_new=force_new,
        diff_suppress=location_diff_suppress,
    )


def location_computed_attribute() -> Attribute:
    return Attribute(TYPE_STRING, computed=True)


def resource_group_name_attribute() -> Attribute:
    return Attribute(
        TYPE_STRING, required=True, force_new=True, validate=resource_group_name
    )


def tags_attribute() -> Attribute:
    return Attribute(TYPE_MAP, optional=True, validate=validate_tags)


def tags_computed_attribute() -> Attribute:
    return Attribute(TYPE_MAP, computed=True)


def zones_attribute() -> Attribute:
    return Attribute(
        TYPE_LIST,
        optional=True,
        force_new=True,
        elem=Attribute(TYPE_STRING),
    )


def string_list(**kwargs: Any) -> Attribute:
    return Attribute(TYPE_LIST, elem=Attribute(TYPE_STRING), **kwargs)


def string_set(**kwargs: Any) -> Attribute:
    return Attribute(TYPE_SET, elem=Attribute(TYPE_STRING), **kwargs)


def block(schema: Schema, **kwargs: Any) -> Attribute:
    kwargs.setdefault("type", TYPE_LIST)
    return Attribute(elem=schema, **kwargs)


def timeouts_for(
    create: float = 30 * 60,
    read: float = 5 * 60,
    update: float = 30 * 60,
    delete: float = 30 * 60,
) -> Timeouts:
    return Timeouts(create=create, read=read, update=update, delete=delete)
