"""
Provider engine: dependency graph, state file and plan/apply.
"""

from .graph import DependencyGraph, find_references, interpolate
from .provider import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_NO_OP,
    ACTION_READ,
    ACTION_REPLACE,
    ACTION_UPDATE,
    Plan,
    PlannedChange,
    Provider,
    SENSITIVE_VALUE,
    mask_sensitive,
    validate_graph,
)
from .state import MODE_DATA, MODE_MANAGED, ResourceState, StateFile, StateStore

__all__ = [
    "ACTION_CREATE",
    "ACTION_DELETE",
    "ACTION_NO_OP",
    "ACTION_READ",
    "ACTION_REPLACE",
    "ACTION_UPDATE",
    "MODE_DATA",
    "MODE_MANAGED",
    "DependencyGraph",
    "Plan",
    "PlannedChange",
    "Provider",
    "SENSITIVE_VALUE",
    "ResourceState",
    "StateFile",
    "StateStore",
    "find_references",
    "interpolate",
    "mask_sensitive",
    "validate_graph",
]
