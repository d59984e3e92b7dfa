"""Diff suppression functions used by resource schemas."""

import json
from typing import Any

IMPORTED_ADMIN_PASSWORD = "ignored-as-imported"


def case_difference(old: Any, new: Any) -> bool:
    """Suppress diffs which only differ by case."""
    if isinstance(old, str) and isinstance(new, str):
        return old.lower() == new.lower()
    return False


def json_equivalent(old: Any, new: Any) -> bool:
    """Suppress diffs between two JSON documents with the same content."""
    if old == new:
        return True
    if not isinstance(old, str) or not isinstance(new, str):
        return False
    if old == "" or new == "":
        return False
    try:
        return json.loads(old) == json.loads(new)
    except ValueError:
        return False


def admin_password(old: Any, new: Any) -> bool:
    """Imported scale sets without SSH keys carry a placeholder password."""
    return old == IMPORTED_ADMIN_PASSWORD or new == IMPORTED_ADMIN_PASSWORD
