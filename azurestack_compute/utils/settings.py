"""Expansion and flattening of JSON extension settings."""

import json
from typing import Any, Dict, Optional

from ..exceptions import SchemaValidationError


def expand(value: Optional[str], key: str = "settings") -> Optional[Dict[str, Any]]:
    """Parse a JSON settings string into the dict sent to the API.

    Returns None for an empty string so the field is omitted from requests.
    """
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except ValueError as e:
        raise SchemaValidationError(f"unable to parse `{key}`", cause=e) from e
    if not isinstance(parsed, dict):
        raise SchemaValidationError(f"`{key}` must be a JSON object")
    return parsed


def flatten(value: Any) -> str:
    """Serialise API settings back into a JSON string ("" when absent)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)
