"""Tag expansion, flattening and validation."""

from typing import Any, Dict, List, Optional

MAX_TAGS = 50
MAX_KEY_LENGTH = 512
MAX_VALUE_LENGTH = 256


def expand(tags: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Convert configured tags into the API's string map."""
    output: Dict[str, str] = {}
    for key, value in (tags or {}).items():
        if isinstance(value, bool):
            output[key] = str(value).lower()
        else:
            output[key] = str(value)
    return output


def flatten(tags: Optional[Dict[str, str]]) -> Dict[str, str]:
    return dict(tags or {})


def validate_tags(value: Any, key: str) -> List[str]:
    if not isinstance(value, dict):
        return [f"expected {key} to be a map"]
    errors = []
    if len(value) > MAX_TAGS:
        errors.append(f"{key} can have a maximum of {MAX_TAGS} tags")
    for tag_key, tag_value in value.items():
        if len(tag_key) > MAX_KEY_LENGTH:
            errors.append(
                f"{key}: the maximum length for a tag key is {MAX_KEY_LENGTH} characters: {tag_key!r}"
            )
        if len(str(tag_value)) > MAX_VALUE_LENGTH:
            errors.append(
                f"{key}: the maximum length for a tag value is {MAX_VALUE_LENGTH} characters: {tag_key!r}"
            )
    return errors
