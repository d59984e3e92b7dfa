"""Azure location normalisation."""

from typing import Any, Optional


def normalize(location: Optional[str]) -> str:
    """Normalise a location: ``West Europe`` and ``westeurope`` are the same."""
    if not location:
        return ""
    return location.replace(" ", "").lower()


def location_diff_suppress(old: Any, new: Any) -> bool:
    return normalize(old or "") == normalize(new or "")
