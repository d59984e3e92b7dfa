"""Validation functions for schema attributes.

Every validator takes ``(value, key)`` and returns a list of diagnostics,
empty when the value is acceptable. Factories build validators for
parameterised checks.
"""

import base64
import binascii
import json
import re
from typing import Any, Iterable, List

AVAILABILITY_SET_NAME_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([-._a-zA-Z0-9]{0,78}[a-zA-Z0-9_])?$"
)
RESOURCE_GROUP_NAME_PATTERN = re.compile(r"^[-\w._()]+$")
LINUX_COMPUTER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([-a-zA-Z0-9.]*[a-zA-Z0-9])?$")
WINDOWS_COMPUTER_NAME_FORBIDDEN = re.compile(r"[\\/\"\[\]:|<>+=;,?*@&~!#$%^()_{}' ]")
VIRTUAL_MACHINE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([-._a-zA-Z0-9]*[a-zA-Z0-9_])?$")
EXTENSIONS_TIME_BUDGET_PATTERN = re.compile(r"^PT(\d+H)?(\d+M)?$")
ISO8601_DURATION_PATTERN = re.compile(r"^PT(\d+H)?(\d+M)?(\d+S)?$")
URL_PATTERN = re.compile(r"^https?://[^/\s]+")


def string_is_not_empty(value: Any, key: str) -> List[str]:
    if not isinstance(value, str) or value.strip() == "":
        return [f"{key} must not be empty"]
    return []


def string_in_slice(valid: Iterable[str], ignore_case: bool = False):
    """Value must be one of ``valid``."""
    valid = list(valid)

    def validator(value: Any, key: str) -> List[str]:
        if not isinstance(value, str):
            return [f"expected {key} to be a string"]
        for candidate in valid:
            if value == candidate or (ignore_case and value.lower() == candidate.lower()):
                return []
        return [f"expected {key} to be one of {valid}, got {value}"]

    return validator


def int_between(minimum: int, maximum: int):
    def validator(value: Any, key: str) -> List[str]:
        if isinstance(value, bool) or not isinstance(value, int):
            return [f"expected {key} to be an integer"]
        if value < minimum or value > maximum:
            return [
                f"expected {key} to be in the range ({minimum} - {maximum}), got {value}"
            ]
        return []

    return validator


def int_at_least(minimum: int):
    def validator(value: Any, key: str) -> List[str]:
        if isinstance(value, bool) or not isinstance(value, int):
            return [f"expected {key} to be an integer"]
        if value < minimum:
            return [f"expected {key} to be at least ({minimum}), got {value}"]
        return []

    return validator


def float_at_least(minimum: float):
    def validator(value: Any, key: str) -> List[str]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return [f"expected {key} to be a number"]
        if value < minimum:
            return [f"expected {key} to be at least ({minimum}), got {value}"]
        return []

    return validator


def string_matches(pattern: "re.Pattern[str]", message: str):
    def validator(value: Any, key: str) -> List[str]:
        if not isinstance(value, str) or not pattern.match(value):
            return [f"{key} {message}"]
        return []

    return validator


def string_is_json(value: Any, key: str) -> List[str]:
    if not isinstance(value, str):
        return [f"expected {key} to be a string"]
    if value == "":
        return []
    try:
        json.loads(value)
    except ValueError as e:
        return [f"{key} contains an invalid JSON: {e}"]
    return []


def string_is_base64(value: Any, key: str) -> List[str]:
    if not isinstance(value, str):
        return [f"expected {key} to be a string"]
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return [f"expected {key} to be a base64 string, got {value}"]
    return []


def string_is_valid_regexp(value: Any, key: str) -> List[str]:
    if not isinstance(value, str):
        return [f"expected {key} to be a string"]
    try:
        re.compile(value)
    except re.error as e:
        return [f"{key}: {e}"]
    return []


def availability_set_name(value: Any, key: str) -> List[str]:
    if not isinstance(value, str) or not AVAILABILITY_SET_NAME_PATTERN.match(value):
        return [
            f"{key} must begin with a letter or number, end with a letter, number "
            "or underscore, and may contain only letters, numbers, underscores, "
            "periods, or hyphens (1-80 characters)"
        ]
    return []


def resource_group_name(value: Any, key: str) -> List[str]:
    if not isinstance(value, str) or value == "":
        return [f"{key} cannot be blank"]
    errors = []
    if len(value) > 90:
        errors.append(f"{key} may not exceed 90 characters in length")
    if value.endswith("."):
        errors.append(f"{key} cannot end with a period")
    if not RESOURCE_GROUP_NAME_PATTERN.match(value):
        errors.append(
            f"{key} may only contain alphanumeric characters, dash, underscores, "
            "parentheses and periods"
        )
    return errors


def virtual_machine_name(max_length: int):
    def validator(value: Any, key: str) -> List[str]:
        if not isinstance(value, str) or value == "":
            return [f"{key} cannot be an empty string"]
        errors = []
        if len(value) > max_length:
            errors.append(f"{key} can be at most {max_length} characters, got {len(value)}")
        if not VIRTUAL_MACHINE_NAME_PATTERN.match(value):
            errors.append(
                f"{key} must begin with an alphanumeric character, end with an "
                "alphanumeric character or underscore and may only contain "
                "alphanumeric characters, underscores, periods and hyphens"
            )
        return errors

    return validator


def linux_computer_name(max_length: int = 64):
    def validator(value: Any, key: str) -> List[str]:
        if not isinstance(value, str) or value == "":
            return [f"{key} cannot be an empty string"]
        errors = []
        if len(value) > max_length:
            errors.append(f"{key} can be at most {max_length} characters, got {len(value)}")
        if value.startswith("_"):
            errors.append(f"{key} cannot begin with an underscore")
        if not LINUX_COMPUTER_NAME_PATTERN.match(value):
            errors.append(
                f"{key} may only contain alphanumeric characters, dashes and periods "
                "and must begin and end with an alphanumeric character"
            )
        return errors

    return validator


def windows_computer_name(max_length: int = 15):
    def validator(value: Any, key: str) -> List[str]:
        if not isinstance(value, str) or value == "":
            return [f"{key} cannot be an empty string"]
        errors = []
        if len(value) > max_length:
            errors.append(f"{key} can be at most {max_length} characters, got {len(value)}")
        if value.isdigit():
            errors.append(f"{key} cannot contain only numbers")
        if value.startswith("_") or value.endswith("."):
            errors.append(f"{key} cannot begin with an underscore or end with a period")
        if WINDOWS_COMPUTER_NAME_FORBIDDEN.search(value):
            errors.append(f"{key} cannot contain the special characters: `\\/\"[]:|<>+=;,?*@&~!#$%^()_{{}}'`")
        return errors

    return validator


def windows_admin_username(value: Any, key: str) -> List[str]:
    disallowed = {
        "administrator", "admin", "user", "user1", "test", "user2", "test1",
        "user3", "admin1", "1", "123", "a", "actuser", "adm", "admin2",
        "aspnet", "backup", "console", "david", "guest", "john", "owner",
        "root", "server", "sql", "support", "support_388945a0", "sys",
        "test2", "test3", "user4", "user5",
    }
    if not isinstance(value, str) or value == "":
        return [f"{key} cannot be an empty string"]
    errors = []
    if len(value) > 20:
        errors.append(f"{key} can be at most 20 characters, got {len(value)}")
    if value.endswith("."):
        errors.append(f"{key} cannot end with a period")
    if value.lower() in disallowed:
        errors.append(f"{key} cannot be a disallowed username: {value!r}")
    return errors


def linux_admin_username(value: Any, key: str) -> List[str]:
    disallowed = {
        "administrator", "admin", "root", "guest", "sys", "owner", "backup",
        "console", "server", "sql", "support", "test", "user", "adm",
        "aspnet", "actuser",
    }
    if not isinstance(value, str) or value == "":
        return [f"{key} cannot be an empty string"]
    errors = []
    if len(value) > 64:
        errors.append(f"{key} can be at most 64 characters, got {len(value)}")
    if value.lower() in disallowed:
        errors.append(f"{key} cannot be a disallowed username: {value!r}")
    return errors


def admin_password(value: Any, key: str) -> List[str]:
    """Azure requires 8-123 characters from at least three character classes."""
    if not isinstance(value, str):
        return [f"expected {key} to be a string"]
    if value == "ignored-as-imported":
        return []
    errors = []
    if len(value) < 8 or len(value) > 123:
        errors.append(f"{key} must be between 8 and 123 characters long")
    classes = sum(
        [
            any(c.islower() for c in value),
            any(c.isupper() for c in value),
            any(c.isdigit() for c in value),
            any(not c.isalnum() for c in value),
        ]
    )
    if classes < 3:
        errors.append(
            f"{key} must contain 3 of: a lower case character, an upper case "
            "character, a digit and a special character"
        )
    return errors


def ssh_public_key(value: Any, key: str) -> List[str]:
    if not isinstance(value, str) or value.strip() == "":
        return [f"{key} must not be empty"]
    parts = value.split()
    if len(parts) < 2 or not parts[0].startswith("ssh-"):
        return [f"{key} must be an OpenSSH public key, e.g. `ssh-rsa AAAA...`"]
    if string_is_base64(parts[1], key):
        return [f"{key} contains an invalid base64 key body"]
    return []


def extensions_time_budget(value: Any, key: str) -> List[str]:
    """ISO 8601 duration between PT15M and PT2H."""
    if not isinstance(value, str) or not EXTENSIONS_TIME_BUDGET_PATTERN.match(value):
        return [f"{key} must be an ISO 8601 duration such as `PT1H30M`"]
    match = EXTENSIONS_TIME_BUDGET_PATTERN.match(value)
    hours = int(match.group(1)[:-1]) if match.group(1) else 0
    minutes = int(match.group(2)[:-1]) if match.group(2) else 0
    total = hours * 60 + minutes
    if total < 15 or total > 120:
        return [f"{key} must be between 15 minutes and 2 hours, got {value}"]
    return []


def iso8601_duration(value: Any, key: str) -> List[str]:
    if not isinstance(value, str) or not ISO8601_DURATION_PATTERN.match(value) or value == "PT":
        return [f"{key} must be an ISO 8601 duration such as `PT5M`"]
    return []


def is_url_with_http_or_https(value: Any, key: str) -> List[str]:
    if not isinstance(value, str) or not URL_PATTERN.match(value):
        return [f"expected {key} to have a host and a http or https scheme, got {value}"]
    return []
