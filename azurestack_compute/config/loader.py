"""
Configuration document loader.

Reads a configuration document from JSON (``.json`` / ``.tf.json``) or YAML
(``.yaml`` / ``.yml``) and validates its outer shape.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationValidationError
from .models import ConfigurationDocument

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Load a raw configuration dictionary from disk.

    Raises:
        ConfigurationValidationError: If the file cannot be read or parsed
    """
    try:
        with open(path) as f:
            if path.suffix.lower() in YAML_SUFFIXES:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except yaml.YAMLError as e:
        raise ConfigurationValidationError(
            f"Invalid YAML in {path}", config_key=str(path), cause=e
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationValidationError(
            f"Invalid JSON in {path}", config_key=str(path), cause=e
        ) from e
    except OSError as e:
        raise ConfigurationValidationError(
            f"Cannot read configuration file {path}", config_key=str(path), cause=e
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationValidationError(
            f"Configuration file {path} must contain a mapping at the top level",
            config_key=str(path),
        )
    return data


def parse_configuration(data: Dict[str, Any]) -> ConfigurationDocument:
    """Validate an already-loaded configuration dictionary."""
    try:
        return ConfigurationDocument.model_validate(data)
    except ValidationError as e:
        raise ConfigurationValidationError(
            f"Configuration validation failed: {e}", cause=e
        ) from e


def load_configuration(path: Union[str, Path]) -> ConfigurationDocument:
    """
    Load and validate a configuration document.

    Args:
        path: Path to a JSON or YAML configuration document

    Returns:
        Validated ConfigurationDocument
    """
    path = Path(path).expanduser()
    document = parse_configuration(_load_file(path))
    logger.debug(
        f"Loaded {sum(len(v) for v in document.resource.values())} resource(s) and "
        f"{sum(len(v) for v in document.data.values())} data source(s) from {path}"
    )
    return document
