"""
State file persistence.

The state file is a JSON document listing every managed resource (and the
last read of every data source) with the attributes its handler wrote. It is
rewritten atomically after each resource operation, so an interrupted apply
never loses the record of resources which were already created.
"""

import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import StateError

logger = logging.getLogger(__name__)

STATE_VERSION = 1

MODE_MANAGED = "managed"
MODE_DATA = "data"


def make_address(resource_type: str, name: str, mode: str = MODE_MANAGED) -> str:
    """Build an address such as ``azurestack_image.web`` or ``data.azurestack_image.web``."""
    address = f"{resource_type}.{name}"
    return f"data.{address}" if mode == MODE_DATA else address


def split_address(address: str) -> Tuple[str, str, str]:
    """Split an address into ``(mode, type, name)``.

    Raises:
        StateError: If the address is malformed
    """
    parts = address.split(".")
    if len(parts) == 3 and parts[0] == "data":
        return MODE_DATA, parts[1], parts[2]
    if len(parts) == 2:
        return MODE_MANAGED, parts[0], parts[1]
    raise StateError(f"invalid resource address {address!r}")


class ResourceState(BaseModel):
    """A single resource in the state file."""

    mode: str = MODE_MANAGED
    type: str
    name: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def address(self) -> str:
        return make_address(self.type, self.name, self.mode)

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")


class StateFile(BaseModel):
    """The whole state document."""

    version: int = STATE_VERSION
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: List[ResourceState] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def get(self, address: str) -> Optional[ResourceState]:
        for resource in self.resources:
            if resource.address == address:
                return resource
        return None

    def put(self, resource: ResourceState) -> None:
        """Insert or replace the resource at ``resource.address``."""
        for i, existing in enumerate(self.resources):
            if existing.address == resource.address:
                self.resources[i] = resource
                return
        self.resources.append(resource)

    def remove(self, address: str) -> bool:
        before = len(self.resources)
        self.resources = [r for r in self.resources if r.address != address]
        return len(self.resources) != before

    def addresses(self, mode: Optional[str] = None) -> List[str]:
        return [r.address for r in self.resources if mode is None or r.mode == mode]


class StateStore:
    """Reads and writes the state file at ``path``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> StateFile:
        """Load the state file; a missing file is an empty state."""
        if not self.path.exists():
            logger.debug(f"No state file at {self.path} - starting with an empty state")
            return StateFile()

        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StateError(
                f"State file {self.path} is not valid JSON", path=str(self.path), cause=e
            ) from e
        except OSError as e:
            raise StateError(
                f"Cannot read state file {self.path}", path=str(self.path), cause=e
            ) from e

        try:
            state = StateFile.model_validate(data)
        except ValidationError as e:
            raise StateError(
                f"State file {self.path} is invalid: {e}", path=str(self.path), cause=e
            ) from e

        if state.version != STATE_VERSION:
            raise StateError(
                f"Unsupported state file version {state.version} (expected {STATE_VERSION})",
                path=str(self.path),
            )
        return state

    def save(self, state: StateFile) -> None:
        """Write the state atomically and bump its serial."""
        state.serial += 1
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tfstate-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state.model_dump(), f, indent=2, sort_keys=True, default=str)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StateError(
                f"Cannot write state file {self.path}", path=str(self.path), cause=e
            ) from e
        logger.debug(f"Saved state serial {state.serial} to {self.path}")
