"""Base handler interfaces for resources and data sources.

This module defines the abstract base classes that all handlers must
implement. A resource handler owns one Terraform resource type: its schema
and its Create/Read/Update/Delete lifecycle against the Compute API. A data
source handler owns a read-only lookup.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, List, Optional, Set, Type

from azure.core.exceptions import HttpResponseError

from ..exceptions import RequiresImportError, ResourceIdParseError, wrap_azure_exception
from ..resource_data import ResourceData
from ..resource_ids import ComputeResourceId
from ..schema import Schema, Timeouts
from ..utils.azure import is_not_found
from .context import ProviderContext

logger = logging.getLogger(__name__)

KIND_RESOURCE = "resource"
KIND_DATA = "data"


class BaseHandler(ABC):
    """Behaviour shared by resource and data source handlers."""

    # Terraform type(s) this handler owns
    # Subclasses MUST override this
    HANDLED_TYPES: ClassVar[Set[str]] = set()

    KIND: ClassVar[str] = KIND_RESOURCE

    TIMEOUTS: ClassVar[Timeouts] = Timeouts()

    @classmethod
    def can_handle(cls, terraform_type: str) -> bool:
        """Check if this handler owns the given Terraform type.

        Args:
            terraform_type: Terraform type (e.g., "azurestack_managed_disk")

        Returns:
            True if handler can process this type
        """
        return terraform_type.lower() in {t.lower() for t in cls.HANDLED_TYPES}

    @classmethod
    @abstractmethod
    def schema(cls) -> Schema:
        """Return the attribute schema for this type."""
        raise NotImplementedError

    def validate(self, d: ResourceData) -> List[str]:
        """Cross-attribute validation run at plan time.

        Override to add checks the schema cannot express. Values which are
        only known after apply must be skipped.

        Args:
            d: ResourceData built from the configuration

        Returns:
            List of diagnostics (empty when valid)
        """
        return []

    @property
    def type_name(self) -> str:
        return sorted(self.HANDLED_TYPES)[0]


class ResourceHandler(BaseHandler):
    """Abstract base class for resource handlers.

    Handlers should be:
    - Stateless: everything per-operation lives in ResourceData
    - Synchronous: each operation blocks on its long-running operation
    - Strict: API failures other than not-found are raised, never swallowed

    Usage:
        @handler
        class AvailabilitySetHandler(ResourceHandler):
            HANDLED_TYPES = {"azurestack_availability_set"}
            ID_TYPE = AvailabilitySetId

            def create(self, d, context): ...
    """

    KIND: ClassVar[str] = KIND_RESOURCE

    # Typed ID used by import and the default ID parsing
    ID_TYPE: ClassVar[Optional[Type[ComputeResourceId]]] = None

    @abstractmethod
    def create(self, d: ResourceData, context: ProviderContext) -> None:
        raise NotImplementedError

    @abstractmethod
    def read(self, d: ResourceData, context: ProviderContext) -> None:
        """Refresh state from the API; clears the ID when the resource is gone."""
        raise NotImplementedError

    @abstractmethod
    def update(self, d: ResourceData, context: ProviderContext) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        raise NotImplementedError

    def import_state(self, d: ResourceData, context: ProviderContext) -> None:
        """Prepare state for an imported ID before it is read.

        The default checks the ID parses as ``ID_TYPE``. Override to reject
        objects the resource type does not manage.

        Raises:
            ResourceIdParseError: If the ID is malformed
        """
        self.parse_id(d.id)

    def parse_id(self, resource_id: str) -> ComputeResourceId:
        if self.ID_TYPE is None:
            raise ResourceIdParseError(
                f"{self.type_name} does not declare an ID type", resource_id=resource_id
            )
        return self.ID_TYPE.parse(resource_id)

    def check_for_existing(
        self,
        resource_id: str,
        getter: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Fail with RequiresImportError if the resource already exists.

        Args:
            resource_id: The ID the new resource would have
            getter: The SDK GET operation
            *args: Arguments for the GET operation
        """
        try:
            existing = getter(*args, **kwargs)
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "checking for presence of existing", resource_id) from e

        existing_id = getattr(existing, "id", None) or resource_id
        raise RequiresImportError(self.type_name, existing_id)

    def not_found(self, d: ResourceData, resource_id: Any) -> None:
        """Remove a resource which no longer exists from state."""
        logger.debug(f"[DEBUG] {resource_id} was not found - removing from state!")
        d.set_id("")


class DataSourceHandler(BaseHandler):
    """Abstract base class for data source handlers."""

    KIND: ClassVar[str] = KIND_DATA

    TIMEOUTS: ClassVar[Timeouts] = Timeouts(create=0, update=0, delete=0)

    @abstractmethod
    def read(self, d: ResourceData, context: ProviderContext) -> None:
        raise NotImplementedError
