"""Availability Set data source.

Handles: data.azurestack_availability_set
"""

import logging
from typing import ClassVar, Set

from ...exceptions import ResourceNotFoundError
from ...resource_data import ResourceData
from ...resource_ids import AvailabilitySetId
from ...schema import (
    TYPE_BOOL,
    TYPE_STRING,
    Attribute,
    Schema,
    location_computed_attribute,
    resource_group_name_attribute,
    tags_computed_attribute,
)
from ...utils import location, tags
from ...utils.azure import get_or_none
from ...validate import string_is_not_empty
from .. import handler
from ..base_handler import DataSourceHandler
from ..compute.availability_set import ALIGNED_SKU
from ..context import ProviderContext

logger = logging.getLogger(__name__)


@handler
class AvailabilitySetDataSource(DataSourceHandler):
    """Looks up an existing Availability Set by name."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_availability_set"}

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "resource_group_name": resource_group_name_attribute(),
            "location": location_computed_attribute(),
            # exposed as strings
            "platform_update_domain_count": Attribute(TYPE_STRING, computed=True),
            "platform_fault_domain_count": Attribute(TYPE_STRING, computed=True),
            "managed": Attribute(TYPE_BOOL, computed=True),
            "tags": tags_computed_attribute(),
        }

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.availability_sets
        id = AvailabilitySetId(
            context.subscription_id, d.get("resource_group_name"), d.get("name")
        )

        resp = get_or_none(
            "making Read request on",
            str(id),
            client.get,
            id.resource_group,
            id.name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            raise ResourceNotFoundError(f"{id} was not found", resource_id=id.id())

        d.set_id(id.id())
        d.set("location", location.normalize(resp.location))
        d.set(
            "managed",
            resp.sku is not None and (resp.sku.name or "").lower() == ALIGNED_SKU.lower(),
        )
        if resp.platform_update_domain_count is not None:
            d.set("platform_update_domain_count", str(resp.platform_update_domain_count))
        if resp.platform_fault_domain_count is not None:
            d.set("platform_fault_domain_count", str(resp.platform_fault_domain_count))
        d.set("tags", tags.flatten(resp.tags))
