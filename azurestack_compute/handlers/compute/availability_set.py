"""Availability Set handler.

Handles: azurestack_availability_set
API: Microsoft.Compute/availabilitySets
"""

import logging
from typing import ClassVar, Set

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import AvailabilitySet, Sku, SubResource

from ...exceptions import wrap_azure_exception
from ...resource_data import ResourceData
from ...resource_ids import AvailabilitySetId, validate_resource_id
from ...schema import (
    TYPE_BOOL,
    TYPE_STRING,
    TYPE_INT,
    Attribute,
    Schema,
    location_attribute,
    resource_group_name_attribute,
    tags_attribute,
)
from ...utils import location, tags
from ...utils.azure import get_or_none, is_not_found
from ...utils.diff_suppress import case_difference
from ...validate import availability_set_name, int_between
from .. import handler
from ..base_handler import ResourceHandler
from ..context import ProviderContext

logger = logging.getLogger(__name__)

ALIGNED_SKU = "Aligned"


@handler
class AvailabilitySetHandler(ResourceHandler):
    """Handler for Availability Sets.

    Availability set writes are synchronous: create_or_update and delete
    return the result directly instead of a poller.
    """

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_availability_set"}
    ID_TYPE = AvailabilitySetId

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=availability_set_name
            ),
            "resource_group_name": resource_group_name_attribute(),
            "location": location_attribute(),
            "platform_update_domain_count": Attribute(
                TYPE_INT,
                optional=True,
                default=5,
                force_new=True,
                validate=int_between(1, 20),
            ),
            "platform_fault_domain_count": Attribute(
                TYPE_INT,
                optional=True,
                default=3,
                force_new=True,
                validate=int_between(1, 3),
            ),
            "managed": Attribute(TYPE_BOOL, optional=True, default=True, force_new=True),
            "proximity_placement_group_id": Attribute(
                TYPE_STRING,
                optional=True,
                force_new=True,
                validate=validate_resource_id,
                diff_suppress=case_difference,
            ),
            "tags": tags_attribute(),
        }

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        logger.info("[INFO] preparing arguments for azurestack Availability Set creation.")
        client = context.compute_client.availability_sets
        id = AvailabilitySetId(
            context.subscription_id, d.get("resource_group_name"), d.get("name")
        )

        self.check_for_existing(id.id(), client.get, id.resource_group, id.name)
        self._create_or_update(d, context, id)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        id = AvailabilitySetId.parse(d.id)
        self._create_or_update(d, context, id)

    def _create_or_update(
        self, d: ResourceData, context: ProviderContext, id: AvailabilitySetId
    ) -> None:
        client = context.compute_client.availability_sets

        availability_set = AvailabilitySet(
            location=location.normalize(d.get("location")),
            platform_fault_domain_count=d.get("platform_fault_domain_count"),
            platform_update_domain_count=d.get("platform_update_domain_count"),
            tags=tags.expand(d.get("tags")),
        )
        if d.get("managed"):
            availability_set.sku = Sku(name=ALIGNED_SKU)
        if d.get("proximity_placement_group_id"):
            availability_set.proximity_placement_group = SubResource(
                id=d.get("proximity_placement_group_id")
            )

        try:
            client.create_or_update(id.resource_group, id.name, availability_set)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "creating/updating", str(id)) from e

        d.set_id(id.id())
        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.availability_sets
        id = AvailabilitySetId.parse(d.id)

        resp = get_or_none(
            "retrieving",
            str(id),
            client.get,
            id.resource_group,
            id.name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            self.not_found(d, id)
            return

        d.set("name", resp.name or id.name)
        d.set("resource_group_name", id.resource_group)
        d.set("location", location.normalize(resp.location))
        if resp.sku is not None and resp.sku.name is not None:
            d.set("managed", resp.sku.name.lower() == ALIGNED_SKU.lower())
        d.set("platform_update_domain_count", resp.platform_update_domain_count)
        d.set("platform_fault_domain_count", resp.platform_fault_domain_count)
        ppg_id = ""
        if resp.proximity_placement_group is not None:
            ppg_id = resp.proximity_placement_group.id or ""
        d.set("proximity_placement_group_id", ppg_id)
        d.set("tags", tags.flatten(resp.tags))

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.availability_sets
        id = AvailabilitySetId.parse(d.id)

        try:
            client.delete(id.resource_group, id.name)
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "deleting", str(id)) from e
