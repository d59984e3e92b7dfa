"""Managed Disk data source.

Handles: data.azurestack_managed_disk
"""

import logging
from typing import ClassVar, Set

from ...exceptions import ResourceNotFoundError
from ...resource_data import ResourceData
from ...resource_ids import ManagedDiskId
from ...schema import (
    TYPE_INT,
    TYPE_STRING,
    Attribute,
    Schema,
    resource_group_name_attribute,
    tags_computed_attribute,
)
from ...utils import tags
from ...utils.azure import enum_value, get_or_none
from ...validate import string_is_not_empty
from .. import handler
from ..base_handler import DataSourceHandler
from ..context import ProviderContext

logger = logging.getLogger(__name__)


@handler
class ManagedDiskDataSource(DataSourceHandler):
    """Looks up an existing Managed Disk by name."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_managed_disk"}

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "resource_group_name": resource_group_name_attribute(),
            "create_option": Attribute(TYPE_STRING, computed=True),
            "disk_size_gb": Attribute(TYPE_INT, computed=True),
            "image_reference_id": Attribute(TYPE_STRING, computed=True),
            "os_type": Attribute(TYPE_STRING, computed=True),
            "source_resource_id": Attribute(TYPE_STRING, computed=True),
            "source_uri": Attribute(TYPE_STRING, computed=True),
            "storage_account_id": Attribute(TYPE_STRING, computed=True),
            "storage_account_type": Attribute(TYPE_STRING, computed=True),
            "tags": tags_computed_attribute(),
        }

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.disks
        id = ManagedDiskId(context.subscription_id, d.get("resource_group_name"), d.get("name"))

        resp = get_or_none(
            "making Read request on",
            str(id),
            client.get,
            id.resource_group,
            id.disk_name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            raise ResourceNotFoundError(f"{id} was not found", resource_id=id.id())

        d.set_id(id.id())
        d.set("name", id.disk_name)
        d.set("resource_group_name", id.resource_group)

        if resp.sku is not None:
            d.set("storage_account_type", enum_value(resp.sku.name) or "")

        creation_data = resp.creation_data
        if creation_data is not None:
            d.set("create_option", enum_value(creation_data.create_option) or "")
            image_reference_id = ""
            if creation_data.image_reference is not None and creation_data.image_reference.id:
                image_reference_id = creation_data.image_reference.id
            d.set("image_reference_id", image_reference_id)
            d.set("source_resource_id", creation_data.source_resource_id or "")
            d.set("source_uri", creation_data.source_uri or "")
            d.set("storage_account_id", creation_data.storage_account_id or "")

        d.set("disk_size_gb", resp.disk_size_gb or 0)
        d.set("os_type", enum_value(resp.os_type) or "")
        d.set("tags", tags.flatten(resp.tags))
