"""Image handler.

Handles: azurestack_image
API: Microsoft.Compute/images

An image is captured either from a generalised source Virtual Machine or
from an explicit storage profile (an OS disk and/or data disks), never both.
"""

import logging
from typing import Any, ClassVar, Dict, List, Optional, Set

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import (
    Image,
    ImageDataDisk,
    ImageOSDisk,
    ImageStorageProfile,
    SubResource,
)

from ...exceptions import SchemaValidationError, wrap_azure_exception
from ...resource_data import ResourceData
from ...resource_ids import ImageId, validate_resource_id
from ...schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_STRING,
    Attribute,
    Schema,
    block,
    location_attribute,
    resource_group_name_attribute,
    tags_attribute,
    timeouts_for,
)
from ...utils import location, tags
from ...utils.azure import enum_value, get_or_none, is_not_found, wait_for_completion
from ...utils.diff_suppress import case_difference
from ...validate import int_at_least, is_url_with_http_or_https, string_in_slice
from .. import handler
from ..base_handler import ResourceHandler
from ..context import ProviderContext

logger = logging.getLogger(__name__)

CACHING_TYPES = ["None", "ReadOnly", "ReadWrite"]


def _os_disk_schema() -> Schema:
    return {
        "os_type": Attribute(
            TYPE_STRING,
            optional=True,
            diff_suppress=case_difference,
            validate=string_in_slice(["Linux", "Windows"], ignore_case=True),
        ),
        "os_state": Attribute(
            TYPE_STRING,
            optional=True,
            diff_suppress=case_difference,
            validate=string_in_slice(["Generalized", "Specialized"], ignore_case=True),
        ),
        "managed_disk_id": Attribute(
            TYPE_STRING,
            optional=True,
            computed=True,
            diff_suppress=case_difference,
            validate=validate_resource_id,
        ),
        "blob_uri": Attribute(
            TYPE_STRING,
            optional=True,
            computed=True,
            force_new=True,
            validate=is_url_with_http_or_https,
        ),
        "caching": Attribute(
            TYPE_STRING,
            optional=True,
            default="None",
            diff_suppress=case_difference,
            validate=string_in_slice(CACHING_TYPES, ignore_case=True),
        ),
        "size_gb": Attribute(
            TYPE_INT, optional=True, computed=True, validate=int_at_least(1)
        ),
    }


def _data_disk_schema() -> Schema:
    return {
        "lun": Attribute(TYPE_INT, optional=True),
        "managed_disk_id": Attribute(
            TYPE_STRING, optional=True, force_new=True, validate=validate_resource_id
        ),
        "blob_uri": Attribute(
            TYPE_STRING, optional=True, computed=True, validate=is_url_with_http_or_https
        ),
        "caching": Attribute(
            TYPE_STRING,
            optional=True,
            default="None",
            diff_suppress=case_difference,
            validate=string_in_slice(CACHING_TYPES, ignore_case=True),
        ),
        "size_gb": Attribute(
            TYPE_INT, optional=True, computed=True, validate=int_at_least(1)
        ),
    }


def expand_image_os_disk(disks: List[Dict[str, Any]]) -> Optional[ImageOSDisk]:
    if not disks:
        return None

    config = disks[0]
    os_disk = ImageOSDisk(
        os_type=config.get("os_type") or None,
        os_state=config.get("os_state") or None,
    )
    if config.get("managed_disk_id"):
        os_disk.managed_disk = SubResource(id=config["managed_disk_id"])
    if config.get("blob_uri"):
        os_disk.blob_uri = config["blob_uri"]
    if config.get("caching"):
        os_disk.caching = config["caching"]
    if config.get("size_gb"):
        os_disk.disk_size_gb = config["size_gb"]
    return os_disk


def expand_image_data_disks(disks: List[Dict[str, Any]]) -> List[ImageDataDisk]:
    data_disks = []
    for config in disks:
        data_disk = ImageDataDisk(lun=config.get("lun") or 0)
        if config.get("blob_uri"):
            data_disk.blob_uri = config["blob_uri"]
        if config.get("size_gb"):
            data_disk.disk_size_gb = config["size_gb"]
        if config.get("caching"):
            data_disk.caching = config["caching"]
        if config.get("managed_disk_id"):
            data_disk.managed_disk = SubResource(id=config["managed_disk_id"])
        data_disks.append(data_disk)
    return data_disks


def flatten_image_os_disk(os_disk: Optional[ImageOSDisk]) -> List[Dict[str, Any]]:
    if os_disk is None:
        return []

    result: Dict[str, Any] = {
        "caching": enum_value(os_disk.caching) or "",
        "os_type": enum_value(os_disk.os_type) or "",
        "os_state": enum_value(os_disk.os_state) or "",
    }
    if os_disk.blob_uri:
        result["blob_uri"] = os_disk.blob_uri
    if os_disk.disk_size_gb:
        result["size_gb"] = os_disk.disk_size_gb
    if os_disk.managed_disk is not None and os_disk.managed_disk.id:
        result["managed_disk_id"] = os_disk.managed_disk.id
    return [result]


def flatten_image_data_disks(data_disks: Optional[List[ImageDataDisk]]) -> List[Dict[str, Any]]:
    result = []
    for disk in data_disks or []:
        item: Dict[str, Any] = {"caching": enum_value(disk.caching) or ""}
        if disk.blob_uri:
            item["blob_uri"] = disk.blob_uri
        if disk.disk_size_gb:
            item["size_gb"] = disk.disk_size_gb
        if disk.lun is not None:
            item["lun"] = disk.lun
        if disk.managed_disk is not None and disk.managed_disk.id:
            item["managed_disk_id"] = disk.managed_disk.id
        result.append(item)
    return result


@handler
class ImageHandler(ResourceHandler):
    """Handler for Images."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_image"}
    ID_TYPE = ImageId
    TIMEOUTS = timeouts_for(create=90 * 60, update=90 * 60, delete=90 * 60)

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(TYPE_STRING, required=True, force_new=True),
            "location": location_attribute(),
            "resource_group_name": resource_group_name_attribute(),
            "source_virtual_machine_id": Attribute(
                TYPE_STRING, optional=True, force_new=True, validate=validate_resource_id
            ),
            "os_disk": block(_os_disk_schema(), optional=True, max_items=1, force_new=True),
            "data_disk": block(_data_disk_schema(), optional=True),
            "zone_resilient": Attribute(
                TYPE_BOOL, optional=True, default=False, force_new=True
            ),
            "hyper_v_generation": Attribute(
                TYPE_STRING,
                optional=True,
                default="V1",
                force_new=True,
                validate=string_in_slice(["V1", "V2"]),
            ),
            "tags": tags_attribute(),
        }

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        logger.info("[INFO] preparing arguments for AzureStack Image creation.")
        client = context.compute_client.images
        id = ImageId(context.subscription_id, d.get("resource_group_name"), d.get("name"))

        self.check_for_existing(id.id(), client.get, id.resource_group, id.name)
        self._create_or_update(d, context, id, d.timeouts.create)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        id = ImageId.parse(d.id)
        self._create_or_update(d, context, id, d.timeouts.update)

    def _create_or_update(
        self, d: ResourceData, context: ProviderContext, id: ImageId, timeout: float
    ) -> None:
        client = context.compute_client.images

        image = Image(
            location=location.normalize(d.get("location")),
            tags=tags.expand(d.get("tags")),
            hyper_v_generation=d.get("hyper_v_generation") or None,
        )

        # either source VM or storage profile can be specified, but not both
        source_virtual_machine_id = d.get("source_virtual_machine_id")
        if source_virtual_machine_id:
            image.source_virtual_machine = SubResource(id=source_virtual_machine_id)
        else:
            os_disk = expand_image_os_disk(d.get("os_disk"))
            data_disks = expand_image_data_disks(d.get("data_disk"))
            if os_disk is None and not data_disks:
                raise SchemaValidationError(
                    "Cannot create image when both source VM and storage profile are empty"
                )
            image.storage_profile = ImageStorageProfile(
                os_disk=os_disk,
                data_disks=data_disks,
                zone_resilient=d.get("zone_resilient"),
            )

        try:
            poller = client.begin_create_or_update(id.resource_group, id.name, image)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "creating/updating", str(id)) from e
        wait_for_completion(poller, timeout, f"creation/update of {id}")

        d.set_id(id.id())
        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.images
        id = ImageId.parse(d.id)

        resp = get_or_none(
            "making Read request on",
            str(id),
            client.get,
            id.resource_group,
            id.name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            self.not_found(d, id)
            return

        d.set("name", id.name)
        d.set("resource_group_name", id.resource_group)
        d.set("location", location.normalize(resp.location))
        if resp.hyper_v_generation:
            d.set("hyper_v_generation", enum_value(resp.hyper_v_generation))

        if resp.source_virtual_machine is not None:
            d.set("source_virtual_machine_id", resp.source_virtual_machine.id)
        elif resp.storage_profile is not None:
            profile = resp.storage_profile
            if profile.os_disk is not None:
                d.set("os_disk", flatten_image_os_disk(profile.os_disk))
            if profile.data_disks is not None:
                d.set("data_disk", flatten_image_data_disks(profile.data_disks))
            d.set("zone_resilient", bool(profile.zone_resilient))

        d.set("tags", tags.flatten(resp.tags))

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.images
        id = ImageId.parse(d.id)

        try:
            poller = client.begin_delete(id.resource_group, id.name)
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "deleting", str(id)) from e
        wait_for_completion(poller, d.timeouts.delete, f"deletion of {id}")
