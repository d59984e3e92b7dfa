"""Image data source.

Handles: data.azurestack_image

An image is selected either by its exact ``name`` or by the first name
matching ``name_regex`` in the resource group.
"""

import logging
import re
from typing import ClassVar, Set

from azure.core.exceptions import HttpResponseError

from ...exceptions import ResourceNotFoundError, wrap_azure_exception
from ...resource_data import ResourceData
from ...resource_ids import ImageId
from ...schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_LIST,
    TYPE_STRING,
    Attribute,
    Schema,
    location_computed_attribute,
    resource_group_name_attribute,
    tags_computed_attribute,
)
from ...utils import location, tags
from ...utils.azure import get_or_none, is_not_found
from ...validate import string_is_valid_regexp
from .. import handler
from ..base_handler import DataSourceHandler
from ..compute.image import flatten_image_data_disks, flatten_image_os_disk
from ..context import ProviderContext

logger = logging.getLogger(__name__)


@handler
class ImageDataSource(DataSourceHandler):
    """Looks up an existing Image by name or name pattern."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_image"}

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(
                TYPE_STRING, optional=True, exactly_one_of=("name", "name_regex")
            ),
            "name_regex": Attribute(
                TYPE_STRING,
                optional=True,
                validate=string_is_valid_regexp,
                exactly_one_of=("name", "name_regex"),
            ),
            "sort_descending": Attribute(TYPE_BOOL, optional=True, default=False),
            "resource_group_name": resource_group_name_attribute(),
            "location": location_computed_attribute(),
            "os_disk": Attribute(
                TYPE_LIST,
                computed=True,
                elem={
                    "blob_uri": Attribute(TYPE_STRING, computed=True),
                    "caching": Attribute(TYPE_STRING, computed=True),
                    "managed_disk_id": Attribute(TYPE_STRING, computed=True),
                    "os_state": Attribute(TYPE_STRING, computed=True),
                    "os_type": Attribute(TYPE_STRING, computed=True),
                    "size_gb": Attribute(TYPE_INT, computed=True),
                },
            ),
            "data_disk": Attribute(
                TYPE_LIST,
                computed=True,
                elem={
                    "blob_uri": Attribute(TYPE_STRING, computed=True),
                    "caching": Attribute(TYPE_STRING, computed=True),
                    "lun": Attribute(TYPE_INT, computed=True),
                    "managed_disk_id": Attribute(TYPE_STRING, computed=True),
                    "size_gb": Attribute(TYPE_INT, computed=True),
                },
            ),
            "tags": tags_computed_attribute(),
        }

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.images
        resource_group = d.get("resource_group_name")
        name_regex, by_regex = d.get_ok("name_regex")

        if not by_regex:
            name = d.get("name")
            image = get_or_none(
                "making Read request on image",
                name,
                client.get,
                resource_group,
                name,
                timeout=d.timeouts.read,
            )
            if image is None:
                raise ResourceNotFoundError(
                    f"image {name!r} (Resource Group: {resource_group}) was not found"
                )
        else:
            image = self._find_by_regex(
                client,
                resource_group,
                name_regex,
                d.get("sort_descending"),
                d.timeouts.read,
            )

        if not image.name:
            raise ResourceNotFoundError(f"image name is empty in Resource Group {resource_group}")

        id = ImageId(context.subscription_id, resource_group, image.name)
        d.set_id(id.id())
        d.set("name", image.name)
        d.set("resource_group_name", resource_group)
        d.set("location", location.normalize(image.location))

        profile = image.storage_profile
        if profile is not None:
            d.set("os_disk", flatten_image_os_disk(profile.os_disk))
            d.set("data_disk", flatten_image_data_disks(profile.data_disks))

        d.set("tags", tags.flatten(image.tags))

    def _find_by_regex(
        self,
        client,
        resource_group: str,
        name_regex: str,
        descending: bool,
        timeout: float,
    ):
        pattern = re.compile(name_regex)
        try:
            matches = [
                image
                for image in client.list_by_resource_group(resource_group, timeout=timeout)
                if image.name and pattern.search(image.name)
            ]
        except HttpResponseError as e:
            if is_not_found(e):
                raise ResourceNotFoundError(
                    f"no Images were found for Resource Group {resource_group!r}"
                ) from e
            raise wrap_azure_exception(e, "getting list of images", resource_group) from e

        if not matches:
            raise ResourceNotFoundError(
                f"no Images were found for Resource Group {resource_group!r}"
            )

        if len(matches) > 1:
            logger.debug(
                f"[DEBUG] Image - multiple results found and `sort_descending` is set to: "
                f"{descending}"
            )
            matches.sort(key=lambda image: image.name, reverse=bool(descending))
        return matches[0]
