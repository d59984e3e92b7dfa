"""Platform Image data source.

Handles: data.azurestack_platform_image
"""

import logging
from typing import ClassVar, Set

from azure.core.exceptions import HttpResponseError

from ...exceptions import ResourceNotFoundError, wrap_azure_exception
from ...resource_data import ResourceData
from ...schema import TYPE_STRING, Attribute, Schema, location_attribute
from ...utils import location
from .. import handler
from ..base_handler import DataSourceHandler
from ..context import ProviderContext

logger = logging.getLogger(__name__)

LIST_LIMIT = 1000


@handler
class PlatformImageDataSource(DataSourceHandler):
    """Finds a Marketplace image version; the latest when no version is given."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_platform_image"}

    @classmethod
    def schema(cls) -> Schema:
        return {
            "location": location_attribute(),
            "publisher": Attribute(TYPE_STRING, required=True),
            "offer": Attribute(TYPE_STRING, required=True),
            "sku": Attribute(TYPE_STRING, required=True),
            "version": Attribute(TYPE_STRING, optional=True, computed=True),
        }

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_images
        loc = location.normalize(d.get("location"))
        publisher = d.get("publisher")
        offer = d.get("offer")
        sku = d.get("sku")

        description = f"location {loc!r} / publisher {publisher!r} / offer {offer!r} / sku {sku!r}"
        try:
            images = list(
                client.list(
                    loc,
                    publisher,
                    offer,
                    sku,
                    top=LIST_LIMIT,
                    orderby="name",
                    timeout=d.timeouts.read,
                )
                or []
            )
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "reading Platform Images", description) from e

        version, ok = d.get_ok("version")
        if ok:
            image = next((item for item in images if item.name == version), None)
            if image is None:
                raise ResourceNotFoundError(
                    f"could not find image ({description} / version {version!r})"
                )
        else:
            if not images:
                raise ResourceNotFoundError(f"no Platform Images were found ({description})")
            # ordered by name, so the last one is the latest
            image = images[-1]

        d.set_id(image.id)
        d.set("location", location.normalize(image.location))
        d.set("publisher", publisher)
        d.set("offer", offer)
        d.set("sku", sku)
        d.set("version", image.name)
