"""Tests for the Image data source.

Test coverage:
- Lookup by exact name
- Lookup by name pattern, honouring sort_descending
- Missing images and empty resource groups
"""

import pytest
from azure.mgmt.compute.models import Image, ImageOSDisk, ImageStorageProfile

from azurestack_compute.exceptions import ResourceNotFoundError
from azurestack_compute.handlers.data_sources import ImageDataSource
from azurestack_compute.resource_data import ResourceData

from ...conftest import RESOURCE_GROUP, api_error, compute_id, not_found

BLOB_URI = "https://account.blob.local/vhds/osdisk.vhd"


def image(name):
    result = Image(
        location="local",
        storage_profile=ImageStorageProfile(
            os_disk=ImageOSDisk(
                os_type="Linux", os_state="Generalized", blob_uri=BLOB_URI, caching="None"
            ),
            data_disks=[],
        ),
    )
    result.name = name
    return result


def lookup(**config):
    config.setdefault("resource_group_name", RESOURCE_GROUP)
    return ResourceData(ImageDataSource.schema(), config=config)


@pytest.fixture
def client(compute_client):
    return compute_client.images


def test_read_by_name(context, client):
    client.get.return_value = image("image1")
    d = lookup(name="image1")

    ImageDataSource().read(d, context)

    client.get.assert_called_once_with(RESOURCE_GROUP, "image1", timeout=300)
    state = d.state()
    assert state["id"] == compute_id("images", "image1")
    assert state["os_disk"][0]["os_type"] == "Linux"
    assert state["os_disk"][0]["blob_uri"] == BLOB_URI
    assert state["data_disk"] == []


def test_read_by_name_missing(context, client):
    client.get.side_effect = not_found()

    with pytest.raises(ResourceNotFoundError, match="image1"):
        ImageDataSource().read(lookup(name="image1"), context)


@pytest.mark.parametrize("descending,expected", [(False, "img-1"), (True, "img-3")])
def test_read_by_regex(context, client, descending, expected):
    client.list_by_resource_group.return_value = [
        image("img-2"),
        image("other"),
        image("img-3"),
        image("img-1"),
    ]
    d = lookup(name_regex="^img-", sort_descending=descending)

    ImageDataSource().read(d, context)

    assert d.state()["name"] == expected


def test_read_by_regex_without_match(context, client):
    client.list_by_resource_group.return_value = [image("other")]

    with pytest.raises(ResourceNotFoundError, match="no Images were found"):
        ImageDataSource().read(lookup(name_regex="^img-"), context)


def test_read_by_regex_missing_resource_group(context, client):
    client.list_by_resource_group.side_effect = api_error("Not Found", status_code=404)

    with pytest.raises(ResourceNotFoundError, match="no Images were found"):
        ImageDataSource().read(lookup(name_regex="^img-"), context)
