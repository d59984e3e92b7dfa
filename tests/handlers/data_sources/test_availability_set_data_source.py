"""Tests for the Availability Set data source."""

import pytest
from azure.mgmt.compute.models import AvailabilitySet, Sku

from azurestack_compute.exceptions import ResourceNotFoundError
from azurestack_compute.handlers.data_sources import AvailabilitySetDataSource
from azurestack_compute.resource_data import ResourceData

from ...conftest import RESOURCE_GROUP, compute_id, not_found


def lookup():
    return ResourceData(
        AvailabilitySetDataSource.schema(),
        config={"name": "avset1", "resource_group_name": RESOURCE_GROUP},
    )


def test_read(context, compute_client):
    compute_client.availability_sets.get.return_value = AvailabilitySet(
        location="Local",
        sku=Sku(name="Aligned"),
        platform_fault_domain_count=2,
        platform_update_domain_count=5,
        tags={"env": "test"},
    )
    d = lookup()

    AvailabilitySetDataSource().read(d, context)

    state = d.state()
    assert state["id"] == compute_id("availabilitySets", "avset1")
    assert state["location"] == "local"
    assert state["managed"] is True
    assert state["platform_fault_domain_count"] == "2"
    assert state["platform_update_domain_count"] == "5"
    assert state["tags"] == {"env": "test"}


def test_read_classic_set(context, compute_client):
    compute_client.availability_sets.get.return_value = AvailabilitySet(
        location="local", sku=Sku(name="Classic")
    )
    d = lookup()

    AvailabilitySetDataSource().read(d, context)

    assert d.state()["managed"] is False


def test_read_missing(context, compute_client):
    compute_client.availability_sets.get.side_effect = not_found()

    with pytest.raises(ResourceNotFoundError, match="avset1"):
        AvailabilitySetDataSource().read(lookup(), context)
