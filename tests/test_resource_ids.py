"""
Tests for resource_ids module.
"""

import pytest

from azurestack_compute.exceptions import ResourceIdParseError
from azurestack_compute.resource_ids import (
    AvailabilitySetId,
    DataDiskId,
    ImageId,
    ManagedDiskId,
    ResourceId,
    VirtualMachineExtensionId,
    VirtualMachineId,
    VirtualMachineScaleSetExtensionId,
    VirtualMachineScaleSetId,
    validate_id,
    validate_resource_id,
    validate_resource_id_or_empty,
)

from .conftest import NIC_ID, RESOURCE_GROUP, SUBSCRIPTION_ID, compute_id


class TestTypedIds:
    """Test cases for the Microsoft.Compute ID types."""

    @pytest.mark.parametrize(
        "id_class,segments",
        [
            (AvailabilitySetId, ("availabilitySets", "avset1")),
            (ManagedDiskId, ("disks", "disk1")),
            (ImageId, ("images", "image1")),
            (VirtualMachineId, ("virtualMachines", "vm1")),
            (VirtualMachineScaleSetId, ("virtualMachineScaleSets", "vmss1")),
            (
                VirtualMachineExtensionId,
                ("virtualMachines", "vm1", "extensions", "ext1"),
            ),
            (
                VirtualMachineScaleSetExtensionId,
                ("virtualMachineScaleSets", "vmss1", "extensions", "ext1"),
            ),
            (DataDiskId, ("virtualMachines", "vm1", "dataDisks", "disk1")),
        ],
    )
    def test_parse_then_format_returns_input(self, id_class, segments):
        """Test that a well-formed ID survives parse and format unchanged."""
        raw = compute_id(*segments)
        parsed = id_class.parse(raw)
        assert parsed.id() == raw
        assert parsed.subscription_id == SUBSCRIPTION_ID
        assert parsed.resource_group == RESOURCE_GROUP

    def test_fields_are_populated(self):
        """Test that the typed fields carry the names from the ID."""
        parsed = VirtualMachineExtensionId.parse(
            compute_id("virtualMachines", "vm1", "extensions", "ext1")
        )
        assert parsed.virtual_machine_name == "vm1"
        assert parsed.extension_name == "ext1"
        assert parsed.virtual_machine_id.id() == compute_id("virtualMachines", "vm1")

    def test_scale_set_extension_parent(self):
        """Test the parent scale set ID of an extension ID."""
        parsed = VirtualMachineScaleSetExtensionId.parse(
            compute_id("virtualMachineScaleSets", "vmss1", "extensions", "health")
        )
        assert parsed.virtual_machine_scale_set_id == VirtualMachineScaleSetId(
            SUBSCRIPTION_ID, RESOURCE_GROUP, "vmss1"
        )

    def test_data_disk_parent(self):
        """Test the parent virtual machine ID of a data disk attachment ID."""
        parsed = DataDiskId.parse(compute_id("virtualMachines", "vm1", "dataDisks", "data1"))
        assert parsed.name == "data1"
        assert parsed.virtual_machine_id.name == "vm1"

    def test_wrong_type_is_rejected(self):
        """Test that an ID of a different type fails to parse."""
        with pytest.raises(ResourceIdParseError, match="availabilitySets"):
            AvailabilitySetId.parse(compute_id("disks", "disk1"))

    def test_wrong_provider_is_rejected(self):
        """Test that a non-Compute ID fails to parse."""
        with pytest.raises(ResourceIdParseError, match="Microsoft.Compute"):
            VirtualMachineId.parse(NIC_ID)

    def test_extra_segments_are_rejected(self):
        """Test that child IDs do not parse as their parent type."""
        with pytest.raises(ResourceIdParseError, match="segment"):
            VirtualMachineId.parse(
                compute_id("virtualMachines", "vm1", "extensions", "ext1")
            )

    def test_missing_resource_group_is_rejected(self):
        """Test that subscription-level IDs fail to parse."""
        with pytest.raises(ResourceIdParseError, match="resourceGroups"):
            ImageId.parse(
                f"/subscriptions/{SUBSCRIPTION_ID}/providers/Microsoft.Compute/images/img"
            )

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "subscriptions/abc",
            f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups",
            f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups//providers/Microsoft.Compute/disks/d",
        ],
    )
    def test_malformed_ids_fail_deterministically(self, value):
        """Test that malformed IDs always raise ResourceIdParseError."""
        with pytest.raises(ResourceIdParseError):
            ManagedDiskId.parse(value)

    def test_error_carries_the_input(self):
        """Test that the parse error records the offending ID."""
        with pytest.raises(ResourceIdParseError) as exc_info:
            ManagedDiskId.parse("not-an-id")
        assert exc_info.value.context["resource_id"] == "not-an-id"
        assert exc_info.value.error_code == "INVALID_RESOURCE_ID"

    def test_is_valid(self):
        """Test the boolean validity check."""
        assert ImageId.is_valid(compute_id("images", "img"))
        assert not ImageId.is_valid(compute_id("disks", "img"))

    def test_str_describes_the_id(self):
        """Test the human-readable description used in errors."""
        id = AvailabilitySetId(SUBSCRIPTION_ID, RESOURCE_GROUP, "avset1")
        assert str(id) == 'Availability Set (Name "avset1" / Resource Group "test-rg")'


class TestGenericResourceId:
    """Test cases for the generic ResourceId parser."""

    def test_parse_foreign_id(self):
        """Test parsing a network interface ID."""
        parsed = ResourceId.parse(NIC_ID)
        assert parsed.provider == "Microsoft.Network"
        assert parsed.path == (("networkInterfaces", "test-nic"),)
        assert parsed.name == "test-nic"
        assert parsed.id() == NIC_ID

    def test_parse_resource_group_id(self):
        """Test parsing an ID which stops at the resource group."""
        raw = f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{RESOURCE_GROUP}"
        parsed = ResourceId.parse(raw)
        assert parsed.provider is None
        assert parsed.name == RESOURCE_GROUP
        assert parsed.id() == raw

    def test_provider_without_type_is_rejected(self):
        """Test that a bare provider segment is rejected."""
        with pytest.raises(ResourceIdParseError, match="no resource type"):
            ResourceId.parse(
                f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/rg/providers/Microsoft.Compute"
            )


class TestValidators:
    """Test cases for the ID schema validators."""

    def test_validate_id(self):
        """Test the typed ID validator factory."""
        validator = validate_id(ManagedDiskId)
        assert validator(compute_id("disks", "d"), "managed_disk_id") == []
        errors = validator(compute_id("images", "i"), "managed_disk_id")
        assert len(errors) == 1
        assert "managed_disk_id" in errors[0]

    def test_validate_resource_id(self):
        """Test the generic ID validator."""
        assert validate_resource_id(NIC_ID, "id") == []
        assert validate_resource_id("nope", "id") != []
        assert validate_resource_id(42, "id") == ["expected id to be a string"]

    def test_validate_resource_id_or_empty(self):
        """Test that the empty string is accepted."""
        assert validate_resource_id_or_empty("", "source_resource_id") == []
        assert validate_resource_id_or_empty("x", "source_resource_id") != []
