"""Tests for the Linux and Windows Virtual Machine Scale Set handlers.

Test coverage:
- Plan-time validation of upgrade modes, Spot settings and zone balancing
- Create builds the scale set model with defaults
- Update sends only what changed, keeping the image reference and upgrade policy
- Manual-mode instances are rolled to the latest model when required
- Import sets the admin password placeholder and rejects the other OS
"""

from unittest.mock import Mock

import pytest
from azure.mgmt.compute.models import (
    ApiEntityReference,
    ImageReference,
    LinuxConfiguration,
    Sku,
    SshConfiguration,
    SshPublicKey,
    UpgradePolicy,
    VirtualMachineScaleSet,
    VirtualMachineScaleSetIPConfiguration,
    VirtualMachineScaleSetManagedDiskParameters,
    VirtualMachineScaleSetNetworkConfiguration,
    VirtualMachineScaleSetNetworkProfile,
    VirtualMachineScaleSetOSDisk,
    VirtualMachineScaleSetOSProfile,
    VirtualMachineScaleSetStorageProfile,
    VirtualMachineScaleSetVMProfile,
    WindowsConfiguration,
)

from azurestack_compute.exceptions import SchemaValidationError
from azurestack_compute.handlers.compute import (
    LinuxVirtualMachineScaleSetHandler,
    WindowsVirtualMachineScaleSetHandler,
)
from azurestack_compute.handlers.compute.windows_virtual_machine_scale_set import (
    license_type_diff_suppress,
)
from azurestack_compute.resource_data import ResourceData

from ...conftest import LOCATION, RESOURCE_GROUP, SUBSCRIPTION_ID, compute_id, not_found

VMSS_ID = compute_id("virtualMachineScaleSets", "vmss1")
SUBNET_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{RESOURCE_GROUP}"
    "/providers/Microsoft.Network/virtualNetworks/vnet/subnets/internal"
)
SSH_KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQAB adminuser@example"
IMAGE = {
    "publisher": "Canonical",
    "offer": "UbuntuServer",
    "sku": "18.04-LTS",
    "version": "latest",
}
HEALTH_EXTENSION = {
    "name": "health",
    "publisher": "Microsoft.ManagedServices",
    "type": "ApplicationHealthLinux",
    "type_handler_version": "1.0",
}
ROLLING_POLICY = {
    "max_batch_instance_percent": 20,
    "max_unhealthy_instance_percent": 20,
    "max_unhealthy_upgraded_instance_percent": 5,
    "pause_time_between_batches": "PT0S",
}


def linux_config(**overrides):
    config = {
        "name": "vmss1",
        "resource_group_name": RESOURCE_GROUP,
        "location": LOCATION,
        "sku": "Standard_F2",
        "instances": 2,
        "admin_username": "adminuser",
        "admin_ssh_key": [{"username": "adminuser", "public_key": SSH_KEY}],
        "source_image_reference": [dict(IMAGE)],
        "os_disk": [{"caching": "ReadWrite", "storage_account_type": "Standard_LRS"}],
        "network_interface": [
            {
                "name": "nic",
                "primary": True,
                "ip_configuration": [
                    {"name": "internal", "primary": True, "subnet_id": SUBNET_ID}
                ],
            }
        ],
    }
    config.update(overrides)
    return config


def windows_config(**overrides):
    config = linux_config(admin_password="P@ssw0rd1234!")
    del config["admin_ssh_key"]
    config.update(overrides)
    return config


def vmss_response(windows=False, upgrade_mode="Manual", ssh_keys=True, sku="Standard_F2"):
    os_profile = VirtualMachineScaleSetOSProfile(
        computer_name_prefix="vmss1", admin_username="adminuser"
    )
    if windows:
        os_profile.windows_configuration = WindowsConfiguration(
            enable_automatic_updates=True, provision_vm_agent=True
        )
    else:
        public_keys = []
        if ssh_keys:
            public_keys = [
                SshPublicKey(path="/home/adminuser/.ssh/authorized_keys", key_data=SSH_KEY)
            ]
        os_profile.linux_configuration = LinuxConfiguration(
            disable_password_authentication=ssh_keys,
            provision_vm_agent=True,
            ssh=SshConfiguration(public_keys=public_keys),
        )

    vmss = VirtualMachineScaleSet(
        location="local",
        sku=Sku(name=sku, tier="Standard", capacity=2),
        upgrade_policy=UpgradePolicy(mode=upgrade_mode),
        overprovision=True,
        single_placement_group=True,
        virtual_machine_profile=VirtualMachineScaleSetVMProfile(
            os_profile=os_profile,
            storage_profile=VirtualMachineScaleSetStorageProfile(
                image_reference=ImageReference(**IMAGE),
                os_disk=VirtualMachineScaleSetOSDisk(
                    create_option="FromImage",
                    caching="ReadWrite",
                    disk_size_gb=30,
                    managed_disk=VirtualMachineScaleSetManagedDiskParameters(
                        storage_account_type="Standard_LRS"
                    ),
                ),
            ),
            network_profile=VirtualMachineScaleSetNetworkProfile(
                network_interface_configurations=[
                    VirtualMachineScaleSetNetworkConfiguration(
                        name="nic",
                        primary=True,
                        ip_configurations=[
                            VirtualMachineScaleSetIPConfiguration(
                                name="internal",
                                primary=True,
                                subnet=ApiEntityReference(id=SUBNET_ID),
                                private_ip_address_version="IPv4",
                            )
                        ],
                    )
                ]
            ),
        ),
    )
    vmss.id = VMSS_ID
    vmss.unique_id = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"
    return vmss


def refreshed_state(handler, context, response):
    """The state a read of ``response`` produces."""
    context.compute_client.virtual_machine_scale_sets.get.return_value = response
    d = ResourceData(handler.schema(), state={"id": VMSS_ID})
    handler.read(d, context)
    return d.state()


@pytest.fixture
def client(compute_client):
    return compute_client.virtual_machine_scale_sets


class TestScaleSetValidation:
    """Test plan-time validation."""

    def validate(self, **overrides):
        handler = LinuxVirtualMachineScaleSetHandler()
        d = ResourceData(handler.schema(), config=linux_config(**overrides))
        return handler.validate(d)

    def test_valid(self):
        assert self.validate() == []

    def test_rolling_requires_policy_and_health_check(self):
        errors = self.validate(upgrade_mode="Rolling")
        assert len(errors) == 2
        assert "a `rolling_upgrade_policy` block must be specified" in errors[0]
        assert "`health_probe_id` must be set" in errors[1]

    def test_rolling_with_health_extension(self):
        errors = self.validate(
            upgrade_mode="Rolling",
            rolling_upgrade_policy=[ROLLING_POLICY],
            extension=[HEALTH_EXTENSION],
        )
        assert errors == []

    def test_rolling_policy_needs_rolling_mode(self):
        errors = self.validate(rolling_upgrade_policy=[ROLLING_POLICY])
        assert errors == [
            "a `rolling_upgrade_policy` block cannot be specified when "
            "`upgrade_mode` is set to 'Manual'"
        ]

    def test_automatic_os_upgrade_needs_automatic_mode(self):
        errors = self.validate(
            automatic_os_upgrade_policy=[
                {"disable_automatic_rollback": False, "enable_automatic_os_upgrade": True}
            ]
        )
        assert len(errors) == 1
        assert "automatic_os_upgrade_policy" in errors[0]

    def test_max_bid_price_requires_spot(self):
        errors = self.validate(max_bid_price=0.5)
        assert errors == [
            "`max_bid_price` can only be configured when `priority` is set to `Spot`"
        ]

    def test_spot_requires_eviction_policy(self):
        errors = self.validate(priority="Spot")
        assert errors == [
            "an `eviction_policy` must be specified when `priority` is set to `Spot`"
        ]

    def test_zone_balance_requires_zones(self):
        assert self.validate(zone_balance=True) == [
            "`zone_balance` can only be set to `true` when zones are specified"
        ]
        assert self.validate(zone_balance=True, zones=["1", "2"]) == []

    def test_default_prefix_must_be_valid(self):
        errors = self.validate(name="vmss_1")
        assert len(errors) == 1
        assert errors[0].startswith("unable to assume default computer name prefix")

    def test_linux_authentication(self):
        errors = self.validate(admin_ssh_key=[])
        assert errors == [
            "at least one SSH key must be specified if "
            "`disable_password_authentication` is enabled"
        ]


class TestScaleSetCreate:
    """Test creating scale sets."""

    def test_create_linux(self, context, client, poller):
        client.get.side_effect = [not_found(), vmss_response()]
        client.begin_create_or_update.return_value = poller()
        d = ResourceData(LinuxVirtualMachineScaleSetHandler.schema(), config=linux_config())

        LinuxVirtualMachineScaleSetHandler().create(d, context)

        rg, name, params = client.begin_create_or_update.call_args.args
        assert (rg, name) == (RESOURCE_GROUP, "vmss1")
        assert params.sku.name == "Standard_F2"
        assert params.sku.tier == "Standard"
        assert params.sku.capacity == 2
        assert params.upgrade_policy.mode == "Manual"
        assert params.upgrade_policy.rolling_upgrade_policy is None
        assert params.scale_in_policy.rules == ["Default"]
        assert params.zones is None

        profile = params.virtual_machine_profile
        assert profile.priority == "Regular"
        assert profile.billing_profile is None
        assert profile.os_profile.computer_name_prefix == "vmss1"
        assert profile.storage_profile.os_disk.os_type == "Linux"
        assert profile.storage_profile.data_disks == []
        assert profile.extension_profile.extensions_time_budget == "PT1H30M"
        ip_configuration = (
            profile.network_profile.network_interface_configurations[0].ip_configurations[0]
        )
        assert ip_configuration.subnet.id == SUBNET_ID

        state = d.state()
        assert state["id"] == VMSS_ID
        assert state["unique_id"] == "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"
        assert state["terminate_notification"] == [{"enabled": False, "timeout": "PT5M"}]

    def test_create_validates_before_sending(self, context, client):
        client.get.side_effect = not_found()
        d = ResourceData(
            LinuxVirtualMachineScaleSetHandler.schema(),
            config=linux_config(priority="Spot"),
        )

        with pytest.raises(SchemaValidationError, match="eviction_policy"):
            LinuxVirtualMachineScaleSetHandler().create(d, context)
        client.begin_create_or_update.assert_not_called()

    def test_create_spot(self, context, client, poller):
        client.get.side_effect = [not_found(), vmss_response()]
        client.begin_create_or_update.return_value = poller()
        d = ResourceData(
            LinuxVirtualMachineScaleSetHandler.schema(),
            config=linux_config(priority="Spot", eviction_policy="Delete", max_bid_price=0.5),
        )

        LinuxVirtualMachineScaleSetHandler().create(d, context)

        profile = client.begin_create_or_update.call_args.args[2].virtual_machine_profile
        assert profile.billing_profile.max_price == 0.5
        assert profile.eviction_policy == "Delete"


class TestScaleSetUpdate:
    """Test updating scale sets."""

    def test_scale_out_only_changes_capacity(self, context, compute_client, client, poller):
        handler = LinuxVirtualMachineScaleSetHandler()
        state = refreshed_state(handler, context, vmss_response())
        client.begin_update.return_value = poller()
        d = ResourceData(handler.schema(), config=linux_config(instances=3), state=state)

        handler.update(d, context)

        update = client.begin_update.call_args.args[2]
        assert update.sku.name == "Standard_F2"
        assert update.sku.capacity == 3
        assert update.upgrade_policy.mode == "Manual"
        assert update.virtual_machine_profile.storage_profile.image_reference.offer == (
            "UbuntuServer"
        )
        assert update.virtual_machine_profile.os_profile is None
        assert update.tags is None
        compute_client.virtual_machine_scale_set_vms.list.assert_not_called()

    def test_sku_change_rolls_outdated_instances(self, context, compute_client, client, poller):
        handler = LinuxVirtualMachineScaleSetHandler()
        state = refreshed_state(handler, context, vmss_response())
        client.begin_update.return_value = poller()
        client.begin_update_instances.return_value = poller()
        compute_client.virtual_machine_scale_set_vms.list.return_value = [
            Mock(instance_id="0", latest_model_applied=True),
            Mock(instance_id="1", latest_model_applied=False),
        ]
        d = ResourceData(handler.schema(), config=linux_config(sku="Standard_F4"), state=state)

        handler.update(d, context)

        client.begin_update_instances.assert_called_once()
        rg, name, required = client.begin_update_instances.call_args.args
        assert (rg, name) == (RESOURCE_GROUP, "vmss1")
        assert required.instance_ids == ["1"]

    def test_rolling_disabled_by_feature(self, context, compute_client, client, poller):
        context.features.virtual_machine_scale_set.roll_instances_when_required = False
        handler = LinuxVirtualMachineScaleSetHandler()
        state = refreshed_state(handler, context, vmss_response())
        client.begin_update.return_value = poller()
        d = ResourceData(handler.schema(), config=linux_config(sku="Standard_F4"), state=state)

        handler.update(d, context)

        compute_client.virtual_machine_scale_set_vms.list.assert_not_called()

    def test_automatic_mode_is_not_rolled(self, context, compute_client, client, poller):
        handler = LinuxVirtualMachineScaleSetHandler()
        state = refreshed_state(handler, context, vmss_response(upgrade_mode="Automatic"))
        client.begin_update.return_value = poller()
        d = ResourceData(
            handler.schema(),
            config=linux_config(upgrade_mode="Automatic", sku="Standard_F4"),
            state=state,
        )

        handler.update(d, context)

        compute_client.virtual_machine_scale_set_vms.list.assert_not_called()

    def test_ssh_key_change_updates_os_profile(self, context, client, poller):
        handler = LinuxVirtualMachineScaleSetHandler()
        state = refreshed_state(handler, context, vmss_response())
        client.begin_update.return_value = poller()
        other_key = SSH_KEY.replace("adminuser@example", "other@example")
        d = ResourceData(
            handler.schema(),
            config=linux_config(
                admin_ssh_key=[{"username": "adminuser", "public_key": other_key}]
            ),
            state=state,
        )

        handler.update(d, context)

        linux = client.begin_update.call_args.args[2].virtual_machine_profile.os_profile
        assert linux.linux_configuration.ssh.public_keys[0].key_data == other_key
        assert linux.linux_configuration.disable_password_authentication is None

    def test_max_bid_price_change_requires_spot(self, context, client):
        handler = LinuxVirtualMachineScaleSetHandler()
        state = refreshed_state(handler, context, vmss_response())
        d = ResourceData(handler.schema(), config=linux_config(max_bid_price=1.5), state=state)

        with pytest.raises(SchemaValidationError, match="max_bid_price"):
            handler.update(d, context)
        client.begin_update.assert_not_called()

    def test_windows_automatic_updates_locked_in_automatic_mode(self, context, client):
        handler = WindowsVirtualMachineScaleSetHandler()
        state = refreshed_state(
            handler, context, vmss_response(windows=True, upgrade_mode="Automatic")
        )
        state["enable_automatic_updates"] = True
        d = ResourceData(
            handler.schema(),
            config=windows_config(upgrade_mode="Automatic", enable_automatic_updates=False),
            state=state,
        )

        with pytest.raises(SchemaValidationError, match="enable_automatic_updates"):
            handler.update(d, context)

    def test_windows_license_none_is_unset(self):
        assert license_type_diff_suppress("None", "")
        assert license_type_diff_suppress("", "None")
        assert not license_type_diff_suppress("Windows_Server", "")


class TestScaleSetImportAndDelete:
    """Test importing and deleting scale sets."""

    def test_import_without_ssh_keys_sets_password_placeholder(self, context, client):
        client.get.return_value = vmss_response(ssh_keys=False)
        d = ResourceData(LinuxVirtualMachineScaleSetHandler.schema(), state={"id": VMSS_ID})

        LinuxVirtualMachineScaleSetHandler().import_state(d, context)

        assert d.state()["admin_password"] == "ignored-as-imported"

    def test_import_with_ssh_keys_has_no_password(self, context, client):
        client.get.return_value = vmss_response()
        d = ResourceData(LinuxVirtualMachineScaleSetHandler.schema(), state={"id": VMSS_ID})

        LinuxVirtualMachineScaleSetHandler().import_state(d, context)

        assert d.state()["admin_password"] == ""

    def test_import_rejects_other_os(self, context, client):
        client.get.return_value = vmss_response(windows=True)
        d = ResourceData(LinuxVirtualMachineScaleSetHandler.schema(), state={"id": VMSS_ID})

        with pytest.raises(SchemaValidationError, match="only supports Linux"):
            LinuxVirtualMachineScaleSetHandler().import_state(d, context)

    def test_delete(self, context, client, poller):
        client.get.return_value = vmss_response()
        client.begin_delete.return_value = poller()
        d = ResourceData(LinuxVirtualMachineScaleSetHandler.schema(), state={"id": VMSS_ID})

        LinuxVirtualMachineScaleSetHandler().delete(d, context)

        client.begin_delete.assert_called_once_with(RESOURCE_GROUP, "vmss1")

    def test_delete_missing(self, context, client):
        client.get.side_effect = not_found()
        d = ResourceData(LinuxVirtualMachineScaleSetHandler.schema(), state={"id": VMSS_ID})

        LinuxVirtualMachineScaleSetHandler().delete(d, context)

        client.begin_delete.assert_not_called()
