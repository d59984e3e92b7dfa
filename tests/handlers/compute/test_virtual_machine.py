"""Tests for the Linux and Windows Virtual Machine handlers.

Test coverage:
- Plan-time validation of computer names and Linux authentication
- Create builds the full VM model, including the OS specific profile
- Read flattens the VM and looks up IP addresses through the network interfaces
- Update deallocates only for changes which need it
- Delete powers off, deletes, and removes the OS disk when enabled
- Import rejects machines running the other OS
"""

import pytest
from azure.mgmt.compute.models import (
    HardwareProfile,
    ImageReference,
    InstanceViewStatus,
    LinuxConfiguration,
    ManagedDiskParameters,
    NetworkInterfaceReference,
    NetworkProfile,
    OSDisk,
    OSProfile,
    SshConfiguration,
    SshPublicKey,
    StorageProfile,
    VirtualMachine,
    VirtualMachineInstanceView,
    WindowsConfiguration,
)
from azure.mgmt.resource.resources.models import GenericResource

from azurestack_compute.exceptions import (
    RequiresImportError,
    SchemaValidationError,
)
from azurestack_compute.handlers.compute import (
    LinuxVirtualMachineHandler,
    WindowsVirtualMachineHandler,
)
from azurestack_compute.resource_data import ResourceData

from ...conftest import LOCATION, NIC_ID, RESOURCE_GROUP, compute_id, not_found

VM_ID = compute_id("virtualMachines", "vm1")
OS_DISK_ID = compute_id("disks", "vm1-osdisk")
PUBLIC_IP_ID = NIC_ID.replace("networkInterfaces/test-nic", "publicIPAddresses/test-pip")
SSH_KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQAB adminuser@example"
IMAGE = {
    "publisher": "Canonical",
    "offer": "UbuntuServer",
    "sku": "18.04-LTS",
    "version": "latest",
}


def linux_config(**overrides):
    config = {
        "name": "vm1",
        "resource_group_name": RESOURCE_GROUP,
        "location": LOCATION,
        "size": "Standard_F2",
        "admin_username": "adminuser",
        "network_interface_ids": [NIC_ID],
        "os_disk": [{"caching": "ReadWrite", "storage_account_type": "Standard_LRS"}],
        "source_image_reference": [dict(IMAGE)],
        "admin_ssh_key": [{"username": "adminuser", "public_key": SSH_KEY}],
    }
    config.update(overrides)
    return config


def windows_config(**overrides):
    config = linux_config(
        admin_password="P@ssw0rd1234!",
        license_type="Windows_Server",
        timezone="UTC",
    )
    del config["admin_ssh_key"]
    config.update(overrides)
    return config


def vm_state(config, **overrides):
    state = dict(
        config,
        id=VM_ID,
        allow_extension_operations=True,
        os_disk=[
            {
                "name": "vm1-osdisk",
                "caching": "ReadWrite",
                "storage_account_type": "Standard_LRS",
                "disk_size_gb": 30,
                "write_accelerator_enabled": False,
            }
        ],
    )
    state.update(overrides)
    return state


def vm_response(windows=False, size="Standard_F2", provisioning_state="Succeeded"):
    os_profile = OSProfile(admin_username="adminuser", computer_name="vm1")
    if windows:
        os_profile.windows_configuration = WindowsConfiguration(
            enable_automatic_updates=True, provision_vm_agent=True, time_zone="UTC"
        )
    else:
        os_profile.linux_configuration = LinuxConfiguration(
            disable_password_authentication=True,
            provision_vm_agent=True,
            ssh=SshConfiguration(
                public_keys=[
                    SshPublicKey(
                        path="/home/adminuser/.ssh/authorized_keys", key_data=SSH_KEY
                    )
                ]
            ),
        )

    vm = VirtualMachine(
        location="local",
        hardware_profile=HardwareProfile(vm_size=size),
        os_profile=os_profile,
        network_profile=NetworkProfile(
            network_interfaces=[NetworkInterfaceReference(id=NIC_ID, primary=True)]
        ),
        storage_profile=StorageProfile(
            image_reference=ImageReference(**IMAGE),
            os_disk=OSDisk(
                name="vm1-osdisk",
                caching="ReadWrite",
                create_option="FromImage",
                disk_size_gb=30,
                managed_disk=ManagedDiskParameters(
                    id=OS_DISK_ID, storage_account_type="Standard_LRS"
                ),
            ),
        ),
        license_type="Windows_Server" if windows else None,
        tags={"env": "test"},
    )
    vm.id = VM_ID
    vm.vm_id = "11111111-2222-3333-4444-555555555555"
    vm.provisioning_state = provisioning_state
    return vm


def running_view():
    return VirtualMachineInstanceView(
        statuses=[InstanceViewStatus(code="PowerState/running")]
    )


@pytest.fixture
def vms(compute_client):
    return compute_client.virtual_machines


class TestVirtualMachineValidation:
    """Test plan-time validation."""

    def test_valid_linux(self):
        d = ResourceData(LinuxVirtualMachineHandler.schema(), config=linux_config())
        assert LinuxVirtualMachineHandler().validate(d) == []

    def test_linux_requires_key_when_passwords_disabled(self):
        config = linux_config()
        del config["admin_ssh_key"]
        d = ResourceData(LinuxVirtualMachineHandler.schema(), config=config)
        errors = LinuxVirtualMachineHandler().validate(d)
        assert errors == [
            "at least one SSH key must be specified if "
            "`disable_password_authentication` is enabled"
        ]

    def test_linux_password_authentication_requires_password(self):
        d = ResourceData(
            LinuxVirtualMachineHandler.schema(),
            config=linux_config(disable_password_authentication=False),
        )
        errors = LinuxVirtualMachineHandler().validate(d)
        assert len(errors) == 1
        assert "admin_password" in errors[0]

    def test_default_computer_name_must_be_valid(self):
        d = ResourceData(
            WindowsVirtualMachineHandler.schema(),
            config=windows_config(name="windows-machine-01"),
        )
        errors = WindowsVirtualMachineHandler().validate(d)
        assert len(errors) == 1
        assert errors[0].startswith("unable to assume default computer name")

    def test_explicit_computer_name(self):
        d = ResourceData(
            WindowsVirtualMachineHandler.schema(),
            config=windows_config(name="windows-machine-01", computer_name="win01"),
        )
        assert WindowsVirtualMachineHandler().validate(d) == []


class TestVirtualMachineCreate:
    """Test creating virtual machines."""

    def test_create_linux(self, context, vms, poller):
        vms.get.side_effect = [not_found(), vm_response()]
        vms.begin_create_or_update.return_value = poller()
        d = ResourceData(LinuxVirtualMachineHandler.schema(), config=linux_config())

        LinuxVirtualMachineHandler().create(d, context)

        rg, name, params = vms.begin_create_or_update.call_args.args
        assert (rg, name) == (RESOURCE_GROUP, "vm1")
        assert params.hardware_profile.vm_size == "Standard_F2"
        assert params.os_profile.computer_name == "vm1"
        assert params.os_profile.admin_password is None
        linux = params.os_profile.linux_configuration
        assert linux.disable_password_authentication is True
        assert linux.ssh.public_keys[0].path == "/home/adminuser/.ssh/authorized_keys"
        assert params.network_profile.network_interfaces[0].primary is True
        assert params.storage_profile.image_reference.offer == "UbuntuServer"
        assert params.storage_profile.os_disk.os_type == "Linux"
        assert params.diagnostics_profile.boot_diagnostics.enabled is False
        assert params.availability_set is None

        state = d.state()
        assert state["id"] == VM_ID
        assert state["virtual_machine_id"] == "11111111-2222-3333-4444-555555555555"
        assert state["os_disk"][0]["disk_size_gb"] == 30
        assert state["admin_ssh_key"] == [{"public_key": SSH_KEY, "username": "adminuser"}]
        assert state["private_ip_address"] == ""

    def test_create_windows(self, context, vms, poller):
        vms.get.side_effect = [not_found(), vm_response(windows=True)]
        vms.begin_create_or_update.return_value = poller()
        avset_id = compute_id("availabilitySets", "avset1")
        d = ResourceData(
            WindowsVirtualMachineHandler.schema(),
            config=windows_config(availability_set_id=avset_id),
        )

        WindowsVirtualMachineHandler().create(d, context)

        params = vms.begin_create_or_update.call_args.args[2]
        assert params.license_type == "Windows_Server"
        assert params.os_profile.admin_password == "P@ssw0rd1234!"
        assert params.os_profile.windows_configuration.time_zone == "UTC"
        assert params.os_profile.linux_configuration is None
        assert params.availability_set.id == avset_id
        assert d.state()["license_type"] == "Windows_Server"

    def test_create_existing_requires_import(self, context, vms):
        vms.get.return_value = vm_response()
        d = ResourceData(LinuxVirtualMachineHandler.schema(), config=linux_config())

        with pytest.raises(RequiresImportError):
            LinuxVirtualMachineHandler().create(d, context)


class TestVirtualMachineRead:
    """Test reading virtual machines."""

    def test_read_looks_up_ip_addresses(self, context, vms, resource_client):
        context.resource_client = resource_client
        vms.get.return_value = vm_response()
        network = {
            NIC_ID: GenericResource(
                properties={
                    "ipConfigurations": [
                        {
                            "properties": {
                                "privateIPAddress": "10.0.0.4",
                                "publicIPAddress": {"id": PUBLIC_IP_ID},
                            }
                        }
                    ]
                }
            ),
            PUBLIC_IP_ID: GenericResource(properties={"ipAddress": "203.0.113.10"}),
        }
        resource_client.resources.get_by_id.side_effect = (
            lambda resource_id, api_version: network[resource_id]
        )
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state={"id": VM_ID})

        LinuxVirtualMachineHandler().read(d, context)

        state = d.state()
        assert state["private_ip_address"] == "10.0.0.4"
        assert state["public_ip_addresses"] == ["203.0.113.10"]
        assert state["source_image_reference"] == [IMAGE]
        assert state["source_image_id"] == ""
        assert state["network_interface_ids"] == [NIC_ID]

    def test_read_missing(self, context, vms):
        vms.get.side_effect = not_found()
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state={"id": VM_ID})
        LinuxVirtualMachineHandler().read(d, context)
        assert d.state() is None


class TestVirtualMachineUpdate:
    """Test updating virtual machines."""

    def test_resize_deallocates(self, context, vms, poller):
        vms.get.return_value = vm_response(size="Standard_F4")
        vms.instance_view.return_value = running_view()
        vms.begin_update.return_value = poller()
        config = linux_config(size="Standard_F4")
        d = ResourceData(
            LinuxVirtualMachineHandler.schema(),
            config=config,
            state=vm_state(linux_config()),
        )

        LinuxVirtualMachineHandler().update(d, context)

        vms.begin_deallocate.assert_called_once_with(RESOURCE_GROUP, "vm1")
        update = vms.begin_update.call_args.args[2]
        assert update.hardware_profile.vm_size == "Standard_F4"
        vms.begin_start.assert_called_once_with(RESOURCE_GROUP, "vm1")

    def test_tags_update_in_place(self, context, vms, poller):
        vms.get.return_value = vm_response()
        vms.begin_update.return_value = poller()
        d = ResourceData(
            LinuxVirtualMachineHandler.schema(),
            config=linux_config(tags={"env": "prod"}),
            state=vm_state(linux_config()),
        )

        LinuxVirtualMachineHandler().update(d, context)

        vms.instance_view.assert_not_called()
        update = vms.begin_update.call_args.args[2]
        assert update.tags == {"env": "prod"}
        assert update.hardware_profile is None

    def test_resize_os_disk(self, context, compute_client, vms, poller):
        vms.get.return_value = vm_response()
        vms.instance_view.return_value = running_view()
        compute_client.disks.begin_update.return_value = poller()
        config = linux_config(
            os_disk=[
                {
                    "caching": "ReadWrite",
                    "storage_account_type": "Standard_LRS",
                    "disk_size_gb": 64,
                }
            ]
        )
        d = ResourceData(
            LinuxVirtualMachineHandler.schema(),
            config=config,
            state=vm_state(linux_config()),
        )

        LinuxVirtualMachineHandler().update(d, context)

        rg, disk_name, disk_update = compute_client.disks.begin_update.call_args.args
        assert (rg, disk_name) == (RESOURCE_GROUP, "vm1-osdisk")
        assert disk_update.disk_size_gb == 64
        vms.begin_deallocate.assert_called_once()
        vms.begin_update.assert_not_called()

    def test_shrink_os_disk_is_rejected(self, context, vms):
        vms.get.return_value = vm_response()
        config = linux_config(
            os_disk=[
                {
                    "caching": "ReadWrite",
                    "storage_account_type": "Standard_LRS",
                    "disk_size_gb": 10,
                }
            ]
        )
        d = ResourceData(
            LinuxVirtualMachineHandler.schema(),
            config=config,
            state=vm_state(linux_config()),
        )

        with pytest.raises(SchemaValidationError, match="Shrinking disks"):
            LinuxVirtualMachineHandler().update(d, context)

    def test_windows_license_removal(self, context, vms, poller):
        vms.get.return_value = vm_response(windows=True)
        vms.begin_update.return_value = poller()
        config = windows_config()
        del config["license_type"]
        d = ResourceData(
            WindowsVirtualMachineHandler.schema(),
            config=config,
            state=vm_state(windows_config()),
        )

        WindowsVirtualMachineHandler().update(d, context)

        assert vms.begin_update.call_args.args[2].license_type == "None"


class TestVirtualMachineDelete:
    """Test deleting virtual machines."""

    def test_delete_powers_off_and_removes_os_disk(self, context, compute_client, vms, poller):
        vms.get.return_value = vm_response()
        vms.begin_power_off.return_value = poller()
        vms.begin_delete.return_value = poller()
        compute_client.disks.begin_delete.return_value = poller()
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state=vm_state(linux_config()))

        LinuxVirtualMachineHandler().delete(d, context)

        vms.begin_power_off.assert_called_once_with(RESOURCE_GROUP, "vm1", skip_shutdown=True)
        vms.begin_delete.assert_called_once_with(RESOURCE_GROUP, "vm1")
        compute_client.disks.begin_delete.assert_called_once_with(RESOURCE_GROUP, "vm1-osdisk")

    def test_delete_keeps_os_disk_when_disabled(self, context, compute_client, vms, poller):
        context.features.virtual_machine.delete_os_disk_on_deletion = False
        context.features.virtual_machine.graceful_shutdown = True
        vms.get.return_value = vm_response()
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state=vm_state(linux_config()))

        LinuxVirtualMachineHandler().delete(d, context)

        vms.begin_power_off.assert_called_once_with(RESOURCE_GROUP, "vm1", skip_shutdown=False)
        compute_client.disks.begin_delete.assert_not_called()

    def test_delete_failed_machine_skips_power_off(self, context, vms):
        vms.get.return_value = vm_response(provisioning_state="Failed")
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state=vm_state(linux_config()))

        LinuxVirtualMachineHandler().delete(d, context)

        vms.begin_power_off.assert_not_called()
        vms.begin_delete.assert_called_once()

    def test_delete_missing_machine(self, context, vms):
        vms.get.side_effect = not_found()
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state=vm_state(linux_config()))

        LinuxVirtualMachineHandler().delete(d, context)

        vms.begin_delete.assert_not_called()


class TestVirtualMachineImport:
    """Test importing virtual machines."""

    def test_import_rejects_other_os(self, context, vms):
        vms.get.return_value = vm_response(windows=True)
        d = ResourceData(LinuxVirtualMachineHandler.schema(), state={"id": VM_ID})

        with pytest.raises(SchemaValidationError, match="only supports Linux"):
            LinuxVirtualMachineHandler().import_state(d, context)

    def test_import_matching_os(self, context, vms):
        vms.get.return_value = vm_response(windows=True)
        d = ResourceData(WindowsVirtualMachineHandler.schema(), state={"id": VM_ID})
        WindowsVirtualMachineHandler().import_state(d, context)
