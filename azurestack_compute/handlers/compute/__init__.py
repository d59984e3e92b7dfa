"""Compute resource handlers."""

from .availability_set import AvailabilitySetHandler
from .image import ImageHandler
from .linux_virtual_machine import LinuxVirtualMachineHandler
from .linux_virtual_machine_scale_set import LinuxVirtualMachineScaleSetHandler
from .managed_disk import ManagedDiskHandler
from .virtual_machine_data_disk_attachment import VirtualMachineDataDiskAttachmentHandler
from .virtual_machine_extension import VirtualMachineExtensionHandler
from .virtual_machine_scale_set_extension import VirtualMachineScaleSetExtensionHandler
from .windows_virtual_machine import WindowsVirtualMachineHandler
from .windows_virtual_machine_scale_set import WindowsVirtualMachineScaleSetHandler

__all__ = [
    "AvailabilitySetHandler",
    "ImageHandler",
    "LinuxVirtualMachineHandler",
    "LinuxVirtualMachineScaleSetHandler",
    "ManagedDiskHandler",
    "VirtualMachineDataDiskAttachmentHandler",
    "VirtualMachineExtensionHandler",
    "VirtualMachineScaleSetExtensionHandler",
    "WindowsVirtualMachineHandler",
    "WindowsVirtualMachineScaleSetHandler",
]
