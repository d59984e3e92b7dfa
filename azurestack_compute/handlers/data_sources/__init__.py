"""Data source handlers."""

from .availability_set_data_source import AvailabilitySetDataSource
from .image_data_source import ImageDataSource
from .managed_disk_data_source import ManagedDiskDataSource
from .platform_image_data_source import PlatformImageDataSource

__all__ = [
    "AvailabilitySetDataSource",
    "ImageDataSource",
    "ManagedDiskDataSource",
    "PlatformImageDataSource",
]
