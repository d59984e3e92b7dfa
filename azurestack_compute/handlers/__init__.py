"""Handler registry for Terraform type dispatch.

This module provides the HandlerRegistry class that manages registration
and lookup of resource and data source handlers by Terraform type.
"""

import logging
from typing import Dict, List, Optional, Tuple, Type

from .base_handler import KIND_DATA, KIND_RESOURCE, BaseHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Registry for handlers with type-based dispatch.

    Usage:
        @handler
        class MyHandler(ResourceHandler):
            HANDLED_TYPES = {"azurestack_managed_disk"}
            ...

        # Later:
        handler = HandlerRegistry.get_handler("azurestack_managed_disk")
        if handler:
            handler.read(d, context)
    """

    _handlers: List[Type[BaseHandler]] = []
    _type_cache: Dict[Tuple[str, str], Type[BaseHandler]] = {}

    @classmethod
    def register(cls, handler_class: Type[BaseHandler]) -> Type[BaseHandler]:
        """Register a handler class.

        Args:
            handler_class: Handler class to register

        Returns:
            The handler class (unchanged)
        """
        # Avoid duplicate registration
        if handler_class not in cls._handlers:
            cls._handlers.append(handler_class)

            for terraform_type in handler_class.HANDLED_TYPES:
                cls._type_cache[(handler_class.KIND, terraform_type.lower())] = (
                    handler_class
                )
                logger.debug(
                    f"Registered {handler_class.KIND} handler "
                    f"{handler_class.__name__} for {terraform_type}"
                )

        return handler_class

    @classmethod
    def get_handler(
        cls, terraform_type: str, kind: str = KIND_RESOURCE
    ) -> Optional[BaseHandler]:
        """Get handler instance for a Terraform type.

        Args:
            terraform_type: Terraform type (e.g., "azurestack_image")
            kind: "resource" or "data"

        Returns:
            Handler instance or None if no handler registered
        """
        key = (kind, terraform_type.lower())

        # Fast path: cached lookup
        if key in cls._type_cache:
            return cls._type_cache[key]()

        # Slow path: iterate handlers
        for handler_class in cls._handlers:
            if handler_class.KIND == kind and handler_class.can_handle(terraform_type):
                cls._type_cache[key] = handler_class
                return handler_class()

        return None

    @classmethod
    def get_all_supported_types(cls, kind: str = KIND_RESOURCE) -> List[str]:
        """Get all Terraform types of ``kind`` supported by registered handlers.

        Returns:
            Sorted list of supported types
        """
        types = set()
        for handler_class in cls._handlers:
            if handler_class.KIND == kind:
                types.update(handler_class.HANDLED_TYPES)
        return sorted(types)

    @classmethod
    def get_all_handlers(cls) -> List[Type[BaseHandler]]:
        """Get all registered handler classes.

        Returns:
            List of handler classes (copy)
        """
        return cls._handlers.copy()

    @classmethod
    def clear(cls) -> None:
        """Clear all registered handlers.

        Primarily for testing.
        """
        cls._handlers = []
        cls._type_cache = {}


def handler(cls: Type[BaseHandler]) -> Type[BaseHandler]:
    """Decorator to register a handler class.

    Usage:
        @handler
        class ImageHandler(ResourceHandler):
            HANDLED_TYPES = {"azurestack_image"}
            ...
    """
    return HandlerRegistry.register(cls)


# Import all handler modules to trigger registration
# This must be at the bottom after the registry is defined
def _register_all_handlers() -> None:
    """Import all handler modules to trigger registration."""
    from .compute import (  # noqa: F401
        availability_set,
        image,
        linux_virtual_machine,
        linux_virtual_machine_scale_set,
        managed_disk,
        virtual_machine_data_disk_attachment,
        virtual_machine_extension,
        virtual_machine_scale_set_extension,
        windows_virtual_machine,
        windows_virtual_machine_scale_set,
    )
    from .data_sources import (  # noqa: F401
        availability_set_data_source,
        image_data_source,
        managed_disk_data_source,
        platform_image_data_source,
    )


_register_all_handlers()


__all__ = [
    "KIND_DATA",
    "KIND_RESOURCE",
    "HandlerRegistry",
    "handler",
]
