"""
Custom Exception Hierarchy for the Azure Stack Compute provider

This module provides the exception hierarchy used by the resource handlers,
the resource ID parsers and the provider engine, so that every failure
carries an error code, structured context and (where useful) a recovery
suggestion.
"""

from typing import Any, Dict, List, Optional


class ProviderError(Exception):
    """
    Base exception class for all provider errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


# Resource ID errors
class ResourceIdParseError(ProviderError):
    """Raised when a resource ID string does not match the expected format."""

    def __init__(
        self,
        message: str,
        resource_id: Optional[str] = None,
        id_type: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if resource_id is not None:
            context["resource_id"] = resource_id
        if id_type:
            context["id_type"] = id_type
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_RESOURCE_ID")
        super().__init__(message, **kwargs)


# Azure-related exceptions
class AzureError(ProviderError):
    """Base class for Azure-related errors."""

    pass


class AzureApiError(AzureError):
    """Raised when a Compute API call fails with anything other than not-found."""

    def __init__(
        self, message: str, resource_id: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if resource_id:
            context["resource_id"] = resource_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AZURE_API_ERROR")
        super().__init__(message, **kwargs)


class RequiresImportError(AzureError):
    """Raised when creating a resource which already exists remotely."""

    def __init__(self, resource_type: str, resource_id: str, **kwargs: Any) -> None:
        message = (
            f'A resource with the ID "{resource_id}" already exists - to be managed '
            "via Terraform this resource needs to be imported into the State. "
            f'Please see the resource documentation for "{resource_type}" for more '
            "information."
        )
        self.resource_type = resource_type
        self.resource_id = resource_id
        kwargs.setdefault("error_code", "REQUIRES_IMPORT")
        kwargs.setdefault(
            "recovery_suggestion",
            f"Run 'azurestack-compute import' for {resource_type} with this ID",
        )
        super().__init__(message, **kwargs)


class ResourceNotFoundError(AzureError):
    """Raised when an object which must exist (a data source, a parent) is missing."""

    def __init__(
        self, message: str, resource_id: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if resource_id:
            context["resource_id"] = resource_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", "RESOURCE_NOT_FOUND")
        super().__init__(message, **kwargs)


class OperationTimeoutError(AzureError):
    """Raised when a long-running operation does not finish within its timeout."""

    def __init__(
        self, message: str, timeout_seconds: Optional[float] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if timeout_seconds is not None:
            context["timeout_seconds"] = timeout_seconds
        kwargs["context"] = context
        kwargs.setdefault("error_code", "OPERATION_TIMEOUT")
        super().__init__(message, **kwargs)


# Configuration-related exceptions
class ConfigurationError(ProviderError):
    """Base class for configuration-related errors."""

    pass


class ConfigurationValidationError(ConfigurationError):
    """Raised when provider configuration is invalid."""

    def __init__(
        self, message: str, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_CONFIG")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check the ARM_* environment variables or your .env file",
        )
        super().__init__(message, **kwargs)


class SchemaValidationError(ConfigurationError):
    """Raised when a resource block does not satisfy its schema."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        diagnostics: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.diagnostics = list(diagnostics or [])
        context = kwargs.get("context", {})
        if address:
            context["address"] = address
        kwargs["context"] = context
        kwargs.setdefault("error_code", "SCHEMA_VALIDATION_FAILED")
        if self.diagnostics:
            message = message + ": " + "; ".join(self.diagnostics)
        super().__init__(message, **kwargs)


# Engine-related exceptions
class EngineError(ProviderError):
    """Base class for plan/apply errors."""

    pass


class PlanError(EngineError):
    """Raised when a configuration cannot be planned (cycles, bad references)."""

    def __init__(
        self, message: str, address: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = kwargs.get("context", {})
        if address:
            context["address"] = address
        kwargs["context"] = context
        kwargs.setdefault("error_code", "PLAN_FAILED")
        super().__init__(message, **kwargs)


class StateError(EngineError):
    """Raised when the state file cannot be read or written."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if path:
            context["path"] = path
        kwargs["context"] = context
        kwargs.setdefault("error_code", "STATE_ERROR")
        super().__init__(message, **kwargs)


def wrap_azure_exception(
    exc: Exception, operation: str, resource_id: Optional[str] = None
) -> AzureApiError:
    """
    Wrap an Azure SDK exception in our exception hierarchy.

    Args:
        exc: The original exception
        operation: What was being attempted, e.g. "creating Managed Disk"
        resource_id: The ID of the resource involved, if known

    Returns:
        AzureApiError: Wrapped exception; the SDK message is kept as the cause
    """
    message = f"{operation} {resource_id}" if resource_id else operation
    return AzureApiError(message, cause=exc)
