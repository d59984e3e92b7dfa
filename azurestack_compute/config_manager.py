import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import colorlog
from dotenv import load_dotenv

from .exceptions import ConfigurationValidationError

# Load environment variables
load_dotenv(override=True)

"""
Configuration Management for the Azure Stack Compute provider

This module provides centralized configuration management with validation,
environment variable handling, and logging setup.
"""

GUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def _set_azure_http_log_level(log_level: str) -> None:
    """Set log levels for HTTP-related loggers to reduce noise."""
    http_loggers = [
        "azure.core.pipeline.policies.http_logging_policy",
        "azure.core.pipeline",
        "azure.identity",
        "azure.mgmt",
        "azure",
        "urllib3",
        "urllib3.connectionpool",
        "http.client",
    ]
    # HTTP logging should only appear at DEBUG level
    target_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in http_loggers:
        logging.getLogger(name).setLevel(target_level)


logger = logging.getLogger(__name__)


@dataclass
class AzureStackConfig:
    """Connection settings for the Azure Stack Hub Resource Manager."""

    arm_endpoint: str = field(default_factory=lambda: os.getenv("ARM_ENDPOINT", ""))
    subscription_id: str = field(
        default_factory=lambda: os.getenv("ARM_SUBSCRIPTION_ID", "")
    )
    tenant_id: str = field(default_factory=lambda: os.getenv("ARM_TENANT_ID", ""))
    client_id: Optional[str] = field(default_factory=lambda: os.getenv("ARM_CLIENT_ID"))
    client_secret: Optional[str] = field(
        default_factory=lambda: os.getenv("ARM_CLIENT_SECRET")
    )
    authority_host: Optional[str] = field(
        default_factory=lambda: os.getenv("ARM_AUTHORITY_HOST")
    )
    api_version: Optional[str] = field(
        default_factory=lambda: os.getenv("ARM_API_VERSION")
    )

    def __post_init__(self) -> None:
        """Normalise the endpoint; presence is checked by validate()."""
        self.arm_endpoint = (self.arm_endpoint or "").strip().rstrip("/")
        if self.arm_endpoint:
            parsed = urlparse(self.arm_endpoint)
            if parsed.scheme != "https" or not parsed.netloc:
                raise ValueError(
                    f"ARM endpoint must be an https URL, got {self.arm_endpoint!r}"
                )

    def validate(self) -> None:
        """Validate that everything needed to talk to Azure Stack is present."""
        if not self.arm_endpoint:
            raise ValueError("ARM_ENDPOINT is required")
        if not self.subscription_id:
            raise ValueError("ARM_SUBSCRIPTION_ID is required")
        if not GUID_PATTERN.match(self.subscription_id):
            raise ValueError(
                f"ARM_SUBSCRIPTION_ID must be a GUID, got {self.subscription_id!r}"
            )
        if self.client_secret and not (self.client_id and self.tenant_id):
            raise ValueError(
                "ARM_CLIENT_ID and ARM_TENANT_ID are required when ARM_CLIENT_SECRET is set"
            )

    def uses_service_principal(self) -> bool:
        return bool(self.client_id and self.client_secret and self.tenant_id)

    def credential_scope(self) -> str:
        """The token scope used for the Resource Manager endpoint."""
        return f"{self.arm_endpoint}/.default"


@dataclass
class EngineConfig:
    """Configuration for plan/apply behaviour."""

    parallelism: int = field(
        default_factory=lambda: int(os.getenv("ARM_PARALLELISM", "10"))
    )
    state_path: str = field(
        default_factory=lambda: os.getenv(
            "AZURESTACK_STATE_FILE", "azurestack-compute.tfstate.json"
        )
    )

    def __post_init__(self) -> None:
        """Validate engine configuration."""
        if self.parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if not self.state_path:
            raise ValueError("A state file path is required")


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(log_color)s%(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        self.level = self.level.upper()

    def get_log_level(self) -> int:
        """Convert string log level to logging constant."""
        level_attr = getattr(logging, self.level, None)
        if level_attr is None:
            raise ValueError(f"Invalid log level: {self.level}")
        return int(level_attr)


@dataclass
class ProviderConfig:
    """Main configuration class that aggregates all configuration sections."""

    azure: AzureStackConfig = field(default_factory=AzureStackConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_environment(
        cls,
        subscription_id: Optional[str] = None,
        parallelism: Optional[int] = None,
        state_path: Optional[str] = None,
    ) -> "ProviderConfig":
        """
        Create configuration from environment variables.

        Args:
            subscription_id: Optional override for ARM_SUBSCRIPTION_ID
            parallelism: Optional override for ARM_PARALLELISM
            state_path: Optional override for the state file location

        Returns:
            ProviderConfig: Configured instance
        """
        config = cls()
        if subscription_id:
            config.azure.subscription_id = subscription_id
        if parallelism is not None:
            config.engine.parallelism = parallelism
        if state_path:
            config.engine.state_path = state_path
        return config

    def validate_all(self, require_azure: bool = True) -> None:
        """Validate all configuration sections."""
        try:
            if require_azure:
                self.azure.validate()
            self.engine.__post_init__()
            self.logging.__post_init__()
        except ValueError as e:
            logger.error(f"❌ Configuration validation failed: {e}")
            raise ConfigurationValidationError(str(e), cause=e) from e

        logger.debug("✅ Configuration validation successful")

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration (without sensitive data)."""
        logger.info("=" * 60)
        logger.info("🔧 AZURE STACK COMPUTE PROVIDER CONFIGURATION")
        logger.info("=" * 60)
        logger.info(f"🌐 ARM Endpoint: {self.azure.arm_endpoint or 'Not configured'}")
        logger.info(f"📋 Subscription: {self.azure.subscription_id or 'Not configured'}")
        auth = (
            "Service Principal"
            if self.azure.uses_service_principal()
            else "DefaultAzureCredential"
        )
        logger.info(f"🔑 Authentication: {auth}")
        if self.azure.api_version:
            logger.info(f"   - Compute API Version: {self.azure.api_version}")
        logger.info("⚙️  Engine:")
        logger.info(f"   - Parallelism: {self.engine.parallelism}")
        logger.info(f"   - State File: {self.engine.state_path}")
        logger.info(f"📝 Logging Level: {self.logging.level}")
        if self.logging.file_output:
            logger.info(f"📄 Log File: {self.logging.file_output}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "azure": {
                "arm_endpoint": self.azure.arm_endpoint,
                "subscription_id": self.azure.subscription_id,
                "tenant_id": self.azure.tenant_id,
                "client_id": self.azure.client_id,
                # Don't include the client secret in serialization
                "authority_host": self.azure.authority_host,
                "api_version": self.azure.api_version,
            },
            "engine": {
                "parallelism": self.engine.parallelism,
                "state_path": self.engine.state_path,
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    _set_azure_http_log_level(config.level.upper())

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()  # Remove any existing handlers
    root_logger.setLevel(config.get_log_level())

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(config.format))
    root_logger.addHandler(console_handler)

    # Add file handler if file output is configured
    if config.file_output:
        file_handler = logging.FileHandler(config.file_output)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s:%(name)s:%(message)s"
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    if config.level.upper() != "DEBUG":
        # Suppress Azure HTTP logging policy verbose output
        logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(
            logging.WARNING
        )


def create_config_from_env(
    subscription_id: Optional[str] = None,
    parallelism: Optional[int] = None,
    state_path: Optional[str] = None,
    require_azure: bool = True,
) -> ProviderConfig:
    """
    Factory function to create and validate configuration from environment.

    Args:
        subscription_id: Optional subscription override
        parallelism: Optional max concurrent resource operations
        state_path: Optional state file location
        require_azure: Whether Azure connection settings must be present

    Returns:
        ProviderConfig: Validated configuration instance

    Raises:
        ConfigurationValidationError: If configuration is invalid
    """
    try:
        config = ProviderConfig.from_environment(subscription_id, parallelism, state_path)
    except ValueError as e:
        raise ConfigurationValidationError(str(e), cause=e) from e
    config.validate_all(require_azure=require_azure)
    return config
