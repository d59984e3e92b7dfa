"""
Tests for config_manager module.
"""

import logging
import os
from unittest.mock import patch

import pytest

from azurestack_compute.config_manager import (
    AzureStackConfig,
    EngineConfig,
    LoggingConfig,
    ProviderConfig,
    create_config_from_env,
    setup_logging,
)
from azurestack_compute.exceptions import ConfigurationValidationError

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"

AZURE_ENV = {
    "ARM_ENDPOINT": "https://management.local.azurestack.external/",
    "ARM_SUBSCRIPTION_ID": SUBSCRIPTION_ID,
    "ARM_TENANT_ID": "11111111-1111-1111-1111-111111111111",
    "ARM_CLIENT_ID": "22222222-2222-2222-2222-222222222222",
    "ARM_CLIENT_SECRET": "secret",
}


class TestAzureStackConfig:
    """Test cases for AzureStackConfig."""

    def test_values_from_environment(self):
        """Test that connection settings are read from ARM_* variables."""
        with patch.dict(os.environ, AZURE_ENV):
            config = AzureStackConfig()
            assert config.arm_endpoint == "https://management.local.azurestack.external"
            assert config.subscription_id == SUBSCRIPTION_ID
            assert config.uses_service_principal()

    def test_credential_scope(self):
        with patch.dict(os.environ, AZURE_ENV):
            config = AzureStackConfig()
            assert config.credential_scope() == (
                "https://management.local.azurestack.external/.default"
            )

    def test_endpoint_must_be_https(self):
        """Test that a plain http endpoint is rejected."""
        with patch.dict(os.environ, {"ARM_ENDPOINT": "http://management.local"}):
            with pytest.raises(ValueError, match="https URL"):
                AzureStackConfig()

    def test_validation_missing_endpoint(self):
        with patch.dict(os.environ, {**AZURE_ENV, "ARM_ENDPOINT": ""}):
            with pytest.raises(ValueError, match="ARM_ENDPOINT is required"):
                AzureStackConfig().validate()

    def test_validation_subscription_must_be_guid(self):
        with patch.dict(os.environ, {**AZURE_ENV, "ARM_SUBSCRIPTION_ID": "not-a-guid"}):
            with pytest.raises(ValueError, match="must be a GUID"):
                AzureStackConfig().validate()

    def test_validation_secret_requires_client_and_tenant(self):
        """Test that a client secret without a client ID is rejected."""
        with patch.dict(os.environ, {**AZURE_ENV, "ARM_CLIENT_ID": ""}):
            with pytest.raises(ValueError, match="ARM_CLIENT_ID and ARM_TENANT_ID"):
                AzureStackConfig().validate()


class TestEngineConfig:
    """Test cases for EngineConfig."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = EngineConfig()
            assert config.parallelism == 10
            assert config.state_path == "azurestack-compute.tfstate.json"

    def test_parallelism_from_environment(self):
        with patch.dict(os.environ, {"ARM_PARALLELISM": "3"}):
            assert EngineConfig().parallelism == 3

    def test_parallelism_must_be_positive(self):
        with pytest.raises(ValueError, match="parallelism must be at least 1"):
            EngineConfig(parallelism=0)


class TestLoggingConfig:
    """Test cases for LoggingConfig."""

    def test_level_is_normalised(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}):
            config = LoggingConfig()
            assert config.level == "DEBUG"
            assert config.get_log_level() == logging.DEBUG

    def test_invalid_level(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "LOUD"}):
            with pytest.raises(ValueError, match="Log level must be one of"):
                LoggingConfig()


class TestProviderConfig:
    """Test cases for ProviderConfig."""

    def test_overrides(self):
        """Test that explicit arguments override the environment."""
        other = "33333333-3333-3333-3333-333333333333"
        with patch.dict(os.environ, AZURE_ENV):
            config = ProviderConfig.from_environment(
                subscription_id=other, parallelism=2, state_path="x.json"
            )
            assert config.azure.subscription_id == other
            assert config.engine.parallelism == 2
            assert config.engine.state_path == "x.json"

    def test_to_dict_excludes_secret(self):
        with patch.dict(os.environ, AZURE_ENV):
            data = ProviderConfig().to_dict()
            assert "client_secret" not in data["azure"]
            assert "secret" not in str(data)
            assert data["engine"]["parallelism"] >= 1

    def test_validate_all_wraps_errors(self):
        with patch.dict(os.environ, {**AZURE_ENV, "ARM_SUBSCRIPTION_ID": ""}):
            with pytest.raises(ConfigurationValidationError):
                ProviderConfig().validate_all()

    def test_validate_all_without_azure(self):
        with patch.dict(os.environ, {**AZURE_ENV, "ARM_ENDPOINT": ""}):
            ProviderConfig().validate_all(require_azure=False)


class TestCreateConfigFromEnv:
    """Test cases for create_config_from_env."""

    def test_valid_environment(self):
        with patch.dict(os.environ, AZURE_ENV):
            config = create_config_from_env(parallelism=4)
            assert config.engine.parallelism == 4

    def test_bad_endpoint_raises_configuration_error(self):
        with patch.dict(os.environ, {**AZURE_ENV, "ARM_ENDPOINT": "ftp://x"}):
            with pytest.raises(ConfigurationValidationError, match="https URL"):
                create_config_from_env()


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_sets_root_level_and_quiets_azure(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "INFO"}):
            setup_logging(LoggingConfig())
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("azure").level == logging.WARNING

    def test_debug_enables_http_logging(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}):
            setup_logging(LoggingConfig())
        assert logging.getLogger("azure.core.pipeline").level == logging.DEBUG
