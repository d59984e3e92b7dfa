"""
Tests for clients module.
"""

from unittest.mock import patch

import pytest

from azurestack_compute import clients
from azurestack_compute.config.models import Features
from azurestack_compute.config_manager import AzureStackConfig

from .conftest import SUBSCRIPTION_ID

ENDPOINT = "https://management.local.azurestack.external"


@pytest.fixture
def config():
    return AzureStackConfig(
        arm_endpoint=ENDPOINT + "/",
        subscription_id=SUBSCRIPTION_ID,
        tenant_id="tenant",
        client_id=None,
        client_secret=None,
        authority_host=None,
        api_version=None,
    )


class TestBuildCredential:
    """Test cases for credential selection."""

    def test_service_principal(self, config):
        config.client_id = "app"
        config.client_secret = "secret"
        with patch.object(clients, "ClientSecretCredential") as secret_cls:
            credential = clients.build_credential(config)
        assert credential is secret_cls.return_value
        secret_cls.assert_called_once_with(
            tenant_id="tenant", client_id="app", client_secret="secret"
        )

    def test_default_credential(self, config):
        with patch.object(clients, "DefaultAzureCredential") as default_cls:
            credential = clients.build_credential(config)
        assert credential is default_cls.return_value

    def test_authority_host_is_passed(self, config):
        config.authority_host = "https://login.local"
        with patch.object(clients, "DefaultAzureCredential") as default_cls:
            clients.build_credential(config)
        default_cls.assert_called_once_with(authority="https://login.local")


class TestBuildClients:
    """Test cases for management client construction."""

    def test_compute_client_uses_stack_endpoint(self, config):
        config.api_version = "2020-06-01"
        with patch.object(clients, "ComputeManagementClient") as compute_cls:
            clients.build_compute_client(config, credential="cred")
        compute_cls.assert_called_once_with(
            "cred",
            SUBSCRIPTION_ID,
            base_url=ENDPOINT,
            credential_scopes=[f"{ENDPOINT}/.default"],
            api_version="2020-06-01",
        )

    def test_provider_context(self, config):
        features = Features()
        with patch.object(clients, "DefaultAzureCredential"), patch.object(
            clients, "ComputeManagementClient"
        ) as compute_cls, patch.object(
            clients, "ResourceManagementClient"
        ) as resource_cls:
            context = clients.build_provider_context(config, features)
        assert context.compute_client is compute_cls.return_value
        assert context.resource_client is resource_cls.return_value
        assert context.subscription_id == SUBSCRIPTION_ID
        assert context.features is features
