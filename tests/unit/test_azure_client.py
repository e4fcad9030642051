"""Tests for the Azure client manager."""

from unittest.mock import MagicMock, patch

import pytest

from app.api.services.azure_client import AzureClientManager
from app.orchestrator.exceptions import HardFailureError


class TestCredentials:
    """Credential selection and caching."""

    def test_service_principal_when_configured(self, settings):
        settings.azure_client_id = "client"
        settings.azure_client_secret = "secret"
        with patch("app.api.services.azure_client.ClientSecretCredential") as credential:
            AzureClientManager(settings).get_credential()
        credential.assert_called_once_with(
            tenant_id=settings.azure_tenant_id, client_id="client", client_secret="secret"
        )

    def test_service_principal_requires_tenant(self, settings):
        settings.azure_client_id = "client"
        settings.azure_client_secret = "secret"
        settings.azure_tenant_id = None
        with pytest.raises(HardFailureError):
            AzureClientManager(settings).get_credential()

    def test_default_credential_is_cached(self, settings):
        with patch(
            "app.api.services.azure_client.DefaultAzureCredential", return_value=MagicMock()
        ) as credential:
            manager = AzureClientManager(settings)
            first = manager.get_credential()
            second = manager.get_credential()
            manager.get_credential(force_refresh=True)

        assert first is second
        assert credential.call_count == 2

    def test_expiring_credential_is_refreshed(self, settings):
        with patch("app.api.services.azure_client.DefaultAzureCredential") as credential:
            # TTL inside the refresh buffer, so every call refreshes
            manager = AzureClientManager(settings, credential_ttl_seconds=60)
            manager.get_credential()
            manager.get_credential()
        assert credential.call_count == 2


class TestClients:
    """Client construction."""

    def test_missing_subscription(self, settings):
        settings.azure_subscription_id = None
        with pytest.raises(HardFailureError):
            AzureClientManager(settings).subscription_id

    def test_missing_vault_url(self, settings):
        settings.key_vault_url = None
        with pytest.raises(HardFailureError):
            AzureClientManager(settings).get_secret_client()

    def test_secret_client_uses_vault_url(self, settings):
        with (
            patch("app.api.services.azure_client.DefaultAzureCredential"),
            patch("app.api.services.azure_client.SecretClient") as secret_client,
        ):
            AzureClientManager(settings).get_secret_client()
        assert secret_client.call_args.kwargs["vault_url"] == settings.key_vault_url
