"""Azure SDK client factory for the orchestrator's control-plane identity.

All management clients share one credential:
1. Service principal when settings.azure_client_id/azure_client_secret are set
2. DefaultAzureCredential otherwise (managed identity, workload identity, CLI)

SECURITY FEATURES:
- TTL-based credential caching (1 hour default)
- Auto-refresh before expiry
"""

import logging
import time
from dataclasses import dataclass

from azure.core.credentials import TokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.keyvault.secrets import SecretClient
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.msi import ManagedServiceIdentityClient
from azure.mgmt.resource import ResourceManagementClient

from app.core.config import Settings, get_settings
from app.orchestrator.exceptions import HardFailureError

logger = logging.getLogger(__name__)


@dataclass
class CachedCredential:
    """Cached credential with expiration tracking."""

    credential: TokenCredential
    created_at: float
    expires_at: float

    def should_refresh(self, refresh_buffer_seconds: int = 300) -> bool:
        """Check if credential should be refreshed before expiry."""
        return time.time() > (self.expires_at - refresh_buffer_seconds)


class AzureClientManager:
    """Hands out Azure management and data-plane clients.

    Clients are cheap wrappers around the shared credential, so they are
    created per call; only the credential is cached.
    """

    # Default credential TTL: 1 hour (3600 seconds)
    DEFAULT_CREDENTIAL_TTL_SECONDS: int = 3600

    def __init__(
        self,
        settings: Settings | None = None,
        credential_ttl_seconds: int | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._credential: CachedCredential | None = None
        self._credential_ttl = credential_ttl_seconds or self.DEFAULT_CREDENTIAL_TTL_SECONDS
        logger.debug(f"AzureClientManager initialized with credential TTL: {self._credential_ttl}s")

    @property
    def subscription_id(self) -> str:
        if not self._settings.azure_subscription_id:
            raise HardFailureError("AZURE_SUBSCRIPTION_ID is not configured")
        return self._settings.azure_subscription_id

    def _create_credential(self) -> TokenCredential:
        settings = self._settings
        if settings.azure_client_id and settings.azure_client_secret:
            if not settings.azure_tenant_id:
                raise HardFailureError(
                    "AZURE_CLIENT_ID/AZURE_CLIENT_SECRET are set but AZURE_TENANT_ID is not"
                )
            return ClientSecretCredential(
                tenant_id=settings.azure_tenant_id,
                client_id=settings.azure_client_id,
                client_secret=settings.azure_client_secret,
            )
        logger.debug("No service principal configured, using DefaultAzureCredential")
        return DefaultAzureCredential()

    def get_credential(self, force_refresh: bool = False) -> TokenCredential:
        """Get the shared credential, recreating it when close to expiry."""
        cached = self._credential
        if not force_refresh and cached and not cached.should_refresh():
            return cached.credential

        if force_refresh:
            logger.debug("Force refreshing Azure credential")
        elif cached:
            logger.debug("Azure credential approaching expiry, refreshing")

        now = time.time()
        credential = self._create_credential()
        self._credential = CachedCredential(
            credential=credential,
            created_at=now,
            expires_at=now + self._credential_ttl,
        )
        return credential

    def get_resource_client(self) -> ResourceManagementClient:
        """Get resource management client."""
        return ResourceManagementClient(self.get_credential(), self.subscription_id)

    def get_msi_client(self) -> ManagedServiceIdentityClient:
        """Get managed identity client."""
        return ManagedServiceIdentityClient(self.get_credential(), self.subscription_id)

    def get_authorization_client(self) -> AuthorizationManagementClient:
        """Get authorization (role assignment) client."""
        return AuthorizationManagementClient(self.get_credential(), self.subscription_id)

    def get_secret_client(self) -> SecretClient:
        """Get Key Vault secret client."""
        if not self._settings.key_vault_url:
            raise HardFailureError("KEY_VAULT_URL is not configured")
        return SecretClient(
            vault_url=str(self._settings.key_vault_url),
            credential=self.get_credential(),
        )

