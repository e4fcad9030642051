"""Credential vault backed by Azure Key Vault secrets.

Workspace secrets are named ``<workspace-id>-<purpose>`` and tagged with the
workspace ID. Onboarded cloud credentials are written by the onboarding
service with ``kind=credential`` tags; this client only checks for them.
"""

import asyncio
import logging
import secrets
from collections.abc import Callable

from azure.core.exceptions import ResourceNotFoundError

from app.api.services.azure_client import AzureClientManager
from app.core.config import Settings
from app.core.retry import is_not_found_error
from app.orchestrator.exceptions import HardFailureError

logger = logging.getLogger(__name__)

KEY_ID_SECRET = "key-id"
MASTER_CREDENTIAL_SECRET = "master-credential"
CREDENTIAL_KIND = "credential"


def secret_name(workspace_id: str, purpose: str) -> str:
    return f"{workspace_id}-{purpose}"


def generate_secret_value() -> str:
    return secrets.token_urlsafe(32)


class VaultClient:
    """Key Vault secret operations scoped to workspaces."""

    def __init__(self, azure: AzureClientManager, settings: Settings):
        self.azure = azure
        self.settings = settings

    def validate_configuration(self) -> None:
        """Fail fast at startup when the vault cannot be addressed."""
        if not self.settings.key_vault_url:
            raise HardFailureError("KEY_VAULT_URL is not configured")
        # Building the client validates the URL and resolves the credential
        self.azure.get_secret_client()

    async def get_secret(self, name: str) -> str | None:
        """Secret value, or None if the secret does not exist."""
        client = self.azure.get_secret_client()
        try:
            secret = await asyncio.to_thread(client.get_secret, name)
        except ResourceNotFoundError:
            return None
        return secret.value

    async def ensure_secret(
        self,
        workspace_id: str,
        purpose: str,
        generate: Callable[[], str] = generate_secret_value,
    ) -> str:
        """Return the workspace secret, creating it on first use.

        An existing value is never replaced, so retries keep the same secret.
        """
        name = secret_name(workspace_id, purpose)
        existing = await self.get_secret(name)
        if existing is not None:
            logger.debug(f"Secret {name} already exists")
            return existing

        client = self.azure.get_secret_client()
        secret = await asyncio.to_thread(
            client.set_secret,
            name,
            generate(),
            tags={"workspace": workspace_id, "purpose": purpose},
        )
        logger.info(f"Created secret {name}")
        return secret.value

    async def delete_secret(self, workspace_id: str, purpose: str) -> None:
        """Start deleting a workspace secret; a missing secret is fine."""
        name = secret_name(workspace_id, purpose)
        client = self.azure.get_secret_client()
        try:
            await asyncio.to_thread(client.begin_delete_secret, name)
        except Exception as e:
            if not is_not_found_error(e):
                raise
            logger.debug(f"Secret {name} already deleted")
            return
        logger.info(f"Deleted secret {name}")

    async def count_onboarded_credentials(self, workspace_id: str) -> int:
        """Number of enabled cloud credentials onboarded into a workspace."""
        client = self.azure.get_secret_client()

        def _count() -> int:
            count = 0
            for props in client.list_properties_of_secrets():
                tags = props.tags or {}
                if (
                    props.enabled
                    and tags.get("workspace") == workspace_id
                    and tags.get("kind") == CREDENTIAL_KIND
                ):
                    count += 1
            return count

        return await asyncio.to_thread(_count)
