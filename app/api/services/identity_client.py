"""Cloud IAM for workspace services.

Each workspace service runs under its own Kubernetes service account, which
is federated to an Azure user-assigned managed identity. Services that write
to the ingestion scope also get a role assignment on it.

The Azure SDK clients are synchronous; calls run in a worker thread so the
reconciler's event loop keeps serving other workspaces.
"""

import asyncio
import logging
import uuid

from azure.mgmt.authorization.models import RoleAssignmentCreateParameters
from azure.mgmt.msi.models import FederatedIdentityCredential, Identity

from app.api.services.azure_client import AzureClientManager
from app.core.config import Settings
from app.core.retry import is_conflict_error, is_not_found_error

logger = logging.getLogger(__name__)

SERVICE_NAMES = [
    "alerting",
    "analytics-worker",
    "checkup-worker",
    "compliance",
    "compliance-report-worker",
    "compliance-summarizer",
    "cost-estimator",
    "insight-worker",
    "inventory",
    "metadata",
    "migrator",
    "onboard",
    "reporter",
    "scheduler",
    "steampipe",
]

# Services that push discovered data into the ingestion scope
INGESTION_SERVICES = frozenset({
    "scheduler",
    "analytics-worker",
    "compliance-report-worker",
    "compliance-summarizer",
    "insight-worker",
})

TOKEN_EXCHANGE_AUDIENCE = "api://AzureADTokenExchange"


def identity_name(workspace_id: str, service_name: str) -> str:
    return f"{workspace_id}-{service_name}"


class IdentityClient:
    """Managed identities, federated credentials and role assignments."""

    def __init__(self, azure: AzureClientManager, settings: Settings):
        self.azure = azure
        self.settings = settings

    @property
    def identity_resource_group(self) -> str:
        return self.settings.azure_identity_resource_group

    @property
    def ingestion_scope(self) -> str:
        return (
            f"/subscriptions/{self.azure.subscription_id}"
            f"/resourceGroups/{self.identity_resource_group}"
        )

    def role_definition_id(self) -> str:
        return (
            f"/subscriptions/{self.azure.subscription_id}/providers/"
            f"Microsoft.Authorization/roleDefinitions/"
            f"{self.settings.azure_service_role_definition_id}"
        )

    def role_assignment_name(self, principal_id: str) -> str:
        """Deterministic assignment name so a repeated create is a conflict."""
        key = f"{self.ingestion_scope}|{principal_id}|{self.role_definition_id()}"
        return str(uuid.uuid5(uuid.NAMESPACE_URL, key))

    # ==========================================================================
    # Resource groups
    # ==========================================================================

    async def ensure_resource_group(self, name: str, tags: dict[str, str]) -> None:
        """Create or update a resource group; PUT semantics make this idempotent."""
        client = self.azure.get_resource_client()
        await asyncio.to_thread(
            client.resource_groups.create_or_update,
            name,
            {"location": self.settings.azure_location, "tags": tags},
        )
        logger.info(f"Resource group {name} is in place")

    async def delete_resource_group(self, name: str) -> None:
        """Start deleting a resource group; a missing group is fine."""
        client = self.azure.get_resource_client()
        try:
            await asyncio.to_thread(client.resource_groups.begin_delete, name)
        except Exception as e:
            if not is_not_found_error(e):
                raise
            logger.debug(f"Resource group {name} already gone")
            return
        logger.info(f"Deletion of resource group {name} started")

    # ==========================================================================
    # Service identities
    # ==========================================================================

    async def ensure_service_identity(self, workspace_id: str, service_name: str) -> str:
        """Make sure a service's identity, federation and role exist.

        Returns the identity's client ID for the service account annotation.
        """
        msi = self.azure.get_msi_client()
        name = identity_name(workspace_id, service_name)

        identity = await asyncio.to_thread(
            msi.user_assigned_identities.create_or_update,
            self.identity_resource_group,
            name,
            Identity(
                location=self.settings.azure_location,
                tags={"workspace": workspace_id, "service": service_name},
            ),
        )

        subject = (
            f"system:serviceaccount:{self.settings.workspace_namespace(workspace_id)}"
            f":{service_name}"
        )
        await asyncio.to_thread(
            msi.federated_identity_credentials.create_or_update,
            self.identity_resource_group,
            name,
            service_name,
            FederatedIdentityCredential(
                issuer=self.settings.oidc_issuer_url,
                subject=subject,
                audiences=[TOKEN_EXCHANGE_AUDIENCE],
            ),
        )

        if service_name in INGESTION_SERVICES:
            await self._assign_ingestion_role(identity.principal_id)

        return identity.client_id

    async def _assign_ingestion_role(self, principal_id: str) -> None:
        client = self.azure.get_authorization_client()
        try:
            await asyncio.to_thread(
                client.role_assignments.create,
                self.ingestion_scope,
                self.role_assignment_name(principal_id),
                RoleAssignmentCreateParameters(
                    role_definition_id=self.role_definition_id(),
                    principal_id=principal_id,
                    principal_type="ServicePrincipal",
                ),
            )
        except Exception as e:
            if not is_conflict_error(e):
                raise
            logger.debug(f"Role assignment for principal {principal_id} already exists")

    async def delete_service_identity(self, workspace_id: str, service_name: str) -> None:
        """Remove a service's role assignment and identity; missing parts are fine."""
        msi = self.azure.get_msi_client()
        name = identity_name(workspace_id, service_name)

        try:
            identity = await asyncio.to_thread(
                msi.user_assigned_identities.get, self.identity_resource_group, name
            )
        except Exception as e:
            if not is_not_found_error(e):
                raise
            logger.debug(f"Identity {name} already gone")
            return

        if service_name in INGESTION_SERVICES:
            client = self.azure.get_authorization_client()
            try:
                await asyncio.to_thread(
                    client.role_assignments.delete,
                    self.ingestion_scope,
                    self.role_assignment_name(identity.principal_id),
                )
            except Exception as e:
                if not is_not_found_error(e):
                    raise

        # Federated credentials are removed together with their identity
        try:
            await asyncio.to_thread(
                msi.user_assigned_identities.delete, self.identity_resource_group, name
            )
        except Exception as e:
            if not is_not_found_error(e):
                raise
        logger.info(f"Deleted identity {name}")
