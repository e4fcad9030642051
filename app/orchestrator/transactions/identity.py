"""Cloud IAM transactions: workspace resource group and service identities."""

import logging

from app.api.services.identity_client import SERVICE_NAMES, IdentityClient
from app.orchestrator.base import BaseTransaction
from app.orchestrator.models import TransactionResult
from app.schemas.workspace import TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)


def resource_group_name(workspace: WorkspaceRecord) -> str:
    return f"rg-{workspace.id}"


class CreateResourceGroup(BaseTransaction):
    """Create the resource group that scopes the owner's cloud resources."""

    transaction_id = TransactionID.CREATE_RESOURCE_GROUP
    description = "Create workspace resource group"

    def __init__(self, identity: IdentityClient):
        self.identity = identity

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        tags = {"workspace": workspace.id}
        if workspace.owner_id:
            tags["owner"] = workspace.owner_id
        try:
            await self.identity.ensure_resource_group(resource_group_name(workspace), tags)
        except Exception as e:
            return self.result_from_error(e, "creating resource group")
        return TransactionResult.success()

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        await self.identity.delete_resource_group(resource_group_name(workspace))


class CreateServiceAccountRoles(BaseTransaction):
    """Create a federated managed identity for every workspace service."""

    transaction_id = TransactionID.CREATE_SERVICE_ACCOUNT_ROLES
    description = "Create service account identities"

    def __init__(self, identity: IdentityClient, service_names: list[str] | None = None):
        self.identity = identity
        self.service_names = service_names or SERVICE_NAMES

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        for service_name in self.service_names:
            try:
                await self.identity.ensure_service_identity(workspace.id, service_name)
            except Exception as e:
                return self.result_from_error(e, f"creating identity for {service_name}")
        return TransactionResult.success()

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        errors = []
        for service_name in self.service_names:
            try:
                await self.identity.delete_service_identity(workspace.id, service_name)
            except Exception as e:
                logger.warning(
                    f"Could not delete identity of {service_name} for workspace "
                    f"{workspace.id}: {e}"
                )
                errors.append(e)
        if errors:
            raise errors[0]
