"""Kubernetes transactions: the workspace release, owner access, pod readiness."""

import logging
from typing import Any

from app.api.services.kubernetes_client import KubernetesClient, condition_status
from app.core.config import Settings
from app.orchestrator.base import BaseTransaction
from app.orchestrator.models import TransactionResult
from app.schemas.workspace import TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)

OWNER_CLUSTER_ROLE = "workspace-admin"
READY_POD_PHASES = {"Running", "Succeeded"}


def role_binding_name(workspace: WorkspaceRecord) -> str:
    return f"{workspace.id}-owner"


class CreateHelmRelease(BaseTransaction):
    """Install the workspace chart and wait until Flux reports it Ready."""

    transaction_id = TransactionID.CREATE_HELM_RELEASE
    description = "Deploy workspace helm release"

    def __init__(self, kubernetes: KubernetesClient, settings: Settings):
        self.kubernetes = kubernetes
        self.settings = settings

    def requirements(self) -> list[TransactionID]:
        return [
            TransactionID.CREATE_WORKSPACE_KEY_ID,
            TransactionID.CREATE_MASTER_CREDENTIAL,
            TransactionID.CREATE_SERVICE_ACCOUNT_ROLES,
        ]

    def values(self, workspace: WorkspaceRecord) -> dict[str, Any]:
        return {
            "workspace": {
                "id": workspace.id,
                "size": workspace.size.value,
                "tier": workspace.tier.value,
                "keyId": workspace.key_id,
                "domain": f"{workspace.id}.{self.settings.domain_suffix}".rstrip("."),
            },
            "azure": {
                "tenantId": self.settings.azure_tenant_id,
                "subscriptionId": self.settings.azure_subscription_id,
                "identityResourceGroup": self.settings.azure_identity_resource_group,
                "keyVaultUrl": self.settings.key_vault_url,
            },
        }

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        try:
            release = await self.kubernetes.get_helm_release(workspace.id)
            if release is None:
                await self.kubernetes.apply_helm_release(
                    workspace.id,
                    self.settings.workspace_namespace(workspace.id),
                    self.values(workspace),
                )
                return TransactionResult.needs_time("helm release created")
        except Exception as e:
            return self.result_from_error(e, "deploying helm release")

        if condition_status(release, "Ready") == "True":
            return TransactionResult.success()
        if condition_status(release, "Stalled") == "True":
            return TransactionResult.failed(f"helm release {workspace.id} stalled")
        return TransactionResult.needs_time("helm release not ready")

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        await self.kubernetes.delete_helm_release(workspace.id)


class CreateRoleBinding(BaseTransaction):
    """Give the owner admin access to the workspace namespace."""

    transaction_id = TransactionID.CREATE_ROLE_BINDING
    description = "Bind workspace owner"

    def __init__(self, kubernetes: KubernetesClient, settings: Settings):
        self.kubernetes = kubernetes
        self.settings = settings

    def requirements(self) -> list[TransactionID]:
        return [TransactionID.CREATE_HELM_RELEASE]

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        if not workspace.owner_id:
            return TransactionResult.failed(f"workspace {workspace.id} has no owner to bind")
        try:
            await self.kubernetes.apply_role_binding(
                self.settings.workspace_namespace(workspace.id),
                role_binding_name(workspace),
                OWNER_CLUSTER_ROLE,
                workspace.owner_id,
            )
        except Exception as e:
            return self.result_from_error(e, "binding workspace owner")
        return TransactionResult.success()

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        await self.kubernetes.delete_role_binding(
            self.settings.workspace_namespace(workspace.id),
            role_binding_name(workspace),
        )


class EnsureWorkspacePodsRunning(BaseTransaction):
    """Wait until every pod in the workspace namespace is up."""

    transaction_id = TransactionID.ENSURE_WORKSPACE_PODS_RUNNING
    description = "Wait for workspace pods"

    def __init__(self, kubernetes: KubernetesClient, settings: Settings):
        self.kubernetes = kubernetes
        self.settings = settings

    def requirements(self) -> list[TransactionID]:
        return [TransactionID.CREATE_HELM_RELEASE]

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        namespace = self.settings.workspace_namespace(workspace.id)
        try:
            pods = await self.kubernetes.list_pods(namespace)
        except Exception as e:
            return self.result_from_error(e, "listing workspace pods")

        if not pods:
            return TransactionResult.needs_time(f"no pods in {namespace} yet")

        pending = [
            pod["metadata"]["name"]
            for pod in pods
            if pod.get("status", {}).get("phase") not in READY_POD_PHASES
        ]
        if pending:
            return TransactionResult.needs_time(
                f"{len(pending)} of {len(pods)} pods not running"
            )
        return TransactionResult.success(is_created=True)

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        # Pods go away with the helm release
        return None
