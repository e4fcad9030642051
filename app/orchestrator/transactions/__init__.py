"""Concrete provisioning transactions and the registry that orders them."""

from app.api.services.azure_client import AzureClientManager
from app.api.services.identity_client import IdentityClient
from app.api.services.kubernetes_client import KubernetesClient
from app.api.services.scheduler_client import SchedulerClient
from app.api.services.vault_client import VaultClient
from app.core.config import Settings
from app.orchestrator.transactions.credentials import (
    CreateMasterCredential,
    CreateWorkspaceKeyId,
    EnsureCredentialOnboarded,
)
from app.orchestrator.transactions.discovery import (
    EnsureDiscoveryFinished,
    EnsureJobsFinished,
    EnsureJobsRunning,
)
from app.orchestrator.transactions.identity import (
    CreateResourceGroup,
    CreateServiceAccountRoles,
)
from app.orchestrator.transactions.kubernetes import (
    CreateHelmRelease,
    CreateRoleBinding,
    EnsureWorkspacePodsRunning,
)
from app.orchestrator.transactions.registry import TransactionRegistry
from app.schemas.workspace import WorkspaceRecord


def build_transaction_registry(
    settings: Settings,
    azure: AzureClientManager | None = None,
    kubernetes: KubernetesClient | None = None,
) -> TransactionRegistry:
    """Wire every transaction to its external clients."""
    azure = azure or AzureClientManager(settings)
    kubernetes = kubernetes or KubernetesClient(settings)
    identity = IdentityClient(azure, settings)
    vault = VaultClient(azure, settings)

    def scheduler_for(workspace: WorkspaceRecord) -> SchedulerClient:
        return SchedulerClient(settings, settings.workspace_namespace(workspace.id))

    return TransactionRegistry([
        CreateWorkspaceKeyId(vault),
        CreateResourceGroup(identity),
        CreateMasterCredential(vault),
        CreateServiceAccountRoles(identity),
        CreateHelmRelease(kubernetes, settings),
        CreateRoleBinding(kubernetes, settings),
        EnsureWorkspacePodsRunning(kubernetes, settings),
        EnsureCredentialOnboarded(vault),
        EnsureDiscoveryFinished(scheduler_for),
        EnsureJobsRunning(scheduler_for),
        EnsureJobsFinished(scheduler_for),
    ])


__all__ = [
    "TransactionRegistry",
    "build_transaction_registry",
    "CreateWorkspaceKeyId",
    "CreateResourceGroup",
    "CreateMasterCredential",
    "CreateServiceAccountRoles",
    "CreateHelmRelease",
    "CreateRoleBinding",
    "EnsureWorkspacePodsRunning",
    "EnsureCredentialOnboarded",
    "EnsureDiscoveryFinished",
    "EnsureJobsRunning",
    "EnsureJobsFinished",
]
