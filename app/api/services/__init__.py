"""External system clients."""

from app.api.services.azure_client import AzureClientManager
from app.api.services.identity_client import IdentityClient
from app.api.services.kubernetes_client import KubernetesClient
from app.api.services.scheduler_client import SchedulerClient
from app.api.services.vault_client import VaultClient

__all__ = [
    "AzureClientManager",
    "IdentityClient",
    "KubernetesClient",
    "SchedulerClient",
    "VaultClient",
]
