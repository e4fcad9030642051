"""Vault-backed transactions: workspace key, master credential, onboarding."""

import logging

from app.api.services.vault_client import (
    KEY_ID_SECRET,
    MASTER_CREDENTIAL_SECRET,
    VaultClient,
)
from app.orchestrator.base import BaseTransaction
from app.orchestrator.models import TransactionResult
from app.schemas.workspace import TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)


class CreateWorkspaceKeyId(BaseTransaction):
    """Create the workspace's encryption key reference."""

    transaction_id = TransactionID.CREATE_WORKSPACE_KEY_ID
    description = "Create workspace key"

    def __init__(self, vault: VaultClient):
        self.vault = vault

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        try:
            key_id = await self.vault.ensure_secret(workspace.id, KEY_ID_SECRET)
        except Exception as e:
            return self.result_from_error(e, "creating workspace key")
        if workspace.key_id == key_id:
            return TransactionResult.success()
        return TransactionResult.success(key_id=key_id)

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        await self.vault.delete_secret(workspace.id, KEY_ID_SECRET)


class CreateMasterCredential(BaseTransaction):
    """Create the credential workspace services use to reach the control plane."""

    transaction_id = TransactionID.CREATE_MASTER_CREDENTIAL
    description = "Create master credential"

    def __init__(self, vault: VaultClient):
        self.vault = vault

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        try:
            await self.vault.ensure_secret(workspace.id, MASTER_CREDENTIAL_SECRET)
        except Exception as e:
            return self.result_from_error(e, "creating master credential")
        return TransactionResult.success()

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        await self.vault.delete_secret(workspace.id, MASTER_CREDENTIAL_SECRET)


class EnsureCredentialOnboarded(BaseTransaction):
    """Wait until the owner finished bootstrap input and onboarded a credential."""

    transaction_id = TransactionID.ENSURE_CREDENTIAL_ONBOARDED
    description = "Wait for an onboarded cloud credential"

    def __init__(self, vault: VaultClient):
        self.vault = vault

    async def apply_idempotent(self, workspace: WorkspaceRecord) -> TransactionResult:
        if not workspace.is_bootstrap_input_finished:
            return TransactionResult.needs_time("waiting for bootstrap input")

        try:
            count = await self.vault.count_onboarded_credentials(workspace.id)
        except Exception as e:
            return self.result_from_error(e, "checking onboarded credentials")

        if count == 0:
            return TransactionResult.needs_time("no credential onboarded yet")
        logger.debug(f"Workspace {workspace.id} has {count} onboarded credentials")
        return TransactionResult.success()

    async def rollback_idempotent(self, workspace: WorkspaceRecord) -> None:
        # Credentials belong to the owner
        return None
