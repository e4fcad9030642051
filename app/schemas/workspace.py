"""Pydantic schemas and enums for workspaces."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class StateID(str, Enum):
    """Lifecycle phases a workspace moves through."""

    RESERVING = "RESERVING"
    RESERVED = "RESERVED"
    PROVISIONING = "PROVISIONING"
    PROVISIONED = "PROVISIONED"
    FAILED = "FAILED"


class TransactionID(str, Enum):
    """Stable names of provisioning transactions.

    Declaration order is the tie-break used when ordering independent
    transactions, so keep new members in a sensible execution order.
    """

    CREATE_WORKSPACE_KEY_ID = "CreateWorkspaceKeyId"
    CREATE_RESOURCE_GROUP = "CreateResourceGroup"
    CREATE_MASTER_CREDENTIAL = "CreateMasterCredential"
    CREATE_SERVICE_ACCOUNT_ROLES = "CreateServiceAccountRoles"
    CREATE_HELM_RELEASE = "CreateHelmRelease"
    CREATE_ROLE_BINDING = "CreateRoleBinding"
    ENSURE_WORKSPACE_PODS_RUNNING = "EnsureWorkspacePodsRunning"
    ENSURE_CREDENTIAL_ONBOARDED = "EnsureCredentialOnboarded"
    ENSURE_DISCOVERY_FINISHED = "EnsureDiscoveryFinished"
    ENSURE_JOBS_RUNNING = "EnsureJobsRunning"
    ENSURE_JOBS_FINISHED = "EnsureJobsFinished"


class WorkspaceSize(str, Enum):
    """Workspace size classes."""

    XS = "xs"
    SM = "sm"
    MD = "md"
    LG = "lg"


class WorkspaceTier(str, Enum):
    """Billing tiers."""

    FREE = "FREE"
    TEAMS = "TEAMS"
    ENTERPRISE = "ENTERPRISE"


class WorkspaceRecord(BaseModel):
    """Detached snapshot of a workspace row handed to transactions."""

    id: str
    name: str = ""
    owner_id: str | None = None
    organization_id: str | None = None
    tier: WorkspaceTier = WorkspaceTier.TEAMS
    size: WorkspaceSize = WorkspaceSize.XS
    status: StateID
    unique_handle: str | None = None
    failure_reason: str | None = None
    version: int = 1
    is_bootstrap_input_finished: bool = False
    is_created: bool = False
    key_id: str | None = None
    analytics_job_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# =============================================================================
# API models
# =============================================================================


class WorkspaceResponse(BaseModel):
    """Public view of a workspace."""

    id: str
    name: str
    owner_id: str | None = None
    organization_id: str | None = None
    tier: WorkspaceTier
    size: WorkspaceSize
    status: StateID
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class BootstrapProgress(BaseModel):
    """Completed over total transactions for the current lifecycle phase."""

    done: int = Field(0, ge=0)
    total: int = Field(0, ge=0)


class BootstrapStatusResponse(BaseModel):
    """Provisioning progress as shown to the workspace owner."""

    workspace_id: str
    status: StateID
    progress: BootstrapProgress
    completed_transactions: list[TransactionID] = Field(default_factory=list)
    # Only populated once the workspace is FAILED
    failure_reason: str | None = None


class ClaimWorkspaceRequest(BaseModel):
    """Signup request that takes over the reserved workspace."""

    owner_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9][a-z0-9-]*$")
    organization_id: str | None = Field(None, max_length=64)
