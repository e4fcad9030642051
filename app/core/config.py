"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults. A single Settings value is
built once and handed to the clients, transactions, state catalog and
reconciler.
"""

import logging
import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Security features:
    - Debug mode validation (cannot be True in production)
    - Key Vault URL must use HTTPS
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # Environment Detection
    # =========================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="ENVIRONMENT",
    )

    # Application
    app_name: str = "Workspace Orchestrator"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./data/workspaces.db"
    database_pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    database_max_overflow: int = Field(default=10, alias="DB_MAX_OVERFLOW")
    database_pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT")
    slow_query_threshold_ms: float = Field(default=500.0, alias="SLOW_QUERY_THRESHOLD_MS")
    enable_query_logging: bool = Field(default=False, alias="ENABLE_QUERY_LOGGING")

    # =========================================================================
    # Reconciler
    # =========================================================================

    reconciler_enabled: bool = Field(default=True, alias="RECONCILER_ENABLED")
    reconciler_interval_seconds: int = Field(default=30, alias="RECONCILER_INTERVAL_SECONDS")
    reconciler_max_concurrency: int = Field(default=5, alias="RECONCILER_MAX_CONCURRENCY")
    reservation_enabled: bool = Field(default=True, alias="RESERVATION_ENABLED")
    default_workspace_size: Literal["xs", "sm", "md", "lg"] = "xs"
    default_workspace_tier: Literal["FREE", "TEAMS", "ENTERPRISE"] = "TEAMS"

    # =========================================================================
    # Azure control plane
    # =========================================================================

    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None
    azure_subscription_id: str | None = None
    azure_location: str = "eastus"
    # Resource group holding the per-service managed identities
    azure_identity_resource_group: str = "rg-workspace-identities"
    # Built-in role granted to each service identity on its workspace group
    azure_service_role_definition_id: str = (
        "b24988ac-6180-42a0-ab88-20f7382dd24c"  # Contributor
    )

    # Key Vault (workspace keys, master credentials, onboarded credentials)
    key_vault_url: str | None = None

    # Workload identity issuer of the AKS cluster running the workspaces
    oidc_issuer_url: str = Field(default="", alias="OIDC_ISSUER_URL")

    # =========================================================================
    # Kubernetes
    # =========================================================================

    kubernetes_api_url: str = Field(
        default="https://kubernetes.default.svc", alias="KUBERNETES_API_URL"
    )
    kubernetes_token: str | None = Field(default=None, alias="KUBERNETES_TOKEN")
    kubernetes_ca_bundle: str | None = Field(default=None, alias="KUBERNETES_CA_BUNDLE")
    flux_system_namespace: str = Field(default="flux-system", alias="FLUX_SYSTEM_NAMESPACE")
    helm_chart_location: str = Field(default="", alias="HELM_CHART_LOCATION")
    helm_chart_name: str = Field(default="workspace", alias="HELM_CHART_NAME")
    workspace_namespace_prefix: str = Field(default="", alias="WORKSPACE_NAMESPACE_PREFIX")
    domain_suffix: str = Field(default="", alias="DOMAIN_SUFFIX")

    # Discovery scheduler, %NAMESPACE% is replaced with the workspace namespace
    scheduler_base_url: str = Field(
        default="http://scheduler.%NAMESPACE%.svc.cluster.local:7251",
        alias="SCHEDULER_BASE_URL",
    )
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    # Notifications
    teams_webhook_url: str | None = None
    notification_enabled: bool = False
    notification_cooldown_minutes: int = 30

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("environment", mode="before")
    @classmethod
    def detect_environment(cls, v: str | None) -> str:
        """Auto-detect environment from common environment variables."""
        if v:
            return v.lower()

        if os.getenv("PRODUCTION") or os.getenv("PROD"):
            return "production"
        if os.getenv("STAGING"):
            return "staging"

        return "development"

    @model_validator(mode="after")
    def validate_debug_mode(self):
        """CRITICAL: Prevent debug mode in production."""
        if self.environment == "production" and self.debug:
            logger.error(
                "CRITICAL SECURITY ERROR: DEBUG mode cannot be enabled in production! "
                "Set DEBUG=false or ENVIRONMENT=development"
            )
            raise ValueError("DEBUG cannot be True in production environment")
        return self

    @field_validator("key_vault_url")
    @classmethod
    def validate_key_vault_url(cls, v: str | None) -> str | None:
        """Key Vault must be reached over HTTPS."""
        if v and not v.lower().startswith("https://"):
            raise ValueError("KEY_VAULT_URL must be an https:// URL")
        return v

    @field_validator("reconciler_max_concurrency", "reconciler_interval_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Interval and pool size must be at least 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_configured(self) -> bool:
        """Check if minimum Azure configuration is present."""
        return all([
            self.azure_tenant_id,
            self.azure_client_id,
            self.azure_client_secret,
            self.azure_subscription_id,
        ])

    def workspace_namespace(self, workspace_id: str) -> str:
        """Kubernetes namespace that hosts a workspace's release."""
        return f"{self.workspace_namespace_prefix}{workspace_id}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
