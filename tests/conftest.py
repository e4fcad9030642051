"""Shared fixtures for orchestrator tests."""

import os

# Keep the module-level engine off disk; must run before app imports
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.core.config import Settings  # noqa: E402
from app.core.database import Base  # noqa: E402
from app.core.monitoring import ReconcilerMetrics  # noqa: E402
from app.orchestrator.registry import WorkspaceRegistry  # noqa: E402
from app.schemas.workspace import (  # noqa: E402
    StateID,
    WorkspaceRecord,
)


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def registry(session_factory):
    return WorkspaceRegistry(session_factory)


@pytest.fixture
def metrics():
    return ReconcilerMetrics()


@pytest.fixture
def settings():
    return Settings(
        environment="development",
        database_url="sqlite://",
        reconciler_max_concurrency=2,
        reservation_enabled=True,
        azure_tenant_id="00000000-0000-0000-0000-000000000001",
        azure_subscription_id="00000000-0000-0000-0000-000000000002",
        key_vault_url="https://workspaces.vault.azure.net",
        oidc_issuer_url="https://oidc.example.com/issuer",
        kubernetes_api_url="https://k8s.example.com",
        scheduler_base_url="http://scheduler.%NAMESPACE%.svc.cluster.local:5000",
        domain_suffix="app.example.com",
        notification_enabled=False,
    )


@pytest.fixture
def make_workspace(registry):
    """Create workspaces with increasing created_at so ordering is stable."""
    counter = {"n": 0}
    base_time = datetime(2024, 1, 1)

    def _make(
        status: StateID = StateID.RESERVING,
        owner_id: str | None = None,
        **fields,
    ) -> WorkspaceRecord:
        counter["n"] += 1
        n = counter["n"]
        record = WorkspaceRecord(
            id=fields.pop("id", f"ws-{n:016x}"),
            status=status,
            owner_id=owner_id,
            unique_handle=f"azure-uid-{n:016x}",
            created_at=base_time + timedelta(minutes=n),
            **fields,
        )
        return registry.create(record)

    return _make


@pytest.fixture
def client():
    """API client without running the lifespan (no scheduler, no Azure)."""
    from app.main import app

    return TestClient(app)
