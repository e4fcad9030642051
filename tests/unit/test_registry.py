"""Tests for the SQLAlchemy-backed workspace registry."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.models.workspace import WorkspaceTransaction
from app.orchestrator.exceptions import RegistryError, WorkspaceNotFoundError
from app.orchestrator.registry import WorkspaceRegistry
from app.schemas.workspace import StateID, TransactionID


class TestWorkspaces:
    """Workspace CRUD and status transitions."""

    def test_create_and_get(self, registry, make_workspace):
        ws = make_workspace()
        stored = registry.get(ws.id)
        assert stored.status == StateID.RESERVING
        assert stored.owner_id is None
        assert stored.version == 1

    def test_get_missing_raises(self, registry):
        with pytest.raises(WorkspaceNotFoundError):
            registry.get("ws-missing")
        assert registry.find("ws-missing") is None

    def test_list_by_status_oldest_first(self, registry, make_workspace):
        first = make_workspace()
        make_workspace(status=StateID.PROVISIONED, owner_id="u1")
        third = make_workspace(status=StateID.PROVISIONING, owner_id="u2")

        listed = registry.list_by_status([StateID.RESERVING, StateID.PROVISIONING])

        assert [w.id for w in listed] == [first.id, third.id]
        assert registry.list_by_status([]) == []

    def test_update_status_bumps_version(self, registry, make_workspace):
        ws = make_workspace()
        assert registry.update_status(ws.id, StateID.RESERVED) is True
        stored = registry.get(ws.id)
        assert stored.status == StateID.RESERVED
        assert stored.version == 2

    def test_update_status_compare_and_set(self, registry, make_workspace):
        ws = make_workspace(status=StateID.PROVISIONING, owner_id="u1")

        moved = registry.update_status(
            ws.id, StateID.RESERVED, expected_status=StateID.RESERVING
        )

        assert moved is False
        assert registry.get(ws.id).status == StateID.PROVISIONING

    def test_update_status_records_failure_reason(self, registry, make_workspace):
        ws = make_workspace()
        registry.update_status(ws.id, StateID.FAILED, failure_reason="CreateHelmRelease: stalled")
        assert registry.get(ws.id).failure_reason == "CreateHelmRelease: stalled"

    def test_update_owner_with_stale_version(self, registry, make_workspace):
        ws = make_workspace(status=StateID.RESERVED)
        registry.update_status(ws.id, StateID.RESERVED)

        assert registry.update_owner(ws.id, "u1", expected_version=1) is False
        assert registry.update_owner(ws.id, "u1", expected_version=2) is True
        assert registry.get(ws.id).owner_id == "u1"


class TestClaim:
    """Handing the reserved workspace to a signup."""

    def test_claim_oldest_reserved(self, registry, make_workspace):
        oldest = make_workspace(status=StateID.RESERVED)
        make_workspace(status=StateID.RESERVED)
        make_workspace(status=StateID.RESERVING)

        claimed = registry.claim_reserved("user-1", "acme", organization_id="org-1")

        assert claimed.id == oldest.id
        assert claimed.owner_id == "user-1"
        assert claimed.name == "acme"
        assert claimed.organization_id == "org-1"
        assert claimed.status == StateID.PROVISIONING

    def test_claim_skips_in_flight_reservations(self, registry, make_workspace):
        make_workspace(status=StateID.RESERVING)
        assert registry.claim_reserved("user-1", "acme") is None

    def test_claim_twice_takes_different_workspaces(self, registry, make_workspace):
        make_workspace(status=StateID.RESERVED)
        make_workspace(status=StateID.RESERVED)

        first = registry.claim_reserved("user-1", "one")
        second = registry.claim_reserved("user-2", "two")

        assert first.id != second.id
        assert registry.claim_reserved("user-3", "three") is None

    def test_unclaimed_reservation(self, registry, make_workspace):
        make_workspace(status=StateID.PROVISIONING, owner_id="u1")
        spare = make_workspace(status=StateID.RESERVING)

        found = registry.get_unclaimed_reservation([StateID.RESERVING, StateID.RESERVED])

        assert found.id == spare.id
        assert registry.get_unclaimed_reservation([StateID.RESERVED]) is None


class TestMarkers:
    """Progress markers."""

    def test_update_markers(self, registry, make_workspace):
        ws = make_workspace()
        updated = registry.update_markers(ws.id, key_id="k-1", analytics_job_id=42)
        assert updated.key_id == "k-1"
        assert updated.analytics_job_id == 42

    def test_unknown_marker_rejected(self, registry, make_workspace):
        ws = make_workspace()
        with pytest.raises(ValueError, match="status"):
            registry.update_markers(ws.id, status="PROVISIONED")

    def test_markers_on_missing_workspace(self, registry):
        with pytest.raises(WorkspaceNotFoundError):
            registry.update_markers("ws-missing", is_created=True)


class TestCompletionRecords:
    """Per-transaction completion tracking."""

    def test_mark_completed_is_idempotent(self, registry, make_workspace):
        ws = make_workspace()
        registry.mark_completed(ws.id, TransactionID.CREATE_RESOURCE_GROUP)
        registry.mark_completed(ws.id, TransactionID.CREATE_RESOURCE_GROUP)
        assert registry.completed_transactions(ws.id) == {TransactionID.CREATE_RESOURCE_GROUP}

    def test_records_are_per_workspace(self, registry, make_workspace):
        first, second = make_workspace(), make_workspace()
        registry.mark_completed(first.id, TransactionID.CREATE_RESOURCE_GROUP)
        assert registry.completed_transactions(second.id) == set()

    def test_clear_completed(self, registry, make_workspace):
        ws = make_workspace()
        registry.mark_completed(ws.id, TransactionID.CREATE_RESOURCE_GROUP)
        registry.mark_completed(ws.id, TransactionID.CREATE_MASTER_CREDENTIAL)

        registry.clear_completed(ws.id, [TransactionID.CREATE_RESOURCE_GROUP])

        assert registry.completed_transactions(ws.id) == {
            TransactionID.CREATE_MASTER_CREDENTIAL
        }

    def test_retired_transaction_records_ignored(self, registry, session_factory, make_workspace):
        ws = make_workspace()
        db = session_factory()
        db.add(WorkspaceTransaction(workspace_id=ws.id, transaction_id="CreateLegacyBucket", done=True))
        db.commit()
        db.close()

        assert registry.completed_transactions(ws.id) == set()


class TestErrors:
    """Database failures surface as RegistryError."""

    def test_sqlalchemy_error_wrapped(self):
        session = MagicMock()
        session.query.side_effect = OperationalError("SELECT 1", {}, Exception("database is locked"))
        registry = WorkspaceRegistry(session_factory=MagicMock(return_value=session))

        with pytest.raises(RegistryError, match="database is locked"):
            registry.list_by_status([StateID.RESERVING])

        session.rollback.assert_called_once()
        session.close.assert_called_once()
        session.commit.assert_not_called()

    def test_other_errors_propagate_unchanged(self):
        session = MagicMock()
        session.query.side_effect = KeyError("boom")
        registry = WorkspaceRegistry(session_factory=MagicMock(return_value=session))

        with pytest.raises(KeyError):
            registry.find("ws-1")

        session.rollback.assert_called_once()
