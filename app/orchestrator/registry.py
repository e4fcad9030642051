"""Workspace registry: the single source of truth for status and progress.

Every method opens its own short-lived session, so the reconciler, the
executor and the HTTP claim route never share ORM state. Races between a
claim and a reconcile pass are settled with compare-and-set UPDATEs on
``status``/``owner_id``/``version`` rather than in-process locks.
"""

import logging
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.database import SessionLocal
from app.models.workspace import Workspace, WorkspaceTransaction
from app.orchestrator.exceptions import RegistryError, WorkspaceNotFoundError
from app.schemas.workspace import StateID, TransactionID, WorkspaceRecord

logger = logging.getLogger(__name__)

# Progress markers transactions may set through the executor
MARKER_FIELDS = frozenset({
    "is_bootstrap_input_finished",
    "is_created",
    "key_id",
    "analytics_job_id",
})

CLAIM_ATTEMPTS = 3


class WorkspaceRegistry:
    """SQLAlchemy-backed store of workspaces and completion records."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise RegistryError(f"Workspace registry operation failed: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ==========================================================================
    # Workspaces
    # ==========================================================================

    def find(self, workspace_id: str) -> WorkspaceRecord | None:
        """Get a workspace or None."""
        with self._session() as db:
            workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
            return WorkspaceRecord.model_validate(workspace) if workspace else None

    def get(self, workspace_id: str) -> WorkspaceRecord:
        """Get a workspace, raising WorkspaceNotFoundError if missing."""
        record = self.find(workspace_id)
        if record is None:
            raise WorkspaceNotFoundError(f"Workspace {workspace_id} not found")
        return record

    def list_by_status(self, statuses: Iterable[StateID | str]) -> list[WorkspaceRecord]:
        """List workspaces whose status is one of ``statuses``, oldest first."""
        values = [StateID(s).value for s in statuses]
        if not values:
            return []
        with self._session() as db:
            rows = (
                db.query(Workspace)
                .filter(Workspace.status.in_(values))
                .order_by(Workspace.created_at, Workspace.id)
                .all()
            )
            return [WorkspaceRecord.model_validate(row) for row in rows]

    def create(self, record: WorkspaceRecord) -> WorkspaceRecord:
        """Persist a new workspace row."""
        now = datetime.utcnow()
        with self._session() as db:
            workspace = Workspace(
                id=record.id,
                name=record.name,
                owner_id=record.owner_id,
                organization_id=record.organization_id,
                tier=record.tier.value,
                size=record.size.value,
                status=record.status.value,
                unique_handle=record.unique_handle,
                version=1,
                is_bootstrap_input_finished=record.is_bootstrap_input_finished,
                is_created=record.is_created,
                key_id=record.key_id,
                analytics_job_id=record.analytics_job_id,
                created_at=record.created_at or now,
                updated_at=now,
            )
            db.add(workspace)
            db.flush()
            logger.info(f"Created workspace {workspace.id} in status {workspace.status}")
            return WorkspaceRecord.model_validate(workspace)

    def update_status(
        self,
        workspace_id: str,
        status: StateID,
        *,
        expected_status: StateID | None = None,
        failure_reason: str | None = None,
    ) -> bool:
        """Move a workspace to ``status``.

        With ``expected_status`` the update only applies if the row still has
        that status; returns False when another writer got there first.
        """
        with self._session() as db:
            query = db.query(Workspace).filter(Workspace.id == workspace_id)
            if expected_status is not None:
                query = query.filter(Workspace.status == StateID(expected_status).value)
            updated = query.update(
                {
                    Workspace.status: StateID(status).value,
                    Workspace.failure_reason: failure_reason,
                    Workspace.version: Workspace.version + 1,
                    Workspace.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        if not updated:
            logger.warning(
                f"Status update of workspace {workspace_id} to {StateID(status).value} "
                f"skipped (expected {expected_status.value if expected_status else 'any'})"
            )
        return bool(updated)

    def update_owner(
        self,
        workspace_id: str,
        owner_id: str | None,
        *,
        expected_version: int | None = None,
    ) -> bool:
        """Set the owner of a workspace, optionally guarded by version."""
        with self._session() as db:
            query = db.query(Workspace).filter(Workspace.id == workspace_id)
            if expected_version is not None:
                query = query.filter(Workspace.version == expected_version)
            updated = query.update(
                {
                    Workspace.owner_id: owner_id,
                    Workspace.version: Workspace.version + 1,
                    Workspace.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        return bool(updated)

    def claim_reserved(
        self,
        owner_id: str,
        name: str,
        organization_id: str | None = None,
    ) -> WorkspaceRecord | None:
        """Atomically hand the oldest reserved workspace to a new owner.

        The workspace moves to PROVISIONING so the reconciler finishes the
        remaining provisioning work. Returns None if nothing is reserved.
        """
        for _ in range(CLAIM_ATTEMPTS):
            with self._session() as db:
                candidate = (
                    db.query(Workspace)
                    .filter(
                        Workspace.owner_id.is_(None),
                        Workspace.status == StateID.RESERVED.value,
                    )
                    .order_by(Workspace.created_at, Workspace.id)
                    .first()
                )
                if candidate is None:
                    return None

                claimed = (
                    db.query(Workspace)
                    .filter(
                        Workspace.id == candidate.id,
                        Workspace.owner_id.is_(None),
                        Workspace.status == StateID.RESERVED.value,
                        Workspace.version == candidate.version,
                    )
                    .update(
                        {
                            Workspace.owner_id: owner_id,
                            Workspace.name: name,
                            Workspace.organization_id: organization_id,
                            Workspace.status: StateID.PROVISIONING.value,
                            Workspace.version: Workspace.version + 1,
                            Workspace.updated_at: datetime.utcnow(),
                        },
                        synchronize_session=False,
                    )
                )
                workspace_id = candidate.id

            if claimed:
                logger.info(f"Workspace {workspace_id} claimed by {owner_id} as '{name}'")
                return self.get(workspace_id)

            logger.debug(f"Lost claim race for workspace {workspace_id}, retrying")

        return None

    def update_markers(self, workspace_id: str, **markers: Any) -> WorkspaceRecord:
        """Persist progress markers and return the refreshed workspace."""
        unknown = set(markers) - MARKER_FIELDS
        if unknown:
            raise ValueError(f"Unknown workspace markers: {sorted(unknown)}")

        with self._session() as db:
            workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
            if workspace is None:
                raise WorkspaceNotFoundError(f"Workspace {workspace_id} not found")
            for key, value in markers.items():
                setattr(workspace, key, value)
            workspace.updated_at = datetime.utcnow()
            db.flush()
            return WorkspaceRecord.model_validate(workspace)

    def get_unclaimed_reservation(
        self, statuses: Iterable[StateID | str]
    ) -> WorkspaceRecord | None:
        """Oldest workspace with no owner in one of ``statuses``."""
        values = [StateID(s).value for s in statuses]
        with self._session() as db:
            workspace = (
                db.query(Workspace)
                .filter(Workspace.owner_id.is_(None), Workspace.status.in_(values))
                .order_by(Workspace.created_at, Workspace.id)
                .first()
            )
            return WorkspaceRecord.model_validate(workspace) if workspace else None

    # ==========================================================================
    # Completion records
    # ==========================================================================

    def completed_transactions(self, workspace_id: str) -> set[TransactionID]:
        """Transactions already applied successfully to a workspace."""
        with self._session() as db:
            rows = (
                db.query(WorkspaceTransaction.transaction_id)
                .filter(
                    WorkspaceTransaction.workspace_id == workspace_id,
                    WorkspaceTransaction.done.is_(True),
                )
                .all()
            )

        completed = set()
        known = {t.value for t in TransactionID}
        for (transaction_id,) in rows:
            if transaction_id in known:
                completed.add(TransactionID(transaction_id))
            else:
                logger.debug(f"Ignoring retired transaction record {transaction_id}")
        return completed

    def mark_completed(self, workspace_id: str, transaction_id: TransactionID) -> None:
        """Record that a transaction succeeded for a workspace."""
        with self._session() as db:
            record = (
                db.query(WorkspaceTransaction)
                .filter(
                    WorkspaceTransaction.workspace_id == workspace_id,
                    WorkspaceTransaction.transaction_id == TransactionID(transaction_id).value,
                )
                .first()
            )
            if record is None:
                record = WorkspaceTransaction(
                    workspace_id=workspace_id,
                    transaction_id=TransactionID(transaction_id).value,
                )
                db.add(record)
            record.done = True
            record.completed_at = datetime.utcnow()

    def clear_completed(
        self, workspace_id: str, transaction_ids: Iterable[TransactionID]
    ) -> None:
        """Forget completion of transactions that were rolled back."""
        values = [TransactionID(t).value for t in transaction_ids]
        if not values:
            return
        with self._session() as db:
            db.query(WorkspaceTransaction).filter(
                WorkspaceTransaction.workspace_id == workspace_id,
                WorkspaceTransaction.transaction_id.in_(values),
            ).update(
                {WorkspaceTransaction.done: False, WorkspaceTransaction.completed_at: None},
                synchronize_session=False,
            )
