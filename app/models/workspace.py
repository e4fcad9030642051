"""Workspace and per-transaction completion models."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, relationship

from app.core.database import Base


class Workspace(Base):
    """A tenant workspace driven through its lifecycle by the reconciler."""

    __tablename__ = "workspaces"
    __table_args__ = (
        # Reconciler lists by status every tick
        Index("idx_workspaces_status", "status"),
        # Reservation lookup: unclaimed workspaces by status
        Index("idx_workspaces_owner_status", "owner_id", "status"),
    )

    id: Mapped[str] = Column(String(64), primary_key=True)
    name: Mapped[str] = Column(String(255), nullable=False, default="")
    owner_id: Mapped[str | None] = Column(String(255), nullable=True)  # NULL = unclaimed
    organization_id: Mapped[str | None] = Column(String(64), nullable=True)
    tier: Mapped[str] = Column(String(20), nullable=False, default="TEAMS")
    size: Mapped[str] = Column(String(10), nullable=False, default="xs")
    status: Mapped[str] = Column(String(50), nullable=False)  # StateID value
    unique_handle: Mapped[str | None] = Column(String(64), unique=True)
    failure_reason: Mapped[str | None] = Column(Text)
    version: Mapped[int] = Column(Integer, nullable=False, default=1)

    # Progress markers
    is_bootstrap_input_finished: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    is_created: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    key_id: Mapped[str | None] = Column(String(255))
    analytics_job_id: Mapped[int | None] = Column(Integer)

    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    transactions: Mapped[list["WorkspaceTransaction"]] = relationship(
        "WorkspaceTransaction", back_populates="workspace", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Workspace {self.id} ({self.status})>"


class WorkspaceTransaction(Base):
    """Completion record for one transaction applied to one workspace."""

    __tablename__ = "workspace_transactions"
    __table_args__ = (
        UniqueConstraint("workspace_id", "transaction_id", name="uq_workspace_transaction"),
        Index("idx_workspace_transactions_workspace", "workspace_id"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id: Mapped[str] = Column(
        String(64), ForeignKey("workspaces.id"), nullable=False
    )
    transaction_id: Mapped[str] = Column(String(100), nullable=False)
    done: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = Column(DateTime)

    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<WorkspaceTransaction {self.workspace_id}:{self.transaction_id} done={self.done}>"
