"""Workflow tables: the current head of each workflow and its version history."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import WorkflowStatus
from db.base import BaseModel


class WorkflowModel(BaseModel):
    """Head version of a workflow.

    Attributes:
        id: Workflow identifier
        name: Workflow name
        description: Free-form description
        status: Draft, Active, Paused, Completed or Archived
        version: Number of the version this row reflects
        definition: Nodes, transitions and subworkflows as JSON
    """

    __tablename__ = "workflows"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    status: Mapped[str] = mapped_column(default=WorkflowStatus.DRAFT.value, index=True)
    version: Mapped[int] = mapped_column(default=1)
    definition: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class WorkflowVersionModel(BaseModel):
    """Immutable snapshot of a workflow definition."""

    __tablename__ = "workflow_versions"
    __table_args__ = (
        UniqueConstraint("workflow_id", "version", name="uq_workflow_version"),
    )

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(nullable=False)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)
