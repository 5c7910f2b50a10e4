"""Execution table."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ExecutionStatus
from db.base import BaseModel


class ExecutionModel(BaseModel):
    """One workflow run.

    Attributes:
        workflow_id: Foreign key to the workflow
        status: Pending, Running, Completed or Failed
        context: Variables, current node, last error, metadata and steps as JSON
        started_at: Set when the execution is compiled
        completed_at: Set when the run completes or fails
    """

    __tablename__ = "executions"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(default=ExecutionStatus.PENDING.value, index=True)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
