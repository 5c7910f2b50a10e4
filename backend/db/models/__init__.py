"""Database models for the workflow automation engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import WorkflowModel, WorkflowVersionModel
from db.models.execution import ExecutionModel

__all__ = [
    "WorkflowModel",
    "WorkflowVersionModel",
    "ExecutionModel",
]
