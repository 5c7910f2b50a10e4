"""SQL-backed WorkflowStore using SQLAlchemy async sessions."""

import structlog
from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.exceptions import ConflictError, NotFoundError
from db.models import ExecutionModel, WorkflowModel, WorkflowVersionModel
from workflow.models import Execution, Workflow, WorkflowVersion

logger = structlog.get_logger(__name__)


class SqlWorkflowStore:
    """Persists workflows, versions and executions in a relational database."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    # ─── Workflows ───────────────────────────────────────────────

    async def fetch_workflow(self, workflow_id: str) -> Workflow:
        async with self._session_factory() as session:
            row = await session.get(WorkflowModel, workflow_id)
        if row is None:
            raise NotFoundError(f"Workflow {workflow_id} not found", {"workflowId": workflow_id})
        definition = row.definition or {}
        return Workflow.from_dict(
            {
                "id": row.id,
                "name": row.name,
                "description": row.description,
                "status": row.status,
                "version": row.version,
                "createdAt": row.created_at,
                "updatedAt": row.updated_at,
                "nodes": definition.get("nodes"),
                "transitions": definition.get("transitions"),
                "subworkflows": definition.get("subworkflows"),
            }
        )

    async def save_workflow(self, workflow: Workflow) -> None:
        data = workflow.to_dict()
        definition = {
            "nodes": data["nodes"],
            "transitions": data["transitions"],
            "subworkflows": data["subworkflows"],
        }
        async with self._session_factory() as session:
            row = await session.get(WorkflowModel, workflow.id)
            if row is None:
                row = WorkflowModel(id=workflow.id)
                session.add(row)
            row.name = workflow.name
            row.description = workflow.description
            row.status = data["status"]
            row.version = workflow.version
            row.definition = definition
            row.created_at = workflow.created_at
            row.updated_at = workflow.updated_at
            await session.commit()
        logger.debug("Workflow saved", workflow_id=workflow.id, version=workflow.version)

    # ─── Versions ────────────────────────────────────────────────

    @staticmethod
    def _to_version(row: WorkflowVersionModel) -> WorkflowVersion:
        return WorkflowVersion(
            id=row.id,
            workflow_id=row.workflow_id,
            version=row.version,
            definition=row.definition,
            created_at=row.created_at,
        )

    async def fetch_version(self, workflow_id: str, version: int) -> WorkflowVersion:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowVersionModel).where(
                    WorkflowVersionModel.workflow_id == workflow_id,
                    WorkflowVersionModel.version == version,
                )
            )
            row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(
                f"Version {version} of workflow {workflow_id} not found",
                {"workflowId": workflow_id, "version": version},
            )
        return self._to_version(row)

    async def list_versions(self, workflow_id: str) -> list[WorkflowVersion]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowVersionModel)
                .where(WorkflowVersionModel.workflow_id == workflow_id)
                .order_by(WorkflowVersionModel.version)
            )
            rows = result.scalars().all()
        return [self._to_version(row) for row in rows]

    async def save_version(self, version: WorkflowVersion) -> None:
        async with self._session_factory() as session:
            session.add(
                WorkflowVersionModel(
                    id=version.id,
                    workflow_id=version.workflow_id,
                    version=version.version,
                    definition=to_jsonable_python(version.definition),
                    created_at=version.created_at,
                    updated_at=version.created_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(
                    f"Version {version.version} of workflow {version.workflow_id} already exists",
                    {"workflowId": version.workflow_id, "version": version.version},
                ) from e

    # ─── Executions ──────────────────────────────────────────────

    async def fetch_execution(self, execution_id: str) -> Execution:
        async with self._session_factory() as session:
            row = await session.get(ExecutionModel, execution_id)
        if row is None:
            raise NotFoundError(f"Execution {execution_id} not found", {"executionId": execution_id})
        return Execution.from_dict(
            {
                "id": row.id,
                "workflowId": row.workflow_id,
                "status": row.status,
                "context": row.context,
                "startedAt": row.started_at,
                "completedAt": row.completed_at,
            }
        )

    async def save_execution(self, execution: Execution) -> None:
        async with self._session_factory() as session:
            row = await session.get(ExecutionModel, execution.id)
            if row is None:
                row = ExecutionModel(id=execution.id, workflow_id=execution.workflow_id)
                session.add(row)
            row.status = execution.status.value
            row.context = to_jsonable_python(execution.context.to_dict())
            row.started_at = execution.started_at
            row.completed_at = execution.completed_at
            await session.commit()
