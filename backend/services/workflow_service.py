"""Workflow service: versioned CRUD, execution dispatch and status queries."""

import asyncio
from typing import Any, Optional

import structlog

from app.config import Settings, get_settings
from core.constants import ValidationCategory
from core.exceptions import ExecutionError, ValidationError
from core.utils import isoformat, new_id, utc_now
from workflow.context import ExecutionContext
from workflow.engine import ExecutionEngine
from workflow.models import Workflow, WorkflowVersion
from workflow.store import WorkflowStore
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = ("name", "description", "status", "nodes", "transitions", "subworkflows")


class WorkflowService:
    """Service for workflow management and execution.

    Every edit produces a new immutable WorkflowVersion; the stored
    workflow always reflects the latest version.
    """

    def __init__(
        self,
        store: WorkflowStore,
        execution_context: ExecutionContext,
        engine: ExecutionEngine,
        validator: WorkflowValidator,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._context = execution_context
        self._engine = engine
        self._validator = validator
        self._settings = settings or get_settings()

    @staticmethod
    def _snapshot(workflow: Workflow) -> WorkflowVersion:
        return WorkflowVersion(
            id=new_id(),
            workflow_id=workflow.id,
            version=workflow.version,
            definition=workflow.definition(),
            created_at=workflow.updated_at,
        )

    async def create_workflow(self, data: dict[str, Any]) -> Workflow:
        """Create a new workflow as version 1."""
        now = utc_now().isoformat()
        payload = {"createdAt": now, "updatedAt": now, **data}
        payload.setdefault("id", new_id())
        payload["version"] = 1

        workflow = Workflow.from_dict(payload)
        self._validator.validate(workflow)
        await self._store.save_workflow(workflow)
        await self._store.save_version(self._snapshot(workflow))
        logger.info("Workflow created", workflow_id=workflow.id, name=workflow.name)
        return workflow

    async def update_workflow(self, workflow_id: str, changes: dict[str, Any]) -> Workflow:
        """Apply changes as a new version and make it the head."""
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Fields cannot be changed: {', '.join(unknown)}",
                category=ValidationCategory.BUSINESS_RULE,
                details={"fields": unknown},
            )

        current = await self._store.fetch_workflow(workflow_id)
        data = current.to_dict()
        data.update(changes)
        data["version"] = current.version + 1
        data["updatedAt"] = utc_now().isoformat()

        updated = Workflow.from_dict(data)
        self._validator.validate(updated)
        await self._store.save_version(self._snapshot(updated))
        await self._store.save_workflow(updated)
        self._context.evict_workflow(workflow_id)
        logger.info("Workflow updated", workflow_id=workflow_id, version=updated.version)
        return updated

    async def get_workflow(self, workflow_id: str) -> Workflow:
        return await self._store.fetch_workflow(workflow_id)

    async def get_workflow_version(self, workflow_id: str, version: int) -> WorkflowVersion:
        return await self._store.fetch_version(workflow_id, version)

    async def list_versions(self, workflow_id: str) -> list[WorkflowVersion]:
        return await self._store.list_versions(workflow_id)

    async def execute_workflow(
        self,
        workflow_id: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Run a workflow under the configured overall timeout."""
        timeout = self._settings.WORKFLOW_EXECUTION_TIMEOUT
        try:
            return await asyncio.wait_for(
                self._engine.execute_workflow(workflow_id, variables),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Workflow execution timed out", workflow_id=workflow_id, timeout=timeout)
            raise ExecutionError(
                f"Workflow execution timed out after {timeout} seconds",
                details={"workflowId": workflow_id, "timeout": timeout},
            ) from e

    async def get_execution_status(self, execution_id: str) -> dict:
        execution = await self._context.get_execution_data(execution_id)
        last_error = execution.context.last_error
        return {
            "executionId": execution.id,
            "workflowId": execution.workflow_id,
            "status": execution.status.value,
            "currentNode": execution.context.current_node,
            "lastError": last_error.to_dict() if last_error else None,
            "retryCount": execution.context.retry_count,
            "startedAt": isoformat(execution.started_at),
            "completedAt": isoformat(execution.completed_at),
        }
