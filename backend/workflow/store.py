"""Persistence contract used by the execution context, plus an in-memory store."""

import copy
from typing import Protocol

import structlog

from core.exceptions import ConflictError, NotFoundError
from workflow.models import Execution, Workflow, WorkflowVersion

logger = structlog.get_logger(__name__)


class WorkflowStore(Protocol):
    """Backing store for workflows, their versions and executions.

    Every ``fetch_*`` method raises NotFoundError for unknown ids.
    """

    async def fetch_workflow(self, workflow_id: str) -> Workflow: ...

    async def save_workflow(self, workflow: Workflow) -> None: ...

    async def fetch_version(self, workflow_id: str, version: int) -> WorkflowVersion: ...

    async def list_versions(self, workflow_id: str) -> list[WorkflowVersion]: ...

    async def save_version(self, version: WorkflowVersion) -> None: ...

    async def fetch_execution(self, execution_id: str) -> Execution: ...

    async def save_execution(self, execution: Execution) -> None: ...


class InMemoryWorkflowStore:
    """Dict-backed store. Records are kept as serialized snapshots."""

    def __init__(self):
        self._workflows: dict[str, dict] = {}
        self._versions: dict[str, dict[int, WorkflowVersion]] = {}
        self._executions: dict[str, dict] = {}

    async def fetch_workflow(self, workflow_id: str) -> Workflow:
        data = self._workflows.get(workflow_id)
        if data is None:
            raise NotFoundError(f"Workflow {workflow_id} not found", {"workflowId": workflow_id})
        return Workflow.from_dict(copy.deepcopy(data))

    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = copy.deepcopy(workflow.to_dict())
        logger.debug("Workflow saved", workflow_id=workflow.id, version=workflow.version)

    async def fetch_version(self, workflow_id: str, version: int) -> WorkflowVersion:
        found = self._versions.get(workflow_id, {}).get(version)
        if found is None:
            raise NotFoundError(
                f"Version {version} of workflow {workflow_id} not found",
                {"workflowId": workflow_id, "version": version},
            )
        return copy.deepcopy(found)

    async def list_versions(self, workflow_id: str) -> list[WorkflowVersion]:
        versions = self._versions.get(workflow_id, {})
        return [copy.deepcopy(versions[v]) for v in sorted(versions)]

    async def save_version(self, version: WorkflowVersion) -> None:
        versions = self._versions.setdefault(version.workflow_id, {})
        if version.version in versions:
            raise ConflictError(
                f"Version {version.version} of workflow {version.workflow_id} already exists",
                {"workflowId": version.workflow_id, "version": version.version},
            )
        versions[version.version] = copy.deepcopy(version)

    async def fetch_execution(self, execution_id: str) -> Execution:
        data = self._executions.get(execution_id)
        if data is None:
            raise NotFoundError(f"Execution {execution_id} not found", {"executionId": execution_id})
        return Execution.from_dict(copy.deepcopy(data))

    async def save_execution(self, execution: Execution) -> None:
        self._executions[execution.id] = copy.deepcopy(execution.to_dict())
