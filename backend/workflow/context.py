"""Execution context: cached access to workflow and execution records."""

import structlog

from core.exceptions import handle_error
from workflow.models import Execution, Workflow
from workflow.store import WorkflowStore
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)


class ExecutionContext:
    """Single point of truth for workflow and execution data during a run.

    Lookups hit an in-process cache first and fall through to the store.
    Entries stay cached for the life of the context; the only way to drop
    one is an explicit ``evict_workflow``/``evict_execution`` call from the
    layer that writes to the store.
    """

    def __init__(self, validator: WorkflowValidator, store: WorkflowStore):
        self._validator = validator
        self._store = store
        self._workflow_cache: dict[str, Workflow] = {}
        self._execution_cache: dict[str, Execution] = {}

    async def get_workflow_data(self, workflow_id: str) -> Workflow:
        """Return the workflow, validating it the first time it is read."""
        cached = self._workflow_cache.get(workflow_id)
        if cached is not None:
            return cached
        try:
            workflow = await self._store.fetch_workflow(workflow_id)
            self._validator.validate(workflow)
        except Exception as e:
            logger.warning("Failed to load workflow", workflow_id=workflow_id, error=str(e))
            handle_error(e, reraise=True)
        self._workflow_cache[workflow_id] = workflow
        logger.info("Workflow loaded", workflow_id=workflow_id, version=workflow.version)
        return workflow

    async def get_execution_data(self, execution_id: str) -> Execution:
        cached = self._execution_cache.get(execution_id)
        if cached is not None:
            return cached
        try:
            execution = await self._store.fetch_execution(execution_id)
        except Exception as e:
            logger.warning("Failed to load execution", execution_id=execution_id, error=str(e))
            handle_error(e, reraise=True)
        self._execution_cache[execution_id] = execution
        return execution

    async def save_execution(self, execution: Execution) -> None:
        """Cache the execution and write it through to the store."""
        self._execution_cache[execution.id] = execution
        await self._store.save_execution(execution)

    def evict_workflow(self, workflow_id: str) -> None:
        self._workflow_cache.pop(workflow_id, None)

    def evict_execution(self, execution_id: str) -> None:
        self._execution_cache.pop(execution_id, None)
