"""Compiles a workflow into a fresh, persisted Execution record."""

import structlog

from core.exceptions import handle_error
from core.utils import new_id, utc_now
from workflow.context import ExecutionContext
from workflow.models import Execution, ExecutionState, Workflow
from workflow.optimizer import WorkflowOptimizer
from workflow.steps import CustomStep
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)


class WorkflowCompiler:
    """validate -> optimize -> refetch -> new Pending execution."""

    def __init__(
        self,
        validator: WorkflowValidator,
        optimizer: WorkflowOptimizer,
        execution_context: ExecutionContext,
    ):
        self._validator = validator
        self._optimizer = optimizer
        self._context = execution_context

    async def compile(self, workflow: Workflow) -> Execution:
        try:
            self._validator.validate(workflow)
            optimized = await self._optimizer.optimize(workflow)
            stored = await self._context.get_workflow_data(workflow.id)

            steps = {
                node.id: node.step.model_copy(deep=True) if node.step is not None else CustomStep()
                for node in optimized.nodes or []
            }
            status = stored.status.value if hasattr(stored.status, "value") else stored.status
            execution = Execution(
                id=new_id(),
                workflow_id=workflow.id,
                context=ExecutionState(
                    metadata={
                        "originalWorkflowStatus": status,
                        "optimizationApplied": True,
                        "compiledAt": utc_now().isoformat(),
                        "workflowVersion": stored.version,
                    },
                    steps=steps,
                ),
                started_at=utc_now(),
            )
            await self._context.save_execution(execution)
        except Exception as e:
            logger.warning("Workflow compilation failed", workflow_id=getattr(workflow, "id", None))
            handle_error(e, reraise=True)

        logger.info(
            "Workflow compiled",
            workflow_id=workflow.id,
            execution_id=execution.id,
            steps=len(steps),
        )
        return execution
