"""Workflow Execution Engine.

Runs a stored workflow end to end:

    fetch -> validate -> optimize -> compile -> fetch execution
          -> run each optimized node in order -> aggregate

Steps run strictly one at a time. The first failing step, or a cancelled
run, marks the execution Failed, records ``context.last_error`` and aborts the run;
nothing is retried or rolled back here.

Aggregated result:
{
    "executionId": "...",
    "status": "Completed",
    "steps": [{"stepId": "start", "status": "Completed", "result": ..., "metadata": {...}}],
    "metadata": {"startedAt": "...", "completedAt": "...", "duration": 12, "stepsExecuted": 3}
}
"""

import asyncio
from typing import Any, Optional

import structlog

from core.constants import ErrorCode, ExecutionStatus
from core.utils import ensure_aware, utc_now
from workflow.compiler import WorkflowCompiler
from workflow.context import ExecutionContext
from workflow.models import ErrorRecord, Execution
from workflow.optimizer import WorkflowOptimizer
from workflow.step_executor import StepExecutor, StepRequest
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)


def _failure_message(error: BaseException) -> str:
    if isinstance(error, asyncio.CancelledError):
        return "Workflow execution cancelled"
    return str(error)


class ExecutionEngine:
    """Top-level orchestrator of a single workflow run."""

    def __init__(
        self,
        execution_context: ExecutionContext,
        validator: WorkflowValidator,
        optimizer: WorkflowOptimizer,
        compiler: WorkflowCompiler,
        step_executor: StepExecutor,
    ):
        self._context = execution_context
        self._validator = validator
        self._optimizer = optimizer
        self._compiler = compiler
        self._step_executor = step_executor

    async def execute_workflow(
        self,
        workflow_id: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Run a workflow and return the aggregated result.

        Raises whatever the failing stage or step raised.
        """
        workflow = await self._context.get_workflow_data(workflow_id)
        self._validator.validate(workflow)
        optimized = await self._optimizer.optimize(workflow)
        compiled = await self._compiler.compile(optimized)
        execution = await self._context.get_execution_data(compiled.id)

        if variables:
            execution.context.variables.update(variables)

        log = logger.bind(workflow_id=workflow_id, execution_id=execution.id)
        log.info("Workflow execution started", nodes=len(optimized.nodes or []))

        steps: list[dict] = []
        for node in optimized.nodes or []:
            try:
                result = await self._step_executor.execute_step(
                    node.id,
                    StepRequest(execution_id=execution.id, workflow_id=workflow_id, node=node),
                )
            except (Exception, asyncio.CancelledError) as e:
                execution.mark_failed(
                    ErrorRecord(
                        message=_failure_message(e),
                        code=ErrorCode.STEP_EXECUTION_ERROR.value,
                        timestamp=utc_now(),
                        node_id=node.id,
                    )
                )
                log.error(
                    "Workflow execution failed",
                    node_id=node.id,
                    steps_executed=len(steps),
                    error=_failure_message(e),
                )
                await self._persist_failure(execution)
                raise
            steps.append(result.to_dict())

        if execution.status == ExecutionStatus.PENDING:
            execution.transition_to(ExecutionStatus.RUNNING)
        execution.mark_completed()
        await self._context.save_execution(execution)

        started_at = ensure_aware(execution.started_at)
        duration_ms = int((execution.completed_at - started_at).total_seconds() * 1000)
        log.info("Workflow execution completed", steps_executed=len(steps), duration_ms=duration_ms)
        return {
            "executionId": execution.id,
            "status": execution.status.value,
            "steps": steps,
            "metadata": {
                "startedAt": started_at.isoformat(),
                "completedAt": execution.completed_at.isoformat(),
                "duration": duration_ms,
                "stepsExecuted": len(steps),
            },
        }

    async def _persist_failure(self, execution: Execution) -> None:
        # Never mask the step error.
        try:
            await self._context.save_execution(execution)
        except Exception as e:
            logger.error(
                "Failed to persist failed execution",
                execution_id=execution.id,
                error=str(e),
            )
