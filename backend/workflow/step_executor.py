"""Executes one compiled step against the current execution state."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import structlog

from core.constants import ExecutionStatus, StepType
from core.exceptions import ConfigurationError, NotFoundError
from core.utils import get_nested, utc_now
from integrations.data_mapper import DataMapper
from integrations.registry import ConnectorRegistry
from workflow.context import ExecutionContext
from workflow.expressions import ExpressionEvaluator
from workflow.models import Execution, WorkflowNode
from workflow.steps import (
    ConditionStep,
    CustomStep,
    IntegrationStep,
    TransformationStep,
)
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)

CustomHandler = Callable[[CustomStep, Execution], Awaitable[Any]]


@dataclass
class StepRequest:
    """What the engine knows about the step it is asking to run."""

    execution_id: str
    workflow_id: str
    node: Optional[WorkflowNode] = None


@dataclass
class StepResult:
    """Result of executing a single step."""

    step_id: str
    step_type: str
    status: ExecutionStatus
    output: Any = None
    started_at: datetime = field(default_factory=utc_now)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "stepId": self.step_id,
            "type": self.step_type,
            "status": self.status.value,
            "result": self.output,
            "metadata": {
                "stepId": self.step_id,
                "duration": self.duration_ms,
                "timestamp": self.started_at.isoformat(),
            },
        }


class StepExecutor:
    """Looks up a step in the execution, marks it current and dispatches by type.

    No retries happen here: handler errors are logged and re-raised as-is.
    """

    def __init__(
        self,
        execution_context: ExecutionContext,
        validator: WorkflowValidator,
        connector_registry: Optional[ConnectorRegistry] = None,
        data_mapper: Optional[DataMapper] = None,
    ):
        self._context = execution_context
        self._validator = validator
        self._registry = connector_registry
        self._mapper = data_mapper or DataMapper()
        self._custom_handlers: dict[str, CustomHandler] = {}
        self._handlers = {
            StepType.INTEGRATION.value: self._execute_integration,
            StepType.TRANSFORMATION.value: self._execute_transformation,
            StepType.CONDITION.value: self._execute_condition,
            StepType.CUSTOM.value: self._execute_custom,
        }

    def register_handler(self, name: str, handler: CustomHandler) -> None:
        """Make ``handler`` available to custom steps as ``name``."""
        self._custom_handlers[name] = handler

    async def execute_step(self, step_id: str, request: StepRequest) -> StepResult:
        started_at = utc_now()
        start = time.monotonic()
        try:
            execution = await self._context.get_execution_data(request.execution_id)
            step = execution.context.steps.get(step_id)
            if step is None:
                raise NotFoundError(
                    f"Step {step_id} not found in execution context",
                    {"stepId": step_id, "executionId": request.execution_id},
                )
            self._validator.validate_step(step_id, step)

            execution.context.current_node = step_id
            execution.transition_to(ExecutionStatus.RUNNING)

            output = await self._handlers[step.type](step_id, step, execution)
            if step.output_variable:
                execution.context.variables[step.output_variable] = output
        except Exception as e:
            logger.error(
                "Step execution failed",
                step_id=step_id,
                execution_id=request.execution_id,
                workflow_id=request.workflow_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Step completed",
            step_id=step_id,
            step_type=step.type,
            execution_id=request.execution_id,
            duration_ms=duration_ms,
        )
        return StepResult(
            step_id=step_id,
            step_type=step.type,
            status=ExecutionStatus.COMPLETED,
            output=output,
            started_at=started_at,
            duration_ms=duration_ms,
        )

    # ─── Handlers ────────────────────────────────────────────────

    async def _execute_integration(self, step_id: str, step: IntegrationStep, execution: Execution) -> Any:
        if self._registry is None:
            raise ConfigurationError("No connector registry configured for integration steps")
        connector = self._registry.get_connector(step.protocol)
        payload = ExpressionEvaluator.resolve_config(step.request, execution)
        return await connector.invoke(payload)

    async def _execute_transformation(
        self, step_id: str, step: TransformationStep, execution: Execution
    ) -> Any:
        variables = execution.context.variables
        source = get_nested(variables, step.source) if step.source else variables
        if not isinstance(source, dict):
            raise ConfigurationError(
                f"Transformation source {step.source!r} is not an object", {"stepId": step_id}
            )
        if step.mapping is not None:
            return self._mapper.map_data(source, step.mapping)
        return self._mapper.transform(source, step.logic)

    async def _execute_condition(self, step_id: str, step: ConditionStep, execution: Execution) -> dict:
        outcome = ExpressionEvaluator.evaluate_condition(step.expression, execution)
        return {"branch": "true" if outcome else "false", "result": outcome}

    async def _execute_custom(self, step_id: str, step: CustomStep, execution: Execution) -> Any:
        if step.handler is None:
            return None
        handler = self._custom_handlers.get(step.handler)
        if handler is None:
            raise ConfigurationError(
                f"No handler registered for custom step: {step.handler}", {"stepId": step_id}
            )
        return await handler(step, execution)
