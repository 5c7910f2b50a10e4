"""Tests for single-step execution."""

import httpx
import pytest

from conftest import RecordingTransport
from core.constants import ExecutionStatus
from core.exceptions import ConfigurationError, ExecutionError, InternalError, NotFoundError
from integrations.connectors.rest_connector import RestConnector
from workflow.models import Execution, ExecutionState
from workflow.step_executor import StepRequest
from workflow.steps import parse_step


async def _seed(context, steps: dict, variables: dict = None) -> Execution:
    execution = Execution(
        id="exec-1",
        workflow_id="wf-1",
        context=ExecutionState(
            variables=dict(variables or {}),
            steps={step_id: parse_step(raw) for step_id, raw in steps.items()},
        ),
    )
    await context.save_execution(execution)
    return execution


def _request() -> StepRequest:
    return StepRequest(execution_id="exec-1", workflow_id="wf-1")


@pytest.mark.unit
class TestStepLifecycle:
    async def test_marks_current_node_and_running(self, step_executor, context):
        execution = await _seed(context, {"noop": {"type": "custom"}})

        result = await step_executor.execute_step("noop", _request())

        assert result.status == ExecutionStatus.COMPLETED
        assert result.output is None
        assert execution.context.current_node == "noop"
        assert execution.status == ExecutionStatus.RUNNING

    async def test_result_shape(self, step_executor, context):
        await _seed(context, {"noop": {"type": "custom"}})
        data = (await step_executor.execute_step("noop", _request())).to_dict()

        assert data["stepId"] == "noop"
        assert data["type"] == "custom"
        assert data["status"] == "Completed"
        assert set(data["metadata"]) == {"stepId", "duration", "timestamp"}

    async def test_unknown_step(self, step_executor, context):
        await _seed(context, {"noop": {"type": "custom"}})
        with pytest.raises(NotFoundError, match="Step ghost not found in execution context"):
            await step_executor.execute_step("ghost", _request())

    async def test_unknown_execution(self, step_executor):
        with pytest.raises(NotFoundError):
            await step_executor.execute_step("noop", _request())

    async def test_finished_execution_cannot_run_steps(self, step_executor, context):
        execution = await _seed(context, {"noop": {"type": "custom"}})
        execution.transition_to(ExecutionStatus.RUNNING)
        execution.mark_completed()

        with pytest.raises(InternalError, match="Illegal execution status transition"):
            await step_executor.execute_step("noop", _request())


@pytest.mark.unit
class TestCustomSteps:
    async def test_registered_handler_runs(self, step_executor, context):
        calls = []

        async def greet(step, execution):
            calls.append(step.config["who"])
            return f"hello {step.config['who']}"

        step_executor.register_handler("greet", greet)
        execution = await _seed(
            context,
            {"hi": {"type": "custom", "handler": "greet", "config": {"who": "ops"}, "output_variable": "greeting"}},
        )

        result = await step_executor.execute_step("hi", _request())

        assert calls == ["ops"]
        assert result.output == "hello ops"
        assert execution.context.variables["greeting"] == "hello ops"

    async def test_unregistered_handler(self, step_executor, context):
        await _seed(context, {"hi": {"type": "custom", "handler": "missing"}})
        with pytest.raises(ConfigurationError, match="No handler registered"):
            await step_executor.execute_step("hi", _request())

    async def test_handler_error_propagates_unchanged(self, step_executor, context):
        async def explode(step, execution):
            raise RuntimeError("boom")

        step_executor.register_handler("explode", explode)
        await _seed(context, {"x": {"type": "custom", "handler": "explode"}})

        with pytest.raises(RuntimeError, match="boom"):
            await step_executor.execute_step("x", _request())


@pytest.mark.unit
class TestConditionSteps:
    async def test_true_branch(self, step_executor, context):
        await _seed(context, {"check": {"type": "condition", "expression": "variables.total > 100"}}, {"total": 150})
        result = await step_executor.execute_step("check", _request())
        assert result.output == {"branch": "true", "result": True}

    async def test_false_branch(self, step_executor, context):
        await _seed(context, {"check": {"type": "condition", "expression": "{{ variables.total > 100 }}"}}, {"total": 5})
        result = await step_executor.execute_step("check", _request())
        assert result.output == {"branch": "false", "result": False}

    async def test_broken_expression(self, step_executor, context):
        await _seed(context, {"check": {"type": "condition", "expression": "variables.missing > 1"}})
        with pytest.raises(ExecutionError, match="Expression evaluation failed"):
            await step_executor.execute_step("check", _request())


@pytest.mark.unit
class TestTransformationSteps:
    async def test_mapping_from_source(self, step_executor, context):
        execution = await _seed(
            context,
            {
                "map": {
                    "type": "transformation",
                    "source": "order",
                    "mapping": {
                        "sourceFields": ["customer.name", "amount"],
                        "targetFields": ["contact", "total"],
                        "transformations": {"amount": {"type": "number"}},
                    },
                    "output_variable": "crm",
                }
            },
            {"order": {"customer": {"name": "Ada"}, "amount": "12.5"}},
        )
        result = await step_executor.execute_step("map", _request())

        assert result.output == {"contact": "Ada", "total": 12.5}
        assert execution.context.variables["crm"] == {"contact": "Ada", "total": 12.5}

    async def test_logic_over_all_variables(self, step_executor, context):
        await _seed(
            context,
            {"fmt": {"type": "transformation", "logic": {"full": "$concat:first:last"}}},
            {"first": "Ada", "last": "Lovelace"},
        )
        result = await step_executor.execute_step("fmt", _request())
        assert result.output == {"full": "AdaLovelace"}

    async def test_source_must_be_an_object(self, step_executor, context):
        await _seed(
            context,
            {"fmt": {"type": "transformation", "source": "name", "logic": {"x": 1}}},
            {"name": "Ada"},
        )
        with pytest.raises(ConfigurationError, match="is not an object"):
            await step_executor.execute_step("fmt", _request())


@pytest.mark.unit
class TestIntegrationSteps:
    async def test_calls_registered_connector_with_resolved_request(self, step_executor, context, registry):
        transport = RecordingTransport(lambda request: httpx.Response(200, json={"id": 42}))
        registry.register_connector(
            RestConnector("crm", "CRM", "https://crm.example.com", transport=transport)
        )
        await _seed(
            context,
            {
                "lookup": {
                    "type": "integration",
                    "protocol": "REST",
                    "request": {"method": "GET", "endpoint": "/users/{{ variables.user_id }}"},
                    "output_variable": "user",
                }
            },
            {"user_id": 42},
        )

        result = await step_executor.execute_step("lookup", _request())

        assert result.output == {"id": 42}
        assert str(transport.requests[0].url) == "https://crm.example.com/users/42"

    async def test_no_connector_for_protocol(self, step_executor, context):
        await _seed(context, {"lookup": {"type": "integration", "protocol": "SOAP"}})
        with pytest.raises(NotFoundError, match="No connector registered for protocol: SOAP"):
            await step_executor.execute_step("lookup", _request())
