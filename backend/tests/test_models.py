"""Tests for domain models and the error taxonomy."""

from datetime import timedelta

import pytest

from conftest import edge, node
from core.constants import ErrorCode, ExecutionStatus, ValidationCategory
from core.exceptions import (
    AutomationError,
    ConflictError,
    ConfigurationError,
    InternalError,
    ValidationError,
    handle_error,
)
from core.utils import get_nested, set_nested, utc_now
from workflow.models import ErrorRecord, Execution, Transition, WorkflowNode


@pytest.mark.unit
class TestExecutionStateMachine:
    def test_happy_path(self):
        execution = Execution(id="e", workflow_id="w")
        execution.transition_to(ExecutionStatus.RUNNING)
        execution.transition_to(ExecutionStatus.RUNNING)
        execution.mark_completed()

        assert execution.is_finished
        assert execution.completed_at >= execution.started_at

    def test_pending_can_fail_directly(self):
        execution = Execution(id="e", workflow_id="w")
        execution.mark_failed(ErrorRecord("boom", ErrorCode.STEP_EXECUTION_ERROR.value, utc_now()))
        assert execution.status == ExecutionStatus.FAILED
        assert execution.context.last_error.message == "boom"

    def test_pending_cannot_complete(self):
        with pytest.raises(InternalError, match="Pending -> Completed"):
            Execution(id="e", workflow_id="w").mark_completed()

    def test_terminal_states_are_final(self):
        execution = Execution(id="e", workflow_id="w", status=ExecutionStatus.COMPLETED)
        with pytest.raises(InternalError):
            execution.transition_to(ExecutionStatus.RUNNING)

    def test_completion_never_precedes_start(self):
        execution = Execution(id="e", workflow_id="w", started_at=utc_now() + timedelta(hours=1))
        execution.transition_to(ExecutionStatus.RUNNING)
        execution.mark_completed()
        assert execution.completed_at == execution.started_at


@pytest.mark.unit
class TestGraphModels:
    def test_transition_targets(self):
        assert Transition("a", "b").targets == ["b"]
        assert Transition("a", ["b", "c"]).targets == ["b", "c"]

    def test_transition_dict_uses_from_and_to(self):
        assert Transition.from_dict(edge("a", ["b"], "ok")).to_dict() == {
            "from": "a",
            "to": ["b"],
            "condition": "ok",
        }

    def test_clone_is_independent(self, workflow_factory):
        workflow = workflow_factory()
        copy = workflow.clone()
        copy.nodes[1].dependencies.append("x")
        copy.transitions[0].to_node = "end"

        assert workflow.nodes[1].dependencies == []
        assert workflow.transitions[0].to_node == "fetch"

    def test_invalid_step_definition(self):
        with pytest.raises(ValidationError, match="Invalid step definition for node n1"):
            WorkflowNode.from_dict(node("n1", step={"type": "transformation", "source": "x"}))

    def test_unknown_step_field(self):
        with pytest.raises(ValidationError):
            WorkflowNode.from_dict(node("n1", step={"type": "custom", "retries": 3}))


@pytest.mark.unit
class TestErrors:
    def test_codes_and_status(self):
        assert ValidationError("x").code == ErrorCode.VALIDATION_ERROR
        assert ConflictError("x").status_code == 409
        assert issubclass(ConflictError, ConfigurationError)

    def test_to_dict(self):
        error = ValidationError("bad", ValidationCategory.STRUCTURAL, {"nodeId": "n"})
        assert error.to_dict() == {
            "code": "VALIDATION_ERROR",
            "message": "bad",
            "details": {"nodeId": "n"},
            "category": "structural",
        }

    def test_handle_error_reraises_same_instance(self):
        error = AutomationError("oops")
        with pytest.raises(AutomationError) as exc:
            handle_error(error, reraise=True)
        assert exc.value is error

    def test_handle_error_can_swallow(self):
        handle_error(RuntimeError("logged only"))


@pytest.mark.unit
class TestNestedPaths:
    def test_get_nested(self):
        data = {"a": {"b": {"c": 1}}}
        assert get_nested(data, "a.b.c") == 1
        assert get_nested(data, "a.x.c") is None

    def test_set_nested_creates_parents(self):
        data: dict = {"a": "scalar"}
        set_nested(data, "a.b", 2)
        set_nested(data, "x.y.z", 3)
        assert data == {"a": {"b": 2}, "x": {"y": {"z": 3}}}
