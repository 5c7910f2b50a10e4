"""Domain model: workflows, their graph, versions and executions.

Storage and transport use camelCase dicts (``from``/``to``, ``createdAt``,
``workflowId``); the Python side uses plain dataclasses.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.constants import (
    EXECUTION_TRANSITIONS,
    ExecutionStatus,
    ValidationCategory,
    WorkflowStatus,
)
from core.exceptions import InternalError, ValidationError
from core.utils import ensure_aware, isoformat, parse_datetime, utc_now
from workflow.steps import StepDefinition, parse_step


def _coerce_status(value: Any) -> Union[WorkflowStatus, Any]:
    """Map known status strings to the enum; leave anything else for the validator."""
    try:
        return WorkflowStatus(value)
    except ValueError:
        return value


def _parse_step_or_raise(node_id: str, raw: Any) -> StepDefinition:
    try:
        return parse_step(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid step definition for node {node_id}: {e.errors()[0]['msg']}",
            category=ValidationCategory.STRUCTURAL,
            details={"nodeId": node_id},
        ) from e


@dataclass
class WorkflowNode:
    """One node of the workflow graph."""

    id: str
    type: str
    name: Optional[str] = None
    dependencies: list[str] = field(default_factory=list)
    transformation: Any = None
    step: Optional[StepDefinition] = None

    @property
    def kind(self) -> str:
        """Node type as a plain string."""
        return self.type.value if hasattr(self.type, "value") else self.type

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.kind,
            "dependencies": list(self.dependencies),
        }
        if self.name is not None:
            data["name"] = self.name
        if self.transformation is not None:
            data["transformation"] = copy.deepcopy(self.transformation)
        if self.step is not None:
            data["step"] = self.step.model_dump(mode="json")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowNode":
        node_id = data.get("id")
        step = data.get("step")
        return cls(
            id=node_id,
            type=data.get("type"),
            name=data.get("name"),
            dependencies=list(data.get("dependencies") or []),
            transformation=copy.deepcopy(data.get("transformation")),
            step=_parse_step_or_raise(node_id, step) if step is not None else None,
        )

    def clone(self) -> "WorkflowNode":
        return WorkflowNode(
            id=self.id,
            type=self.type,
            name=self.name,
            dependencies=list(self.dependencies),
            transformation=copy.deepcopy(self.transformation),
            step=self.step.model_copy(deep=True) if self.step is not None else None,
        )


@dataclass
class Transition:
    """Directed edge. ``to_node`` becomes a list once transitions are merged."""

    from_node: str
    to_node: Union[str, list[str]]
    condition: Optional[str] = None

    @property
    def targets(self) -> list[str]:
        if isinstance(self.to_node, list):
            return list(self.to_node)
        return [self.to_node]

    def to_dict(self) -> dict:
        return {
            "from": self.from_node,
            "to": list(self.to_node) if isinstance(self.to_node, list) else self.to_node,
            "condition": self.condition,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transition":
        to_node = data.get("to")
        return cls(
            from_node=data.get("from"),
            to_node=list(to_node) if isinstance(to_node, list) else to_node,
            condition=data.get("condition"),
        )

    def clone(self) -> "Transition":
        return Transition(
            from_node=self.from_node,
            to_node=list(self.to_node) if isinstance(self.to_node, list) else self.to_node,
            condition=self.condition,
        )


@dataclass
class Workflow:
    """A workflow definition at a given version."""

    id: str
    name: str
    status: Union[WorkflowStatus, str] = WorkflowStatus.DRAFT
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: int = 1
    description: str = ""
    nodes: Optional[list[WorkflowNode]] = None
    transitions: Optional[list[Transition]] = None
    subworkflows: Optional[list[dict]] = None

    def node_ids(self) -> set[str]:
        return {node.id for node in self.nodes or []}

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes or []:
            if node.id == node_id:
                return node
        return None

    def definition(self) -> dict:
        """The versioned part of the workflow: graph and descriptive fields."""
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status.value if isinstance(self.status, WorkflowStatus) else self.status,
            "nodes": [n.to_dict() for n in self.nodes] if self.nodes is not None else None,
            "transitions": (
                [t.to_dict() for t in self.transitions] if self.transitions is not None else None
            ),
            "subworkflows": copy.deepcopy(self.subworkflows),
        }

    def to_dict(self) -> dict:
        data = self.definition()
        data.update(
            {
                "id": self.id,
                "version": self.version,
                "createdAt": isoformat(self.created_at),
                "updatedAt": isoformat(self.updated_at),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Workflow":
        nodes = data.get("nodes")
        transitions = data.get("transitions")
        now = utc_now()
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            status=_coerce_status(data.get("status", WorkflowStatus.DRAFT)),
            created_at=parse_datetime(data.get("createdAt")) or now,
            updated_at=parse_datetime(data.get("updatedAt")) or now,
            version=data.get("version", 1),
            description=data.get("description") or "",
            nodes=[WorkflowNode.from_dict(n) for n in nodes] if nodes is not None else None,
            transitions=(
                [Transition.from_dict(t) for t in transitions] if transitions is not None else None
            ),
            subworkflows=copy.deepcopy(data.get("subworkflows")),
        )

    def clone(self) -> "Workflow":
        """Structural copy sharing no mutable state with the original."""
        return Workflow(
            id=self.id,
            name=self.name,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
            description=self.description,
            nodes=[n.clone() for n in self.nodes] if self.nodes is not None else None,
            transitions=(
                [t.clone() for t in self.transitions] if self.transitions is not None else None
            ),
            subworkflows=copy.deepcopy(self.subworkflows),
        )


@dataclass(frozen=True)
class WorkflowVersion:
    """Immutable snapshot of a workflow definition."""

    id: str
    workflow_id: str
    version: int
    definition: dict
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "version": self.version,
            "definition": copy.deepcopy(self.definition),
            "createdAt": isoformat(self.created_at),
        }

    def to_workflow(self, workflow_id: Optional[str] = None) -> Workflow:
        data = dict(self.definition)
        data.update({"id": workflow_id or self.workflow_id, "version": self.version})
        return Workflow.from_dict(data)


@dataclass
class ErrorRecord:
    """Last step failure recorded on an execution."""

    message: str
    code: str
    timestamp: datetime
    node_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "code": self.code,
            "timestamp": isoformat(self.timestamp),
            "nodeId": self.node_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ErrorRecord":
        return cls(
            message=data["message"],
            code=data["code"],
            timestamp=parse_datetime(data["timestamp"]),
            node_id=data.get("nodeId"),
        )


@dataclass
class ExecutionState:
    """Mutable run-time bag attached to an execution."""

    variables: dict[str, Any] = field(default_factory=dict)
    current_node: Optional[str] = None
    last_error: Optional[ErrorRecord] = None
    retry_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    steps: dict[str, StepDefinition] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "variables": copy.deepcopy(self.variables),
            "currentNode": self.current_node,
            "lastError": self.last_error.to_dict() if self.last_error else None,
            "retryCount": self.retry_count,
            "metadata": copy.deepcopy(self.metadata),
            "steps": {sid: step.model_dump(mode="json") for sid, step in self.steps.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionState":
        last_error = data.get("lastError")
        return cls(
            variables=dict(data.get("variables") or {}),
            current_node=data.get("currentNode"),
            last_error=ErrorRecord.from_dict(last_error) if last_error else None,
            retry_count=data.get("retryCount", 0),
            metadata=dict(data.get("metadata") or {}),
            steps={sid: parse_step(raw) for sid, raw in (data.get("steps") or {}).items()},
        )


@dataclass
class Execution:
    """One run of a workflow."""

    id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    context: ExecutionState = field(default_factory=ExecutionState)
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    def transition_to(self, status: ExecutionStatus) -> None:
        """Move along Pending -> Running -> {Completed | Failed}."""
        if status not in EXECUTION_TRANSITIONS[self.status]:
            raise InternalError(
                f"Illegal execution status transition {self.status.value} -> {status.value}",
                details={"executionId": self.id},
            )
        self.status = status

    def mark_completed(self) -> None:
        self.transition_to(ExecutionStatus.COMPLETED)
        self.completed_at = self._finish_time()

    def mark_failed(self, error: ErrorRecord) -> None:
        self.transition_to(ExecutionStatus.FAILED)
        self.context.last_error = error
        self.completed_at = self._finish_time()

    def _finish_time(self) -> datetime:
        now = utc_now()
        started = ensure_aware(self.started_at)
        return now if now >= started else started

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "status": self.status.value,
            "context": self.context.to_dict(),
            "startedAt": isoformat(self.started_at),
            "completedAt": isoformat(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Execution":
        return cls(
            id=data["id"],
            workflow_id=data["workflowId"],
            status=ExecutionStatus(data.get("status", ExecutionStatus.PENDING)),
            context=ExecutionState.from_dict(data.get("context") or {}),
            started_at=parse_datetime(data.get("startedAt")) or utc_now(),
            completed_at=parse_datetime(data.get("completedAt")),
        )
