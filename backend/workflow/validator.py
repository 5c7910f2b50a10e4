"""Workflow graph validation.

Checks run in a fixed order and stop at the first violation, so the same
input always fails with the same message and category.
"""

import re
from datetime import datetime
from typing import Any, Optional

from core.constants import (
    MAX_SUBWORKFLOW_DEPTH,
    MAX_WORKFLOW_NODES,
    MIN_WORKFLOW_NODES,
    WORKFLOW_NAME_MAX_LENGTH,
    WORKFLOW_NAME_PATTERN,
    NodeType,
    StepType,
    ValidationCategory,
    WorkflowStatus,
)
from core.exceptions import ValidationError
from core.utils import ensure_aware
from workflow.models import Workflow
from workflow.steps import StepDefinition

_NAME_RE = re.compile(WORKFLOW_NAME_PATTERN)
_STATUS_VALUES = {s.value for s in WorkflowStatus}
_STEP_TYPES = {t.value for t in StepType}


def _structural(message: str, **details: Any) -> ValidationError:
    return ValidationError(message, category=ValidationCategory.STRUCTURAL, details=details)


def _business(message: str, **details: Any) -> ValidationError:
    return ValidationError(message, category=ValidationCategory.BUSINESS_RULE, details=details)


class WorkflowValidator:
    """Validates workflow fields and graph structure without mutating input."""

    def validate(self, workflow: Optional[Workflow]) -> None:
        """Run every check; raise ValidationError on the first failure."""
        self.validate_fields(workflow)
        self._validate_name_pattern(workflow.name)

        if workflow.nodes is not None:
            self._validate_nodes(workflow)
        if workflow.subworkflows:
            self._validate_nesting(workflow.subworkflows, 1)
        if workflow.transitions is not None:
            self._validate_transitions(workflow)

    def validate_fields(self, workflow: Optional[Workflow]) -> None:
        """Identity, name, status and timestamp checks only."""
        if workflow is None:
            raise _structural("Workflow is required")
        if not isinstance(workflow.id, str) or not workflow.id.strip():
            raise _structural("Workflow ID must be a non-empty string")

        name = workflow.name
        if not isinstance(name, str) or not name.strip():
            raise _business("Workflow name is required", field="name")
        if len(name) > WORKFLOW_NAME_MAX_LENGTH:
            raise _business(
                f"Workflow name cannot exceed {WORKFLOW_NAME_MAX_LENGTH} characters",
                field="name",
            )

        status = workflow.status.value if isinstance(workflow.status, WorkflowStatus) else workflow.status
        if status not in _STATUS_VALUES:
            raise _business(f"Invalid workflow status: {status}", field="status")

        created_at, updated_at = workflow.created_at, workflow.updated_at
        if not isinstance(created_at, datetime) or not isinstance(updated_at, datetime):
            raise _business("Invalid workflow timestamps", field="createdAt")
        if ensure_aware(updated_at) < ensure_aware(created_at):
            raise _business("updatedAt cannot be earlier than createdAt", field="updatedAt")

    def validate_step(self, step_id: str, step: Optional[StepDefinition]) -> None:
        """Check a compiled step definition before it is dispatched."""
        if not isinstance(step_id, str) or not step_id.strip():
            raise _structural("Step ID must be a non-empty string")
        if step is None:
            raise _structural(f"Step {step_id} has no definition", stepId=step_id)
        if getattr(step, "type", None) not in _STEP_TYPES:
            raise _structural(
                f"Unsupported step type: {getattr(step, 'type', None)}", stepId=step_id
            )

    # ─── Rules ───────────────────────────────────────────────────

    def _validate_name_pattern(self, name: str) -> None:
        if not _NAME_RE.fullmatch(name):
            raise _business(
                "Workflow name contains invalid characters or has invalid length",
                field="name",
            )

    def _validate_nodes(self, workflow: Workflow) -> None:
        nodes = workflow.nodes
        if len(nodes) < MIN_WORKFLOW_NODES or len(nodes) > MAX_WORKFLOW_NODES:
            raise _structural(
                f"Workflow must have between {MIN_WORKFLOW_NODES} and "
                f"{MAX_WORKFLOW_NODES} nodes",
                nodeCount=len(nodes),
            )

        seen: set[str] = set()
        for node in nodes:
            if not isinstance(node.id, str) or not node.id.strip():
                raise _structural("Node ID must be a non-empty string")
            if node.id in seen:
                raise _structural(f"Duplicate node id: {node.id}", nodeId=node.id)
            seen.add(node.id)

        kinds = {node.kind for node in nodes}
        if NodeType.START.value not in kinds or NodeType.END.value not in kinds:
            raise _structural("Workflow must contain both START and END nodes.")

    def _validate_nesting(self, subworkflows: list, depth: int) -> None:
        if depth > MAX_SUBWORKFLOW_DEPTH:
            raise _structural(
                f"Subworkflow nesting depth cannot exceed {MAX_SUBWORKFLOW_DEPTH}",
                depth=depth,
            )
        for sub in subworkflows:
            children = sub.get("subworkflows") if isinstance(sub, dict) else getattr(sub, "subworkflows", None)
            if children:
                self._validate_nesting(children, depth + 1)

    def _validate_transitions(self, workflow: Workflow) -> None:
        seen: set[tuple] = set()
        for transition in workflow.transitions:
            for target in transition.targets:
                key = (transition.from_node, target)
                if key in seen:
                    raise _structural(
                        f"Duplicate transition detected between nodes "
                        f"{transition.from_node} and {target}.",
                        **{"from": transition.from_node, "to": target},
                    )
                seen.add(key)

        if workflow.nodes is None:
            return
        node_ids = workflow.node_ids()
        for transition in workflow.transitions:
            if transition.from_node not in node_ids or any(
                target not in node_ids for target in transition.targets
            ):
                raise _structural(
                    "Transition references non-existent node(s).",
                    **{"from": transition.from_node, "to": transition.to_node},
                )
