"""Workflow graph optimizer.

Works on a structural clone of the caller's workflow:

1. Reorder nodes: START first, END last, the rest by dependency count.
2. Elide pass-through nodes (one edge in, one edge out, nothing to run).
3. Deduplicate (from, to) transitions, then merge transitions sharing
   ``from`` and ``condition`` into one multi-target transition.

Steps 2 and the dedup of step 3 repeat until neither changes the graph, so
optimizing an optimized workflow returns an equal graph.
"""

from typing import Optional

import structlog

from core.constants import NodeType
from core.exceptions import handle_error
from workflow.models import Transition, Workflow, WorkflowNode
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)

_EDGE_KINDS = {NodeType.START.value, NodeType.END.value}


def _order_key(node: WorkflowNode) -> tuple[int, int]:
    if node.kind == NodeType.START.value:
        rank = 0
    elif node.kind == NodeType.END.value:
        rank = 2
    else:
        rank = 1
    return rank, len(node.dependencies)


class WorkflowOptimizer:
    """Rewrites validated workflows into a leaner, equivalent graph."""

    def __init__(self, validator: WorkflowValidator, execution_context=None):
        self._validator = validator
        self._context = execution_context

    async def optimize(self, workflow: Workflow) -> Workflow:
        """Return an optimized copy; the argument is never modified."""
        self._validator.validate_fields(workflow)

        if self._context is not None:
            stored = await self._context.get_workflow_data(workflow.id)
            if stored.version != workflow.version:
                logger.warning(
                    "Optimizing a workflow that is not the stored head version",
                    workflow_id=workflow.id,
                    version=workflow.version,
                    stored_version=stored.version,
                )

        optimized = workflow.clone()
        if optimized.nodes is not None:
            optimized.nodes = sorted(optimized.nodes, key=_order_key)

        if optimized.transitions is not None:
            elided: list[str] = []
            while True:
                removed = self._elide_pass_through(optimized)
                if removed is not None:
                    elided.append(removed)
                    continue
                deduped = self._dedupe(optimized.transitions)
                if len(deduped) == len(optimized.transitions):
                    break
                optimized.transitions = deduped
            optimized.transitions = self._merge(optimized.transitions)
            if elided:
                logger.debug("Pass-through nodes elided", workflow_id=workflow.id, nodes=elided)

        try:
            self._validator.validate(optimized)
        except Exception as e:
            logger.warning("Optimized workflow failed validation", workflow_id=workflow.id, error=str(e))
            handle_error(e, reraise=True)

        logger.info(
            "Workflow optimized",
            workflow_id=workflow.id,
            nodes=len(optimized.nodes or []),
            transitions=len(optimized.transitions or []),
        )
        return optimized

    def _find_pass_through(self, workflow: Workflow) -> Optional[tuple]:
        transitions = workflow.transitions
        for node in workflow.nodes or []:
            if node.kind in _EDGE_KINDS or node.transformation is not None or node.step is not None:
                continue
            incoming = [t for t in transitions if node.id in t.targets]
            outgoing = [t for t in transitions if t.from_node == node.id]
            if len(incoming) != 1 or len(outgoing) != 1:
                continue
            inbound, outbound = incoming[0], outgoing[0]
            if len(inbound.targets) != 1 or len(outbound.targets) != 1:
                continue
            if inbound is outbound:
                continue
            return node, inbound, outbound
        return None

    def _elide_pass_through(self, workflow: Workflow) -> Optional[str]:
        """Remove one pass-through node. Returns its id, or None if there was none."""
        found = self._find_pass_through(workflow)
        if found is None:
            return None
        node, inbound, outbound = found
        bypass = Transition(
            from_node=inbound.from_node,
            to_node=outbound.targets[0],
            condition=inbound.condition or outbound.condition,
        )
        workflow.transitions = [
            t for t in workflow.transitions if t is not inbound and t is not outbound
        ]
        workflow.transitions.append(bypass)
        workflow.nodes = [n for n in workflow.nodes if n.id != node.id]
        return node.id

    @staticmethod
    def _dedupe(transitions: list[Transition]) -> list[Transition]:
        """Keep one transition per (from, to), preferring unconditional or "true"."""
        unique: dict[tuple, Transition] = {}
        for transition in transitions:
            key = (transition.from_node, tuple(transition.targets))
            if key not in unique or not transition.condition or transition.condition == "true":
                unique[key] = transition
        return list(unique.values())

    @staticmethod
    def _merge(transitions: list[Transition]) -> list[Transition]:
        """Collapse transitions with the same ``from`` and ``condition``."""
        groups: dict[tuple, list[Transition]] = {}
        for transition in transitions:
            groups.setdefault((transition.from_node, transition.condition), []).append(transition)

        merged: list[Transition] = []
        for (from_node, condition), group in groups.items():
            if len(group) == 1:
                merged.append(group[0])
                continue
            targets: list[str] = []
            for transition in group:
                for target in transition.targets:
                    if target not in targets:
                        targets.append(target)
            merged.append(Transition(from_node=from_node, to_node=targets, condition=condition))
        return merged
