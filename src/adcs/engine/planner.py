# src/adcs/engine/planner.py
"""Execution Planner: dependency-respecting order over an adaptor graph.

The order is a topological sort with declaration order as the tie-break,
so two plans of the same graph are always identical. The executor does not
run nodes strictly in this order; it uses ready() to dispatch every node
whose inputs are all recorded, which is what lets independent branches run
concurrently.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass

import networkx as nx
import structlog

from adcs.contracts.enums import GraphErrorKind
from adcs.contracts.errors import GraphValidationError
from adcs.contracts.types import NodeID
from adcs.core.dag import AdaptorGraph

slog = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Topological order plus the dependency maps used for readiness.

    Attributes:
        order: Every node exactly once; inputs always precede consumers
        dependencies: Node id -> declared input ids
        dependents: Node id -> consumer ids (declaration order)
    """

    order: tuple[NodeID, ...]
    dependencies: Mapping[NodeID, tuple[NodeID, ...]]
    dependents: Mapping[NodeID, tuple[NodeID, ...]]

    def ready(self, completed: Collection[NodeID]) -> list[NodeID]:
        """Nodes not yet completed whose every input is completed, in plan order.

        "Completed" means an output or a failure is recorded for the node.
        """
        return [
            node_id
            for node_id in self.order
            if node_id not in completed and all(dep in completed for dep in self.dependencies[node_id])
        ]


class ExecutionPlanner:
    """Produces ExecutionPlans. Stateless."""

    def plan(self, graph: AdaptorGraph) -> ExecutionPlan:
        """Compute a deterministic execution order.

        Raises:
            GraphValidationError: DANGLING_REFERENCE for edges to undeclared
                nodes, CYCLE_DETECTED (with the cycle) for cyclic graphs
        """
        undeclared = graph.undeclared_ids()
        if undeclared:
            raise GraphValidationError(
                f"Cannot plan: edges reference undeclared node(s) {undeclared}",
                kind=GraphErrorKind.DANGLING_REFERENCE,
                node_id=undeclared[0],
            )

        try:
            order = tuple(
                NodeID(n) for n in nx.lexicographical_topological_sort(graph.get_nx_graph(), key=graph.declaration_index)
            )
        except nx.NetworkXUnfeasible:
            cycle = graph.find_cycle() or ()
            raise GraphValidationError(
                f"Cannot plan: graph contains a cycle: {' -> '.join([*cycle, *cycle[:1]])}",
                kind=GraphErrorKind.CYCLE_DETECTED,
                node_id=cycle[0] if cycle else None,
                cycle=cycle,
            ) from None

        dependencies = {node_id: graph.get_inputs(node_id) for node_id in order}
        dependents = {node_id: tuple(graph.get_consumers(node_id)) for node_id in order}
        slog.debug("plan_computed", node_count=len(order), order=list(order))
        return ExecutionPlan(order=order, dependencies=dependencies, dependents=dependents)


def plan(graph: AdaptorGraph) -> ExecutionPlan:
    """Module-level shortcut for ExecutionPlanner().plan(graph)."""
    return ExecutionPlanner().plan(graph)
