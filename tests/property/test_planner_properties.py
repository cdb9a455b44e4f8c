# tests/property/test_planner_properties.py
"""Property-based tests for the Execution Planner.

These tests verify the ordering guarantees of the plan:
- Every node appears after all of its inputs
- Among ready nodes the earliest declared one always goes first
- Planning is deterministic for a given declaration
- Cycles are reported with the nodes that form them
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from adcs.contracts import GraphErrorKind, GraphValidationError, NodeID
from adcs.core.dag import AdaptorGraph
from adcs.core.nodes import Node, Provider
from adcs.engine.planner import plan
from tests.property.conftest import adaptor_graphs
from tests.property.settings import DETERMINISM_SETTINGS, STANDARD_SETTINGS


@st.composite
def shuffled_declarations(draw: st.DrawFn) -> list[Node]:
    return list(draw(st.permutations(draw(adaptor_graphs()))))


class TestPlanOrdering:
    @given(nodes=shuffled_declarations())
    @STANDARD_SETTINGS
    def test_inputs_come_first(self, nodes: list[Node]) -> None:
        result = plan(AdaptorGraph.from_nodes(nodes))
        position = {node_id: i for i, node_id in enumerate(result.order)}

        assert len(result.order) == len(nodes)
        for node in nodes:
            for input_id in node.input_ids:
                assert position[input_id] < position[node.node_id]

    @given(nodes=shuffled_declarations())
    @DETERMINISM_SETTINGS
    def test_earliest_declared_ready_node_goes_first(self, nodes: list[Node]) -> None:
        graph = AdaptorGraph.from_nodes(nodes)
        result = plan(graph)

        completed: set[NodeID] = set()
        for node_id in result.order:
            ready = result.ready(completed)
            assert node_id == min(ready, key=graph.declaration_index)
            completed.add(node_id)

    @given(nodes=shuffled_declarations())
    @DETERMINISM_SETTINGS
    def test_same_declaration_same_plan(self, nodes: list[Node]) -> None:
        assert plan(AdaptorGraph.from_nodes(nodes)) == plan(AdaptorGraph.from_nodes(nodes))


class TestCycles:
    @given(nodes=adaptor_graphs(), data=st.data())
    @STANDARD_SETTINGS
    def test_back_edge_detected(self, nodes: list[Node], data: st.DataObject) -> None:
        adaptors = [node for node in nodes if not isinstance(node, Provider)]
        if not adaptors:
            return
        consumer = data.draw(st.sampled_from(adaptors))
        target = data.draw(st.sampled_from(consumer.input_ids))
        graph = AdaptorGraph.from_nodes(nodes)
        graph.add_edge(consumer.node_id, target)

        with pytest.raises(GraphValidationError) as exc_info:
            plan(graph)

        assert exc_info.value.kind == GraphErrorKind.CYCLE_DETECTED
        assert {consumer.node_id, target} <= set(exc_info.value.cycle)
