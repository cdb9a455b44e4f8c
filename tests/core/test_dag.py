# tests/core/test_dag.py
"""Tests for AdaptorGraph construction, validation and queries."""

import pytest

from adcs.contracts import GraphErrorKind, GraphValidationError, NodeID, OutputFormat
from adcs.core.config import AdaptorConfig
from adcs.core.dag import AdaptorGraph
from adcs.core.nodes import ChainedAdaptor, MultiInputAdaptor, SingleInputAdaptor
from tests.conftest import multi, provider, single


def _risk_graph() -> AdaptorGraph:
    return AdaptorGraph.from_nodes(
        [
            provider("financial"),
            provider("news"),
            provider("market"),
            multi("risk", ["financial", "news", "market"], OutputFormat.UINT256, aggregation_method="weighted_average"),
        ]
    )


class TestGraphBuilder:
    """Building graphs from node declarations."""

    def test_empty_graph(self) -> None:
        graph = AdaptorGraph()
        assert graph.node_count == 0
        assert graph.edge_count == 0

    def test_from_nodes_derives_edges(self) -> None:
        graph = _risk_graph()
        assert graph.node_count == 4
        assert graph.edge_count == 3
        assert ("financial", "risk") in graph.edges()

    def test_duplicate_node_id_rejected(self) -> None:
        graph = AdaptorGraph()
        graph.add_node(provider("financial"))
        with pytest.raises(GraphValidationError) as exc_info:
            graph.add_node(provider("financial"))
        assert exc_info.value.kind == GraphErrorKind.INVALID_STRUCTURE

    def test_declaration_order_preserved(self) -> None:
        graph = _risk_graph()
        assert graph.node_ids() == ["financial", "news", "market", "risk"]
        assert graph.declaration_index("market") == 2

    def test_get_node_returns_definition(self) -> None:
        graph = _risk_graph()
        assert graph.get_node("news").node_id == "news"

    def test_get_node_missing_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            _risk_graph().get_node("nope")

    def test_consumers_in_declaration_order(self) -> None:
        graph = AdaptorGraph.from_nodes(
            [
                provider("a", OutputFormat.BOOL),
                provider("b", OutputFormat.BOOL),
                single("second", "a", OutputFormat.BOOL),
                single("first", "a", OutputFormat.BOOL),
                multi("vote", ["second", "first", "b"], OutputFormat.BOOL, aggregation_method="voting"),
            ]
        )
        assert graph.get_consumers("a") == ["second", "first"]


class TestGraphValidation:
    """Structural validation."""

    def test_valid_graph_passes(self) -> None:
        graph = _risk_graph()
        graph.validate()
        assert graph.terminal_id == "risk"

    def test_cycle_detected_with_path(self) -> None:
        graph = AdaptorGraph.from_nodes(
            [
                single("a", "c", OutputFormat.BOOL),
                single("b", "a", OutputFormat.BOOL),
                single("c", "b", OutputFormat.BOOL),
            ]
        )
        assert graph.is_acyclic() is False
        with pytest.raises(GraphValidationError) as exc_info:
            graph.validate()
        assert exc_info.value.kind == GraphErrorKind.CYCLE_DETECTED
        assert set(exc_info.value.cycle) == {"a", "b", "c"}

    def test_dangling_reference(self) -> None:
        graph = AdaptorGraph.from_nodes(
            [
                provider("financial"),
                multi("risk", ["financial", "ghost"], OutputFormat.UINT256, aggregation_method="weighted_average"),
            ]
        )
        assert graph.undeclared_ids() == ["ghost"]
        with pytest.raises(GraphValidationError) as exc_info:
            graph.validate()
        assert exc_info.value.kind == GraphErrorKind.DANGLING_REFERENCE
        assert exc_info.value.node_id == "ghost"

    def test_provider_with_inputs_rejected(self) -> None:
        graph = AdaptorGraph.from_nodes([provider("a"), provider("b")])
        graph.add_edge("a", "b")
        with pytest.raises(GraphValidationError, match="cannot consume inputs"):
            graph.validate()

    def test_edge_not_declared_as_input_rejected(self) -> None:
        graph = AdaptorGraph.from_nodes([provider("a"), provider("b"), single("s", "a", OutputFormat.UINT256)])
        graph.add_edge("b", "s")
        with pytest.raises(GraphValidationError, match="not declared inputs"):
            graph.validate()

    def test_multiple_terminals_rejected(self) -> None:
        graph = AdaptorGraph.from_nodes([provider("a"), provider("b")])
        with pytest.raises(GraphValidationError, match="exactly one terminal"):
            graph.validate()

    def test_empty_graph_rejected(self) -> None:
        with pytest.raises(GraphValidationError, match="no nodes"):
            AdaptorGraph().validate()

    def test_edge_format_mismatch(self) -> None:
        graph = AdaptorGraph.from_nodes(
            [
                provider("score", OutputFormat.UINT256),
                SingleInputAdaptor(
                    node_id=NodeID("decide"),
                    input_id=NodeID("score"),
                    output_format=OutputFormat.BOOL,
                    accepts=(OutputFormat.BOOL, OutputFormat.STRING_AND_BOOL),
                ),
            ]
        )
        with pytest.raises(GraphValidationError) as exc_info:
            graph.validate()
        assert exc_info.value.kind == GraphErrorKind.TYPE_MISMATCH
        assert exc_info.value.node_id == "decide"

    def test_empty_accepts_takes_anything(self) -> None:
        graph = AdaptorGraph.from_nodes([provider("score", OutputFormat.BYTES), single("s", "score", OutputFormat.BYTES)])
        graph.validate()

    def test_chain_link_without_conversion_rejected(self) -> None:
        chain = ChainedAdaptor(
            node_id=NodeID("pipeline"),
            input_ids=(NodeID("a"), NodeID("b")),
            links=(
                MultiInputAdaptor(
                    node_id=NodeID("vote"),
                    input_ids=(NodeID("a"), NodeID("b")),
                    output_format=OutputFormat.BOOL,
                    config=AdaptorConfig(aggregation_method="voting"),
                ),
                SingleInputAdaptor(
                    node_id=NodeID("score"),
                    input_id=NodeID("vote"),
                    output_format=OutputFormat.UINT256,
                    accepts=(OutputFormat.UINT256,),
                ),
            ),
            output_format=OutputFormat.UINT256,
        )
        graph = AdaptorGraph.from_nodes([provider("a", OutputFormat.BOOL), provider("b", OutputFormat.BOOL), chain])
        with pytest.raises(GraphValidationError) as exc_info:
            graph.validate()
        assert exc_info.value.kind == GraphErrorKind.TYPE_MISMATCH
        assert exc_info.value.node_id == "pipeline"

    def test_chain_output_format_must_be_reachable(self) -> None:
        chain = ChainedAdaptor(
            node_id=NodeID("pipeline"),
            input_ids=(NodeID("a"), NodeID("b")),
            links=(
                multi("vote", ["a", "b"], OutputFormat.BOOL, aggregation_method="voting"),
                single("label", "vote", OutputFormat.BOOL),
            ),
            output_format=OutputFormat.UINT256,
        )
        graph = AdaptorGraph.from_nodes([provider("a", OutputFormat.BOOL), provider("b", OutputFormat.BOOL), chain])
        with pytest.raises(GraphValidationError, match="no conversion from last link"):
            graph.validate()
