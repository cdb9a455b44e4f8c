# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Strategy Categories:
- Graph declarations (random DAGs of Providers and adaptors)
- Numeric and boolean source values for the Aggregator

Usage:
    from tests.property.conftest import adaptor_graphs, numeric_sources

    @given(nodes=adaptor_graphs())
    def test_plan_respects_edges(nodes) -> None:
        ...
"""

# =============================================================================
# Hypothesis Settings
# =============================================================================
#
# For standardized @settings decorators, import from tests.property.settings:
#   from tests.property.settings import STANDARD_SETTINGS, DETERMINISM_SETTINGS
#
# Tiers: DETERMINISM (300), STANDARD (100), SLOW (30), QUICK (20)
# =============================================================================

from __future__ import annotations

from hypothesis import strategies as st

from adcs.contracts import NodeID, OutputFormat, SourceValue
from adcs.core.nodes import Node
from tests.conftest import multi, provider, single

# =============================================================================
# Graph Strategies
# =============================================================================


@st.composite
def adaptor_graphs(draw: st.DrawFn, max_providers: int = 4, max_adaptors: int = 6) -> list[Node]:
    """Generate a DAG of uint256 Providers and averaging adaptors.

    Nodes are returned in a topological declaration order; every adaptor
    consumes only nodes generated before it. The graph may have several
    terminals, see single_terminal().
    """
    provider_count = draw(st.integers(min_value=1, max_value=max_providers))
    nodes: list[Node] = [provider(f"p{i}") for i in range(provider_count)]
    ids = [str(node.node_id) for node in nodes]

    adaptor_count = draw(st.integers(min_value=0, max_value=max_adaptors))
    for i in range(adaptor_count):
        inputs = draw(st.lists(st.sampled_from(ids), min_size=1, max_size=min(3, len(ids)), unique=True))
        node_id = f"a{i}"
        if len(inputs) == 1:
            nodes.append(single(node_id, inputs[0], OutputFormat.UINT256))
        else:
            nodes.append(multi(node_id, inputs, OutputFormat.UINT256, aggregation_method="weighted_average"))
        ids.append(node_id)
    return nodes


def single_terminal(nodes: list[Node]) -> list[Node]:
    """Append a root adaptor consuming every node nothing else consumes."""
    consumed = {input_id for node in nodes for input_id in node.input_ids}
    sinks = [str(node.node_id) for node in nodes if node.node_id not in consumed]
    if len(sinks) == 1:
        return [*nodes, single("root", sinks[0], OutputFormat.UINT256)]
    return [*nodes, multi("root", sinks, OutputFormat.UINT256, aggregation_method="weighted_average")]


# =============================================================================
# Aggregator Strategies
# =============================================================================

confidences = st.floats(min_value=0.05, max_value=1.0, allow_nan=False)

scores = st.floats(min_value=0.0, max_value=1e6, allow_nan=False, allow_infinity=False)

weights = st.floats(min_value=0.01, max_value=100.0, allow_nan=False)


@st.composite
def numeric_sources(draw: st.DrawFn, min_size: int = 2, max_size: int = 6) -> list[SourceValue]:
    """Numeric inputs with distinct source ids s0..sN."""
    size = draw(st.integers(min_value=min_size, max_value=max_size))
    return [SourceValue(NodeID(f"s{i}"), draw(scores), draw(confidences)) for i in range(size)]


@st.composite
def boolean_sources(draw: st.DrawFn, min_size: int = 2, max_size: int = 6) -> list[SourceValue]:
    """Boolean votes with distinct source ids s0..sN."""
    size = draw(st.integers(min_value=min_size, max_value=max_size))
    return [SourceValue(NodeID(f"s{i}"), draw(st.booleans()), draw(confidences)) for i in range(size)]
