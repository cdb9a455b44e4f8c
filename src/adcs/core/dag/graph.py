# src/adcs/core/dag/graph.py
"""AdaptorGraph class: construction, validation and query operations.

Wraps a NetworkX DiGraph keyed by node id. Node definitions are stored as
the "info" attribute of each graph node; an edge (u -> v) means v consumes
u's output. Edges to ids that were never declared create bare NetworkX
nodes without "info", which validate() reports as dangling references.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import cast

import networkx as nx
from networkx import DiGraph

from adcs.contracts.enums import GraphErrorKind
from adcs.contracts.errors import GraphValidationError
from adcs.contracts.types import NodeID
from adcs.core.nodes import ChainedAdaptor, Node, Provider, accepted_formats


class AdaptorGraph:
    """Declared graph of Providers and Adaptors.

    Read-only once validated; shared by every invocation of the graph.

    Example:
        graph = AdaptorGraph.from_nodes([provider_a, provider_b, voter])
        graph.validate()
        graph.terminal_id  # 'voter'
    """

    def __init__(self) -> None:
        self._graph: DiGraph[str] = nx.DiGraph()
        self._declaration_order: dict[NodeID, int] = {}

    @classmethod
    def from_nodes(cls, nodes: Iterable[Node]) -> AdaptorGraph:
        """Build a graph from node declarations, deriving edges from declared inputs.

        Does not validate; call validate() before execution.
        """
        graph = cls()
        declared = list(nodes)
        for node in declared:
            graph.add_node(node)
        for node in declared:
            for input_id in node.input_ids:
                graph.add_edge(input_id, node.node_id)
        return graph

    @property
    def node_count(self) -> int:
        """Number of declared nodes."""
        return len(self._declaration_order)

    @property
    def edge_count(self) -> int:
        """Number of edges in the graph."""
        return self._graph.number_of_edges()

    def get_nx_graph(self) -> DiGraph[str]:
        """Return a frozen copy of the underlying NetworkX graph."""
        return nx.freeze(self._graph.copy())  # type: ignore[no-any-return]

    def add_node(self, node: Node) -> None:
        """Declare a node. Declaration order is the planner's tie-break.

        Raises:
            GraphValidationError: If the id was already declared
        """
        if node.node_id in self._declaration_order:
            raise GraphValidationError(
                f"Duplicate node id '{node.node_id}'",
                kind=GraphErrorKind.INVALID_STRUCTURE,
                node_id=node.node_id,
            )
        self._graph.add_node(node.node_id, info=node)
        self._declaration_order[node.node_id] = len(self._declaration_order)

    def add_edge(self, source_id: str, target_id: str) -> None:
        """Add an edge: target consumes source's output."""
        self._graph.add_edge(source_id, target_id)

    def get_node(self, node_id: str) -> Node:
        """Get a node definition.

        Raises:
            KeyError: If the node was not declared
        """
        if node_id not in self._declaration_order:
            raise KeyError(f"Node not found: {node_id}")
        return cast(Node, self._graph.nodes[node_id]["info"])

    def nodes(self) -> list[Node]:
        """All declared nodes in declaration order."""
        return [self.get_node(node_id) for node_id in self._declaration_order]

    def node_ids(self) -> list[NodeID]:
        """All declared node ids in declaration order."""
        return list(self._declaration_order)

    def declaration_index(self, node_id: str) -> int:
        """Position of a node in declaration order."""
        return self._declaration_order[NodeID(node_id)]

    def edges(self) -> list[tuple[NodeID, NodeID]]:
        """All edges as (source, target) pairs."""
        return [(NodeID(u), NodeID(v)) for u, v in self._graph.edges()]

    def get_inputs(self, node_id: str) -> tuple[NodeID, ...]:
        """Declared inputs of a node, in declaration order of the node itself."""
        return self.get_node(node_id).input_ids

    def get_predecessors(self, node_id: str) -> list[NodeID]:
        """Sources of all edges into a node (including undeclared ids)."""
        return [NodeID(n) for n in self._graph.predecessors(node_id)]

    def get_consumers(self, node_id: str) -> list[NodeID]:
        """Declared nodes consuming this node, in declaration order."""
        consumers = [NodeID(n) for n in self._graph.successors(node_id) if n in self._declaration_order]
        return sorted(consumers, key=self.declaration_index)

    def undeclared_ids(self) -> list[NodeID]:
        """Ids referenced by edges but never declared."""
        return sorted(NodeID(n) for n in self._graph.nodes() if n not in self._declaration_order)

    def find_cycle(self) -> tuple[NodeID, ...] | None:
        """Depth-first search for a cycle.

        Returns:
            Node-id sequence of the cycle (first node not repeated), or None
        """
        try:
            cycle = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return None
        return tuple(NodeID(edge[0]) for edge in cycle)

    def is_acyclic(self) -> bool:
        """Check if the graph is acyclic (a valid DAG)."""
        return nx.is_directed_acyclic_graph(self._graph)

    def get_terminals(self) -> list[NodeID]:
        """Declared nodes with no consumers, in declaration order."""
        return [node_id for node_id in self._declaration_order if self._graph.out_degree(node_id) == 0]

    @property
    def terminal_id(self) -> NodeID:
        """The single terminal node whose output is delivered for settlement.

        Raises:
            GraphValidationError: If there is not exactly one terminal node
        """
        terminals = self.get_terminals()
        if len(terminals) != 1:
            raise GraphValidationError(
                f"Graph must have exactly one terminal node, found {len(terminals)}: {terminals}",
                kind=GraphErrorKind.INVALID_STRUCTURE,
            )
        return terminals[0]

    def validate(self) -> None:
        """Validate the graph structure.

        Validates:
        1. Every edge endpoint is a declared node
        2. Graph is acyclic (reports the cycle's node-id sequence)
        3. Providers have no inputs; adaptor edges match declared inputs
        4. Every edge's source format is accepted by its target
        5. Chain links can be coerced into each other and the chain's format
        6. Exactly one terminal node

        Raises:
            GraphValidationError: If validation fails
        """
        undeclared = self.undeclared_ids()
        if undeclared:
            referencing = sorted(f"{u} -> {v}" for u, v in self._graph.edges() if u in undeclared or v in undeclared)
            raise GraphValidationError(
                f"Edges reference undeclared node(s) {undeclared}: {', '.join(referencing)}",
                kind=GraphErrorKind.DANGLING_REFERENCE,
                node_id=undeclared[0],
            )

        cycle = self.find_cycle()
        if cycle is not None:
            raise GraphValidationError(
                f"Graph contains a cycle: {' -> '.join([*cycle, cycle[0]])}",
                kind=GraphErrorKind.CYCLE_DETECTED,
                node_id=cycle[0],
                cycle=cycle,
            )

        if self.node_count == 0:
            raise GraphValidationError("Graph has no nodes", kind=GraphErrorKind.INVALID_STRUCTURE)

        for node in self.nodes():
            self._validate_inputs(node)

        for source_id, target_id in self.edges():
            self._validate_edge_formats(source_id, target_id)

        for node in self.nodes():
            if isinstance(node, ChainedAdaptor):
                _validate_chain_links(node)

        _ = self.terminal_id

    def _validate_inputs(self, node: Node) -> None:
        predecessors = set(self.get_predecessors(node.node_id))
        if isinstance(node, Provider):
            if predecessors:
                raise GraphValidationError(
                    f"Provider '{node.node_id}' cannot consume inputs, has edges from {sorted(predecessors)}",
                    kind=GraphErrorKind.INVALID_STRUCTURE,
                    node_id=node.node_id,
                )
            return

        declared = set(node.input_ids)
        missing_edges = sorted(declared - predecessors)
        if missing_edges:
            raise GraphValidationError(
                f"Node '{node.node_id}' declares input(s) {missing_edges} with no edge",
                kind=GraphErrorKind.DANGLING_REFERENCE,
                node_id=node.node_id,
            )
        undeclared_edges = sorted(predecessors - declared)
        if undeclared_edges:
            raise GraphValidationError(
                f"Node '{node.node_id}' has edges from {undeclared_edges} that are not declared inputs",
                kind=GraphErrorKind.INVALID_STRUCTURE,
                node_id=node.node_id,
            )

    def _validate_edge_formats(self, source_id: NodeID, target_id: NodeID) -> None:
        source = self.get_node(source_id)
        target = self.get_node(target_id)
        accepts = accepted_formats(target)
        if accepts and source.output_format not in accepts:
            raise GraphValidationError(
                f"Edge {source_id} -> {target_id}: '{target_id}' accepts {[str(f) for f in accepts]}, "
                f"but '{source_id}' produces '{source.output_format}'",
                kind=GraphErrorKind.TYPE_MISMATCH,
                node_id=target_id,
            )


def _validate_chain_links(chain: ChainedAdaptor) -> None:
    """Every link boundary of a chain must have a conversion path."""
    from adcs.engine.formats import can_convert, link_input_format

    for index in range(1, len(chain.links)):
        previous = chain.links[index - 1]
        link = chain.links[index]
        if link_input_format(previous.output_format, link.accepts) is None:
            raise GraphValidationError(
                f"Chain '{chain.node_id}': link {index} ('{link.node_id}') accepts {[str(f) for f in link.accepts]}, "
                f"and no conversion exists from '{previous.output_format}'",
                kind=GraphErrorKind.TYPE_MISMATCH,
                node_id=chain.node_id,
            )
    last = chain.links[-1]
    if not can_convert(last.output_format, chain.output_format):
        raise GraphValidationError(
            f"Chain '{chain.node_id}': no conversion from last link format '{last.output_format}' to '{chain.output_format}'",
            kind=GraphErrorKind.TYPE_MISMATCH,
            node_id=chain.node_id,
        )
