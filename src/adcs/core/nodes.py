"""Node variants of an adaptor graph.

The node type is a closed union: Provider, SingleInputAdaptor,
MultiInputAdaptor and ChainedAdaptor. Engine code dispatches with
``match`` over the variants rather than through subclass hooks, so every
input-readiness and execution rule is visible in one place.

Nodes are frozen after construction. Structural rules that only involve a
single node (input counts, chain wiring, weight keys) are checked here;
rules that involve several nodes are checked by AdaptorGraph.validate().
"""

from __future__ import annotations

from dataclasses import dataclass, field

from adcs.contracts.enums import AggregationMethod, GraphErrorKind, NodeKind, OutputFormat
from adcs.contracts.errors import GraphValidationError
from adcs.contracts.types import ModelName, NodeID
from adcs.core.config import AdaptorConfig


def _structure_error(node_id: NodeID, message: str) -> GraphValidationError:
    return GraphValidationError(f"Node '{node_id}': {message}", kind=GraphErrorKind.INVALID_STRUCTURE, node_id=node_id)


def _check_adaptor_common(node_id: NodeID, accepts: tuple[OutputFormat, ...], config: AdaptorConfig, core_model: ModelName | None) -> None:
    if len(set(accepts)) != len(accepts):
        raise _structure_error(node_id, f"accepts contains duplicates: {[str(f) for f in accepts]}")
    if config.aggregation_method == AggregationMethod.LLM_REASONING and core_model is None:
        raise _structure_error(node_id, "llm_reasoning requires a core_model")


@dataclass(frozen=True, slots=True)
class Provider:
    """Leaf node wrapping one external inference source."""

    node_id: NodeID
    endpoint: str
    model: str
    output_format: OutputFormat
    timeout_seconds: float | None = None

    @property
    def kind(self) -> NodeKind:
        return NodeKind.PROVIDER

    @property
    def input_ids(self) -> tuple[NodeID, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class SingleInputAdaptor:
    """Adaptor that transforms exactly one upstream output."""

    node_id: NodeID
    input_id: NodeID
    output_format: OutputFormat
    config: AdaptorConfig = field(default_factory=AdaptorConfig)
    static_context: str = ""
    core_model: ModelName | None = None
    accepts: tuple[OutputFormat, ...] = ()

    def __post_init__(self) -> None:
        _check_adaptor_common(self.node_id, self.accepts, self.config, self.core_model)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.SINGLE_INPUT_ADAPTOR

    @property
    def input_ids(self) -> tuple[NodeID, ...]:
        return (self.input_id,)

    @property
    def timeout_seconds(self) -> float | None:
        return self.config.timeout_seconds


@dataclass(frozen=True, slots=True)
class MultiInputAdaptor:
    """Adaptor that aggregates two or more upstream outputs."""

    node_id: NodeID
    input_ids: tuple[NodeID, ...]
    output_format: OutputFormat
    config: AdaptorConfig = field(default_factory=AdaptorConfig)
    static_context: str = ""
    core_model: ModelName | None = None
    accepts: tuple[OutputFormat, ...] = ()

    def __post_init__(self) -> None:
        if len(self.input_ids) < 2:
            raise _structure_error(self.node_id, f"a multi-input adaptor needs at least two inputs, got {len(self.input_ids)}")
        if len(set(self.input_ids)) != len(self.input_ids):
            raise _structure_error(self.node_id, f"duplicate input ids: {list(self.input_ids)}")
        unknown_weights = sorted(set(self.config.weights) - set(self.input_ids))
        if unknown_weights:
            raise _structure_error(self.node_id, f"weights reference undeclared inputs: {unknown_weights}")
        _check_adaptor_common(self.node_id, self.accepts, self.config, self.core_model)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.MULTI_INPUT_ADAPTOR

    @property
    def timeout_seconds(self) -> float | None:
        return self.config.timeout_seconds


type Adaptor = SingleInputAdaptor | MultiInputAdaptor


@dataclass(frozen=True, slots=True)
class ChainedAdaptor:
    """Linear sequence of adaptors executed one after another.

    The first link consumes the chain's upstream graph inputs; every later
    link is a SingleInputAdaptor consuming the previous link. Links are not
    graph nodes and their ids are scoped to the chain.
    """

    node_id: NodeID
    input_ids: tuple[NodeID, ...]
    links: tuple[Adaptor, ...]
    output_format: OutputFormat
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.input_ids:
            raise _structure_error(self.node_id, "a chain needs at least one upstream input")
        if len(self.links) < 2:
            raise _structure_error(self.node_id, f"a chain needs at least two links, got {len(self.links)}")
        link_ids = [link.node_id for link in self.links]
        if len(set(link_ids)) != len(link_ids) or self.node_id in link_ids:
            raise _structure_error(self.node_id, f"link ids must be unique and differ from the chain id: {link_ids}")
        first = self.links[0]
        if set(first.input_ids) != set(self.input_ids):
            raise _structure_error(
                self.node_id,
                f"first link '{first.node_id}' consumes {sorted(first.input_ids)} but the chain declares {sorted(self.input_ids)}",
            )
        for index in range(1, len(self.links)):
            link = self.links[index]
            previous = self.links[index - 1]
            if not isinstance(link, SingleInputAdaptor) or link.input_id != previous.node_id:
                raise _structure_error(
                    self.node_id,
                    f"link {index} ('{link.node_id}') must be a single-input adaptor consuming '{previous.node_id}'",
                )

    @property
    def kind(self) -> NodeKind:
        return NodeKind.CHAINED_ADAPTOR

    @property
    def core_models(self) -> tuple[ModelName, ...]:
        return tuple(link.core_model for link in self.links if link.core_model is not None)


type Node = Provider | SingleInputAdaptor | MultiInputAdaptor | ChainedAdaptor


def accepted_formats(node: Node) -> tuple[OutputFormat, ...]:
    """Formats a node accepts on its graph edges (empty = all, as opaque context)."""
    match node:
        case Provider():
            return ()
        case SingleInputAdaptor() | MultiInputAdaptor():
            return node.accepts
        case ChainedAdaptor():
            return node.links[0].accepts


def referenced_models(node: Node) -> tuple[ModelName, ...]:
    """Core models a node calls during execution."""
    match node:
        case Provider():
            return ()
        case SingleInputAdaptor() | MultiInputAdaptor():
            return (node.core_model,) if node.core_model is not None else ()
        case ChainedAdaptor():
            return node.core_models


def calls_external(node: Node) -> bool:
    """Whether executing the node suspends on an external call.

    Nodes that do not are pure computation and run inline on the
    coordinating thread.
    """
    match node:
        case Provider():
            return True
        case _:
            return bool(referenced_models(node))
