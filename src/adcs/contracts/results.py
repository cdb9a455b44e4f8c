"""Result types produced during graph execution.

ProviderOutput is the single contract every external inference source must
satisfy. It is a pydantic model because it is built from external data and
validated at the Provider boundary; everything produced inside the engine is
a frozen dataclass.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from adcs.contracts.enums import AggregationMethod, OutputFormat
from adcs.contracts.errors import AdcsError, OrchestrationInvariantError
from adcs.contracts.types import NodeID, RequestID
from adcs.contracts.values import FormattedOutput


class ProviderMetadata(BaseModel):
    """Metadata reported with every Provider result."""

    model_config = {"frozen": True}

    model: str = Field(description="Model identifier that produced the result")
    timestamp: datetime = Field(description="When the result was produced (UTC)")
    processing_time: float = Field(ge=0, description="Processing time in seconds")


class ProviderOutput(BaseModel):
    """Unstructured result of one external inference call."""

    model_config = {"frozen": True}

    result: Any = Field(description="Unstructured inference result")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence in [0, 1]")
    metadata: ProviderMetadata


@dataclass(frozen=True, slots=True)
class SourceValue:
    """One upstream value as seen by the Aggregator."""

    source_id: NodeID
    value: Any
    confidence: float


@dataclass(frozen=True, slots=True)
class AggregatedResult:
    """Combined value of an adaptor's inputs.

    Attributes:
        value: Combined value (bool, number, str or an input's raw value)
        confidence: Confidence in [0, 1]
        rationale: Human-readable explanation, used by StringAndX formats
        method: Aggregation method that produced the value
        conflict: True when the Conflict Resolver decided the value
    """

    value: Any
    confidence: float
    rationale: str
    method: AggregationMethod
    conflict: bool = False


@dataclass(frozen=True, slots=True)
class ReasoningRequest:
    """One call to an adaptor's core model.

    Attributes:
        node_id: Adaptor issuing the call
        task: "reason" (llm_reasoning aggregation) or "explain" (rationale)
        prompt: Rendered prompt text
        inputs: Upstream values the prompt was rendered from
        static_context: The adaptor's fixed instruction text
    """

    node_id: NodeID
    task: str
    prompt: str
    inputs: tuple[SourceValue, ...]
    static_context: str


@dataclass(frozen=True, slots=True)
class ReasoningResult:
    """Structured or unstructured core-model answer plus a confidence signal."""

    value: Any
    confidence: float
    text: str


@dataclass(frozen=True, slots=True)
class NodeOutput:
    """Output recorded for a node that completed."""

    node_id: NodeID
    value: Any
    confidence: float
    output_format: OutputFormat
    rationale: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NodeFailure:
    """Failure recorded for a node that did not produce a value."""

    node_id: NodeID
    error: AdcsError


@dataclass(frozen=True, slots=True)
class TraceRecord:
    """Observability record for one node execution."""

    node_id: NodeID
    start_time: datetime
    end_time: datetime
    output: Any = None
    error: AdcsError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class ExecutionResult:
    """Per-invocation mapping of node id to output or failure.

    Write-once per node id: a second write is an engine bug and raises
    OrchestrationInvariantError. Owned by exactly one invocation.
    """

    def __init__(self) -> None:
        self._entries: dict[NodeID, NodeOutput | NodeFailure] = {}

    def record(self, entry: NodeOutput | NodeFailure) -> None:
        if entry.node_id in self._entries:
            raise OrchestrationInvariantError(f"Result for node '{entry.node_id}' already recorded")
        self._entries[entry.node_id] = entry

    def has(self, node_id: NodeID) -> bool:
        return node_id in self._entries

    def get(self, node_id: NodeID) -> NodeOutput | NodeFailure:
        return self._entries[node_id]

    def outputs(self) -> dict[NodeID, NodeOutput]:
        return {node_id: entry for node_id, entry in self._entries.items() if isinstance(entry, NodeOutput)}

    def failures(self) -> dict[NodeID, NodeFailure]:
        return {node_id: entry for node_id, entry in self._entries.items() if isinstance(entry, NodeFailure)}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._entries

    def __iter__(self) -> Iterator[NodeID]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True, slots=True)
class Settlement:
    """Terminal output handed to the external settlement layer."""

    request_id: RequestID
    callback_address: str
    output: FormattedOutput
