"""Error taxonomy for graph construction and execution.

Every engine error carries the id of the node where it was detected and a
typed kind, so a failure can be located in the execution trace without
re-running the graph. Causes are chained with ``raise ... from``; use
``origin_of()`` to walk back to the node that failed first.

Propagation:
- GraphValidationError: raised at construction, never during execution
- NodeInvocationError/ProviderError: recoverable via the consuming adaptor's
  missing-input policy (allow_partial)
- AggregationError: fatal to the enclosing adaptor invocation
- ConversionError: always fatal
- ChainExecutionError: wraps any of the above with the failing link index
- GraphExecutionError: the terminal node did not produce a value
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from adcs.contracts.enums import (
    AggregationErrorKind,
    ConversionErrorKind,
    GraphErrorKind,
    InvocationErrorKind,
    OutputFormat,
    RunStatus,
)
from adcs.contracts.types import NodeID

if TYPE_CHECKING:
    from adcs.contracts.results import TraceRecord


class AdcsError(Exception):
    """Base class for all engine errors.

    Attributes:
        node_id: Node where the error was detected (None for graph-wide errors)
        kind: Typed error kind (one of the *ErrorKind enums)
    """

    kind: str

    def __init__(self, message: str, *, node_id: NodeID | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class GraphValidationError(AdcsError):
    """Raised when a graph is structurally invalid.

    Attributes:
        cycle: Node-id sequence of the detected cycle (CYCLE_DETECTED only)
    """

    def __init__(
        self,
        message: str,
        *,
        kind: GraphErrorKind,
        node_id: NodeID | None = None,
        cycle: tuple[NodeID, ...] = (),
    ) -> None:
        super().__init__(message, node_id=node_id)
        self.kind = kind
        self.cycle = cycle


class NodeInvocationError(AdcsError):
    """External call failure from a Provider or a core-model call."""

    def __init__(
        self,
        message: str,
        *,
        node_id: NodeID | None,
        kind: InvocationErrorKind = InvocationErrorKind.TRANSPORT,
    ) -> None:
        super().__init__(message, node_id=node_id)
        self.kind = kind


class ProviderError(NodeInvocationError):
    """A Provider's endpoint call failed or returned an unusable response."""


class AggregationError(AdcsError):
    """Adaptor could not combine its inputs.

    Attributes:
        missing: Input ids that had no value (MISSING_REQUIRED_INPUT only)
    """

    def __init__(
        self,
        message: str,
        *,
        node_id: NodeID | None,
        kind: AggregationErrorKind,
        missing: tuple[NodeID, ...] = (),
    ) -> None:
        super().__init__(message, node_id=node_id)
        self.kind = kind
        self.missing = missing


class ConversionError(AdcsError):
    """A value could not be converted between output formats."""

    def __init__(
        self,
        message: str,
        *,
        from_format: OutputFormat | None,
        to_format: OutputFormat,
        kind: ConversionErrorKind = ConversionErrorKind.UNSUPPORTED_CONVERSION,
        node_id: NodeID | None = None,
    ) -> None:
        super().__init__(message, node_id=node_id)
        self.kind = kind
        self.from_format = from_format
        self.to_format = to_format


class ChainExecutionError(AdcsError):
    """A link of a ChainedAdaptor failed; the whole chain failed with it.

    The kind mirrors the failing link's error kind.
    """

    def __init__(self, message: str, *, node_id: NodeID, link_index: int, cause: AdcsError) -> None:
        super().__init__(message, node_id=node_id)
        self.kind = cause.kind
        self.link_index = link_index
        self.cause = cause


class GraphExecutionError(AdcsError):
    """The terminal node of a graph failed to produce a value.

    Attributes:
        node_id: Originating node (first failure in the cause chain)
        kind: Originating error kind
        terminal_id: Terminal node of the graph
        trace: Per-node trace of the failed invocation
    """

    def __init__(
        self,
        message: str,
        *,
        cause: AdcsError,
        terminal_id: NodeID,
        trace: tuple[TraceRecord, ...],
    ) -> None:
        origin = origin_of(cause)
        super().__init__(message, node_id=origin.node_id)
        self.kind = origin.kind
        self.terminal_id = terminal_id
        self.trace = trace
        self.cause = cause


class ExecutionCancelledError(AdcsError):
    """The caller cancelled an in-flight invocation. Nothing was delivered."""

    def __init__(self, message: str, *, trace: tuple[TraceRecord, ...] = ()) -> None:
        super().__init__(message)
        self.kind = RunStatus.CANCELLED
        self.trace = trace


class OrchestrationInvariantError(Exception):
    """Raised when an engine invariant is violated.

    Indicates a bug in the engine, not a problem with the graph or an
    external call (e.g., a second write for the same node id).
    """


def origin_of(error: AdcsError) -> AdcsError:
    """Walk the ``__cause__`` chain back to the first engine error."""
    origin = error
    cause = error.__cause__
    while isinstance(cause, AdcsError):
        origin = cause
        cause = cause.__cause__
    return origin
