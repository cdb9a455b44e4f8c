# src/adcs/engine/spans.py
"""OpenTelemetry span factory for the execution engine.

Falls back to no-op mode when no tracer is configured.

Span Hierarchy:
    invocation:{request_id}
    ├── provider:{node_id}
    ├── adaptor:{node_id}
    └── chain:{node_id}
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer


class NoOpSpan:
    """No-op span for when tracing is disabled."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, status: Any) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass

    def is_recording(self) -> bool:
        return False


class SpanFactory:
    """Factory for creating OpenTelemetry spans.

    When no tracer is provided, all span methods return no-op contexts.
    Node spans opened on worker threads are not parented to the invocation
    span; they carry ``request.id`` instead.

    Example:
        factory = SpanFactory(tracer=opentelemetry.trace.get_tracer("adcs"))

        with factory.invocation_span("req-001"):
            with factory.node_span("risk", "multi_input_adaptor", request_id="req-001"):
                ...
    """

    # Singleton no-op span to avoid repeated allocations
    _NOOP_SPAN = NoOpSpan()

    def __init__(self, tracer: "Tracer | None" = None) -> None:
        self._tracer = tracer

    @property
    def enabled(self) -> bool:
        """Whether tracing is enabled."""
        return self._tracer is not None

    @contextmanager
    def invocation_span(self, request_id: str) -> Iterator["Span | NoOpSpan"]:
        """Create a span for one graph invocation."""
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"invocation:{request_id}") as span:
            span.set_attribute("request.id", request_id)
            yield span

    @contextmanager
    def node_span(self, node_id: str, node_kind: str, *, request_id: str) -> Iterator["Span | NoOpSpan"]:
        """Create a span for executing one node.

        Args:
            node_id: Graph node id
            node_kind: NodeKind value (provider, single_input_adaptor, ...)
            request_id: Invocation the node belongs to
        """
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        prefix = "provider" if node_kind == "provider" else "chain" if node_kind == "chained_adaptor" else "adaptor"
        with self._tracer.start_as_current_span(f"{prefix}:{node_id}") as span:
            span.set_attribute("node.id", node_id)
            span.set_attribute("node.kind", node_kind)
            span.set_attribute("request.id", request_id)
            yield span
