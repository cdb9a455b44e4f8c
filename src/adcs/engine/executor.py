# src/adcs/engine/executor.py
"""GraphExecutor: runs one invocation of a validated adaptor graph.

Execution model:
- The coordinating thread (the caller of execute()) owns the
  ExecutionResult and is the only writer; every node id is written once.
- Nodes whose inputs are all recorded are dispatched in declaration order.
  Providers and adaptors that call a core model run on a thread pool;
  their Future is the node's result channel. Pure adaptors run inline on
  the coordinating thread.
- At most max_concurrent_calls external calls are in flight. Ready
  external nodes beyond that wait in a FIFO queue and are submitted as
  slots free up. The pool has one worker per external node, so a
  submitted call starts at once.
- A dispatched node that runs past its timeout is recorded as a
  NodeInvocationError(TIMEOUT) failure and gives up its slot. The
  abandoned call keeps its worker thread; its result is discarded
  whenever it arrives.
- The CancellationToken is checked around every wait and again just before
  delivery. Cancelling stops dispatch and discards in-flight results; nothing
  is delivered.
- A terminal output is shape-checked and handed to the SettlementSink. A
  terminal failure raises GraphExecutionError carrying the originating
  node id, the error kind and the trace.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NoReturn

import structlog

from adcs.contracts.enums import ChainState, GraphErrorKind, InvocationErrorKind, RunStatus
from adcs.contracts.errors import (
    AdcsError,
    ChainExecutionError,
    ExecutionCancelledError,
    GraphExecutionError,
    GraphValidationError,
    NodeInvocationError,
    OrchestrationInvariantError,
)
from adcs.contracts.results import ExecutionResult, NodeFailure, NodeOutput, Settlement, TraceRecord
from adcs.contracts.types import ModelName, NodeID, RequestID
from adcs.contracts.values import FormattedOutput
from adcs.core.config import EngineSettings
from adcs.core.dag import AdaptorGraph
from adcs.core.nodes import ChainedAdaptor, MultiInputAdaptor, Node, Provider, SingleInputAdaptor, calls_external, referenced_models
from adcs.engine.adaptor import AdaptorRunner
from adcs.engine.chain import ChainRunner
from adcs.engine.clock import DEFAULT_CLOCK, Clock
from adcs.engine.formats import check_value
from adcs.engine.invoker import ProviderInvoker
from adcs.engine.planner import ExecutionPlan, ExecutionPlanner
from adcs.engine.spans import SpanFactory
from adcs.plugins.protocols import ProviderTransport, ReasoningModel, SettlementSink

slog = structlog.get_logger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag for one invocation.

    Example:
        token = CancellationToken()
        threading.Timer(5.0, token.cancel).start()
        executor.execute(raw_input, request_id="req-1", cancel_token=token)
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True)
class ExecutionReport:
    """Outcome of a successful invocation.

    Attributes:
        request_id: Originating request
        status: Final run status (COMPLETED)
        output: Terminal value with its format, as delivered
        results: Every node's output or failure
        trace: One record per executed node, in completion order
    """

    request_id: RequestID
    status: RunStatus
    output: FormattedOutput
    results: ExecutionResult
    trace: tuple[TraceRecord, ...]


@dataclass(slots=True)
class _InFlight:
    """Bookkeeping for a node running on the pool.

    ``started`` and ``started_at`` are written once by the worker thread
    when the call begins.
    """

    node_id: NodeID
    timeout: float | None
    dispatched_at: datetime
    started: float | None = None
    started_at: datetime | None = None

    def expired(self, now: float) -> bool:
        return self.timeout is not None and self.started is not None and now - self.started > self.timeout


class GraphExecutor:
    """Executes an AdaptorGraph once per call to execute().

    Construction validates the graph, plans it and checks that every core
    model a node references is registered. The executor holds no
    per-invocation state, so concurrent execute() calls are independent.

    Example:
        executor = GraphExecutor(
            graph,
            transport=HTTPProviderTransport(),
            models={"analyst": ChatCompletionsModel(config)},
            sink=coordinator,
        )
        report = executor.execute({"borrower": "0xabc"}, request_id="req-1", callback_address="0xcb")
    """

    def __init__(
        self,
        graph: AdaptorGraph,
        *,
        transport: ProviderTransport | None = None,
        models: Mapping[str, ReasoningModel] | None = None,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        sink: SettlementSink | None = None,
        span_factory: SpanFactory | None = None,
    ) -> None:
        """Validate and plan the graph.

        Raises:
            GraphValidationError: If the graph is invalid or references an
                unregistered core model (DANGLING_REFERENCE)
            ValueError: If the graph has Providers but no transport is given
        """
        graph.validate()
        self._graph = graph
        self._plan: ExecutionPlan = ExecutionPlanner().plan(graph)
        self._terminal_id = graph.terminal_id
        self._external_count = sum(1 for node in graph.nodes() if calls_external(node))

        self._models: dict[ModelName, ReasoningModel] = {ModelName(name): model for name, model in (models or {}).items()}
        for node in graph.nodes():
            unregistered = [name for name in referenced_models(node) if name not in self._models]
            if unregistered:
                raise GraphValidationError(
                    f"Node '{node.node_id}' references unregistered core model(s) {unregistered}",
                    kind=GraphErrorKind.DANGLING_REFERENCE,
                    node_id=node.node_id,
                )

        has_providers = any(isinstance(node, Provider) for node in graph.nodes())
        if has_providers and transport is None:
            raise ValueError("Graph contains Providers but no transport was given")

        self._settings = settings if settings is not None else EngineSettings()
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._invoker = ProviderInvoker(transport, clock=self._clock) if transport is not None else None
        self._adaptor_runner = AdaptorRunner()
        self._chain_runner = ChainRunner(self._adaptor_runner)
        self._sink = sink
        self._spans = span_factory if span_factory is not None else SpanFactory()

    @property
    def plan(self) -> ExecutionPlan:
        return self._plan

    @property
    def terminal_id(self) -> NodeID:
        return self._terminal_id

    def execute(
        self,
        raw_input: Any,
        *,
        request_id: str,
        callback_address: str = "",
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionReport:
        """Run every node once and deliver the terminal output.

        Args:
            raw_input: Passed unchanged to every Provider
            request_id: Originating request, echoed on the Settlement
            callback_address: Opaque delivery target, echoed on the Settlement
            cancel_token: Optional token the caller may cancel at any time

        Raises:
            GraphExecutionError: If the terminal node did not produce a value
            ExecutionCancelledError: If the caller cancelled the invocation
        """
        request = RequestID(request_id)
        token = cancel_token if cancel_token is not None else CancellationToken()
        results = ExecutionResult()
        trace: list[TraceRecord] = []
        log = slog.bind(request_id=request)
        log.info("invocation_started", node_count=len(self._plan.order), terminal_id=self._terminal_id)

        with self._spans.invocation_span(request) as span:
            self._run_nodes(raw_input, request, token, results, trace)
            span.set_attribute("invocation.nodes_recorded", len(results))

            entry = results.get(self._terminal_id)
            if isinstance(entry, NodeFailure):
                self._fail(entry.error, trace)

            assert isinstance(entry, NodeOutput)
            try:
                check_value(entry.value, entry.output_format, node_id=self._terminal_id)
            except AdcsError as e:
                self._fail(e, trace)

            output = FormattedOutput(format=entry.output_format, value=entry.value)
            self._check_cancelled(token, request, {}, trace)
            if self._sink is not None:
                self._sink.deliver(Settlement(request_id=request, callback_address=callback_address, output=output))
                log.info("settlement_delivered", terminal_id=self._terminal_id, output_format=str(output.format))

        log.info("invocation_completed", terminal_id=self._terminal_id, failures=len(results.failures()))
        return ExecutionReport(
            request_id=request,
            status=RunStatus.COMPLETED,
            output=output,
            results=results,
            trace=tuple(trace),
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _run_nodes(
        self,
        raw_input: Any,
        request_id: RequestID,
        token: CancellationToken,
        results: ExecutionResult,
        trace: list[TraceRecord],
    ) -> None:
        in_flight: dict[Future[NodeOutput], _InFlight] = {}
        queued: deque[tuple[Node, dict[NodeID, NodeOutput | NodeFailure]]] = deque()
        dispatched: set[NodeID] = set()
        poll = self._settings.timeouts.poll_interval_seconds
        limit = self._settings.concurrency.max_concurrent_calls
        pool = ThreadPoolExecutor(
            max_workers=max(1, self._external_count),
            thread_name_prefix=f"adcs-{request_id}",
        )
        try:
            while not results.has(self._terminal_id):
                self._check_cancelled(token, request_id, in_flight, trace)

                ready = [node_id for node_id in self._plan.ready(results) if node_id not in dispatched]
                ready.sort(key=self._graph.declaration_index)
                ran_inline = False
                for node_id in ready:
                    self._check_cancelled(token, request_id, in_flight, trace)
                    node = self._graph.get_node(node_id)
                    upstream = {input_id: results.get(input_id) for input_id in node.input_ids}
                    dispatched.add(node_id)
                    if calls_external(node):
                        queued.append((node, upstream))
                    else:
                        self._run_inline(node, upstream, raw_input, request_id, results, trace)
                        ran_inline = True

                while queued and len(in_flight) < limit:
                    node, upstream = queued.popleft()
                    future, task = self._submit(pool, node, upstream, raw_input, request_id)
                    in_flight[future] = task

                if ran_inline or results.has(self._terminal_id):
                    continue
                if not in_flight:
                    raise OrchestrationInvariantError(
                        f"No runnable nodes and nothing in flight, but terminal '{self._terminal_id}' is unrecorded"
                    )

                done, _ = wait(in_flight, timeout=poll, return_when=FIRST_COMPLETED)
                self._check_cancelled(token, request_id, in_flight, trace)
                for future in done:
                    task = in_flight.pop(future)
                    self._collect(future, task, results, trace)

                now = self._clock.monotonic()
                for future, task in list(in_flight.items()):
                    if task.expired(now):
                        del in_flight[future]
                        future.cancel()
                        self._record_timeout(task, results, trace)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _submit(
        self,
        pool: ThreadPoolExecutor,
        node: Node,
        upstream: Mapping[NodeID, NodeOutput | NodeFailure],
        raw_input: Any,
        request_id: RequestID,
    ) -> tuple[Future[NodeOutput], _InFlight]:
        timeout = node.timeout_seconds if node.timeout_seconds is not None else self._settings.timeouts.default_node_timeout_seconds
        task = _InFlight(node_id=node.node_id, timeout=timeout, dispatched_at=self._clock.now())

        def work() -> NodeOutput:
            task.started_at = self._clock.now()
            task.started = self._clock.monotonic()
            return self._execute_node(node, upstream, raw_input, request_id)

        slog.debug("node_dispatched", request_id=request_id, node_id=node.node_id, node_kind=str(node.kind), timeout=timeout)
        return pool.submit(work), task

    def _run_inline(
        self,
        node: Node,
        upstream: Mapping[NodeID, NodeOutput | NodeFailure],
        raw_input: Any,
        request_id: RequestID,
        results: ExecutionResult,
        trace: list[TraceRecord],
    ) -> None:
        started_at = self._clock.now()
        try:
            output = self._execute_node(node, upstream, raw_input, request_id)
        except AdcsError as e:
            self._record(node.node_id, started_at, e, results, trace)
            return
        self._record(node.node_id, started_at, output, results, trace)

    def _collect(self, future: Future[NodeOutput], task: _InFlight, results: ExecutionResult, trace: list[TraceRecord]) -> None:
        started_at = task.started_at if task.started_at is not None else task.dispatched_at
        try:
            output = future.result()
        except AdcsError as e:
            self._record(task.node_id, started_at, e, results, trace)
            return
        self._record(task.node_id, started_at, output, results, trace)

    def _record_timeout(self, task: _InFlight, results: ExecutionResult, trace: list[TraceRecord]) -> None:
        error = NodeInvocationError(
            f"Node '{task.node_id}' exceeded its timeout of {task.timeout}s",
            node_id=task.node_id,
            kind=InvocationErrorKind.TIMEOUT,
        )
        started_at = task.started_at if task.started_at is not None else task.dispatched_at
        self._record(task.node_id, started_at, error, results, trace)

    def _record(
        self,
        node_id: NodeID,
        started_at: datetime,
        outcome: NodeOutput | AdcsError,
        results: ExecutionResult,
        trace: list[TraceRecord],
    ) -> None:
        ended_at = self._clock.now()
        if isinstance(outcome, NodeOutput):
            results.record(outcome)
            trace.append(TraceRecord(node_id=node_id, start_time=started_at, end_time=ended_at, output=outcome.value))
            slog.debug("node_completed", node_id=node_id, confidence=outcome.confidence, output_format=str(outcome.output_format))
        else:
            results.record(NodeFailure(node_id=node_id, error=outcome))
            trace.append(TraceRecord(node_id=node_id, start_time=started_at, end_time=ended_at, error=outcome))
            slog.warning("node_failed", node_id=node_id, error_kind=str(outcome.kind), error=str(outcome))

    # ------------------------------------------------------------------
    # Node execution (runs on worker threads for external nodes)
    # ------------------------------------------------------------------

    def _execute_node(
        self,
        node: Node,
        upstream: Mapping[NodeID, NodeOutput | NodeFailure],
        raw_input: Any,
        request_id: RequestID,
    ) -> NodeOutput:
        with self._spans.node_span(node.node_id, str(node.kind), request_id=request_id):
            match node:
                case Provider():
                    if self._invoker is None:
                        raise OrchestrationInvariantError(f"Provider '{node.node_id}' dispatched without a transport")
                    result = self._invoker.invoke(node, raw_input)
                    return NodeOutput(
                        node_id=node.node_id,
                        value=result.result,
                        confidence=result.confidence,
                        output_format=node.output_format,
                        metadata=result.metadata.model_dump(),
                    )
                case SingleInputAdaptor() | MultiInputAdaptor():
                    model = self._models[node.core_model] if node.core_model is not None else None
                    return self._adaptor_runner.run(node, upstream, model=model)
                case ChainedAdaptor():
                    outcome = self._chain_runner.run(node, upstream, self._models)
                    if outcome.state == ChainState.FAILED:
                        assert outcome.error is not None and outcome.failed_index is not None
                        raise ChainExecutionError(
                            f"Chain '{node.node_id}' failed at link {outcome.failed_index}: {outcome.error}",
                            node_id=node.node_id,
                            link_index=outcome.failed_index,
                            cause=outcome.error,
                        ) from outcome.error
                    assert outcome.value is not None
                    return outcome.value

    # ------------------------------------------------------------------
    # Terminal paths
    # ------------------------------------------------------------------

    def _check_cancelled(
        self,
        token: CancellationToken,
        request_id: RequestID,
        in_flight: Mapping[Future[NodeOutput], _InFlight],
        trace: list[TraceRecord],
    ) -> None:
        if not token.cancelled:
            return
        for future in in_flight:
            future.cancel()
        slog.warning(
            "invocation_cancelled",
            request_id=request_id,
            discarded=sorted(task.node_id for task in in_flight.values()),
            recorded=len(trace),
        )
        raise ExecutionCancelledError(f"Invocation '{request_id}' was cancelled", trace=tuple(trace))

    def _fail(self, error: AdcsError, trace: list[TraceRecord]) -> NoReturn:
        failure = GraphExecutionError(
            f"Terminal node '{self._terminal_id}' produced no value: {error}",
            cause=error,
            terminal_id=self._terminal_id,
            trace=tuple(trace),
        )
        slog.error(
            "invocation_failed",
            terminal_id=self._terminal_id,
            origin_node_id=failure.node_id,
            error_kind=str(failure.kind),
            status=str(RunStatus.FAILED),
        )
        raise failure from error
