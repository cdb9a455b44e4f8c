# src/adcs/engine/__init__.py
"""Execution engine for adaptor graphs.

This package provides:
- GraphExecutor: one invocation per execute() call, concurrency, timeouts,
  cancellation and settlement handoff
- ExecutionPlanner: deterministic dependency order
- ProviderInvoker: validated single calls to Providers
- Aggregator / conflict: combining upstream values
- formats: table-driven output format conversion
- ChainRunner: linear adaptor chains
- SpanFactory: OpenTelemetry integration

Example:
    from adcs.core.dag import AdaptorGraph
    from adcs.engine import GraphExecutor

    graph = AdaptorGraph.from_nodes([financial, news, market, risk])
    executor = GraphExecutor(graph, transport=transport, sink=coordinator)
    report = executor.execute({"borrower": "0xabc"}, request_id="req-1", callback_address="0xcb")
"""

from adcs.engine.adaptor import AdaptorRunner
from adcs.engine.aggregator import Aggregator, normalize
from adcs.engine.chain import ChainOutcome, ChainRunner, LinkRecord
from adcs.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from adcs.engine.conflict import Resolution, detect_numeric_conflict, detect_vote_conflict, resolve
from adcs.engine.executor import CancellationToken, ExecutionReport, GraphExecutor
from adcs.engine.formats import ConversionOptions, ConversionRule, can_convert, check_value, convert, from_result, rule_for, rules
from adcs.engine.invoker import ProviderInvoker
from adcs.engine.planner import ExecutionPlan, ExecutionPlanner, plan
from adcs.engine.spans import SpanFactory

__all__ = [
    "DEFAULT_CLOCK",
    "AdaptorRunner",
    "Aggregator",
    "CancellationToken",
    "ChainOutcome",
    "ChainRunner",
    "Clock",
    "ConversionOptions",
    "ConversionRule",
    "ExecutionPlan",
    "ExecutionPlanner",
    "ExecutionReport",
    "GraphExecutor",
    "LinkRecord",
    "MockClock",
    "ProviderInvoker",
    "Resolution",
    "SpanFactory",
    "SystemClock",
    "can_convert",
    "check_value",
    "convert",
    "detect_numeric_conflict",
    "detect_vote_conflict",
    "from_result",
    "normalize",
    "plan",
    "resolve",
    "rule_for",
    "rules",
]
