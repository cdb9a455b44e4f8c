# src/adcs/engine/adaptor.py
"""AdaptorRunner: executes one Single or Multi input adaptor.

Steps:
1. Collect upstream entries in declared input order
2. Apply the missing-input policy (fail, or proceed with what is present)
3. Aggregate (Aggregator, optionally with the adaptor's core model)
4. Degrade confidence by present/declared when inputs were missing
5. Render the result into the adaptor's output format

Used by the Graph Executor for graph nodes and by the Chain Runner for
chain links.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping

import structlog

from adcs.contracts.enums import AggregationErrorKind
from adcs.contracts.errors import AdcsError, AggregationError
from adcs.contracts.results import NodeFailure, NodeOutput, SourceValue
from adcs.contracts.types import NodeID
from adcs.core.nodes import Adaptor
from adcs.engine.aggregator import Aggregator
from adcs.engine.formats import ConversionOptions, from_result
from adcs.plugins.protocols import ReasoningModel

slog = structlog.get_logger(__name__)


class AdaptorRunner:
    """Runs adaptors against already-recorded upstream entries."""

    def __init__(self, aggregator: Aggregator | None = None) -> None:
        self._aggregator = aggregator if aggregator is not None else Aggregator()

    def run(
        self,
        adaptor: Adaptor,
        upstream: Mapping[NodeID, NodeOutput | NodeFailure],
        *,
        model: ReasoningModel | None = None,
    ) -> NodeOutput:
        """Produce the adaptor's output from its upstream entries.

        Args:
            adaptor: Adaptor definition
            upstream: Recorded entries keyed by node id (may hold unrelated ids)
            model: Core model for adaptors that declare one

        Raises:
            AggregationError: MISSING_REQUIRED_INPUT, NO_VALID_INPUTS or INCOMPATIBLE_INPUT
            NodeInvocationError: If the core model call fails
            ConversionError: If the result cannot be rendered into the output format
        """
        config = adaptor.config
        inputs, missing = self._collect(adaptor, upstream)
        declared = len(adaptor.input_ids)

        if missing:
            first_error = missing[0][1]
            missing_ids = tuple(node_id for node_id, _ in missing)
            if not config.allow_partial:
                raise AggregationError(
                    f"Adaptor '{adaptor.node_id}' is missing required input(s) {list(missing_ids)}",
                    node_id=adaptor.node_id,
                    kind=AggregationErrorKind.MISSING_REQUIRED_INPUT,
                    missing=missing_ids,
                ) from first_error
            if not inputs:
                raise AggregationError(
                    f"Adaptor '{adaptor.node_id}' has no remaining inputs, all of {list(missing_ids)} failed",
                    node_id=adaptor.node_id,
                    kind=AggregationErrorKind.NO_VALID_INPUTS,
                    missing=missing_ids,
                ) from first_error
            slog.warning(
                "adaptor_partial_inputs",
                node_id=adaptor.node_id,
                missing=list(missing_ids),
                present=len(inputs),
                declared=declared,
            )

        result = self._aggregator.aggregate(
            inputs,
            config,
            node_id=adaptor.node_id,
            static_context=adaptor.static_context,
            model=model,
        )
        if missing:
            result = dataclasses.replace(result, confidence=result.confidence * len(inputs) / declared)

        value = from_result(result, adaptor.output_format, ConversionOptions.from_config(config), node_id=adaptor.node_id)
        return NodeOutput(
            node_id=adaptor.node_id,
            value=value,
            confidence=result.confidence,
            output_format=adaptor.output_format,
            rationale=result.rationale,
            metadata={
                "method": str(result.method),
                "conflict": result.conflict,
                "inputs_present": len(inputs),
                "inputs_declared": declared,
            },
        )

    @staticmethod
    def _collect(
        adaptor: Adaptor,
        upstream: Mapping[NodeID, NodeOutput | NodeFailure],
    ) -> tuple[list[SourceValue], list[tuple[NodeID, AdcsError | None]]]:
        inputs: list[SourceValue] = []
        missing: list[tuple[NodeID, AdcsError | None]] = []
        for input_id in adaptor.input_ids:
            entry = upstream.get(input_id)
            match entry:
                case NodeOutput():
                    inputs.append(SourceValue(input_id, entry.value, entry.confidence))
                case NodeFailure():
                    missing.append((input_id, entry.error))
                case None:
                    missing.append((input_id, None))
        return inputs, missing
