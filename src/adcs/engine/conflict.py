"""Conflict Resolver: fallback decision when upstream values disagree.

Conflict resolution is not the default path. The Aggregator asks
detect_numeric_conflict()/detect_vote_conflict() first and only calls
resolve() when they report a conflict under the adaptor's ConflictSettings.

Policies:
- max_confidence: highest-confidence input wins (ties: earliest declared)
- priority: input whose source id appears earliest in the priority list
- fallback_average: plain unweighted mean, ignoring weights and confidence;
  for boolean votes the mean of 1/0 must be strictly above 0.5 to yield True
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from adcs.contracts.enums import AggregationErrorKind, ConflictPolicy
from adcs.contracts.errors import AggregationError
from adcs.contracts.results import SourceValue
from adcs.contracts.types import NodeID

slog = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of a conflict resolution.

    Attributes:
        value: Resolved value
        confidence: Confidence of the resolved value
        source_id: Input that decided the value (None for fallback_average)
        policy: Policy that was applied
    """

    value: Any
    confidence: float
    source_id: NodeID | None
    policy: ConflictPolicy


def detect_numeric_conflict(values: Sequence[float], significant_difference: float | None) -> bool:
    """Spread of the inputs strictly exceeds the significant difference."""
    if significant_difference is None or len(values) < 2:
        return False
    return max(values) - min(values) > significant_difference


def detect_vote_conflict(true_score: float, false_score: float, margin: float | None) -> bool:
    """Vote is tied, or won by less than the configured normalised margin."""
    if true_score == false_score:
        return True
    if margin is None:
        return False
    return abs(true_score - false_score) / (true_score + false_score) < margin


def resolve(
    inputs: Sequence[SourceValue],
    policy: ConflictPolicy,
    *,
    priority: Sequence[str] = (),
    boolean: bool = False,
    node_id: NodeID | None = None,
) -> Resolution:
    """Pick a value for conflicting inputs.

    Args:
        inputs: Scalar inputs in declaration order (bool for votes, numbers otherwise)
        policy: Resolution policy
        priority: Source ids in priority order (priority policy)
        boolean: Inputs are votes; fallback_average yields a bool
        node_id: Adaptor being resolved, for errors and logging

    Raises:
        AggregationError: NO_VALID_INPUTS if no input qualifies
    """
    if not inputs:
        raise AggregationError("No inputs to resolve", node_id=node_id, kind=AggregationErrorKind.NO_VALID_INPUTS)

    match policy:
        case ConflictPolicy.MAX_CONFIDENCE:
            # max() keeps the first maximal element, i.e. the earliest declared
            winner = max(inputs, key=lambda item: item.confidence)
            resolution = Resolution(winner.value, winner.confidence, winner.source_id, policy)
        case ConflictPolicy.PRIORITY:
            by_source = {item.source_id: item for item in inputs}
            ranked = [by_source[NodeID(source)] for source in priority if source in by_source]
            if not ranked:
                raise AggregationError(
                    f"No input matches priority list {list(priority)}",
                    node_id=node_id,
                    kind=AggregationErrorKind.NO_VALID_INPUTS,
                )
            winner = ranked[0]
            resolution = Resolution(winner.value, winner.confidence, winner.source_id, policy)
        case ConflictPolicy.FALLBACK_AVERAGE:
            mean = sum(float(item.value) for item in inputs) / len(inputs)
            confidence = sum(item.confidence for item in inputs) / len(inputs)
            value: Any = mean > 0.5 if boolean else mean
            resolution = Resolution(value, confidence, None, policy)

    slog.info(
        "conflict_resolved",
        node_id=node_id,
        policy=str(policy),
        value=resolution.value,
        source_id=resolution.source_id,
        input_count=len(inputs),
    )
    return resolution
