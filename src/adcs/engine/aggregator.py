# src/adcs/engine/aggregator.py
"""Aggregator: combines upstream values into one confidence-annotated result.

Methods (AggregationMethod):
- voting / weighted_voting: boolean majority; plain votes weigh 1, weighted
  votes weigh weight * confidence. Ties (and margins below conflict.margin)
  go to the Conflict Resolver.
- weighted_average: sum(v * w * c) / sum(w * c). Fails with NO_VALID_INPUTS
  when the denominator is zero. A spread above conflict.significant_difference
  goes to the Conflict Resolver, which sees normalised values when
  normalisation is on. All-integer inputs without normalisation average
  exactly and yield a Fraction.
- concatenation: text of each input joined with the separator.
- thresholding: sum(v * w) >= threshold.
- max_confidence / priority_order / first_valid: one input's value, unmodified.
- logical_and / logical_or / logical_xor: boolean logic (xor = odd parity).
- llm_reasoning: the core model's answer is authoritative.

Weights are normalised to sum to 1 over the inputs actually present, so
scaling every weight by the same positive constant never changes a result.
Normalisation of numeric values happens before weighting.

Result confidence:
- weighted_average, thresholding: sum(w * c)
- voting methods: weighted mean confidence of the inputs agreeing with the outcome
- concatenation: mean confidence
- selection methods: the selected input's confidence
- logical methods: minimum confidence
- conflict path: the Resolution's confidence
- llm_reasoning: the model's confidence

Rationale is a mechanical summary unless the adaptor has a core model, in
which case the model explains the computed value.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from fractions import Fraction
from typing import Any

import structlog

from adcs.contracts.enums import AggregationErrorKind, AggregationMethod, InvocationErrorKind, NormalizationMethod
from adcs.contracts.errors import AdcsError, AggregationError, NodeInvocationError, OrchestrationInvariantError
from adcs.contracts.results import AggregatedResult, ReasoningRequest, ReasoningResult, SourceValue
from adcs.contracts.types import NodeID
from adcs.contracts.values import StringAndBool, StringAndUint256
from adcs.core.config import AdaptorConfig
from adcs.engine import conflict
from adcs.engine.prompts import render_explanation_prompt, render_reasoning_prompt
from adcs.plugins.protocols import ReasoningModel

slog = structlog.get_logger(__name__)

_BOOLEAN_METHODS = frozenset(
    {
        AggregationMethod.VOTING,
        AggregationMethod.WEIGHTED_VOTING,
        AggregationMethod.LOGICAL_AND,
        AggregationMethod.LOGICAL_OR,
        AggregationMethod.LOGICAL_XOR,
    }
)


def normalize(values: Sequence[float], method: NormalizationMethod) -> list[float]:
    """Rescale numeric values across the input set.

    Zero range under min_max_scaling maps every value to 1.0 (already
    normalised); zero maximum under max_abs_scaling maps every value to 0.0.
    """
    match method:
        case NormalizationMethod.MIN_MAX_SCALING:
            low, high = min(values), max(values)
            if high == low:
                return [1.0 for _ in values]
            return [(v - low) / (high - low) for v in values]
        case NormalizationMethod.MAX_ABS_SCALING:
            peak = max(abs(v) for v in values)
            if peak == 0:
                return [0.0 for _ in values]
            return [v / peak for v in values]


def _scalar(value: Any) -> Any:
    """Decision or score carried by a composite value."""
    if isinstance(value, StringAndBool):
        return value.flag
    if isinstance(value, StringAndUint256):
        return value.value
    return value


def _text(item: SourceValue, node_id: NodeID) -> str:
    value = item.value
    if isinstance(value, StringAndBool | StringAndUint256):
        return value.text
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise AggregationError(
                f"concatenation requires UTF-8 text, '{item.source_id}' produced undecodable bytes",
                node_id=node_id,
                kind=AggregationErrorKind.INCOMPATIBLE_INPUT,
            ) from e
    return str(value)


def _describe(inputs: Sequence[SourceValue], weights: Sequence[float] | None = None) -> str:
    if weights is None:
        return ", ".join(f"{item.source_id}={item.value!r} (c={item.confidence:.2f})" for item in inputs)
    return ", ".join(
        f"{item.source_id}={item.value!r} (c={item.confidence:.2f}, w={weight:.2f})" for item, weight in zip(inputs, weights, strict=True)
    )


class Aggregator:
    """Stateless combiner of upstream values.

    Safe to share across invocations and threads; all state lives in the
    arguments of aggregate().

    Example:
        result = Aggregator().aggregate(
            [SourceValue("a", True, 0.9), SourceValue("b", False, 0.4)],
            AdaptorConfig(aggregation_method="weighted_voting"),
            node_id="vote",
        )
        result.value  # True
    """

    def aggregate(
        self,
        inputs: Sequence[SourceValue],
        config: AdaptorConfig,
        *,
        node_id: NodeID,
        static_context: str = "",
        model: ReasoningModel | None = None,
    ) -> AggregatedResult:
        """Combine inputs according to config.aggregation_method.

        Raises:
            AggregationError: NO_VALID_INPUTS or INCOMPATIBLE_INPUT
            NodeInvocationError: If the core model call fails
        """
        if not inputs:
            raise AggregationError("No inputs to aggregate", node_id=node_id, kind=AggregationErrorKind.NO_VALID_INPUTS)

        method = config.aggregation_method
        if method == AggregationMethod.LLM_REASONING:
            return self._llm_reasoning(inputs, node_id=node_id, static_context=static_context, model=model)

        match method:
            case AggregationMethod.MAX_CONFIDENCE | AggregationMethod.PRIORITY_ORDER | AggregationMethod.FIRST_VALID:
                value, confidence, rationale, conflicted = self._select(inputs, config, node_id)
            case AggregationMethod.CONCATENATION:
                value = config.separator.join(_text(item, node_id) for item in inputs)
                confidence = sum(item.confidence for item in inputs) / len(inputs)
                rationale = f"concatenation of {len(inputs)} input(s): {_describe(inputs)}"
                conflicted = False
            case AggregationMethod.WEIGHTED_AVERAGE | AggregationMethod.THRESHOLDING:
                value, confidence, rationale, conflicted = self._numeric(inputs, config, node_id)
            case _ if method in _BOOLEAN_METHODS:
                value, confidence, rationale, conflicted = self._boolean(inputs, config, node_id)
            case _:
                raise OrchestrationInvariantError(f"Unhandled aggregation method: {method}")

        if model is not None:
            rationale = self._explain(
                inputs,
                node_id=node_id,
                static_context=static_context,
                model=model,
                method=method,
                value=value,
                confidence=confidence,
            )

        slog.debug(
            "aggregation_completed",
            node_id=node_id,
            method=str(method),
            value=value,
            confidence=confidence,
            conflict=conflicted,
        )
        return AggregatedResult(value=value, confidence=confidence, rationale=rationale, method=method, conflict=conflicted)

    # ------------------------------------------------------------------
    # Weighting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _weights(inputs: Sequence[SourceValue], config: AdaptorConfig, node_id: NodeID) -> list[float]:
        raw = [config.weight_for(item.source_id) for item in inputs]
        total = sum(raw)
        if total == 0:
            raise AggregationError(
                f"All weights are zero for inputs {[item.source_id for item in inputs]}",
                node_id=node_id,
                kind=AggregationErrorKind.NO_VALID_INPUTS,
            )
        return [weight / total for weight in raw]

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def _select(self, inputs: Sequence[SourceValue], config: AdaptorConfig, node_id: NodeID) -> tuple[Any, float, str, bool]:
        method = config.aggregation_method
        chosen: SourceValue | None
        match method:
            case AggregationMethod.MAX_CONFIDENCE:
                chosen = max(inputs, key=lambda item: item.confidence)
            case AggregationMethod.PRIORITY_ORDER:
                by_source = {item.source_id: item for item in inputs}
                chosen = next((by_source[NodeID(source)] for source in config.priority if source in by_source), None)
            case _:
                chosen = next(
                    (item for item in inputs if item.value is not None and item.confidence > config.validity_floor),
                    None,
                )
        if chosen is None:
            raise AggregationError(
                f"{method}: no input qualifies among {[item.source_id for item in inputs]}",
                node_id=node_id,
                kind=AggregationErrorKind.NO_VALID_INPUTS,
            )
        rationale = f"{method} selected {chosen.source_id}={chosen.value!r} (c={chosen.confidence:.2f}) from {len(inputs)} input(s)"
        return chosen.value, chosen.confidence, rationale, False

    def _numeric(self, inputs: Sequence[SourceValue], config: AdaptorConfig, node_id: NodeID) -> tuple[Any, float, str, bool]:
        method = config.aggregation_method
        scalars = [SourceValue(item.source_id, _scalar(item.value), item.confidence) for item in inputs]
        for item in scalars:
            allowed = isinstance(item.value, int | float) and (method == AggregationMethod.THRESHOLDING or not isinstance(item.value, bool))
            if not allowed or not math.isfinite(item.value):
                raise AggregationError(
                    f"{method} requires finite numeric inputs, '{item.source_id}' produced {item.value!r}",
                    node_id=node_id,
                    kind=AggregationErrorKind.INCOMPATIBLE_INPUT,
                )

        raw_values = [float(item.value) for item in scalars]
        values = normalize(raw_values, config.normalization.method) if config.normalization.enabled else raw_values
        weights = self._weights(scalars, config, node_id)
        confidence = sum(w * item.confidence for w, item in zip(weights, scalars, strict=True))

        if method == AggregationMethod.THRESHOLDING:
            assert config.threshold is not None  # enforced by AdaptorConfig
            score = sum(v * w for v, w in zip(values, weights, strict=True))
            decision = score >= config.threshold
            rationale = f"thresholding: weighted score {score:.4g} {'>=' if decision else '<'} {config.threshold:.4g} from {_describe(scalars, weights)}"
            return decision, confidence, rationale, False

        if conflict.detect_numeric_conflict(raw_values, config.conflict.significant_difference):
            candidates = scalars
            if config.normalization.enabled:
                candidates = [SourceValue(item.source_id, v, item.confidence) for v, item in zip(values, scalars, strict=True)]
            resolution = conflict.resolve(
                candidates,
                config.conflict.policy,
                priority=config.priority,
                node_id=node_id,
            )
            spread = max(raw_values) - min(raw_values)
            rationale = (
                f"weighted_average: spread {spread:.4g} exceeds {config.conflict.significant_difference:.4g}; "
                f"{resolution.policy} resolved to {resolution.value!r} from {_describe(scalars, weights)}"
            )
            return resolution.value, resolution.confidence, rationale, True

        denominator = sum(w * item.confidence for w, item in zip(weights, scalars, strict=True))
        if denominator == 0:
            raise AggregationError(
                "weighted_average undefined: sum(weight * confidence) is zero",
                node_id=node_id,
                kind=AggregationErrorKind.NO_VALID_INPUTS,
            )
        if not config.normalization.enabled and all(isinstance(item.value, int) for item in scalars):
            # integer scores above 2**53 do not survive a float round trip
            exact = sum(Fraction(item.value) * Fraction(w) * Fraction(item.confidence) for w, item in zip(weights, scalars, strict=True))
            average: Any = exact / sum(Fraction(w) * Fraction(item.confidence) for w, item in zip(weights, scalars, strict=True))
        else:
            numerator = sum(v * w * item.confidence for v, w, item in zip(values, weights, strict=True))
            average = numerator / denominator
        rationale = f"weighted_average: {average:.4g} from {_describe(scalars, weights)}"
        return average, confidence, rationale, False

    def _boolean(self, inputs: Sequence[SourceValue], config: AdaptorConfig, node_id: NodeID) -> tuple[Any, float, str, bool]:
        method = config.aggregation_method
        votes = [SourceValue(item.source_id, _scalar(item.value), item.confidence) for item in inputs]
        for item in votes:
            if not isinstance(item.value, bool):
                raise AggregationError(
                    f"{method} requires boolean inputs, '{item.source_id}' produced {item.value!r}",
                    node_id=node_id,
                    kind=AggregationErrorKind.INCOMPATIBLE_INPUT,
                )

        match method:
            case AggregationMethod.LOGICAL_AND:
                decision = all(item.value for item in votes)
            case AggregationMethod.LOGICAL_OR:
                decision = any(item.value for item in votes)
            case AggregationMethod.LOGICAL_XOR:
                decision = sum(1 for item in votes if item.value) % 2 == 1
            case _:
                return self._vote(votes, config, node_id)

        confidence = min(item.confidence for item in votes)
        return decision, confidence, f"{method} of {_describe(votes)} = {decision}", False

    def _vote(self, votes: Sequence[SourceValue], config: AdaptorConfig, node_id: NodeID) -> tuple[Any, float, str, bool]:
        method = config.aggregation_method
        if method == AggregationMethod.WEIGHTED_VOTING:
            weights = self._weights(votes, config, node_id)
            scores = [w * item.confidence for w, item in zip(weights, votes, strict=True)]
        else:
            weights = [1.0 / len(votes)] * len(votes)
            scores = [1.0] * len(votes)
        true_score = sum(score for score, item in zip(scores, votes, strict=True) if item.value)
        false_score = sum(score for score, item in zip(scores, votes, strict=True) if not item.value)

        if conflict.detect_vote_conflict(true_score, false_score, config.conflict.margin):
            resolution = conflict.resolve(
                votes,
                config.conflict.policy,
                priority=config.priority,
                boolean=True,
                node_id=node_id,
            )
            rationale = (
                f"{method}: contested vote {true_score:.4g} true vs {false_score:.4g} false; "
                f"{resolution.policy} resolved to {resolution.value} from {_describe(votes)}"
            )
            return resolution.value, resolution.confidence, rationale, True

        decision = true_score > false_score
        agreeing = [(w, item) for w, item in zip(weights, votes, strict=True) if item.value == decision]
        agreeing_weight = sum(w for w, _ in agreeing)
        if agreeing_weight > 0:
            confidence = sum(w * item.confidence for w, item in agreeing) / agreeing_weight
        else:
            confidence = sum(item.confidence for _, item in agreeing) / len(agreeing)
        rationale = f"{method}: {true_score:.4g} true vs {false_score:.4g} false = {decision} from {_describe(votes)}"
        return decision, confidence, rationale, False

    # ------------------------------------------------------------------
    # Core model
    # ------------------------------------------------------------------

    def _llm_reasoning(
        self,
        inputs: Sequence[SourceValue],
        *,
        node_id: NodeID,
        static_context: str,
        model: ReasoningModel | None,
    ) -> AggregatedResult:
        if model is None:
            raise OrchestrationInvariantError(f"Node '{node_id}': llm_reasoning invoked without a core model")
        request = ReasoningRequest(
            node_id=node_id,
            task="reason",
            prompt=render_reasoning_prompt(static_context, inputs),
            inputs=tuple(inputs),
            static_context=static_context,
        )
        answer = _call_model(model, request)
        return AggregatedResult(
            value=answer.value,
            confidence=answer.confidence,
            rationale=answer.text,
            method=AggregationMethod.LLM_REASONING,
        )

    def _explain(
        self,
        inputs: Sequence[SourceValue],
        *,
        node_id: NodeID,
        static_context: str,
        model: ReasoningModel,
        method: AggregationMethod,
        value: Any,
        confidence: float,
    ) -> str:
        request = ReasoningRequest(
            node_id=node_id,
            task="explain",
            prompt=render_explanation_prompt(static_context, inputs, method=str(method), value=value, confidence=confidence),
            inputs=tuple(inputs),
            static_context=static_context,
        )
        return _call_model(model, request).text


def _call_model(model: ReasoningModel, request: ReasoningRequest) -> ReasoningResult:
    """Invoke a core model and validate its confidence signal.

    Raises:
        NodeInvocationError: TRANSPORT for call failures, INVALID_RESPONSE
            for a confidence outside [0, 1]
    """
    try:
        answer = model.reason(request)
    except AdcsError:
        raise
    except Exception as e:
        raise NodeInvocationError(f"Core model call failed: {e}", node_id=request.node_id) from e

    if not isinstance(answer.confidence, int | float) or not 0.0 <= answer.confidence <= 1.0:
        raise NodeInvocationError(
            f"Core model returned confidence {answer.confidence!r} outside [0, 1]",
            node_id=request.node_id,
            kind=InvocationErrorKind.INVALID_RESPONSE,
        )
    return answer
