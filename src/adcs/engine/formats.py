# src/adcs/engine/formats.py
"""Format Converter: explicit, table-driven mapping between output shapes.

Every supported conversion is a named ConversionRule in _RULES. A pair that
is not in the table fails loudly with UNSUPPORTED_CONVERSION; there is no
implicit coercion. Notably Bool -> Uint256 is not supported.

Conversions are not assumed to round-trip: StringAndBool -> Bool drops the
text, and Bool -> StringAndBool synthesises a label from configuration, so
the original text is never recovered.

from_result() renders an adaptor's AggregatedResult into its declared
format; the text of StringAndX outputs comes from the rationale (or the
category label for scores when categories are configured).
"""

from __future__ import annotations

import math
from collections.abc import Callable
from fractions import Fraction
from dataclasses import dataclass
from typing import Any

from adcs.contracts.enums import ConversionErrorKind, OutputFormat
from adcs.contracts.errors import ConversionError
from adcs.contracts.results import AggregatedResult
from adcs.contracts.types import NodeID
from adcs.contracts.values import BYTES32_LENGTH, UINT256_MAX, StringAndBool, StringAndUint256
from adcs.core.config import AdaptorConfig, CategoryThresholds


@dataclass(frozen=True, slots=True)
class ConversionOptions:
    """Configuration consulted by label-synthesising rules."""

    true_label: str = "TRUE"
    false_label: str = "FALSE"
    categories: CategoryThresholds | None = None

    @classmethod
    def from_config(cls, config: AdaptorConfig) -> ConversionOptions:
        return cls(true_label=config.true_label, false_label=config.false_label, categories=config.categories)


DEFAULT_OPTIONS = ConversionOptions()


@dataclass(frozen=True, slots=True)
class ConversionRule:
    """A named conversion between two formats."""

    name: str
    source: OutputFormat
    target: OutputFormat
    apply: Callable[[Any, ConversionOptions], Any]


def _is_uint256(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= UINT256_MAX


def _narrow_bytes(value: bytes, options: ConversionOptions) -> bytes:
    if len(value) != BYTES32_LENGTH:
        raise ConversionError(
            f"narrow_bytes requires exactly {BYTES32_LENGTH} bytes, got {len(value)}",
            from_format=OutputFormat.BYTES,
            to_format=OutputFormat.BYTES32,
            kind=ConversionErrorKind.INVALID_VALUE,
        )
    return value


def _categorize_score(value: int, options: ConversionOptions) -> StringAndUint256:
    label = options.categories.label_for(value) if options.categories is not None else str(value)
    return StringAndUint256(text=label, value=value)


_RULES: dict[tuple[OutputFormat, OutputFormat], ConversionRule] = {
    (rule.source, rule.target): rule
    for rule in (
        ConversionRule("drop_text", OutputFormat.STRING_AND_BOOL, OutputFormat.BOOL, lambda v, o: v.flag),
        ConversionRule("drop_text", OutputFormat.STRING_AND_UINT256, OutputFormat.UINT256, lambda v, o: v.value),
        ConversionRule(
            "label_decision",
            OutputFormat.BOOL,
            OutputFormat.STRING_AND_BOOL,
            lambda v, o: StringAndBool(text=o.true_label if v else o.false_label, flag=v),
        ),
        ConversionRule("categorize_score", OutputFormat.UINT256, OutputFormat.STRING_AND_UINT256, _categorize_score),
        ConversionRule("widen_bytes32", OutputFormat.BYTES32, OutputFormat.BYTES, lambda v, o: bytes(v)),
        ConversionRule("narrow_bytes", OutputFormat.BYTES, OutputFormat.BYTES32, _narrow_bytes),
        ConversionRule("encode_uint", OutputFormat.UINT256, OutputFormat.BYTES32, lambda v, o: v.to_bytes(BYTES32_LENGTH, "big")),
        ConversionRule("decode_uint", OutputFormat.BYTES32, OutputFormat.UINT256, lambda v, o: int.from_bytes(v, "big")),
    )
}


def rules() -> tuple[ConversionRule, ...]:
    """All supported non-identity conversions."""
    return tuple(_RULES.values())


def can_convert(from_format: OutputFormat, to_format: OutputFormat) -> bool:
    """Whether a conversion exists (identity always does)."""
    return from_format == to_format or (from_format, to_format) in _RULES


def rule_for(from_format: OutputFormat, to_format: OutputFormat) -> ConversionRule:
    """Look up the rule for a pair.

    Raises:
        ConversionError: UNSUPPORTED_CONVERSION if the pair is not in the table
    """
    try:
        return _RULES[(from_format, to_format)]
    except KeyError:
        raise ConversionError(
            f"Unsupported conversion: {from_format} -> {to_format}",
            from_format=from_format,
            to_format=to_format,
        ) from None


def link_input_format(produced: OutputFormat, accepts: tuple[OutputFormat, ...]) -> OutputFormat | None:
    """Format a chain link receives when the previous link produced ``produced``.

    Returns the produced format when accepted as-is (or when the link
    accepts anything), otherwise the first accepted format reachable by a
    rule, otherwise None.
    """
    if not accepts or produced in accepts:
        return produced
    for candidate in accepts:
        if (produced, candidate) in _RULES:
            return candidate
    return None


def check_value(value: Any, fmt: OutputFormat, *, node_id: NodeID | None = None) -> None:
    """Validate that a value has the shape of a format.

    Raises:
        ConversionError: INVALID_VALUE if the shape does not match
    """
    match fmt:
        case OutputFormat.BOOL:
            valid = isinstance(value, bool)
        case OutputFormat.UINT256:
            valid = _is_uint256(value)
        case OutputFormat.BYTES32:
            valid = isinstance(value, bytes) and len(value) == BYTES32_LENGTH
        case OutputFormat.BYTES:
            valid = isinstance(value, bytes)
        case OutputFormat.STRING_AND_BOOL:
            valid = isinstance(value, StringAndBool) and isinstance(value.text, str) and isinstance(value.flag, bool)
        case OutputFormat.STRING_AND_UINT256:
            valid = isinstance(value, StringAndUint256) and isinstance(value.text, str) and _is_uint256(value.value)
    if not valid:
        raise ConversionError(
            f"Value {value!r} is not a valid '{fmt}'",
            from_format=None,
            to_format=fmt,
            kind=ConversionErrorKind.INVALID_VALUE,
            node_id=node_id,
        )


def infer_format(value: Any) -> OutputFormat | None:
    """Format whose shape a value already has, if any."""
    if isinstance(value, bool):
        return OutputFormat.BOOL
    if _is_uint256(value):
        return OutputFormat.UINT256
    if isinstance(value, bytes):
        return OutputFormat.BYTES32 if len(value) == BYTES32_LENGTH else OutputFormat.BYTES
    if isinstance(value, StringAndBool):
        return OutputFormat.STRING_AND_BOOL
    if isinstance(value, StringAndUint256):
        return OutputFormat.STRING_AND_UINT256
    return None


def convert(
    value: Any,
    from_format: OutputFormat,
    to_format: OutputFormat,
    options: ConversionOptions = DEFAULT_OPTIONS,
    *,
    node_id: NodeID | None = None,
) -> Any:
    """Convert a value between formats using the rule table.

    Raises:
        ConversionError: UNSUPPORTED_CONVERSION for pairs outside the table,
            INVALID_VALUE for values that do not fit either format
    """
    check_value(value, from_format, node_id=node_id)
    if from_format == to_format:
        return value
    rule = rule_for(from_format, to_format)
    try:
        converted = rule.apply(value, options)
    except ConversionError as e:
        if e.node_id is None:
            e.node_id = node_id
        raise
    check_value(converted, to_format, node_id=node_id)
    return converted


def _to_uint(value: Any, to_format: OutputFormat, node_id: NodeID | None) -> int:
    """Integral score from a numeric aggregation result (round half to even)."""
    if isinstance(value, StringAndUint256):
        return value.value
    if isinstance(value, bool) or not isinstance(value, int | float | Fraction):
        raise ConversionError(
            f"Cannot render {type(value).__name__} value {value!r} as '{to_format}'",
            from_format=infer_format(value),
            to_format=to_format,
            node_id=node_id,
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise ConversionError(
            f"Score {value!r} is not finite",
            from_format=None,
            to_format=to_format,
            kind=ConversionErrorKind.INVALID_VALUE,
            node_id=node_id,
        )
    score = round(value)
    if not 0 <= score <= UINT256_MAX:
        raise ConversionError(
            f"Score {value!r} is outside the uint256 range",
            from_format=None,
            to_format=to_format,
            kind=ConversionErrorKind.INVALID_VALUE,
            node_id=node_id,
        )
    return score


def _to_flag(value: Any, to_format: OutputFormat, node_id: NodeID | None) -> bool:
    if isinstance(value, StringAndBool):
        return value.flag
    if not isinstance(value, bool):
        raise ConversionError(
            f"Cannot render {type(value).__name__} value {value!r} as '{to_format}'",
            from_format=infer_format(value),
            to_format=to_format,
            node_id=node_id,
        )
    return value


def _has_shape(value: Any, fmt: OutputFormat) -> bool:
    try:
        check_value(value, fmt)
    except ConversionError:
        return False
    return True


def from_result(
    result: AggregatedResult,
    to_format: OutputFormat,
    options: ConversionOptions = DEFAULT_OPTIONS,
    *,
    node_id: NodeID | None = None,
) -> Any:
    """Render an aggregation result into a declared output format.

    A value that already has the target shape passes through unchanged
    (selection methods return one input's value unmodified).

    Raises:
        ConversionError: If the value cannot be rendered into the format
    """
    value = result.value
    if _has_shape(value, to_format):
        return value

    match to_format:
        case OutputFormat.BOOL:
            rendered: Any = _to_flag(value, to_format, node_id)
        case OutputFormat.STRING_AND_BOOL:
            rendered = StringAndBool(text=result.rationale, flag=_to_flag(value, to_format, node_id))
        case OutputFormat.UINT256:
            rendered = _to_uint(value, to_format, node_id)
        case OutputFormat.STRING_AND_UINT256:
            score = _to_uint(value, to_format, node_id)
            text = options.categories.label_for(score) if options.categories is not None else result.rationale
            rendered = StringAndUint256(text=text, value=score)
        case OutputFormat.BYTES:
            if isinstance(value, str):
                rendered = value.encode("utf-8")
            else:
                raise ConversionError(
                    f"Cannot render {type(value).__name__} value as '{to_format}'",
                    from_format=infer_format(value),
                    to_format=to_format,
                    node_id=node_id,
                )
        case OutputFormat.BYTES32:
            rendered = _to_bytes32(value, node_id)

    check_value(rendered, to_format, node_id=node_id)
    return rendered


def _to_bytes32(value: Any, node_id: NodeID | None) -> bytes:
    """Pack text (left-aligned, zero-padded) or encode a score into 32 bytes."""
    if isinstance(value, str):
        encoded = value.encode("utf-8")
        if len(encoded) > BYTES32_LENGTH:
            raise ConversionError(
                f"Text of {len(encoded)} bytes does not fit in bytes32",
                from_format=None,
                to_format=OutputFormat.BYTES32,
                kind=ConversionErrorKind.INVALID_VALUE,
                node_id=node_id,
            )
        return encoded.ljust(BYTES32_LENGTH, b"\x00")
    source = infer_format(value)
    if source is None:
        raise ConversionError(
            f"Cannot render {type(value).__name__} value as 'bytes32'",
            from_format=None,
            to_format=OutputFormat.BYTES32,
            node_id=node_id,
        )
    return convert(value, source, OutputFormat.BYTES32, node_id=node_id)  # type: ignore[no-any-return]
