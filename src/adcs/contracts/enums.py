"""All status codes, formats, and kinds used across subsystem boundaries.

Values are snake_case strings so they serialize unchanged into trace records
and structured log events.
"""

from enum import StrEnum


class OutputFormat(StrEnum):
    """Blockchain-consumable output shapes.

    Value shapes:
    - BOOL: bool
    - UINT256: int in [0, 2**256)
    - BYTES32: bytes of exactly 32 bytes
    - BYTES: bytes of any length
    - STRING_AND_BOOL: StringAndBool(text, flag)
    - STRING_AND_UINT256: StringAndUint256(text, value)
    """

    BOOL = "bool"
    UINT256 = "uint256"
    BYTES32 = "bytes32"
    BYTES = "bytes"
    STRING_AND_BOOL = "string_and_bool"
    STRING_AND_UINT256 = "string_and_uint256"


class NodeKind(StrEnum):
    """Closed set of node variants in an adaptor graph."""

    PROVIDER = "provider"
    SINGLE_INPUT_ADAPTOR = "single_input_adaptor"
    MULTI_INPUT_ADAPTOR = "multi_input_adaptor"
    CHAINED_ADAPTOR = "chained_adaptor"


class AggregationMethod(StrEnum):
    """How an adaptor combines its upstream values."""

    VOTING = "voting"
    WEIGHTED_VOTING = "weighted_voting"
    WEIGHTED_AVERAGE = "weighted_average"
    CONCATENATION = "concatenation"
    THRESHOLDING = "thresholding"
    MAX_CONFIDENCE = "max_confidence"
    PRIORITY_ORDER = "priority_order"
    FIRST_VALID = "first_valid"
    LOGICAL_AND = "logical_and"
    LOGICAL_OR = "logical_or"
    LOGICAL_XOR = "logical_xor"
    LLM_REASONING = "llm_reasoning"


class ConflictPolicy(StrEnum):
    """Resolution applied when upstream values disagree beyond the configured margin."""

    MAX_CONFIDENCE = "max_confidence"
    PRIORITY = "priority"
    FALLBACK_AVERAGE = "fallback_average"


class NormalizationMethod(StrEnum):
    """Rescaling applied to numeric inputs before weighting."""

    MIN_MAX_SCALING = "min_max_scaling"
    MAX_ABS_SCALING = "max_abs_scaling"


class ChainState(StrEnum):
    """Chain runner lifecycle.

    RUNNING is paired with the index of the link being executed.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(StrEnum):
    """Outcome of a single graph invocation."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GraphErrorKind(StrEnum):
    """Kinds of GraphValidationError. Always fatal at construction time."""

    CYCLE_DETECTED = "cycle_detected"
    DANGLING_REFERENCE = "dangling_reference"
    TYPE_MISMATCH = "type_mismatch"
    INVALID_STRUCTURE = "invalid_structure"


class InvocationErrorKind(StrEnum):
    """Kinds of NodeInvocationError (external call failures)."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"


class AggregationErrorKind(StrEnum):
    """Kinds of AggregationError."""

    NO_VALID_INPUTS = "no_valid_inputs"
    MISSING_REQUIRED_INPUT = "missing_required_input"
    INCOMPATIBLE_INPUT = "incompatible_input"


class ConversionErrorKind(StrEnum):
    """Kinds of ConversionError."""

    UNSUPPORTED_CONVERSION = "unsupported_conversion"
    INVALID_VALUE = "invalid_value"
