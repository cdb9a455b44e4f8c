"""Shared contracts for cross-boundary data types.

Enums, value types, results and errors that cross subsystem boundaries are
defined here. This package is a LEAF MODULE with no outbound dependencies to
core/engine; configuration models live in adcs.core.config.

Import patterns:
    from adcs.contracts import OutputFormat, NodeOutput, AggregationError
    from adcs.core.config import AdaptorConfig, EngineSettings
"""

from adcs.contracts.enums import (
    AggregationErrorKind,
    AggregationMethod,
    ChainState,
    ConflictPolicy,
    ConversionErrorKind,
    GraphErrorKind,
    InvocationErrorKind,
    NodeKind,
    NormalizationMethod,
    OutputFormat,
    RunStatus,
)
from adcs.contracts.errors import (
    AdcsError,
    AggregationError,
    ChainExecutionError,
    ConversionError,
    ExecutionCancelledError,
    GraphExecutionError,
    GraphValidationError,
    NodeInvocationError,
    OrchestrationInvariantError,
    ProviderError,
    origin_of,
)
from adcs.contracts.results import (
    AggregatedResult,
    ExecutionResult,
    NodeFailure,
    NodeOutput,
    ProviderMetadata,
    ProviderOutput,
    ReasoningRequest,
    ReasoningResult,
    Settlement,
    SourceValue,
    TraceRecord,
)
from adcs.contracts.types import ModelName, NodeID, RequestID
from adcs.contracts.values import (
    BYTES32_LENGTH,
    UINT256_MAX,
    FormattedOutput,
    StringAndBool,
    StringAndUint256,
)

__all__ = [
    "BYTES32_LENGTH",
    "UINT256_MAX",
    "AdcsError",
    "AggregatedResult",
    "AggregationError",
    "AggregationErrorKind",
    "AggregationMethod",
    "ChainExecutionError",
    "ChainState",
    "ConflictPolicy",
    "ConversionError",
    "ConversionErrorKind",
    "ExecutionCancelledError",
    "ExecutionResult",
    "FormattedOutput",
    "GraphErrorKind",
    "GraphExecutionError",
    "GraphValidationError",
    "InvocationErrorKind",
    "ModelName",
    "NodeFailure",
    "NodeID",
    "NodeInvocationError",
    "NodeKind",
    "NodeOutput",
    "NormalizationMethod",
    "OrchestrationInvariantError",
    "OutputFormat",
    "ProviderError",
    "ProviderMetadata",
    "ProviderOutput",
    "ReasoningRequest",
    "ReasoningResult",
    "RequestID",
    "RunStatus",
    "Settlement",
    "SourceValue",
    "StringAndBool",
    "StringAndUint256",
    "TraceRecord",
    "origin_of",
]
