# src/adcs/plugins/protocols.py
"""Protocols for the engine's external collaborators.

These protocols define what the executor needs from the outside world.
They're used for type checking; any object with the right methods works.

Collaborators:
- ProviderTransport: reaches a Provider's endpoint (one call per invocation)
- ReasoningModel: an adaptor's core model
- SettlementSink: accepts the terminal output of a successful invocation
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from adcs.contracts import ProviderOutput, ReasoningRequest, ReasoningResult, Settlement
    from adcs.core.nodes import Provider


@runtime_checkable
class ProviderTransport(Protocol):
    """Calls a Provider's endpoint.

    Returns either a ProviderOutput or a mapping with the same shape
    (``{"result", "confidence", "metadata"?}``); the Provider Invoker
    validates it. Raising ProviderError reports a typed failure; any other
    exception is treated as a transport failure.

    Example:
        class StaticTransport:
            def call(self, provider: Provider, raw_input: Any) -> Mapping[str, Any]:
                return {"result": True, "confidence": 0.9}
    """

    def call(self, provider: "Provider", raw_input: Any) -> "ProviderOutput | Mapping[str, Any]":
        """Perform exactly one inference call."""
        ...


@runtime_checkable
class ReasoningModel(Protocol):
    """Core reasoning model applied by adaptors.

    Receives a rendered prompt plus the raw inputs and static context it was
    rendered from, and answers with a value, a confidence in [0, 1] and text.
    """

    def reason(self, request: "ReasoningRequest") -> "ReasoningResult":
        """Answer one reasoning or explanation request."""
        ...


@runtime_checkable
class SettlementSink(Protocol):
    """External delivery callback for terminal outputs.

    Called at most once per invocation, and never for failed or cancelled
    invocations. Retries, gas and callback authentication belong to the
    coordinator layer behind the sink.
    """

    def deliver(self, settlement: "Settlement") -> None:
        """Hand off a terminal output."""
        ...
