"""External collaborators of the engine: protocols and HTTP clients."""

from adcs.plugins.protocols import ProviderTransport, ReasoningModel, SettlementSink

__all__ = [
    "ProviderTransport",
    "ReasoningModel",
    "SettlementSink",
]
