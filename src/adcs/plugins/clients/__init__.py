"""HTTP clients for Providers and core reasoning models."""

from adcs.plugins.clients.http import HTTPProviderTransport
from adcs.plugins.clients.llm import ChatCompletionsConfig, ChatCompletionsModel

__all__ = [
    "ChatCompletionsConfig",
    "ChatCompletionsModel",
    "HTTPProviderTransport",
]
