# tests/conftest.py
"""Shared test fixtures and helpers.

Test doubles for the engine's external collaborators:
- FakeTransport: ProviderTransport answering from a per-node script
- FakeModel: ReasoningModel answering from a callable or a fixed result
- RecordingSink: SettlementSink that keeps every delivered Settlement

Node builders (provider(), single(), multi()) keep graph declarations in
tests short.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable, Mapping
from typing import Any

import pytest
from hypothesis import Verbosity, settings

from adcs.contracts import (
    NodeID,
    OutputFormat,
    ProviderError,
    ReasoningRequest,
    ReasoningResult,
    Settlement,
)
from adcs.core.config import AdaptorConfig
from adcs.core.nodes import MultiInputAdaptor, Provider, SingleInputAdaptor

settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("nightly", max_examples=1000, deadline=None)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose, deadline=None)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Test doubles
# =============================================================================


class FakeTransport:
    """ProviderTransport scripted per node id.

    A script entry is either a response (mapping or ProviderOutput), an
    exception instance to raise, or a callable taking the raw input.
    Calls are counted per node id; ``gates`` block a node until released.
    """

    def __init__(self, script: Mapping[str, Any] | None = None) -> None:
        self.script: dict[str, Any] = dict(script or {})
        self.calls: dict[str, int] = {}
        self.gates: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def block(self, node_id: str) -> threading.Event:
        gate = threading.Event()
        self.gates[node_id] = gate
        return gate

    def call(self, provider: Provider, raw_input: Any) -> Any:
        with self._lock:
            self.calls[provider.node_id] = self.calls.get(provider.node_id, 0) + 1
        gate = self.gates.get(provider.node_id)
        if gate is not None:
            gate.wait(timeout=10)
        entry = self.script[provider.node_id]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(raw_input)
        return entry


class FakeModel:
    """ReasoningModel returning a fixed result or the result of a callable."""

    def __init__(
        self,
        answer: ReasoningResult | Callable[[ReasoningRequest], ReasoningResult] | BaseException | None = None,
    ) -> None:
        self.answer = answer if answer is not None else ReasoningResult(value=None, confidence=0.9, text="model explanation")
        self.requests: list[ReasoningRequest] = []

    def reason(self, request: ReasoningRequest) -> ReasoningResult:
        self.requests.append(request)
        if isinstance(self.answer, BaseException):
            raise self.answer
        if callable(self.answer):
            return self.answer(request)
        return self.answer


class RecordingSink:
    """SettlementSink keeping every delivery."""

    def __init__(self) -> None:
        self.delivered: list[Settlement] = []

    def deliver(self, settlement: Settlement) -> None:
        self.delivered.append(settlement)


# =============================================================================
# Node builders
# =============================================================================


def ok(result: Any, confidence: float = 1.0) -> dict[str, Any]:
    """Provider response body."""
    return {"result": result, "confidence": confidence}


def provider(node_id: str, output_format: OutputFormat = OutputFormat.UINT256, **kwargs: Any) -> Provider:
    return Provider(
        node_id=NodeID(node_id),
        endpoint=f"https://providers.test/{node_id}",
        model=f"{node_id}-model",
        output_format=output_format,
        **kwargs,
    )


def single(node_id: str, input_id: str, output_format: OutputFormat, **config: Any) -> SingleInputAdaptor:
    return SingleInputAdaptor(
        node_id=NodeID(node_id),
        input_id=NodeID(input_id),
        output_format=output_format,
        config=AdaptorConfig(**config),
    )


def multi(node_id: str, input_ids: list[str], output_format: OutputFormat, **config: Any) -> MultiInputAdaptor:
    return MultiInputAdaptor(
        node_id=NodeID(node_id),
        input_ids=tuple(NodeID(i) for i in input_ids),
        output_format=output_format,
        config=AdaptorConfig(**config),
    )


def provider_failure(node_id: str) -> ProviderError:
    return ProviderError(f"{node_id} unavailable", node_id=NodeID(node_id))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
