# src/adcs/engine/invoker.py
"""Provider Invoker: one external call per Provider per invocation.

Responsibilities:
- Call the transport exactly once (no retries; retry policy belongs to
  the transport or the caller)
- Validate the response at the boundary with pydantic
- Fill in metadata the transport did not report
- Map every failure to a typed ProviderError
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from adcs.contracts.enums import InvocationErrorKind
from adcs.contracts.errors import NodeInvocationError, ProviderError
from adcs.contracts.results import ProviderOutput
from adcs.core.nodes import Provider
from adcs.engine.clock import DEFAULT_CLOCK, Clock
from adcs.plugins.protocols import ProviderTransport

slog = structlog.get_logger(__name__)


class ProviderInvoker:
    """Invokes Providers through a ProviderTransport.

    Example:
        invoker = ProviderInvoker(HTTPProviderTransport())
        output = invoker.invoke(provider, {"borrower": "0xabc"})
        output.confidence  # 0.85
    """

    def __init__(self, transport: ProviderTransport, *, clock: Clock | None = None) -> None:
        self._transport = transport
        self._clock = clock if clock is not None else DEFAULT_CLOCK

    def invoke(self, provider: Provider, raw_input: Any) -> ProviderOutput:
        """Call a Provider once and validate its output.

        Raises:
            ProviderError: TRANSPORT, TIMEOUT or INVALID_RESPONSE
        """
        started = self._clock.monotonic()
        try:
            response = self._transport.call(provider, raw_input)
        except ProviderError as e:
            if e.node_id is None:
                e.node_id = provider.node_id
            raise
        except NodeInvocationError as e:
            raise ProviderError(str(e), node_id=provider.node_id, kind=e.kind) from e
        except Exception as e:
            raise ProviderError(
                f"Provider '{provider.node_id}' call to {provider.endpoint} failed: {type(e).__name__}: {e}",
                node_id=provider.node_id,
            ) from e
        elapsed = self._clock.monotonic() - started

        output = self._validate(provider, response, elapsed)
        slog.debug(
            "provider_invoked",
            node_id=provider.node_id,
            model=output.metadata.model,
            confidence=output.confidence,
            processing_time=elapsed,
        )
        return output

    def _validate(self, provider: Provider, response: Any, elapsed: float) -> ProviderOutput:
        if isinstance(response, ProviderOutput):
            return response
        if not isinstance(response, Mapping):
            raise ProviderError(
                f"Provider '{provider.node_id}' returned {type(response).__name__}, expected a mapping",
                node_id=provider.node_id,
                kind=InvocationErrorKind.INVALID_RESPONSE,
            )

        data = dict(response)
        metadata = data.get("metadata")
        defaults = {"model": provider.model, "timestamp": self._clock.now(), "processing_time": elapsed}
        if metadata is None:
            data["metadata"] = defaults
        elif isinstance(metadata, Mapping):
            data["metadata"] = {**defaults, **metadata}

        try:
            return ProviderOutput.model_validate(data)
        except ValidationError as e:
            raise ProviderError(
                f"Provider '{provider.node_id}' returned an invalid response: {e}",
                node_id=provider.node_id,
                kind=InvocationErrorKind.INVALID_RESPONSE,
            ) from e
