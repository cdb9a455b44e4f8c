# src/adcs/plugins/clients/http.py
"""HTTP Provider transport.

POSTs ``{"model": provider.model, "input": raw_input}`` as JSON to the
Provider's endpoint and returns the decoded body for the Provider Invoker
to validate. One request per call; retries are the caller's concern.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from json import JSONDecodeError
from typing import Any

import httpx
import structlog

from adcs.contracts.enums import InvocationErrorKind
from adcs.contracts.errors import ProviderError
from adcs.core.nodes import Provider

logger = structlog.get_logger(__name__)


def _contains_non_finite(obj: Any) -> bool:
    """Recursively check if a parsed JSON value contains NaN or Infinity."""
    if isinstance(obj, float):
        return math.isnan(obj) or math.isinf(obj)
    if isinstance(obj, dict):
        return any(_contains_non_finite(v) for v in obj.values())
    if isinstance(obj, list):
        return any(_contains_non_finite(v) for v in obj)
    return False


def parse_json_strict(text: str) -> tuple[Any, str | None]:
    """Parse JSON with strict rejection of NaN/Infinity.

    Returns:
        Tuple of (parsed_value, error_message)
        - On success: (parsed_value, None)
        - On failure: (None, error_message)
    """
    try:
        parsed = json.loads(text)
    except JSONDecodeError as e:
        return None, str(e)

    if _contains_non_finite(parsed):
        return None, "JSON contains non-finite values (NaN or Infinity)"

    return parsed, None


class HTTPProviderTransport:
    """ProviderTransport over HTTP using a shared httpx.Client.

    httpx.Client is thread-safe, so one transport serves every worker of
    every invocation. A Provider's timeout_seconds overrides the default
    request timeout.

    Example:
        transport = HTTPProviderTransport(headers={"Authorization": "Bearer ..."})
        body = transport.call(provider, {"borrower": "0xabc"})
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout: Default request timeout in seconds (default: 30.0)
            headers: Headers sent with every request
            client: Pre-built client (tests pass one with an httpx.MockTransport)
        """
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def call(self, provider: Provider, raw_input: Any) -> Mapping[str, Any]:
        """POST the raw input to the Provider's endpoint.

        Raises:
            ProviderError: TIMEOUT, TRANSPORT (network or HTTP status), or
                INVALID_RESPONSE (body is not a JSON object)
        """
        timeout = provider.timeout_seconds if provider.timeout_seconds is not None else self._timeout
        try:
            response = self._client.post(
                provider.endpoint,
                json={"model": provider.model, "input": raw_input},
                headers=self._headers,
                timeout=timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Provider '{provider.node_id}' timed out after {timeout}s: {e}",
                node_id=provider.node_id,
                kind=InvocationErrorKind.TIMEOUT,
            ) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Provider '{provider.node_id}' returned HTTP {e.response.status_code}",
                node_id=provider.node_id,
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(
                f"Provider '{provider.node_id}' request failed: {type(e).__name__}: {e}",
                node_id=provider.node_id,
            ) from e

        body, error = parse_json_strict(response.text)
        if error is not None or not isinstance(body, dict):
            logger.warning(
                "provider_response_unparseable",
                node_id=provider.node_id,
                endpoint=provider.endpoint,
                error=error,
                body_preview=response.text[:200],
            )
            raise ProviderError(
                f"Provider '{provider.node_id}' returned a non-object body: {error or type(body).__name__}",
                node_id=provider.node_id,
                kind=InvocationErrorKind.INVALID_RESPONSE,
            )
        return body

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()
