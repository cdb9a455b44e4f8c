"""Tests for HTTPProviderTransport.

Coverage goals:
- Request body and per-provider timeout
- HTTP status, network and timeout failures mapped to ProviderError kinds
- Strict JSON parsing (non-object bodies, NaN/Infinity rejected)
"""

import json

import httpx
import pytest
import respx

from adcs.contracts import InvocationErrorKind, ProviderError
from adcs.engine.invoker import ProviderInvoker
from adcs.plugins.clients.http import HTTPProviderTransport, parse_json_strict
from tests.conftest import provider

ENDPOINT = "https://providers.test/financial"


@pytest.fixture
def http_transport():
    transport = HTTPProviderTransport(timeout=5.0, headers={"Authorization": "Bearer test-key"})
    yield transport
    transport.close()


@respx.mock
def test_posts_model_and_raw_input(http_transport):
    route = respx.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"result": 70, "confidence": 0.9}))

    body = http_transport.call(provider("financial"), {"borrower": "0xabc"})

    assert body == {"result": 70, "confidence": 0.9}
    request = route.calls.last.request
    assert json.loads(request.content) == {"model": "financial-model", "input": {"borrower": "0xabc"}}
    assert request.headers["Authorization"] == "Bearer test-key"


@respx.mock
def test_response_flows_through_invoker(http_transport):
    respx.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"result": 70, "confidence": 0.9}))

    output = ProviderInvoker(http_transport).invoke(provider("financial"), None)

    assert output.result == 70
    assert output.metadata.model == "financial-model"


@respx.mock
def test_http_error_status_is_transport_error(http_transport):
    respx.post(ENDPOINT).mock(return_value=httpx.Response(503))

    with pytest.raises(ProviderError) as exc_info:
        http_transport.call(provider("financial"), None)

    assert exc_info.value.kind == InvocationErrorKind.TRANSPORT
    assert exc_info.value.node_id == "financial"
    assert "503" in str(exc_info.value)


@respx.mock
def test_connection_error_is_transport_error(http_transport):
    respx.post(ENDPOINT).mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(ProviderError) as exc_info:
        http_transport.call(provider("financial"), None)

    assert exc_info.value.kind == InvocationErrorKind.TRANSPORT
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@respx.mock
def test_timeout_is_timeout_error(http_transport):
    respx.post(ENDPOINT).mock(side_effect=httpx.ReadTimeout("slow"))

    with pytest.raises(ProviderError) as exc_info:
        http_transport.call(provider("financial", timeout_seconds=0.5), None)

    assert exc_info.value.kind == InvocationErrorKind.TIMEOUT
    assert "0.5s" in str(exc_info.value)


@respx.mock
@pytest.mark.parametrize(
    "content",
    [b"not json", b"[70, 0.9]", b'{"result": NaN, "confidence": 0.5}'],
    ids=["garbage", "array", "nan"],
)
def test_unusable_body_is_invalid_response(http_transport, content):
    respx.post(ENDPOINT).mock(return_value=httpx.Response(200, content=content))

    with pytest.raises(ProviderError) as exc_info:
        http_transport.call(provider("financial"), None)

    assert exc_info.value.kind == InvocationErrorKind.INVALID_RESPONSE


class TestParseJsonStrict:
    def test_valid_object(self) -> None:
        assert parse_json_strict('{"a": [1, 2.5]}') == ({"a": [1, 2.5]}, None)

    def test_nested_infinity_rejected(self) -> None:
        value, error = parse_json_strict('{"a": {"b": [Infinity]}}')
        assert value is None
        assert error is not None and "non-finite" in error

    def test_syntax_error_reported(self) -> None:
        value, error = parse_json_strict("{")
        assert value is None
        assert error
