"""Tests for ChatCompletionsModel.

Coverage goals:
- Request shape (model, messages, temperature, max_tokens)
- Structured answer parsing into ReasoningResult
- Failure mapping to NodeInvocationError kinds
"""

import json

import httpx
import pytest
import respx

from adcs.contracts import InvocationErrorKind, NodeID, NodeInvocationError, ReasoningRequest, SourceValue
from adcs.plugins.clients.llm import ChatCompletionsConfig, ChatCompletionsModel

BASE_URL = "https://llm.test/api/v1"
COMPLETIONS = f"{BASE_URL}/chat/completions"


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _request(task: str = "reason") -> ReasoningRequest:
    return ReasoningRequest(
        node_id=NodeID("judge"),
        task=task,
        prompt="Is the borrower creditworthy?",
        inputs=(SourceValue(NodeID("score"), 57, 0.8),),
        static_context="Approve above 50.",
    )


@pytest.fixture
def model():
    config = ChatCompletionsConfig(
        api_key="test-key",
        base_url=BASE_URL,
        model="openai/gpt-4o-mini",
        system_prompt="Answer in JSON.",
        max_tokens=256,
    )
    client = ChatCompletionsModel(config)
    yield client
    client.close()


@respx.mock
def test_sends_prompt_and_parses_answer(model):
    route = respx.post(COMPLETIONS).mock(
        return_value=_completion('{"value": true, "confidence": 0.75, "explanation": "score above threshold"}')
    )

    result = model.reason(_request())

    assert result.value is True
    assert result.confidence == 0.75
    assert result.text == "score above threshold"

    request = route.calls.last.request
    body = json.loads(request.content)
    assert body["model"] == "openai/gpt-4o-mini"
    assert body["temperature"] == 0.0
    assert body["max_tokens"] == 256
    assert body["messages"] == [
        {"role": "system", "content": "Answer in JSON."},
        {"role": "user", "content": "Is the borrower creditworthy?"},
    ]
    assert request.headers["Authorization"] == "Bearer test-key"


@respx.mock
def test_explanation_only_answer(model):
    respx.post(COMPLETIONS).mock(return_value=_completion('{"confidence": 0.6, "explanation": "weighted toward financial"}'))

    result = model.reason(_request(task="explain"))

    assert result.value is None
    assert result.text == "weighted toward financial"


@respx.mock
def test_timeout(model):
    respx.post(COMPLETIONS).mock(side_effect=httpx.ReadTimeout("slow"))

    with pytest.raises(NodeInvocationError) as exc_info:
        model.reason(_request())

    assert exc_info.value.kind == InvocationErrorKind.TIMEOUT
    assert exc_info.value.node_id == "judge"


@respx.mock
def test_rate_limited_is_transport_error(model):
    respx.post(COMPLETIONS).mock(return_value=httpx.Response(429))

    with pytest.raises(NodeInvocationError) as exc_info:
        model.reason(_request())

    assert exc_info.value.kind == InvocationErrorKind.TRANSPORT


@respx.mock
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, text="<html>gateway</html>"),
        _completion("I think yes."),
        _completion('{"value": true}'),
        _completion('{"value": true, "confidence": NaN}'),
    ],
    ids=["no-choices", "html", "prose", "no-confidence", "nan"],
)
def test_unusable_answer_is_invalid_response(model, response):
    respx.post(COMPLETIONS).mock(return_value=response)

    with pytest.raises(NodeInvocationError) as exc_info:
        model.reason(_request())

    assert exc_info.value.kind == InvocationErrorKind.INVALID_RESPONSE


def test_config_rejects_unknown_keys():
    with pytest.raises(ValueError):
        ChatCompletionsConfig(api_key="k", model="m", temprature=0.2)
