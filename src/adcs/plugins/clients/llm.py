# src/adcs/plugins/clients/llm.py
"""Chat-completions reasoning model (OpenAI / OpenRouter compatible).

Sends the rendered prompt as a single user message and expects the
assistant content to be a JSON object:

    {"value": <answer>, "confidence": <0..1>, "explanation": "<text>"}
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from adcs.contracts.enums import InvocationErrorKind
from adcs.contracts.errors import NodeInvocationError
from adcs.contracts.results import ReasoningRequest, ReasoningResult
from adcs.plugins.clients.http import parse_json_strict

logger = structlog.get_logger(__name__)


class ChatCompletionsConfig(BaseModel):
    """Connection settings for a chat-completions endpoint.

    - api_key: Bearer token (required)
    - base_url: API base URL (default: https://openrouter.ai/api/v1)
    - model: Model identifier sent with every request
    - timeout_seconds: Request timeout (default: 60.0)
    """

    model_config = {"frozen": True, "extra": "forbid"}

    api_key: str = Field(..., description="API key")
    base_url: str = Field(default="https://openrouter.ai/api/v1", description="API base URL")
    model: str = Field(..., description="Model identifier")
    system_prompt: str | None = Field(default=None, description="Optional system message")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0, description="Request timeout")


class _Answer(BaseModel):
    """Shape of the JSON object the model is asked to produce."""

    value: Any = None
    confidence: float
    explanation: str = ""


class ChatCompletionsModel:
    """ReasoningModel backed by a ``/chat/completions`` endpoint.

    Example:
        model = ChatCompletionsModel(ChatCompletionsConfig(api_key="...", model="openai/gpt-4o-mini"))
        executor = GraphExecutor(graph, transport=transport, models={"analyst": model})
    """

    def __init__(self, config: ChatCompletionsConfig, *, client: httpx.Client | None = None) -> None:
        self._config = config
        self._client = (
            client
            if client is not None
            else httpx.Client(
                base_url=config.base_url,
                timeout=config.timeout_seconds,
                headers={"Authorization": f"Bearer {config.api_key}"},
            )
        )

    def reason(self, request: ReasoningRequest) -> ReasoningResult:
        """Send one prompt and parse the structured answer.

        Raises:
            NodeInvocationError: TIMEOUT, TRANSPORT or INVALID_RESPONSE
        """
        messages: list[dict[str, str]] = []
        if self._config.system_prompt:
            messages.append({"role": "system", "content": self._config.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        request_body: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "temperature": self._config.temperature,
        }
        if self._config.max_tokens:
            request_body["max_tokens"] = self._config.max_tokens

        try:
            response = self._client.post("/chat/completions", json=request_body)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NodeInvocationError(
                f"Core model '{self._config.model}' timed out: {e}",
                node_id=request.node_id,
                kind=InvocationErrorKind.TIMEOUT,
            ) from e
        except httpx.HTTPStatusError as e:
            raise NodeInvocationError(
                f"Core model '{self._config.model}' returned HTTP {e.response.status_code}",
                node_id=request.node_id,
            ) from e
        except httpx.RequestError as e:
            raise NodeInvocationError(
                f"Core model '{self._config.model}' request failed: {type(e).__name__}: {e}",
                node_id=request.node_id,
            ) from e

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise self._invalid(request, f"malformed completion: {type(e).__name__}: {e}") from e

        parsed, error = parse_json_strict(content) if isinstance(content, str) else (None, "content is not text")
        if error is not None:
            logger.warning("model_answer_unparseable", node_id=request.node_id, task=request.task, error=error)
            raise self._invalid(request, f"answer is not JSON: {error}")
        try:
            answer = _Answer.model_validate(parsed)
        except ValidationError as e:
            raise self._invalid(request, f"answer has the wrong shape: {e}") from e

        logger.debug("model_answered", node_id=request.node_id, task=request.task, confidence=answer.confidence)
        return ReasoningResult(value=answer.value, confidence=answer.confidence, text=answer.explanation)

    def _invalid(self, request: ReasoningRequest, detail: str) -> NodeInvocationError:
        return NodeInvocationError(
            f"Core model '{self._config.model}' {detail}",
            node_id=request.node_id,
            kind=InvocationErrorKind.INVALID_RESPONSE,
        )

    def close(self) -> None:
        self._client.close()
