# src/adcs/engine/prompts.py
"""Jinja2-based prompt templating for core-model calls.

Uses a sandboxed environment so static context and upstream values can
never reach Python internals through template syntax. Undefined variables
fail loudly (StrictUndefined).

Two prompts are rendered:
- reasoning: llm_reasoning aggregation over all raw inputs
- explanation: rationale for a value the engine already computed
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from jinja2 import StrictUndefined, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from adcs.contracts.results import SourceValue

REASONING_TEMPLATE = """\
{{ static_context }}

Combine the outputs of {{ inputs | length }} upstream source(s) into one answer.
{% for item in inputs -%}
- {{ item.source_id }} (confidence {{ "%.2f" | format(item.confidence) }}): {{ item.value }}
{% endfor %}
Respond with a JSON object: {"value": <answer>, "confidence": <0..1>, "explanation": "<text>"}.
"""

EXPLANATION_TEMPLATE = """\
{{ static_context }}

The {{ method }} of {{ inputs | length }} upstream source(s) produced {{ value }} (confidence {{ "%.2f" | format(confidence) }}).
{% for item in inputs -%}
- {{ item.source_id }} (confidence {{ "%.2f" | format(item.confidence) }}): {{ item.value }}
{% endfor %}
Explain this result in one or two sentences.
Respond with a JSON object: {"value": null, "confidence": <0..1>, "explanation": "<text>"}.
"""


class TemplateError(Exception):
    """Error in template rendering (including sandbox violations)."""


class PromptTemplate:
    """Sandboxed Jinja2 prompt template.

    Example:
        template = PromptTemplate(REASONING_TEMPLATE)
        prompt = template.render(static_context="Assess credit risk.", inputs=values)
    """

    def __init__(self, template_string: str) -> None:
        self._env = SandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        try:
            self._template = self._env.from_string(template_string)
        except TemplateSyntaxError as e:
            raise TemplateError(f"Invalid template syntax: {e}") from e

    def render(self, **variables: Any) -> str:
        """Render the template.

        Raises:
            TemplateError: If a variable is undefined or the sandbox blocks an operation
        """
        try:
            return self._template.render(**variables)
        except UndefinedError as e:
            raise TemplateError(f"Undefined variable: {e}") from e
        except SecurityError as e:
            raise TemplateError(f"Sandbox violation: {e}") from e


_REASONING = PromptTemplate(REASONING_TEMPLATE)
_EXPLANATION = PromptTemplate(EXPLANATION_TEMPLATE)


def render_reasoning_prompt(static_context: str, inputs: Sequence[SourceValue]) -> str:
    return _REASONING.render(static_context=static_context, inputs=list(inputs))


def render_explanation_prompt(
    static_context: str,
    inputs: Sequence[SourceValue],
    *,
    method: str,
    value: Any,
    confidence: float,
) -> str:
    return _EXPLANATION.render(
        static_context=static_context,
        inputs=list(inputs),
        method=method,
        value=value,
        confidence=confidence,
    )
