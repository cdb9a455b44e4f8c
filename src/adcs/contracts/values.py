"""Value types for the composite output formats.

Scalar formats map onto Python builtins (bool, int, bytes); the two
text-carrying formats get their own frozen dataclasses so a decision and
its label can never be separated by accident.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from adcs.contracts.enums import OutputFormat

UINT256_MAX = 2**256 - 1
BYTES32_LENGTH = 32


@dataclass(frozen=True, slots=True)
class StringAndBool:
    """Decision plus human-readable text (OutputFormat.STRING_AND_BOOL)."""

    text: str
    flag: bool


@dataclass(frozen=True, slots=True)
class StringAndUint256:
    """Score plus human-readable text (OutputFormat.STRING_AND_UINT256)."""

    text: str
    value: int


@dataclass(frozen=True, slots=True)
class FormattedOutput:
    """A value together with the output format it satisfies."""

    format: OutputFormat
    value: Any
