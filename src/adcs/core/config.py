"""
Configuration schema for adaptor nodes and the execution engine.

Uses Pydantic for validation and Dynaconf for loading engine settings.
Every recognised option is enumerated and defaulted here and validated once
at construction; the engine never interprets raw option dicts at run time.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from adcs.contracts.enums import AggregationMethod, ConflictPolicy, NormalizationMethod


class ConflictSettings(BaseModel):
    """When and how the Conflict Resolver overrides normal aggregation.

    Conflict resolution is a fallback path. It fires only when:
    - numeric methods: max - min of the inputs exceeds significant_difference
    - voting methods: the vote is tied, or the normalised margin
      |true - false| / (true + false) is below margin

    Example YAML:
        conflict:
          significant_difference: 40
          policy: max_confidence
    """

    model_config = {"frozen": True, "extra": "forbid"}

    significant_difference: float | None = Field(
        default=None,
        ge=0,
        description="Numeric spread above which inputs are considered in conflict",
    )
    margin: float | None = Field(
        default=None,
        ge=0,
        le=1,
        description="Normalised vote margin below which a vote is considered contested",
    )
    policy: ConflictPolicy = Field(
        default=ConflictPolicy.MAX_CONFIDENCE,
        description="Resolution policy applied when a conflict fires",
    )


class NormalizationSettings(BaseModel):
    """Rescaling of numeric inputs, applied before weighting."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = False
    method: NormalizationMethod = NormalizationMethod.MIN_MAX_SCALING


class CategoryThresholds(BaseModel):
    """Maps an unsigned score onto a textual category.

    Bands are exclusive upper bounds in ascending order; scores at or above
    the last bound get top_label. Labels are emitted upper-cased.

    Example YAML:
        categories:
          bands: {low: 30, medium: 60}
          top_label: high
    """

    model_config = {"frozen": True, "extra": "forbid"}

    bands: dict[str, int] = Field(description="label -> exclusive upper bound, ascending")
    top_label: str = Field(default="high", min_length=1)

    @field_validator("bands")
    @classmethod
    def validate_bands_ascending(cls, v: dict[str, int]) -> dict[str, int]:
        if not v:
            raise ValueError("at least one category band is required")
        bounds = list(v.values())
        if any(bound < 0 for bound in bounds):
            raise ValueError(f"category bounds must be non-negative, got {bounds}")
        if any(later <= earlier for earlier, later in zip(bounds, bounds[1:], strict=False)):
            raise ValueError(f"category bounds must be strictly ascending, got {bounds}")
        return v

    def label_for(self, score: int) -> str:
        """Return the category label for a score."""
        for label, bound in self.bands.items():
            if score < bound:
                return label.upper()
        return self.top_label.upper()


class AdaptorConfig(BaseModel):
    """Closed option set for Single/Multi input adaptors and chain links.

    Example YAML:
        aggregation_method: weighted_average
        weights: {financial: 0.5, news: 0.3, market: 0.2}
        conflict:
          significant_difference: 40
          policy: fallback_average
        categories:
          bands: {low: 30, medium: 60}
        allow_partial: false
    """

    model_config = {"frozen": True, "extra": "forbid"}

    aggregation_method: AggregationMethod = Field(
        default=AggregationMethod.FIRST_VALID,
        description="How upstream values are combined",
    )
    weights: dict[str, float] = Field(
        default_factory=dict,
        description="Source id -> non-negative weight (unlisted sources weigh 1.0; normalised internally)",
    )
    threshold: float | None = Field(
        default=None,
        description="Decision threshold for thresholding",
    )
    separator: str = Field(
        default=" | ",
        description="Joiner for concatenation",
    )
    priority: tuple[str, ...] = Field(
        default=(),
        description="Source ids in priority order (priority_order method, priority conflict policy)",
    )
    validity_floor: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="first_valid requires confidence strictly above this floor",
    )
    conflict: ConflictSettings = Field(default_factory=ConflictSettings)
    normalization: NormalizationSettings = Field(default_factory=NormalizationSettings)
    allow_partial: bool = Field(
        default=False,
        description="Proceed with remaining inputs (degraded confidence) when an input failed",
    )
    categories: CategoryThresholds | None = Field(
        default=None,
        description="Score -> label mapping for string_and_uint256 output",
    )
    true_label: str = Field(default="TRUE", min_length=1)
    false_label: str = Field(default="FALSE", min_length=1)
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-node timeout for this adaptor's external calls",
    )

    @field_validator("weights")
    @classmethod
    def validate_weights_non_negative(cls, v: dict[str, float]) -> dict[str, float]:
        negative = sorted(source for source, weight in v.items() if weight < 0)
        if negative:
            raise ValueError(f"weights must be non-negative, negative for: {negative}")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority_unique(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError(f"priority list contains duplicates: {list(v)}")
        return v

    @model_validator(mode="after")
    def validate_method_requirements(self) -> "AdaptorConfig":
        """Method- and policy-specific options must be present."""
        if self.aggregation_method == AggregationMethod.THRESHOLDING and self.threshold is None:
            raise ValueError("thresholding requires threshold")
        if self.aggregation_method == AggregationMethod.PRIORITY_ORDER and not self.priority:
            raise ValueError("priority_order requires a non-empty priority list")
        conflict_enabled = self.conflict.significant_difference is not None or self.conflict.margin is not None
        if conflict_enabled and self.conflict.policy == ConflictPolicy.PRIORITY and not self.priority:
            raise ValueError("priority conflict policy requires a non-empty priority list")
        return self

    def weight_for(self, source_id: str) -> float:
        """Raw (un-normalised) weight of a source."""
        return self.weights.get(source_id, 1.0)


class ConcurrencySettings(BaseModel):
    """Bound on concurrent external calls per invocation."""

    model_config = {"frozen": True, "extra": "forbid"}

    max_concurrent_calls: int = Field(
        default=8,
        gt=0,
        description="Maximum Provider/core-model calls in flight at once; a timed-out call stops counting",
    )


class TimeoutSettings(BaseModel):
    """Per-node timeout defaults."""

    model_config = {"frozen": True, "extra": "forbid"}

    default_node_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Applied to nodes that do not declare their own timeout (None = no limit)",
    )
    poll_interval_seconds: float = Field(
        default=0.05,
        gt=0,
        description="How often the executor re-checks cancellation while waiting on calls",
    )


class LoggingSettings(BaseModel):
    """structlog output configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False


class EngineSettings(BaseModel):
    """Top-level engine configuration.

    Example YAML:
        concurrency:
          max_concurrent_calls: 16
        timeouts:
          default_node_timeout_seconds: 30
        logging:
          level: INFO
          json_output: true
    """

    model_config = {"frozen": True, "extra": "forbid"}

    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Unset variables without a default are left in place so pydantic reports
    them against the offending field.
    """
    import os

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        default = match.group(2)
        return default if default is not None else match.group(0)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_VAR_PATTERN.sub(replacer, value)
        if isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand_value(item) for item in value]
        return value

    return {k: _expand_value(v) for k, v in config.items()}


def load_settings(config_path: Path) -> EngineSettings:
    """Load engine settings from YAML with environment variable overrides.

    Precedence:
    1. Environment variables (ADCS_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: ADCS_CONCURRENCY__MAX_CONCURRENT_CALLS for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="ADCS",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic expects lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    return EngineSettings(**_expand_env_vars(raw_config))
