# tests/property/test_aggregation_properties.py
"""Property-based tests for the Aggregator's numeric and boolean methods."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from adcs.contracts import NodeID, NormalizationMethod, SourceValue
from adcs.core.config import AdaptorConfig
from adcs.engine.aggregator import Aggregator, normalize
from tests.property.conftest import boolean_sources, numeric_sources, scores, weights
from tests.property.settings import QUICK_SETTINGS, STANDARD_SETTINGS

NODE = NodeID("agg")


def _average(sources: list[SourceValue], weight_map: dict[str, float]) -> float:
    config = AdaptorConfig(aggregation_method="weighted_average", weights=weight_map)
    return Aggregator().aggregate(sources, config, node_id=NODE).value


class TestWeightedAverage:
    @given(sources=numeric_sources())
    @STANDARD_SETTINGS
    def test_result_within_input_range(self, sources: list[SourceValue]) -> None:
        values = [item.value for item in sources]
        result = _average(sources, {})
        assert min(values) - 1e-6 <= result <= max(values) + 1e-6

    @given(sources=numeric_sources(), data=st.data(), factor=st.floats(min_value=0.1, max_value=1000.0))
    @STANDARD_SETTINGS
    def test_invariant_under_weight_scaling(self, sources: list[SourceValue], data: st.DataObject, factor: float) -> None:
        weight_map = {str(item.source_id): data.draw(weights) for item in sources}
        scaled = {source: weight * factor for source, weight in weight_map.items()}
        assert _average(sources, scaled) == pytest.approx(_average(sources, weight_map), rel=1e-9, abs=1e-6)

    @given(sources=numeric_sources())
    @STANDARD_SETTINGS
    def test_confidence_in_unit_interval(self, sources: list[SourceValue]) -> None:
        config = AdaptorConfig(aggregation_method="weighted_average")
        result = Aggregator().aggregate(sources, config, node_id=NODE)
        assert 0.0 <= result.confidence <= 1.0 + 1e-9


class TestNormalize:
    @given(values=st.lists(scores, min_size=1, max_size=10))
    @STANDARD_SETTINGS
    def test_min_max_maps_into_unit_interval(self, values: list[float]) -> None:
        assert all(0.0 <= v <= 1.0 for v in normalize(values, NormalizationMethod.MIN_MAX_SCALING))

    @given(values=st.lists(st.floats(min_value=-1e6, max_value=1e6), min_size=1, max_size=10))
    @STANDARD_SETTINGS
    def test_max_abs_bounded(self, values: list[float]) -> None:
        assert all(-1.0 <= v <= 1.0 for v in normalize(values, NormalizationMethod.MAX_ABS_SCALING))

    @given(value=scores, size=st.integers(min_value=1, max_value=5))
    @QUICK_SETTINGS
    def test_constant_inputs_map_to_one(self, value: float, size: int) -> None:
        assert normalize([value] * size, NormalizationMethod.MIN_MAX_SCALING) == [1.0] * size


class TestLogical:
    @given(sources=boolean_sources())
    @STANDARD_SETTINGS
    def test_logical_methods_match_builtins(self, sources: list[SourceValue]) -> None:
        votes = [item.value for item in sources]
        aggregator = Aggregator()

        def run(method: str) -> bool:
            return aggregator.aggregate(sources, AdaptorConfig(aggregation_method=method), node_id=NODE).value

        assert run("logical_and") == all(votes)
        assert run("logical_or") == any(votes)
        assert run("logical_xor") == (sum(votes) % 2 == 1)

    @given(sources=boolean_sources())
    @STANDARD_SETTINGS
    def test_logical_confidence_is_weakest_input(self, sources: list[SourceValue]) -> None:
        result = Aggregator().aggregate(sources, AdaptorConfig(aggregation_method="logical_and"), node_id=NODE)
        assert result.confidence == min(item.confidence for item in sources)
