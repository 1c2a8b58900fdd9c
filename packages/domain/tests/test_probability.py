"""Tests for scenario probability helpers."""

import pytest

from valuation_domain.analytics.probability import (
    adjust_probabilities,
    distribution_statistics,
    normalize_probabilities,
    validate_probabilities,
    weighted_average,
)
from valuation_domain.errors import ProbabilityError


class TestValidateProbabilities:
    def test_exact_total_is_valid(self):
        result = validate_probabilities([50, 30, 20])
        assert result.is_valid
        assert result.warnings == []
        assert result.normalized == pytest.approx([0.5, 0.3, 0.2])

    def test_small_deviation_warns_and_normalizes(self):
        result = validate_probabilities([50, 30, 25])
        assert result.is_valid
        assert len(result.warnings) == 1
        assert sum(result.normalized) == pytest.approx(1.0)

    def test_large_deviation_is_an_error(self):
        result = validate_probabilities([40, 20])
        assert not result.is_valid
        assert result.normalized == []
        with pytest.raises(ProbabilityError):
            result.raise_for_errors()

    def test_out_of_range_probability(self):
        result = validate_probabilities([120, -20])
        assert not result.is_valid
        assert len(result.errors) == 2

    def test_empty(self):
        assert not validate_probabilities([]).is_valid

    def test_custom_thresholds(self):
        assert validate_probabilities([50, 45], error_threshold=5.0).is_valid
        assert not validate_probabilities([50, 44], error_threshold=5.0).is_valid


class TestNormalizeAndAdjust:
    def test_normalize(self):
        assert normalize_probabilities([1, 1, 2]) == pytest.approx([25.0, 25.0, 50.0])

    def test_normalize_all_zero_splits_equally(self):
        assert normalize_probabilities([0, 0, 0, 0]) == pytest.approx([25.0] * 4)

    def test_adjust_keeps_proportions(self):
        assert adjust_probabilities([50, 30, 20], 0, 60) == pytest.approx([60.0, 24.0, 16.0])

    def test_adjust_with_zero_others(self):
        assert adjust_probabilities([100, 0, 0], 0, 40) == pytest.approx([40.0, 30.0, 30.0])

    def test_adjust_clamps_value(self):
        assert adjust_probabilities([50, 50], 1, 150) == pytest.approx([0.0, 100.0])

    def test_adjust_bad_index(self):
        with pytest.raises(IndexError):
            adjust_probabilities([50, 50], 2, 10)


class TestWeightedAverage:
    def test_percentage_weights(self):
        assert weighted_average([10, 20], [25, 75]) == pytest.approx(17.5)

    def test_decimal_weights(self):
        assert weighted_average([10, 20], [0.25, 0.75], weight_format="decimal") == pytest.approx(17.5)

    def test_weights_not_totalling_one_are_rescaled(self):
        assert weighted_average([10, 20], [1, 1]) == pytest.approx(15.0)

    def test_mismatched_lengths(self):
        with pytest.raises(ProbabilityError):
            weighted_average([1, 2], [100])

    def test_zero_weights(self):
        with pytest.raises(ProbabilityError):
            weighted_average([1, 2], [0, 0])


def test_distribution_statistics():
    stats = distribution_statistics([10, 20, 30], [25, 50, 25])
    assert stats.mean == pytest.approx(20.0)
    assert stats.variance == pytest.approx(50.0)
    assert stats.std_dev == pytest.approx(50 ** 0.5)
    assert stats.p25 == 10.0
    assert stats.median == 20.0
    assert stats.p75 == 20.0


def test_distribution_statistics_empty():
    with pytest.raises(ProbabilityError):
        distribution_statistics([], [])
