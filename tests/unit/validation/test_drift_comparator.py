"""
Tests for Drift/Skew Comparator

Tests distance measures and comparator anomalies for categorical and
numeric features.
"""

import numpy as np
import pandas as pd
import pytest

from statsguard.validation.anomalies import AnomalyKind, ComparisonKind
from statsguard.validation.drift_comparator import (
    JENSEN_SHANNON_DIVERGENCE,
    L_INFTY,
    DriftSkewComparator,
    histogram_distributions,
    jensen_shannon_divergence,
    l_infinity_distance,
    mean_shift_distance,
    rebucket,
)
from statsguard.validation.schema import FeatureComparator, Threshold
from statsguard.validation.statistics import (
    Histogram,
    HistogramBucket,
    NumericStatistics,
    StatsType,
)


def _l_infty(threshold: float) -> FeatureComparator:
    return FeatureComparator(infinity_norm=Threshold(threshold=threshold))


# =============================================================================
# Distances
# =============================================================================


def test_l_infinity_distance():
    """Test the largest frequency difference, with missing values as zero."""
    current = pd.Series({"a": 90.0, "b": 10.0})
    baseline = pd.Series({"a": 50.0, "c": 50.0})

    value, top = l_infinity_distance(current, baseline)

    assert value == pytest.approx(0.5)
    assert top == "c"


def test_jensen_shannon_divergence_bounds():
    """Test identical distributions give 0 and disjoint ones give 1."""
    p = pd.Series({"a": 1.0, "b": 1.0})
    q = pd.Series({"c": 1.0})

    assert jensen_shannon_divergence(p, p) == pytest.approx(0.0)
    assert jensen_shannon_divergence(p, q) == pytest.approx(1.0)


def test_rebucket_spreads_uniformly():
    """Test counts are split in proportion to bucket overlap."""
    histogram = Histogram(buckets=[HistogramBucket(low_value=0, high_value=10, sample_count=10)])

    masses = rebucket(histogram, np.array([0.0, 5.0, 10.0]))

    assert masses.tolist() == pytest.approx([5.0, 5.0])


def test_histogram_distributions_share_boundaries():
    """Test two histograms are aligned on the union of their edges."""
    current = Histogram(buckets=[HistogramBucket(low_value=0, high_value=10, sample_count=10)])
    baseline = Histogram(buckets=[HistogramBucket(low_value=5, high_value=15, sample_count=10)])

    current_dist, baseline_dist = histogram_distributions(current, baseline)

    assert list(current_dist.index) == ["[0, 5)", "[5, 10)", "[10, 15)"]
    assert current_dist.tolist() == pytest.approx([5.0, 5.0, 0.0])
    assert baseline_dist.tolist() == pytest.approx([0.0, 5.0, 5.0])


def test_mean_shift_distance():
    """Test the normalized mean shift and its degenerate cases."""
    baseline = NumericStatistics(mean=10.0, std_dev=4.0)

    assert mean_shift_distance(NumericStatistics(mean=12.0), baseline) == pytest.approx(0.5)
    assert mean_shift_distance(NumericStatistics(mean=100.0), baseline) == 1.0
    assert mean_shift_distance(NumericStatistics(mean=10.0), NumericStatistics(mean=10.0)) == 0.0
    assert mean_shift_distance(NumericStatistics(), baseline) is None


def test_mean_shift_distance_not_finite():
    """Test NaN or infinite moments give no distance."""
    baseline = NumericStatistics(mean=5.0, std_dev=float("nan"))

    assert mean_shift_distance(NumericStatistics(mean=5.0), baseline) is None
    assert mean_shift_distance(
        NumericStatistics(mean=float("inf")), NumericStatistics(mean=5.0, std_dev=1.0)
    ) is None


def test_histogram_distributions_clip_infinite_edges():
    """Test open-ended buckets are folded into the finite boundaries."""
    histogram = Histogram(
        buckets=[
            HistogramBucket(low_value=float("-inf"), high_value=0, sample_count=10),
            HistogramBucket(low_value=0, high_value=10, sample_count=90),
        ]
    )

    current_dist, baseline_dist = histogram_distributions(histogram, histogram)

    assert list(current_dist.index) == ["[0, 10)"]
    assert current_dist.tolist() == pytest.approx([100.0])
    assert baseline_dist.tolist() == pytest.approx([100.0])


def test_histogram_distributions_without_finite_edges():
    histogram = Histogram(
        buckets=[
            HistogramBucket(low_value=float("-inf"), high_value=float("inf"), sample_count=10)
        ]
    )

    assert histogram_distributions(histogram, histogram) is None


# =============================================================================
# Comparator
# =============================================================================


def test_drift_above_threshold(make_string_stats):
    """Test a 0.4 L-infinity distance against a 0.1 threshold fires."""
    current = make_string_stats("payment", {"a": 90, "b": 10})
    previous = make_string_stats("payment", {"a": 50, "b": 50})

    result = DriftSkewComparator().compare(
        ("payment",), _l_infty(0.1), current, previous, ComparisonKind.DRIFT
    )

    assert [a.kind for a in result.anomalies] == [AnomalyKind.COMPARATOR_L_INFTY_HIGH]
    anomaly = result.anomalies[0]
    assert anomaly.details["distance"] == pytest.approx(0.4)
    assert anomaly.details["threshold"] == 0.1
    assert "between current and previous" in anomaly.description
    assert anomaly.changes[0].proposed == pytest.approx(0.4)


def test_drift_below_threshold(make_string_stats):
    """Test a 0.05 L-infinity distance against a 0.1 threshold is recorded only."""
    current = make_string_stats("payment", {"a": 55, "b": 45})
    previous = make_string_stats("payment", {"a": 50, "b": 50})

    result = DriftSkewComparator().compare(
        ("payment",), _l_infty(0.1), current, previous, ComparisonKind.DRIFT
    )

    assert result.anomalies == []
    assert len(result.drift_skew_info) == 1
    info = result.drift_skew_info[0]
    assert info.measure == L_INFTY
    assert info.value == pytest.approx(0.05)
    assert info.comparison == ComparisonKind.DRIFT


def test_skew_jensen_shannon(make_string_stats):
    """Test a Jensen-Shannon skew comparator on disjoint values."""
    comparator = FeatureComparator(jensen_shannon_divergence=Threshold(threshold=0.2))
    training = make_string_stats("country", {"us": 100})
    serving = make_string_stats("country", {"ca": 100})

    result = DriftSkewComparator().compare(
        ("country",), comparator, training, serving, ComparisonKind.SKEW
    )

    assert [a.kind for a in result.anomalies] == [
        AnomalyKind.COMPARATOR_JENSEN_SHANNON_DIVERGENCE_HIGH
    ]
    assert "between training and serving" in result.anomalies[0].description
    assert result.drift_skew_info[0].measure == JENSEN_SHANNON_DIVERGENCE


def test_numeric_histogram_drift(make_numeric_stats):
    """Test numeric drift measured on histograms."""
    current = make_numeric_stats("fare", 0, 10, buckets=[(0, 10, 100)])
    previous = make_numeric_stats("fare", 10, 20, buckets=[(10, 20, 100)])

    result = DriftSkewComparator().compare(
        ("fare",), _l_infty(0.5), current, previous, ComparisonKind.DRIFT
    )

    assert result.drift_skew_info[0].value == pytest.approx(1.0)
    assert [a.kind for a in result.anomalies] == [AnomalyKind.COMPARATOR_L_INFTY_HIGH]


def test_numeric_mean_shift_fallback(make_numeric_stats):
    """Test numeric drift without histograms uses the mean shift."""
    current = make_numeric_stats("fare", 0, 30, mean=12.0, stats_type=StatsType.FLOAT)
    previous = make_numeric_stats("fare", 0, 30, mean=10.0, std_dev=4.0, stats_type=StatsType.FLOAT)

    result = DriftSkewComparator().compare(
        ("fare",), _l_infty(0.6), current, previous, ComparisonKind.DRIFT
    )

    assert result.anomalies == []
    assert result.drift_skew_info[0].value == pytest.approx(0.5)


def test_no_baseline_is_skipped(make_string_stats):
    """Test a missing baseline entry skips the comparison silently."""
    current = make_string_stats("payment", {"a": 90, "b": 10})

    result = DriftSkewComparator().compare(
        ("payment",), _l_infty(0.1), current, None, ComparisonKind.DRIFT
    )

    assert result.anomalies == []
    assert result.drift_skew_info == []


def test_no_comparator_is_skipped(make_string_stats):
    """Test features without a comparator are not measured."""
    stats = make_string_stats("payment", {"a": 90, "b": 10})

    result = DriftSkewComparator().compare(("payment",), None, stats, stats, ComparisonKind.DRIFT)

    assert result.anomalies == []
    assert result.drift_skew_info == []


def test_nan_std_dev_is_skipped(make_numeric_stats):
    """Test identical snapshots with a NaN std_dev produce no anomaly."""
    stats = make_numeric_stats(
        "fare", 0, 10, mean=5.0, std_dev=float("nan"), stats_type=StatsType.FLOAT
    )

    result = DriftSkewComparator().compare(
        ("fare",), _l_infty(0.1), stats, stats, ComparisonKind.DRIFT
    )

    assert result.anomalies == []
    assert result.drift_skew_info == []


def test_infinite_histogram_edges_compare_cleanly(make_numeric_stats):
    """Test identical open-ended histograms measure a zero distance."""
    buckets = [(float("-inf"), 0, 10), (0, 10, 90)]
    stats = make_numeric_stats("fare", 0, 10, buckets=buckets, stats_type=StatsType.FLOAT)
    comparator = FeatureComparator(
        infinity_norm=Threshold(threshold=0.1),
        jensen_shannon_divergence=Threshold(threshold=0.1),
    )

    result = DriftSkewComparator().compare(
        ("fare",), comparator, stats, stats, ComparisonKind.SKEW
    )

    assert result.anomalies == []
    assert [info.value for info in result.drift_skew_info] == pytest.approx([0.0, 0.0])


def test_comparator_left_untouched(make_string_stats):
    """Test a firing comparator keeps its declared threshold."""
    comparator = _l_infty(0.1)
    current = make_string_stats("payment", {"a": 90, "b": 10})
    previous = make_string_stats("payment", {"a": 50, "b": 50})

    DriftSkewComparator().compare(("payment",), comparator, current, previous, ComparisonKind.DRIFT)

    assert comparator.infinity_norm.threshold == 0.1
