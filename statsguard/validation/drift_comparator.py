"""
StatsGuard - Drift/Skew Comparator

Measure the distance between a feature's distribution in two statistics
snapshots:
- Drift: current span vs. previous span
- Skew: training vs. serving

Measures:
- L-infinity distance: largest absolute difference between normalized
  value frequencies
- Jensen-Shannon divergence (base 2, in [0, 1])

Categorical features are compared on their value frequencies. Numeric
features are compared on their standard histograms, re-bucketed onto a
common set of boundaries; without histograms the L-infinity distance falls
back to the mean shift normalized by the baseline standard deviation.

Usage:
    comparator = DriftSkewComparator()
    result = comparator.compare(
        path=("payment_type",),
        comparator=feature.drift_comparator,
        current=current_stats,
        baseline=previous_stats,
        comparison=ComparisonKind.DRIFT,
    )
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy.spatial import distance

from statsguard.validation.anomalies import (
    Anomaly,
    AnomalyKind,
    ComparisonKind,
    DriftSkewInfo,
    SchemaChange,
    SeverityPolicy,
)
from statsguard.validation.schema import FeatureComparator, FeaturePath, format_path
from statsguard.validation.statistics import (
    FeatureNameStatistics,
    Histogram,
    NumericStatistics,
)

logger = logging.getLogger(__name__)

L_INFTY = "L_INFTY"
JENSEN_SHANNON_DIVERGENCE = "JENSEN_SHANNON_DIVERGENCE"

_SNAPSHOT_NAMES = {
    ComparisonKind.DRIFT: ("current", "previous"),
    ComparisonKind.SKEW: ("training", "serving"),
}


@dataclass
class ComparisonResult:
    """Anomalies and measurements for one feature."""

    anomalies: list[Anomaly] = field(default_factory=list)
    drift_skew_info: list[DriftSkewInfo] = field(default_factory=list)


# =============================================================================
# Distances
# =============================================================================


def normalize(counts: pd.Series) -> pd.Series:
    """Scale counts to sum to 1 (all zeros stay zero)."""
    total = counts.sum()
    if total <= 0:
        return counts * 0.0
    return counts / total


def l_infinity_distance(current: pd.Series, baseline: pd.Series) -> tuple[float, str | None]:
    """
    Largest absolute difference between two normalized distributions.

    Values missing on one side count as zero there.

    Returns:
        (distance, value with the largest difference)
    """
    diff = normalize(current).sub(normalize(baseline), fill_value=0.0).abs()
    if diff.empty:
        return 0.0, None
    return float(diff.max()), str(diff.idxmax())


def jensen_shannon_divergence(current: pd.Series, baseline: pd.Series) -> float:
    """Jensen-Shannon divergence (base 2) between two distributions."""
    p, q = normalize(current).align(normalize(baseline), fill_value=0.0)
    p_empty, q_empty = p.sum() <= 0, q.sum() <= 0
    if p_empty and q_empty:
        return 0.0
    if p_empty or q_empty:
        return 1.0
    return float(distance.jensenshannon(p.to_numpy(), q.to_numpy(), base=2) ** 2)


def rebucket(histogram: Histogram, edges: np.ndarray) -> np.ndarray:
    """
    Spread a histogram's counts over new bucket boundaries.

    Counts are assumed uniform within each original bucket. Bucket bounds
    outside the new boundaries (including infinite ones) are clipped to them,
    and zero-width buckets land in the bucket containing their value.
    """
    masses = np.zeros(len(edges) - 1)
    for bucket in histogram.buckets:
        low = float(np.clip(bucket.low_value, edges[0], edges[-1]))
        high = float(np.clip(bucket.high_value, edges[0], edges[-1]))
        count = bucket.sample_count
        if high <= low:
            index = int(np.searchsorted(edges, low, side="right")) - 1
            masses[min(max(index, 0), len(masses) - 1)] += count
            continue
        overlap = np.minimum(edges[1:], high) - np.maximum(edges[:-1], low)
        masses += count * np.clip(overlap, 0.0, None) / (high - low)
    return masses


def histogram_distributions(
    current: Histogram, baseline: Histogram
) -> tuple[pd.Series, pd.Series] | None:
    """
    Re-bucket two histograms onto the union of their finite boundaries.

    Returns None when neither histogram has a finite boundary.
    """
    edges = np.unique(
        [b.low_value for b in current.buckets + baseline.buckets]
        + [b.high_value for b in current.buckets + baseline.buckets]
    )
    edges = edges[np.isfinite(edges)]
    if len(edges) == 0:
        return None
    if len(edges) < 2:
        labels = [f"{edges[0]:g}"]
        return (
            pd.Series([sum(b.sample_count for b in current.buckets)], index=labels),
            pd.Series([sum(b.sample_count for b in baseline.buckets)], index=labels),
        )

    labels = [f"[{low:g}, {high:g})" for low, high in zip(edges[:-1], edges[1:])]
    return (
        pd.Series(rebucket(current, edges), index=labels),
        pd.Series(rebucket(baseline, edges), index=labels),
    )


def mean_shift_distance(current: NumericStatistics, baseline: NumericStatistics) -> float | None:
    """
    Mean shift in baseline standard deviations, capped at 1.

    Returns None when a mean is missing or either value is not finite.
    """
    if current.mean is None or baseline.mean is None:
        return None
    std_dev = baseline.std_dev or 0.0
    if not all(math.isfinite(v) for v in (current.mean, baseline.mean, std_dev)):
        return None
    if std_dev <= 0:
        return 0.0 if current.mean == baseline.mean else 1.0
    return float(min(abs(current.mean - baseline.mean) / std_dev, 1.0))


# =============================================================================
# Comparator
# =============================================================================


class DriftSkewComparator:
    """Compare feature distributions across statistics snapshots."""

    def __init__(self, policy: SeverityPolicy | None = None):
        self.policy = policy or SeverityPolicy()

    def compare(
        self,
        path: FeaturePath,
        comparator: FeatureComparator | None,
        current: FeatureNameStatistics,
        baseline: FeatureNameStatistics | None,
        comparison: ComparisonKind,
    ) -> ComparisonResult:
        """
        Run every measure the comparator declares.

        Skipped when no comparator is declared or the baseline snapshot has
        no entry for the feature.

        Args:
            path: Feature path
            comparator: Declared drift or skew comparator (left untouched)
            current: Statistics for the feature in the current snapshot
            baseline: Statistics for the feature in the baseline snapshot
            comparison: DRIFT or SKEW

        Returns:
            ComparisonResult
        """
        result = ComparisonResult()
        if comparator is None or baseline is None:
            return result

        name = format_path(path)
        distributions = self._distributions(current, baseline)

        if comparator.infinity_norm is not None:
            if distributions is not None:
                value, top_value = l_infinity_distance(*distributions)
            else:
                value, top_value = self._fallback_l_infinity(current, baseline), None
            if value is None or not math.isfinite(value):
                logger.debug(
                    f"No comparable distributions for '{name}'; skipping L-infinity",
                    extra={"feature": name, "comparison": comparison.value},
                )
            else:
                self._evaluate(
                    result, comparator, name, comparison, L_INFTY, value, top_value
                )

        if comparator.jensen_shannon_divergence is not None:
            value = (
                jensen_shannon_divergence(*distributions) if distributions is not None else None
            )
            if value is None or not math.isfinite(value):
                logger.debug(
                    f"No comparable distributions for '{name}'; skipping Jensen-Shannon",
                    extra={"feature": name, "comparison": comparison.value},
                )
            else:
                self._evaluate(
                    result, comparator, name, comparison, JENSEN_SHANNON_DIVERGENCE, value, None
                )

        return result

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _distributions(
        self, current: FeatureNameStatistics, baseline: FeatureNameStatistics
    ) -> tuple[pd.Series, pd.Series] | None:
        if current.string_stats is not None and baseline.string_stats is not None:
            return (
                pd.Series(current.string_stats.value_counts(), dtype=float),
                pd.Series(baseline.string_stats.value_counts(), dtype=float),
            )
        if current.num_stats is not None and baseline.num_stats is not None:
            current_hist = current.num_stats.standard_histogram()
            baseline_hist = baseline.num_stats.standard_histogram()
            if current_hist is not None and baseline_hist is not None:
                return histogram_distributions(current_hist, baseline_hist)
        return None

    def _fallback_l_infinity(
        self, current: FeatureNameStatistics, baseline: FeatureNameStatistics
    ) -> float | None:
        if current.num_stats is None or baseline.num_stats is None:
            return None
        return mean_shift_distance(current.num_stats, baseline.num_stats)

    def _evaluate(
        self,
        result: ComparisonResult,
        comparator: FeatureComparator,
        name: str,
        comparison: ComparisonKind,
        measure: str,
        value: float,
        top_value: str | None,
    ) -> None:
        if measure == L_INFTY:
            threshold = comparator.infinity_norm
            kind = AnomalyKind.COMPARATOR_L_INFTY_HIGH
            label, field_name = "Linfty distance", "infinity_norm.threshold"
        elif measure == JENSEN_SHANNON_DIVERGENCE:
            threshold = comparator.jensen_shannon_divergence
            kind = AnomalyKind.COMPARATOR_JENSEN_SHANNON_DIVERGENCE_HIGH
            label, field_name = "Jensen-Shannon divergence", "jensen_shannon_divergence.threshold"
        else:
            raise ValueError(f"Unknown distance measure: {measure}")

        limit = threshold.threshold
        result.drift_skew_info.append(
            DriftSkewInfo(
                feature=name,
                comparison=comparison,
                measure=measure,
                value=value,
                threshold=limit,
            )
        )
        if value <= limit:
            return

        current_name, baseline_name = _SNAPSHOT_NAMES[comparison]
        description = (
            f"The {label} between {current_name} and {baseline_name} is {value:.6g} "
            f"(up to six significant digits), above the threshold {limit}."
        )
        if top_value is not None:
            description += f" The feature value with maximum difference is: {top_value}"

        short = "High Linfty distance" if measure == L_INFTY else "High Jensen-Shannon divergence"
        short += f" between {current_name} and {baseline_name}"
        result.anomalies.append(
            self.policy.make_anomaly(
                name,
                kind,
                short,
                description,
                changes=[
                    SchemaChange(
                        field=f"{comparison.value}_comparator.{field_name}",
                        previous=limit,
                        proposed=value,
                    )
                ],
                details={"distance": value, "threshold": limit, "value": top_value},
            )
        )
        logger.debug(
            f"{comparison.value.capitalize()} on '{name}': {measure} {value:.6g} > {limit}",
            extra={"feature": name, "measure": measure, "value": value, "threshold": limit},
        )
