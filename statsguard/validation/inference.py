"""
StatsGuard - Type & Domain Inferencer

Derive a feature declaration purely from its statistics:
- Type: INT/FLOAT from numeric summaries, BYTES from string or bytes
  summaries, STRUCT from struct summaries
- Domain: observed [min, max] for numbers; the exact set of observed values
  for strings whose distinct count is at most max_string_domain_size
  (larger string features are free text with no domain)
- Presence: required (min_fraction=1.0) only when present in every example
- Value count: single-valued or non-empty when the counts say so

Statistics that contradict themselves raise InconsistentStatisticsError;
callers skip the feature and report a warning anomaly.

Usage:
    inferencer = FeatureInferencer(max_string_domain_size=100)
    feature = inferencer.infer_feature(feature_stats, num_examples=1000)
"""

from __future__ import annotations

import logging
import math

from statsguard.validation.errors import InconsistentStatisticsError
from statsguard.validation.schema import (
    Feature,
    FeatureType,
    FloatDomain,
    IntDomain,
    Presence,
    StringDomain,
    StructDomain,
    ValueCount,
)
from statsguard.validation.statistics import FeatureNameStatistics, StatsType

logger = logging.getLogger(__name__)

# Summary fields that may describe each observed type
_EXPECTED_SUMMARIES: dict[StatsType, tuple[str, ...]] = {
    StatsType.INT: ("num_stats",),
    StatsType.FLOAT: ("num_stats",),
    StatsType.STRING: ("string_stats",),
    StatsType.BYTES: ("bytes_stats", "string_stats"),
    StatsType.STRUCT: ("struct_stats",),
}


def check_consistency(stats: FeatureNameStatistics, num_examples: int) -> None:
    """
    Check that a feature's statistics agree with themselves.

    Raises:
        InconsistentStatisticsError: On conflicting summaries, a type that
            disagrees with the summary present, more present examples than
            examples, or inverted min/max values.
    """
    name = stats.display_name
    num_stats, string_stats = stats.num_stats, stats.string_stats

    if (
        num_stats is not None
        and string_stats is not None
        and num_stats.common_stats != string_stats.common_stats
    ):
        raise InconsistentStatisticsError(
            name, "numeric and string summaries report different counts"
        )

    present = [
        label
        for label in ("num_stats", "string_stats", "bytes_stats", "struct_stats")
        if getattr(stats, label) is not None
    ]
    expected = _EXPECTED_SUMMARIES[stats.type]
    if present and not any(label in expected for label in present):
        raise InconsistentStatisticsError(
            name, f"declared type {stats.type} but only {', '.join(present)} present"
        )

    common = stats.common_stats
    if common.num_non_missing > num_examples:
        raise InconsistentStatisticsError(
            name,
            f"present in {common.num_non_missing} examples but dataset has {num_examples}",
        )
    if common.num_non_missing > 0 and common.min_num_values > common.max_num_values:
        raise InconsistentStatisticsError(
            name,
            f"min_num_values {common.min_num_values} exceeds max_num_values "
            f"{common.max_num_values}",
        )
    if (
        num_stats is not None
        and num_stats.min is not None
        and num_stats.max is not None
        and num_stats.min > num_stats.max
    ):
        raise InconsistentStatisticsError(
            name, f"min {num_stats.min} exceeds max {num_stats.max}"
        )


class FeatureInferencer:
    """Infer feature declarations from statistics."""

    def __init__(self, max_string_domain_size: int = 100):
        """
        Initialize inferencer.

        Args:
            max_string_domain_size: Largest distinct-value count for which a
                string feature is treated as categorical
        """
        self.max_string_domain_size = max_string_domain_size

    def infer_feature(self, stats: FeatureNameStatistics, num_examples: int) -> Feature:
        """
        Infer a declaration for one feature.

        Args:
            stats: The feature's statistics
            num_examples: Number of examples in the dataset

        Returns:
            Feature named after the last step of the statistics path

        Raises:
            InconsistentStatisticsError: If the statistics contradict themselves
        """
        check_consistency(stats, num_examples)

        feature_type = self.infer_type(stats)
        feature = Feature(
            name=stats.feature_path[-1],
            type=feature_type,
            presence=self.infer_presence(stats, num_examples),
            value_count=self.infer_value_count(stats),
            domain=self.infer_domain(stats),
        )
        if feature_type == FeatureType.STRUCT:
            feature.struct_domain = StructDomain()
        return feature

    def infer_type(self, stats: FeatureNameStatistics) -> FeatureType:
        if stats.type == StatsType.INT:
            return FeatureType.INT
        elif stats.type == StatsType.FLOAT:
            return FeatureType.FLOAT
        elif stats.type in (StatsType.STRING, StatsType.BYTES):
            return FeatureType.BYTES
        elif stats.type == StatsType.STRUCT:
            return FeatureType.STRUCT
        raise ValueError(f"Unknown statistics type: {stats.type}")

    def infer_domain(
        self, stats: FeatureNameStatistics
    ) -> IntDomain | FloatDomain | StringDomain | None:
        if stats.type in (StatsType.INT, StatsType.FLOAT):
            return self._infer_numeric_domain(stats)
        elif stats.type == StatsType.STRING:
            return self.infer_string_domain(stats)
        elif stats.type in (StatsType.BYTES, StatsType.STRUCT):
            return None
        raise ValueError(f"Unknown statistics type: {stats.type}")

    def infer_string_domain(self, stats: FeatureNameStatistics) -> StringDomain | None:
        """Enumerate observed values when the feature looks categorical."""
        string_stats = stats.string_stats
        if string_stats is None:
            return None

        values = string_stats.value_counts()
        distinct = max(string_stats.unique, len(values))
        if distinct == 0:
            return None
        if distinct > self.max_string_domain_size:
            logger.debug(
                f"Feature '{stats.display_name}' has {distinct} distinct values "
                f"(max {self.max_string_domain_size}); inferring free text",
                extra={"feature": stats.display_name, "distinct": distinct},
            )
            return None
        if len(values) < distinct:
            logger.debug(
                f"Feature '{stats.display_name}' lists {len(values)} of {distinct} values; "
                f"cannot enumerate a domain",
                extra={"feature": stats.display_name, "distinct": distinct},
            )
            return None
        return StringDomain(values=sorted(values))

    def infer_presence(self, stats: FeatureNameStatistics, num_examples: int) -> Presence:
        num_present = stats.common_stats.num_non_missing
        required = num_examples > 0 and num_present == num_examples
        return Presence(
            min_fraction=1.0 if required else 0.0,
            min_count=1 if num_present > 0 else 0,
        )

    def infer_value_count(self, stats: FeatureNameStatistics) -> ValueCount | None:
        common = stats.common_stats
        if common.num_non_missing == 0:
            return None
        if common.min_num_values == 1 and common.max_num_values == 1:
            return ValueCount(min=1, max=1)
        if common.min_num_values >= 1:
            return ValueCount(min=1)
        return None

    def _infer_numeric_domain(self, stats: FeatureNameStatistics) -> IntDomain | FloatDomain | None:
        num_stats = stats.num_stats
        if num_stats is None or num_stats.common_stats.num_non_missing == 0:
            return None
        low, high = num_stats.min, num_stats.max
        if low is None or high is None or not (math.isfinite(low) and math.isfinite(high)):
            return None
        if stats.type == StatsType.INT:
            return IntDomain(min=math.floor(low), max=math.ceil(high))
        return FloatDomain(min=low, max=high)
