"""
StatsGuard - Statistics Model

Pre-computed, read-only feature statistics for one dataset. Statistics are
produced upstream (by a statistics generation job) and handed to the
validator as input; nothing here computes them from raw data.

Each feature carries common counts (examples present/missing, values per
example) and one type-specific summary:
- numeric: min, max, mean, std-dev, histograms
- string: distinct count, top values with frequencies, rank histogram
- bytes: distinct count and size summary
- struct: common counts only
"""

from __future__ import annotations

from collections import Counter
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from statsguard.validation.errors import InvalidArgumentError
from statsguard.validation.schema import FeaturePath, format_path


class StatsType(StrEnum):
    """Observed type of a feature's values."""

    INT = "INT"
    FLOAT = "FLOAT"
    STRING = "STRING"
    BYTES = "BYTES"
    STRUCT = "STRUCT"


class HistogramType(StrEnum):
    STANDARD = "STANDARD"
    QUANTILES = "QUANTILES"


class _StatsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CommonStatistics(_StatsModel):
    """Counts shared by every feature type."""

    num_non_missing: int = Field(default=0, ge=0)
    num_missing: int = Field(default=0, ge=0)
    min_num_values: int = Field(default=0, ge=0)
    max_num_values: int = Field(default=0, ge=0)
    avg_num_values: float = Field(default=0.0, ge=0)
    tot_num_values: int = Field(default=0, ge=0)


class HistogramBucket(_StatsModel):
    low_value: float
    high_value: float
    sample_count: float = Field(default=0.0, ge=0)


class Histogram(_StatsModel):
    num_nan: int = 0
    num_undefined: int = 0
    buckets: list[HistogramBucket] = Field(default_factory=list)
    type: HistogramType = HistogramType.STANDARD


class NumericStatistics(_StatsModel):
    """Summary of INT/FLOAT values."""

    common_stats: CommonStatistics = Field(default_factory=CommonStatistics)
    mean: float | None = None
    std_dev: float | None = None
    num_zeros: int = 0
    min: float | None = None
    median: float | None = None
    max: float | None = None
    histograms: list[Histogram] = Field(default_factory=list)

    def standard_histogram(self) -> Histogram | None:
        """First equal-width histogram with at least one bucket."""
        for histogram in self.histograms:
            if histogram.type == HistogramType.STANDARD and histogram.buckets:
                return histogram
        return None


class ValueFrequency(_StatsModel):
    value: str
    frequency: float = Field(ge=0)


class RankBucket(_StatsModel):
    low_rank: int
    high_rank: int
    label: str
    sample_count: float = Field(default=0.0, ge=0)


class StringStatistics(_StatsModel):
    """Summary of STRING values."""

    common_stats: CommonStatistics = Field(default_factory=CommonStatistics)
    unique: int = Field(default=0, ge=0)
    top_values: list[ValueFrequency] = Field(default_factory=list)
    avg_length: float = 0.0
    rank_histogram: list[RankBucket] = Field(default_factory=list)

    def value_counts(self) -> dict[str, float]:
        """Observed value -> frequency, from the rank histogram and top values."""
        counts: dict[str, float] = {}
        for bucket in self.rank_histogram:
            counts[bucket.label] = counts.get(bucket.label, 0.0) + bucket.sample_count
        for top in self.top_values:
            counts.setdefault(top.value, top.frequency)
        return counts


class BytesStatistics(_StatsModel):
    """Summary of opaque BYTES values."""

    common_stats: CommonStatistics = Field(default_factory=CommonStatistics)
    unique: int = Field(default=0, ge=0)
    avg_num_bytes: float = 0.0
    min_num_bytes: float = 0.0
    max_num_bytes: float = 0.0


class StructStatistics(_StatsModel):
    common_stats: CommonStatistics = Field(default_factory=CommonStatistics)


class FeatureNameStatistics(_StatsModel):
    """Statistics for one feature, referenced by name or by nested path."""

    name: str | None = None
    path: list[str] | None = None
    type: StatsType
    num_stats: NumericStatistics | None = None
    string_stats: StringStatistics | None = None
    bytes_stats: BytesStatistics | None = None
    struct_stats: StructStatistics | None = None

    @model_validator(mode="after")
    def _require_reference(self) -> FeatureNameStatistics:
        if not self.name and not self.path:
            raise ValueError("Feature statistics need a name or a path")
        return self

    @property
    def feature_path(self) -> FeaturePath:
        if self.path:
            return tuple(self.path)
        return (self.name,)

    @property
    def display_name(self) -> str:
        return format_path(self.feature_path)

    @property
    def common_stats(self) -> CommonStatistics:
        """Common counts from whichever summary is present."""
        for summary in (self.num_stats, self.string_stats, self.bytes_stats, self.struct_stats):
            if summary is not None:
                return summary.common_stats
        return CommonStatistics()

    @property
    def num_distinct(self) -> int | None:
        """Distinct value count, when the summary reports one."""
        if self.string_stats is not None:
            return max(self.string_stats.unique, len(self.string_stats.value_counts()))
        if self.bytes_stats is not None:
            return self.bytes_stats.unique
        return None


class DatasetFeatureStatistics(_StatsModel):
    """Statistics for every feature of one dataset."""

    name: str = ""
    num_examples: int = Field(default=0, ge=0)
    features: list[FeatureNameStatistics] = Field(default_factory=list)

    def get_feature(self, path: FeaturePath | str) -> FeatureNameStatistics | None:
        """Get statistics for a feature by name or path."""
        if isinstance(path, str):
            path = (path,)
        for feature in self.features:
            if feature.feature_path == tuple(path):
                return feature
        return None

    def by_path(self) -> dict[FeaturePath, FeatureNameStatistics]:
        return {f.feature_path: f for f in self.features}


def check_statistics(statistics: DatasetFeatureStatistics) -> None:
    """
    Check statistics for structural problems.

    Raises:
        InvalidArgumentError: If two entries describe the same feature path.
    """
    counts = Counter(f.feature_path for f in statistics.features)
    duplicates = sorted(format_path(p) for p, c in counts.items() if c > 1)
    if duplicates:
        raise InvalidArgumentError(f"Duplicate features in statistics: {duplicates}")
