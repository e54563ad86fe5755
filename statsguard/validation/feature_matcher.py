"""
StatsGuard - Feature Matcher

Pairs each statistics entry with its schema declaration by exact path and
partitions the result into:
- matched: declared and present in the statistics
- new_in_data: present in the statistics, not declared
- missing_from_data: declared, absent, and required to be present

Declarations that are inactive in the environment, or deprecated, are left
out of every partition, and statistics under their paths are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from statsguard.validation.environment import is_feature_active
from statsguard.validation.schema import Feature, FeaturePath, Schema, format_path
from statsguard.validation.statistics import DatasetFeatureStatistics, FeatureNameStatistics

logger = logging.getLogger(__name__)


@dataclass
class FeatureMatch:
    """A declaration paired with its statistics."""

    path: FeaturePath
    feature: Feature
    statistics: FeatureNameStatistics

    @property
    def name(self) -> str:
        return format_path(self.path)


@dataclass
class MatchResult:
    """Partitions produced by the matcher."""

    matched: list[FeatureMatch] = field(default_factory=list)
    new_in_data: list[FeatureNameStatistics] = field(default_factory=list)
    missing_from_data: list[tuple[FeaturePath, Feature]] = field(default_factory=list)
    skipped: set[FeaturePath] = field(default_factory=set)

    def is_skipped(self, path: FeaturePath) -> bool:
        """Check if a path falls under an inactive or deprecated declaration."""
        return any(path[:i] in self.skipped for i in range(1, len(path) + 1))


class FeatureMatcher:
    """
    Match statistics to schema declarations.

    Usage:
        matcher = FeatureMatcher(schema, environment="SERVING")
        result = matcher.match(statistics)
        for match in result.matched:
            ...
    """

    def __init__(self, schema: Schema, environment: str | None = None):
        self.schema = schema
        self.environment = environment

    def match(self, statistics: DatasetFeatureStatistics) -> MatchResult:
        """
        Partition statistics and declarations.

        Args:
            statistics: Dataset statistics (iteration order is preserved)

        Returns:
            MatchResult with matched, new and missing partitions
        """
        result = MatchResult()
        declared: dict[FeaturePath, Feature] = {}
        self._collect(self.schema.features, (), declared, result.skipped)

        present: set[FeaturePath] = set()
        for stats in statistics.features:
            path = stats.feature_path
            present.add(path)
            if result.is_skipped(path):
                continue
            feature = declared.get(path)
            if feature is None:
                result.new_in_data.append(stats)
            else:
                result.matched.append(FeatureMatch(path, feature, stats))

        for path, feature in declared.items():
            if path in present:
                continue
            # Children of an absent struct are covered by the parent
            if len(path) > 1 and path[:-1] not in present:
                continue
            if feature.presence is None or feature.presence.allows_absence:
                continue
            result.missing_from_data.append((path, feature))

        logger.debug(
            f"Matched {len(result.matched)} features, "
            f"{len(result.new_in_data)} new, {len(result.missing_from_data)} missing",
            extra={
                "environment": self.environment,
                "matched": len(result.matched),
                "new": len(result.new_in_data),
                "missing": len(result.missing_from_data),
            },
        )
        return result

    def _collect(
        self,
        features: list[Feature],
        parent: FeaturePath,
        declared: dict[FeaturePath, Feature],
        skipped: set[FeaturePath],
    ) -> None:
        for feature in features:
            path = parent + (feature.name,)
            if feature.deprecated or not is_feature_active(
                feature, self.environment, self.schema.default_environments
            ):
                skipped.add(path)
                continue
            declared[path] = feature
            self._collect(feature.children, path, declared, skipped)
