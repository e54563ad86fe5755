"""
StatsGuard - Schema Updater

Extend a schema so that it covers a set of statistics. Updates only widen:
- New features are added with declarations inferred from their statistics
  (parents before children; children go into the parent's struct_domain)
- Matched features get the constraint checker's widening fixes
- Declared features that are absent become optional
- No feature is ever removed or narrowed

Features whose statistics are inconsistent are skipped and reported as
INCONSISTENT_STATISTICS warnings. Inferring a schema from scratch is an
update of the empty schema.

Usage:
    updater = SchemaUpdater(config.validation)
    update = updater.update(schema, statistics, environment="TRAINING")
    new_schema = update.schema
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from statsguard.shared.config import ValidationConfig
from statsguard.validation.anomalies import Anomaly, SeverityPolicy
from statsguard.validation.constraint_checker import ConstraintChecker
from statsguard.validation.environment import check_environment
from statsguard.validation.errors import InconsistentStatisticsError
from statsguard.validation.feature_matcher import FeatureMatcher
from statsguard.validation.inference import FeatureInferencer
from statsguard.validation.schema import FeaturePath, FeatureType, Schema, check_schema, format_path
from statsguard.validation.statistics import DatasetFeatureStatistics, check_statistics

logger = logging.getLogger(__name__)


@dataclass
class SchemaUpdate:
    """Updated schema plus the warnings raised while building it."""

    schema: Schema
    anomalies: list[Anomaly] = field(default_factory=list)


class SchemaUpdater:
    """
    Widen a schema to cover statistics.

    With columns_to_consider, only the listed top-level features (and their
    children) are touched; everything else passes through unchanged, including
    features new to the schema.
    """

    def __init__(
        self,
        config: ValidationConfig,
        columns_to_consider: list[str] | None = None,
    ):
        """
        Initialize schema updater.

        Args:
            config: Validation settings
            columns_to_consider: Top-level feature names to update (all if not provided)
        """
        self.config = config
        self.columns_to_consider = (
            set(columns_to_consider) if columns_to_consider is not None else None
        )
        self.policy = SeverityPolicy.from_config(config)
        self.inferencer = FeatureInferencer(config.max_string_domain_size)

    def update(
        self,
        schema: Schema,
        statistics: DatasetFeatureStatistics,
        environment: str | None = None,
    ) -> SchemaUpdate:
        """
        Build an updated copy of the schema.

        Args:
            schema: Schema to update (left untouched)
            statistics: Statistics the result must cover
            environment: Only features active in this environment are updated

        Returns:
            SchemaUpdate with the new schema and inconsistency warnings

        Raises:
            InvalidArgumentError: On a malformed schema or statistics, or an
                unknown environment
        """
        check_schema(schema)
        check_statistics(statistics)
        check_environment(schema, environment)

        updated = schema.model_copy(deep=True)
        result = SchemaUpdate(schema=updated)
        num_examples = statistics.num_examples

        match = FeatureMatcher(updated, environment).match(statistics)
        checker = ConstraintChecker(self.config, updated, self.policy)

        # Matched features: apply widening fixes
        matched = [m for m in match.matched if self._considers(m.path)]
        domain_additions: dict[str, list[str]] = {}
        relaxed = 0
        for check in checker.check_all(matched, num_examples):
            if check.skipped:
                result.anomalies.extend(check.anomalies)
                continue
            if check.anomalies:
                updated.replace_feature(check.path, check.feature)
                relaxed += 1
            for name, values in check.domain_additions.items():
                domain_additions.setdefault(name, []).extend(values)
        self._merge_domain_additions(updated, domain_additions)

        # Declared but absent: make optional
        for path, feature in match.missing_from_data:
            if not self._considers(path):
                continue
            updated.replace_feature(path, checker.check_missing(path, feature).feature)
            relaxed += 1

        # New features: infer, parents first
        added = 0
        for stats in sorted(match.new_in_data, key=lambda s: len(s.feature_path)):
            path = stats.feature_path
            if not self._considers(path):
                logger.debug(
                    f"Passing through new feature '{stats.display_name}' outside columns_to_consider",
                    extra={"feature": stats.display_name},
                )
                continue
            try:
                feature = self.inferencer.infer_feature(stats, num_examples)
            except InconsistentStatisticsError as e:
                result.anomalies.append(checker.inconsistent_statistics(e))
                continue
            if not self._has_struct_parent(updated, path):
                logger.warning(
                    f"Skipping feature '{stats.display_name}': no struct parent "
                    f"'{format_path(path[:-1])}' in schema",
                    extra={"feature": stats.display_name},
                )
                continue
            updated.add_feature(path, feature)
            added += 1

        logger.info(
            f"Schema update complete: {added} features added, {relaxed} relaxed, "
            f"{len(result.anomalies)} skipped",
            extra={
                "environment": environment,
                "added": added,
                "relaxed": relaxed,
                "skipped": len(result.anomalies),
            },
        )
        return result

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _considers(self, path: FeaturePath) -> bool:
        return self.columns_to_consider is None or path[0] in self.columns_to_consider

    def _has_struct_parent(self, schema: Schema, path: FeaturePath) -> bool:
        if len(path) == 1:
            return True
        parent = schema.get_feature(path[:-1])
        return parent is not None and parent.type == FeatureType.STRUCT

    def _merge_domain_additions(self, schema: Schema, additions: dict[str, list[str]]) -> None:
        """Add values to schema-level string domains, once per value."""
        for name, values in additions.items():
            domain = schema.get_string_domain(name)
            if domain is None:
                continue
            known = set(domain.values)
            for value in sorted(set(values)):
                if value not in known:
                    domain.values.append(value)
                    known.add(value)
