"""
StatsGuard - Feature Statistics Validator

Public entry points:
- infer_schema: derive a schema from statistics
- update_schema: widen an existing schema to cover statistics
- validate_feature_statistics: check statistics against a schema, with
  optional drift (previous statistics) and skew (serving statistics)
  comparisons
- *_from_string variants of the above for serialized (JSON bytes) input
- enforce_validation: validate and raise when error anomalies are found

All operations are pure: inputs are never mutated, and a call that fails on
malformed input produces no output at all. Data-quality problems are never
failures; they are reported as anomalies.

Usage:
    config = get_config()
    schema = infer_schema(training_stats)

    report = validate_feature_statistics(
        config.validation,
        schema,
        eval_stats,
        previous_statistics=training_stats,
        environment="SERVING",
    )
    if report.has_errors:
        print(report.to_dataframe())
"""

from __future__ import annotations

import logging

from statsguard.shared.config import ValidationConfig, get_validation_config
from statsguard.validation.anomalies import AnomaliesReport, ComparisonKind, SeverityPolicy
from statsguard.validation.constraint_checker import ConstraintChecker
from statsguard.validation.drift_comparator import DriftSkewComparator
from statsguard.validation.environment import check_environment
from statsguard.validation.errors import AnomaliesFoundError
from statsguard.validation.feature_matcher import FeatureMatcher
from statsguard.validation.schema import Schema, check_schema
from statsguard.validation.schema_updater import SchemaUpdate, SchemaUpdater
from statsguard.validation.serialization import (
    parse_schema,
    parse_statistics,
    parse_validation_config,
    serialize_anomalies,
    serialize_schema,
)
from statsguard.validation.statistics import DatasetFeatureStatistics, check_statistics

logger = logging.getLogger(__name__)


class FeatureStatisticsValidator:
    """
    Validate feature statistics against schemas and maintain schemas.

    Usage:
        validator = FeatureStatisticsValidator(config.validation)
        schema = validator.infer_schema(statistics)
        report = validator.validate(schema, new_statistics, previous_statistics=statistics)
    """

    def __init__(self, config: ValidationConfig | None = None):
        """
        Initialize validator.

        Args:
            config: Validation settings (uses loaded configuration if not provided)
        """
        self.config = config or get_validation_config()
        self.policy = SeverityPolicy.from_config(self.config)

    def infer_schema(self, statistics: DatasetFeatureStatistics) -> Schema:
        """
        Infer a schema from statistics.

        Features with inconsistent statistics are left out; use
        update_with_anomalies(Schema(), statistics) to get their warnings.
        """
        return self.update_with_anomalies(Schema(), statistics).schema

    def update_schema(
        self,
        schema: Schema,
        statistics: DatasetFeatureStatistics,
        environment: str | None = None,
        columns_to_consider: list[str] | None = None,
    ) -> Schema:
        """
        Widen a schema so the statistics validate against it.

        Args:
            schema: Schema to update (left untouched)
            statistics: Statistics to cover
            environment: Only update features active in this environment
            columns_to_consider: Only update these top-level features

        Returns:
            Updated copy of the schema
        """
        return self.update_with_anomalies(
            schema, statistics, environment, columns_to_consider
        ).schema

    def update_with_anomalies(
        self,
        schema: Schema,
        statistics: DatasetFeatureStatistics,
        environment: str | None = None,
        columns_to_consider: list[str] | None = None,
    ) -> SchemaUpdate:
        """
        Widen a schema and report the features that were skipped.

        Returns:
            SchemaUpdate with the updated copy and an INCONSISTENT_STATISTICS
            warning for every feature whose statistics contradict themselves
        """
        updater = SchemaUpdater(self.config, columns_to_consider)
        return updater.update(schema, statistics, environment)

    def validate(
        self,
        schema: Schema,
        statistics: DatasetFeatureStatistics,
        previous_statistics: DatasetFeatureStatistics | None = None,
        environment: str | None = None,
        serving_statistics: DatasetFeatureStatistics | None = None,
    ) -> AnomaliesReport:
        """
        Validate statistics against a schema.

        Anomaly order: per-feature anomalies in statistics order, then
        missing columns in schema order, then dataset-level anomalies.

        Args:
            schema: Schema to validate against
            statistics: Statistics to validate
            previous_statistics: Previous span, for drift comparators
            environment: Environment to validate in
            serving_statistics: Serving data, for skew comparators

        Returns:
            AnomaliesReport

        Raises:
            InvalidArgumentError: On a malformed schema or statistics, or an
                unknown environment
        """
        check_schema(schema)
        check_statistics(statistics)
        for baseline in (previous_statistics, serving_statistics):
            if baseline is not None:
                check_statistics(baseline)
        check_environment(schema, environment)

        report = AnomaliesReport(environment=environment)
        num_examples = statistics.num_examples

        match = FeatureMatcher(schema, environment).match(statistics)
        checker = ConstraintChecker(self.config, schema, self.policy)
        comparator = DriftSkewComparator(self.policy)

        checks = checker.check_all(match.matched, num_examples)
        checked = {m.path: (m, check) for m, check in zip(match.matched, checks)}
        new_paths = {s.feature_path for s in match.new_in_data}
        baselines = (
            (ComparisonKind.DRIFT, previous_statistics.by_path() if previous_statistics else {}),
            (ComparisonKind.SKEW, serving_statistics.by_path() if serving_statistics else {}),
        )

        for stats in statistics.features:
            path = stats.feature_path
            if path in new_paths:
                report.anomalies.append(checker.check_new(stats, num_examples))
                continue
            if path not in checked:
                continue

            feature_match, check = checked[path]
            report.anomalies.extend(check.anomalies)
            if check.skipped:
                continue
            for comparison, baseline in baselines:
                declared = (
                    feature_match.feature.drift_comparator
                    if comparison == ComparisonKind.DRIFT
                    else feature_match.feature.skew_comparator
                )
                comparison_result = comparator.compare(
                    path, declared, stats, baseline.get(path), comparison
                )
                report.anomalies.extend(comparison_result.anomalies)
                report.drift_skew_info.extend(comparison_result.drift_skew_info)

        for path, feature in match.missing_from_data:
            report.anomalies.extend(checker.check_missing(path, feature).anomalies)

        report.anomalies.extend(checker.check_dataset(statistics, previous_statistics))

        logger.info(
            f"Validation complete: {len(report.anomalies)} anomalies "
            f"({len(report.error_anomalies)} errors)",
            extra={
                "environment": environment,
                "anomalies_count": len(report.anomalies),
                "error_count": len(report.error_anomalies),
                "features_checked": len(match.matched),
            },
        )
        return report


# =============================================================================
# Convenience Functions
# =============================================================================


def infer_schema(
    statistics: DatasetFeatureStatistics,
    max_string_domain_size: int = 100,
) -> Schema:
    """
    Infer a schema from statistics.

    Args:
        statistics: Dataset statistics
        max_string_domain_size: Largest distinct-value count for which a
            string feature gets an enumerated domain

    Returns:
        Inferred Schema
    """
    config = ValidationConfig(max_string_domain_size=max_string_domain_size)
    return FeatureStatisticsValidator(config).infer_schema(statistics)


def update_schema(
    validation_config: ValidationConfig,
    statistics: DatasetFeatureStatistics,
    schema_to_update: Schema,
    environment: str | None = None,
) -> Schema:
    """Widen schema_to_update so the statistics validate against it."""
    return FeatureStatisticsValidator(validation_config).update_schema(
        schema_to_update, statistics, environment
    )


def update_schema_for_columns(
    schema_to_update: Schema,
    statistics: DatasetFeatureStatistics,
    columns_to_consider: list[str],
) -> Schema:
    """
    Widen only the listed top-level features of a schema.

    Features outside columns_to_consider are passed through unchanged,
    including features that are new to the schema.
    """
    return FeatureStatisticsValidator(ValidationConfig()).update_schema(
        schema_to_update, statistics, columns_to_consider=columns_to_consider
    )


def validate_feature_statistics(
    validation_config: ValidationConfig,
    schema: Schema,
    statistics: DatasetFeatureStatistics,
    previous_statistics: DatasetFeatureStatistics | None = None,
    environment: str | None = None,
    serving_statistics: DatasetFeatureStatistics | None = None,
) -> AnomaliesReport:
    """
    Validate statistics against a schema.

    Args:
        validation_config: Validation settings
        schema: Schema to validate against
        statistics: Statistics to validate
        previous_statistics: Previous span, for drift comparators
        environment: Environment to validate in
        serving_statistics: Serving data, for skew comparators

    Returns:
        AnomaliesReport
    """
    return FeatureStatisticsValidator(validation_config).validate(
        schema,
        statistics,
        previous_statistics=previous_statistics,
        environment=environment,
        serving_statistics=serving_statistics,
    )


def enforce_validation(
    validation_config: ValidationConfig,
    schema: Schema,
    statistics: DatasetFeatureStatistics,
    previous_statistics: DatasetFeatureStatistics | None = None,
    environment: str | None = None,
    serving_statistics: DatasetFeatureStatistics | None = None,
) -> AnomaliesReport:
    """
    Validate statistics and raise on error-severity anomalies.

    Returns:
        AnomaliesReport (warnings only, if any)

    Raises:
        AnomaliesFoundError: If any anomaly has error severity
    """
    report = validate_feature_statistics(
        validation_config,
        schema,
        statistics,
        previous_statistics=previous_statistics,
        environment=environment,
        serving_statistics=serving_statistics,
    )
    if report.has_errors:
        raise AnomaliesFoundError(report)
    return report


# =============================================================================
# Serialized Wrappers
# =============================================================================


def infer_schema_from_string(
    statistics_string: bytes | str,
    max_string_domain_size: int = 100,
) -> bytes:
    """Infer a schema from JSON-serialized statistics; returns the schema as JSON bytes."""
    statistics = parse_statistics(statistics_string)
    return serialize_schema(infer_schema(statistics, max_string_domain_size))


def update_schema_from_string(
    validation_config_string: bytes | str,
    statistics_string: bytes | str,
    schema_string: bytes | str,
    environment: str | None = None,
) -> bytes:
    """
    Update a JSON-serialized schema.

    Raises:
        DeserializationError: If any input does not decode
    """
    config = parse_validation_config(validation_config_string)
    statistics = parse_statistics(statistics_string)
    schema = parse_schema(schema_string)
    return serialize_schema(update_schema(config, statistics, schema, environment))


def validate_feature_statistics_from_string(
    validation_config_string: bytes | str,
    schema_string: bytes | str,
    statistics_string: bytes | str,
    previous_statistics_string: bytes | str | None = None,
    environment: str | None = None,
    serving_statistics_string: bytes | str | None = None,
) -> bytes:
    """
    Validate JSON-serialized statistics; returns the report as JSON bytes.

    Raises:
        DeserializationError: If any input does not decode
    """
    config = parse_validation_config(validation_config_string)
    schema = parse_schema(schema_string)
    statistics = parse_statistics(statistics_string)
    previous = (
        parse_statistics(previous_statistics_string)
        if previous_statistics_string is not None
        else None
    )
    serving = (
        parse_statistics(serving_statistics_string)
        if serving_statistics_string is not None
        else None
    )
    report = validate_feature_statistics(
        config,
        schema,
        statistics,
        previous_statistics=previous,
        environment=environment,
        serving_statistics=serving,
    )
    return serialize_anomalies(report)
