"""
StatsGuard - Constraint Checker

Evaluates one feature's statistics against its declaration. Each check is
independent, so a feature can carry several anomalies at once:
- Type compatibility
- Presence (fraction and count of examples carrying the feature)
- Enumerated string domain (with min_domain_mass tolerance)
- Numeric range
- Values per example
- Distinct value count

Checks run on a deep copy of the declaration. Every anomaly comes with the
widening edit that resolves it, applied to the copy, so the same pass serves
both validation (keep the anomalies) and schema updates (keep the copy).

Usage:
    checker = ConstraintChecker(config.validation, schema)
    results = checker.check_all(match_result.matched, statistics.num_examples)
    for result in results:
        report.anomalies.extend(result.anomalies)
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from statsguard.shared.config import ValidationConfig
from statsguard.validation.anomalies import (
    Anomaly,
    AnomalyKind,
    ChangeOperation,
    SchemaChange,
    SeverityPolicy,
)
from statsguard.validation.errors import InconsistentStatisticsError
from statsguard.validation.feature_matcher import FeatureMatch
from statsguard.validation.inference import check_consistency
from statsguard.validation.schema import (
    ALL_FEATURES,
    DatasetConstraints,
    Feature,
    FeatureKind,
    FeaturePath,
    FeatureType,
    FloatDomain,
    IntDomain,
    Presence,
    Schema,
    StringDomain,
    format_path,
)
from statsguard.validation.statistics import (
    DatasetFeatureStatistics,
    FeatureNameStatistics,
    StatsType,
)

logger = logging.getLogger(__name__)

# Observed types each declared type accepts without a change
COMPATIBLE_TYPES: dict[FeatureType, frozenset[StatsType]] = {
    FeatureType.INT: frozenset({StatsType.INT}),
    FeatureType.FLOAT: frozenset({StatsType.FLOAT, StatsType.INT}),
    FeatureType.BYTES: frozenset({StatsType.STRING, StatsType.BYTES}),
    FeatureType.STRUCT: frozenset({StatsType.STRUCT}),
}


@dataclass
class FeatureCheckResult:
    """Outcome of checking one feature."""

    path: FeaturePath
    feature: Feature  # relaxed copy; equal to the declaration when nothing fired
    anomalies: list[Anomaly] = field(default_factory=list)
    # Values to add to schema-level string domains, by domain name
    domain_additions: dict[str, list[str]] = field(default_factory=dict)
    skipped: bool = False

    @property
    def name(self) -> str:
        return format_path(self.path)


def _set(field_name: str, previous: object, proposed: object) -> SchemaChange:
    return SchemaChange(field=field_name, previous=previous, proposed=proposed)


def _format_percent(fraction: float) -> str:
    if 0 < fraction < 0.01:
        return "<1%"
    return f"~{round(fraction * 100)}%"


class ConstraintChecker:
    """
    Check feature statistics against declared constraints.

    Usage:
        checker = ConstraintChecker(validation_config, schema)
        result = checker.check(("age",), schema.get_feature("age"), stats, 1000)
    """

    def __init__(
        self,
        config: ValidationConfig,
        schema: Schema,
        policy: SeverityPolicy | None = None,
    ):
        """
        Initialize constraint checker.

        Args:
            config: Validation settings
            schema: Schema the checked features belong to (resolves domain_ref)
            policy: Severity policy (built from config if not provided)
        """
        self.config = config
        self.schema = schema
        self.policy = policy or SeverityPolicy.from_config(config)

    def check(
        self,
        path: FeaturePath,
        feature: Feature,
        stats: FeatureNameStatistics,
        num_examples: int,
    ) -> FeatureCheckResult:
        """
        Run every declared check for one feature.

        Args:
            path: Feature path
            feature: Declaration (left untouched)
            stats: Statistics for the feature
            num_examples: Number of examples in the dataset

        Returns:
            FeatureCheckResult with anomalies and the relaxed declaration
        """
        result = FeatureCheckResult(path=path, feature=feature.model_copy(deep=True))

        try:
            check_consistency(stats, num_examples)
        except InconsistentStatisticsError as e:
            result.anomalies.append(self.inconsistent_statistics(e))
            result.skipped = True
            return result

        comparable = self._check_type(result, stats)
        self._check_presence(result, stats, num_examples)
        self._check_value_count(result, stats)

        if comparable:
            kind = result.feature.kind
            if kind == FeatureKind.CATEGORICAL:
                self._check_string_domain(result, stats)
            elif kind == FeatureKind.NUMERIC:
                self._check_range(result, stats)
            elif kind in (FeatureKind.BYTES, FeatureKind.STRUCT):
                pass
            else:
                raise ValueError(f"Unknown feature kind: {kind}")
            self._check_unique_count(result, stats)

        return result

    def check_all(self, matches: list[FeatureMatch], num_examples: int) -> list[FeatureCheckResult]:
        """
        Check every matched feature.

        Runs on a thread pool when validation.max_workers > 1. Results are
        returned in the order of matches regardless of completion order.
        """
        max_workers = self.config.max_workers
        if max_workers > 1 and len(matches) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                return list(
                    pool.map(
                        lambda m: self.check(m.path, m.feature, m.statistics, num_examples),
                        matches,
                    )
                )
        return [self.check(m.path, m.feature, m.statistics, num_examples) for m in matches]

    def check_missing(self, path: FeaturePath, feature: Feature) -> FeatureCheckResult:
        """
        Report a declared feature that does not appear in the statistics.

        The fix makes the feature optional.
        """
        result = FeatureCheckResult(path=path, feature=feature.model_copy(deep=True))
        presence = result.feature.presence or Presence()
        changes = []
        if presence.min_fraction:
            changes.append(_set("presence.min_fraction", presence.min_fraction, 0.0))
            presence.min_fraction = 0.0
        if presence.min_count:
            changes.append(_set("presence.min_count", presence.min_count, 0))
            presence.min_count = 0
        result.feature.presence = presence

        result.anomalies.append(
            self.policy.make_anomaly(
                result.name,
                AnomalyKind.SCHEMA_MISSING_COLUMN,
                "Column dropped",
                "Column is completely missing",
                changes=changes,
            )
        )
        return result

    def check_new(self, stats: FeatureNameStatistics, num_examples: int) -> Anomaly:
        """
        Anomaly for an undeclared feature.

        Features whose statistics contradict themselves get an
        INCONSISTENT_STATISTICS warning instead of SCHEMA_NEW_COLUMN.
        """
        try:
            check_consistency(stats, num_examples)
        except InconsistentStatisticsError as e:
            return self.inconsistent_statistics(e)
        return self.new_column(stats)

    def inconsistent_statistics(self, error: InconsistentStatisticsError) -> Anomaly:
        """Anomaly for a feature skipped because its statistics are inconsistent."""
        logger.warning(
            f"Skipping feature '{error.feature}': {error.reason}",
            extra={"feature": error.feature, "reason": error.reason},
        )
        return self.policy.make_anomaly(
            error.feature,
            AnomalyKind.INCONSISTENT_STATISTICS,
            "Inconsistent statistics",
            f"The statistics for this feature are inconsistent: {error.reason}",
        )

    def new_column(self, stats: FeatureNameStatistics) -> Anomaly:
        """Anomaly for a feature present in the statistics but not declared."""
        return self.policy.make_anomaly(
            stats.display_name,
            AnomalyKind.SCHEMA_NEW_COLUMN,
            "New column",
            "New column (column in data but not in schema)",
            changes=[
                SchemaChange(
                    field=stats.display_name,
                    operation=ChangeOperation.ADD_FEATURE,
                    proposed=stats.type.value,
                )
            ],
        )

    def check_dataset(
        self,
        statistics: DatasetFeatureStatistics,
        previous: DatasetFeatureStatistics | None = None,
    ) -> list[Anomaly]:
        """
        Check dataset-level example count constraints.

        Args:
            statistics: Current statistics
            previous: Previous span's statistics, for the num-examples comparator

        Returns:
            Anomalies on the "__all__" feature
        """
        constraints = self.schema.dataset_constraints
        if constraints is None:
            return []

        anomalies = []
        num_examples = statistics.num_examples
        anomalies.extend(self._check_examples_count(constraints, num_examples))

        comparator = constraints.num_examples_drift_comparator
        if comparator is not None and previous is not None and previous.num_examples > 0:
            ratio = num_examples / previous.num_examples
            low = comparator.min_fraction_threshold
            high = comparator.max_fraction_threshold
            if low is not None and ratio < low:
                anomalies.append(
                    self.policy.make_anomaly(
                        ALL_FEATURES,
                        AnomalyKind.DATASET_LOW_NUM_EXAMPLES,
                        "Low num examples in dataset",
                        f"The ratio of num examples in the current dataset versus the previous "
                        f"span is {ratio:.6g}, which is below the threshold {low}.",
                        changes=[
                            SchemaChange(
                                field="dataset_constraints.num_examples_drift_comparator"
                                ".min_fraction_threshold",
                                previous=low,
                                proposed=ratio,
                            )
                        ],
                        details={"ratio": ratio, "threshold": low},
                    )
                )
            if high is not None and ratio > high:
                anomalies.append(
                    self.policy.make_anomaly(
                        ALL_FEATURES,
                        AnomalyKind.DATASET_HIGH_NUM_EXAMPLES,
                        "High num examples in dataset",
                        f"The ratio of num examples in the current dataset versus the previous "
                        f"span is {ratio:.6g}, which is above the threshold {high}.",
                        changes=[
                            SchemaChange(
                                field="dataset_constraints.num_examples_drift_comparator"
                                ".max_fraction_threshold",
                                previous=high,
                                proposed=ratio,
                            )
                        ],
                        details={"ratio": ratio, "threshold": high},
                    )
                )
        return anomalies

    # =========================================================================
    # Private Check Methods
    # =========================================================================

    def _check_type(self, result: FeatureCheckResult, stats: FeatureNameStatistics) -> bool:
        """Check type compatibility; returns whether value checks can proceed."""
        feature = result.feature
        declared = feature.type
        if stats.type in COMPATIBLE_TYPES[declared]:
            return True

        changes = []
        comparable = False
        if declared == FeatureType.INT and stats.type == StatsType.FLOAT:
            feature.type = FeatureType.FLOAT
            changes.append(_set("type", declared.value, "FLOAT"))
            if isinstance(feature.domain, IntDomain):
                widened = FloatDomain(min=feature.domain.min, max=feature.domain.max)
                changes.append(
                    SchemaChange(
                        field="domain",
                        previous=feature.domain.model_dump(),
                        proposed=widened.model_dump(),
                    )
                )
                feature.domain = widened
            comparable = True
        elif declared in (FeatureType.INT, FeatureType.FLOAT) and stats.type in (
            StatsType.STRING,
            StatsType.BYTES,
        ):
            feature.type = FeatureType.BYTES
            changes.append(_set("type", declared.value, "BYTES"))
            if feature.domain is not None:
                changes.append(_set("domain", feature.domain.model_dump(), None))
                feature.domain = None
            comparable = True

        result.anomalies.append(
            self.policy.make_anomaly(
                result.name,
                AnomalyKind.TYPE_MISMATCH,
                "Unexpected data type",
                f"Expected data of type: {declared.value} but got {stats.type.value}",
                changes=changes,
                details={"expected": declared.value, "actual": stats.type.value},
            )
        )
        return comparable

    def _check_presence(
        self, result: FeatureCheckResult, stats: FeatureNameStatistics, num_examples: int
    ) -> None:
        presence = result.feature.presence
        if presence is None:
            return

        num_present = stats.common_stats.num_non_missing
        fraction = num_present / num_examples if num_examples else 0.0
        reasons = []
        changes = []

        if presence.min_fraction is not None and fraction < presence.min_fraction:
            reasons.append(
                f"The feature was present in fewer examples than expected: "
                f"minimum fraction = {presence.min_fraction}, actual = {fraction:.6g}"
            )
            changes.append(_set("presence.min_fraction", presence.min_fraction, fraction))
            presence.min_fraction = fraction
        if presence.max_fraction is not None and fraction > presence.max_fraction:
            reasons.append(
                f"The feature was present in more examples than expected: "
                f"maximum fraction = {presence.max_fraction}, actual = {fraction:.6g}"
            )
            changes.append(_set("presence.max_fraction", presence.max_fraction, fraction))
            presence.max_fraction = fraction
        if presence.min_count is not None and num_present < presence.min_count:
            reasons.append(
                f"The feature was present in fewer examples than expected: "
                f"minimum = {presence.min_count}, actual = {num_present}"
            )
            changes.append(_set("presence.min_count", presence.min_count, num_present))
            presence.min_count = num_present

        if reasons:
            short = "Column dropped" if num_present == 0 else "Column presence out of bounds"
            result.anomalies.append(
                self.policy.make_anomaly(
                    result.name,
                    AnomalyKind.PRESENCE_VIOLATION,
                    short,
                    " ".join(reasons),
                    changes=changes,
                    details={"fraction": fraction, "count": num_present},
                )
            )

    def _check_value_count(self, result: FeatureCheckResult, stats: FeatureNameStatistics) -> None:
        value_count = result.feature.value_count
        common = stats.common_stats
        if value_count is None or common.num_non_missing == 0:
            return

        reasons = []
        changes = []
        if value_count.min is not None and common.min_num_values < value_count.min:
            reasons.append(
                f"Some examples have fewer values than expected: "
                f"minimum = {value_count.min}, actual = {common.min_num_values}"
            )
            changes.append(_set("value_count.min", value_count.min, common.min_num_values))
            value_count.min = common.min_num_values
        if value_count.max is not None and common.max_num_values > value_count.max:
            reasons.append(
                f"Some examples have more values than expected: "
                f"maximum = {value_count.max}, actual = {common.max_num_values}"
            )
            changes.append(_set("value_count.max", value_count.max, common.max_num_values))
            value_count.max = common.max_num_values

        if reasons:
            result.anomalies.append(
                self.policy.make_anomaly(
                    result.name,
                    AnomalyKind.VALUE_COUNT_VIOLATION,
                    "Unexpected number of values",
                    " ".join(reasons),
                    changes=changes,
                )
            )

    def _check_string_domain(
        self, result: FeatureCheckResult, stats: FeatureNameStatistics
    ) -> None:
        string_stats = stats.string_stats
        if string_stats is None:
            return

        feature = result.feature
        global_domain: StringDomain | None = None
        if feature.domain_ref is not None:
            global_domain = self.schema.get_string_domain(feature.domain_ref)
            if global_domain is None:
                return
            allowed = set(global_domain.values)
        elif isinstance(feature.domain, StringDomain):
            allowed = set(feature.domain.values)
        else:
            return

        observed = string_stats.value_counts()
        unexpected = {value: count for value, count in observed.items() if value not in allowed}
        if not unexpected:
            return

        total = max(float(stats.common_stats.tot_num_values), sum(observed.values()))
        unexpected_mass = sum(unexpected.values()) / total if total else 0.0
        min_domain_mass = (
            feature.distribution_constraints.min_domain_mass
            if feature.distribution_constraints is not None
            else 1.0
        )
        if min_domain_mass < 1.0 and unexpected_mass <= 1.0 - min_domain_mass:
            return

        values = sorted(unexpected)
        shown = values[: self.config.max_examples_in_description]
        description = (
            f"Examples contain values missing from the schema: {', '.join(shown)}"
            f" ({_format_percent(unexpected_mass)})."
        )
        if len(values) > len(shown):
            description += f" {len(values) - len(shown)} more values omitted."

        if global_domain is not None:
            field_name = f"string_domains[{global_domain.name}].values"
            result.domain_additions.setdefault(global_domain.name, []).extend(values)
        else:
            field_name = "domain.values"
            feature.domain.values.extend(values)

        result.anomalies.append(
            self.policy.make_anomaly(
                result.name,
                AnomalyKind.UNEXPECTED_STRING_VALUES,
                "Unexpected string values",
                description,
                changes=[
                    SchemaChange(field=field_name, operation=ChangeOperation.ADD, proposed=values)
                ],
                details={"unexpected_values": shown, "unexpected_mass": unexpected_mass},
            )
        )

    def _check_range(self, result: FeatureCheckResult, stats: FeatureNameStatistics) -> None:
        domain = result.feature.domain
        num_stats = stats.num_stats
        if num_stats is None or not isinstance(domain, IntDomain | FloatDomain):
            return
        if num_stats.common_stats.num_non_missing == 0:
            return

        is_int = isinstance(domain, IntDomain)
        reasons = []
        changes = []
        if domain.min is not None and num_stats.min is not None and num_stats.min < domain.min:
            reasons.append(f"Unexpectedly low value: {num_stats.min:g} < {domain.min}")
            widened = num_stats.min
            if not math.isfinite(widened):
                widened = None
            elif is_int:
                widened = math.floor(widened)
            changes.append(_set("domain.min", domain.min, widened))
            domain.min = widened
        if domain.max is not None and num_stats.max is not None and num_stats.max > domain.max:
            reasons.append(f"Unexpectedly high value: {num_stats.max:g} > {domain.max}")
            widened = num_stats.max
            if not math.isfinite(widened):
                widened = None
            elif is_int:
                widened = math.ceil(widened)
            changes.append(_set("domain.max", domain.max, widened))
            domain.max = widened

        if reasons:
            result.anomalies.append(
                self.policy.make_anomaly(
                    result.name,
                    AnomalyKind.OUT_OF_RANGE,
                    "Out-of-range values",
                    " ".join(reasons),
                    changes=changes,
                    details={"observed_min": num_stats.min, "observed_max": num_stats.max},
                )
            )

    def _check_unique_count(self, result: FeatureCheckResult, stats: FeatureNameStatistics) -> None:
        constraints = result.feature.unique_constraints
        distinct = stats.num_distinct
        if constraints is None or distinct is None:
            return

        reasons = []
        changes = []
        if constraints.min is not None and distinct < constraints.min:
            reasons.append(
                f"Expected at least {constraints.min} unique values but found only {distinct}."
            )
            changes.append(_set("unique_constraints.min", constraints.min, distinct))
            constraints.min = distinct
        if constraints.max is not None and distinct > constraints.max:
            reasons.append(
                f"Expected no more than {constraints.max} unique values but found {distinct}."
            )
            changes.append(_set("unique_constraints.max", constraints.max, distinct))
            constraints.max = distinct

        if reasons:
            result.anomalies.append(
                self.policy.make_anomaly(
                    result.name,
                    AnomalyKind.UNIQUE_COUNT_VIOLATION,
                    "Unexpected number of unique values",
                    " ".join(reasons),
                    changes=changes,
                    details={"unique": distinct},
                )
            )

    def _check_examples_count(
        self, constraints: DatasetConstraints, num_examples: int
    ) -> list[Anomaly]:
        anomalies = []
        low, high = constraints.min_examples_count, constraints.max_examples_count
        if low is not None and num_examples < low:
            anomalies.append(
                self.policy.make_anomaly(
                    ALL_FEATURES,
                    AnomalyKind.DATASET_LOW_NUM_EXAMPLES,
                    "Low num examples in dataset",
                    f"The dataset has {num_examples} examples, which is fewer than expected: "
                    f"minimum = {low}.",
                    changes=[
                        SchemaChange(
                            field="dataset_constraints.min_examples_count",
                            previous=low,
                            proposed=num_examples,
                        )
                    ],
                )
            )
        if high is not None and num_examples > high:
            anomalies.append(
                self.policy.make_anomaly(
                    ALL_FEATURES,
                    AnomalyKind.DATASET_HIGH_NUM_EXAMPLES,
                    "High num examples in dataset",
                    f"The dataset has {num_examples} examples, which is more than expected: "
                    f"maximum = {high}.",
                    changes=[
                        SchemaChange(
                            field="dataset_constraints.max_examples_count",
                            previous=high,
                            proposed=num_examples,
                        )
                    ],
                )
            )
        return anomalies
