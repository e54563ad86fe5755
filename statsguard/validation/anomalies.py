"""
StatsGuard - Anomalies Model

Structured report of discrepancies between statistics and a schema.

Each anomaly names the feature it concerns, its kind, a severity, a
human-readable reason, and the schema changes that would resolve it.
Drift and skew measurements are kept alongside, whether or not they
crossed their threshold.

Usage:
    report = validate_feature_statistics(config, schema, statistics)

    if report.has_errors:
        for anomaly in report.error_anomalies:
            print(f"{anomaly.feature}: {anomaly.description}")

    report.to_dataframe()  # tabular view
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from statsguard.shared.config import ValidationConfig
from statsguard.validation.errors import InvalidArgumentError


class AnomalyKind(StrEnum):
    """Type of anomaly detected."""

    TYPE_MISMATCH = "TYPE_MISMATCH"
    PRESENCE_VIOLATION = "PRESENCE_VIOLATION"
    UNEXPECTED_STRING_VALUES = "UNEXPECTED_STRING_VALUES"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    VALUE_COUNT_VIOLATION = "VALUE_COUNT_VIOLATION"
    UNIQUE_COUNT_VIOLATION = "UNIQUE_COUNT_VIOLATION"
    COMPARATOR_L_INFTY_HIGH = "COMPARATOR_L_INFTY_HIGH"
    COMPARATOR_JENSEN_SHANNON_DIVERGENCE_HIGH = "COMPARATOR_JENSEN_SHANNON_DIVERGENCE_HIGH"
    SCHEMA_NEW_COLUMN = "SCHEMA_NEW_COLUMN"
    SCHEMA_MISSING_COLUMN = "SCHEMA_MISSING_COLUMN"
    INCONSISTENT_STATISTICS = "INCONSISTENT_STATISTICS"
    DATASET_LOW_NUM_EXAMPLES = "DATASET_LOW_NUM_EXAMPLES"
    DATASET_HIGH_NUM_EXAMPLES = "DATASET_HIGH_NUM_EXAMPLES"


class AnomalySeverity(StrEnum):
    """Anomaly severity level."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ChangeOperation(StrEnum):
    """How a schema change applies to its field."""

    SET = "set"
    ADD = "add"
    ADD_FEATURE = "add_feature"


class ComparisonKind(StrEnum):
    """Which baseline a comparator measured against."""

    DRIFT = "drift"
    SKEW = "skew"


DEFAULT_SEVERITIES: dict[AnomalyKind, AnomalySeverity] = {
    kind: AnomalySeverity.ERROR for kind in AnomalyKind
}
DEFAULT_SEVERITIES[AnomalyKind.INCONSISTENT_STATISTICS] = AnomalySeverity.WARNING


class _ReportModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SchemaChange(_ReportModel):
    """A single schema edit that resolves (part of) an anomaly."""

    field: str
    operation: ChangeOperation = ChangeOperation.SET
    previous: Any = None
    proposed: Any = None

    def __str__(self) -> str:
        if self.operation == ChangeOperation.ADD:
            return f"add {self.proposed} to {self.field}"
        elif self.operation == ChangeOperation.ADD_FEATURE:
            return f"add feature {self.field}"
        return f"set {self.field} from {self.previous} to {self.proposed}"


class Anomaly(_ReportModel):
    """Individual anomaly record."""

    feature: str
    kind: AnomalyKind
    severity: AnomalySeverity
    short_description: str
    description: str
    changes: list[SchemaChange] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class DriftSkewInfo(_ReportModel):
    """One comparator measurement."""

    feature: str
    comparison: ComparisonKind
    measure: str
    value: float
    threshold: float


class AnomaliesReport(_ReportModel):
    """Result of validating statistics against a schema."""

    anomalies: list[Anomaly] = Field(default_factory=list)
    drift_skew_info: list[DriftSkewInfo] = Field(default_factory=list)
    environment: str | None = None

    @property
    def has_anomalies(self) -> bool:
        """Check if any anomalies were detected."""
        return len(self.anomalies) > 0

    @property
    def has_errors(self) -> bool:
        """Check if any error-severity anomalies were detected."""
        return any(a.severity == AnomalySeverity.ERROR for a in self.anomalies)

    @property
    def error_anomalies(self) -> list[Anomaly]:
        return [a for a in self.anomalies if a.severity == AnomalySeverity.ERROR]

    @property
    def warning_anomalies(self) -> list[Anomaly]:
        return [a for a in self.anomalies if a.severity == AnomalySeverity.WARNING]

    @property
    def anomalies_by_feature(self) -> dict[str, list[Anomaly]]:
        """Group anomalies by feature, in report order."""
        result: dict[str, list[Anomaly]] = {}
        for anomaly in self.anomalies:
            result.setdefault(anomaly.feature, []).append(anomaly)
        return result

    @property
    def anomalies_by_kind(self) -> dict[AnomalyKind, list[Anomaly]]:
        """Group anomalies by kind."""
        result: dict[AnomalyKind, list[Anomaly]] = {}
        for anomaly in self.anomalies:
            result.setdefault(anomaly.kind, []).append(anomaly)
        return result

    def for_feature(self, feature: str) -> list[Anomaly]:
        return [a for a in self.anomalies if a.feature == feature]

    def to_dataframe(self) -> pd.DataFrame:
        """One row per anomaly, for notebooks and logs."""
        columns = ["Feature name", "Anomaly kind", "Severity", "Short description", "Description"]
        rows = [
            [a.feature, a.kind.value, a.severity.value, a.short_description, a.description]
            for a in self.anomalies
        ]
        return pd.DataFrame(rows, columns=columns)


class SeverityPolicy:
    """
    Resolve the severity of each anomaly kind.

    Precedence: explicit per-kind overrides, then the new-features-are-warnings
    switch, then the built-in defaults.
    """

    def __init__(
        self,
        overrides: dict[AnomalyKind, AnomalySeverity] | None = None,
        new_features_are_warnings: bool = False,
    ):
        self.overrides = dict(overrides or {})
        self.new_features_are_warnings = new_features_are_warnings

    @classmethod
    def from_config(cls, config: ValidationConfig) -> SeverityPolicy:
        overrides: dict[AnomalyKind, AnomalySeverity] = {}
        for kind_name, severity in config.severity_overrides.items():
            try:
                kind = AnomalyKind(kind_name)
            except ValueError as e:
                raise InvalidArgumentError(
                    f"Unknown anomaly kind in severity_overrides: {kind_name}"
                ) from e
            overrides[kind] = AnomalySeverity(severity)
        return cls(overrides, config.new_features_are_warnings)

    def severity_for(self, kind: AnomalyKind) -> AnomalySeverity:
        if kind in self.overrides:
            return self.overrides[kind]
        if kind == AnomalyKind.SCHEMA_NEW_COLUMN and self.new_features_are_warnings:
            return AnomalySeverity.WARNING
        return DEFAULT_SEVERITIES[kind]

    def make_anomaly(
        self,
        feature: str,
        kind: AnomalyKind,
        short_description: str,
        description: str,
        changes: list[SchemaChange] | None = None,
        details: dict[str, Any] | None = None,
    ) -> Anomaly:
        return Anomaly(
            feature=feature,
            kind=kind,
            severity=self.severity_for(kind),
            short_description=short_description,
            description=description,
            changes=changes or [],
            details=details or {},
        )
