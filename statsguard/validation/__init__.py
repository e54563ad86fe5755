"""
StatsGuard - Validation System

Validate pre-computed feature statistics against a declarative schema:
- Schema inference and widening updates
- Constraint checks (type, presence, domain, range, value counts)
- Drift and skew comparison between statistics snapshots
- Environment-scoped validation

Components:
    - FeatureStatisticsValidator: infer/update/validate entry points
    - FeatureMatcher: pairs statistics with schema declarations
    - FeatureInferencer: derives declarations from statistics
    - ConstraintChecker: per-feature and dataset-level checks
    - DriftSkewComparator: L-infinity and Jensen-Shannon distances
    - SchemaUpdater: widening schema updates
    - SchemaStore: GCS-backed schema storage with versioning
"""

from statsguard.validation.anomalies import (
    AnomaliesReport,
    Anomaly,
    AnomalyKind,
    AnomalySeverity,
    DriftSkewInfo,
    SchemaChange,
)
from statsguard.validation.constraint_checker import ConstraintChecker
from statsguard.validation.drift_comparator import DriftSkewComparator
from statsguard.validation.environment import is_feature_active
from statsguard.validation.errors import (
    AnomaliesFoundError,
    DeserializationError,
    InconsistentStatisticsError,
    InvalidArgumentError,
    StatsGuardError,
)
from statsguard.validation.feature_matcher import FeatureMatcher
from statsguard.validation.inference import FeatureInferencer
from statsguard.validation.schema import (
    Feature,
    FeatureComparator,
    FeatureType,
    FloatDomain,
    IntDomain,
    Presence,
    Schema,
    StringDomain,
    ValueCount,
)
from statsguard.validation.schema_store import SchemaStore
from statsguard.validation.schema_updater import SchemaUpdate, SchemaUpdater
from statsguard.validation.serialization import (
    load_schema_text,
    load_statistics,
    write_anomalies_text,
    write_schema_text,
)
from statsguard.validation.statistics import DatasetFeatureStatistics, FeatureNameStatistics
from statsguard.validation.validator import (
    FeatureStatisticsValidator,
    enforce_validation,
    infer_schema,
    infer_schema_from_string,
    update_schema,
    update_schema_for_columns,
    update_schema_from_string,
    validate_feature_statistics,
    validate_feature_statistics_from_string,
)

__version__ = "0.1.0"

__all__ = [
    # Validator
    "FeatureStatisticsValidator",
    "infer_schema",
    "update_schema",
    "update_schema_for_columns",
    "validate_feature_statistics",
    "enforce_validation",
    "infer_schema_from_string",
    "update_schema_from_string",
    "validate_feature_statistics_from_string",
    # Schema
    "Schema",
    "Feature",
    "FeatureType",
    "FeatureComparator",
    "Presence",
    "ValueCount",
    "StringDomain",
    "IntDomain",
    "FloatDomain",
    # Statistics
    "DatasetFeatureStatistics",
    "FeatureNameStatistics",
    # Anomalies
    "AnomaliesReport",
    "Anomaly",
    "AnomalyKind",
    "AnomalySeverity",
    "DriftSkewInfo",
    "SchemaChange",
    # Components
    "FeatureMatcher",
    "FeatureInferencer",
    "ConstraintChecker",
    "DriftSkewComparator",
    "SchemaUpdater",
    "SchemaUpdate",
    "is_feature_active",
    # Storage
    "SchemaStore",
    "load_schema_text",
    "write_schema_text",
    "load_statistics",
    "write_anomalies_text",
    # Errors
    "StatsGuardError",
    "InvalidArgumentError",
    "DeserializationError",
    "InconsistentStatisticsError",
    "AnomaliesFoundError",
]
