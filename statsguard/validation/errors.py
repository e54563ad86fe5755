"""
StatsGuard - Validation Errors

Structural problems with the inputs fail a call with one of these
exceptions. Data-quality problems never do; they are reported as anomalies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from statsguard.validation.anomalies import AnomaliesReport


class StatsGuardError(Exception):
    """Base class for all StatsGuard errors."""


class InvalidArgumentError(StatsGuardError, ValueError):
    """Raised for malformed or self-contradictory schema/statistics input."""


class DeserializationError(StatsGuardError):
    """Raised when serialized input does not decode to the expected structure."""


class InconsistentStatisticsError(StatsGuardError):
    """
    Raised when a single feature's statistics contradict themselves.

    Callers convert this into a per-feature warning anomaly instead of
    failing the whole call.
    """

    def __init__(self, feature: str, reason: str):
        self.feature = feature
        self.reason = reason
        super().__init__(f"Inconsistent statistics for feature '{feature}': {reason}")


class AnomaliesFoundError(StatsGuardError):
    """Raised by enforce_validation when error-severity anomalies are present."""

    def __init__(self, report: AnomaliesReport):
        self.report = report
        lines = "\n".join(
            f"  - {a.feature}: {a.kind.value}: {a.description}" for a in report.error_anomalies
        )
        super().__init__(f"Validation found {len(report.error_anomalies)} error anomalies:\n{lines}")
