"""
StatsGuard - Pytest Configuration and Fixtures

Shared fixtures for all tests:
- Configuration fixtures
- Statistics builders
- Mock fixtures for external services
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from statsguard.shared.config import ValidationConfig, get_config, reload_config
from statsguard.validation.statistics import (
    CommonStatistics,
    DatasetFeatureStatistics,
    FeatureNameStatistics,
    Histogram,
    HistogramBucket,
    NumericStatistics,
    StatsType,
    StringStatistics,
    StructStatistics,
    ValueFrequency,
)

# Set test environment
os.environ["SG_ENVIRONMENT"] = "dev"

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def configs_dir(project_root: Path) -> Path:
    """Get the configs directory."""
    return project_root / "configs"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> Any:
    """Get test configuration."""
    # Ensure fresh config for tests
    reload_config("dev")
    return get_config("dev")


@pytest.fixture
def validation_config(test_config: Any) -> ValidationConfig:
    """Validation section of the test configuration."""
    return test_config.validation


# =============================================================================
# Statistics Builders
# =============================================================================


def _common(num_present: int, min_values: int = 1, max_values: int = 1) -> CommonStatistics:
    return CommonStatistics(
        num_non_missing=num_present,
        min_num_values=min_values if num_present else 0,
        max_num_values=max_values if num_present else 0,
        avg_num_values=float(min_values) if num_present else 0.0,
        tot_num_values=num_present * min_values,
    )


@pytest.fixture
def make_string_stats() -> Callable[..., FeatureNameStatistics]:
    """Build STRING statistics from value -> count."""

    def _make(
        name: str,
        counts: dict[str, float],
        num_present: int | None = None,
        unique: int | None = None,
        path: list[str] | None = None,
    ) -> FeatureNameStatistics:
        present = int(sum(counts.values())) if num_present is None else num_present
        top_values = [
            ValueFrequency(value=value, frequency=count)
            for value, count in sorted(counts.items(), key=lambda item: -item[1])
        ]
        return FeatureNameStatistics(
            name=None if path else name,
            path=path,
            type=StatsType.STRING,
            string_stats=StringStatistics(
                common_stats=_common(present),
                unique=len(counts) if unique is None else unique,
                top_values=top_values,
            ),
        )

    return _make


@pytest.fixture
def make_numeric_stats() -> Callable[..., FeatureNameStatistics]:
    """Build INT/FLOAT statistics from observed min/max."""

    def _make(
        name: str,
        min_value: float,
        max_value: float,
        num_present: int = 100,
        stats_type: StatsType = StatsType.INT,
        mean: float | None = None,
        std_dev: float | None = None,
        buckets: list[tuple[float, float, float]] | None = None,
        max_values: int = 1,
        path: list[str] | None = None,
    ) -> FeatureNameStatistics:
        histograms = []
        if buckets:
            histograms.append(
                Histogram(
                    buckets=[
                        HistogramBucket(low_value=low, high_value=high, sample_count=count)
                        for low, high, count in buckets
                    ]
                )
            )
        return FeatureNameStatistics(
            name=None if path else name,
            path=path,
            type=stats_type,
            num_stats=NumericStatistics(
                common_stats=_common(num_present, max_values=max_values),
                min=min_value,
                max=max_value,
                mean=mean if mean is not None else (min_value + max_value) / 2,
                std_dev=std_dev,
                histograms=histograms,
            ),
        )

    return _make


@pytest.fixture
def make_struct_stats() -> Callable[..., FeatureNameStatistics]:
    """Build STRUCT statistics."""

    def _make(name: str, num_present: int = 100) -> FeatureNameStatistics:
        return FeatureNameStatistics(
            name=name,
            type=StatsType.STRUCT,
            struct_stats=StructStatistics(common_stats=_common(num_present)),
        )

    return _make


@pytest.fixture
def make_conflicting_stats() -> Callable[..., FeatureNameStatistics]:
    """Build INT statistics whose numeric and string summaries disagree on counts."""

    def _make(name: str, num_present: int = 10, string_present: int = 7) -> FeatureNameStatistics:
        return FeatureNameStatistics(
            name=name,
            type=StatsType.INT,
            num_stats=NumericStatistics(common_stats=_common(num_present), min=0, max=5),
            string_stats=StringStatistics(common_stats=_common(string_present)),
        )

    return _make


@pytest.fixture
def make_statistics() -> Callable[..., DatasetFeatureStatistics]:
    """Build dataset statistics from feature statistics."""

    def _make(*features: FeatureNameStatistics, num_examples: int = 100) -> DatasetFeatureStatistics:
        return DatasetFeatureStatistics(num_examples=num_examples, features=list(features))

    return _make


# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_gcs_client(mocker: Any) -> Any:
    """Mock Google Cloud Storage client."""
    mock_client = mocker.MagicMock()
    mocker.patch("google.cloud.storage.Client", return_value=mock_client)
    return mock_client


# =============================================================================
# Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def cleanup_env() -> Generator[None, None, None]:
    """Clean up environment variables after each test."""
    original_env = os.environ.copy()
    yield
    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)
