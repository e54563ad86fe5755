"""
StatsGuard - Schema Model

Declarative per-feature constraints a dataset is expected to satisfy:
- Declared type and presence (fraction/count of examples carrying the feature)
- Per-example value counts
- Domains: enumerated string values, or int/float ranges
- Drift and skew comparators
- Environment scoping (in_environment / not_in_environment)
- Nested struct features
- Dataset-level example count constraints

Usage:
    schema = Schema(
        features=[
            Feature(name="age", type=FeatureType.INT, domain=IntDomain(min=0, max=120)),
            Feature(
                name="color",
                type=FeatureType.BYTES,
                domain=StringDomain(values=["red", "blue"]),
                presence=Presence(min_fraction=1.0),
            ),
        ]
    )
    check_schema(schema)  # raises InvalidArgumentError on conflicts
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from statsguard.validation.errors import InvalidArgumentError

FeaturePath = tuple[str, ...]

# Feature reference used by dataset-level anomalies
ALL_FEATURES = "__all__"


def format_path(path: FeaturePath) -> str:
    """Render a feature path as a dotted string."""
    return ".".join(path)


class FeatureType(StrEnum):
    """Declared physical type of a feature."""

    INT = "INT"
    FLOAT = "FLOAT"
    BYTES = "BYTES"
    STRUCT = "STRUCT"


class FeatureKind(StrEnum):
    """Logical kind of a declared feature, derived from type and domain."""

    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    BYTES = "bytes"
    STRUCT = "struct"


class _SchemaModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Domains
# =============================================================================


class StringDomain(_SchemaModel):
    """Enumerated set of allowed string values."""

    kind: Literal["string"] = "string"
    name: str | None = None
    values: list[str] = Field(default_factory=list)


class IntDomain(_SchemaModel):
    """Inclusive integer range."""

    kind: Literal["int"] = "int"
    min: int | None = None
    max: int | None = None


class FloatDomain(_SchemaModel):
    """Inclusive float range."""

    kind: Literal["float"] = "float"
    min: float | None = None
    max: float | None = None


Domain = Annotated[StringDomain | IntDomain | FloatDomain, Field(discriminator="kind")]


# =============================================================================
# Constraints
# =============================================================================


class Presence(_SchemaModel):
    """Bounds on how many examples carry the feature."""

    min_fraction: float | None = None
    max_fraction: float | None = None
    min_count: int | None = None

    @property
    def allows_absence(self) -> bool:
        """True when zero occurrences satisfy the constraint."""
        return not (self.min_fraction or self.min_count)


class ValueCount(_SchemaModel):
    """Bounds on the number of values per example."""

    min: int | None = None
    max: int | None = None


class UniqueConstraints(_SchemaModel):
    """Bounds on the number of distinct values."""

    min: int | None = None
    max: int | None = None


class DistributionConstraints(_SchemaModel):
    """Minimum share of value mass that must fall inside the string domain."""

    min_domain_mass: float = 1.0


class Threshold(_SchemaModel):
    threshold: float


class FeatureComparator(_SchemaModel):
    """Distributional distance thresholds for drift or skew."""

    infinity_norm: Threshold | None = None
    jensen_shannon_divergence: Threshold | None = None


class NumExamplesComparator(_SchemaModel):
    """Allowed ratio of current to previous example counts."""

    min_fraction_threshold: float | None = None
    max_fraction_threshold: float | None = None


class DatasetConstraints(_SchemaModel):
    """Constraints on the dataset as a whole."""

    min_examples_count: int | None = None
    max_examples_count: int | None = None
    num_examples_drift_comparator: NumExamplesComparator | None = None


# =============================================================================
# Features and Schema
# =============================================================================


class StructDomain(_SchemaModel):
    """Child features of a STRUCT feature."""

    features: list[Feature] = Field(default_factory=list)


class Feature(_SchemaModel):
    """Declaration of a single feature."""

    name: str
    type: FeatureType
    presence: Presence | None = None
    value_count: ValueCount | None = None
    domain: Domain | None = None
    domain_ref: str | None = None
    struct_domain: StructDomain | None = None
    unique_constraints: UniqueConstraints | None = None
    distribution_constraints: DistributionConstraints | None = None
    drift_comparator: FeatureComparator | None = None
    skew_comparator: FeatureComparator | None = None
    in_environment: list[str] = Field(default_factory=list)
    not_in_environment: list[str] = Field(default_factory=list)
    deprecated: bool = False

    @property
    def kind(self) -> FeatureKind:
        """Logical kind used to dispatch checks and inference."""
        if self.type in (FeatureType.INT, FeatureType.FLOAT):
            return FeatureKind.NUMERIC
        elif self.type == FeatureType.BYTES:
            if isinstance(self.domain, StringDomain) or self.domain_ref is not None:
                return FeatureKind.CATEGORICAL
            return FeatureKind.BYTES
        elif self.type == FeatureType.STRUCT:
            return FeatureKind.STRUCT
        raise ValueError(f"Unknown feature type: {self.type}")

    @property
    def children(self) -> list[Feature]:
        """Nested features (empty unless this is a struct)."""
        if self.struct_domain is None:
            return []
        return self.struct_domain.features


class Schema(_SchemaModel):
    """A set of feature declarations plus schema-wide settings."""

    features: list[Feature] = Field(default_factory=list)
    string_domains: list[StringDomain] = Field(default_factory=list)
    default_environments: list[str] = Field(default_factory=list)
    dataset_constraints: DatasetConstraints | None = None

    def iter_features(self) -> Iterator[tuple[FeaturePath, Feature]]:
        """Yield (path, feature) for every declaration, parents before children."""
        stack: list[tuple[FeaturePath, Feature]] = [((f.name,), f) for f in reversed(self.features)]
        while stack:
            path, feature = stack.pop()
            yield path, feature
            for child in reversed(feature.children):
                stack.append((path + (child.name,), child))

    def get_feature(self, path: FeaturePath | str) -> Feature | None:
        """Look up a feature by name or path."""
        if isinstance(path, str):
            path = (path,)
        siblings = self.features
        found: Feature | None = None
        for step in path:
            found = next((f for f in siblings if f.name == step), None)
            if found is None:
                return None
            siblings = found.children
        return found

    def get_string_domain(self, name: str) -> StringDomain | None:
        """Look up a schema-level string domain by name."""
        return next((d for d in self.string_domains if d.name == name), None)

    def add_feature(self, path: FeaturePath, feature: Feature) -> None:
        """Add a declaration at path; the parent of a nested path must exist."""
        if len(path) == 1:
            self.features.append(feature)
            return
        parent = self.get_feature(path[:-1])
        if parent is None or parent.type != FeatureType.STRUCT:
            raise InvalidArgumentError(
                f"Cannot add '{format_path(path)}': no struct parent '{format_path(path[:-1])}'"
            )
        if parent.struct_domain is None:
            parent.struct_domain = StructDomain()
        parent.struct_domain.features.append(feature)

    def replace_feature(self, path: FeaturePath, feature: Feature) -> None:
        """Replace the declaration at path, keeping its nested children."""
        siblings = self.features if len(path) == 1 else self._siblings(path)
        for i, existing in enumerate(siblings):
            if existing.name == path[-1]:
                siblings[i] = feature.model_copy(update={"struct_domain": existing.struct_domain})
                return
        raise InvalidArgumentError(f"Feature not in schema: {format_path(path)}")

    def _siblings(self, path: FeaturePath) -> list[Feature]:
        parent = self.get_feature(path[:-1])
        if parent is None:
            raise InvalidArgumentError(f"Feature not in schema: {format_path(path)}")
        return parent.children


StructDomain.model_rebuild()
Feature.model_rebuild()
Schema.model_rebuild()


# =============================================================================
# Structural Checks
# =============================================================================


def _duplicates(names: Iterable[str | None]) -> list[str]:
    counts = Counter(n for n in names if n is not None)
    return sorted(n for n, c in counts.items() if c > 1)


def _check_bounds(what: str, low: float | None, high: float | None) -> None:
    if low is not None and high is not None and low > high:
        raise InvalidArgumentError(f"{what}: min {low} is greater than max {high}")


def _check_fraction(what: str, value: float | None) -> None:
    if value is not None and not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(f"{what}: fraction {value} is outside [0, 1]")


def _check_feature(path: FeaturePath, feature: Feature, schema: Schema) -> None:
    name = format_path(path)
    domain = feature.domain

    if domain is not None and feature.domain_ref is not None:
        raise InvalidArgumentError(f"Feature '{name}' declares both domain and domain_ref")

    if feature.domain_ref is not None:
        if feature.type != FeatureType.BYTES:
            raise InvalidArgumentError(
                f"Feature '{name}' of type {feature.type} references string domain "
                f"'{feature.domain_ref}'"
            )
        if schema.get_string_domain(feature.domain_ref) is None:
            raise InvalidArgumentError(
                f"Feature '{name}' references unknown string domain '{feature.domain_ref}'"
            )

    if isinstance(domain, StringDomain) and feature.type != FeatureType.BYTES:
        raise InvalidArgumentError(
            f"Feature '{name}' of type {feature.type} cannot carry a string domain"
        )
    if isinstance(domain, IntDomain) and feature.type != FeatureType.INT:
        raise InvalidArgumentError(
            f"Feature '{name}' of type {feature.type} cannot carry an int domain"
        )
    if isinstance(domain, FloatDomain) and feature.type not in (FeatureType.INT, FeatureType.FLOAT):
        raise InvalidArgumentError(
            f"Feature '{name}' of type {feature.type} cannot carry a float domain"
        )
    if isinstance(domain, IntDomain | FloatDomain):
        _check_bounds(f"Feature '{name}' domain", domain.min, domain.max)

    if feature.struct_domain is not None and feature.type != FeatureType.STRUCT:
        raise InvalidArgumentError(f"Feature '{name}' of type {feature.type} has a struct_domain")

    if feature.presence is not None:
        presence = feature.presence
        _check_fraction(f"Feature '{name}' presence.min_fraction", presence.min_fraction)
        _check_fraction(f"Feature '{name}' presence.max_fraction", presence.max_fraction)
        _check_bounds(f"Feature '{name}' presence", presence.min_fraction, presence.max_fraction)
        if presence.min_count is not None and presence.min_count < 0:
            raise InvalidArgumentError(f"Feature '{name}' presence.min_count is negative")

    if feature.value_count is not None:
        if feature.value_count.min is not None and feature.value_count.min < 0:
            raise InvalidArgumentError(f"Feature '{name}' value_count.min is negative")
        _check_bounds(
            f"Feature '{name}' value_count", feature.value_count.min, feature.value_count.max
        )

    if feature.unique_constraints is not None:
        _check_bounds(
            f"Feature '{name}' unique_constraints",
            feature.unique_constraints.min,
            feature.unique_constraints.max,
        )

    if feature.distribution_constraints is not None:
        _check_fraction(
            f"Feature '{name}' distribution_constraints.min_domain_mass",
            feature.distribution_constraints.min_domain_mass,
        )

    for label, comparator in (
        ("drift_comparator", feature.drift_comparator),
        ("skew_comparator", feature.skew_comparator),
    ):
        if comparator is None:
            continue
        for threshold in (comparator.infinity_norm, comparator.jensen_shannon_divergence):
            if threshold is not None and threshold.threshold < 0:
                raise InvalidArgumentError(f"Feature '{name}' {label} has a negative threshold")


def _check_features(features: list[Feature], parent: FeaturePath, schema: Schema) -> None:
    duplicates = _duplicates(f.name for f in features)
    if duplicates:
        where = f" under '{format_path(parent)}'" if parent else ""
        raise InvalidArgumentError(f"Duplicate feature names{where}: {duplicates}")

    for feature in features:
        if not feature.name:
            raise InvalidArgumentError("Feature names must be non-empty")
        path = parent + (feature.name,)
        _check_feature(path, feature, schema)
        _check_features(feature.children, path, schema)


def check_schema(schema: Schema) -> None:
    """
    Check a schema for structural problems.

    Raises:
        InvalidArgumentError: On duplicate names, domains that conflict with
            the declared type, unknown domain references, or inverted bounds.
    """
    for domain in schema.string_domains:
        if not domain.name:
            raise InvalidArgumentError("Schema-level string domains must be named")
    duplicates = _duplicates(d.name for d in schema.string_domains)
    if duplicates:
        raise InvalidArgumentError(f"Duplicate string domain names: {duplicates}")

    _check_features(schema.features, (), schema)

    constraints = schema.dataset_constraints
    if constraints is not None:
        _check_bounds(
            "dataset_constraints examples count",
            constraints.min_examples_count,
            constraints.max_examples_count,
        )
        comparator = constraints.num_examples_drift_comparator
        if comparator is not None:
            _check_bounds(
                "dataset_constraints num_examples_drift_comparator",
                comparator.min_fraction_threshold,
                comparator.max_fraction_threshold,
            )
