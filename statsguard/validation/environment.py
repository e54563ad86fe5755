"""
StatsGuard - Environment Filter

Restricts which schema features participate in a call. A feature is
active in environment E when:
- no environment is given (everything is active), or
- it lists E in in_environment, or
- it lists no in_environment and E is one of the schema's default
  environments (or the schema declares no defaults),
and in every case E is not in its not_in_environment list.
"""

from __future__ import annotations

import logging

from statsguard.validation.errors import InvalidArgumentError
from statsguard.validation.schema import Feature, Schema

logger = logging.getLogger(__name__)


def declared_environments(schema: Schema) -> set[str]:
    """Every environment name the schema mentions."""
    environments = set(schema.default_environments)
    for _, feature in schema.iter_features():
        environments.update(feature.in_environment)
        environments.update(feature.not_in_environment)
    return environments


def check_environment(schema: Schema, environment: str | None) -> None:
    """
    Check that an environment is known to the schema.

    A schema that declares no environments accepts any name.

    Raises:
        InvalidArgumentError: If the schema declares environments and
            the given one is not among them.
    """
    if environment is None:
        return
    known = declared_environments(schema)
    if known and environment not in known:
        raise InvalidArgumentError(
            f"Unknown environment '{environment}'. Schema declares: {sorted(known)}"
        )


def is_feature_active(
    feature: Feature,
    environment: str | None,
    default_environments: list[str] | None = None,
) -> bool:
    """Check whether a feature participates in the given environment."""
    if environment is None:
        return True
    if environment in feature.not_in_environment:
        return False
    if feature.in_environment:
        return environment in feature.in_environment
    if default_environments:
        return environment in default_environments
    return True

